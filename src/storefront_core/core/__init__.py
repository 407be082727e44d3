"""Core configuration for the storefront core."""
