"""Utility helpers for the storefront core."""
