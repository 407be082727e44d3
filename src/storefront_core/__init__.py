"""Session lifecycle and idempotent order submission for the storefront."""

__version__ = "0.1.0"
