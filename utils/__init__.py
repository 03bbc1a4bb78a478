"""Shared helpers: result envelope, error taxonomy and operation logging."""
