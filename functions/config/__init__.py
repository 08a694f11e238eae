"""Roof pricing configuration.

This package contains:
- settings: Environment variables and configuration
- errors: Custom exceptions and error codes
"""

from config.settings import settings, Settings
from config.errors import (
    ErrorCode,
    PricingError,
    ValidationError,
    NotFoundError,
    ConsistencyError,
    ConcurrencyError,
    StorageError,
)

__all__ = [
    "settings",
    "Settings",
    "ErrorCode",
    "PricingError",
    "ValidationError",
    "NotFoundError",
    "ConsistencyError",
    "ConcurrencyError",
    "StorageError",
]
