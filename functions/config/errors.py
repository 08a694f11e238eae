"""Roof pricing error handling.

Custom exceptions and error codes for the estimation engine and the
price-adjustment ledger.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_ADJUSTMENT_TYPE = "INVALID_ADJUSTMENT_TYPE"
    INVALID_ADJUSTMENT_VALUE = "INVALID_ADJUSTMENT_VALUE"
    DISCOUNT_LIMIT_EXCEEDED = "DISCOUNT_LIMIT_EXCEEDED"
    DUPLICATE_RULE_KEY = "DUPLICATE_RULE_KEY"

    # Not Found Errors
    ESTIMATE_NOT_FOUND = "ESTIMATE_NOT_FOUND"
    ADJUSTMENT_NOT_FOUND = "ADJUSTMENT_NOT_FOUND"

    # Consistency Errors
    ADJUSTMENT_OWNERSHIP_MISMATCH = "ADJUSTMENT_OWNERSHIP_MISMATCH"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Storage Errors
    FIRESTORE_ERROR = "FIRESTORE_ERROR"
    FIRESTORE_WRITE_FAILED = "FIRESTORE_WRITE_FAILED"


class PricingError(Exception):
    """Base exception for pricing errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(PricingError):
    """Validation-specific error. Raised before any state change."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict] = None,
        code: str = ErrorCode.VALIDATION_ERROR
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class NotFoundError(PricingError):
    """Target estimate or adjustment does not exist."""

    def __init__(self, code: str, message: str, resource_id: str, details: Optional[Dict] = None):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "resource_id": resource_id}
        )
        self.resource_id = resource_id


class ConsistencyError(PricingError):
    """Adjustment does not belong to the estimate named by the caller."""

    def __init__(
        self,
        message: str,
        adjustment_id: str,
        estimate_id: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=ErrorCode.ADJUSTMENT_OWNERSHIP_MISMATCH,
            message=message,
            details={
                **(details or {}),
                "adjustment_id": adjustment_id,
                "estimate_id": estimate_id
            }
        )
        self.adjustment_id = adjustment_id
        self.estimate_id = estimate_id


class ConcurrencyError(PricingError):
    """Estimate changed between read and conditional write."""

    def __init__(self, estimate_id: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.CONCURRENT_MODIFICATION,
            message=f"Estimate {estimate_id} was modified concurrently",
            details={**(details or {}), "estimate_id": estimate_id}
        )
        self.estimate_id = estimate_id


class StorageError(PricingError):
    """Backing store operation failed."""
