"""
Pricing engine error taxonomy.

All errors are raised synchronously and are recoverable by the caller: the
API layer turns them into HTTP 422 responses and the quotation is not saved.
Percentage computations and currency detection never raise.
"""
from typing import List, Optional


class PricingError(Exception):
    """Base class for every error raised by the pricing engines."""

    error_type: str = "pricing_error"

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors: List[str] = list(errors or [])

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "error_type": self.error_type}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class InvalidRateError(PricingError):
    """An exchange rate is zero, negative or missing."""

    error_type = "invalid_rate"


class InvalidParameterError(PricingError):
    """Non-positive markup coefficient, negative risk or VAT rate."""

    error_type = "invalid_parameter"


class MissingParametersError(PricingError):
    """A quotation was calculated without parameters."""

    error_type = "missing_parameters"


class NotCalculatedError(PricingError):
    """Statistics were requested before the quotation was calculated."""

    error_type = "not_calculated"


class ValidationError(PricingError):
    """Field-level check failed (negative quantity or price, bad currency ...)."""

    error_type = "validation_error"
