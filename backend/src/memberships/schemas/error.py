"""Structured error response schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    This provides consistent error responses across the API with:
    - Machine-readable error codes
    - Human-readable messages
    - Remediation hints
    - Request tracing information
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "NoSessionsRemaining",
                "message": "No sessions remaining in subscription 6f1c... (10/10 used)",
                "details": [
                    {
                        "code": "no_sessions_remaining",
                        "message": "No sessions remaining in subscription 6f1c... (10/10 used)",
                    }
                ],
                "remediation": "Sell the member a new plan or upgrade the current subscription.",
                "request_id": "req_1234567890",
                "timestamp": "2026-01-15T10:30:00Z",
            }
        }
    )

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'StateConflict')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (422)
    VALIDATION_ERROR = "validation_error"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_UUID = "invalid_uuid"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    VALUE_TOO_LONG = "value_too_long"

    # Business rule errors (409 / 422)
    INACTIVE_SUBSCRIPTION = "inactive_subscription"
    NO_SESSIONS_REMAINING = "no_sessions_remaining"
    STATE_CONFLICT = "state_conflict"
    CREDIT_MISMATCH = "credit_mismatch"
    REFUND_EXCEEDS_REFUNDABLE = "refund_exceeds_refundable"
    CANNOT_REFUND_A_REFUND = "cannot_refund_a_refund"

    # Not found errors (404)
    MEMBER_NOT_FOUND = "member_not_found"
    PLAN_NOT_FOUND = "plan_not_found"
    SUBSCRIPTION_NOT_FOUND = "subscription_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"

    # Atomic operation / store errors (500, 503)
    TRANSACTION_FAILED = "transaction_failed"
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_AMOUNT: "Provide amounts in cents (e.g., 2500 for $25.00); payments must be positive",
    ErrorCode.INVALID_UUID: "Provide a valid UUID identifier",
    ErrorCode.INVALID_ENUM_VALUE: "Use one of: cash, card, bank_transfer, online, check",
    ErrorCode.NO_SESSIONS_REMAINING: "Sell the member a new plan or upgrade the current subscription.",
    ErrorCode.STATE_CONFLICT: "The subscription was changed by another request. Reload it and try again.",
    ErrorCode.CREDIT_MISMATCH: "The credit shown is out of date. Reload the upgrade credit and resubmit.",
    ErrorCode.REFUND_EXCEEDS_REFUNDABLE: "Refund at most the amount still refundable on the payment.",
    ErrorCode.CANNOT_REFUND_A_REFUND: "Select the original payment, not the refund entry.",
    ErrorCode.TRANSACTION_FAILED: "Nothing was saved. Try the operation again.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
