"""
Ledger exceptions.

Every business-rule rejection and atomic-operation failure raised by the
services derives from LedgerError, which carries a machine-readable code and
the HTTP status the API layer maps it to.
"""
from uuid import UUID

from fastapi import status

from memberships.schemas.error import ErrorCode


class LedgerError(Exception):
    """Base exception for subscription ledger errors."""

    code: str = ErrorCode.INTERNAL_ERROR
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        """
        Initialize ledger error.

        Args:
            message: Human-readable error message
        """
        self.message = message
        super().__init__(self.message)


class PlanNotFound(LedgerError):
    """Plan id does not resolve in the plan catalog."""

    code = ErrorCode.PLAN_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, plan_id: UUID):
        self.plan_id = plan_id
        super().__init__(f"Plan {plan_id} not found")


class SubscriptionNotFound(LedgerError):
    code = ErrorCode.SUBSCRIPTION_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, subscription_id: UUID):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id} not found")


class MemberNotFound(LedgerError):
    code = ErrorCode.MEMBER_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, member_id: UUID):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class PaymentNotFound(LedgerError):
    code = ErrorCode.PAYMENT_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class InactiveSubscription(LedgerError):
    """Operation requires an active subscription."""

    code = ErrorCode.INACTIVE_SUBSCRIPTION
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, subscription_id: UUID, current_status: str):
        self.subscription_id = subscription_id
        self.current_status = current_status
        super().__init__(
            f"Subscription {subscription_id} is {current_status}; operation requires an active subscription"
        )


class NoSessionsRemaining(LedgerError):
    code = ErrorCode.NO_SESSIONS_REMAINING
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, subscription_id: UUID, used_sessions: int, total_sessions: int):
        self.subscription_id = subscription_id
        self.used_sessions = used_sessions
        self.total_sessions = total_sessions
        super().__init__(
            f"No sessions remaining in subscription {subscription_id} ({used_sessions}/{total_sessions} used)"
        )


class StateConflict(LedgerError):
    """
    A guarded update matched zero rows.

    Another request changed the subscription between the read and the write;
    the caller may re-read and retry.
    """

    code = ErrorCode.STATE_CONFLICT
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, subscription_id: UUID, expected_status: str):
        self.subscription_id = subscription_id
        self.expected_status = expected_status
        super().__init__(
            f"Subscription {subscription_id} is no longer {expected_status}; it was changed by another request"
        )


class CreditMismatch(LedgerError):
    code = ErrorCode.CREDIT_MISMATCH
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, expected: int, provided: int):
        self.expected = expected
        self.provided = provided
        super().__init__(f"Credit amount mismatch: expected {expected} cents, got {provided} cents")


class RefundExceedsRefundable(LedgerError):
    code = ErrorCode.REFUND_EXCEEDS_REFUNDABLE
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, payment_id: UUID, refund_amount: int, refundable: int):
        self.payment_id = payment_id
        self.refund_amount = refund_amount
        self.refundable = refundable
        super().__init__(
            f"Refund of {refund_amount} cents exceeds the {refundable} cents still refundable on payment {payment_id}"
        )


class CannotRefundARefund(LedgerError):
    code = ErrorCode.CANNOT_REFUND_A_REFUND
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is a refund entry and cannot be refunded")


class TransactionFailed(LedgerError):
    """
    An atomic multi-row operation failed as a unit.

    The message keeps the stable prefix of the operation ("Transaction failed:"
    or "Refund failed:") so callers can tell it apart from business rejections.
    """

    code = ErrorCode.TRANSACTION_FAILED
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, reason: str, prefix: str = "Transaction failed"):
        self.reason = reason
        super().__init__(f"{prefix}: {reason}")


class ValidationError(LedgerError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")
