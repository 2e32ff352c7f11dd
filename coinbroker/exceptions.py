"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every business rejection carries a stable ``code`` so the API layer can
surface it verbatim. Only the infrastructure errors at the bottom of this
module indicate a fault rather than a rule.
"""

from uuid import UUID


class MarketplaceError(Exception):
    """Base exception for all coin broker errors."""

    code = "marketplace_error"


# ============================================================================
# Error kinds
# ============================================================================


class InvalidInputError(MarketplaceError):
    """Raised when input is missing or malformed."""

    code = "invalid_input"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StateConflictError(MarketplaceError):
    """Raised when a precondition on current state is violated."""

    code = "state_conflict"


class NotFoundError(MarketplaceError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"


class InsufficientBalanceError(MarketplaceError):
    """Raised when a professional cannot afford a debit."""

    code = "insufficient_balance"

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient balance. Balance: {balance}, Required: {required}")


class NoAccessError(MarketplaceError):
    """Raised when a professional never unlocked the request they act on."""

    code = "no_access"

    def __init__(self, professional_id: UUID, request_id: UUID) -> None:
        self.professional_id = professional_id
        self.request_id = request_id
        super().__init__(
            f"Professional {professional_id} has no unlocked contact on request {request_id}"
        )


# ============================================================================
# Validation
# ============================================================================


class ReasonTooShortError(InvalidInputError):
    """Raised when a refund dispute reason is below the minimum length."""

    code = "reason_too_short"

    def __init__(self, length: int, minimum: int) -> None:
        self.length = length
        self.minimum = minimum
        super().__init__(f"Reason must have at least {minimum} characters, got {length}")


# ============================================================================
# Not found
# ============================================================================


class ProfessionalNotFoundError(NotFoundError):
    """Raised when professional account doesn't exist."""

    code = "professional_not_found"

    def __init__(self, professional_id: UUID) -> None:
        self.professional_id = professional_id
        super().__init__(f"Professional not found: {professional_id}")


class ServiceRequestNotFoundError(NotFoundError):
    """Raised when service request doesn't exist."""

    code = "service_request_not_found"

    def __init__(self, request_id: UUID) -> None:
        self.request_id = request_id
        super().__init__(f"Service request not found: {request_id}")


class UnlockNotFoundError(NotFoundError):
    """Raised when an unlock record doesn't exist or belongs to someone else."""

    code = "unlock_not_found"

    def __init__(self, unlock_id: UUID) -> None:
        self.unlock_id = unlock_id
        super().__init__(f"Unlock record not found: {unlock_id}")


class RefundNotFoundError(NotFoundError):
    """Raised when refund record doesn't exist."""

    code = "refund_not_found"

    def __init__(self, refund_id: UUID) -> None:
        self.refund_id = refund_id
        super().__init__(f"Refund not found: {refund_id}")


# ============================================================================
# State conflicts
# ============================================================================


class RequestUnavailableError(StateConflictError):
    """Raised when a service request no longer accepts the operation."""

    code = "request_unavailable"

    def __init__(self, request_id: UUID, status: str | None) -> None:
        self.request_id = request_id
        self.status = status
        super().__init__(f"Service request {request_id} is not available (status: {status})")


class AlreadyUnlockedError(StateConflictError):
    """Raised when the professional already unlocked this request."""

    code = "already_unlocked"

    def __init__(self, professional_id: UUID, request_id: UUID) -> None:
        self.professional_id = professional_id
        self.request_id = request_id
        super().__init__(f"Contact already unlocked for request {request_id}")


class CapacityReachedError(StateConflictError):
    """Raised when a request already has the maximum number of unlocks."""

    code = "capacity_reached"

    def __init__(self, request_id: UUID, limit: int) -> None:
        self.request_id = request_id
        self.limit = limit
        super().__init__(f"Request {request_id} reached the limit of {limit} professionals")


class ExclusivityConflictError(StateConflictError):
    """Raised when an exclusive unlock is attempted on a request others unlocked."""

    code = "exclusivity_conflict"

    def __init__(self, request_id: UUID, existing_unlocks: int) -> None:
        self.request_id = request_id
        self.existing_unlocks = existing_unlocks
        super().__init__(
            f"Request {request_id} already has {existing_unlocks} unlock(s); "
            "exclusive access is no longer possible"
        )


class ProfessionalBannedError(StateConflictError):
    """Raised when a banned professional tries to spend coins."""

    code = "professional_banned"

    def __init__(self, professional_id: UUID, reason: str | None) -> None:
        self.professional_id = professional_id
        self.reason = reason
        super().__init__(f"Professional {professional_id} is banned: {reason}")


class AlreadyClosedError(StateConflictError):
    """Raised when the deal for an unlock was already marked closed."""

    code = "already_closed"

    def __init__(self, unlock_id: UUID) -> None:
        self.unlock_id = unlock_id
        super().__init__(f"Deal already closed for unlock {unlock_id}")


class RefundAlreadyUsedError(StateConflictError):
    """Raised when closing a deal whose unlock already has a refund."""

    code = "refund_already_used"

    def __init__(self, unlock_id: UUID, refund_id: UUID) -> None:
        self.unlock_id = unlock_id
        self.refund_id = refund_id
        super().__init__(f"Unlock {unlock_id} already has refund {refund_id}")


class DuplicateRefundRequestError(StateConflictError):
    """Raised when an unlock already has a refund request."""

    code = "duplicate_refund_request"

    def __init__(self, unlock_id: UUID, existing_status: str) -> None:
        self.unlock_id = unlock_id
        self.existing_status = existing_status
        super().__init__(
            f"A refund request ({existing_status}) already exists for unlock {unlock_id}"
        )


class AlreadyResolvedError(StateConflictError):
    """Raised when an admin tries to resolve a refund twice."""

    code = "already_resolved"

    def __init__(self, refund_id: UUID, status: str) -> None:
        self.refund_id = refund_id
        self.status = status
        super().__init__(f"Refund {refund_id} was already {status}")


class RefundWindowExpiredError(StateConflictError):
    """Raised when a refund is requested after the refund window closed."""

    code = "refund_window_expired"

    def __init__(self, unlock_id: UUID, window_days: int) -> None:
        self.unlock_id = unlock_id
        self.window_days = window_days
        super().__init__(f"Refund window of {window_days} days expired for unlock {unlock_id}")


class IdempotencyConflictError(StateConflictError):
    """Raised when an external payment reference is credited twice."""

    code = "idempotency_conflict"

    def __init__(self, existing_id: UUID) -> None:
        self.existing_id = existing_id
        super().__init__(f"Idempotency conflict: existing ID {existing_id}")


# ============================================================================
# Infrastructure
# ============================================================================


class WriteVerificationError(MarketplaceError):
    """Raised when database write verification fails."""

    code = "write_verification_failed"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DataIntegrityError(MarketplaceError):
    """Raised when data integrity constraint violated."""

    code = "data_integrity"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")
