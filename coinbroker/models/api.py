"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class RequestStatus(str, Enum):
    """Service request status enumeration."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"
    CANCELED = "canceled"


class TransactionType(str, Enum):
    """Ledger transaction type enumeration."""

    PURCHASE = "purchase"
    ADMIN_CREDIT = "admin_credit"
    USAGE_DEBIT = "usage_debit"
    REFUND_CREDIT = "refund_credit"


class RefundStatus(str, Enum):
    """Refund request status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class RefundPath(str, Enum):
    """How a refund request was raised."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


class ContactType(str, Enum):
    """Kind of contact unlock a refund refers to."""

    NORMAL = "normal"
    EXCLUSIVE = "exclusive"


# ============================================================================
# Error Models
# ============================================================================


class ErrorDetail(BaseModel):
    """Structured failure body returned in HTTPException.detail."""

    error: str
    message: str


# ============================================================================
# Professional / Ledger Models
# ============================================================================


class CreateProfessionalRequest(BaseModel):
    """POST /v1/professionals request body (registration hook)."""

    professional_id: UUID


class ProfessionalResponse(BaseModel):
    """Professional account response."""

    professional_id: UUID
    coin_balance: int
    banned: bool
    ban_reason: str | None = None
    created_at: str


class BalanceResponse(BaseModel):
    """GET /v1/professionals/me/balance response."""

    professional_id: UUID
    coin_balance: int


class LedgerEntryResponse(BaseModel):
    """A single ledger movement."""

    transaction_id: UUID
    professional_id: UUID
    quantity: int
    transaction_type: TransactionType
    description: str
    balance_before: int
    balance_after: int
    external_reference: str | None = None
    created_at: str


class TransactionListResponse(BaseModel):
    """Paginated ledger history."""

    transactions: list[LedgerEntryResponse]
    total: int
    has_more: bool


class PurchaseCreditRequest(BaseModel):
    """POST /v1/ledger/purchases request body (payment provider collaborator)."""

    professional_id: UUID
    coins: int = Field(..., gt=0)
    payment_reference: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=500)


# ============================================================================
# Service Request Models
# ============================================================================


class CreateServiceRequestRequest(BaseModel):
    """POST /v1/service-requests request body."""

    client_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    category_id: UUID | None = None
    subcategory_id: UUID | None = None


class ServiceRequestResponse(BaseModel):
    """Service request response."""

    service_request_id: UUID
    client_id: UUID
    title: str
    description: str
    category_id: UUID | None = None
    subcategory_id: UUID | None = None
    status: RequestStatus
    contracted_professional_id: UUID | None = None
    created_at: str


# ============================================================================
# Unlock Models
# ============================================================================


class UnlockContactRequest(BaseModel):
    """POST /v1/professionals/me/unlocks request body."""

    service_request_id: UUID
    exclusive: bool = False


class UnlockResponse(BaseModel):
    """Result of a successful contact unlock."""

    unlock_id: UUID
    service_request_id: UUID
    exclusive: bool
    coins_spent: int
    new_balance: int
    request_status: RequestStatus
    message: str


class UnlockItem(BaseModel):
    """A contact the professional has unlocked."""

    unlock_id: UUID
    service_request_id: UUID
    exclusive: bool
    contact_unlocked: bool
    deal_closed: bool
    coins_spent: int
    created_at: str


class UnlockListResponse(BaseModel):
    """List of unlocked contacts."""

    unlocks: list[UnlockItem]


# ============================================================================
# Deal Outcome Models
# ============================================================================


class CloseDealRequest(BaseModel):
    """POST /v1/professionals/me/deals request body."""

    service_request_id: UUID


class CloseDealResponse(BaseModel):
    """Result of marking a deal closed."""

    unlock_id: UUID
    service_request_id: UUID
    request_status: RequestStatus
    contracted_professional_id: UUID
    message: str


# ============================================================================
# Refund Models
# ============================================================================


class AutomaticRefundRequest(BaseModel):
    """POST /v1/professionals/me/refunds/automatic request body."""

    unlock_id: UUID


class ManualRefundRequest(BaseModel):
    """POST /v1/professionals/me/refunds request body."""

    unlock_id: UUID
    reason: str = Field(..., min_length=1, max_length=2000)
    evidence_urls: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("evidence_urls")
    @classmethod
    def validate_evidence_urls(cls, v: list[str]) -> list[str]:
        """Evidence links must be http(s) URLs."""
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"evidence URL must be http(s): {url[:50]}")
        return v


class RefundResponse(BaseModel):
    """Refund record response."""

    refund_id: UUID
    unlock_id: UUID
    service_request_id: UUID
    professional_id: UUID
    client_id: UUID | None = None
    path: RefundPath
    status: RefundStatus
    contact_type: ContactType
    coins_spent: int
    refund_amount: int | None = None
    reason: str
    evidence_urls: list[str]
    admin_id: UUID | None = None
    admin_response: str | None = None
    resolved_at: str | None = None
    created_at: str


class RefundSettlementResponse(BaseModel):
    """Result of an automatic refund."""

    refund: RefundResponse
    coins_refunded: int
    new_balance: int
    message: str


class RefundStatsResponse(BaseModel):
    """Refund review queue statistics."""

    pending: int
    approved: int
    denied: int
    total: int


class RefundListResponse(BaseModel):
    """List of refunds, with queue statistics for admins."""

    refunds: list[RefundResponse]
    stats: RefundStatsResponse | None = None


class ResolveRefundRequest(BaseModel):
    """POST /admin/refunds/{refund_id}/resolve request body."""

    decision: Literal["approved", "denied"]
    admin_response: str | None = Field(None, max_length=2000)


# ============================================================================
# Admin Models
# ============================================================================


class AdminCreditRequest(BaseModel):
    """POST /admin/professionals/{professional_id}/credits request body."""

    coins: int = Field(..., gt=0)
    reason: str | None = Field(None, max_length=500)


class BanRequest(BaseModel):
    """POST /admin/professionals/{professional_id}/ban request body."""

    banned: bool
    reason: str | None = Field(None, max_length=500)


class MarketplaceConfigResponse(BaseModel):
    """Current marketplace configuration snapshot."""

    version: int
    unlock_cost_normal: int
    unlock_cost_exclusive: int
    max_professionals_per_request: int
    refund_percentage: int
    refund_window_days: int


class MarketplaceConfigUpdateRequest(BaseModel):
    """PATCH /admin/config request body - only provided fields change."""

    unlock_cost_normal: int | None = Field(None, ge=1, le=1000)
    unlock_cost_exclusive: int | None = Field(None, ge=1, le=1000)
    max_professionals_per_request: int | None = Field(None, ge=1, le=20)
    refund_percentage: int | None = Field(None, ge=0, le=100)
    refund_window_days: int | None = Field(None, ge=1, le=30)


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
