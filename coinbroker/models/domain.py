"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from coinbroker.models.api import (
    ContactType,
    RefundPath,
    RefundStatus,
    RequestStatus,
    TransactionType,
)


@dataclass(frozen=True)
class ConfigSnapshot:
    """Versioned, immutable view of the marketplace configuration."""

    version: int
    unlock_cost_normal: int
    unlock_cost_exclusive: int
    max_professionals_per_request: int
    refund_percentage: int
    refund_window_days: int

    def __post_init__(self) -> None:
        """Validate configuration constraints."""
        if self.unlock_cost_normal <= 0 or self.unlock_cost_exclusive <= 0:
            raise ValueError("Unlock costs must be positive")
        if self.max_professionals_per_request <= 0:
            raise ValueError(
                f"max_professionals_per_request must be positive: "
                f"{self.max_professionals_per_request}"
            )
        if not 0 <= self.refund_percentage <= 100:
            raise ValueError(f"refund_percentage out of range: {self.refund_percentage}")
        if self.refund_window_days <= 0:
            raise ValueError(f"refund_window_days must be positive: {self.refund_window_days}")

    def unlock_cost(self, exclusive: bool) -> int:
        """Coins charged for a normal or exclusive unlock."""
        return self.unlock_cost_exclusive if exclusive else self.unlock_cost_normal


@dataclass(frozen=True)
class ConfigUpdate:
    """Partial configuration change requested by an admin."""

    unlock_cost_normal: int | None = None
    unlock_cost_exclusive: int | None = None
    max_professionals_per_request: int | None = None
    refund_percentage: int | None = None
    refund_window_days: int | None = None


@dataclass(frozen=True)
class ProfessionalData:
    """Immutable professional account snapshot."""

    professional_id: UUID
    coin_balance: int
    banned: bool
    ban_reason: str | None
    created_at: datetime


@dataclass(frozen=True)
class LedgerEntryData:
    """Immutable ledger movement after persistence."""

    transaction_id: UUID
    professional_id: UUID
    quantity: int
    transaction_type: TransactionType
    description: str
    balance_before: int
    balance_after: int
    external_reference: str | None
    created_at: datetime


@dataclass(frozen=True)
class ServiceRequestData:
    """Immutable service request snapshot."""

    request_id: UUID
    client_id: UUID
    title: str
    description: str
    category_id: UUID | None
    subcategory_id: UUID | None
    status: RequestStatus
    contracted_professional_id: UUID | None
    created_at: datetime


@dataclass(frozen=True)
class UnlockData:
    """Immutable unlock record snapshot."""

    unlock_id: UUID
    professional_id: UUID
    request_id: UUID
    exclusive: bool
    contact_unlocked: bool
    deal_closed: bool
    coins_spent: int
    config_version: int
    created_at: datetime


@dataclass(frozen=True)
class UnlockResult:
    """Outcome of a successful contact unlock."""

    unlock: UnlockData
    new_balance: int
    request_status: RequestStatus


@dataclass(frozen=True)
class DealClosureData:
    """Outcome of marking a deal closed."""

    unlock_id: UUID
    request_id: UUID
    contracted_professional_id: UUID
    request_status: RequestStatus
    closed_at: datetime


@dataclass(frozen=True)
class RefundData:
    """Immutable refund record snapshot."""

    refund_id: UUID
    unlock_id: UUID
    request_id: UUID
    professional_id: UUID
    client_id: UUID | None
    path: RefundPath
    status: RefundStatus
    contact_type: ContactType
    coins_spent: int
    refund_amount: int | None
    reason: str
    admin_id: UUID | None
    admin_response: str | None
    resolved_at: datetime | None
    created_at: datetime
    evidence_urls: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a refund settlement that touched the ledger."""

    refund: RefundData
    coins_refunded: int
    new_balance: int


@dataclass(frozen=True)
class RefundStats:
    """Counts of refunds per status."""

    pending: int
    approved: int
    denied: int

    @property
    def total(self) -> int:
        """Total number of refunds."""
        return self.pending + self.approved + self.denied
