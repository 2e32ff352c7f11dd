"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from coinbroker.models.api import (
    ContactType,
    RefundPath,
    RefundStatus,
    RequestStatus,
    TransactionType,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _enum_column(enum_cls: type[Enum], name: str) -> SQLEnum:
    """String-backed enum column storing the enum values."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda x: [e.value for e in x],
    )


class Professional(Base):
    """
    ORM model for professionals table.

    Holds the coin balance. Only LedgerService writes coin_balance.
    """

    __tablename__ = "professionals"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Balance
    coin_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Moderation (soft state, accounts are never deleted)
    banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    banned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ban_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="ck_professional_balance_non_negative"),
        Index("idx_professionals_banned", "banned"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Professional(id={self.id}, coin_balance={self.coin_balance})>"


class ServiceRequest(Base):
    """
    ORM model for service_requests table.

    A client's posted job. Accepts unlocks only while open.
    """

    __tablename__ = "service_requests"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    client_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    category_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    subcategory_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status: Mapped[RequestStatus] = mapped_column(
        _enum_column(RequestStatus, "request_status"),
        nullable=False,
        default=RequestStatus.OPEN,
    )
    contracted_professional_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_service_requests_client_id", "client_id"),
        Index("idx_service_requests_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<ServiceRequest(id={self.id}, status={self.status})>"


class ContactUnlock(Base):
    """
    ORM model for contact_unlocks table.

    One row per (professional, service request) whose contact was unlocked.
    coins_spent snapshots the cost paid at unlock time.
    """

    __tablename__ = "contact_unlocks"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=False
    )
    service_request_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("service_requests.id", ondelete="RESTRICT"),
        nullable=False,
    )

    exclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contact_unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deal_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deal_closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Cost snapshot
    coins_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    config_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("coins_spent > 0", name="ck_unlock_coins_positive"),
        UniqueConstraint(
            "professional_id", "service_request_id", name="uq_unlock_professional_request"
        ),
        Index("idx_contact_unlocks_request", "service_request_id"),
        Index("idx_contact_unlocks_professional", "professional_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ContactUnlock(id={self.id}, professional_id={self.professional_id}, "
            f"request_id={self.service_request_id}, exclusive={self.exclusive})>"
        )


class RefundRequest(Base):
    """
    ORM model for refund_requests table.

    At most one row per unlock, whichever path created it.
    """

    __tablename__ = "refund_requests"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=False
    )
    service_request_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("service_requests.id", ondelete="RESTRICT"),
        nullable=False,
    )
    unlock_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("contact_unlocks.id", ondelete="RESTRICT"), nullable=False
    )
    client_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_urls: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)

    # Snapshots taken at request time
    coins_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    contact_type: Mapped[ContactType] = mapped_column(
        _enum_column(ContactType, "contact_type"), nullable=False
    )
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    path: Mapped[RefundPath] = mapped_column(_enum_column(RefundPath, "refund_path"), nullable=False)
    status: Mapped[RefundStatus] = mapped_column(
        _enum_column(RefundStatus, "refund_status"),
        nullable=False,
        default=RefundStatus.PENDING,
    )

    # Resolution
    admin_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("coins_spent > 0", name="ck_refund_coins_positive"),
        CheckConstraint("refund_amount IS NULL OR refund_amount >= 0", name="ck_refund_amount"),
        UniqueConstraint("unlock_id", name="uq_refund_unlock"),
        Index("idx_refund_requests_status", "status"),
        Index("idx_refund_requests_professional", "professional_id"),
        Index("idx_refund_requests_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<RefundRequest(id={self.id}, unlock_id={self.unlock_id}, "
            f"path={self.path}, status={self.status})>"
        )


class CoinTransaction(Base):
    """
    ORM model for coin_transactions table.

    Immutable, append-only ledger of every balance change.
    """

    __tablename__ = "coin_transactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    professional_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=False
    )

    # Signed quantity: negative for debits
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "transaction_type"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(String, nullable=False)

    # Balance snapshots (denormalized for auditing)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # External reference (payment id, refund id, admin credit marker)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_transaction_quantity_non_zero"),
        CheckConstraint("balance_after >= 0", name="ck_transaction_balance_non_negative"),
        CheckConstraint(
            "balance_after = balance_before + quantity",
            name="ck_transaction_balance_consistency",
        ),
        UniqueConstraint("external_reference", name="uq_transaction_external_reference"),
        Index("idx_coin_transactions_professional", "professional_id", "created_at"),
        Index("idx_coin_transactions_type", "transaction_type"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CoinTransaction(id={self.id}, professional_id={self.professional_id}, "
            f"quantity={self.quantity}, type={self.transaction_type})>"
        )


class MarketplaceConfig(Base):
    """
    ORM model for marketplace_config table.

    Singleton row, admin-mutable. version increases on every update.
    """

    __tablename__ = "marketplace_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    unlock_cost_normal: Mapped[int] = mapped_column(Integer, nullable=False)
    unlock_cost_exclusive: Mapped[int] = mapped_column(Integer, nullable=False)
    max_professionals_per_request: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_window_days: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_marketplace_config_singleton"),
        CheckConstraint(
            "unlock_cost_normal BETWEEN 1 AND 1000", name="ck_config_cost_normal_range"
        ),
        CheckConstraint(
            "unlock_cost_exclusive BETWEEN 1 AND 1000", name="ck_config_cost_exclusive_range"
        ),
        CheckConstraint(
            "max_professionals_per_request BETWEEN 1 AND 20", name="ck_config_max_pros_range"
        ),
        CheckConstraint("refund_percentage BETWEEN 0 AND 100", name="ck_config_refund_pct_range"),
        CheckConstraint("refund_window_days BETWEEN 1 AND 30", name="ck_config_window_range"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<MarketplaceConfig(version={self.version})>"
