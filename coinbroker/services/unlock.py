"""
Unlock Service - Spending coins to reveal a client's contact.

NO DICTIONARIES - All operations use strongly typed domain models.

Preconditions are evaluated in a fixed order and the first failure wins:
request open, professional not banned, not already unlocked, capacity
(or exclusivity), balance. The request row is locked before the
professional row, so duplicate and capacity checks are serialised per
request.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import ContactUnlock, ServiceRequest
from coinbroker.exceptions import (
    AlreadyUnlockedError,
    CapacityReachedError,
    ExclusivityConflictError,
    InsufficientBalanceError,
    MarketplaceError,
    ProfessionalBannedError,
    RequestUnavailableError,
    WriteVerificationError,
)
from coinbroker.models.api import RequestStatus
from coinbroker.models.domain import UnlockData, UnlockResult
from coinbroker.observability.tracing import add_span_attributes, trace_operation
from coinbroker.services.ledger import LedgerService
from coinbroker.services.marketplace_config import MarketplaceConfigProvider

logger = get_logger(__name__)


def short_request_ref(request_id: UUID) -> str:
    """Human-readable request reference used in ledger descriptions."""
    return f"request #{request_id.hex[:8]}"


def unlock_to_domain(unlock: ContactUnlock) -> UnlockData:
    """Convert ORM unlock to domain model."""
    return UnlockData(
        unlock_id=unlock.id,
        professional_id=unlock.professional_id,
        request_id=unlock.service_request_id,
        exclusive=unlock.exclusive,
        contact_unlocked=unlock.contact_unlocked,
        deal_closed=unlock.deal_closed,
        coins_spent=unlock.coins_spent,
        config_version=unlock.config_version,
        created_at=unlock.created_at,
    )


class UnlockService:
    """Contact unlock engine."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: LedgerService | None = None,
        config_provider: MarketplaceConfigProvider | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or LedgerService(session)
        self.config_provider = config_provider or MarketplaceConfigProvider(session)

    async def unlock_contact(
        self, professional_id: UUID, request_id: UUID, exclusive: bool = False
    ) -> UnlockResult:
        """
        Unlock a client's contact for a professional and debit the cost.

        Raises:
            RequestUnavailableError: request missing or not open
            ProfessionalNotFoundError: professional doesn't exist
            ProfessionalBannedError: professional is banned
            AlreadyUnlockedError: professional already unlocked this request
            CapacityReachedError: request has the maximum number of unlocks
            ExclusivityConflictError: exclusive requested but others already unlocked
            InsufficientBalanceError: balance below the unlock cost
        """
        with trace_operation(
            "unlock_contact",
            professional_id=str(professional_id),
            request_id=str(request_id),
            exclusive=exclusive,
        ) as span:
            try:
                result = await self._unlock(professional_id, request_id, exclusive)
            except MarketplaceError:
                await self.session.rollback()
                raise

            add_span_attributes(
                span,
                coins_spent=result.unlock.coins_spent,
                new_balance=result.new_balance,
            )
            return result

    async def list_unlocks(self, professional_id: UUID) -> list[UnlockData]:
        """Unlocked contacts of a professional, newest first."""
        stmt = (
            select(ContactUnlock)
            .where(ContactUnlock.professional_id == professional_id)
            .order_by(ContactUnlock.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [unlock_to_domain(unlock) for unlock in result.scalars().all()]

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _unlock(
        self, professional_id: UUID, request_id: UUID, exclusive: bool
    ) -> UnlockResult:
        config = await self.config_provider.get()

        request = await self._lock_request_for_update(request_id)
        if request is None:
            raise RequestUnavailableError(request_id, None)
        if request.status != RequestStatus.OPEN:
            raise RequestUnavailableError(request_id, RequestStatus(request.status).value)

        account = await self.ledger.lock_account(professional_id)
        if account.banned:
            raise ProfessionalBannedError(professional_id, account.ban_reason)

        existing = await self._find_unlock(professional_id, request_id)
        if existing is not None:
            raise AlreadyUnlockedError(professional_id, request_id)

        unlock_count = await self._count_unlocks(request_id)
        if exclusive:
            if unlock_count > 0:
                raise ExclusivityConflictError(request_id, unlock_count)
        elif unlock_count >= config.max_professionals_per_request:
            raise CapacityReachedError(request_id, config.max_professionals_per_request)

        cost = config.unlock_cost(exclusive)
        if account.coin_balance < cost:
            raise InsufficientBalanceError(account.coin_balance, cost)

        unlock = ContactUnlock(
            id=uuid4(),
            professional_id=professional_id,
            service_request_id=request_id,
            exclusive=exclusive,
            contact_unlocked=True,
            deal_closed=False,
            deal_closed_at=None,
            coins_spent=cost,
            config_version=config.version,
            created_at=datetime.now(UTC),
        )
        self.session.add(unlock)

        try:
            await self.session.flush()
        except IntegrityError as e:
            # Concurrent unlock of the same pair won the race
            raise AlreadyUnlockedError(professional_id, request_id) from e

        verified = await self.session.get(ContactUnlock, unlock.id)
        if verified is None:
            raise WriteVerificationError(f"Unlock {unlock.id} not found after insert")

        kind = "exclusive" if exclusive else "normal"
        entry = await self.ledger.debit(
            professional_id,
            cost,
            f"contact unlock ({kind}) - {short_request_ref(request_id)}",
        )

        if exclusive:
            request.status = RequestStatus.IN_PROGRESS
            await self.session.flush()

        await self.session.commit()

        logger.info(
            "contact_unlocked",
            professional_id=str(professional_id),
            request_id=str(request_id),
            unlock_id=str(unlock.id),
            exclusive=exclusive,
            coins_spent=cost,
            config_version=config.version,
            balance_after=entry.balance_after,
        )

        return UnlockResult(
            unlock=unlock_to_domain(verified),
            new_balance=entry.balance_after,
            request_status=RequestStatus(request.status),
        )

    async def _lock_request_for_update(self, request_id: UUID) -> ServiceRequest | None:
        """Lock service request row for update (SELECT FOR UPDATE)."""
        stmt = select(ServiceRequest).where(ServiceRequest.id == request_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_unlock(self, professional_id: UUID, request_id: UUID) -> ContactUnlock | None:
        stmt = select(ContactUnlock).where(
            ContactUnlock.professional_id == professional_id,
            ContactUnlock.service_request_id == request_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _count_unlocks(self, request_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(ContactUnlock)
            .where(ContactUnlock.service_request_id == request_id)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
