"""
Refund Service - Automatic and manually reviewed coin refunds.

NO DICTIONARIES - All operations use strongly typed domain models.

Two paths share one rule: an unlock gets at most one refund, whichever
path creates it, and never after its deal was closed.

Automatic path: immediate partial refund (refund_percentage of the coins
spent), the request is canceled.
Manual path: pending dispute that an administrator approves (full coins
spent credited back) or denies (no ledger effect).
"""

from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import ContactUnlock, RefundRequest, ServiceRequest
from coinbroker.exceptions import (
    AlreadyClosedError,
    AlreadyResolvedError,
    DuplicateRefundRequestError,
    InvalidInputError,
    MarketplaceError,
    ReasonTooShortError,
    RefundNotFoundError,
    RefundWindowExpiredError,
    UnlockNotFoundError,
    WriteVerificationError,
)
from coinbroker.models.api import (
    ContactType,
    RefundPath,
    RefundStatus,
    RequestStatus,
    TransactionType,
)
from coinbroker.models.domain import ConfigSnapshot, RefundData, RefundResult, RefundStats
from coinbroker.observability.tracing import add_span_attributes, trace_operation
from coinbroker.services.ledger import LedgerService
from coinbroker.services.marketplace_config import MarketplaceConfigProvider
from coinbroker.services.unlock import short_request_ref

logger = get_logger(__name__)

MIN_REASON_LENGTH = 20
AUTOMATIC_REFUND_REASON = "Automatic refund: client did not respond"


def _calculate_refund_amount(coins_spent: int, refund_percentage: int) -> int:
    """Refund owed on the automatic path, rounded half up to whole coins."""
    amount = Decimal(coins_spent) * Decimal(refund_percentage) / Decimal(100)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def refund_to_domain(refund: RefundRequest) -> RefundData:
    """Convert ORM refund to domain model."""
    return RefundData(
        refund_id=refund.id,
        unlock_id=refund.unlock_id,
        request_id=refund.service_request_id,
        professional_id=refund.professional_id,
        client_id=refund.client_id,
        path=RefundPath(refund.path),
        status=RefundStatus(refund.status),
        contact_type=ContactType(refund.contact_type),
        coins_spent=refund.coins_spent,
        refund_amount=refund.refund_amount,
        reason=refund.reason,
        admin_id=refund.admin_id,
        admin_response=refund.admin_response,
        resolved_at=refund.resolved_at,
        created_at=refund.created_at,
        evidence_urls=tuple(refund.evidence_urls or ()),
    )


class RefundService:
    """Refund settlement engine."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: LedgerService | None = None,
        config_provider: MarketplaceConfigProvider | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or LedgerService(session)
        self.config_provider = config_provider or MarketplaceConfigProvider(session)

    # ========================================================================
    # Automatic path
    # ========================================================================

    async def request_automatic_refund(self, professional_id: UUID, unlock_id: UUID) -> RefundResult:
        """
        Refund part of an unlock immediately and cancel the request.

        Raises:
            UnlockNotFoundError: unlock missing or owned by someone else
            AlreadyClosedError: deal for the unlock was closed
            RefundWindowExpiredError: refund window elapsed
            DuplicateRefundRequestError: unlock already has a refund
        """
        with trace_operation(
            "request_automatic_refund",
            professional_id=str(professional_id),
            unlock_id=str(unlock_id),
        ) as span:
            try:
                result = await self._automatic_refund(professional_id, unlock_id)
            except MarketplaceError:
                await self.session.rollback()
                raise

            add_span_attributes(
                span,
                coins_refunded=result.coins_refunded,
                new_balance=result.new_balance,
            )
            return result

    async def _automatic_refund(self, professional_id: UUID, unlock_id: UUID) -> RefundResult:
        config = await self.config_provider.get()
        request, unlock = await self._lock_refundable_unlock(professional_id, unlock_id, config)

        amount = _calculate_refund_amount(unlock.coins_spent, config.refund_percentage)
        now = datetime.now(UTC)
        refund = self._build_refund(
            unlock,
            request,
            path=RefundPath.AUTOMATIC,
            status=RefundStatus.APPROVED,
            reason=AUTOMATIC_REFUND_REASON,
            evidence_urls=[],
            now=now,
        )
        refund.refund_amount = amount
        refund.resolved_at = now
        verified = await self._insert_refund(refund)

        if amount > 0:
            entry = await self.ledger.credit(
                professional_id,
                amount,
                f"automatic refund - {short_request_ref(unlock.service_request_id)}",
                TransactionType.REFUND_CREDIT,
                external_reference=f"REFUND-{refund.id}",
            )
            new_balance = entry.balance_after
        else:
            new_balance = (await self.ledger.lock_account(professional_id)).coin_balance

        if request is not None and request.status != RequestStatus.FINALIZED:
            request.status = RequestStatus.CANCELED
            request.updated_at = now
            await self.session.flush()

        await self.session.commit()

        logger.info(
            "automatic_refund_granted",
            professional_id=str(professional_id),
            unlock_id=str(unlock_id),
            refund_id=str(refund.id),
            coins_spent=unlock.coins_spent,
            refund_percentage=config.refund_percentage,
            coins_refunded=amount,
            balance_after=new_balance,
        )

        return RefundResult(
            refund=refund_to_domain(verified),
            coins_refunded=amount,
            new_balance=new_balance,
        )

    # ========================================================================
    # Manual path
    # ========================================================================

    async def submit_refund_request(
        self,
        professional_id: UUID,
        unlock_id: UUID,
        reason: str,
        evidence_urls: list[str] | None = None,
    ) -> RefundData:
        """
        File a dispute for administrator review. No coins move yet.

        Raises:
            ReasonTooShortError: reason shorter than MIN_REASON_LENGTH after trimming
            UnlockNotFoundError: unlock missing or owned by someone else
            AlreadyClosedError: deal for the unlock was closed
            RefundWindowExpiredError: refund window elapsed
            DuplicateRefundRequestError: unlock already has a refund
        """
        reason = reason.strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise ReasonTooShortError(len(reason), MIN_REASON_LENGTH)

        try:
            config = await self.config_provider.get()
            request, unlock = await self._lock_refundable_unlock(
                professional_id, unlock_id, config
            )

            refund = self._build_refund(
                unlock,
                request,
                path=RefundPath.MANUAL,
                status=RefundStatus.PENDING,
                reason=reason,
                evidence_urls=list(evidence_urls or []),
                now=datetime.now(UTC),
            )
            verified = await self._insert_refund(refund)
            await self.session.commit()
        except MarketplaceError:
            await self.session.rollback()
            raise

        logger.info(
            "refund_request_submitted",
            professional_id=str(professional_id),
            unlock_id=str(unlock_id),
            refund_id=str(refund.id),
            evidence_count=len(refund.evidence_urls),
        )
        return refund_to_domain(verified)

    async def resolve_refund(
        self,
        refund_id: UUID,
        admin_id: UUID,
        decision: RefundStatus,
        admin_response: str | None = None,
    ) -> RefundResult:
        """
        Approve or deny a pending refund.

        Approval credits the full coins spent on the unlock.

        Raises:
            InvalidInputError: decision is not approved/denied
            RefundNotFoundError: refund doesn't exist
            AlreadyResolvedError: refund is not pending
        """
        if decision not in (RefundStatus.APPROVED, RefundStatus.DENIED):
            raise InvalidInputError(f"Decision must be approved or denied, got {decision.value}")

        try:
            refund = await self._lock_refund_for_update(refund_id)
            if refund is None:
                raise RefundNotFoundError(refund_id)
            if refund.status != RefundStatus.PENDING:
                raise AlreadyResolvedError(refund_id, RefundStatus(refund.status).value)

            coins_refunded = 0
            if decision == RefundStatus.APPROVED:
                entry = await self.ledger.credit(
                    refund.professional_id,
                    refund.coins_spent,
                    f"refund approved - {short_request_ref(refund.service_request_id)}",
                    TransactionType.REFUND_CREDIT,
                    external_reference=f"REFUND-{refund.id}",
                )
                coins_refunded = refund.coins_spent
                refund.refund_amount = coins_refunded
                new_balance = entry.balance_after
            else:
                refund.refund_amount = 0
                new_balance = (await self.ledger.get_account(refund.professional_id)).coin_balance

            refund.status = decision
            refund.admin_id = admin_id
            refund.admin_response = admin_response
            refund.resolved_at = datetime.now(UTC)

            await self.session.flush()
            await self.session.commit()
        except MarketplaceError:
            await self.session.rollback()
            raise

        logger.info(
            "refund_resolved",
            refund_id=str(refund_id),
            admin_id=str(admin_id),
            decision=decision.value,
            professional_id=str(refund.professional_id),
            coins_refunded=coins_refunded,
        )

        return RefundResult(
            refund=refund_to_domain(refund),
            coins_refunded=coins_refunded,
            new_balance=new_balance,
        )

    # ========================================================================
    # Queries
    # ========================================================================

    async def list_refunds_for_professional(self, professional_id: UUID) -> list[RefundData]:
        """Refunds filed by a professional, newest first."""
        stmt = (
            select(RefundRequest)
            .where(RefundRequest.professional_id == professional_id)
            .order_by(RefundRequest.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [refund_to_domain(refund) for refund in result.scalars().all()]

    async def list_refunds(self, status: RefundStatus | None = None) -> list[RefundData]:
        """Admin review queue, optionally filtered by status, newest first."""
        stmt = select(RefundRequest).order_by(RefundRequest.created_at.desc())
        if status is not None:
            stmt = stmt.where(RefundRequest.status == status)
        result = await self.session.execute(stmt)
        return [refund_to_domain(refund) for refund in result.scalars().all()]

    async def refund_stats(self) -> RefundStats:
        """Number of refunds per status."""
        stmt = select(RefundRequest.status, func.count()).group_by(RefundRequest.status)
        result = await self.session.execute(stmt)

        pending = approved = denied = 0
        for raw_status, count in result.all():
            status = RefundStatus(raw_status)
            if status == RefundStatus.PENDING:
                pending = count
            elif status == RefundStatus.APPROVED:
                approved = count
            elif status == RefundStatus.DENIED:
                denied = count
        return RefundStats(pending=pending, approved=approved, denied=denied)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _lock_refundable_unlock(
        self, professional_id: UUID, unlock_id: UUID, config: ConfigSnapshot
    ) -> tuple[ServiceRequest | None, ContactUnlock]:
        """
        Lock request and unlock rows and check the shared refund preconditions.

        The unlock is read once without a lock to learn its request, so the
        request row can be locked first.
        """
        unlock = await self._find_unlock(unlock_id)
        if unlock is None or unlock.professional_id != professional_id:
            raise UnlockNotFoundError(unlock_id)

        request = await self._lock_request_for_update(unlock.service_request_id)
        unlock = await self._lock_unlock_for_update(unlock_id)
        if unlock is None or not unlock.contact_unlocked:
            raise UnlockNotFoundError(unlock_id)

        if unlock.deal_closed:
            raise AlreadyClosedError(unlock_id)

        window_end = unlock.created_at + timedelta(days=config.refund_window_days)
        if datetime.now(UTC) > window_end:
            raise RefundWindowExpiredError(unlock_id, config.refund_window_days)

        existing = await self._find_refund_for_unlock(unlock_id)
        if existing is not None:
            raise DuplicateRefundRequestError(unlock_id, RefundStatus(existing.status).value)

        return request, unlock

    def _build_refund(
        self,
        unlock: ContactUnlock,
        request: ServiceRequest | None,
        path: RefundPath,
        status: RefundStatus,
        reason: str,
        evidence_urls: list[str],
        now: datetime,
    ) -> RefundRequest:
        return RefundRequest(
            id=uuid4(),
            professional_id=unlock.professional_id,
            service_request_id=unlock.service_request_id,
            unlock_id=unlock.id,
            client_id=request.client_id if request is not None else None,
            reason=reason,
            evidence_urls=evidence_urls,
            coins_spent=unlock.coins_spent,
            contact_type=ContactType.EXCLUSIVE if unlock.exclusive else ContactType.NORMAL,
            refund_amount=None,
            path=path,
            status=status,
            admin_id=None,
            admin_response=None,
            resolved_at=None,
            created_at=now,
        )

    async def _insert_refund(self, refund: RefundRequest) -> RefundRequest:
        """Insert and verify a refund row; a lost race becomes a duplicate."""
        self.session.add(refund)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateRefundRequestError(refund.unlock_id, "unknown") from e

        verified = await self.session.get(RefundRequest, refund.id)
        if verified is None:
            raise WriteVerificationError(f"Refund {refund.id} not found after insert")
        return verified

    async def _find_unlock(self, unlock_id: UUID) -> ContactUnlock | None:
        stmt = select(ContactUnlock).where(ContactUnlock.id == unlock_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_unlock_for_update(self, unlock_id: UUID) -> ContactUnlock | None:
        stmt = select(ContactUnlock).where(ContactUnlock.id == unlock_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_request_for_update(self, request_id: UUID) -> ServiceRequest | None:
        stmt = select(ServiceRequest).where(ServiceRequest.id == request_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_refund_for_unlock(self, unlock_id: UUID) -> RefundRequest | None:
        stmt = select(RefundRequest).where(RefundRequest.unlock_id == unlock_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_refund_for_update(self, refund_id: UUID) -> RefundRequest | None:
        stmt = select(RefundRequest).where(RefundRequest.id == refund_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
