"""
Deal Outcome Service - Recording that a professional was hired.

NO DICTIONARIES - All operations use strongly typed domain models.

Closing a deal is irreversible and mutually exclusive with a refund for
the same unlock.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import ContactUnlock, RefundRequest, ServiceRequest
from coinbroker.exceptions import (
    AlreadyClosedError,
    MarketplaceError,
    NoAccessError,
    RefundAlreadyUsedError,
    RequestUnavailableError,
    ServiceRequestNotFoundError,
)
from coinbroker.models.api import RequestStatus
from coinbroker.models.domain import DealClosureData
from coinbroker.observability.tracing import trace_operation

logger = get_logger(__name__)

CLOSABLE_STATUSES = (RequestStatus.OPEN, RequestStatus.IN_PROGRESS)


class DealOutcomeService:
    """Deal outcome resolver."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def mark_deal_closed(self, professional_id: UUID, request_id: UUID) -> DealClosureData:
        """
        Mark the deal for an unlocked request as closed and finalize the request.

        Raises:
            NoAccessError: professional never unlocked this request
            AlreadyClosedError: deal already marked closed
            RefundAlreadyUsedError: a refund exists for the unlock
            RequestUnavailableError: request is canceled or was finalized with someone else
        """
        with trace_operation(
            "mark_deal_closed",
            professional_id=str(professional_id),
            request_id=str(request_id),
        ):
            try:
                return await self._close(professional_id, request_id)
            except MarketplaceError:
                await self.session.rollback()
                raise

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _close(self, professional_id: UUID, request_id: UUID) -> DealClosureData:
        # Lock order: request, then unlock
        request = await self._lock_request_for_update(request_id)
        unlock = await self._lock_unlock_for_update(professional_id, request_id)

        if unlock is None or not unlock.contact_unlocked:
            raise NoAccessError(professional_id, request_id)
        if unlock.deal_closed:
            raise AlreadyClosedError(unlock.id)

        refund = await self._find_refund_for_unlock(unlock.id)
        if refund is not None:
            raise RefundAlreadyUsedError(unlock.id, refund.id)

        if request is None:
            raise ServiceRequestNotFoundError(request_id)
        if request.status not in CLOSABLE_STATUSES and not (
            request.status == RequestStatus.FINALIZED
            and request.contracted_professional_id == professional_id
        ):
            # canceled is terminal; finalized only for the contracted professional
            raise RequestUnavailableError(request_id, RequestStatus(request.status).value)

        closed_at = datetime.now(UTC)
        unlock.deal_closed = True
        unlock.deal_closed_at = closed_at
        request.status = RequestStatus.FINALIZED
        request.contracted_professional_id = professional_id
        request.updated_at = closed_at

        await self.session.flush()
        await self.session.commit()

        logger.info(
            "deal_closed",
            professional_id=str(professional_id),
            request_id=str(request_id),
            unlock_id=str(unlock.id),
        )

        return DealClosureData(
            unlock_id=unlock.id,
            request_id=request_id,
            contracted_professional_id=professional_id,
            request_status=RequestStatus.FINALIZED,
            closed_at=closed_at,
        )

    async def _lock_request_for_update(self, request_id: UUID) -> ServiceRequest | None:
        stmt = select(ServiceRequest).where(ServiceRequest.id == request_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_unlock_for_update(
        self, professional_id: UUID, request_id: UUID
    ) -> ContactUnlock | None:
        stmt = (
            select(ContactUnlock)
            .where(
                ContactUnlock.professional_id == professional_id,
                ContactUnlock.service_request_id == request_id,
            )
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_refund_for_unlock(self, unlock_id: UUID) -> RefundRequest | None:
        stmt = select(RefundRequest).where(RefundRequest.unlock_id == unlock_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
