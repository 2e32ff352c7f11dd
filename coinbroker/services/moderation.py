"""
Moderation Service - Banning and unbanning professionals.

NO DICTIONARIES - All operations use strongly typed domain models.

A ban only blocks new unlocks. Existing unlocks, refunds and ledger
history are left untouched.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import Professional
from coinbroker.exceptions import ProfessionalNotFoundError, WriteVerificationError
from coinbroker.models.domain import ProfessionalData
from coinbroker.services.ledger import professional_to_domain

logger = get_logger(__name__)

DEFAULT_BAN_REASON = "Unethical behaviour"


class ModerationService:
    """Admin moderation decisions on professional accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def set_ban(
        self,
        professional_id: UUID,
        banned: bool,
        admin_id: UUID,
        reason: str | None = None,
    ) -> ProfessionalData:
        """
        Ban or unban a professional.

        Raises:
            ProfessionalNotFoundError: professional doesn't exist
        """
        stmt = select(Professional).where(Professional.id == professional_id).with_for_update()
        result = await self.session.execute(stmt)
        professional = result.scalar_one_or_none()
        if professional is None:
            raise ProfessionalNotFoundError(professional_id)

        now = datetime.now(UTC)
        professional.banned = banned
        professional.banned_at = now if banned else None
        professional.ban_reason = (reason or DEFAULT_BAN_REASON) if banned else None
        professional.updated_at = now

        await self.session.flush()

        verified = await self.session.get(Professional, professional_id)
        if verified is None or verified.banned != banned:
            raise WriteVerificationError(f"Ban state of {professional_id} not saved")

        await self.session.commit()

        logger.info(
            "professional_banned" if banned else "professional_unbanned",
            professional_id=str(professional_id),
            admin_id=str(admin_id),
            reason=professional.ban_reason,
        )
        return professional_to_domain(verified)
