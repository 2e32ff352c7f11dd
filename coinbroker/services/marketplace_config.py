"""
Marketplace Config Provider - Versioned pricing and refund policy.

NO DICTIONARIES - Reads and updates go through ConfigSnapshot / ConfigUpdate.

Callers take one snapshot at the start of an operation and use it
throughout. Records already written keep the values they were created with.
"""

from dataclasses import fields
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.config import settings
from coinbroker.db.models import MarketplaceConfig
from coinbroker.exceptions import (
    DataIntegrityError,
    InvalidInputError,
    WriteVerificationError,
)
from coinbroker.models.domain import ConfigSnapshot, ConfigUpdate

logger = get_logger(__name__)

CONFIG_ROW_ID = 1

# Accepted ranges for admin updates (inclusive)
CONFIG_RANGES: tuple[tuple[str, int, int], ...] = (
    ("unlock_cost_normal", 1, 1000),
    ("unlock_cost_exclusive", 1, 1000),
    ("max_professionals_per_request", 1, 20),
    ("refund_percentage", 0, 100),
    ("refund_window_days", 1, 30),
)


def default_snapshot() -> ConfigSnapshot:
    """Configuration used while no admin has saved one (version 0)."""
    return ConfigSnapshot(
        version=0,
        unlock_cost_normal=settings.default_unlock_cost_normal,
        unlock_cost_exclusive=settings.default_unlock_cost_exclusive,
        max_professionals_per_request=settings.default_max_professionals_per_request,
        refund_percentage=settings.default_refund_percentage,
        refund_window_days=settings.default_refund_window_days,
    )


def _row_to_snapshot(row: MarketplaceConfig) -> ConfigSnapshot:
    return ConfigSnapshot(
        version=row.version,
        unlock_cost_normal=row.unlock_cost_normal,
        unlock_cost_exclusive=row.unlock_cost_exclusive,
        max_professionals_per_request=row.max_professionals_per_request,
        refund_percentage=row.refund_percentage,
        refund_window_days=row.refund_window_days,
    )


def validate_config_update(changes: ConfigUpdate) -> None:
    """
    Check every provided value against its allowed range.

    Raises:
        InvalidInputError: a value is outside its range
    """
    for name, minimum, maximum in CONFIG_RANGES:
        value = getattr(changes, name)
        if value is None:
            continue
        if not minimum <= value <= maximum:
            raise InvalidInputError(f"{name} must be between {minimum} and {maximum}, got {value}")


class MarketplaceConfigProvider:
    """Reads and updates the singleton marketplace configuration row."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize config provider with database session."""
        self.session = session

    async def get(self) -> ConfigSnapshot:
        """Current configuration, or the settings defaults when none was saved."""
        row = await self._find_config()
        if row is None:
            return default_snapshot()
        return _row_to_snapshot(row)

    async def update(self, changes: ConfigUpdate, admin_id: UUID) -> ConfigSnapshot:
        """
        Apply a partial update and bump the version.

        Raises:
            InvalidInputError: a value is out of range or nothing was provided
            DataIntegrityError: the database rejected the row twice
        """
        validate_config_update(changes)

        provided = [
            (f.name, getattr(changes, f.name))
            for f in fields(changes)
            if getattr(changes, f.name) is not None
        ]
        if not provided:
            raise InvalidInputError("No configuration values provided")

        try:
            snapshot = await self._apply_update(provided, admin_id)
        except IntegrityError:
            # A concurrent first save inserted the row; it can be locked now
            await self.session.rollback()
            logger.warning("marketplace_config_insert_race", admin_id=str(admin_id))
            try:
                snapshot = await self._apply_update(provided, admin_id)
            except IntegrityError as e:
                await self.session.rollback()
                raise DataIntegrityError(f"Configuration rejected by database: {e}") from e

        logger.info(
            "marketplace_config_updated",
            admin_id=str(admin_id),
            version=snapshot.version,
            changed=sorted(name for name, _ in provided),
        )
        return snapshot

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _apply_update(
        self, provided: list[tuple[str, int]], admin_id: UUID
    ) -> ConfigSnapshot:
        row = await self._lock_config_for_update()
        if row is None:
            defaults = default_snapshot()
            row = MarketplaceConfig(
                id=CONFIG_ROW_ID,
                version=defaults.version,
                unlock_cost_normal=defaults.unlock_cost_normal,
                unlock_cost_exclusive=defaults.unlock_cost_exclusive,
                max_professionals_per_request=defaults.max_professionals_per_request,
                refund_percentage=defaults.refund_percentage,
                refund_window_days=defaults.refund_window_days,
            )
            self.session.add(row)

        previous_version = row.version
        for name, value in provided:
            setattr(row, name, value)
        row.version = previous_version + 1
        row.updated_by = admin_id
        row.updated_at = datetime.now(UTC)

        await self.session.flush()

        verified = await self.session.get(MarketplaceConfig, CONFIG_ROW_ID)
        if verified is None or verified.version != previous_version + 1:
            raise WriteVerificationError("Marketplace configuration not saved")

        snapshot = _row_to_snapshot(verified)
        await self.session.commit()
        return snapshot

    async def _find_config(self) -> MarketplaceConfig | None:
        stmt = select(MarketplaceConfig).where(MarketplaceConfig.id == CONFIG_ROW_ID)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_config_for_update(self) -> MarketplaceConfig | None:
        stmt = (
            select(MarketplaceConfig)
            .where(MarketplaceConfig.id == CONFIG_ROW_ID)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
