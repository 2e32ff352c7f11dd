"""
Tests for Admin API routes.

Tests route handler functions directly with mocked services.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi import HTTPException

from coinbroker.api.dependencies import AdminActor
from coinbroker.exceptions import (
    AlreadyResolvedError,
    InvalidInputError,
    ProfessionalNotFoundError,
)
from coinbroker.models.api import (
    AdminCreditRequest,
    BanRequest,
    ContactType,
    MarketplaceConfigUpdateRequest,
    RefundPath,
    RefundStatus,
    ResolveRefundRequest,
    TransactionType,
)
from coinbroker.models.domain import (
    ConfigUpdate,
    LedgerEntryData,
    ProfessionalData,
    RefundData,
    RefundResult,
    RefundStats,
)
from tests.factories import create_config


def _pending_refund(status: RefundStatus = RefundStatus.PENDING, amount: int | None = None) -> RefundData:
    return RefundData(
        refund_id=uuid4(),
        unlock_id=uuid4(),
        request_id=uuid4(),
        professional_id=uuid4(),
        client_id=uuid4(),
        path=RefundPath.MANUAL,
        status=status,
        contact_type=ContactType.EXCLUSIVE,
        coins_spent=50,
        refund_amount=amount,
        reason="Client asked me to pay a fee outside the app",
        admin_id=None,
        admin_response=None,
        resolved_at=None,
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def admin(admin_id: UUID) -> AdminActor:
    return AdminActor(admin_id=admin_id)


class TestRefundReview:
    """Tests for the refund review queue."""

    async def test_list_refunds_includes_stats(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import list_refunds

        with patch("coinbroker.api.admin_routes.RefundService") as MockService:
            MockService.return_value.list_refunds = AsyncMock(return_value=[_pending_refund()])
            MockService.return_value.refund_stats = AsyncMock(
                return_value=RefundStats(pending=1, approved=3, denied=2)
            )

            result = await list_refunds(RefundStatus.PENDING, db_session, admin)

        assert len(result.refunds) == 1
        assert result.stats.total == 6
        MockService.return_value.list_refunds.assert_awaited_once_with(RefundStatus.PENDING)

    async def test_approve_refund(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import resolve_refund

        resolved = _pending_refund(status=RefundStatus.APPROVED, amount=50)
        with patch("coinbroker.api.admin_routes.RefundService") as MockService:
            MockService.return_value.resolve_refund = AsyncMock(
                return_value=RefundResult(refund=resolved, coins_refunded=50, new_balance=60)
            )

            result = await resolve_refund(
                resolved.refund_id,
                ResolveRefundRequest(decision="approved", admin_response="Evidence checks out"),
                db_session,
                admin,
            )

        assert result.coins_refunded == 50
        assert result.message == "Refund approved, 50 coins returned"
        MockService.return_value.resolve_refund.assert_awaited_once_with(
            resolved.refund_id, admin.admin_id, RefundStatus.APPROVED, "Evidence checks out"
        )

    async def test_deny_refund(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import resolve_refund

        resolved = _pending_refund(status=RefundStatus.DENIED, amount=0)
        with patch("coinbroker.api.admin_routes.RefundService") as MockService:
            MockService.return_value.resolve_refund = AsyncMock(
                return_value=RefundResult(refund=resolved, coins_refunded=0, new_balance=10)
            )

            result = await resolve_refund(
                resolved.refund_id, ResolveRefundRequest(decision="denied"), db_session, admin
            )

        assert result.message == "Refund denied"
        assert result.new_balance == 10

    async def test_resolving_twice_is_conflict(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import resolve_refund

        refund_id = uuid4()
        with patch("coinbroker.api.admin_routes.RefundService") as MockService:
            MockService.return_value.resolve_refund = AsyncMock(
                side_effect=AlreadyResolvedError(refund_id, "approved")
            )

            with pytest.raises(HTTPException) as exc_info:
                await resolve_refund(
                    refund_id, ResolveRefundRequest(decision="denied"), db_session, admin
                )

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail["error"] == "already_resolved"

    def test_decision_must_be_final(self) -> None:
        with pytest.raises(ValueError):
            ResolveRefundRequest(decision="pending")


class TestProfessionalAdministration:
    """Tests for admin credits and bans."""

    async def test_grant_coins(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import grant_coins

        professional_id = uuid4()
        entry = LedgerEntryData(
            transaction_id=uuid4(),
            professional_id=professional_id,
            quantity=30,
            transaction_type=TransactionType.ADMIN_CREDIT,
            description="Goodwill credit",
            balance_before=20,
            balance_after=50,
            external_reference="ADMIN-CREDIT-1",
            created_at=datetime.now(UTC),
        )
        with patch("coinbroker.api.admin_routes.LedgerService") as MockService:
            MockService.return_value.grant_coins = AsyncMock(return_value=entry)

            result = await grant_coins(
                professional_id,
                AdminCreditRequest(coins=30, reason="Goodwill credit"),
                db_session,
                admin,
            )

        assert result.balance_after == 50
        MockService.return_value.grant_coins.assert_awaited_once_with(
            professional_id, 30, admin.admin_id, "Goodwill credit"
        )

    async def test_ban_professional(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import set_ban

        professional_id = uuid4()
        with patch("coinbroker.api.admin_routes.ModerationService") as MockService:
            MockService.return_value.set_ban = AsyncMock(
                return_value=ProfessionalData(
                    professional_id=professional_id,
                    coin_balance=40,
                    banned=True,
                    ban_reason="Unethical behaviour",
                    created_at=datetime.now(UTC),
                )
            )

            result = await set_ban(professional_id, BanRequest(banned=True), db_session, admin)

        assert result.banned is True
        assert result.ban_reason == "Unethical behaviour"

    async def test_ban_unknown_professional(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import set_ban

        professional_id = uuid4()
        with patch("coinbroker.api.admin_routes.ModerationService") as MockService:
            MockService.return_value.set_ban = AsyncMock(
                side_effect=ProfessionalNotFoundError(professional_id)
            )

            with pytest.raises(HTTPException) as exc_info:
                await set_ban(professional_id, BanRequest(banned=True), db_session, admin)

        assert exc_info.value.status_code == 404


class TestMarketplaceConfig:
    """Tests for admin configuration endpoints."""

    async def test_get_config(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import get_config

        with patch("coinbroker.api.admin_routes.MarketplaceConfigProvider") as MockProvider:
            MockProvider.return_value.get = AsyncMock(return_value=create_config(version=5))

            result = await get_config(db_session, admin)

        assert result.version == 5

    async def test_update_config_passes_only_given_fields(
        self, db_session: AsyncMock, admin: AdminActor
    ) -> None:
        from coinbroker.api.admin_routes import update_config

        with patch("coinbroker.api.admin_routes.MarketplaceConfigProvider") as MockProvider:
            MockProvider.return_value.update = AsyncMock(
                return_value=create_config(version=1, refund_percentage=40)
            )

            result = await update_config(
                MarketplaceConfigUpdateRequest(refund_percentage=40), db_session, admin
            )

        assert result.version == 1
        assert result.refund_percentage == 40
        MockProvider.return_value.update.assert_awaited_once_with(
            ConfigUpdate(refund_percentage=40), admin.admin_id
        )

    async def test_empty_update_is_bad_request(self, db_session: AsyncMock, admin: AdminActor) -> None:
        from coinbroker.api.admin_routes import update_config

        with patch("coinbroker.api.admin_routes.MarketplaceConfigProvider") as MockProvider:
            MockProvider.return_value.update = AsyncMock(
                side_effect=InvalidInputError("No configuration values provided")
            )

            with pytest.raises(HTTPException) as exc_info:
                await update_config(MarketplaceConfigUpdateRequest(), db_session, admin)

        assert exc_info.value.status_code == 400

    def test_out_of_range_update_fails_validation(self) -> None:
        with pytest.raises(ValueError):
            MarketplaceConfigUpdateRequest(refund_percentage=150)
