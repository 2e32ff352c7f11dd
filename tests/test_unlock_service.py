"""
Tests for UnlockService.

Covers the precondition order, cost snapshots and the exclusive flow.
"""

from contextlib import ExitStack
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from coinbroker.db.models import CoinTransaction, ContactUnlock
from coinbroker.exceptions import (
    AlreadyUnlockedError,
    CapacityReachedError,
    ExclusivityConflictError,
    InsufficientBalanceError,
    ProfessionalBannedError,
    ProfessionalNotFoundError,
    RequestUnavailableError,
)
from coinbroker.models.api import RequestStatus
from coinbroker.models.domain import ConfigSnapshot
from coinbroker.services.unlock import UnlockService
from tests.factories import (
    added_rows,
    create_config,
    create_config_provider,
    create_db_session,
    create_mock_professional,
    create_mock_request,
    create_mock_unlock,
)


class UnlockHarness:
    """UnlockService with its row lookups patched to fixed rows."""

    def __init__(
        self,
        professional: MagicMock | None,
        request: MagicMock | None,
        existing_unlock: MagicMock | None = None,
        unlock_count: int = 0,
        config: ConfigSnapshot | None = None,
    ) -> None:
        self.professional = professional
        self.request = request
        self.session = create_db_session(*([professional] if professional else []))
        self.service = UnlockService(
            self.session, config_provider=create_config_provider(config or create_config())
        )
        self._stack = ExitStack()
        self.lock_request = self._patch(self.service, "_lock_request_for_update", request)
        self.find_unlock = self._patch(self.service, "_find_unlock", existing_unlock)
        self.count_unlocks = self._patch(self.service, "_count_unlocks", unlock_count)
        self.lock_professional = self._patch(
            self.service.ledger, "_lock_professional_for_update", professional
        )

    def _patch(self, target: object, name: str, value: object) -> AsyncMock:
        mock = self._stack.enter_context(
            patch.object(target, name, new_callable=AsyncMock)
        )
        mock.return_value = value
        return mock

    def __enter__(self) -> "UnlockHarness":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._stack.close()


class TestUnlockSuccess:
    """Tests for successful unlocks."""

    async def test_normal_unlock_debits_normal_cost(self) -> None:
        """A professional with 100 coins unlocks an open request for 15."""
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            result = await harness.service.unlock_contact(professional.id, request.id)

        assert result.new_balance == 85
        assert result.unlock.coins_spent == 15
        assert result.unlock.exclusive is False
        assert result.unlock.contact_unlocked is True
        assert result.request_status == RequestStatus.OPEN
        assert professional.coin_balance == 85
        harness.session.commit.assert_awaited_once()

    async def test_unlock_writes_one_record_and_one_debit(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            await harness.service.unlock_contact(professional.id, request.id)

        unlocks = added_rows(harness.session, ContactUnlock)
        debits = added_rows(harness.session, CoinTransaction)
        assert len(unlocks) == 1
        assert len(debits) == 1
        assert debits[0].quantity == -15
        assert debits[0].description == (
            f"contact unlock (normal) - request #{request.id.hex[:8]}"
        )

    async def test_exclusive_unlock_moves_request_in_progress(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            result = await harness.service.unlock_contact(
                professional.id, request.id, exclusive=True
            )

        assert result.unlock.coins_spent == 50
        assert result.new_balance == 50
        assert result.request_status == RequestStatus.IN_PROGRESS
        assert request.status == RequestStatus.IN_PROGRESS

    async def test_unlock_snapshots_config_version_and_cost(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()
        config = create_config(version=4, unlock_cost_normal=22)

        with UnlockHarness(professional, request, config=config) as harness:
            result = await harness.service.unlock_contact(professional.id, request.id)

        assert result.unlock.coins_spent == 22
        assert result.unlock.config_version == 4

    async def test_last_slot_is_available(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request, unlock_count=3) as harness:
            result = await harness.service.unlock_contact(professional.id, request.id)

        assert result.new_balance == 85


class TestUnlockRejections:
    """Tests for each precondition."""

    async def test_missing_request_is_unavailable(self) -> None:
        professional = create_mock_professional()

        with UnlockHarness(professional, None) as harness:
            with pytest.raises(RequestUnavailableError) as exc_info:
                await harness.service.unlock_contact(professional.id, create_mock_request().id)

        assert exc_info.value.status is None

    @pytest.mark.parametrize(
        "status",
        [RequestStatus.IN_PROGRESS, RequestStatus.FINALIZED, RequestStatus.CANCELED],
    )
    async def test_request_not_open_is_unavailable(self, status: RequestStatus) -> None:
        professional = create_mock_professional()
        request = create_mock_request(status=status)

        with UnlockHarness(professional, request) as harness:
            with pytest.raises(RequestUnavailableError) as exc_info:
                await harness.service.unlock_contact(professional.id, request.id)

        assert exc_info.value.status == status.value

    async def test_unknown_professional(self) -> None:
        request = create_mock_request()

        with UnlockHarness(None, request) as harness:
            with pytest.raises(ProfessionalNotFoundError):
                await harness.service.unlock_contact(create_mock_professional().id, request.id)

    async def test_banned_professional_cannot_unlock(self) -> None:
        professional = create_mock_professional(banned=True, ban_reason="Unethical behaviour")
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            with pytest.raises(ProfessionalBannedError):
                await harness.service.unlock_contact(professional.id, request.id)

        harness.session.add.assert_not_called()

    async def test_second_unlock_is_rejected_without_debit(self) -> None:
        """Unlocking the same request twice never charges twice."""
        professional = create_mock_professional(coin_balance=85)
        request = create_mock_request()
        existing = create_mock_unlock(professional.id, request.id)

        with UnlockHarness(professional, request, existing_unlock=existing) as harness:
            with pytest.raises(AlreadyUnlockedError):
                await harness.service.unlock_contact(professional.id, request.id)

        assert professional.coin_balance == 85
        harness.session.add.assert_not_called()
        harness.session.commit.assert_not_called()
        harness.session.rollback.assert_awaited()

    async def test_fifth_professional_hits_capacity(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request, unlock_count=4) as harness:
            with pytest.raises(CapacityReachedError) as exc_info:
                await harness.service.unlock_contact(professional.id, request.id)

        assert exc_info.value.limit == 4
        assert professional.coin_balance == 100

    async def test_exclusive_requires_no_previous_unlocks(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request, unlock_count=1) as harness:
            with pytest.raises(ExclusivityConflictError) as exc_info:
                await harness.service.unlock_contact(professional.id, request.id, exclusive=True)

        assert exc_info.value.existing_unlocks == 1

    async def test_insufficient_balance(self) -> None:
        professional = create_mock_professional(coin_balance=10)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            with pytest.raises(InsufficientBalanceError) as exc_info:
                await harness.service.unlock_contact(professional.id, request.id)

        assert exc_info.value.balance == 10
        assert exc_info.value.required == 15
        harness.session.add.assert_not_called()

    async def test_exclusive_insufficient_balance(self) -> None:
        professional = create_mock_professional(coin_balance=49)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            with pytest.raises(InsufficientBalanceError):
                await harness.service.unlock_contact(professional.id, request.id, exclusive=True)

        assert request.status == RequestStatus.OPEN

    async def test_lost_race_on_unique_pair_maps_to_already_unlocked(self) -> None:
        professional = create_mock_professional(coin_balance=100)
        request = create_mock_request()

        with UnlockHarness(professional, request) as harness:
            harness.session.flush = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("uq_unlock_professional_request"))
            )
            with pytest.raises(AlreadyUnlockedError):
                await harness.service.unlock_contact(professional.id, request.id)

        assert professional.coin_balance == 100
        harness.session.commit.assert_not_called()


class TestPreconditionOrder:
    """First failing precondition wins."""

    async def test_unavailable_before_already_unlocked(self) -> None:
        professional = create_mock_professional()
        request = create_mock_request(status=RequestStatus.FINALIZED)
        existing = create_mock_unlock(professional.id, request.id)

        with UnlockHarness(professional, request, existing_unlock=existing) as harness:
            with pytest.raises(RequestUnavailableError):
                await harness.service.unlock_contact(professional.id, request.id)

    async def test_already_unlocked_before_capacity(self) -> None:
        professional = create_mock_professional()
        request = create_mock_request()
        existing = create_mock_unlock(professional.id, request.id)

        with UnlockHarness(
            professional, request, existing_unlock=existing, unlock_count=4
        ) as harness:
            with pytest.raises(AlreadyUnlockedError):
                await harness.service.unlock_contact(professional.id, request.id)

    async def test_capacity_before_balance(self) -> None:
        professional = create_mock_professional(coin_balance=0)
        request = create_mock_request()

        with UnlockHarness(professional, request, unlock_count=4) as harness:
            with pytest.raises(CapacityReachedError):
                await harness.service.unlock_contact(professional.id, request.id)


class TestListUnlocks:
    """Tests for listing a professional's unlocks."""

    async def test_list_unlocks_maps_rows(self) -> None:
        professional = create_mock_professional()
        request = create_mock_request()
        unlock = create_mock_unlock(professional.id, request.id, exclusive=True, coins_spent=50)
        session = create_db_session()
        result = MagicMock()
        result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=[unlock])))
        session.execute = AsyncMock(return_value=result)

        unlocks = await UnlockService(session).list_unlocks(professional.id)

        assert len(unlocks) == 1
        assert unlocks[0].unlock_id == unlock.id
        assert unlocks[0].request_id == request.id
        assert unlocks[0].exclusive is True
        assert unlocks[0].coins_spent == 50
