"""
Hypothesis Property-Based Tests for the coin ledger and refund arithmetic.

Tests balance and refund invariants without a database.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coinbroker.exceptions import InsufficientBalanceError, InvalidInputError
from coinbroker.models.api import TransactionType
from coinbroker.services.ledger import CREDIT_TYPES, LedgerService
from coinbroker.services.refunds import _calculate_refund_amount
from tests.factories import create_db_session, create_mock_professional

# ============================================================================
# Hypothesis Strategies
# ============================================================================

balances = st.integers(min_value=0, max_value=100_000)
positive_amounts = st.integers(min_value=1, max_value=100_000)
percentages = st.integers(min_value=0, max_value=100)
credit_types = st.sampled_from(sorted(CREDIT_TYPES, key=lambda t: t.value))


# ============================================================================
# Ledger balance properties
# ============================================================================


class TestDebitProperties:
    """Property-based tests for LedgerService.debit."""

    @given(balances, positive_amounts)
    @settings(max_examples=50)
    @pytest.mark.asyncio
    async def test_balance_never_goes_negative(self, balance, amount):
        professional = create_mock_professional(coin_balance=balance)
        service = LedgerService(create_db_session(professional))

        with patch.object(
            service, "_lock_professional_for_update", new_callable=AsyncMock
        ) as mock_lock:
            mock_lock.return_value = professional
            try:
                entry = await service.debit(professional.id, amount, "unlock")
            except InsufficientBalanceError:
                assert amount > balance
                assert professional.coin_balance == balance
            else:
                assert amount <= balance
                assert entry.balance_after == balance - amount

        assert professional.coin_balance >= 0

    @given(st.integers(max_value=0))
    @settings(max_examples=30)
    @pytest.mark.asyncio
    async def test_non_positive_debit_is_invalid(self, amount):
        service = LedgerService(create_db_session())

        with pytest.raises(InvalidInputError):
            await service.debit(uuid4(), amount, "unlock")


class TestCreditProperties:
    """Property-based tests for LedgerService.credit."""

    @given(balances, positive_amounts, credit_types)
    @settings(max_examples=50)
    @pytest.mark.asyncio
    async def test_entry_matches_balance_change(self, balance, amount, transaction_type):
        professional = create_mock_professional(coin_balance=balance)
        service = LedgerService(create_db_session(professional))

        with patch.object(
            service, "_lock_professional_for_update", new_callable=AsyncMock
        ) as mock_lock:
            mock_lock.return_value = professional
            entry = await service.credit(professional.id, amount, "credit", transaction_type)

        assert entry.balance_after == entry.balance_before + entry.quantity
        assert entry.balance_after == professional.coin_balance
        assert entry.quantity == amount

    @given(positive_amounts)
    @settings(max_examples=30)
    @pytest.mark.asyncio
    async def test_usage_debit_is_never_a_credit(self, amount):
        service = LedgerService(create_db_session())

        with pytest.raises(InvalidInputError):
            await service.credit(uuid4(), amount, "credit", TransactionType.USAGE_DEBIT)


# ============================================================================
# Refund arithmetic properties
# ============================================================================


class TestRefundAmountProperties:
    """Property-based tests for _calculate_refund_amount."""

    @given(st.integers(min_value=0, max_value=10_000), percentages)
    @settings(max_examples=100)
    def test_refund_within_coins_spent(self, coins_spent, percentage):
        amount = _calculate_refund_amount(coins_spent, percentage)
        assert 0 <= amount <= coins_spent

    @given(st.integers(min_value=0, max_value=10_000), percentages)
    @settings(max_examples=100)
    def test_refund_is_nearest_whole_coin(self, coins_spent, percentage):
        amount = _calculate_refund_amount(coins_spent, percentage)
        exact_hundredths = coins_spent * percentage
        assert abs(amount * 100 - exact_hundredths) <= 50

    @given(st.integers(min_value=0, max_value=10_000))
    @settings(max_examples=50)
    def test_full_and_zero_percentages(self, coins_spent):
        assert _calculate_refund_amount(coins_spent, 100) == coins_spent
        assert _calculate_refund_amount(coins_spent, 0) == 0
