"""
Ledger Service - Coin balances and the append-only transaction log.

NO DICTIONARIES - All operations use strongly typed domain models.

This is the only component allowed to write Professional.coin_balance.
debit() and credit() never commit: the calling service owns the
transaction, so a composite operation (unlock = record + debit) either
commits as a whole or not at all.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import CoinTransaction, Professional
from coinbroker.exceptions import (
    DataIntegrityError,
    IdempotencyConflictError,
    InsufficientBalanceError,
    InvalidInputError,
    ProfessionalNotFoundError,
    WriteVerificationError,
)
from coinbroker.models.api import TransactionType
from coinbroker.models.domain import LedgerEntryData, ProfessionalData

logger = get_logger(__name__)

CREDIT_TYPES = frozenset(
    {TransactionType.PURCHASE, TransactionType.ADMIN_CREDIT, TransactionType.REFUND_CREDIT}
)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def professional_to_domain(professional: Professional) -> ProfessionalData:
    """Convert ORM professional to domain model."""
    return ProfessionalData(
        professional_id=professional.id,
        coin_balance=professional.coin_balance,
        banned=professional.banned,
        ban_reason=professional.ban_reason,
        created_at=professional.created_at,
    )


def _entry_to_domain(entry: CoinTransaction) -> LedgerEntryData:
    """Convert ORM transaction to domain model."""
    return LedgerEntryData(
        transaction_id=entry.id,
        professional_id=entry.professional_id,
        quantity=entry.quantity,
        transaction_type=TransactionType(entry.transaction_type),
        description=entry.description,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        external_reference=entry.external_reference,
        created_at=entry.created_at,
    )


class LedgerService:
    """
    Ledger service with write verification.

    All balance mutations follow the pattern:
    1. Lock the professional row (SELECT FOR UPDATE)
    2. Append a transaction log entry with before/after snapshot
    3. Update the balance and flush
    4. Read back and verify
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger service with database session."""
        self.session = session

    # ========================================================================
    # Balance mutations (caller commits)
    # ========================================================================

    async def debit(self, professional_id: UUID, amount: int, reason: str) -> LedgerEntryData:
        """
        Remove coins from a professional's balance.

        Raises:
            InvalidInputError: amount is not positive or reason is empty
            ProfessionalNotFoundError: professional doesn't exist
            InsufficientBalanceError: amount exceeds current balance
        """
        if amount <= 0:
            raise InvalidInputError(f"Debit amount must be positive: {amount}")
        if not reason:
            raise InvalidInputError("Debit reason cannot be empty")

        professional = await self._lock_professional_for_update(professional_id)
        if professional is None:
            raise ProfessionalNotFoundError(professional_id)

        if amount > professional.coin_balance:
            raise InsufficientBalanceError(professional.coin_balance, amount)

        return await self._append_entry(
            professional,
            quantity=-amount,
            transaction_type=TransactionType.USAGE_DEBIT,
            description=reason,
            external_reference=None,
        )

    async def credit(
        self,
        professional_id: UUID,
        amount: int,
        reason: str,
        transaction_type: TransactionType,
        external_reference: str | None = None,
    ) -> LedgerEntryData:
        """
        Add coins to a professional's balance.

        Raises:
            InvalidInputError: amount is not positive, reason empty, or type is a debit type
            IdempotencyConflictError: external_reference was already recorded
            ProfessionalNotFoundError: professional doesn't exist
        """
        if amount <= 0:
            raise InvalidInputError(f"Credit amount must be positive: {amount}")
        if not reason:
            raise InvalidInputError("Credit reason cannot be empty")
        if transaction_type not in CREDIT_TYPES:
            raise InvalidInputError(f"Not a credit transaction type: {transaction_type.value}")

        if external_reference:
            existing = await self._find_entry_by_reference(external_reference)
            if existing is not None:
                raise IdempotencyConflictError(existing.id)

        professional = await self._lock_professional_for_update(professional_id)
        if professional is None:
            raise ProfessionalNotFoundError(professional_id)

        try:
            return await self._append_entry(
                professional,
                quantity=amount,
                transaction_type=transaction_type,
                description=reason,
                external_reference=external_reference,
            )
        except IntegrityError as e:
            # Concurrent credit with the same reference won the race
            await self.session.rollback()
            existing = (
                await self._find_entry_by_reference(external_reference)
                if external_reference
                else None
            )
            if existing is not None:
                raise IdempotencyConflictError(existing.id) from e
            raise DataIntegrityError(f"Credit rejected by database: {e}") from e

    # ========================================================================
    # Entry points for collaborators (these commit)
    # ========================================================================

    async def record_purchase(
        self,
        professional_id: UUID,
        coins: int,
        payment_reference: str,
        description: str | None = None,
    ) -> LedgerEntryData:
        """
        Credit coins bought through the payment provider.

        The payment reference doubles as idempotency key: webhook retries
        fail with IdempotencyConflictError instead of crediting twice.
        """
        entry = await self.credit(
            professional_id,
            coins,
            description or f"Purchase of {coins} coins",
            TransactionType.PURCHASE,
            external_reference=payment_reference,
        )
        await self.session.commit()

        logger.info(
            "coins_purchased",
            professional_id=str(professional_id),
            coins=coins,
            payment_reference=payment_reference,
            balance_after=entry.balance_after,
        )
        return entry

    async def grant_coins(
        self,
        professional_id: UUID,
        coins: int,
        admin_id: UUID,
        reason: str | None = None,
    ) -> LedgerEntryData:
        """Credit coins manually on behalf of an administrator."""
        entry = await self.credit(
            professional_id,
            coins,
            reason or "Manual credit by administrator",
            TransactionType.ADMIN_CREDIT,
            external_reference=f"ADMIN-CREDIT-{uuid4()}",
        )
        await self.session.commit()

        logger.info(
            "coins_granted",
            professional_id=str(professional_id),
            admin_id=str(admin_id),
            coins=coins,
            balance_after=entry.balance_after,
        )
        return entry

    async def open_account(self, professional_id: UUID) -> ProfessionalData:
        """
        Get existing professional account or create one with a zero balance.

        Called by the registration collaborator; safe to repeat.
        """
        professional = await self._find_professional(professional_id)
        if professional is not None:
            return professional_to_domain(professional)

        now = _utc_now()
        new_professional = Professional(
            id=professional_id,
            coin_balance=0,
            banned=False,
            banned_at=None,
            ban_reason=None,
            created_at=now,
            updated_at=now,
        )
        self.session.add(new_professional)

        try:
            await self.session.flush()
        except IntegrityError:
            # Race condition - account created by another request
            await self.session.rollback()
            professional = await self._find_professional(professional_id)
            if professional is None:
                raise WriteVerificationError("Account creation failed due to race condition")
            return professional_to_domain(professional)

        verified = await self.session.get(Professional, professional_id)
        if verified is None:
            raise WriteVerificationError(f"Professional {professional_id} not found after insert")

        await self.session.commit()
        logger.info("professional_account_opened", professional_id=str(professional_id))

        return professional_to_domain(verified)

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_account(self, professional_id: UUID) -> ProfessionalData:
        """
        Get professional account.

        Raises:
            ProfessionalNotFoundError: professional doesn't exist
        """
        professional = await self._find_professional(professional_id)
        if professional is None:
            raise ProfessionalNotFoundError(professional_id)
        return professional_to_domain(professional)

    async def lock_account(self, professional_id: UUID) -> ProfessionalData:
        """
        Lock the professional row for the rest of the transaction and return a snapshot.

        Used by services that must decide on the balance before debiting.
        """
        professional = await self._lock_professional_for_update(professional_id)
        if professional is None:
            raise ProfessionalNotFoundError(professional_id)
        return professional_to_domain(professional)

    async def get_balance(self, professional_id: UUID) -> int:
        """Current coin balance."""
        return (await self.get_account(professional_id)).coin_balance

    async def list_transactions(
        self, professional_id: UUID, limit: int = 50, offset: int = 0
    ) -> tuple[list[LedgerEntryData], int]:
        """Ledger history for a professional, newest first, with total count."""
        count_stmt = (
            select(func.count())
            .select_from(CoinTransaction)
            .where(CoinTransaction.professional_id == professional_id)
        )
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(CoinTransaction)
            .where(CoinTransaction.professional_id == professional_id)
            .order_by(CoinTransaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [_entry_to_domain(entry) for entry in result.scalars().all()], total

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _append_entry(
        self,
        professional: Professional,
        quantity: int,
        transaction_type: TransactionType,
        description: str,
        external_reference: str | None,
    ) -> LedgerEntryData:
        """Write one log entry and the matching balance change, then verify both."""
        balance_before = professional.coin_balance
        balance_after = balance_before + quantity
        if balance_after < 0:
            raise DataIntegrityError(
                f"Balance would become negative: {balance_before} + {quantity}"
            )

        entry = CoinTransaction(
            id=uuid4(),
            professional_id=professional.id,
            quantity=quantity,
            transaction_type=transaction_type,
            description=description,
            balance_before=balance_before,
            balance_after=balance_after,
            external_reference=external_reference,
            created_at=_utc_now(),
        )
        self.session.add(entry)
        await self.session.flush()

        verified_entry = await self.session.get(CoinTransaction, entry.id)
        if verified_entry is None:
            raise WriteVerificationError(f"Transaction {entry.id} not found after insert")

        professional.coin_balance = balance_after
        await self.session.flush()

        verified_professional = await self.session.get(Professional, professional.id)
        if verified_professional is None:
            raise WriteVerificationError(f"Professional {professional.id} disappeared after update")

        if verified_professional.coin_balance != balance_after:
            raise DataIntegrityError(
                f"Balance mismatch: expected {balance_after}, "
                f"got {verified_professional.coin_balance}"
            )

        logger.debug(
            "ledger_entry_written",
            professional_id=str(professional.id),
            transaction_type=transaction_type.value,
            quantity=quantity,
            balance_before=balance_before,
            balance_after=balance_after,
        )
        return _entry_to_domain(verified_entry)

    async def _find_professional(self, professional_id: UUID) -> Professional | None:
        """Find professional by id."""
        stmt = select(Professional).where(Professional.id == professional_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_professional_for_update(self, professional_id: UUID) -> Professional | None:
        """Lock professional row for update (SELECT FOR UPDATE)."""
        stmt = select(Professional).where(Professional.id == professional_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_entry_by_reference(self, external_reference: str) -> CoinTransaction | None:
        """Find transaction by external reference."""
        stmt = select(CoinTransaction).where(
            CoinTransaction.external_reference == external_reference
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
