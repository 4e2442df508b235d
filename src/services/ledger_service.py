# coding: utf-8
"""
Coin Ledger Service

The only code path allowed to change users.coins.

Features:
- credit / debit as single conditional UPDATE statements (no read-then-write)
- Paired append-only transaction row for every mutation
- Idempotency via unique idempotency_key
- One transaction boundary for composite flows (atomic())
- Cache invalidation of user:<id> after commit
"""

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.monetization_config import (
    MAX_COIN_BALANCE,
    MAX_PURCHASE_AMOUNT,
    BONUS_LOOKBACK_DAYS,
    calculate_purchase_bonus_percent,
)
from src.cache import MemoryCache, CacheKeys
from src.core.enums import TransactionType
from src.core.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    InvalidRequestError,
    BalanceOverflowError,
    DuplicateOperationError,
)
from src.database.models import User, Transaction
from src.utils.coins import percent_of
from src.utils.dates import utcnow

_TOUCHED_KEY = "ledger_touched_users"


@dataclass
class UpdatedBalance:
    """Result of a ledger primitive"""

    user_id: int
    balance: int
    transaction: Transaction
    duplicate: bool = False


@dataclass
class PurchaseResult:
    user: User
    purchase: UpdatedBalance
    bonus: Optional[UpdatedBalance]
    bonus_percent: int

    @property
    def total_credited(self) -> int:
        bonus = self.bonus.transaction.amount if self.bonus else 0
        return self.purchase.transaction.amount + bonus


class LedgerService:
    """Service for coin balance mutations and ledger history"""

    def __init__(self, cache: MemoryCache):
        self.cache = cache

    # ===========================
    # TRANSACTION BOUNDARY
    # ===========================

    @asynccontextmanager
    async def atomic(self, session: AsyncSession):
        """
        Commit everything staged inside the block at once, roll back on any error

        Usage:
            async with ledger.atomic(session):
                await ledger.debit(session, ..., commit=False)
                session.add(GiftTransaction(...))
        """
        try:
            yield
        except BaseException:
            await self.rollback(session)
            raise
        else:
            await self.commit(session)

    async def commit(self, session: AsyncSession) -> None:
        """Commit and invalidate the cache entries of every touched user"""
        await session.commit()
        touched = session.info.pop(_TOUCHED_KEY, set())
        if touched:
            await self.cache.delete(*(CacheKeys.user(user_id) for user_id in touched))

    async def rollback(self, session: AsyncSession) -> None:
        session.info.pop(_TOUCHED_KEY, None)
        await session.rollback()

    def _touch(self, session: AsyncSession, user_id: int) -> None:
        session.info.setdefault(_TOUCHED_KEY, set()).add(user_id)

    # ===========================
    # PRIMITIVES
    # ===========================

    async def credit(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        reason: str,
        transaction_type: TransactionType = TransactionType.EARN,
        related_user_id: Optional[int] = None,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
        commit: bool = True,
    ) -> UpdatedBalance:
        """
        Add coins to a user

        Args:
            session: Database session
            user_id: User ID
            amount: Coins to add (> 0)
            reason: Human-readable description
            transaction_type: earn / purchase / referral
            related_user_id: Counterparty
            metadata: Extra context stored as JSON
            idempotency_key: Unique key; a repeated key returns the first result
            commit: False when called inside atomic()

        Returns:
            UpdatedBalance

        Raises:
            InvalidRequestError: amount <= 0 or non-credit type
            NotFoundError: user does not exist
            BalanceOverflowError: balance would exceed MAX_COIN_BALANCE
            DuplicateOperationError: idempotency key collided with a concurrent write
        """
        transaction_type = TransactionType(transaction_type)
        self._validate_amount(amount)
        if transaction_type not in TransactionType.credit_types():
            raise InvalidRequestError(f"{transaction_type.value} is not a credit type")

        if idempotency_key:
            existing = await self._find_by_key(session, idempotency_key)
            if existing:
                logger.debug(f"Ledger key {idempotency_key} already recorded, skipping")
                return UpdatedBalance(user_id, existing.balance_after, existing, duplicate=True)

        stmt = (
            update(User)
            .where(User.id == user_id, User.coins <= MAX_COIN_BALANCE - amount)
            .values(coins=User.coins + amount, last_active=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)

        if result.rowcount == 0:
            user = await session.get(User, user_id, populate_existing=True)
            if commit:
                await self.rollback(session)
            if user is None:
                raise NotFoundError("User", user_id)
            logger.warning(f"Balance overflow blocked: user {user_id} +{amount}")
            raise BalanceOverflowError(user_id, amount)

        return await self._record(
            session,
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            reason=reason,
            related_user_id=related_user_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
            commit=commit,
        )

    async def debit(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        reason: str,
        related_user_id: Optional[int] = None,
        metadata: Optional[Dict] = None,
        commit: bool = True,
    ) -> UpdatedBalance:
        """
        Take coins from a user

        The balance check and the decrement are one statement:
        UPDATE users SET coins = coins - :amount WHERE id = :id AND coins >= :amount

        Raises:
            InvalidRequestError: amount <= 0
            NotFoundError: user does not exist
            InsufficientFundsError: balance < amount (nothing is written)
        """
        self._validate_amount(amount)

        stmt = (
            update(User)
            .where(User.id == user_id, User.coins >= amount)
            .values(coins=User.coins - amount, last_active=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)

        if result.rowcount == 0:
            user = await session.get(User, user_id, populate_existing=True)
            available = user.coins if user else 0
            if commit:
                await self.rollback(session)
            if user is None:
                raise NotFoundError("User", user_id)
            logger.info(f"Insufficient coins: user {user_id} required={amount} available={available}")
            raise InsufficientFundsError(required=amount, available=available)

        return await self._record(
            session,
            user_id=user_id,
            amount=-amount,
            transaction_type=TransactionType.SPEND,
            reason=reason,
            related_user_id=related_user_id,
            metadata=metadata,
            idempotency_key=None,
            commit=commit,
        )

    async def _record(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        transaction_type: TransactionType,
        reason: str,
        related_user_id: Optional[int],
        metadata: Optional[Dict],
        idempotency_key: Optional[str],
        commit: bool,
    ) -> UpdatedBalance:
        """Insert the ledger row for a balance update that already happened"""
        # populate_existing: identity-map copies of the user see the new balance
        user = await session.get(User, user_id, populate_existing=True)

        transaction = Transaction(
            user_id=user_id,
            type=transaction_type.value,
            amount=amount,
            balance_after=user.coins,
            description=reason,
            related_user_id=related_user_id,
            metadata_json=json.dumps(metadata, ensure_ascii=False) if metadata else None,
            idempotency_key=idempotency_key,
        )
        session.add(transaction)
        try:
            await session.flush()
        except IntegrityError:
            await self.rollback(session)
            logger.warning(f"Duplicate ledger key blocked: {idempotency_key}")
            raise DuplicateOperationError(idempotency_key or "")

        self._touch(session, user_id)
        if commit:
            await self.commit(session)

        logger.info(
            f"Ledger {transaction_type.value}: user {user_id} {amount:+d} -> {user.coins} ({reason})"
        )
        return UpdatedBalance(user_id=user_id, balance=user.coins, transaction=transaction)

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRequestError("Amount must be a positive integer")

    @staticmethod
    async def _find_by_key(session: AsyncSession, key: str) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.idempotency_key == key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # ===========================
    # READS
    # ===========================

    @staticmethod
    async def get_balance(session: AsyncSession, user_id: int) -> int:
        """Authoritative balance straight from the database"""
        stmt = select(User.coins).where(User.id == user_id)
        balance = (await session.execute(stmt)).scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User", user_id)
        return balance

    @staticmethod
    async def get_transaction_history(
        session: AsyncSession,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Transaction]:
        """
        Get user transaction history, newest first (ties broken by id)
        """
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_spending_stats(
        session: AsyncSession, user_id: int, days: int = BONUS_LOOKBACK_DAYS
    ) -> Dict[str, int]:
        """
        Coins spent and number of ledger rows over the last `days` days

        Returns:
            {"spent": positive int, "transactions": int}
        """
        since = utcnow() - timedelta(days=days)
        spent_stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.SPEND.value,
            Transaction.created_at >= since,
        )
        count_stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == user_id,
            Transaction.created_at >= since,
        )
        spent = (await session.execute(spent_stmt)).scalar_one()
        count = (await session.execute(count_stmt)).scalar_one()
        return {"spent": abs(int(spent)), "transactions": int(count)}

    # ===========================
    # PURCHASES & ADMIN
    # ===========================

    async def purchase_coins(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        payment_method: str,
        payment_id: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Simulated coin purchase with loyalty bonus

        The purchased amount is one `purchase` row, the bonus a separate
        `earn` row; both commit together with the purchase statistics.

        Args:
            session: Database session
            user_id: Buyer
            amount: Coins bought (1..MAX_PURCHASE_AMOUNT)
            payment_method: Payment method label
            payment_id: External payment ID, makes the purchase idempotent

        Returns:
            PurchaseResult
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_PURCHASE_AMOUNT:
            raise InvalidRequestError(f"Amount must be between 1 and {MAX_PURCHASE_AMOUNT}")

        stats = await self.get_spending_stats(session, user_id)
        bonus_percent = calculate_purchase_bonus_percent(
            amount, stats["spent"], stats["transactions"]
        )
        bonus_amount = percent_of(amount, bonus_percent)

        reason = f"Purchase of {amount} coins via {payment_method}"
        if payment_id:
            reason += f" (ID: {payment_id})"

        bonus = None
        async with self.atomic(session):
            purchase = await self.credit(
                session,
                user_id,
                amount,
                reason,
                transaction_type=TransactionType.PURCHASE,
                metadata={"payment_method": payment_method, "payment_id": payment_id},
                idempotency_key=f"purchase:{payment_id}" if payment_id else None,
                commit=False,
            )

            if not purchase.duplicate:
                if bonus_amount > 0:
                    bonus = await self.credit(
                        session,
                        user_id,
                        bonus_amount,
                        f"Purchase bonus ({bonus_percent}%)",
                        transaction_type=TransactionType.EARN,
                        metadata={"purchase_transaction_id": purchase.transaction.id},
                        commit=False,
                    )

                await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(
                        total_purchased=User.total_purchased + amount,
                        purchase_count=User.purchase_count + 1,
                        last_purchase_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

        user = await session.get(User, user_id, populate_existing=True)
        return PurchaseResult(user=user, purchase=purchase, bonus=bonus, bonus_percent=bonus_percent)

    async def adjust_coins(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        reason: Optional[str] = None,
        admin_id: Optional[int] = None,
    ) -> User:
        """
        Admin manual credit (amount > 0) or debit (amount < 0)

        Raises:
            InvalidRequestError: amount == 0
            NotFoundError: user does not exist
            InsufficientFundsError: negative adjustment larger than the balance
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise InvalidRequestError("Invalid amount")

        if await session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        metadata = {"admin_id": admin_id, "adjustment": amount}
        if amount > 0:
            await self.credit(
                session,
                user_id,
                amount,
                reason or "Admin adjustment",
                transaction_type=TransactionType.EARN,
                related_user_id=admin_id,
                metadata=metadata,
            )
        else:
            await self.debit(
                session,
                user_id,
                -amount,
                reason or "Admin adjustment",
                related_user_id=admin_id,
                metadata=metadata,
            )

        logger.info(f"Admin {admin_id} adjusted user {user_id} balance by {amount:+d}")
        return await session.get(User, user_id, populate_existing=True)
