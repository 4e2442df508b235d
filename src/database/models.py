"""
Database models for FlirtMarket API

SQLAlchemy 2.0 models with full type hints.

Ledger rules:
- users.coins is mutated only by LedgerService (conditional UPDATE)
- transactions are append-only
- domain rows (messages, gift_transactions, ...) point at ledger rows
  through loose integer ids without cascades
"""

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    JSON,
    String,
    BigInteger,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    Date,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from src.utils.dates import utcnow
from src.core.enums import (
    UserRole,
    SubscriptionStatus,
    TaskUserType,
    BoostType,
)


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ===========================
# USERS & MESSAGING
# ===========================


class User(Base):
    """
    User model - regular users, performers and admins

    Tracks:
    - Telegram identity and profile
    - Role (drives message monetization direction)
    - Coin balance (never negative, also enforced by CHECK constraint)
    - Referral code and referrer
    - Purchase statistics for bonus calculation
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    telegram_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, unique=True, index=True, nullable=True, comment="Telegram user ID"
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, comment="Telegram username (optional, unique)"
    )
    first_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="User first name"
    )
    last_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="User last name"
    )
    photo_url: Mapped[Optional[str]] = mapped_column(
        String(512), nullable=True, comment="User avatar URL"
    )
    bio: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Profile description (performers)"
    )

    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.REGULAR.value,
        nullable=False,
        index=True,
        comment="User role: regular/performer/admin",
    )

    # Balance - изменяется только через LedgerService
    coins: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Coin balance (>= 0)"
    )
    message_price: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Coins per inbound message (performers, NULL = platform default)"
    )

    # Referral fields
    referral_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        unique=True,
        index=True,
        nullable=True,
        comment="Unique referral code for this user",
    )
    referred_by_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
        comment="ID of user who referred this user",
    )

    # Purchase statistics
    total_purchased: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Total coins bought"
    )
    purchase_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Number of purchases"
    )
    last_purchase_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Last purchase timestamp"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="User registration timestamp",
    )
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Refreshed on profile edits and balance mutations",
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )

    @property
    def user_role(self) -> UserRole:
        return UserRole(self.role)

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or f"user {self.id}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, role={self.role}, coins={self.coins})>"


class Conversation(Base):
    """
    Conversation between exactly one regular user and one performer
    """

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    regular_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False, comment="Paying side"
    )
    performer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False, comment="Earning side"
    )
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
        comment="Used to order conversation lists",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("regular_user_id", "performer_id", name="uq_conversation_pair"),
    )

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.regular_user_id, self.performer_id)

    def other_participant(self, user_id: int) -> int:
        return self.performer_id if user_id == self.regular_user_id else self.regular_user_id

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, regular={self.regular_user_id}, performer={self.performer_id})>"


class Message(Base):
    """
    Chat message. Immutable except for the read flag.
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id"), index=True, nullable=False
    )
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    recipient_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    cost: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Coins charged for this message (0 for replies)"
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Ledger row of the payment/earning (loose reference)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    __table_args__ = (
        Index("ix_messages_recipient_unread", "recipient_id", "read"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, cost={self.cost})>"


# ===========================
# LEDGER
# ===========================


class Transaction(Base):
    """
    Append-only coin ledger entry

    Features:
    - Signed amount (negative for spend)
    - Balance snapshot after the mutation for audit
    - Idempotency via unique idempotency_key (purchase:<payment_id>,
      referral:<referrer>:<referred>)
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, comment="purchase/spend/earn/referral"
    )
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Coins (positive for credit, negative for spend)"
    )
    balance_after: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Balance right after this entry"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_user_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True, comment="Counterparty (loose reference)"
    )
    metadata_json: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Additional metadata (JSON): gross, fee, payment_id, etc."
    )
    # Idempotency - уникальный ключ операции для предотвращения дублей
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, comment="Unique operation key"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, user_id={self.user_id}, type={self.type}, amount={self.amount})>"


class CoinPackage(Base):
    """Purchasable coin bundle"""

    __tablename__ = "coin_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, comment="Coins in the package")
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Price in cents")
    bonus_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# ===========================
# GIFTS
# ===========================


class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class GiftTransaction(Base):
    """
    Gift history row, written in the same transaction as the ledger pair
    """

    __tablename__ = "gift_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    gift_id: Mapped[int] = mapped_column(Integer, ForeignKey("gifts.id"), nullable=False)
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    message_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Gross price paid")
    recipient_earnings: Mapped[int] = mapped_column(Integer, nullable=False)
    spend_transaction_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    earn_transaction_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )


# ===========================
# SUBSCRIPTIONS
# ===========================


class Subscription(Base):
    """
    Subscription of a user to a performer. Extending an active subscription
    moves end_date and adds to the cumulative price.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    performer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    subscriber_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    end_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Cumulative price paid")
    status: Mapped[str] = mapped_column(
        String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        # Одна активная подписка на пару subscriber/performer
        Index(
            "uq_active_subscription",
            "subscriber_id",
            "performer_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


# ===========================
# TASKS
# ===========================


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, comment="daily/achievement")
    user_type: Mapped[str] = mapped_column(
        String(20), default=TaskUserType.ALL.value, nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="coins/boost")
    reward_amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Coins, or boost duration in hours"
    )
    target_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class UserTask(Base):
    """Progress of one user on one task"""

    __tablename__ = "user_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id"), nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_user_task"),)


# ===========================
# LOOTBOXES & BOOSTS
# ===========================


class Lootbox(Base):
    __tablename__ = "lootboxes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="0 = free daily box")
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    rewards = relationship(
        "LootboxReward", back_populates="lootbox", lazy="selectin", order_by="LootboxReward.id"
    )

    @property
    def is_free(self) -> bool:
        return self.price == 0


class LootboxReward(Base):
    """
    Entry of a lootbox probability table. Probabilities are weights and
    do not have to sum to 100.
    """

    __tablename__ = "lootbox_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lootbox_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lootboxes.id"), index=True, nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reward_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Task id for task_progress rewards"
    )
    probability: Mapped[int] = mapped_column(Integer, nullable=False, comment="Relative weight")

    lootbox = relationship("Lootbox", back_populates="rewards")


class LootboxOpening(Base):
    """
    Opening history. free_claim_date is set only for free boxes, the unique
    constraint limits free openings to one per user per UTC day.
    """

    __tablename__ = "lootbox_openings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    lootbox_id: Mapped[int] = mapped_column(Integer, ForeignKey("lootboxes.id"), nullable=False)
    reward_id: Mapped[int] = mapped_column(Integer, ForeignKey("lootbox_rewards.id"), nullable=False)
    price_paid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    free_claim_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    transaction_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "lootbox_id", "free_claim_date", name="uq_free_lootbox_per_day"),
    )


class Boost(Base):
    """Time-limited visibility multiplier. No ledger effect."""

    __tablename__ = "boosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), default=BoostType.PROFILE.value, nullable=False)
    multiplier: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="lootbox/task")
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# ===========================
# PROMOTIONS
# ===========================


class Promotion(Base):
    """
    Discount campaign. target_user_ids NULL = everybody.
    """

    __tablename__ = "promotions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    target_user_ids: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def targets(self, user_id: int) -> bool:
        return not self.target_user_ids or user_id in self.target_user_ids
