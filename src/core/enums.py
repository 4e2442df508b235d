"""
Core Enums - единые типы для всего стека монетизации.

Определяет:
- UserRole: роль пользователя (определяет направление оплаты сообщений)
- TransactionType: типы записей в журнале монет
- MessageDirection: платная отправка или оплачиваемый ответ
- SubscriptionStatus, RewardType, TaskUserType, BoostType, PromotionType
"""

from enum import Enum


class UserRole(str, Enum):
    """Роль пользователя.

    - REGULAR: платит за отправку сообщений исполнителям
    - PERFORMER: получает долю за ответы
    - ADMIN: управляет балансами, не участвует в переписке
    """

    REGULAR = "regular"
    PERFORMER = "performer"
    ADMIN = "admin"


class TransactionType(str, Enum):
    """Тип записи в журнале монет.

    Знак суммы: SPEND всегда отрицательный, остальные положительные.
    """

    PURCHASE = "purchase"
    SPEND = "spend"
    EARN = "earn"
    REFERRAL = "referral"

    @classmethod
    def credit_types(cls) -> tuple:
        """Типы, допустимые для начисления."""
        return (cls.PURCHASE, cls.EARN, cls.REFERRAL)


class MessageDirection(str, Enum):
    """Направление сообщения с точки зрения денег."""

    PAID_SEND = "paid_send"  # regular -> performer, списание
    COMPENSATED_REPLY = "compensated_reply"  # performer -> regular, начисление


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class LootboxRewardType(str, Enum):
    """Тип награды из лутбокса."""

    COINS = "coins"
    BOOST = "boost"
    TASK_PROGRESS = "task_progress"
    MESSAGE_DISCOUNT = "message_discount"


class TaskRewardType(str, Enum):
    COINS = "coins"
    BOOST = "boost"


class TaskType(str, Enum):
    DAILY = "daily"
    ACHIEVEMENT = "achievement"


class TaskUserType(str, Enum):
    """Кому доступно задание."""

    REGULAR = "regular"
    PERFORMER = "performer"
    ALL = "all"


class TaskAction(str, Enum):
    """Действия, которые двигают прогресс заданий."""

    SEND_MESSAGE = "send_message"
    REPLY_MESSAGE = "reply_message"
    SEND_GIFT = "send_gift"
    REFERRAL = "referral"
    QUICK_REPLY = "quick_reply"
    UNIQUE_CHATS = "unique_chats"


class BoostType(str, Enum):
    PROFILE = "profile"
    VISIBILITY = "visibility"


class PromotionType(str, Enum):
    SEASONAL = "seasonal"
    FLASH = "flash"
    PERSONAL = "personal"


class LeaderboardPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
