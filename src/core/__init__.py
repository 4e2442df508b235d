"""
Core module - базовые типы, enums и доменные исключения.
"""

from src.core.enums import (
    UserRole,
    TransactionType,
    MessageDirection,
    SubscriptionStatus,
    LootboxRewardType,
    TaskRewardType,
    TaskUserType,
    TaskAction,
    BoostType,
)
from src.core.exceptions import (
    MonetizationError,
    InsufficientFundsError,
    NotFoundError,
    AuthorizationError,
    InvalidRequestError,
    NotEligibleError,
    BalanceOverflowError,
    DuplicateOperationError,
)

__all__ = [
    "UserRole",
    "TransactionType",
    "MessageDirection",
    "SubscriptionStatus",
    "LootboxRewardType",
    "TaskRewardType",
    "TaskUserType",
    "TaskAction",
    "BoostType",
    "MonetizationError",
    "InsufficientFundsError",
    "NotFoundError",
    "AuthorizationError",
    "InvalidRequestError",
    "NotEligibleError",
    "BalanceOverflowError",
    "DuplicateOperationError",
]
