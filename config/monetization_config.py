# coding: utf-8
"""
Coin economy configuration

Centralized prices, commission rates and bonus rules for the coin ledger.
All amounts are integer coins.
"""
import os
from typing import List, Tuple


# =======================
# MESSAGING
# =======================

# Цена входящего сообщения, если исполнитель не задал свою
DEFAULT_MESSAGE_PRICE: int = int(os.getenv("DEFAULT_MESSAGE_PRICE", "35"))

# Доля платформы с цены сообщения (исполнитель получает 30%)
MESSAGE_COMMISSION_RATE: float = float(os.getenv("MESSAGE_COMMISSION_RATE", "0.7"))

# Диапазон цены, которую может выставить исполнитель
MIN_MESSAGE_PRICE: int = 1
MAX_MESSAGE_PRICE: int = 10000

MAX_MESSAGE_LENGTH: int = 4096

# Ответ исполнителя быстрее этого окна засчитывается в задачу "Quick responder"
QUICK_REPLY_WINDOW_MINUTES: int = 30


# =======================
# ADD-ONS
# =======================

GIFT_PLATFORM_FEE_PERCENTAGE: int = int(os.getenv("GIFT_PLATFORM_FEE_PERCENTAGE", "20"))

SUBSCRIPTION_PLATFORM_FEE_PERCENTAGE: int = int(
    os.getenv("SUBSCRIPTION_PLATFORM_FEE_PERCENTAGE", "20")
)
SUBSCRIPTION_BASE_PRICE_PER_DAY: int = int(os.getenv("SUBSCRIPTION_BASE_PRICE_PER_DAY", "100"))
SUBSCRIPTION_MAX_DAYS: int = 365
SUBSCRIPTION_EXTEND_ATTEMPTS: int = 3  # повторы условного продления при конкурентной записи

GIFT_LEADERBOARD_SIZE: int = 10


# =======================
# REFERRALS
# =======================

REFERRAL_BONUS_AMOUNT: int = int(os.getenv("REFERRAL_BONUS_AMOUNT", "50"))

# Бонус получают только исполнители, пригласившие пользователя
REFERRAL_BONUS_PERFORMERS_ONLY: bool = (
    os.getenv("REFERRAL_BONUS_PERFORMERS_ONLY", "true").lower() == "true"
)

REFERRAL_CODE_LENGTH: int = 8
# Без 0/O/1/I, чтобы код можно было продиктовать
REFERRAL_CODE_ALPHABET: str = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"


# =======================
# LEDGER LIMITS
# =======================

# users.coins is a 32-bit INTEGER column
MAX_COIN_BALANCE: int = 2_147_483_647

MAX_PURCHASE_AMOUNT: int = int(os.getenv("MAX_PURCHASE_AMOUNT", "100000"))


# =======================
# PURCHASE BONUSES
# =======================

PURCHASE_BASE_BONUS_PERCENT: int = 5

# Порог трат за 30 дней -> добавочный процент (берется максимальный достигнутый)
SPENDING_BONUS_TIERS: List[Tuple[int, int]] = [
    (10000, 5),
    (5000, 3),
    (1000, 2),
]

# Количество транзакций за 30 дней -> добавочный процент
ACTIVITY_BONUS_TIERS: List[Tuple[int, int]] = [
    (50, 3),
    (10, 2),
]

# Размер покупки -> добавочный процент (порог включительно)
PURCHASE_SIZE_BONUS_TIERS: List[Tuple[int, int]] = [
    (5000, 10),
    (1000, 5),
]

BONUS_LOOKBACK_DAYS: int = 30

# Coin packages
FIRST_PURCHASE_BONUS_PERCENT: int = 50
WEEKEND_BONUS_PERCENT: int = 10


# =======================
# BOOSTS
# =======================

DEFAULT_BOOST_MULTIPLIER: float = 2.0


# =======================
# HELPER FUNCTIONS
# =======================

def _tier_bonus(value: int, tiers: List[Tuple[int, int]], inclusive: bool = False) -> int:
    """
    Получить процент для максимального достигнутого порога

    Args:
        value: Проверяемая величина
        tiers: Пары (порог, процент), отсортированные по убыванию порога
        inclusive: True если порог засчитывается при равенстве

    Returns:
        Процент бонуса (0 если ни один порог не достигнут)
    """
    for threshold, percent in tiers:
        if value > threshold or (inclusive and value == threshold):
            return percent
    return 0


def calculate_purchase_bonus_percent(
    purchase_amount: int,
    spent_last_30_days: int,
    transactions_last_30_days: int,
) -> int:
    """
    Рассчитать процент бонусных монет за покупку

    Args:
        purchase_amount: Количество покупаемых монет
        spent_last_30_days: Сумма трат пользователя за 30 дней (положительное число)
        transactions_last_30_days: Количество транзакций за 30 дней

    Returns:
        Процент бонуса (целое число)
    """
    percent = PURCHASE_BASE_BONUS_PERCENT
    percent += _tier_bonus(spent_last_30_days, SPENDING_BONUS_TIERS)
    percent += _tier_bonus(transactions_last_30_days, ACTIVITY_BONUS_TIERS)
    percent += _tier_bonus(purchase_amount, PURCHASE_SIZE_BONUS_TIERS, inclusive=True)
    return percent
