# coding: utf-8
"""
Default catalogue seeded on an empty database

Tasks, lootboxes with their reward tables, gifts and coin packages.
Seeding is idempotent per table: nothing is inserted if the table already
has rows (see the initialize_default_* service methods and POST /admin/seed).
"""

from typing import Dict, List

from src.core.enums import (
    LootboxRewardType,
    TaskAction,
    TaskRewardType,
    TaskType,
    TaskUserType,
)


# =======================
# TASKS
# =======================

DEFAULT_TASKS: List[Dict] = [
    # Regular users
    {
        "title": "Send your first message",
        "description": "Send your first message to a performer",
        "type": TaskType.ACHIEVEMENT,
        "action_type": TaskAction.SEND_MESSAGE,
        "target_count": 1,
        "reward_type": TaskRewardType.COINS,
        "reward_amount": 10,
        "user_type": TaskUserType.REGULAR,
    },
    {
        "title": "Daily chatter",
        "description": "Send 3 messages today",
        "type": TaskType.DAILY,
        "action_type": TaskAction.SEND_MESSAGE,
        "target_count": 3,
        "reward_type": TaskRewardType.COINS,
        "reward_amount": 5,
        "user_type": TaskUserType.REGULAR,
    },
    {
        "title": "Invite a friend",
        "description": "Bring a friend to the platform with your referral code",
        "type": TaskType.ACHIEVEMENT,
        "action_type": TaskAction.REFERRAL,
        "target_count": 1,
        "reward_type": TaskRewardType.COINS,
        "reward_amount": 20,
        "user_type": TaskUserType.REGULAR,
    },
    {
        "title": "Send your first gift",
        "description": "Send a gift to a performer",
        "type": TaskType.ACHIEVEMENT,
        "action_type": TaskAction.SEND_GIFT,
        "target_count": 1,
        "reward_type": TaskRewardType.COINS,
        "reward_amount": 15,
        "user_type": TaskUserType.REGULAR,
    },
    # Performers
    {
        "title": "Quick responder",
        "description": "Reply to 10 messages within 30 minutes",
        "type": TaskType.ACHIEVEMENT,
        "action_type": TaskAction.QUICK_REPLY,
        "target_count": 10,
        "reward_type": TaskRewardType.BOOST,
        "reward_amount": 24,  # часов буста профиля
        "user_type": TaskUserType.PERFORMER,
    },
    {
        "title": "Active performer",
        "description": "Reply to 5 messages today",
        "type": TaskType.DAILY,
        "action_type": TaskAction.REPLY_MESSAGE,
        "target_count": 5,
        "reward_type": TaskRewardType.COINS,
        "reward_amount": 10,
        "user_type": TaskUserType.PERFORMER,
    },
    {
        "title": "Popular performer",
        "description": "Get messages from 10 different users",
        "type": TaskType.ACHIEVEMENT,
        "action_type": TaskAction.UNIQUE_CHATS,
        "target_count": 10,
        "reward_type": TaskRewardType.BOOST,
        "reward_amount": 48,
        "user_type": TaskUserType.PERFORMER,
    },
]


# =======================
# LOOTBOXES
# =======================

# reward tuples: (type, amount, weight)
DEFAULT_LOOTBOXES: List[Dict] = [
    {
        "name": "Daily surprise box",
        "description": "Free box you can open once a day",
        "price": 0,
        "image_url": "/images/lootboxes/daily.png",
        "rewards": [
            (LootboxRewardType.COINS, 5, 50),
            (LootboxRewardType.COINS, 10, 30),
            (LootboxRewardType.COINS, 20, 15),
            (LootboxRewardType.BOOST, 1, 5),  # 1 hour boost
        ],
    },
    {
        "name": "Basic surprise box",
        "description": "Small rewards",
        "price": 50,
        "image_url": "/images/lootboxes/basic.png",
        "rewards": [
            (LootboxRewardType.COINS, 20, 40),
            (LootboxRewardType.COINS, 50, 30),
            (LootboxRewardType.BOOST, 3, 20),
            (LootboxRewardType.MESSAGE_DISCOUNT, 50, 10),  # 50% discount
        ],
    },
    {
        "name": "Premium surprise box",
        "description": "More valuable rewards",
        "price": 100,
        "image_url": "/images/lootboxes/premium.png",
        "rewards": [
            (LootboxRewardType.COINS, 50, 30),
            (LootboxRewardType.COINS, 100, 40),
            (LootboxRewardType.BOOST, 6, 20),
            (LootboxRewardType.COINS, 200, 10),
        ],
    },
    {
        "name": "VIP surprise box",
        "description": "The most valuable rewards",
        "price": 200,
        "image_url": "/images/lootboxes/vip.png",
        "rewards": [
            (LootboxRewardType.COINS, 100, 30),
            (LootboxRewardType.COINS, 200, 40),
            (LootboxRewardType.BOOST, 24, 20),
            (LootboxRewardType.COINS, 500, 10),
        ],
    },
]


# =======================
# GIFTS
# =======================

DEFAULT_GIFTS: List[Dict] = [
    {"name": "Rose", "description": "A single red rose", "price": 10, "image_url": "/images/gifts/rose.png"},
    {"name": "Heart", "description": "Show some love", "price": 25, "image_url": "/images/gifts/heart.png"},
    {"name": "Champagne", "description": "Celebrate together", "price": 100, "image_url": "/images/gifts/champagne.png"},
    {"name": "Diamond", "description": "For someone special", "price": 500, "image_url": "/images/gifts/diamond.png"},
]


# =======================
# COIN PACKAGES
# =======================

# price in cents
DEFAULT_COIN_PACKAGES: List[Dict] = [
    {"name": "Starter", "amount": 100, "price": 99, "bonus_percentage": 0},
    {"name": "Popular", "amount": 500, "price": 449, "bonus_percentage": 10},
    {"name": "Premium", "amount": 1200, "price": 999, "bonus_percentage": 20},
    {"name": "Ultimate", "amount": 3000, "price": 2299, "bonus_percentage": 30},
]
