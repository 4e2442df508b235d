"""
Service dependencies for the API routers

Process-wide collaborators live on app.state (created in the lifespan):
    app.state.cache     MemoryCache
    app.state.notifier  TelegramNotifier
Services are cheap wrappers around them and are built per request.
"""

from fastapi import Request

from src.cache import MemoryCache, NullCache
from src.services.coin_package_service import CoinPackageService
from src.services.gift_service import GiftService
from src.services.ledger_service import LedgerService
from src.services.lootbox_service import LootboxService
from src.services.message_service import MessageService
from src.services.subscription_service import SubscriptionService
from src.services.task_service import TaskService
from src.services.telegram_notifier import TelegramNotifier
from src.services.user_service import UserService


def get_cache(request: Request) -> MemoryCache:
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        # App used without lifespan (scripts, some tests)
        cache = request.app.state.cache = NullCache()
    return cache


def get_notifier(request: Request) -> TelegramNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = request.app.state.notifier = TelegramNotifier()
    return notifier


def get_ledger(request: Request) -> LedgerService:
    return LedgerService(get_cache(request))


def get_task_service(request: Request) -> TaskService:
    return TaskService(get_ledger(request), get_notifier(request))


def get_message_service(request: Request) -> MessageService:
    ledger = get_ledger(request)
    notifier = get_notifier(request)
    return MessageService(ledger, get_cache(request), TaskService(ledger, notifier), notifier)


def get_gift_service(request: Request) -> GiftService:
    ledger = get_ledger(request)
    notifier = get_notifier(request)
    return GiftService(ledger, TaskService(ledger, notifier), notifier)


def get_subscription_service(request: Request) -> SubscriptionService:
    return SubscriptionService(get_ledger(request), get_notifier(request))


def get_lootbox_service(request: Request) -> LootboxService:
    ledger = get_ledger(request)
    return LootboxService(ledger, TaskService(ledger, get_notifier(request)))


def get_coin_package_service(request: Request) -> CoinPackageService:
    return CoinPackageService(get_ledger(request))


def get_user_service(request: Request) -> UserService:
    return UserService(get_cache(request))
