# coding: utf-8
"""
Telegram notifications for monetization events

Best-effort: called after the money is committed, failures are logged and
never reach the caller.
"""
from html import escape
from typing import Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from loguru import logger

from config.config import BOT_TOKEN, WEBAPP_URL


class TelegramNotifier:
    """
    Sends short notifications to users through the bot

    A notifier without a bot (no BOT_TOKEN) is disabled and silently skips
    every call.
    """

    def __init__(self, bot: Optional[Bot] = None):
        self.bot = bot
        self.sent = 0
        self.failed = 0

    @classmethod
    def from_config(cls) -> "TelegramNotifier":
        if not BOT_TOKEN:
            logger.warning("BOT_TOKEN not configured - Telegram notifications disabled")
            return cls()
        bot = Bot(
            token=BOT_TOKEN,
            default=DefaultBotProperties(
                parse_mode=ParseMode.HTML, link_preview_is_disabled=True
            ),
        )
        return cls(bot)

    @property
    def enabled(self) -> bool:
        return self.bot is not None

    async def close(self) -> None:
        if self.bot:
            await self.bot.session.close()

    async def notify(self, telegram_id: Optional[int], text: str) -> bool:
        """
        Send a message to a user

        Returns:
            True if delivered
        """
        if not self.bot or not telegram_id:
            return False

        try:
            await self.bot.send_message(chat_id=telegram_id, text=text)
            self.sent += 1
            return True
        except (TelegramForbiddenError, TelegramBadRequest) as e:
            # Пользователь заблокировал бота или чат недоступен
            self.failed += 1
            logger.warning(f"Notification to {telegram_id} not delivered: {e}")
        except Exception as e:
            self.failed += 1
            logger.exception(f"Error sending notification to {telegram_id}: {e}")
        return False

    # ===========================
    # EVENT TEMPLATES
    # ===========================

    async def new_paid_message(self, telegram_id: Optional[int], sender_name: str) -> bool:
        return await self.notify(
            telegram_id,
            f"💬 New message from <b>{escape(sender_name)}</b>\n{WEBAPP_URL}",
        )

    async def gift_received(
        self, telegram_id: Optional[int], sender_name: str, gift_name: str, earnings: int
    ) -> bool:
        return await self.notify(
            telegram_id,
            f"🎁 <b>{escape(sender_name)}</b> sent you \"{escape(gift_name)}\"! You earned {earnings} coins.",
        )

    async def new_subscriber(
        self, telegram_id: Optional[int], subscriber_name: str, days: int, earnings: int
    ) -> bool:
        return await self.notify(
            telegram_id,
            f"⭐ <b>{escape(subscriber_name)}</b> subscribed for {days} days. You earned {earnings} coins.",
        )

    async def subscription_expired(self, telegram_id: Optional[int], performer_name: str) -> bool:
        return await self.notify(
            telegram_id,
            f"Your subscription to <b>{escape(performer_name)}</b> has expired.\n{WEBAPP_URL}",
        )

    async def task_completed(self, telegram_id: Optional[int], task_title: str) -> bool:
        return await self.notify(
            telegram_id,
            f"✅ Task completed: <b>{escape(task_title)}</b>. Claim your reward in the app!",
        )
