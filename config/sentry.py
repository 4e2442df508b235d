# coding: utf-8
"""
Sentry configuration for error monitoring and tracking
"""
import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from loguru import logger

from config.config import SENTRY_DSN, ENVIRONMENT
from src.core.exceptions import InsufficientFundsError


def init_sentry() -> bool:
    """
    Initialize Sentry SDK for error monitoring

    Returns:
        True if Sentry was initialized, False if disabled
    """
    if not SENTRY_DSN:
        logger.warning("SENTRY_DSN not configured - error monitoring disabled")
        return False

    try:
        sentry_sdk.init(
            dsn=SENTRY_DSN,
            environment=ENVIRONMENT,
            integrations=[
                AsyncioIntegration(),
                SqlalchemyIntegration(),
                StarletteIntegration(),
                FastApiIntegration(),
            ],
            traces_sample_rate=0.1 if ENVIRONMENT == "production" else 1.0,
            sample_rate=1.0,
            attach_stacktrace=True,
            send_default_pii=False,
            max_breadcrumbs=50,
            before_send=before_send_hook,
        )

        logger.info(f"Sentry initialized successfully (Environment: {ENVIRONMENT})")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def before_send_hook(event, hint):
    """
    Filter events before sending to Sentry

    - InsufficientFundsError is an expected outcome, not an incident
    - Authorization headers (Telegram initData / JWT) are masked
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]

        if isinstance(exc_value, (KeyboardInterrupt, InsufficientFundsError)):
            return None

    if event.get("request"):
        headers = event["request"].get("headers", {})
        for header in ("Authorization", "authorization"):
            if header in headers:
                headers[header] = "[Filtered]"

    return event


def set_user_context(user_id: int, telegram_id: int = None):
    """
    Set user context for Sentry events

    Args:
        user_id: Internal user ID
        telegram_id: Telegram user ID (optional)
    """
    sentry_sdk.set_user({
        "id": str(user_id),
        "username": f"tg_{telegram_id}" if telegram_id else f"user_{user_id}",
    })
