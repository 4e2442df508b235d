"""
Authentication
- Telegram Mini App: HMAC-SHA256 validation of initData ("tma <initDataRaw>")
- Dashboard: JWT ("Bearer <token>"), issued by /auth/telegram
"""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import ADMIN_IDS, BOT_TOKEN, INIT_DATA_MAX_AGE, JWT_ALGORITHM, JWT_SECRET
from src.api.dependencies import get_ledger
from src.core.enums import UserRole
from src.database.crud import get_or_create_user, get_user_by_id
from src.database.engine import get_session
from src.database.models import User
from src.services.ledger_service import LedgerService
from src.services.referral_service import ReferralService
from src.utils.dates import utcnow

# Access token lifetime for the dashboard
ACCESS_TOKEN_TTL = timedelta(days=7)

# start_param format: ref_CODE
REFERRAL_START_PREFIX = "ref_"


def validate_telegram_init_data(
    init_data: str, bot_token: str, max_age: int = INIT_DATA_MAX_AGE
) -> Dict[str, Any]:
    """
    Validate Telegram initData using HMAC-SHA256

    Process:
    1. Parse init data parameters
    2. Extract hash, check auth_date freshness
    3. secret_key = HMAC_SHA256("WebAppData", bot_token)
    4. Compare HMAC_SHA256(secret_key, data_check_string) with hash

    Args:
        init_data: Raw initData string from Telegram WebApp
        bot_token: Bot token for signature validation
        max_age: Max initData age in seconds (0 disables the check)

    Returns:
        dict: {"user", "auth_date", "query_id", "start_param"}

    Raises:
        HTTPException: 401 if validation fails
    """
    parsed_data = dict(parse_qsl(init_data))

    received_hash = parsed_data.pop("hash", None)
    if not received_hash:
        raise HTTPException(status_code=401, detail="Missing hash in init data")

    auth_date = parsed_data.get("auth_date")
    if not auth_date or not auth_date.isdigit():
        raise HTTPException(status_code=401, detail="Missing auth_date in init data")

    auth_timestamp = int(auth_date)
    if max_age and int(time.time()) - auth_timestamp > max_age:
        raise HTTPException(status_code=401, detail="Init data expired")

    data_check_string = "\n".join(f"{key}={parsed_data[key]}" for key in sorted(parsed_data))

    secret_key = hmac.new(key=b"WebAppData", msg=bot_token.encode(), digestmod=hashlib.sha256).digest()
    calculated_hash = hmac.new(
        key=secret_key, msg=data_check_string.encode(), digestmod=hashlib.sha256
    ).hexdigest()

    if not hmac.compare_digest(calculated_hash, received_hash):
        raise HTTPException(status_code=401, detail="Invalid hash - signature verification failed")

    user_data: Dict[str, Any] = {}
    if "user" in parsed_data:
        try:
            user_data = json.loads(parsed_data["user"])
        except json.JSONDecodeError:
            raise HTTPException(status_code=401, detail="Invalid user data format")

    return {
        "user": user_data,
        "auth_date": auth_timestamp,
        "query_id": parsed_data.get("query_id"),
        "start_param": parsed_data.get("start_param"),
    }


def referral_code_from_start_param(start_param: Optional[str]) -> Optional[str]:
    if start_param and start_param.startswith(REFERRAL_START_PREFIX):
        return start_param[len(REFERRAL_START_PREFIX):] or None
    return None


def create_access_token(user_id: int, expires_delta: timedelta = ACCESS_TOKEN_TTL) -> str:
    payload = {"sub": str(user_id), "exp": utcnow() + expires_delta}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """
    Decode a dashboard JWT

    Returns:
        User ID from the "sub" claim

    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid JWT token: {e}")

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Missing subject in JWT payload")
    return int(subject)


async def authenticate_telegram_user(
    session: AsyncSession, init_data: Dict[str, Any], ledger: LedgerService
) -> User:
    """
    Get or auto-create the user from validated initData; a new user that
    came through a referral link triggers the referral bonus
    """
    telegram_user = init_data.get("user") or {}
    if "id" not in telegram_user:
        raise HTTPException(status_code=401, detail="No user data in init data")

    user, is_new = await get_or_create_user(
        session,
        telegram_id=int(telegram_user["id"]),
        username=telegram_user.get("username"),
        first_name=telegram_user.get("first_name"),
        last_name=telegram_user.get("last_name"),
        photo_url=telegram_user.get("photo_url"),
        referral_code=referral_code_from_start_param(init_data.get("start_param")),
    )

    if is_new:
        logger.info(f"Auto-created user from Mini App: telegram_id={user.telegram_id}")
        if user.referred_by_id:
            user_id = user.id
            await ReferralService(ledger).award_referral_bonus(session, user)
            user = await get_user_by_id(session, user_id)

    return user


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    FastAPI Dependency для получения текущего пользователя.
    - Telegram Mini App: "tma <initDataRaw>"
    - Dashboard: "Bearer <jwt_token>"

    Raises:
        HTTPException: 401 if authentication fails

    Usage:
        @router.get("/users/me")
        async def me(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if authorization.startswith("tma "):
        init_data = validate_telegram_init_data(authorization[4:], BOT_TOKEN)
        return await authenticate_telegram_user(session, init_data, get_ledger(request))

    elif authorization.startswith("Bearer "):
        user_id = decode_access_token(authorization[7:])
        user = await get_user_by_id(session, user_id)
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        return user

    else:
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header. Expected: 'tma <initData>' or 'Bearer <token>'"
        )


def is_admin(user: User) -> bool:
    return UserRole(user.role) is UserRole.ADMIN or (
        user.telegram_id is not None and user.telegram_id in ADMIN_IDS
    )


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """
    Raises:
        HTTPException: 403 for non-admins
    """
    if not is_admin(user):
        logger.warning(f"Admin endpoint denied for user {user.id}")
        raise HTTPException(status_code=403, detail="Access denied")
    return user
