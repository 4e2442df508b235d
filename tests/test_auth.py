"""
Tests for Telegram initData validation and JWT tokens
"""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from urllib.parse import urlencode

import pytest
from fastapi import HTTPException

from src.api.auth import (
    authenticate_telegram_user,
    create_access_token,
    decode_access_token,
    is_admin,
    referral_code_from_start_param,
    validate_telegram_init_data,
)
from src.core.enums import UserRole
from src.services.ledger_service import LedgerService

BOT_TOKEN = "123456:TEST-TOKEN"


def sign_init_data(fields: dict, bot_token: str = BOT_TOKEN) -> str:
    """Build initData the way Telegram signs it"""
    data_check_string = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    signature = hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()
    return urlencode({**fields, "hash": signature})


def init_fields(telegram_id: int = 42, **extra) -> dict:
    fields = {
        "auth_date": str(int(time.time())),
        "query_id": "AAH",
        "user": json.dumps({"id": telegram_id, "first_name": "Tg", "username": "tg_user"}),
    }
    fields.update(extra)
    return fields


# ===========================
# INIT DATA
# ===========================


def test_valid_init_data():
    result = validate_telegram_init_data(sign_init_data(init_fields(start_param="ref_ABC")), BOT_TOKEN)

    assert result["user"]["id"] == 42
    assert result["query_id"] == "AAH"
    assert result["start_param"] == "ref_ABC"


def test_wrong_bot_token_rejected():
    init_data = sign_init_data(init_fields(), bot_token="999:OTHER")

    with pytest.raises(HTTPException) as exc_info:
        validate_telegram_init_data(init_data, BOT_TOKEN)
    assert exc_info.value.status_code == 401


def test_tampered_init_data_rejected():
    init_data = sign_init_data(init_fields())
    tampered = init_data.replace("tg_user", "admin")

    with pytest.raises(HTTPException) as exc_info:
        validate_telegram_init_data(tampered, BOT_TOKEN)
    assert exc_info.value.status_code == 401


def test_missing_hash_rejected():
    with pytest.raises(HTTPException) as exc_info:
        validate_telegram_init_data(urlencode(init_fields()), BOT_TOKEN)
    assert exc_info.value.detail == "Missing hash in init data"


def test_expired_init_data_rejected():
    fields = init_fields(auth_date=str(int(time.time()) - 7200))
    init_data = sign_init_data(fields)

    with pytest.raises(HTTPException) as exc_info:
        validate_telegram_init_data(init_data, BOT_TOKEN, max_age=3600)
    assert exc_info.value.detail == "Init data expired"

    # max_age=0 отключает проверку
    assert validate_telegram_init_data(init_data, BOT_TOKEN, max_age=0)["user"]["id"] == 42


@pytest.mark.parametrize(
    "start_param, expected",
    [("ref_ABCD2345", "ABCD2345"), ("ref_", None), ("promo_1", None), (None, None)],
)
def test_referral_code_from_start_param(start_param, expected):
    assert referral_code_from_start_param(start_param) == expected


# ===========================
# JWT
# ===========================


def test_access_token_round_trip():
    assert decode_access_token(create_access_token(17)) == 17


def test_expired_access_token():
    token = create_access_token(17, expires_delta=timedelta(seconds=-10))

    with pytest.raises(HTTPException) as exc_info:
        decode_access_token(token)
    assert exc_info.value.status_code == 401


def test_garbage_access_token():
    with pytest.raises(HTTPException):
        decode_access_token("not-a-jwt")


# ===========================
# USER RESOLUTION
# ===========================


@pytest.mark.asyncio
async def test_authenticate_creates_user(db_session, ledger):
    init_data = validate_telegram_init_data(sign_init_data(init_fields(telegram_id=9001)), BOT_TOKEN)

    user = await authenticate_telegram_user(db_session, init_data, ledger)
    again = await authenticate_telegram_user(db_session, init_data, ledger)

    assert user.telegram_id == 9001
    assert user.username == "tg_user"
    assert again.id == user.id


@pytest.mark.asyncio
async def test_authenticate_with_referral_awards_performer(db_session, ledger, performer):
    fields = init_fields(telegram_id=9002, start_param=f"ref_{performer.referral_code}")
    init_data = validate_telegram_init_data(sign_init_data(fields), BOT_TOKEN)
    performer_id = performer.id

    user = await authenticate_telegram_user(db_session, init_data, ledger)

    assert user.referred_by_id == performer_id
    assert await LedgerService.get_balance(db_session, performer_id) == 50


@pytest.mark.asyncio
async def test_authenticate_without_user_rejected(db_session, ledger):
    with pytest.raises(HTTPException) as exc_info:
        await authenticate_telegram_user(db_session, {"user": {}}, ledger)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_is_admin(make_user):
    admin = await make_user(role=UserRole.ADMIN)
    regular = await make_user()

    assert is_admin(admin) is True
    assert is_admin(regular) is False
