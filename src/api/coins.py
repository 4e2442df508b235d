# coding: utf-8
"""
Coins API Endpoints
Simulated purchases, balance and transaction history
"""

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.monetization_config import MAX_PURCHASE_AMOUNT
from src.api.auth import get_current_user
from src.api.dependencies import get_ledger
from src.core.exceptions import MonetizationError
from src.database.engine import get_session
from src.database.models import Transaction, User
from src.services.ledger_service import LedgerService
from src.services.user_service import serialize_user

router = APIRouter(tags=["coins"])


# ===========================
# REQUEST / RESPONSE MODELS
# ===========================


class PurchaseRequest(BaseModel):
    amount: int = Field(..., gt=0, le=MAX_PURCHASE_AMOUNT)
    payment_method: str = Field("card", max_length=50)
    payment_id: Optional[str] = Field(None, max_length=255)


class PurchaseResponse(BaseModel):
    success: bool
    user: Dict[str, Any]
    message: str
    bonus: int = 0
    bonus_percent: int = 0


class BalanceResponse(BaseModel):
    coins: int


class TransactionResponse(BaseModel):
    """Individual ledger entry"""

    id: int
    type: str
    amount: int
    balance_after: int
    description: Optional[str]
    related_user_id: Optional[int]
    metadata: Optional[Dict[str, Any]]
    created_at: str


def serialize_transaction(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        type=transaction.type,
        amount=transaction.amount,
        balance_after=transaction.balance_after,
        description=transaction.description,
        related_user_id=transaction.related_user_id,
        metadata=json.loads(transaction.metadata_json) if transaction.metadata_json else None,
        created_at=transaction.created_at.isoformat(),
    )


# ===========================
# ENDPOINTS
# ===========================


@router.post("/coins/purchase", response_model=PurchaseResponse)
async def purchase_coins(
    request: PurchaseRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Simulated coin purchase with loyalty bonus

    Returns:
        {"success": true, "user": {...}, "message": "Successfully purchased 100 coins"}
    """
    user_id = user.id
    try:
        result = await ledger.purchase_coins(
            session,
            user_id,
            request.amount,
            request.payment_method,
            payment_id=request.payment_id,
        )
    except MonetizationError:
        raise
    except Exception as e:
        logger.exception(f"Purchase failed for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process purchase")

    bonus = result.bonus.transaction.amount if result.bonus else 0
    message = f"Successfully purchased {request.amount} coins"
    if bonus:
        message += f" (+{bonus} bonus)"
    if result.purchase.duplicate:
        message = "Purchase already processed"

    return PurchaseResponse(
        success=True,
        user=serialize_user(result.user),
        message=message,
        bonus=bonus,
        bonus_percent=result.bonus_percent if bonus else 0,
    )


@router.get("/coins/balance", response_model=BalanceResponse)
async def get_balance(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Authoritative balance (never cached)"""
    return BalanceResponse(coins=await LedgerService.get_balance(session, user.id))


@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=100, description="Number of transactions to return"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
):
    """
    Transaction history of the current user, newest first
    """
    transactions = await LedgerService.get_transaction_history(session, user.id, limit=limit, offset=offset)
    return [serialize_transaction(t) for t in transactions]
