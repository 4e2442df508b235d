# coding: utf-8
"""
Admin API Endpoints
Manual balance adjustments, roles, promotions and catalogue seeding
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.api.auth import get_admin_user
from src.api.dependencies import get_ledger, get_user_service
from src.core.enums import PromotionType, UserRole
from src.core.exceptions import NotFoundError
from src.database import crud
from src.database.engine import get_session
from src.database.models import User
from src.services.coin_package_service import CoinPackageService
from src.services.gift_service import GiftService
from src.services.ledger_service import LedgerService
from src.services.lootbox_service import LootboxService
from src.services.promotion_service import PromotionService
from src.services.task_service import TaskService
from src.services.user_service import UserService, serialize_user
from src.utils.dates import ensure_utc

router = APIRouter(prefix="/admin", tags=["admin"])


class AdjustCoinsRequest(BaseModel):
    """Positive amount credits, negative debits"""

    amount: int
    reason: Optional[str] = Field(None, max_length=255)


class SetRoleRequest(BaseModel):
    role: UserRole


class CreatePromotionRequest(BaseModel):
    type: PromotionType
    discount_percentage: int = Field(..., ge=1, le=100)
    duration_hours: int = Field(..., ge=1)
    target_user_ids: Optional[List[int]] = None


async def _get_user_or_404(session: AsyncSession, user_id: int) -> User:
    user = await crud.get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    admin: User = Depends(get_admin_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    user = await _get_user_or_404(session, user_id)
    await session.refresh(user)
    return serialize_user(user)


@router.post("/users/{user_id}/adjust-coins")
async def adjust_coins(
    user_id: int,
    request: AdjustCoinsRequest,
    admin: User = Depends(get_admin_user),
    session: AsyncSession = Depends(get_session),
    ledger: LedgerService = Depends(get_ledger),
) -> Dict[str, Any]:
    """
    Manual credit/debit

    Returns:
        Updated user

    Errors:
        400: Invalid amount / Insufficient coins for a negative adjustment
        404: User not found
    """
    user = await ledger.adjust_coins(
        session, user_id, request.amount, reason=request.reason, admin_id=admin.id
    )
    return serialize_user(user)


@router.post("/users/{user_id}/role")
async def set_role(
    user_id: int,
    request: SetRoleRequest,
    admin: User = Depends(get_admin_user),
    session: AsyncSession = Depends(get_session),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    user = await _get_user_or_404(session, user_id)
    logger.info(f"Admin {admin.id} sets role of user {user_id} to {request.role.value}")
    return await users.set_role(session, user, request.role)


@router.post("/promotions")
async def create_promotion(
    request: CreatePromotionRequest,
    admin: User = Depends(get_admin_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    promotion = await PromotionService.create_promotion(
        session,
        request.type,
        request.discount_percentage,
        request.duration_hours,
        target_user_ids=request.target_user_ids,
    )
    return {
        "id": promotion.id,
        "type": promotion.type,
        "discount_percentage": promotion.discount_percentage,
        "start_time": ensure_utc(promotion.start_time).isoformat(),
        "end_time": ensure_utc(promotion.end_time).isoformat(),
        "target_user_ids": promotion.target_user_ids,
    }


@router.post("/seed")
async def seed_catalogue(
    admin: User = Depends(get_admin_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, int]:
    """
    Insert default gifts, lootboxes, tasks and coin packages (skips
    catalogues that already have rows)
    """
    created = {
        "gifts": await GiftService.initialize_default_gifts(session),
        "lootboxes": await LootboxService.initialize_default_lootboxes(session),
        "tasks": await TaskService.initialize_default_tasks(session),
        "coin_packages": await CoinPackageService.initialize_default_packages(session),
    }
    logger.info(f"Admin {admin.id} seeded catalogue: {created}")
    return created
