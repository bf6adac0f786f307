from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import List

from ecostore.shared.database import get_session
from ecostore.shared.utils import (
    SuccessResponse, NotFoundException, get_current_user, current_user_id, settings
)
from ecostore.shared.security_config import limiter, PUBLIC_READ_LIMIT

from ecostore.auth.models import User
from ecostore.orders.engine import load_cart
from ecostore.sustainability import aggregator
from ecostore.sustainability.models import UserPreference
from ecostore.sustainability.schemas import (
    DashboardResponse, LeaderboardEntry, CartImpactResponse,
    PreferencesResponse, PreferencesUpdate
)

router = APIRouter(prefix="/sustainability", tags=["sustainability"])

async def get_or_create_preferences(session: AsyncSession, user_id: int) -> UserPreference:
    query = select(UserPreference).where(UserPreference.user_id == user_id)
    preferences = await session.scalar(query)
    if preferences:
        return preferences

    session.add(UserPreference(user_id=user_id))
    try:
        await session.commit()
    except IntegrityError:
        # Created by a concurrent request
        await session.rollback()
    return await session.scalar(query)

@router.get("/dashboard", response_model=SuccessResponse[DashboardResponse])
async def get_dashboard(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    user_db = await session.get(User, current_user_id(user))
    if not user_db:
        raise NotFoundException("User not found")

    return SuccessResponse(data=DashboardResponse(
        green_points=user_db.green_points,
        total_co2_saved=user_db.total_co2_saved,
        total_plastic_saved=user_db.total_plastic_saved,
        eco_products_purchased=await aggregator.eco_products_purchased(session, user_db.id),
        global_rank=await aggregator.global_rank(session, user_db),
        total_users=await aggregator.count_users(session),
    ))

@router.get("/preferences", response_model=SuccessResponse[PreferencesResponse])
async def get_preferences(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    preferences = await get_or_create_preferences(session, current_user_id(user))
    return SuccessResponse(data=PreferencesResponse.model_validate(preferences))

@router.put("/preferences", response_model=SuccessResponse[PreferencesResponse])
async def update_preferences(
    preferences_update: PreferencesUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    preferences = await get_or_create_preferences(session, current_user_id(user))

    update_data = {k: v for k, v in preferences_update.model_dump(exclude_unset=True).items() if v is not None}
    if update_data:
        for field, value in update_data.items():
            setattr(preferences, field, value)
        preferences.updated_at = datetime.utcnow()
        await session.commit()

    return SuccessResponse(data=PreferencesResponse.model_validate(preferences), message="Preferences updated")

@router.get("/leaderboard", response_model=SuccessResponse[List[LeaderboardEntry]])
@limiter.limit(PUBLIC_READ_LIMIT)
async def get_leaderboard(request: Request, session: AsyncSession = Depends(get_session)):
    users = await aggregator.leaderboard(session, settings.LEADERBOARD_SIZE)
    return SuccessResponse(data=[LeaderboardEntry.model_validate(u) for u in users])

@router.get("/cart-impact", response_model=SuccessResponse[CartImpactResponse])
async def get_cart_impact(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    lines = await load_cart(session, current_user_id(user))
    return SuccessResponse(data=aggregator.cart_impact(lines))
