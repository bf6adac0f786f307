"""
Green points ledger.

Points and savings are credited once per order. ``points_credits.order_id``
is unique, so a retried or concurrent credit for the same order either finds
the existing row or fails the transaction; it never double counts.
"""

import logging
import math
from typing import Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecostore.auth.models import User
from ecostore.shared.utils import settings
from ecostore.sustainability.models import PointsCredit

logger = logging.getLogger("ecostore.sustainability")


def eco_points(eco_line_count: int) -> int:
    """Points earned for a number of eco-flagged lines (cart preview and credit alike)."""
    return math.floor(eco_line_count * settings.ECO_POINTS_PER_ITEM)


def order_credit(items: Sequence) -> Tuple[int, float, float]:
    """Points, CO2 and plastic credited for order items (each with a loaded ``product``)."""
    eco_items = [item for item in items if item.product.is_eco_friendly]
    co2 = sum(item.product.carbon_footprint * item.quantity for item in eco_items)
    plastic = sum(item.product.plastic_content * item.quantity for item in eco_items)
    return eco_points(len(eco_items)), round(co2, 2), round(plastic, 2)


async def find_credit(session: AsyncSession, order_id: int):
    return await session.scalar(select(PointsCredit).where(PointsCredit.order_id == order_id))


async def credit_order(session: AsyncSession, order) -> PointsCredit:
    """Credit ``order`` to its user. Does not commit; runs in the caller's transaction."""
    existing = await find_credit(session, order.id)
    if existing is not None:
        return existing

    points, co2, plastic = order_credit(order.items)
    credit = PointsCredit(
        order_id=order.id, user_id=order.user_id, points=points, co2_saved=co2, plastic_saved=plastic
    )
    session.add(credit)
    await session.execute(
        update(User)
        .where(User.id == order.user_id)
        .values(
            green_points=User.green_points + points,
            total_co2_saved=User.total_co2_saved + co2,
            total_plastic_saved=User.total_plastic_saved + plastic,
        )
        .execution_options(synchronize_session=False)
    )
    await session.flush()

    logger.info("points_credited", extra={"user_id": order.user_id, "order_id": order.id})
    return credit
