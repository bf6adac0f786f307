"""
Read-side sustainability figures: rank, leaderboard, purchase counts and cart impact.

Ranking uses the total order (green_points desc, id asc). Rank is computed in
the database as one plus the number of users ahead, so a request never loads
the user table.
"""

from typing import List, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecostore.auth.models import User
from ecostore.orders.models import Order, OrderItem
from ecostore.products.models import Product
from ecostore.sustainability.ledger import eco_points
from ecostore.sustainability.schemas import CartImpactResponse


async def global_rank(session: AsyncSession, user: User) -> int:
    ahead = await session.scalar(
        select(func.count(User.id)).where(
            or_(
                User.green_points > user.green_points,
                and_(User.green_points == user.green_points, User.id < user.id),
            )
        )
    )
    return ahead + 1


async def count_users(session: AsyncSession) -> int:
    return await session.scalar(select(func.count(User.id)))


async def eco_products_purchased(session: AsyncSession, user_id: int) -> int:
    """Order lines across all of the user's orders whose product is eco-flagged."""
    return await session.scalar(
        select(func.count(OrderItem.id))
        .join(Order, OrderItem.order_id == Order.id)
        .join(Product, OrderItem.product_id == Product.id)
        .where(Order.user_id == user_id, Product.is_eco_friendly.is_(True))
    )


async def leaderboard(session: AsyncSession, size: int) -> List[User]:
    result = await session.execute(
        select(User).order_by(User.green_points.desc(), User.id.asc()).limit(size)
    )
    return list(result.scalars().all())


def cart_impact(lines: Sequence) -> CartImpactResponse:
    """Footprint of the cart lines and the points they would earn. Mutates nothing."""
    total_co2 = sum(line.product.carbon_footprint * line.quantity for line in lines)
    total_plastic = sum(line.product.plastic_content * line.quantity for line in lines)
    eco_count = sum(1 for line in lines if line.product.is_eco_friendly)
    total_items = len(lines)

    return CartImpactResponse(
        total_co2=round(total_co2, 2),
        total_plastic=round(total_plastic, 2),
        eco_friendly_items=eco_count,
        total_items=total_items,
        potential_green_points=eco_points(eco_count),
        eco_percentage=round(eco_count / total_items * 100, 1) if total_items else 0.0,
    )
