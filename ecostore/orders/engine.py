"""
Order engine.

Checkout turns a cart into an order and cancellation turns a pending order
back into stock. Each runs as one transaction on the caller's session: on any
failure the session is rolled back and the exception propagates, so stock,
cart and order tables are left exactly as they were.

Stock is only ever decremented with a conditional UPDATE
(``stock = stock - q WHERE stock >= q``). A concurrent checkout that consumed
the stock after this request's validation makes the predicate false, the
update touches no row and the whole checkout aborts. Stock cannot go below
zero even when two requests validate against the same stale value.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from fastapi import status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ecostore.orders.models import CartItem, Order, OrderItem, OrderStatus
from ecostore.products.models import Product
from ecostore.shared.utils import (
    AppException, ForbiddenException, NotFoundException, current_user_id, settings
)
from ecostore.sustainability.ledger import credit_order

logger = logging.getLogger("ecostore.orders")

# Declared status transitions; anything else is rejected.
# ``cancelled`` is always routed through cancel_order, which restores stock.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class EmptyCartError(AppException):
    def __init__(self):
        super().__init__(detail="Cart is empty")


class InsufficientStockError(AppException):
    def __init__(self, product_name: str):
        super().__init__(detail=f"Insufficient stock for {product_name}")
        self.product_name = product_name


class OrderStateError(AppException):
    def __init__(self, detail: str):
        super().__init__(detail=detail)


# --- Reads ---

async def load_cart(session: AsyncSession, user_id: int) -> List[CartItem]:
    result = await session.execute(
        select(CartItem)
        .options(selectinload(CartItem.product))
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _order_query():
    return (
        select(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .execution_options(populate_existing=True)
    )


async def find_order(session: AsyncSession, order_id: int, user_id: Optional[int] = None) -> Optional[Order]:
    """Load an order with items and products; ``user_id`` restricts to that owner."""
    query = _order_query().where(Order.id == order_id)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    return (await session.execute(query)).scalar_one_or_none()


async def get_order(session: AsyncSession, user_id: int, order_id: int) -> Order:
    order = await find_order(session, order_id, user_id)
    if order is None:
        # Other users' orders are reported as missing too
        raise NotFoundException("Order not found")
    return order


async def list_orders(session: AsyncSession, user_id: int) -> List[Order]:
    result = await session.execute(
        _order_query().where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(result.scalars().all())


# --- Checkout ---

def validate_stock(lines: Sequence[CartItem]) -> None:
    for line in lines:
        if line.product.stock < line.quantity:
            raise InsufficientStockError(line.product.name)


def order_total(lines: Sequence[CartItem]) -> Decimal:
    return sum((line.product.price * line.quantity for line in lines), Decimal("0"))


async def decrement_stock(session: AsyncSession, product: Product, quantity: int) -> None:
    result = await session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(product.name)


async def restore_stock(session: AsyncSession, product_id: int, quantity: int) -> None:
    await session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )


async def place_order(session: AsyncSession, user_id: int) -> Order:
    lines = await load_cart(session, user_id)
    if not lines:
        raise EmptyCartError()

    # Every line is checked before the first write
    validate_stock(lines)
    total = order_total(lines)

    try:
        # Rows are locked in product id order so concurrent checkouts cannot deadlock
        for line in sorted(lines, key=lambda l: l.product_id):
            await decrement_stock(session, line.product, line.quantity)

        order = Order(
            user_id=user_id,
            total=total,
            status=OrderStatus.PENDING.value,
            items=[
                OrderItem(product_id=line.product_id, quantity=line.quantity, price=line.product.price)
                for line in lines
            ],
        )
        session.add(order)

        cleared = await session.execute(
            delete(CartItem)
            .where(CartItem.user_id == user_id, CartItem.id.in_([line.id for line in lines]))
            .execution_options(synchronize_session=False)
        )
        if cleared.rowcount != len(lines):
            raise AppException(status.HTTP_409_CONFLICT, "Cart changed during checkout")

        await session.flush()
        order_id = order.id
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("order_placed", extra={"user_id": user_id, "order_id": order_id})
    return await get_order(session, user_id, order_id)


# --- Cancellation ---

async def cancel_order(session: AsyncSession, user_id: int, order_id: int) -> None:
    order = await get_order(session, user_id, order_id)
    if order.status != OrderStatus.PENDING.value:
        raise OrderStateError("Can only cancel pending orders")

    try:
        # Claim the order first so a concurrent status change cannot slip in
        claimed = await session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING.value)
            .values(status=OrderStatus.CANCELLED.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise OrderStateError("Can only cancel pending orders")

        for item in sorted(order.items, key=lambda i: i.product_id):
            await restore_stock(session, item.product_id, item.quantity)

        await session.delete(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("order_cancelled", extra={"user_id": user_id, "order_id": order_id})


# --- Status transitions ---

async def update_order_status(
    session: AsyncSession, actor: dict, order_id: int, target: OrderStatus
) -> Optional[Order]:
    """Move an order to ``target``; returns None when the order was cancelled (and removed).

    Owners may only cancel. Advancing an order is an admin action and admins
    may act on any order.
    """
    actor_id = current_user_id(actor)
    is_admin = actor.get("role") == "admin"

    order = await find_order(session, order_id, None if is_admin else actor_id)
    if order is None:
        raise NotFoundException("Order not found")

    if target == OrderStatus.CANCELLED:
        await cancel_order(session, order.user_id, order.id)
        return None

    if not is_admin:
        raise ForbiddenException("Only admins can advance order status")

    current = OrderStatus(order.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise OrderStateError(f"Cannot change order status from {current.value} to {target.value}")

    try:
        changed = await session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current.value)
            .values(status=target.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if changed.rowcount != 1:
            raise OrderStateError("Order status changed concurrently")

        if settings.POINTS_CREDIT_STATUS and target.value == settings.POINTS_CREDIT_STATUS:
            await credit_order(session, order)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "order_status_changed %s -> %s", current.value, target.value,
        extra={"user_id": actor_id, "order_id": order.id},
    )
    return await find_order(session, order.id)
