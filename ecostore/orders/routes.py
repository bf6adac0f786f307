from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from typing import List
import logging

from ecostore.shared.database import get_session
from ecostore.shared.utils import (
    SuccessResponse, AppException, NotFoundException, get_current_user, current_user_id
)

from ecostore.orders import engine
from ecostore.orders.models import CartItem
from ecostore.orders.schemas import (
    CartItemAdd, CartItemUpdate, CartItemResponse, CartResponse,
    OrderResponse, OrderStatusUpdate
)
from ecostore.products.models import Product

logger = logging.getLogger("ecostore.orders")

cart_router = APIRouter(prefix="/cart", tags=["cart"])
router = APIRouter(prefix="/orders", tags=["orders"])

# --- Helpers ---

async def get_cart_line(session: AsyncSession, user_id: int, item_id: int) -> CartItem:
    result = await session.execute(
        select(CartItem)
        .options(selectinload(CartItem.product))
        .where(CartItem.id == item_id, CartItem.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    line = result.scalar_one_or_none()
    if not line:
        raise NotFoundException("Cart item not found")
    return line

async def find_cart_line_for_product(session: AsyncSession, user_id: int, product_id: int) -> CartItem:
    result = await session.execute(
        select(CartItem)
        .options(selectinload(CartItem.product))
        .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()

async def increment_cart_line(session: AsyncSession, user_id: int, product_id: int, quantity: int) -> bool:
    result = await session.execute(
        update(CartItem)
        .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        .values(quantity=CartItem.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

# --- Cart ---

@cart_router.get("", response_model=SuccessResponse[CartResponse])
async def get_cart(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    lines = await engine.load_cart(session, current_user_id(user))
    return SuccessResponse(data=CartResponse(
        items=[CartItemResponse.model_validate(line) for line in lines],
        total=engine.order_total(lines)
    ))

@cart_router.post("", response_model=SuccessResponse[CartItemResponse], status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item: CartItemAdd,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user_id = current_user_id(user)

    product = await session.get(Product, item.product_id)
    if not product:
        raise NotFoundException("Product not found")
    if product.stock < item.quantity:
        raise AppException(detail=f"Insufficient stock: only {product.stock} left")

    # Plain id: a rollback below expires the product row
    product_id = product.id

    # Adding a product already in the cart increases its quantity
    try:
        if not await increment_cart_line(session, user_id, product_id, item.quantity):
            session.add(CartItem(user_id=user_id, product_id=product_id, quantity=item.quantity))
        await session.commit()
    except IntegrityError:
        # Lost the race to create the line; it exists now
        await session.rollback()
        await increment_cart_line(session, user_id, product_id, item.quantity)
        await session.commit()

    line = await find_cart_line_for_product(session, user_id, product_id)
    return SuccessResponse(data=CartItemResponse.model_validate(line), message="Item added to cart")

@cart_router.put("/{item_id}", response_model=SuccessResponse[CartItemResponse])
async def update_cart_item(
    item_id: int,
    update_data: CartItemUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    line = await get_cart_line(session, current_user_id(user), item_id)

    # Checked against current stock; cart lines do not reserve anything
    if line.product.stock < update_data.quantity:
        raise AppException(detail=f"Insufficient stock: only {line.product.stock} left")

    line.quantity = update_data.quantity
    await session.commit()
    return SuccessResponse(data=CartItemResponse.model_validate(line), message="Cart item updated")

@cart_router.delete("/{item_id}", response_model=SuccessResponse[dict])
async def remove_cart_item(
    item_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    line = await get_cart_line(session, current_user_id(user), item_id)
    await session.delete(line)
    await session.commit()
    return SuccessResponse(data={"id": item_id}, message="Item removed from cart")

@cart_router.delete("", response_model=SuccessResponse[dict])
async def clear_cart(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    await session.execute(delete(CartItem).where(CartItem.user_id == current_user_id(user)))
    await session.commit()
    return SuccessResponse(message="Cart cleared successfully")

# --- Orders ---

@router.get("", response_model=SuccessResponse[List[OrderResponse]])
async def list_orders(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    orders = await engine.list_orders(session, current_user_id(user))
    return SuccessResponse(data=[OrderResponse.model_validate(o) for o in orders])

@router.get("/{order_id}", response_model=SuccessResponse[OrderResponse])
async def get_order(order_id: int, user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    order = await engine.get_order(session, current_user_id(user), order_id)
    return SuccessResponse(data=OrderResponse.model_validate(order))

@router.post("", response_model=SuccessResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
async def create_order(user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    order = await engine.place_order(session, current_user_id(user))
    return SuccessResponse(data=OrderResponse.model_validate(order), message="Order created successfully")

@router.put("/{order_id}", response_model=SuccessResponse[OrderResponse])
async def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    order = await engine.update_order_status(session, user, order_id, status_update.status)
    if order is None:
        return SuccessResponse(message="Order cancelled successfully")
    return SuccessResponse(data=OrderResponse.model_validate(order), message="Order status updated")

@router.delete("/{order_id}", response_model=SuccessResponse[dict])
async def cancel_order(order_id: int, user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    await engine.cancel_order(session, current_user_id(user), order_id)
    return SuccessResponse(data={"id": order_id}, message="Order cancelled successfully")
