from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional
import logging

from ecostore.shared.database import get_session
from ecostore.shared.utils import (
    SuccessResponse, AppException, NotFoundException, require_admin
)
from ecostore.shared.security_config import limiter, PUBLIC_READ_LIMIT

from ecostore.orders.models import CartItem, OrderItem
from ecostore.products.models import Product
from ecostore.products.schemas import (
    ProductCreate, ProductUpdate, ProductResponse, ProductListResponse
)

logger = logging.getLogger("ecostore.products")

router = APIRouter(prefix="/products", tags=["products"])

NULLABLE_FIELDS = {"image_url"}

async def get_product_or_404(session: AsyncSession, product_id: int) -> Product:
    product = await session.get(Product, product_id, populate_existing=True)
    if not product:
        raise NotFoundException("Product not found")
    return product

# --- Public catalog ---

@router.get("", response_model=SuccessResponse[ProductListResponse])
@limiter.limit(PUBLIC_READ_LIMIT)
async def list_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    query = select(Product)
    if category:
        query = query.where(Product.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

    total = await session.scalar(select(func.count()).select_from(query.subquery()))
    skip = (page - 1) * limit
    result = await session.execute(
        query.order_by(Product.created_at.desc(), Product.id.desc()).offset(skip).limit(limit)
    )
    products = [ProductResponse.model_validate(p) for p in result.scalars().all()]

    return SuccessResponse(data=ProductListResponse(
        products=products,
        total=total,
        page=page,
        limit=limit
    ))

@router.get("/{product_id}", response_model=SuccessResponse[ProductResponse])
@limiter.limit(PUBLIC_READ_LIMIT)
async def get_product(request: Request, product_id: int, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    return SuccessResponse(data=ProductResponse.model_validate(product))

# --- Admin ---

@router.post("", response_model=SuccessResponse[ProductResponse], status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    product_db = Product(**product.model_dump())
    session.add(product_db)
    await session.commit()

    logger.info("product_created", extra={"user_id": user["sub"], "product_id": product_db.id})
    return SuccessResponse(data=ProductResponse.model_validate(product_db), message="Product created successfully")

@router.put("/{product_id}", response_model=SuccessResponse[ProductResponse])
async def update_product(
    product_id: int,
    product_update: ProductUpdate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    product = await get_product_or_404(session, product_id)

    # An explicit null only clears nullable columns; elsewhere it is ignored
    update_data = {
        k: v for k, v in product_update.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    if update_data:
        for field, value in update_data.items():
            setattr(product, field, value)
        product.updated_at = datetime.utcnow()
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    logger.info("product_updated", extra={"user_id": user["sub"], "product_id": product.id})
    return SuccessResponse(data=ProductResponse.model_validate(product), message="Product updated successfully")

@router.delete("/{product_id}", response_model=SuccessResponse[dict])
async def delete_product(
    product_id: int,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    product = await get_product_or_404(session, product_id)

    # Historical orders keep a reference to the product
    ordered = await session.scalar(
        select(func.count(OrderItem.id)).where(OrderItem.product_id == product.id)
    )
    if ordered:
        raise AppException(detail="Cannot delete a product that appears in orders")

    try:
        await session.execute(delete(CartItem).where(CartItem.product_id == product.id))
        await session.delete(product)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("product_deleted", extra={"user_id": user["sub"], "product_id": product_id})
    return SuccessResponse(data={"id": product_id}, message="Product deleted successfully")
