from pydantic import Field
from typing import Optional, List
from decimal import Decimal
from datetime import datetime

from ecostore.orders.models import OrderStatus
from ecostore.products.schemas import ProductResponse
from ecostore.shared.utils import CamelModel

class CartItemAdd(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=1)

class CartItemUpdate(CamelModel):
    quantity: int = Field(..., ge=1)

class CartItemResponse(CamelModel):
    id: int
    product_id: int
    quantity: int
    created_at: datetime
    product: ProductResponse

class CartResponse(CamelModel):
    items: List[CartItemResponse]
    total: Decimal

class OrderStatusUpdate(CamelModel):
    status: OrderStatus

class OrderItemResponse(CamelModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    product: ProductResponse

class OrderResponse(CamelModel):
    id: int
    user_id: int
    items: List[OrderItemResponse]
    total: Decimal
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
