from pydantic import Field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime

from ecostore.shared.utils import CamelModel
from ecostore.shared.security_config import sanitize_input

class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=80)
    image_url: Optional[str] = None
    stock: int = Field(0, ge=0)
    is_eco_friendly: bool = False
    carbon_footprint: float = Field(0.0, ge=0)
    plastic_content: float = Field(0.0, ge=0)

    @field_validator('name', 'description', 'category')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1, max_length=80)
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    is_eco_friendly: Optional[bool] = None
    carbon_footprint: Optional[float] = Field(None, ge=0)
    plastic_content: Optional[float] = Field(None, ge=0)

    @field_validator('name', 'description', 'category')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class ProductResponse(CamelModel):
    id: int
    name: str
    description: str
    price: Decimal
    category: str
    image_url: Optional[str] = None
    stock: int
    is_eco_friendly: bool
    carbon_footprint: float
    plastic_content: float
    created_at: datetime
    updated_at: Optional[datetime] = None

class ProductListResponse(CamelModel):
    products: List[ProductResponse]
    total: int
    page: int
    limit: int
