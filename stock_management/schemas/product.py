from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

MAX_PRICE = Decimal("99999999.99")

# Decimal inside the service, a plain number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    category: str = Field(..., min_length=1, max_length=100, description="Product category")
    price: Money = Field(
        ..., ge=0, le=MAX_PRICE, max_digits=10, decimal_places=2,
        description="Unit price (non-negative, two decimals)"
    )
    quantity: int = Field(..., ge=0, description="Available stock (must be non-negative)")
    description: Optional[str] = Field(None, description="Free-text description")

    model_config = ConfigDict(str_strip_whitespace=True)


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    pass


class ProductUpdate(BaseModel):
    """Schema for updating an existing product. All fields are optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Product name")
    category: Optional[str] = Field(None, min_length=1, max_length=100, description="Product category")
    price: Optional[Money] = Field(None, ge=0, le=MAX_PRICE, max_digits=10, decimal_places=2)
    quantity: Optional[int] = Field(None, ge=0, description="Available stock")
    description: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class ProductResponse(ProductBase):
    """Schema for product response including all fields."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
