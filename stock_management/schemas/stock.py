from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stock_management.schemas.product import MAX_PRICE, Money


class SaleCreate(BaseModel):
    """Schema for recording a sale."""
    product_id: int = Field(..., description="ID of the product sold")
    quantity: int = Field(..., ge=1, description="Quantity sold")
    date: Optional[datetime] = Field(None, description="When the sale happened; defaults to now")


class SaleReceipt(BaseModel):
    """Result of a successful sale."""
    product_id: int
    name: str
    quantity_sold: int
    remaining_stock: int
    total_price: Money


class StockImportRow(BaseModel):
    """
    One row of a stock import, as read from CSV text.

    Numeric fields must be present: a blank price or quantity fails the row
    instead of being read as zero.
    """
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0, le=MAX_PRICE, max_digits=10, decimal_places=2)
    quantity: int = Field(..., ge=0)

    model_config = ConfigDict(str_strip_whitespace=True)


class ImportRowResult(BaseModel):
    """Outcome of one import row. ``row`` is 1-based over the data rows."""
    row: int
    name: Optional[str] = None
    category: Optional[str] = None
    status: Literal["created", "updated", "failed"]
    product_id: Optional[int] = None
    error: Optional[str] = None


class ImportSummary(BaseModel):
    """Accumulated result of a stock import."""
    total: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    results: list[ImportRowResult] = Field(default_factory=list)


class ImportQueued(BaseModel):
    """Response for an import handed to the background worker."""
    task_id: str
    status: str = "queued"


class StockOverviewItem(BaseModel):
    """Per-product stock and sales figures."""
    id: int
    name: str
    category: str
    price: Money
    available_stock: int
    items_sold: int
    revenue: Money


class DashboardSummary(BaseModel):
    total_transactions: int
    total_items_sold: int
    total_revenue: Money
    total_products: int
    total_available_stock: int


class TopProduct(BaseModel):
    id: int
    name: str
    category: str
    items_sold: int
    revenue: Money


class RecentSale(BaseModel):
    id: int
    product_id: int
    name: str
    quantity: int
    total_price: Money
    date: datetime


class Dashboard(BaseModel):
    """Sales dashboard: totals, best sellers and latest sales."""
    summary: DashboardSummary
    top_products: list[TopProduct] = Field(default_factory=list, serialization_alias="topProducts")
    recent_sales: list[RecentSale] = Field(default_factory=list, serialization_alias="recentSales")
