import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from stock_management.models.product import Product
from stock_management.models.sale import Sale
from stock_management.schemas.stock import (
    Dashboard,
    DashboardSummary,
    RecentSale,
    StockOverviewItem,
    TopProduct,
)
from stock_management.utils.csv_io import write_stock_csv

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

TOP_PRODUCTS_LIMIT = 5
RECENT_SALES_LIMIT = 10

SORT_FIELDS = ("name", "category", "price", "available_stock", "items_sold", "revenue")


def _money(value) -> Decimal:
    # SQLite hands sums of NUMERIC back as floats
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


class ReportService:
    """
    Read-only views joining the catalog with the sales ledger.

    Revenue is always items sold times the product's *current* price, so a
    price change restates past revenue. Reads see committed data only and
    are not ordered against concurrent sells.
    """

    def __init__(self, db: Session):
        self.db = db

    def _overview_query(self):
        items_sold = func.coalesce(func.sum(Sale.quantity), 0).label("items_sold")
        revenue = func.coalesce(func.sum(Sale.quantity * Product.price), 0).label("revenue")

        query = (
            self.db.query(
                Product.id,
                Product.name,
                Product.category,
                Product.price,
                Product.quantity.label("available_stock"),
                items_sold,
                revenue,
            )
            .select_from(Product)
            .outerjoin(Sale, Sale.product_id == Product.id)
            .group_by(Product.id, Product.name, Product.category, Product.price, Product.quantity)
        )
        sort_columns = {
            "name": Product.name,
            "category": Product.category,
            "price": Product.price,
            "available_stock": Product.quantity,
            "items_sold": items_sold,
            "revenue": revenue,
        }
        return query, sort_columns

    @staticmethod
    def _to_item(row) -> StockOverviewItem:
        return StockOverviewItem(
            id=row.id,
            name=row.name,
            category=row.category,
            price=_money(row.price),
            available_stock=row.available_stock,
            items_sold=int(row.items_sold),
            revenue=_money(row.revenue),
        )

    def stock_overview(
        self,
        category: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: str = "asc",
    ) -> List[StockOverviewItem]:
        """
        Per-product available stock, items sold and revenue.

        Args:
            category: Only products in this category
            sort_by: One of SORT_FIELDS; anything else is ignored
            sort_order: "asc" or "desc" (case-insensitive); anything else means "asc"

        Returns:
            One item per product, including products that never sold
        """
        query, sort_columns = self._overview_query()

        if category:
            query = query.filter(Product.category == category)

        column = sort_columns.get(sort_by) if sort_by else None
        if column is not None:
            descending = (sort_order or "").lower() == "desc"
            query = query.order_by(column.desc() if descending else column.asc())
        query = query.order_by(Product.id)

        return [self._to_item(row) for row in query.all()]

    def dashboard(self) -> Dashboard:
        """Totals over the whole ledger and catalog, top sellers and latest sales."""
        sales_totals = (
            self.db.query(
                func.count(Sale.id).label("transactions"),
                func.coalesce(func.sum(Sale.quantity), 0).label("items_sold"),
                func.coalesce(func.sum(Sale.quantity * Product.price), 0).label("revenue"),
            )
            .select_from(Sale)
            .join(Product, Product.id == Sale.product_id)
            .one()
        )
        catalog_totals = self.db.query(
            func.count(Product.id).label("products"),
            func.coalesce(func.sum(Product.quantity), 0).label("available_stock"),
        ).one()

        summary = DashboardSummary(
            total_transactions=sales_totals.transactions,
            total_items_sold=int(sales_totals.items_sold),
            total_revenue=_money(sales_totals.revenue),
            total_products=catalog_totals.products,
            total_available_stock=int(catalog_totals.available_stock),
        )

        return Dashboard(
            summary=summary,
            top_products=self.top_products(),
            recent_sales=self.recent_sales(),
        )

    def top_products(self, limit: int = TOP_PRODUCTS_LIMIT) -> List[TopProduct]:
        """Best sellers by items sold; products without sales are left out."""
        query, sort_columns = self._overview_query()
        items_sold = sort_columns["items_sold"]
        rows = (
            query.having(func.sum(Sale.quantity) > 0)
            .order_by(items_sold.desc(), Product.id)
            .limit(limit)
            .all()
        )
        return [
            TopProduct(
                id=row.id,
                name=row.name,
                category=row.category,
                items_sold=int(row.items_sold),
                revenue=_money(row.revenue),
            )
            for row in rows
        ]

    def recent_sales(self, limit: int = RECENT_SALES_LIMIT) -> List[RecentSale]:
        """Latest sales, newest first, with the product name and line total."""
        rows = (
            self.db.query(
                Sale.id,
                Sale.product_id,
                Product.name,
                Sale.quantity,
                (Sale.quantity * Product.price).label("total_price"),
                Sale.date,
            )
            .select_from(Sale)
            .join(Product, Product.id == Sale.product_id)
            .order_by(Sale.date.desc(), Sale.id.desc())
            .limit(limit)
            .all()
        )
        return [
            RecentSale(
                id=row.id,
                product_id=row.product_id,
                name=row.name,
                quantity=row.quantity,
                total_price=_money(row.total_price),
                date=row.date,
            )
            for row in rows
        ]

    def export_stock_csv(self) -> str:
        """The full stock overview as a CSV document."""
        items = self.stock_overview()
        logger.info(f"Exporting stock overview ({len(items)} products)")
        return write_stock_csv(items)
