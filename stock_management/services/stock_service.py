import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.orm import Session

from stock_management.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    ProductNotFoundError,
)
from stock_management.models.product import Product
from stock_management.models.sale import Sale
from stock_management.schemas.stock import ImportRowResult, ImportSummary, SaleReceipt, StockImportRow
from stock_management.services.product_service import ProductService
from stock_management.utils.transactions import UnitOfWork, run_unit_of_work

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    """Normalise a timestamp to UTC; naive values are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "row"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)


class StockService:
    """
    The only writer of stock quantities and the sales ledger.

    SELL
    ====
    A sale is one unit of work:

    1. Lock the product row (FOR UPDATE, or BEGIN IMMEDIATE on SQLite)
    2. Check the requested quantity against the current stock
    3. Decrement the stock
    4. Append the sale to the ledger
    5. Commit both together

    Concurrent sells of the same product queue on the lock, so the second
    one sees the first one's decrement and fails with InsufficientStockError
    if the remainder is too small. Stock never goes negative. Sells of
    different products don't contend.

    IMPORT
    ======
    Rows are reconciled against the catalog by (name, category), one unit
    of work per row. A bad row is reported and skipped; rows already
    applied stay applied. The summary lists the outcome of every row.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = None):
        self.db = db
        self._clock = clock or _utcnow

    def sell(self, product_id: int, quantity: int, sold_at: Optional[datetime] = None) -> SaleReceipt:
        """
        Record a sale and decrement the product's stock atomically.

        Args:
            product_id: ID of the product sold
            quantity: Number of items sold (positive integer)
            sold_at: Sale timestamp; defaults to the service clock's "now".
                Stored in UTC; a naive value is read as UTC

        Returns:
            Receipt with the remaining (post-sale) stock and the total price
            at the current unit price

        Raises:
            InvalidInputError: If quantity is not a positive integer
            ProductNotFoundError: If product doesn't exist
            InsufficientStockError: If not enough stock available
            StorageFailureError: If the store failed; nothing was changed
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInputError(f"Quantity must be a positive integer, got {quantity!r}")

        def work(uow: UnitOfWork) -> SaleReceipt:
            product = uow.locked(self.db.query(Product).filter(Product.id == product_id)).first()

            if not product:
                raise ProductNotFoundError(product_id)

            # Check stock availability (inside the lock)
            if product.quantity < quantity:
                raise InsufficientStockError(product_id, product.quantity, quantity)

            product.quantity -= quantity
            sale_date = _as_utc(sold_at or self._clock())
            uow.add(Sale(product_id=product.id, quantity=quantity, date=sale_date))
            uow.flush()

            return SaleReceipt(
                product_id=product.id,
                name=product.name,
                quantity_sold=quantity,
                remaining_stock=product.quantity,
                total_price=product.price * quantity,
            )

        try:
            receipt = run_unit_of_work(self.db, work)
        except (ProductNotFoundError, InsufficientStockError) as e:
            logger.warning(f"Sale of {quantity} x product #{product_id} rejected: {e}")
            raise

        ProductService.invalidate([product_id])
        logger.info(
            f"Sold {quantity} x product #{product_id}, "
            f"{receipt.remaining_stock} left, total {receipt.total_price}"
        )
        return receipt

    def import_rows(self, rows: Sequence[Mapping]) -> ImportSummary:
        """
        Reconcile imported rows against the catalog.

        Each row is matched by (name, category). A match gets its price and
        quantity overwritten; otherwise a new product is created with no
        description. Rows apply in order, so a repeated key ends with the
        last row's values.

        Args:
            rows: Mappings with name, category, price and quantity

        Returns:
            Summary with per-row results

        Raises:
            InvalidInputError: If any row is not a mapping (nothing is applied)
            StorageFailureError: If the store failed; rows before the failing
                one stay applied, and re-running the import is safe
        """
        rows = list(rows)
        for index, raw in enumerate(rows, start=1):
            if not isinstance(raw, Mapping):
                raise InvalidInputError(f"Row {index} is not a record: {raw!r}")

        summary = ImportSummary(total=len(rows))
        touched: list[int] = []

        try:
            for index, raw in enumerate(rows, start=1):
                result = self._import_row(index, raw)
                summary.results.append(result)
                if result.status == "failed":
                    summary.failed += 1
                    logger.warning(f"Import row {index} failed: {result.error}")
                    continue
                touched.append(result.product_id)
                if result.status == "created":
                    summary.created += 1
                else:
                    summary.updated += 1
        finally:
            # Committed rows stay committed even when a later row aborts the run
            ProductService.invalidate(touched, categories=True)

        logger.info(
            f"Import finished: {summary.total} rows, {summary.created} created, "
            f"{summary.updated} updated, {summary.failed} failed"
        )
        return summary

    def _import_row(self, index: int, raw: Mapping) -> ImportRowResult:
        try:
            row = StockImportRow.model_validate(dict(raw))
        except ValidationError as e:
            return ImportRowResult(
                row=index,
                name=_text_or_none(raw.get("name")),
                category=_text_or_none(raw.get("category")),
                status="failed",
                error=_describe_validation_error(e),
            )

        def work(uow: UnitOfWork) -> ImportRowResult:
            query = (
                self.db.query(Product)
                .filter(Product.name == row.name, Product.category == row.category)
                .order_by(Product.id)
            )
            product = uow.locked(query).first()

            if product:
                product.price = row.price
                product.quantity = row.quantity
                status = "updated"
            else:
                product = Product(
                    name=row.name,
                    category=row.category,
                    price=row.price,
                    quantity=row.quantity,
                    description=None,
                )
                uow.add(product)
                status = "created"

            uow.flush()
            return ImportRowResult(
                row=index,
                name=row.name,
                category=row.category,
                status=status,
                product_id=product.id,
            )

        try:
            return run_unit_of_work(self.db, work)
        except InvalidInputError as e:
            return ImportRowResult(
                row=index,
                name=row.name,
                category=row.category,
                status="failed",
                error=e.message,
            )


def _text_or_none(value) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None
