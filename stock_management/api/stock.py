from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional

from stock_management.database import get_db
from stock_management.exceptions import InsufficientStockError, InvalidInputError, ProductNotFoundError
from stock_management.schemas.stock import (
    Dashboard,
    ImportQueued,
    ImportSummary,
    SaleCreate,
    SaleReceipt,
    StockOverviewItem,
)
from stock_management.services.report_service import ReportService
from stock_management.services.stock_service import StockService
from stock_management.tasks.import_tasks import import_stock_csv
from stock_management.utils.csv_io import decode_csv_upload, read_stock_csv

router = APIRouter(prefix="/stock", tags=["Stock"])

CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def csv_upload(
    csv: Optional[UploadFile] = File(None, description="CSV file"),
    file: Optional[UploadFile] = File(None, description="CSV file (alternative field name)"),
) -> str:
    """Accept a CSV upload sent as `csv` or `file` and return its text."""
    upload = csv if csv is not None else file
    if upload is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded"
        )

    filename = (upload.filename or "").lower()
    if upload.content_type not in CSV_CONTENT_TYPES and not filename.endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed"
        )
    try:
        return decode_csv_upload(upload.file.read())
    except InvalidInputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get(
    "/",
    response_model=List[StockOverviewItem],
    summary="Stock overview",
    description="""
    Available stock, items sold and revenue for every product.

    Revenue is computed with each product's current price.
    Unknown `sort_by` values are ignored.
    """
)
def stock_overview(
    category: Optional[str] = Query(None, description="Filter by category"),
    sort_by: Optional[str] = Query(
        None,
        description="name, category, price, available_stock, items_sold or revenue"
    ),
    sort_order: str = Query("asc", description="asc or desc"),
    db: Session = Depends(get_db)
):
    """Get the stock overview."""
    return ReportService(db).stock_overview(category, sort_by, sort_order)


@router.get(
    "/export",
    summary="Export stock to CSV",
    description="Download the stock overview as a CSV file.",
    response_class=Response,
)
def export_stock(db: Session = Depends(get_db)):
    """Export the stock overview."""
    content = ReportService(db).export_stock_csv()
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="stock_export.csv"'},
    )


@router.post(
    "/import",
    response_model=ImportSummary,
    summary="Import stock from CSV",
    description="""
    Upload a CSV file with `name`, `category`, `price` and `quantity` columns.

    Rows are matched to existing products by (name, category): matches get
    their price and quantity overwritten, new pairs become new products.
    Each row is applied on its own; the response lists the outcome of every
    row, so a partial import is visible.
    """
)
def import_stock(
    text: str = Depends(csv_upload),
    db: Session = Depends(get_db)
):
    """Import stock synchronously."""
    try:
        rows = read_stock_csv(text)
        return StockService(db).import_rows(rows)
    except InvalidInputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post(
    "/import/async",
    response_model=ImportQueued,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Import stock from CSV in the background",
    description="Validate the CSV header, then hand the import to a Celery worker."
)
def import_stock_async(text: str = Depends(csv_upload)):
    """Queue an import and return the Celery task id."""
    try:
        read_stock_csv(text)
    except InvalidInputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = import_stock_csv.delay(text)
    return ImportQueued(task_id=result.id)


@router.post(
    "/sell",
    response_model=SaleReceipt,
    status_code=status.HTTP_201_CREATED,
    summary="Record a sale",
    description="""
    Decrement a product's stock and record the sale, atomically.

    **Concurrency:**
    The product row is locked for the duration of the sale. When two sales
    of the same product race for the last items, one succeeds and the other
    receives a 400 error with an 'Insufficient stock' message.
    """
)
def sell(
    sale_data: SaleCreate,
    db: Session = Depends(get_db)
):
    """
    Sell a product.

    - **product_id**: ID of the product sold (required)
    - **quantity**: Number of items sold, at least 1 (required)
    - **date**: Sale timestamp (optional, defaults to now)
    """
    service = StockService(db)

    try:
        return service.sell(sale_data.product_id, sale_data.quantity, sale_data.date)
    except ProductNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except (InsufficientStockError, InvalidInputError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get(
    "/dashboard",
    response_model=Dashboard,
    summary="Sales dashboard",
    description="Ledger and catalog totals, the 5 best sellers and the 10 latest sales."
)
def dashboard(db: Session = Depends(get_db)):
    """Get the sales dashboard."""
    return ReportService(db).dashboard()
