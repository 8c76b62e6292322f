import logging

from stock_management.config import get_settings
from stock_management.database import Database
from stock_management.exceptions import StorageFailureError
from stock_management.services.stock_service import StockService
from stock_management.tasks.celery_app import celery_app
from stock_management.utils.csv_io import read_stock_csv

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="import_stock_csv", max_retries=3)
def import_stock_csv(self, csv_text: str) -> dict:
    """
    Background task to reconcile a CSV file against the catalog.

    Runs the same per-row import as the synchronous endpoint. The worker
    opens its own database handle for the run and closes it afterwards.

    Args:
        csv_text: Decoded CSV document with a header row

    Returns:
        The import summary as a JSON-ready dictionary
    """
    rows = read_stock_csv(csv_text)
    logger.info(f"Starting background import of {len(rows)} rows (task {self.request.id})")

    with Database(get_settings().DATABASE_URL) as database:
        db = database.session()
        try:
            summary = StockService(db).import_rows(rows)
        except StorageFailureError as e:
            logger.error(f"Background import failed: {e}")
            raise self.retry(exc=e, countdown=60)
        finally:
            db.close()

    logger.info(f"Background import done: {summary.created} created, {summary.updated} updated, {summary.failed} failed")
    return summary.model_dump(mode="json")
