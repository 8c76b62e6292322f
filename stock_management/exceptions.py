"""
Typed errors raised by the stock services.

Callers catch by type and read ``code`` for a machine-readable kind:

    StockError
    +-- ProductNotFoundError    referenced product does not exist
    +-- InsufficientStockError  sell quantity exceeds available stock
    +-- InvalidInputError       non-positive quantity, malformed row or file
    +-- StorageFailureError     backing store failed; unit of work rolled back

``status_code`` is the HTTP status the API layer answers with.
"""
from typing import Optional


class StockError(Exception):
    """Base class for every error the stock services raise."""
    code = "STOCK_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProductNotFoundError(StockError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found")
        self.product_id = product_id


class InsufficientStockError(StockError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock. Available: {available}, Requested: {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidInputError(StockError):
    code = "INVALID_INPUT"
    status_code = 400


class StorageFailureError(StockError):
    code = "STORAGE_FAILURE"
    status_code = 503

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
