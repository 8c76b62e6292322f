"""
CSV in and out of the stock engine.

Import files need a header row with at least ``name``, ``category``,
``price`` and ``quantity`` (any order, any case, extra columns ignored).
Values stay text here; StockService validates them row by row.
"""
import csv
import io
from typing import Iterable

from stock_management.exceptions import InvalidInputError

REQUIRED_COLUMNS = ("name", "category", "price", "quantity")

EXPORT_HEADER = ("ID", "Name", "Category", "Price", "Available Stock", "Items Sold", "Revenue")


def decode_csv_upload(data: bytes) -> str:
    """Decode an uploaded file as UTF-8, dropping a BOM if present."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InvalidInputError(f"CSV file is not valid UTF-8: {e}") from e


def read_stock_csv(text: str) -> list[dict[str, str]]:
    """
    Parse CSV text into one dict per data row, keyed by lower-cased header.

    Raises InvalidInputError when the text cannot be read as rows at all:
    no header, required columns missing, or broken quoting.
    """
    reader = csv.DictReader(io.StringIO(text, newline=""))
    try:
        if not reader.fieldnames:
            raise InvalidInputError("CSV file is empty")

        columns = [(field or "").strip().lower() for field in reader.fieldnames]
        missing = [column for column in REQUIRED_COLUMNS if column not in columns]
        if missing:
            raise InvalidInputError(f"CSV is missing required columns: {', '.join(missing)}")

        reader.fieldnames = columns
        return [
            {key: value for key, value in row.items() if key is not None}
            for row in reader
        ]
    except csv.Error as e:
        raise InvalidInputError(f"Malformed CSV at line {reader.line_num}: {e}") from e


def write_stock_csv(items: Iterable) -> str:
    """Render stock overview items as a CSV document."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADER)
    for item in items:
        writer.writerow([
            item.id,
            item.name,
            item.category,
            f"{item.price:.2f}",
            item.available_stock,
            item.items_sold,
            f"{item.revenue:.2f}",
        ])
    return buffer.getvalue()
