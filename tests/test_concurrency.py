"""Concurrent sells against a file-backed SQLite database."""
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from stock_management.database import Database
from stock_management.exceptions import InsufficientStockError
from stock_management.models.product import Product
from stock_management.models.sale import Sale
from stock_management.schemas.product import ProductCreate
from stock_management.services.product_service import ProductService
from stock_management.services.stock_service import StockService


@pytest.fixture
def file_database(tmp_path):
    database = Database(
        f"sqlite:///{tmp_path / 'stock.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    ).open()
    database.create_tables()
    yield database
    database.close()


def _seed(database, quantity):
    session = database.session()
    try:
        product = ProductService(session).create(
            ProductCreate(name="Last Items", category="Sale", price=Decimal("5.00"), quantity=quantity)
        )
        return product.id
    finally:
        session.close()


def _race(database, product_id, quantities):
    barrier = threading.Barrier(len(quantities))

    def attempt(quantity):
        session = database.session()
        try:
            barrier.wait()
            StockService(session).sell(product_id, quantity)
            return "sold"
        except InsufficientStockError:
            return "insufficient"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(quantities)) as pool:
        return list(pool.map(attempt, quantities))


def _state(database, product_id):
    session = database.session()
    try:
        quantity = session.get(Product, product_id).quantity
        sales = session.query(Sale).filter(Sale.product_id == product_id).count()
        return quantity, sales
    finally:
        session.close()


def test_two_sells_that_jointly_exceed_stock(file_database):
    """Each sell of 3 fits into 5, both together don't: exactly one wins."""
    product_id = _seed(file_database, quantity=5)

    outcomes = _race(file_database, product_id, [3, 3])

    assert sorted(outcomes) == ["insufficient", "sold"]
    assert _state(file_database, product_id) == (2, 1)


def test_many_buyers_for_the_last_item(file_database):
    product_id = _seed(file_database, quantity=1)

    outcomes = _race(file_database, product_id, [1] * 8)

    assert outcomes.count("sold") == 1
    assert outcomes.count("insufficient") == 7
    assert _state(file_database, product_id) == (0, 1)


def test_sells_that_fit_all_succeed(file_database):
    product_id = _seed(file_database, quantity=10)

    outcomes = _race(file_database, product_id, [2, 3, 5])

    assert outcomes == ["sold", "sold", "sold"]
    assert _state(file_database, product_id) == (0, 3)
