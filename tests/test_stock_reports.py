"""Tests for the stock overview, dashboard and CSV export."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from stock_management.schemas.product import ProductCreate, ProductUpdate
from stock_management.services.product_service import ProductService
from stock_management.services.report_service import ReportService
from stock_management.services.stock_service import StockService


def _product(db_session, name, category="Tools", price="10.00", quantity=100):
    return ProductService(db_session).create(
        ProductCreate(name=name, category=category, price=Decimal(price), quantity=quantity)
    )


def test_overview_product_without_sales(db_session):
    product = _product(db_session, "Idle", quantity=7)

    [item] = ReportService(db_session).stock_overview()

    assert item.id == product.id
    assert item.available_stock == 7
    assert item.items_sold == 0
    assert item.revenue == Decimal("0.00")


def test_overview_sums_ledger_per_product(db_session):
    hammer = _product(db_session, "Hammer", price="10.00", quantity=10)
    saw = _product(db_session, "Saw", price="4.50", quantity=10)
    stock = StockService(db_session)
    stock.sell(hammer.id, 2)
    stock.sell(hammer.id, 3)
    stock.sell(saw.id, 4)

    items = {item.name: item for item in ReportService(db_session).stock_overview()}

    assert items["Hammer"].available_stock == 5
    assert items["Hammer"].items_sold == 5
    assert items["Hammer"].revenue == Decimal("50.00")
    assert items["Saw"].items_sold == 4
    assert items["Saw"].revenue == Decimal("18.00")


def test_overview_revenue_follows_current_price(db_session):
    product = _product(db_session, "Drill", price="10.00")
    StockService(db_session).sell(product.id, 2)
    ProductService(db_session).update(product.id, ProductUpdate(price=Decimal("15.00")))

    [item] = ReportService(db_session).stock_overview()

    assert item.revenue == Decimal("30.00")


def test_overview_filter_and_sort(db_session):
    _product(db_session, "Bolt", category="Hardware", price="0.25")
    _product(db_session, "Apple", category="Food", price="1.00")
    _product(db_session, "Nut", category="Hardware", price="0.10")
    reports = ReportService(db_session)

    hardware = reports.stock_overview(category="Hardware")
    by_price_desc = reports.stock_overview(sort_by="price", sort_order="DESC")
    by_name = reports.stock_overview(sort_by="name")

    assert [i.name for i in hardware] == ["Bolt", "Nut"]
    assert [i.name for i in by_price_desc] == ["Apple", "Bolt", "Nut"]
    assert [i.name for i in by_name] == ["Apple", "Bolt", "Nut"]


def test_overview_sort_by_items_sold(db_session):
    a = _product(db_session, "A")
    b = _product(db_session, "B")
    c = _product(db_session, "C")
    stock = StockService(db_session)
    stock.sell(b.id, 5)
    stock.sell(c.id, 1)

    items = ReportService(db_session).stock_overview(sort_by="items_sold", sort_order="desc")

    assert [i.id for i in items] == [b.id, c.id, a.id]


def test_overview_ignores_unknown_sort_field(db_session):
    first = _product(db_session, "Zebra")
    second = _product(db_session, "Aardvark")

    items = ReportService(db_session).stock_overview(sort_by="id; DROP TABLE products", sort_order="desc")

    assert [i.id for i in items] == [first.id, second.id]


def test_dashboard(db_session):
    hammer = _product(db_session, "Hammer", price="10.00", quantity=50)
    saw = _product(db_session, "Saw", price="2.00", quantity=50)
    _product(db_session, "Idle", price="1.00", quantity=5)

    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = iter(start + timedelta(minutes=i) for i in range(100))
    stock = StockService(db_session, clock=lambda: next(ticks))
    for _ in range(12):
        stock.sell(saw.id, 1)
    stock.sell(hammer.id, 3)

    dashboard = ReportService(db_session).dashboard()

    assert dashboard.summary.total_transactions == 13
    assert dashboard.summary.total_items_sold == 15
    assert dashboard.summary.total_revenue == Decimal("54.00")
    assert dashboard.summary.total_products == 3
    assert dashboard.summary.total_available_stock == 47 + 38 + 5

    assert [p.name for p in dashboard.top_products] == ["Saw", "Hammer"]
    assert dashboard.top_products[0].items_sold == 12

    assert len(dashboard.recent_sales) == 10
    latest = dashboard.recent_sales[0]
    assert latest.name == "Hammer"
    assert latest.quantity == 3
    assert latest.total_price == Decimal("30.00")
    assert all(sale.name == "Saw" for sale in dashboard.recent_sales[1:])


def test_dashboard_top_products_limited_to_five(db_session):
    stock = StockService(db_session)
    for i in range(7):
        product = _product(db_session, f"P{i}")
        stock.sell(product.id, i + 1)

    top = ReportService(db_session).dashboard().top_products

    assert [p.name for p in top] == ["P6", "P5", "P4", "P3", "P2"]


def test_dashboard_empty(db_session):
    dashboard = ReportService(db_session).dashboard()

    assert dashboard.summary.total_transactions == 0
    assert dashboard.summary.total_revenue == Decimal("0.00")
    assert dashboard.top_products == []
    assert dashboard.recent_sales == []


# API


def test_stock_endpoint(client):
    product_id = client.post(
        "/api/v1/products/",
        json={"name": "Widget", "category": "Tools", "price": 10.00, "quantity": 5}
    ).json()["id"]
    client.post("/api/v1/stock/sell", json={"product_id": product_id, "quantity": 3})

    response = client.get("/api/v1/stock/?category=Tools&sort_by=revenue&sort_order=desc")

    assert response.status_code == 200
    assert response.json() == [{
        "id": product_id,
        "name": "Widget",
        "category": "Tools",
        "price": 10.0,
        "available_stock": 2,
        "items_sold": 3,
        "revenue": 30.0,
    }]


def test_dashboard_endpoint_uses_camel_case_sections(client):
    product_id = client.post(
        "/api/v1/products/",
        json={"name": "Widget", "category": "Tools", "price": 10.00, "quantity": 5}
    ).json()["id"]
    client.post("/api/v1/stock/sell", json={"product_id": product_id, "quantity": 1})

    data = client.get("/api/v1/stock/dashboard").json()

    assert set(data) == {"summary", "topProducts", "recentSales"}
    assert data["summary"]["total_revenue"] == 10.0
    assert data["topProducts"][0]["name"] == "Widget"
    assert data["recentSales"][0]["total_price"] == 10.0


def test_export_endpoint(client):
    client.post(
        "/api/v1/products/",
        json={"name": "Widget", "category": "Tools", "price": 10.00, "quantity": 5}
    )

    response = client.get("/api/v1/stock/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "stock_export.csv" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0] == "ID,Name,Category,Price,Available Stock,Items Sold,Revenue"
    assert lines[1].endswith(",Widget,Tools,10.00,5,0,0.00")
