"""Tests for Product API endpoints."""


def _create(client, **overrides):
    payload = {"name": "Test Product", "category": "General", "price": 50.00, "quantity": 10}
    payload.update(overrides)
    return client.post("/api/v1/products/", json=payload)


def test_create_product(client):
    """Test creating a new product."""
    response = client.post(
        "/api/v1/products/",
        json={
            "name": "Test Product",
            "category": "Tools",
            "price": 99.99,
            "quantity": 10,
            "description": "A test product"
        }
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Test Product"
    assert data["category"] == "Tools"
    assert data["price"] == 99.99
    assert data["quantity"] == 10
    assert data["description"] == "A test product"
    assert "id" in data
    assert "created_at" in data


def test_create_product_invalid_price(client):
    """Test creating product with invalid price fails."""
    response = _create(client, price=-10.00)

    assert response.status_code == 422  # Validation error


def test_create_product_price_above_maximum(client):
    """Prices are capped at 99,999,999.99."""
    response = _create(client, price=100000000.00)

    assert response.status_code == 422


def test_create_product_price_with_three_decimals(client):
    """Prices carry at most two fractional digits."""
    response = _create(client, price=1.005)

    assert response.status_code == 422


def test_create_product_invalid_quantity(client):
    """Test creating product with negative quantity fails."""
    response = _create(client, quantity=-5)

    assert response.status_code == 422


def test_create_product_blank_name(client):
    """Whitespace-only names are rejected."""
    response = _create(client, name="   ")

    assert response.status_code == 422


def test_get_product(client):
    """Test getting a product by ID."""
    product_id = _create(client, price=50.00, quantity=5).json()["id"]

    response = client.get(f"/api/v1/products/{product_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == product_id
    assert data["name"] == "Test Product"


def test_get_product_cached(client):
    """With the cache switched off the cached route falls back to the database."""
    product_id = _create(client).json()["id"]

    response = client.get(f"/api/v1/products/{product_id}/cached")

    assert response.status_code == 200
    assert response.json()["id"] == product_id
    assert response.json()["price"] == 50.0


def test_get_product_not_found(client):
    """Test getting non-existent product returns 404."""
    response = client.get("/api/v1/products/9999")

    assert response.status_code == 404


def test_list_products(client):
    """Test listing products with pagination."""
    for i in range(15):
        _create(client, name=f"Product {i}", price=10.00 + i)

    response = client.get("/api/v1/products/?page=1&page_size=10")

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 10
    assert data["total"] == 15
    assert data["total_pages"] == 2


def test_list_products_by_category(client):
    """Test filtering the product list by category."""
    _create(client, name="Hammer", category="Tools")
    _create(client, name="Saw", category="Tools")
    _create(client, name="Apple", category="Food")

    response = client.get("/api/v1/products/?category=Tools")

    data = response.json()
    assert data["total"] == 2
    assert {item["name"] for item in data["items"]} == {"Hammer", "Saw"}


def test_list_categories(client):
    """Categories are distinct and sorted."""
    _create(client, name="Hammer", category="Tools")
    _create(client, name="Saw", category="Tools")
    _create(client, name="Apple", category="Food")

    response = client.get("/api/v1/products/categories")

    assert response.status_code == 200
    assert response.json() == ["Food", "Tools"]


def test_update_product(client):
    """Test updating a product."""
    product_id = _create(client, name="Original Name", price=50.00, quantity=10).json()["id"]

    response = client.put(
        f"/api/v1/products/{product_id}",
        json={"name": "Updated Name", "price": 75.00}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Updated Name"
    assert data["price"] == 75.00
    assert data["quantity"] == 10  # Quantity should remain unchanged


def test_update_product_not_found(client):
    response = client.put("/api/v1/products/9999", json={"name": "Ghost"})

    assert response.status_code == 404


def test_delete_product(client):
    """Test deleting a product."""
    product_id = _create(client, name="To Delete").json()["id"]

    response = client.delete(f"/api/v1/products/{product_id}")
    assert response.status_code == 204

    get_response = client.get(f"/api/v1/products/{product_id}")
    assert get_response.status_code == 404


def test_delete_product_removes_its_sales(client):
    """Deleting a product cascades to its sales."""
    doomed = _create(client, name="Doomed", quantity=10).json()["id"]
    kept = _create(client, name="Kept", quantity=10).json()["id"]
    client.post("/api/v1/stock/sell", json={"product_id": doomed, "quantity": 2})
    client.post("/api/v1/stock/sell", json={"product_id": doomed, "quantity": 1})
    client.post("/api/v1/stock/sell", json={"product_id": kept, "quantity": 4})

    assert client.delete(f"/api/v1/products/{doomed}").status_code == 204

    summary = client.get("/api/v1/stock/dashboard").json()["summary"]
    assert summary["total_transactions"] == 1
    assert summary["total_items_sold"] == 4


def test_search_products(client):
    """Test searching products by name."""
    _create(client, name="Apple iPhone", price=999.00)
    _create(client, name="Samsung Galaxy", price=899.00)
    _create(client, name="Apple MacBook", price=1999.00)

    response = client.get("/api/v1/products/?search=Apple")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert all("Apple" in item["name"] for item in data["items"])
