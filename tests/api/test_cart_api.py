"""Tests for cart endpoints."""

from storefront.catalog.service import VariantData


class TestCartApi:
    """Tests for the shopper cart."""

    async def test_add_update_remove(self, client, shopper, auth_headers, make_product) -> None:
        """Lines are added, merged, resized and removed."""
        headers = auth_headers(shopper)
        product = await make_product(price="100.00", stock=5)

        response = await client.post(
            "/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers
        )
        assert response.status_code == 201
        cart = response.json()
        assert cart["item_count"] == 2
        assert cart["total_price"] == "200.00"
        line = cart["items"][0]
        assert line["price"] == "100.00"
        assert line["line_total"] == "200.00"
        assert line["available_stock"] == 5

        response = await client.post(
            "/api/cart/items", json={"product_id": product.id}, headers=headers
        )
        assert response.json()["items"][0]["quantity"] == 3

        response = await client.put(
            f"/api/cart/items/{line['id']}", json={"quantity": 1}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["total_price"] == "100.00"

        response = await client.delete(f"/api/cart/items/{line['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["items"] == []

    async def test_over_stock(self, client, shopper, auth_headers, make_product) -> None:
        """Adding more than stock answers 409 with the available count."""
        product = await make_product(stock=1)

        response = await client.post(
            "/api/cart/items",
            json={"product_id": product.id, "quantity": 2},
            headers=auth_headers(shopper),
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error_code"] == "INSUFFICIENT_STOCK"
        assert data["details"]["available"] == 1

    async def test_variant_required(self, client, shopper, auth_headers, make_product) -> None:
        """Products with variants need a variant id."""
        product = await make_product(variants=[VariantData(size="M", stock=2)])

        response = await client.post(
            "/api/cart/items",
            json={"product_id": product.id, "quantity": 1},
            headers=auth_headers(shopper),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VARIANT_REQUIRED"

    async def test_quantity_bounds(self, client, shopper, auth_headers, make_product) -> None:
        """Quantities outside 1-100 fail validation."""
        product = await make_product()

        response = await client.post(
            "/api/cart/items",
            json={"product_id": product.id, "quantity": 0},
            headers=auth_headers(shopper),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_unknown_line(self, client, shopper, auth_headers) -> None:
        """Unknown line ids answer 404."""
        response = await client.put(
            "/api/cart/items/missing", json={"quantity": 1}, headers=auth_headers(shopper)
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "CART_ITEM_NOT_FOUND"

    async def test_clear(self, client, shopper, auth_headers, make_product) -> None:
        """Clearing empties the cart."""
        headers = auth_headers(shopper)
        product = await make_product()
        await client.post("/api/cart/items", json={"product_id": product.id}, headers=headers)

        response = await client.delete("/api/cart", headers=headers)

        assert response.status_code == 200
        assert response.json()["item_count"] == 0

    async def test_admin_has_no_cart(self, client, admin, auth_headers) -> None:
        """Carts belong to shoppers."""
        response = await client.get("/api/cart", headers=auth_headers(admin))

        assert response.status_code == 403
