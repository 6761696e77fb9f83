"""Tests for catalog endpoints."""

from storefront.catalog.service import VariantData

NEW_PRODUCT = {
    "name": "Oxford Shirt",
    "category": "Men",
    "brand": "Tailor & Co",
    "price": "1499.00",
    "discount": "10",
    "tags": ["Formal"],
    "variants": [
        {"size": "M", "color_name": "White", "color_hex": "#FFFFFF", "stock": 4},
        {"size": "L", "color_name": "White", "stock": 2, "price": "1599.00"},
    ],
}


class TestProductAdmin:
    """Tests for admin product management."""

    async def test_create_product(self, client, admin, auth_headers) -> None:
        """Admins create products; pricing and stock are derived."""
        response = await client.post("/api/products", json=NEW_PRODUCT, headers=auth_headers(admin))

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "oxford-shirt"
        assert data["final_price"] == "1349.10"
        assert data["stock"] == 6
        assert data["tags"] == ["formal"]
        assert [v["size"] for v in data["variants"]] == ["M", "L"]

    async def test_shopper_cannot_create(self, client, shopper, auth_headers) -> None:
        """Shoppers get 403 on admin routes."""
        response = await client.post("/api/products", json=NEW_PRODUCT, headers=auth_headers(shopper))

        assert response.status_code == 403

    async def test_anonymous_cannot_create(self, client) -> None:
        """Anonymous callers get 401."""
        response = await client.post("/api/products", json=NEW_PRODUCT)

        assert response.status_code == 401

    async def test_invalid_product(self, client, admin, auth_headers) -> None:
        """Negative prices and discounts over 100 are rejected."""
        response = await client.post(
            "/api/products",
            json={"name": "Bad", "category": "Men", "price": "-1", "discount": "120"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 400
        fields = {e["field"] for e in response.json()["details"]["errors"]}
        assert {"price", "discount"} <= fields

    async def test_update_product(self, client, admin, auth_headers, make_product) -> None:
        """Partial updates change only the given fields."""
        product = await make_product(price="800.00")

        response = await client.put(
            f"/api/products/{product.id}",
            json={"discount": "50", "is_featured": True},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["final_price"] == "400.00"
        assert data["is_featured"] is True
        assert data["name"] == "Cotton Tee"

    async def test_delete_product_prunes_carts(
        self, client, admin, shopper, auth_headers, make_product
    ) -> None:
        """Deleting a product removes it from carts."""
        product = await make_product()
        await client.post(
            "/api/cart/items",
            json={"product_id": product.id, "quantity": 2},
            headers=auth_headers(shopper),
        )

        response = await client.delete(f"/api/products/{product.id}", headers=auth_headers(admin))
        assert response.status_code == 204

        assert (await client.get(f"/api/products/{product.id}")).status_code == 404
        cart = (await client.get("/api/cart", headers=auth_headers(shopper))).json()
        assert cart["items"] == []
        assert cart["total_price"] == "0.00"

    async def test_delete_variant(self, client, admin, auth_headers, make_product) -> None:
        """Deleting a variant returns the product with recomputed stock."""
        product = await make_product(
            variants=[VariantData(size="S", stock=1), VariantData(size="M", stock=4)]
        )

        response = await client.delete(
            f"/api/products/{product.id}/variants/{product.variants[0].id}",
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert [v["size"] for v in data["variants"]] == ["M"]
        assert data["stock"] == 4


class TestProductBrowse:
    """Tests for public product listing."""

    async def test_list_with_filters(self, client, make_product) -> None:
        """Listing filters, pages and reports totals."""
        await make_product("Tee", price="300.00", category="Men")
        await make_product("Kurta", price="1200.00", category="Men")
        await make_product("Saree", price="2500.00", category="Women")

        response = await client.get(
            "/api/products",
            params={"category": "Men", "sort_by": "price", "sort_order": "asc", "page_size": 1},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["has_more"] is True
        assert [p["name"] for p in data["items"]] == ["Tee"]

    async def test_price_filter(self, client, make_product) -> None:
        """min_price and max_price bound the final price."""
        await make_product("Tee", price="300.00")
        await make_product("Kurta", price="1200.00", discount="50")

        response = await client.get("/api/products", params={"min_price": "500", "max_price": "700"})

        assert [p["name"] for p in response.json()["items"]] == ["Kurta"]

    async def test_tags_filter_matches_any(self, client, make_product) -> None:
        """Comma-separated tags match products carrying any of them."""
        await make_product("Tee", tags=["summer"])
        await make_product("Kurta", tags=["festive"])
        await make_product("Scarf", tags=["winter"])

        response = await client.get(
            "/api/products", params={"tags": "Summer,festive", "sort_by": "name", "sort_order": "asc"}
        )

        assert [p["name"] for p in response.json()["items"]] == ["Kurta", "Tee"]

    async def test_invalid_sort(self, client) -> None:
        """Unknown sort fields are rejected."""
        response = await client.get("/api/products", params={"sort_by": "popularity"})

        assert response.status_code == 400

    async def test_get_product(self, client, make_product) -> None:
        """A product is fetched by id."""
        product = await make_product()

        response = await client.get(f"/api/products/{product.id}")

        assert response.status_code == 200
        assert response.json()["id"] == product.id


class TestReviewsApi:
    """Tests for review endpoints."""

    async def test_review_lifecycle(self, client, shopper, auth_headers, make_product) -> None:
        """Shoppers review, the rating updates, and the author can delete."""
        product = await make_product()

        response = await client.post(
            f"/api/products/{product.id}/reviews",
            json={"rating": 4, "title": "Soft fabric"},
            headers=auth_headers(shopper),
        )
        assert response.status_code == 201
        review = response.json()
        assert review["username"] == "shopper"

        reviews = (await client.get(f"/api/products/{product.id}/reviews")).json()
        assert [r["title"] for r in reviews] == ["Soft fabric"]
        detail = (await client.get(f"/api/products/{product.id}")).json()
        assert detail["rating"] == "4.0"
        assert detail["review_count"] == 1

        response = await client.delete(
            f"/api/products/{product.id}/reviews/{review['id']}",
            headers=auth_headers(shopper),
        )
        assert response.status_code == 204
        assert (await client.get(f"/api/products/{product.id}/reviews")).json() == []

    async def test_rating_bounds(self, client, shopper, auth_headers, make_product) -> None:
        """Ratings must be between 1 and 5."""
        product = await make_product()

        response = await client.post(
            f"/api/products/{product.id}/reviews",
            json={"rating": 6},
            headers=auth_headers(shopper),
        )

        assert response.status_code == 400

    async def test_anonymous_cannot_review(self, client, make_product) -> None:
        """Reviews need a signed-in shopper."""
        product = await make_product()

        response = await client.post(f"/api/products/{product.id}/reviews", json={"rating": 5})

        assert response.status_code == 401
