"""可售库存查询路由测试"""


class TestStockRouter:
    """库存查询路由测试类"""

    def test_get_stock(self, client, product_a):
        response = client.get(f"/api/v1/inventory/stock/{product_a.id}")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": None,
            "product_id": product_a.id,
            "available_stock": 5,
        }

    def test_get_stock_unknown_product(self, client):
        response = client.get("/api/v1/inventory/stock/999")

        assert response.status_code == 404
        assert response.json()["code"] == "product_not_found"

    def test_get_stock_invalid_id(self, client):
        assert client.get("/api/v1/inventory/stock/0").status_code == 422

    def test_batch_get_stocks(self, client, product_a, product_b):
        response = client.post("/api/v1/inventory/stock/batch",
                               json={"product_ids": [product_a.id, product_b.id, 999]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == {str(product_a.id): 5, str(product_b.id): 0, "999": 0}

    def test_batch_get_stocks_too_many(self, client):
        response = client.post("/api/v1/inventory/stock/batch",
                               json={"product_ids": list(range(1, 102))})
        assert response.status_code == 422
