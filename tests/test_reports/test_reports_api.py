"""Integration tests for the administrator report endpoints."""

from fastapi import status

REPORTS_URL = "/api/v1/reports"
BODY = {"items": [{"product": "1", "quantity": 2}, {"product": "4", "quantity": 1}]}


def place_order(client, headers) -> dict:
    response = client.post("/api/v1/orders", json=BODY, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


class TestReportEndpoint:
    def test_report(self, test_client, customer_headers, admin_headers):
        place_order(test_client, customer_headers)
        place_order(test_client, customer_headers)

        response = test_client.get(
            REPORTS_URL,
            params={"start_date": "2025-03-10", "end_date": "2025-03-10"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["summary"]["totalOrders"] == 2
        assert data["summary"]["totalItems"] == 6
        assert data["dailyTrend"] == [{"date": "2025-03-10", "orderCount": 2, "totalItems": 6}]
        assert data["topProducts"][0]["productId"] == "1"
        assert data["matrix"]["grandTotal"] == 6
        assert data["matrix"]["rowTotals"] == {"2": 6}

    def test_customers_are_forbidden(self, test_client, customer_headers):
        response = test_client.get(
            REPORTS_URL,
            params={"start_date": "2025-03-10", "end_date": "2025-03-10"},
            headers=customer_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_inverted_range(self, test_client, admin_headers):
        response = test_client.get(
            REPORTS_URL,
            params={"start_date": "2025-03-10", "end_date": "2025-03-01"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "INVALID_DATE_RANGE"

    def test_missing_dates(self, test_client, admin_headers):
        response = test_client.get(REPORTS_URL, headers=admin_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestStatsEndpoint:
    def test_today(self, test_client, customer_headers, admin_headers):
        place_order(test_client, customer_headers)

        response = test_client.get(f"{REPORTS_URL}/stats", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["period"] == "today"
        assert data["totalOrders"] == 1
        assert data["newOrders"] == 1
        assert data["productQuantities"] == {"Almond Milk": 2, "Oat Milk": 1}

    def test_custom_date(self, test_client, customer_headers, admin_headers):
        place_order(test_client, customer_headers)

        response = test_client.get(
            f"{REPORTS_URL}/stats",
            params={"period": "custom", "date": "2025-03-09"},
            headers=admin_headers,
        )

        assert response.json()["totalOrders"] == 0

    def test_unknown_period(self, test_client, admin_headers):
        response = test_client.get(
            f"{REPORTS_URL}/stats", params={"period": "decade"}, headers=admin_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "INVALID_PERIOD"


class TestMatrixExport:
    def test_download(self, test_client, customer_headers, admin_headers):
        place_order(test_client, customer_headers)

        response = test_client.get(
            f"{REPORTS_URL}/matrix.xlsx",
            params={"start_date": "2025-03-10", "end_date": "2025-03-10"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "orders-matrix-2025-03-10-2025-03-10.xlsx" in response.headers["content-disposition"]
        assert response.content[:2] == b"PK"
