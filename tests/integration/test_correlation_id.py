import logging
import uuid

import pytest

pytestmark = pytest.mark.integration


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "rzp-callback-delivery-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        assert str(uuid.UUID(request_id, version=4)) == request_id

    def test_api_responses_carry_request_id(self, api_client_with_correlation):
        api_client, cid = api_client_with_correlation

        response = api_client.get("/api/v1/orders/")

        assert response.status_code == 401
        assert response["X-Request-ID"] == cid

    def test_correlation_id_in_service_logs(self, client_for, buyer, tomatoes, caplog):
        custom_id = "checkout-correlation-456"
        payload = {
            "items": [{"product_id": str(tomatoes.id), "quantity": 1}],
            "delivery_address": {
                "full_name": "Asha Menon",
                "phone": "9876543210",
                "address": "12 Market Road",
                "city": "Kochi",
                "state": "Kerala",
                "pincode": "682001",
            },
        }
        with caplog.at_level(logging.INFO):
            client_for(buyer).post(
                "/api/v1/orders/", payload, format="json", HTTP_X_REQUEST_ID=custom_id
            )

        created = [r for r in caplog.records if "order.created" in r.getMessage()]
        assert created, [r.getMessage() for r in caplog.records]
        assert all(custom_id in r.getMessage() for r in created)


@pytest.mark.parametrize("supplied", ["x" * 129, "bad id with spaces", "inject\r\nheader"])
def test_malformed_request_id_is_replaced(client, supplied):
    response = client.get("/health", HTTP_X_REQUEST_ID=supplied)

    request_id = response["X-Request-ID"]
    assert request_id != supplied
    assert str(uuid.UUID(request_id, version=4)) == request_id
