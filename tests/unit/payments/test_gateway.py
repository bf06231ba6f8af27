"""Unit tests for the payment gateway adapters and registry."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from modules.payments.gateway import (
    GatewayError,
    GatewayTimeout,
    get_gateway,
    reset_gateway,
    set_gateway,
)
from modules.payments.gateway.fake import FakeGateway
from modules.payments.gateway.razorpay import RazorpayGateway

pytestmark = pytest.mark.unit


def _response(status_code: int, body: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    return response


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def gateway(session):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        base_url="https://gateway.test/v1/",
        timeout=2,
        session=session,
    )


class TestRazorpayGateway:
    def test_create_order_posts_to_orders_endpoint(self, gateway, session):
        session.post.return_value = _response(
            200,
            {
                "id": "order_Q1w2E3r4",
                "amount": 24000,
                "currency": "INR",
                "receipt": "order_ORD260101AAAA0000",
                "status": "created",
            },
        )

        result = gateway.create_order(24000, "INR", "order_ORD260101AAAA0000")

        session.post.assert_called_once_with(
            "https://gateway.test/v1/orders",
            json={
                "amount": 24000,
                "currency": "INR",
                "receipt": "order_ORD260101AAAA0000",
                "notes": {},
            },
            auth=("rzp_test_key", "rzp_test_secret"),
            timeout=2,
        )
        assert result.gateway_order_id == "order_Q1w2E3r4"
        assert result.amount_minor == 24000
        assert result.raw["status"] == "created"

    def test_timeout_becomes_gateway_timeout(self, gateway, session):
        session.post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(GatewayTimeout):
            gateway.create_order(100, "INR", "r1")

    def test_connection_error_becomes_gateway_timeout(self, gateway, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(GatewayTimeout):
            gateway.create_order(100, "INR", "r1")

    def test_rejection_becomes_gateway_error(self, gateway, session):
        session.post.return_value = _response(400, {"error": {"code": "BAD_REQUEST_ERROR"}})

        with pytest.raises(GatewayError) as exc_info:
            gateway.create_order(100, "INR", "r1")
        assert not isinstance(exc_info.value, GatewayTimeout)

    def test_defaults_come_from_settings(self, settings):
        settings.PAYMENT_GATEWAY_KEY_ID = "rzp_live_key"
        settings.PAYMENT_GATEWAY_BASE_URL = "https://api.example.test/v1"

        adapter = RazorpayGateway(session=MagicMock(spec=requests.Session))

        assert adapter.key_id == "rzp_live_key"
        assert adapter.base_url == "https://api.example.test/v1"


class TestFakeGateway:
    def test_issues_fake_ids_and_records_calls(self):
        fake = FakeGateway()

        result = fake.create_order(500, "INR", "receipt-1", notes={"k": "v"})

        assert result.gateway_order_id.startswith("order_fake_")
        assert fake.calls == [
            {
                "method": "create_order",
                "amount_minor": 500,
                "currency": "INR",
                "receipt": "receipt-1",
                "notes": {"k": "v"},
            }
        ]

    def test_time_out(self):
        fake = FakeGateway()
        fake.time_out()

        with pytest.raises(GatewayTimeout):
            fake.create_order(500, "INR", "receipt-1")


class TestRegistry:
    def test_set_and_reset(self, settings):
        custom = FakeGateway()
        set_gateway(custom)
        assert get_gateway() is custom

        reset_gateway()
        settings.PAYMENT_GATEWAY_BACKEND = "modules.payments.gateway.fake.FakeGateway"
        rebuilt = get_gateway()
        assert isinstance(rebuilt, FakeGateway)
        assert rebuilt is not custom
