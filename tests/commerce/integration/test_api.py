"""Integration tests for the HTTP surface via TestClient."""

import inspect
import json

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient
from protean import current_domain

from commerce.api.application import create_api
from commerce.api.dependencies import SESSION_COOKIE
from commerce.config import Settings, StripeSettings
from commerce.order.order import Order, OrderStatus

WIDGET = "prod-widget"
CARD_SECRET = "whsec_api"
ADMIN = {"x-user-id": "admin-001", "x-user-role": "admin"}
USER = {"x-user-id": "user-001"}


@pytest.fixture()
def settings():
    return Settings(environment="test", enabled_providers=("mock",), stripe=StripeSettings(webhook_secret=CARD_SECRET))


@pytest.fixture()
def client(container):
    return TestClient(create_api(container))


def _fill_checkout(client, shipping_method_id, headers=None, quantity=2):
    headers = headers or {}
    response = client.post("/checkout/items", json={"product_id": WIDGET, "quantity": quantity}, headers=headers)
    assert response.status_code == 200
    client.post(
        "/checkout/shipping-address",
        json={"street": "1 Main St", "city": "Springfield", "country": "US"},
        headers=headers,
    )
    client.post("/checkout/customer-details", json={"email": "jane@example.com", "full_name": "Jane Doe"}, headers=headers)
    response = client.post("/checkout/shipping-method", json={"shipping_method_id": shipping_method_id}, headers=headers)
    assert response.status_code == 200
    return response.json()


def _place_order(client, shipping_method_id, headers=None):
    _fill_checkout(client, shipping_method_id, headers=headers)
    response = client.post("/checkout/complete", headers=headers or {})
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "domain": "commerce", "environment": "test", "providers": ["mock"]}

    def test_providers(self, client):
        [provider] = client.get("/payment/providers").json()
        assert provider["type"] == "mock"


class TestGuestCheckout:
    def test_session_cookie_issued_once(self, client):
        first = client.get("/checkout")
        assert first.status_code == 200
        session_id = client.cookies.get(SESSION_COOKIE)
        assert session_id

        second = client.get("/checkout")
        assert second.json()["id"] == first.json()["id"]
        assert second.json()["session_id"] == session_id

    def test_totals_are_reported_as_money(self, client, shipping_method_id):
        checkout = _fill_checkout(client, shipping_method_id)
        assert checkout["subtotal"] == {"amount": 3998, "currency": "USD", "formatted": "$39.98"}
        assert checkout["shipping_cost"]["amount"] == 500
        assert checkout["final_amount"]["amount"] == 4498

    def test_complete(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id)

        assert order["status"] == OrderStatus.PENDING.value
        assert order["is_guest"] is True
        assert order["final_amount"]["amount"] == 4498
        assert client.get(f"/orders/{order['id']}").status_code == 200

    def test_complete_twice_returns_same_order(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id)
        checkout_id = order["checkout_id"]
        again = client.post("/checkout/complete", json={"checkout_id": checkout_id})
        assert again.status_code == 201
        assert again.json()["id"] == order["id"]

    def test_other_session_cannot_see_order(self, client, container, shipping_method_id):
        order = _place_order(client, shipping_method_id)
        stranger = TestClient(create_api(container))
        assert stranger.get(f"/orders/{order['id']}").status_code == 404

    def test_merge_into_user_checkout(self, client):
        client.post("/checkout/items", json={"product_id": WIDGET, "quantity": 1})

        response = client.post("/checkout/merge", headers=USER)

        assert response.status_code == 200
        merged = response.json()
        assert merged["user_id"] == "user-001"
        assert [item["quantity"] for item in merged["items"]] == [1]

    def test_merge_requires_user(self, client):
        assert client.post("/checkout/merge").status_code == 401


class TestErrorMapping:
    def test_unknown_product(self, client):
        response = client.post("/checkout/items", json={"product_id": "prod-missing", "quantity": 1})
        assert response.status_code == 404

    def test_insufficient_stock(self, client):
        response = client.post("/checkout/items", json={"product_id": WIDGET, "quantity": 11})
        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientStock"

    def test_request_schema(self, client):
        response = client.post("/checkout/items", json={"product_id": WIDGET, "quantity": 0})
        assert response.status_code == 422

    def test_incomplete_checkout(self, client):
        client.post("/checkout/items", json={"product_id": WIDGET, "quantity": 1})
        response = client.post("/checkout/complete")
        assert response.status_code in (400, 409)

    def test_unknown_order(self, client):
        assert client.get("/orders/no-such-order", headers=ADMIN).status_code == 404


class TestOrdersAndPayments:
    def test_user_lists_own_orders(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)

        response = client.get("/orders", headers=USER)

        assert response.status_code == 200
        assert [row["id"] for row in response.json()["orders"]] == [order["id"]]
        assert client.get("/orders", headers={"x-user-id": "user-002"}).json()["orders"] == []

    def test_listing_requires_user(self, client):
        assert client.get("/orders").status_code == 401

    def test_pay(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)

        response = client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["order_status"] == OrderStatus.PAID.value

    def test_declined_payment_is_not_an_error(self, client, mock_provider, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)
        mock_provider.configure(outcome="failed")

        response = client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["failure_reason"] == "Card declined"

    def test_provider_outage(self, client, mock_provider, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)
        mock_provider.configure(unavailable=True)

        response = client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert current_domain.repository_for(Order).get(order["id"]).status == OrderStatus.PENDING.value

    def test_paying_twice_conflicts(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)
        client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        response = client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidState"


class TestAdmin:
    def test_requires_admin_role(self, client):
        assert client.get("/admin/discounts", headers=USER).status_code == 403
        assert client.get("/admin/discounts", headers=ADMIN).status_code == 200

    def test_create_discount(self, client):
        response = client.post(
            "/admin/discounts",
            json={"code": "spring", "method": "percentage", "value": 15},
            headers=ADMIN,
        )
        assert response.status_code == 201
        [discount] = client.get("/admin/discounts", headers=ADMIN).json()
        assert (discount["id"], discount["code"]) == (response.json()["id"], "SPRING")

    def test_capture_and_transactions(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)
        client.post(f"/orders/{order['id']}/payment", json={"provider": "mock"}, headers=USER)

        capture = client.post(f"/admin/orders/{order['id']}/capture", headers=ADMIN)

        assert capture.json()["order_status"] == OrderStatus.CAPTURED.value
        rows = client.get(f"/admin/orders/{order['id']}/transactions", headers=ADMIN).json()
        assert [row["type"] for row in rows] == ["authorize", "capture"]

    def test_illegal_status_change(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)

        response = client.put(f"/admin/orders/{order['id']}/status", json={"status": "delivered"}, headers=ADMIN)

        assert response.status_code == 409
        assert response.json()["error"] == "IllegalTransition"

    def test_sweep(self, client):
        response = client.post("/admin/checkouts/sweep", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["abandoned"] == []


class TestWebhookEndpoint:
    def _event(self, order_id, kind="payment_intent.succeeded"):
        payload = {
            "id": "evt_api_001",
            "type": kind,
            "data": {"object": {"id": "pi_api_001", "amount": 4498, "currency": "usd", "metadata": {"order_id": order_id}}},
        }
        return json.dumps(payload).encode()

    def test_signed_delivery(self, client, shipping_method_id, sign_card):
        order = _place_order(client, shipping_method_id, headers=USER)
        body = self._event(order["id"])

        response = client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_card(body, CARD_SECRET), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "outcome": "applied", "event_type": "payment_intent.succeeded"}
        assert current_domain.repository_for(Order).get(order["id"]).status == OrderStatus.PAID.value

    def test_bad_signature(self, client, shipping_method_id):
        order = _place_order(client, shipping_method_id, headers=USER)
        body = self._event(order["id"])

        response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": "t=1,v1=deadbeef"})

        assert response.status_code == 401
        assert current_domain.repository_for(Order).get(order["id"]).status == OrderStatus.PENDING.value

    def test_malformed_body(self, client, sign_card):
        body = b"{not json"
        response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": sign_card(body, CARD_SECRET)})
        assert response.status_code == 400

    def test_unknown_provider(self, client):
        assert client.post("/webhooks/paypal", content=b"{}").status_code == 404


class TestBlockingRoutes:
    """Routes that wait on providers, the catalog or locks run in the threadpool."""

    @pytest.mark.parametrize(
        "method, path",
        [
            ("POST", "/checkout/items"),
            ("POST", "/checkout/complete"),
            ("POST", "/orders/{order_id}/payment"),
            ("POST", "/admin/orders/{order_id}/capture"),
            ("POST", "/admin/orders/{order_id}/refund"),
            ("POST", "/admin/orders/{order_id}/cancel"),
            ("POST", "/admin/checkouts/sweep"),
        ],
    )
    def test_route_is_synchronous(self, container, method, path):
        app = create_api(container)
        [route] = [
            route
            for route in app.routes
            if isinstance(route, APIRoute) and route.path == path and method in route.methods
        ]
        assert not inspect.iscoroutinefunction(route.endpoint)

