"""API tests for order reads, the rewards preview and the ping endpoint."""
from decimal import Decimal
from uuid import uuid4

import pytest

from apps.orders import adapters
from apps.orders.domain import GatewayError, GatewayErrorKind
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"
DETAIL_URL = "/api/orders/{oid}/"
EVALUATE_URL = "/api/rewards/evaluate/"


def cart(user_id):
    return {
        "user_id": str(user_id),
        "items": [
            {"sku": "SKU1", "name": "Mug", "price": "12.00", "quantity": 2},
            {"sku": "SKU2", "name": "Tea", "price": "3.50", "quantity": 1},
        ],
    }


@pytest.mark.django_db
def test_get_order_by_id_returns_frozen_lines(client, settings, make_user):
    settings.REWARDS_STUB_DISCOUNT = "2.50"
    u = make_user()
    created = client.post(CREATE_URL, data=cart(u.id), content_type="application/json").json()

    r = client.get(DETAIL_URL.format(oid=created["id"]))
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == created["id"]
    assert body["user_id"] == str(u.id)
    assert body["status"] == "PLACED"
    assert [i["sku"] for i in body["items"]] == ["SKU1", "SKU2"]
    assert Decimal(body["subtotal"]) == Decimal("27.50")
    assert Decimal(body["discount_applied"]) == Decimal("2.50")
    assert Decimal(body["total_amount"]) == Decimal("25.00")
    assert body["created_at"]


@pytest.mark.django_db
def test_get_order_not_found_returns_404(client):
    r = client.get(DETAIL_URL.format(oid=str(uuid4())))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_evaluate_returns_decision_without_placing(client, settings, make_user):
    settings.REWARDS_STUB_DISCOUNT = "4"
    u = make_user(total_orders=5, total_spent="100.00")

    r = client.post(EVALUATE_URL, data=cart(u.id), content_type="application/json")

    assert r.status_code == 200
    body = r.json()
    assert Decimal(body["discount_amount"]) == Decimal("4")
    assert body["applied_rewards"] == ["FLAT_DISCOUNT"]
    assert body["loyalty_points_used"] == 0
    assert OrderModel.objects.count() == 0
    u.refresh_from_db()
    assert u.total_orders == 5


@pytest.mark.django_db
def test_evaluate_maps_errors(client, monkeypatch, make_user):
    assert client.post(EVALUATE_URL, data=cart(uuid4()), content_type="application/json").status_code == 404

    def boom(self, user_id, attributes=None):
        raise GatewayError(GatewayErrorKind.PROVIDER_REJECTED, "unknown profile")

    monkeypatch.setattr(adapters.RewardsStub, "sync_profile", boom)
    u = make_user()
    r = client.post(EVALUATE_URL, data=cart(u.id), content_type="application/json")
    assert r.status_code == 503
    assert r.json()["detail"] == "REWARDS_UNAVAILABLE"


def test_ping(client):
    r = client.get("/api/orders/ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
