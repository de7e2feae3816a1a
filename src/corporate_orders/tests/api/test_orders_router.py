from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.corporate_orders.api.orders_router import orders_router


def _client() -> TestClient:
    app = FastAPI()
    app.include_router(orders_router)
    return TestClient(app)


def _existing_order(total: float) -> dict:
    return {
        "id": "sub-1",
        "employeeId": "emp-1",
        "status": "PENDING",
        "totalAmount": total,
        "restaurantOrders": [
            {
                "restaurantId": "r1",
                "restaurantName": "Noodle Bar",
                "menuItems": [
                    {"menuItemId": "m1", "name": "Ramen", "quantity": 1, "unitPrice": total, "totalPrice": total}
                ],
            }
        ],
    }


def test_delivery_info_endpoint() -> None:
    resp = _client().post(
        "/corporate/delivery-info",
        json={"cutoff_time": "11:00:00", "now": "2025-06-13T11:00:01"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["can_order"] is False
    assert body["delivery_date"] == "2025-06-16"
    assert body["formatted_cutoff_time"] == "11:00 AM"


def test_delivery_info_rejects_malformed_cutoff() -> None:
    resp = _client().post("/corporate/delivery-info", json={"cutoff_time": "11am"})
    assert resp.status_code == 400


def test_resolve_offers_add_within_budget() -> None:
    resp = _client().post(
        "/corporate/orders/resolve",
        json={
            "cart": [{"menu_item_id": "m2", "name": "Gyoza", "restaurant_id": "r1", "price": "15.00"}],
            "existing_sub_order": _existing_order(10.0),
            "budget_remaining": "30.00",
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["action"] == "add"
    assert body["available_actions"] == ["add", "replace"]
    assert body["total"] == 25.0


def test_resolve_explicit_add_over_budget_is_400() -> None:
    resp = _client().post(
        "/corporate/orders/resolve",
        json={
            "cart": [{"menu_item_id": "m2", "name": "Gyoza", "restaurant_id": "r1", "price": "15.00"}],
            "existing_sub_order": _existing_order(20.0),
            "budget_remaining": "30.00",
            "requested_action": "add",
        },
    )
    assert resp.status_code == 400
    assert "exceeds your remaining daily budget" in resp.json()["detail"]


def test_aggregate_endpoint() -> None:
    resp = _client().post(
        "/corporate/orders/aggregate",
        json={
            "order_id": "o1",
            "sub_orders": [
                _existing_order(10.0),
                {**_existing_order(5.0), "id": "sub-2", "employeeId": "emp-2", "status": "CANCELLED"},
            ],
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_employees"] == 1
    assert body["total_amount"] == 10.0
    assert body["restaurants"][0]["restaurant_name"] == "Noodle Bar"
    assert body["status"] == "pending_approval"


def test_payment_options_endpoint() -> None:
    resp = _client().post(
        "/corporate/payments/options",
        json={"aggregated_total": "120.00", "wallet_balance": "100.00"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["preselected"] == "stripe_direct"
    wallet = next(o for o in body["options"] if o["method"] == "wallet")
    assert wallet["enabled"] is False


def test_settings_validate_endpoint() -> None:
    client = _client()
    ok = client.post("/corporate/settings/validate", json={"cutoff_time": "9:30"})
    assert ok.json() == {"order_cutoff_time": "09:30:00"}

    late = client.post("/corporate/settings/validate", json={"cutoff_time": "18:30"})
    assert late.status_code == 400


def test_rejection_reasons() -> None:
    resp = _client().get("/corporate/rejection-reasons")
    assert "Other (specify in notes)" in resp.json()["reasons"]
