from __future__ import annotations

import json
from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests

from src.corporate_orders.common.errors import (
    AuthError,
    ForbiddenError,
    RateLimitError,
    ServerValidationError,
    UnknownError,
)
from src.corporate_orders.common.models.orders import SubOrderStatus
from src.corporate_orders.integrations.corporate_orders_client import CorporateOrdersClient
from src.corporate_orders.integrations.session import Session


class _FakeResp:
    def __init__(self, status_code: int, payload=None, text: str | None = None, headers=None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else json.dumps(payload))
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _session(tmp_path, access_token: str = "ok", refresh_token: str | None = "refresh") -> Session:
    tokens_path = tmp_path / "tokens.json"
    tokens_path.write_text(
        json.dumps(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "user": {"id": "mgr-1", "organizationId": "org-1", "status": "active"},
            }
        )
    )
    session = Session(base_url="http://api.test", tokens_path=str(tokens_path))
    assert session.load() is True
    return session


def _client(session: Session) -> CorporateOrdersClient:
    return CorporateOrdersClient(base_url="http://api.test", session=session)


def test_request_refreshes_token_once_on_401(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path, access_token="expired")
    seen: list[tuple[str, str | None]] = []

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        seen.append((url, (headers or {}).get("Authorization")))
        if url.endswith("/auth/refresh-corporate"):
            assert json == {"refresh_token": "refresh"}
            return _FakeResp(200, {"access_token": "fresh"})
        if (headers or {}).get("Authorization") == "Bearer expired":
            return _FakeResp(401, {"message": "Unauthorized"})
        return _FakeResp(200, {"id": "org-1", "orderCutoffTime": "10:30:00"})

    monkeypatch.setattr("requests.request", fake_request)

    org = _client(session).get_organization("org-1")

    assert org.order_cutoff_time == "10:30:00"
    assert [u for u, _ in seen] == [
        "http://api.test/organizations/org-1",
        "http://api.test/auth/refresh-corporate",
        "http://api.test/organizations/org-1",
    ]
    assert seen[-1][1] == "Bearer fresh"
    assert session.access_token == "fresh"


def test_second_401_expires_session_and_notifies(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    messages: list[str] = []
    session.on_expired(messages.append)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        if url.endswith("/auth/refresh-corporate"):
            return _FakeResp(200, {"access_token": "still-bad"})
        return _FakeResp(401, {"message": "Unauthorized"})

    monkeypatch.setattr("requests.request", fake_request)

    with pytest.raises(AuthError):
        _client(session).get_pending_order("mgr-1")

    assert session.is_expired is True
    assert messages == ["Your session has expired. Please log in again."]


def test_failed_refresh_expires_session(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    messages: list[str] = []
    session.on_expired(messages.append)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        if url.endswith("/auth/refresh-corporate"):
            return _FakeResp(401, {"message": "Invalid refresh token"})
        return _FakeResp(401, {"message": "Unauthorized"})

    monkeypatch.setattr("requests.request", fake_request)

    with pytest.raises(AuthError) as exc:
        _client(session).get_my_order("emp-1")

    assert exc.value.message == "Your session has expired. Please log in again."
    assert len(messages) == 1
    with pytest.raises(AuthError):
        session.require_identity()


def test_error_status_mapping(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    responses = {
        "/corporate-orders/pending/a": _FakeResp(403, {"message": "Account is inactive"}),
        "/corporate-orders/pending/b": _FakeResp(
            429, {"message": "Too many"}, headers={"retry-after": "17"}
        ),
        "/corporate-orders/pending/c": _FakeResp(
            400, {"message": ["quantity must be positive", "name is required"]}
        ),
        "/corporate-orders/pending/d": _FakeResp(500, None, text="<html>boom</html>"),
        "/corporate-orders/pending/e": _FakeResp(429, {}),
    }

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        return responses[url.removeprefix("http://api.test")]

    monkeypatch.setattr("requests.request", fake_request)
    client = _client(session)

    with pytest.raises(ForbiddenError) as forbidden:
        client.get_pending_order("a")
    assert forbidden.value.message == "Account is inactive"

    with pytest.raises(RateLimitError) as limited:
        client.get_pending_order("b")
    assert limited.value.retry_after_seconds == 17
    assert "17 seconds" in limited.value.message

    with pytest.raises(ServerValidationError) as invalid:
        client.get_pending_order("c")
    assert invalid.value.message == "quantity must be positive; name is required"

    with pytest.raises(UnknownError) as unknown:
        client.get_pending_order("d")
    assert unknown.value.status_code == 500

    with pytest.raises(RateLimitError) as default_limited:
        client.get_pending_order("e")
    assert default_limited.value.retry_after_seconds == 60


def test_network_failure_becomes_unknown_error(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)

    def fake_request(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("requests.request", fake_request)

    with pytest.raises(UnknownError):
        _client(session).list_addresses("org-1")


def test_unknown_status_in_payload_fails_validation(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        return _FakeResp(200, {"id": "s1", "employeeId": "e1", "status": "ON_HOLD", "totalAmount": 5})

    monkeypatch.setattr("requests.request", fake_request)

    with pytest.raises(ServerValidationError):
        _client(session).get_my_order("e1")


def test_get_my_order_returns_none_when_empty(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        return _FakeResp(200, None, text="")

    monkeypatch.setattr("requests.request", fake_request)

    assert _client(session).get_my_order("e1") is None


def test_get_my_order_parses_sub_order(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        return _FakeResp(
            200,
            {
                "id": "s1",
                "employeeId": "e1",
                "status": "PENDING",
                "totalAmount": 12.5,
                "restaurantOrders": [
                    {
                        "restaurantId": "r1",
                        "restaurantName": "Noodle Bar",
                        "menuItems": [
                            {
                                "menuItemId": "m1",
                                "name": "Ramen",
                                "quantity": 1,
                                "unitPrice": 12.5,
                                "totalPrice": 12.5,
                                "selectedAddons": None,
                            }
                        ],
                    }
                ],
            },
        )

    monkeypatch.setattr("requests.request", fake_request)

    sub = _client(session).get_my_order("e1")
    assert sub is not None
    assert sub.status is SubOrderStatus.PENDING
    assert sub.total_amount == Decimal("12.5")
    assert sub.restaurant_orders[0].menu_items[0].selected_addons == []


def test_validate_approval_accepts_bare_boolean(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    seen = SimpleNamespace(json=None)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        seen.json = json
        return _FakeResp(200, False)

    monkeypatch.setattr("requests.request", fake_request)

    result = _client(session).validate_approval("o1", "mgr-1")
    assert result.valid is False
    assert seen.json == {"managerId": "mgr-1"}


def test_payment_status_passes_manager_id(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    seen = SimpleNamespace(url=None, params=None)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        seen.url = url
        seen.params = params
        return _FakeResp(200, {"walletBalance": 100, "canPayFromWallet": False})

    monkeypatch.setattr("requests.request", fake_request)

    status = _client(session).get_payment_status("o1", "mgr-1")
    assert seen.url == "http://api.test/corporate-orders/payment-status/o1"
    assert seen.params == {"managerId": "mgr-1"}
    assert status.wallet_balance == Decimal("100")
    assert status.can_pay_from_wallet is False


def test_approve_order_omits_unset_fields(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    seen = SimpleNamespace(method=None, url=None, json=None)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        seen.method, seen.url, seen.json = method, url, json
        return _FakeResp(200, {"orderId": "o1", "status": "approved", "approvedBy": "mgr-1"})

    monkeypatch.setattr("requests.request", fake_request)

    record = _client(session).approve_order(
        "o1", manager_id="mgr-1", payment_method="wallet", delivery_address_id="addr-1"
    )
    assert seen.method == "POST"
    assert seen.url == "http://api.test/corporate-orders/o1/approve"
    assert seen.json == {
        "managerId": "mgr-1",
        "paymentMethod": "wallet",
        "deliveryAddressId": "addr-1",
    }
    assert record.approved_by == "mgr-1"


def test_bulk_reject_sends_ids_and_reason(monkeypatch, tmp_path) -> None:
    session = _session(tmp_path)
    seen = SimpleNamespace(url=None, json=None)

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        seen.url, seen.json = url, json
        return _FakeResp(204, None, text="")

    monkeypatch.setattr("requests.request", fake_request)

    _client(session).bulk_reject_sub_orders(
        ["s1", "s2"], manager_id="mgr-1", reason="Duplicate order"
    )
    assert seen.url == "http://api.test/corporate-orders/sub-orders/bulk-reject"
    assert seen.json == {"managerId": "mgr-1", "reason": "Duplicate order", "subOrderIds": ["s1", "s2"]}
