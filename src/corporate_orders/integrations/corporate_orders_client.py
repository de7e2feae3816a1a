"""Corporate ordering backend connector.

Purpose
- Provide a small, testable wrapper around the corporate-orders REST API.
- Attach the session's bearer token, refresh it once on 401, and translate
  HTTP failures into the core's error taxonomy.
- Validate every response into the typed models at this boundary.

This module does not depend on FastAPI or on the use-case logic.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import ValidationError as PydanticValidationError

from src.corporate_orders.common.errors import (
    ApiError,
    ServerValidationError,
    UnknownError,
    error_for_status,
)
from src.corporate_orders.common.models.orders import (
    Address,
    ApprovalRecord,
    CorporateUser,
    JobTitle,
    Organization,
    PaymentStatus,
    PendingOrderResponse,
    StoredPaymentMethod,
    SubOrder,
    ValidationResult,
)
from src.corporate_orders.config.settings import Settings
from src.corporate_orders.integrations.session import SESSION_EXPIRED_MESSAGE, Session

logger = logging.getLogger(__name__)


class CorporateOrdersClient:
    def __init__(
        self,
        *,
        base_url: str,
        session: Session,
        timeout_seconds: float = 30.0,
        debug_requests: bool = False,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._debug_requests = debug_requests

    @classmethod
    def from_settings(cls, settings: Settings, session: Session) -> "CorporateOrdersClient":
        return cls(
            base_url=settings.api_base_url,
            session=session,
            timeout_seconds=settings.timeout_seconds,
            debug_requests=settings.debug_requests,
        )

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        token = self._session.access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = requests.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                params=params,
                json=json_body,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as e:
            raise UnknownError(f"Could not reach the ordering service: {e}") from e

        # Safe debug: URL only, never headers.
        if self._debug_requests:
            logger.debug("%s %s -> %s", method, getattr(resp, "url", path), resp.status_code)
        return resp

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> Any:
        resp = self._send(method, path, params=params, json_body=json_body)

        if resp.status_code == 401 and not path.startswith("/auth/"):
            logger.info("401 on %s %s; refreshing session", method, path)
            # Session.refresh expires the session and raises AuthError on failure.
            self._session.refresh()
            resp = self._send(method, path, params=params, json_body=json_body)
            if resp.status_code == 401:
                self._session.expire()

        if resp.status_code >= 400:
            raise self._error_for(resp)

        if resp.status_code == 204 or not (resp.text or "").strip():
            return None
        return resp.json()

    @staticmethod
    def _error_for(resp: requests.Response) -> ApiError:
        try:
            payload: Any = resp.json()
        except ValueError:
            payload = resp.text
        return error_for_status(
            resp.status_code,
            payload,
            headers=getattr(resp, "headers", None),
            unauthorized_message=SESSION_EXPIRED_MESSAGE,
        )

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ServerValidationError(
                f"Unexpected {model.__name__} payload from server", payload=data
            ) from e

    # ------------------------------------------------------------------
    # Organization
    # ------------------------------------------------------------------

    def get_organization(self, organization_id: str) -> Organization:
        data = self._request_json("GET", f"/organizations/{organization_id}")
        return self._parse(Organization, data)

    def update_organization(self, organization_id: str, changes: dict[str, Any]) -> Organization | None:
        data = self._request_json("PUT", f"/organizations/{organization_id}", json_body=changes)
        return self._parse(Organization, data) if isinstance(data, dict) and data.get("id") else None

    def list_addresses(self, organization_id: str) -> list[Address]:
        data = self._request_json("GET", f"/organizations/address/{organization_id}")
        return [self._parse(Address, a) for a in (data or [])]

    def get_job_title(self, organization_id: str, job_title_id: str) -> JobTitle:
        data = self._request_json(
            "GET", f"/organizations/{organization_id}/job-titles/{job_title_id}"
        )
        return self._parse(JobTitle, data)

    def get_corporate_user(self, employee_id: str) -> CorporateUser:
        data = self._request_json("GET", f"/corporate-users/{employee_id}")
        return self._parse(CorporateUser, data)

    def list_payment_methods(self, organization_id: str) -> list[StoredPaymentMethod]:
        data = self._request_json(
            "GET", f"/corporate/organization/wallet/payment-methods/{organization_id}"
        )
        if isinstance(data, dict):
            data = data.get("paymentMethods") or data.get("data") or []
        return [self._parse(StoredPaymentMethod, m) for m in (data or [])]

    # ------------------------------------------------------------------
    # Employee orders
    # ------------------------------------------------------------------

    def get_my_order(self, employee_id: str) -> SubOrder | None:
        """Today's active order for the employee, or None."""

        data = self._request_json("GET", f"/corporate-orders/my-order/{employee_id}")
        if not data:
            return None
        return self._parse(SubOrder, data)

    def submit_my_order(self, employee_id: str, order: dict[str, Any]) -> SubOrder:
        data = self._request_json(
            "POST", f"/corporate-orders/my-order/{employee_id}", json_body=order
        )
        return self._parse(SubOrder, data)

    # ------------------------------------------------------------------
    # Manager approval
    # ------------------------------------------------------------------

    def get_pending_order(self, manager_id: str) -> PendingOrderResponse:
        data = self._request_json("GET", f"/corporate-orders/pending/{manager_id}")
        return self._parse(PendingOrderResponse, data or {"hasOrder": False})

    def validate_approval(self, order_id: str, manager_id: str) -> ValidationResult:
        data = self._request_json(
            "POST",
            f"/corporate-orders/validate-approval/{order_id}",
            json_body={"managerId": manager_id},
        )
        if isinstance(data, bool):
            return ValidationResult(valid=data)
        if data is None:
            return ValidationResult(valid=False, message="Cannot approve order at this time")
        return self._parse(ValidationResult, data)

    def get_payment_status(self, order_id: str, manager_id: str) -> PaymentStatus:
        data = self._request_json(
            "GET",
            f"/corporate-orders/payment-status/{order_id}",
            params={"managerId": manager_id},
        )
        return self._parse(PaymentStatus, data)

    def approve_order(
        self,
        order_id: str,
        *,
        manager_id: str,
        payment_method: str,
        delivery_address_id: str,
        payment_method_id: str | None = None,
        delivery_instructions: str | None = None,
        notes: str | None = None,
    ) -> ApprovalRecord:
        payload: dict[str, Any] = {
            "managerId": manager_id,
            "paymentMethod": payment_method,
            "paymentMethodId": payment_method_id,
            "deliveryAddressId": delivery_address_id,
            "deliveryInstructions": delivery_instructions,
            "notes": notes,
        }
        payload = {k: v for k, v in payload.items() if v is not None}
        data = self._request_json(
            "POST", f"/corporate-orders/{order_id}/approve", json_body=payload
        )
        return self._parse(ApprovalRecord, data or {"orderId": order_id})

    def reject_order(
        self, order_id: str, *, manager_id: str, reason: str, notes: str | None = None
    ) -> Any:
        return self._request_json(
            "POST",
            f"/corporate-orders/{order_id}/reject",
            json_body=self._reject_body(manager_id, reason, notes),
        )

    def reject_sub_order(
        self, sub_order_id: str, *, manager_id: str, reason: str, notes: str | None = None
    ) -> Any:
        return self._request_json(
            "POST",
            f"/corporate-orders/sub-orders/{sub_order_id}/reject",
            json_body=self._reject_body(manager_id, reason, notes),
        )

    def bulk_reject_sub_orders(
        self,
        sub_order_ids: list[str],
        *,
        manager_id: str,
        reason: str,
        notes: str | None = None,
    ) -> Any:
        body = self._reject_body(manager_id, reason, notes)
        body["subOrderIds"] = list(sub_order_ids)
        return self._request_json(
            "POST", "/corporate-orders/sub-orders/bulk-reject", json_body=body
        )

    @staticmethod
    def _reject_body(manager_id: str, reason: str, notes: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"managerId": manager_id, "reason": reason}
        if notes:
            body["notes"] = notes
        return body
