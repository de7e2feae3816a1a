"""Manager approval of the daily aggregated order.

Purpose
- Guard the status transitions of the aggregated order and its sub-orders.
- Drive the manager's orders view as an explicit state machine
  (idle -> loading -> loaded | error) through discrete intents.
- Enforce "validate, then pay": payment options are only produced after the
  backend dry-run validation succeeds.

Every mutating intent follows the same shape: check locally, send one request,
then reload the aggregated view from the server. Nothing is mutated in place.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

from src.corporate_orders.common.errors import (
    InvalidTransitionError,
    ServerValidationError,
    ValidationError,
)
from src.corporate_orders.common.models.orders import (
    AggregatedOrderStatus,
    ApprovalRecord,
    CorporateUser,
    PaymentMethod,
    SubOrderStatus,
)
from src.corporate_orders.use_cases.in_flight import InFlightGuard
from src.corporate_orders.use_cases.order_aggregator import AggregatedOrder, aggregate_pending
from src.corporate_orders.use_cases.payment_selector import (
    PaymentOptions,
    build_approval_request,
    finalize_approval,
    load_payment_options,
)

logger = logging.getLogger(__name__)

REJECTION_REASONS: tuple[str, ...] = (
    "Budget exceeded",
    "Invalid items ordered",
    "Duplicate order",
    "Outside approved vendors",
    "Missing approval",
    "Policy violation",
    "Other (specify in notes)",
)

# CANCELLED is set outside this workflow and never appears as a target.
ORDER_TRANSITIONS: dict[AggregatedOrderStatus, frozenset[AggregatedOrderStatus]] = {
    AggregatedOrderStatus.PENDING_APPROVAL: frozenset(
        {AggregatedOrderStatus.APPROVED, AggregatedOrderStatus.REJECTED}
    ),
    AggregatedOrderStatus.APPROVED: frozenset(),
    AggregatedOrderStatus.REJECTED: frozenset(),
}

SUB_ORDER_TRANSITIONS: dict[SubOrderStatus, frozenset[SubOrderStatus]] = {
    SubOrderStatus.PENDING: frozenset({SubOrderStatus.CONFIRMED, SubOrderStatus.REJECTED}),
    SubOrderStatus.CONFIRMED: frozenset(),
    SubOrderStatus.REJECTED: frozenset(),
    SubOrderStatus.CANCELLED: frozenset(),
}


def check_order_transition(
    current: AggregatedOrderStatus, target: AggregatedOrderStatus
) -> None:
    if target not in ORDER_TRANSITIONS[current]:
        raise InvalidTransitionError("order", current.value, target.value)


def check_sub_order_transition(current: SubOrderStatus, target: SubOrderStatus) -> None:
    if target not in SUB_ORDER_TRANSITIONS[current]:
        raise InvalidTransitionError("sub-order", current.value, target.value)


def require_reason(reason: str | None) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Please select a rejection reason")
    return reason


class SubOrderSelection:
    """Checkbox selection for bulk reject. Rejected sub-orders are never selectable."""

    _UNSELECTABLE = (SubOrderStatus.REJECTED, SubOrderStatus.CANCELLED)

    def __init__(self) -> None:
        self._selectable: dict[str, SubOrderStatus] = {}
        self._selected: set[str] = set()

    def reset(self, order: AggregatedOrder | None) -> None:
        self._selected.clear()
        self._selectable = {}
        if order is None:
            return
        self._selectable = {
            s.id: s.status for s in order.sub_orders if s.status not in self._UNSELECTABLE
        }

    @property
    def selected(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def all_selected(self) -> bool:
        return bool(self._selectable) and self._selected == set(self._selectable)

    def toggle(self, sub_order_id: str) -> None:
        if sub_order_id in self._selected:
            self._selected.discard(sub_order_id)
        elif sub_order_id in self._selectable:
            self._selected.add(sub_order_id)

    def select_all(self) -> None:
        self._selected = set(self._selectable)

    def toggle_all(self) -> None:
        if self.all_selected:
            self.clear()
        else:
            self.select_all()

    def clear(self) -> None:
        self._selected.clear()


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class ManagerOrdersView:
    """The manager's pending-order screen, minus the rendering."""

    def __init__(
        self,
        client: Any,
        session: Any,
        *,
        guard: InFlightGuard | None = None,
    ) -> None:
        self._client = client
        self._session = session
        self._guard = guard or InFlightGuard()

        self.state = ViewState.IDLE
        self.order: AggregatedOrder | None = None
        self.error: Exception | None = None
        self.payment_options: PaymentOptions | None = None
        self.selection = SubOrderSelection()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _manager(self) -> CorporateUser:
        return self._session.require_identity()

    def _pending_order(self) -> AggregatedOrder:
        if self.order is None or not self.order.order_id:
            raise ValidationError("There is no pending order to act on")
        return self.order

    def _after_mutation(self) -> None:
        self.payment_options = None
        self.load()

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def load(self) -> AggregatedOrder | None:
        manager = self._manager()
        self.state = ViewState.LOADING
        self.error = None
        try:
            pending = self._client.get_pending_order(manager.id)
        except Exception as e:
            self.state = ViewState.ERROR
            self.error = e
            logger.warning("Failed to load pending order for manager %s: %s", manager.id, e)
            raise

        self.order = aggregate_pending(pending)
        self.selection.reset(self.order)
        self.state = ViewState.LOADED
        return self.order

    def request_approval(self) -> PaymentOptions:
        """Dry-run validation, then the payment options. Nothing is shown on failure."""

        manager = self._manager()
        order = self._pending_order()
        check_order_transition(order.status, AggregatedOrderStatus.APPROVED)
        self.payment_options = None

        with self._guard.hold(f"order:{order.order_id}"):
            result = self._client.validate_approval(order.order_id, manager.id)
            if not result.valid:
                logger.info(
                    "Approval validation refused for order %s: %s", order.order_id, result.message
                )
                raise ServerValidationError(
                    result.message or "Cannot approve order at this time"
                )
            options = load_payment_options(
                self._client,
                order.order_id,
                manager.id,
                manager.organization_id,
                aggregated_total=order.total_amount,
            )

        self.payment_options = options
        return options

    def approve(
        self,
        *,
        payment_method: PaymentMethod | str | None,
        delivery_address_id: str | None,
        payment_method_id: str | None = None,
        delivery_instructions: str | None = None,
        notes: str | None = None,
    ) -> ApprovalRecord:
        manager = self._manager()
        order = self._pending_order()
        check_order_transition(order.status, AggregatedOrderStatus.APPROVED)
        if self.payment_options is None:
            raise ValidationError("Approval must be validated before payment")

        request = build_approval_request(
            self.payment_options,
            manager_id=manager.id,
            payment_method=payment_method,
            delivery_address_id=delivery_address_id,
            payment_method_id=payment_method_id,
            delivery_instructions=delivery_instructions,
            notes=notes,
        )
        with self._guard.hold(f"order:{order.order_id}"):
            record = finalize_approval(self._client, order.order_id, request)
        self._after_mutation()
        return record

    def reject_order(self, reason: str | None, notes: str | None = None) -> None:
        manager = self._manager()
        order = self._pending_order()
        reason = require_reason(reason)
        check_order_transition(order.status, AggregatedOrderStatus.REJECTED)

        with self._guard.hold(f"order:{order.order_id}"):
            self._client.reject_order(
                order.order_id, manager_id=manager.id, reason=reason, notes=notes or None
            )
        logger.info("Order %s rejected by %s (%s)", order.order_id, manager.id, reason)
        self._after_mutation()

    def reject_sub_order(
        self, sub_order_id: str, reason: str | None, notes: str | None = None
    ) -> None:
        manager = self._manager()
        order = self._pending_order()
        reason = require_reason(reason)
        sub = next((s for s in order.sub_orders if s.id == sub_order_id), None)
        if sub is None:
            raise ValidationError(f"Sub-order {sub_order_id} is not part of this order")
        check_sub_order_transition(sub.status, SubOrderStatus.REJECTED)

        with self._guard.hold(f"order:{order.order_id}"):
            self._client.reject_sub_order(
                sub_order_id, manager_id=manager.id, reason=reason, notes=notes or None
            )
        logger.info("Sub-order %s rejected by %s (%s)", sub_order_id, manager.id, reason)
        self._after_mutation()

    def bulk_reject(
        self,
        reason: str | None,
        notes: str | None = None,
        sub_order_ids: Iterable[str] | None = None,
    ) -> list[str]:
        """Reject the selected (or given) sub-orders in one request."""

        manager = self._manager()
        order = self._pending_order()
        reason = require_reason(reason)

        wanted = set(sub_order_ids) if sub_order_ids is not None else set(self.selection.selected)
        by_id = {s.id: s for s in order.sub_orders}
        ids = sorted(
            sid
            for sid in wanted
            if sid in by_id and by_id[sid].status is not SubOrderStatus.REJECTED
        )
        if not ids:
            raise ValidationError("Select at least one order to reject")
        for sid in ids:
            check_sub_order_transition(by_id[sid].status, SubOrderStatus.REJECTED)

        with self._guard.hold(f"order:{order.order_id}"):
            self._client.bulk_reject_sub_orders(
                ids, manager_id=manager.id, reason=reason, notes=notes or None
            )
        logger.info("Bulk rejected %d sub-orders of order %s", len(ids), order.order_id)
        self._after_mutation()
        return ids
