"""Corporate Orders API Router.

Exposes the deterministic parts of the daily ordering core (cutoff, replace
vs. add, aggregation, payment eligibility) so a frontend can reuse them
without re-implementing the rules. None of these endpoints call the backend.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.corporate_orders.common.errors import (
    ActionInProgressError,
    AuthError,
    BudgetExceededError,
    CorporateOrdersError,
    CutoffClosedError,
    ForbiddenError,
    PaymentError,
    RateLimitError,
    ServerValidationError,
    ValidationError,
    user_message,
)
from src.corporate_orders.common.models.orders import (
    AggregatedOrderStatus,
    OrderAction,
    SelectedAddon,
    SubOrder,
)
from src.corporate_orders.use_cases.approval_workflow import REJECTION_REASONS
from src.corporate_orders.use_cases.cutoff_scheduler import (
    compute_delivery_info,
    validate_cutoff_setting,
    validate_delivery_window_setting,
)
from src.corporate_orders.use_cases.order_aggregator import AggregatedOrder, aggregate
from src.corporate_orders.use_cases.order_merger import CartItem, resolve_order_action
from src.corporate_orders.use_cases.payment_selector import select_payment

logger = logging.getLogger(__name__)

orders_router = APIRouter(prefix="/corporate", tags=["Corporate Orders"])


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------


class DeliveryInfoRequest(BaseModel):
    cutoff_time: str | None = None
    delivery_window: str | None = None
    now: datetime | None = None


class OrderSettingsRequest(BaseModel):
    cutoff_time: str | None = None
    delivery_window: str | None = None


class CartItemIn(BaseModel):
    menu_item_id: str
    name: str
    restaurant_id: str
    price: Decimal
    quantity: int = Field(default=1, ge=1)
    discount_price: Decimal | None = None
    is_discount: bool = False
    selected_addons: list[SelectedAddon] = Field(default_factory=list)

    def to_cart_item(self) -> CartItem:
        return CartItem(
            menu_item_id=self.menu_item_id,
            name=self.name,
            restaurant_id=self.restaurant_id,
            price=self.price,
            quantity=self.quantity,
            discount_price=self.discount_price,
            is_discount=self.is_discount,
            selected_addons=tuple(self.selected_addons),
        )


class ResolveOrderRequest(BaseModel):
    cart: list[CartItemIn]
    existing_sub_order: SubOrder | None = None
    budget_remaining: Decimal
    requested_action: OrderAction | None = None
    restaurant_names: dict[str, str] = Field(default_factory=dict)
    special_instructions: str | None = None


class AggregateRequest(BaseModel):
    sub_orders: list[SubOrder]
    order_id: str | None = None
    order_date: date | None = None
    status: AggregatedOrderStatus = AggregatedOrderStatus.PENDING_APPROVAL


class PaymentOptionsRequest(BaseModel):
    aggregated_total: Decimal
    wallet_balance: Decimal
    has_stored_card: bool = False


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _status_for(err: CorporateOrdersError) -> int:
    if isinstance(err, AuthError):
        return 401
    if isinstance(err, ForbiddenError):
        return 403
    if isinstance(err, PaymentError):
        return 402
    if isinstance(err, RateLimitError):
        return 429
    if isinstance(err, (CutoffClosedError, ActionInProgressError)):
        return 409
    if isinstance(err, (ValidationError, BudgetExceededError, ServerValidationError)):
        return 400
    return 502


def _to_http(err: CorporateOrdersError) -> HTTPException:
    status = _status_for(err)
    if status >= 500:
        logger.error("Unhandled core error: %s", err)
    return HTTPException(status_code=status, detail=user_message(err))


def _money(value: Decimal) -> float:
    return float(value)


def _aggregated_payload(order: AggregatedOrder) -> dict[str, Any]:
    return {
        "order_id": order.order_id,
        "date": order.order_date.isoformat() if order.order_date else None,
        "status": order.status.value,
        "total_employees": order.total_employees,
        "subtotal": _money(order.subtotal),
        "tax_amount": _money(order.tax_amount),
        "delivery_fee": _money(order.delivery_fee),
        "total_amount": _money(order.total_amount),
        "restaurants": [
            {
                "restaurant_id": r.restaurant_id,
                "restaurant_name": r.restaurant_name,
                "employee_count": r.employee_count,
                "item_count": r.item_count,
                "total_amount": _money(r.total_amount),
            }
            for r in order.restaurants
        ],
        "employees": [
            {
                "sub_order_id": e.sub_order_id,
                "employee_id": e.employee_id,
                "employee_name": e.employee_name,
                "job_title": e.job_title,
                "status": e.status.value,
                "total_amount": _money(e.total_amount),
                "restaurant_count": e.restaurant_count,
                "restaurants": [
                    {
                        "restaurant_id": line.restaurant_id,
                        "restaurant_name": line.restaurant_name,
                        "item_count": line.item_count,
                        "total_amount": _money(line.total_amount),
                    }
                    for line in e.restaurants
                ],
            }
            for e in order.employees
        ],
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@orders_router.post("/delivery-info")
async def delivery_info(body: DeliveryInfoRequest):
    """Whether ordering is open now and which day the order would be delivered."""

    now = body.now or datetime.now().astimezone()
    try:
        info = compute_delivery_info(body.cutoff_time, now, body.delivery_window)
    except CorporateOrdersError as e:
        raise _to_http(e)

    return {
        "can_order": info.can_order,
        "delivery_date": info.delivery_date.isoformat(),
        "cutoff_datetime": info.cutoff_datetime.isoformat(),
        "formatted_cutoff_time": info.formatted_cutoff_time,
        "delivery_datetime": info.delivery_datetime.isoformat() if info.delivery_datetime else None,
    }


@orders_router.post("/settings/validate")
async def validate_order_settings(body: OrderSettingsRequest):
    """Normalize manager-entered cutoff/delivery times without saving them."""

    result: dict[str, str] = {}
    try:
        if body.cutoff_time is not None:
            result["order_cutoff_time"] = validate_cutoff_setting(body.cutoff_time)
        if body.delivery_window is not None:
            result["default_delivery_time_window"] = validate_delivery_window_setting(
                body.delivery_window
            )
    except CorporateOrdersError as e:
        raise _to_http(e)
    if not result:
        raise HTTPException(status_code=400, detail="No settings to validate")
    return result


@orders_router.post("/orders/resolve")
async def resolve_order(body: ResolveOrderRequest):
    """Replace vs. add decision for a cart against today's existing order."""

    try:
        resolution = resolve_order_action(
            [item.to_cart_item() for item in body.cart],
            body.existing_sub_order,
            body.budget_remaining,
            body.requested_action,
            restaurant_names=body.restaurant_names,
            special_instructions=body.special_instructions,
        )
    except CorporateOrdersError as e:
        raise _to_http(e)

    return {
        "action": resolution.action.value,
        "available_actions": [a.value for a in resolution.available_actions],
        "cart_total": _money(resolution.cart_total),
        "existing_total": _money(resolution.existing_total),
        "total": _money(resolution.total),
        "restaurant_orders": [
            ro.model_dump(mode="json", by_alias=True) for ro in resolution.restaurant_orders
        ],
    }


@orders_router.post("/orders/aggregate")
async def aggregate_orders(body: AggregateRequest):
    order = aggregate(
        body.sub_orders,
        order_id=body.order_id,
        order_date=body.order_date,
        status=body.status,
    )
    return _aggregated_payload(order)


@orders_router.post("/payments/options")
async def payment_options(body: PaymentOptionsRequest):
    options = select_payment(body.aggregated_total, body.wallet_balance, body.has_stored_card)
    return {
        "total": _money(options.total),
        "wallet_balance": _money(options.wallet_balance),
        "preselected": options.preselected.value,
        "options": [
            {"method": o.method.value, "enabled": o.enabled, "notice": o.notice}
            for o in options.options
        ],
    }


@orders_router.get("/rejection-reasons")
async def rejection_reasons():
    return {"reasons": list(REJECTION_REASONS)}
