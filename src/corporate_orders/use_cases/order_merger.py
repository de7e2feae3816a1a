"""Employee checkout: price the cart and reconcile it with today's order.

An employee has at most one active order per day. A new checkout either
replaces that order or is added to it; adding is only offered while the
combined total stays within the employee's remaining daily budget.

The pricing and replace/add decision are pure functions. `OrderSubmitter`
wires them to the session, cutoff check and backend client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from src.corporate_orders.common.errors import (
    ApiError,
    BudgetExceededError,
    CutoffClosedError,
    ForbiddenError,
    ValidationError,
)
from src.corporate_orders.common.models.orders import (
    CorporateUser,
    CorporateUserStatus,
    JobTitle,
    OrderAction,
    OrderLineItem,
    RestaurantOrder,
    SelectedAddon,
    SubOrder,
    to_money,
)
from src.corporate_orders.config.settings import DEFAULT_CUTOFF_TIME
from src.corporate_orders.use_cases.in_flight import InFlightGuard
from src.corporate_orders.use_cases.organization_settings import load_delivery_info

logger = logging.getLogger(__name__)

UNKNOWN_RESTAURANT = "Unknown Restaurant"
ZERO = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class CartItem:
    menu_item_id: str
    name: str
    restaurant_id: str
    price: Decimal
    quantity: int = 1
    discount_price: Decimal | None = None
    is_discount: bool = False
    selected_addons: tuple[SelectedAddon, ...] = ()


@dataclass(frozen=True, slots=True)
class OrderResolution:
    action: OrderAction
    available_actions: tuple[OrderAction, ...]
    restaurant_orders: list[RestaurantOrder]
    total: Decimal
    cart_total: Decimal
    existing_total: Decimal = ZERO

    @property
    def can_add(self) -> bool:
        return OrderAction.ADD in self.available_actions


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


def unit_price(item: CartItem) -> Decimal:
    """Discounted price when flagged and positive, else list price."""

    if item.is_discount and item.discount_price is not None and item.discount_price > 0:
        return to_money(item.discount_price)
    return to_money(item.price)


def line_item_price(item: CartItem) -> Decimal:
    if item.quantity < 1:
        raise ValidationError(f"Quantity for {item.name!r} must be at least 1")
    addons = sum((to_money(a.price) for a in item.selected_addons), ZERO)
    return to_money((unit_price(item) + addons) * item.quantity)


def to_line_item(item: CartItem) -> OrderLineItem:
    return OrderLineItem(
        menu_item_id=item.menu_item_id,
        name=item.name,
        quantity=item.quantity,
        unit_price=unit_price(item),
        total_price=line_item_price(item),
        selected_addons=list(item.selected_addons),
    )


def cart_total(cart: Iterable[CartItem]) -> Decimal:
    return sum((line_item_price(i) for i in cart), ZERO)


def order_lines_total(restaurant_orders: Iterable[RestaurantOrder]) -> Decimal:
    return sum((ro.total_amount for ro in restaurant_orders), ZERO)


def build_restaurant_orders(
    cart: Sequence[CartItem],
    restaurant_names: dict[str, str] | None = None,
    special_instructions: str | None = None,
) -> list[RestaurantOrder]:
    """Group cart lines by restaurant, keeping first-seen restaurant order."""

    names = restaurant_names or {}
    grouped: dict[str, list[OrderLineItem]] = {}
    for item in cart:
        grouped.setdefault(item.restaurant_id, []).append(to_line_item(item))

    return [
        RestaurantOrder(
            restaurant_id=rid,
            restaurant_name=names.get(rid) or UNKNOWN_RESTAURANT,
            menu_items=lines,
            special_instructions=special_instructions or None,
        )
        for rid, lines in grouped.items()
    ]


# ---------------------------------------------------------------------------
# Replace vs. add
# ---------------------------------------------------------------------------


def _addon_key(line: OrderLineItem) -> tuple:
    return tuple(sorted((a.name, str(a.price), a.quantity) for a in line.selected_addons))


def _merge_lines(existing: list[OrderLineItem], new: list[OrderLineItem]) -> list[OrderLineItem]:
    merged = [line.model_copy() for line in existing]
    for line in new:
        match = next(
            (
                m
                for m in merged
                if m.menu_item_id == line.menu_item_id
                and m.unit_price == line.unit_price
                and _addon_key(m) == _addon_key(line)
            ),
            None,
        )
        if match is None:
            merged.append(line.model_copy())
            continue
        idx = merged.index(match)
        merged[idx] = match.model_copy(
            update={
                "quantity": match.quantity + line.quantity,
                "total_price": to_money(match.total_price + line.total_price),
            }
        )
    return merged


def _join_instructions(*values: str | None) -> str | None:
    seen: list[str] = []
    for v in values:
        v = (v or "").strip()
        if v and v not in seen:
            seen.append(v)
    return "; ".join(seen) or None


def merge_restaurant_orders(
    existing: list[RestaurantOrder], new: list[RestaurantOrder]
) -> list[RestaurantOrder]:
    """Fold the new restaurant groups into the existing order's groups."""

    merged: dict[str, RestaurantOrder] = {ro.restaurant_id: ro for ro in existing}
    for ro in new:
        current = merged.get(ro.restaurant_id)
        if current is None:
            merged[ro.restaurant_id] = ro
            continue
        name = current.restaurant_name
        if name == UNKNOWN_RESTAURANT:
            name = ro.restaurant_name
        merged[ro.restaurant_id] = RestaurantOrder(
            restaurant_id=ro.restaurant_id,
            restaurant_name=name,
            menu_items=_merge_lines(current.menu_items, ro.menu_items),
            special_instructions=_join_instructions(
                current.special_instructions, ro.special_instructions
            ),
        )
    return list(merged.values())


def available_actions(
    new_cart_total: Decimal,
    existing: SubOrder | None,
    budget_remaining: Decimal,
) -> tuple[OrderAction, ...]:
    """Actions offered to the employee; the first entry is the default."""

    if existing is None or not existing.is_active:
        return (OrderAction.REPLACE,)
    combined = to_money(new_cart_total) + to_money(existing.total_amount)
    if combined <= to_money(budget_remaining):
        return (OrderAction.ADD, OrderAction.REPLACE)
    return (OrderAction.REPLACE,)


def resolve_order_action(
    cart: Sequence[CartItem],
    existing_sub_order: SubOrder | None,
    employee_budget_remaining: Decimal,
    requested_action: OrderAction | None = None,
    *,
    restaurant_names: dict[str, str] | None = None,
    special_instructions: str | None = None,
) -> OrderResolution:
    """Decide replace vs. add and produce the line items and total to submit."""

    if not cart:
        raise ValidationError("Your cart is empty")

    new_orders = build_restaurant_orders(cart, restaurant_names, special_instructions)
    new_total = order_lines_total(new_orders)

    existing = existing_sub_order if existing_sub_order and existing_sub_order.is_active else None
    actions = available_actions(new_total, existing, employee_budget_remaining)

    if existing is None:
        return OrderResolution(
            action=OrderAction.REPLACE,
            available_actions=actions,
            restaurant_orders=new_orders,
            total=new_total,
            cart_total=new_total,
        )

    existing_total = to_money(existing.total_amount)
    if requested_action is OrderAction.ADD and OrderAction.ADD not in actions:
        raise BudgetExceededError(
            to_money(new_total + existing_total), to_money(employee_budget_remaining)
        )
    action = requested_action or actions[0]

    if action is OrderAction.ADD:
        lines = merge_restaurant_orders(existing.restaurant_orders, new_orders)
    else:
        lines = new_orders

    return OrderResolution(
        action=action,
        available_actions=actions,
        restaurant_orders=lines,
        total=order_lines_total(lines),
        cart_total=new_total,
        existing_total=existing_total,
    )


def effective_budget_remaining(employee: CorporateUser, job_title: JobTitle | None = None) -> Decimal:
    """Employee's remaining daily budget, capped by the job title's max order value."""

    remaining = to_money(employee.daily_budget_remaining)
    if job_title is not None and job_title.is_active and job_title.max_order_value is not None:
        remaining = min(remaining, to_money(job_title.max_order_value))
    return max(remaining, ZERO)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CheckoutRequest:
    cart: Sequence[CartItem]
    delivery_address_id: str
    requested_action: OrderAction | None = None
    restaurant_names: dict[str, str] = field(default_factory=dict)
    special_instructions: str | None = None
    dietary_restrictions: list[str] = field(default_factory=list)


class OrderSubmitter:
    """Runs the checkout gates in order and submits the resolved order.

    Gates: empty cart, identity, account status, cutoff. The cutoff is
    recomputed from fresh organization settings on every call.
    """

    def __init__(
        self,
        client: Any,
        session: Any,
        *,
        clock: Callable[[], datetime] | None = None,
        default_cutoff_time: str = DEFAULT_CUTOFF_TIME,
        guard: InFlightGuard | None = None,
    ) -> None:
        self._client = client
        self._session = session
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._default_cutoff_time = default_cutoff_time
        self._guard = guard or InFlightGuard()

    def _checked_employee(self, cart: Sequence[CartItem]) -> CorporateUser:
        if not cart:
            raise ValidationError("Your cart is empty")
        employee = self._session.require_identity()
        # budget is mutated server-side; always read the latest profile
        employee = self._client.get_corporate_user(employee.id)
        self._session.set_user(employee)
        if employee.status is not CorporateUserStatus.ACTIVE or not employee.can_order:
            raise ForbiddenError(
                f"Your account is {employee.status.value}; ordering is not available."
            )
        return employee

    def _job_title(self, employee: CorporateUser) -> JobTitle | None:
        if not employee.job_title_id:
            return None
        try:
            job_title = self._client.get_job_title(employee.organization_id, employee.job_title_id)
        except ApiError as e:
            if e.status_code in (401, 403):
                raise
            logger.warning(
                "Job title %s unavailable (%s); using employee budget only",
                employee.job_title_id,
                e.message,
            )
            return None
        if job_title.is_active and not job_title.can_order:
            raise ForbiddenError(f"Your job title ({job_title.name}) does not allow ordering.")
        return job_title

    def preview(self, request: CheckoutRequest) -> OrderResolution:
        """Resolve the order without submitting (what the checkout screen shows)."""

        employee = self._checked_employee(request.cart)
        existing = self._client.get_my_order(employee.id)
        budget = effective_budget_remaining(employee, self._job_title(employee))
        return resolve_order_action(
            request.cart,
            existing,
            budget,
            request.requested_action,
            restaurant_names=request.restaurant_names,
            special_instructions=request.special_instructions,
        )

    def submit(self, request: CheckoutRequest) -> SubOrder:
        employee = self._checked_employee(request.cart)

        now = self._clock()
        delivery = load_delivery_info(
            self._client,
            employee.organization_id,
            now,
            default_cutoff_time=self._default_cutoff_time,
        )
        if not delivery.can_order:
            raise CutoffClosedError(delivery.formatted_cutoff_time)
        if not request.delivery_address_id:
            raise ValidationError("Please choose a delivery address")

        existing = self._client.get_my_order(employee.id)
        budget = effective_budget_remaining(employee, self._job_title(employee))
        resolution = resolve_order_action(
            request.cart,
            existing,
            budget,
            request.requested_action,
            restaurant_names=request.restaurant_names,
            special_instructions=request.special_instructions,
        )

        requested_time = delivery.delivery_datetime or (now + timedelta(hours=1))
        payload: dict[str, Any] = {
            "restaurantOrders": [
                ro.model_dump(mode="json", by_alias=True, exclude_none=True)
                for ro in resolution.restaurant_orders
            ],
            "deliveryAddressId": request.delivery_address_id,
            "requestedDeliveryTime": requested_time.isoformat(),
            "orderAction": resolution.action.value,
            "totalAmount": float(resolution.total),
            "dietaryRestrictions": [d for d in request.dietary_restrictions if d],
        }
        if request.special_instructions:
            payload["specialInstructions"] = request.special_instructions

        with self._guard.hold(f"my-order:{employee.id}"):
            order = self._client.submit_my_order(employee.id, payload)
        logger.info(
            "Submitted order %s for employee %s (action=%s, total=%s)",
            order.id,
            employee.id,
            resolution.action.value,
            resolution.total,
        )
        return order
