"""Manager roll-up of the organization's sub-orders for one day.

The aggregated order is never stored; it is rebuilt from the live sub-orders
every time the manager view loads. Output does not depend on input ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from src.corporate_orders.common.models.orders import (
    AggregatedOrderStatus,
    PendingOrderResponse,
    SubOrder,
    SubOrderStatus,
    to_money,
)

ZERO = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class RestaurantRollup:
    restaurant_id: str
    restaurant_name: str
    employee_count: int
    item_count: int
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class EmployeeRestaurantLine:
    restaurant_id: str
    restaurant_name: str
    item_count: int
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class EmployeeOrderView:
    sub_order_id: str
    employee_id: str | None
    employee_name: str
    job_title: str | None
    status: SubOrderStatus
    total_amount: Decimal
    restaurants: tuple[EmployeeRestaurantLine, ...]
    reported_restaurant_count: int | None = None

    @property
    def restaurant_count(self) -> int:
        if self.restaurants or self.reported_restaurant_count is None:
            return len(self.restaurants)
        return self.reported_restaurant_count


@dataclass(frozen=True, slots=True)
class AggregatedOrder:
    order_id: str | None
    order_date: date | None
    status: AggregatedOrderStatus
    sub_orders: tuple[SubOrder, ...]
    restaurants: tuple[RestaurantRollup, ...]
    employees: tuple[EmployeeOrderView, ...]
    subtotal: Decimal
    tax_amount: Decimal
    delivery_fee: Decimal
    total_amount: Decimal

    @property
    def total_employees(self) -> int:
        return len(self.sub_orders)

    def employee(self, sub_order_id: str) -> EmployeeOrderView | None:
        return next((e for e in self.employees if e.sub_order_id == sub_order_id), None)


def _employee_view(sub: SubOrder) -> EmployeeOrderView:
    lines = sorted(
        (
            EmployeeRestaurantLine(
                restaurant_id=ro.restaurant_id,
                restaurant_name=ro.restaurant_name,
                item_count=ro.item_count,
                total_amount=to_money(ro.total_amount),
            )
            for ro in sub.restaurant_orders
        ),
        key=lambda r: (r.restaurant_name, r.restaurant_id),
    )
    return EmployeeOrderView(
        sub_order_id=sub.id,
        employee_id=sub.employee_id,
        employee_name=sub.employee_name or "Unknown Employee",
        job_title=sub.job_title,
        status=sub.status,
        total_amount=to_money(sub.total_amount),
        restaurants=tuple(lines),
        reported_restaurant_count=sub.restaurant_count,
    )


def aggregate(
    sub_orders: Iterable[SubOrder],
    *,
    order_id: str | None = None,
    order_date: date | None = None,
    status: AggregatedOrderStatus = AggregatedOrderStatus.PENDING_APPROVAL,
) -> AggregatedOrder:
    """Roll up the day's sub-orders by restaurant and by employee.

    CANCELLED sub-orders are dropped. REJECTED ones stay listed but are left
    out of every amount and restaurant roll-up, so the totals are what the
    manager actually pays for.
    """

    included = sorted(
        (s for s in sub_orders if s.status is not SubOrderStatus.CANCELLED),
        key=lambda s: s.id,
    )

    names: dict[str, str] = {}
    employees: dict[str, set[str]] = {}
    items: dict[str, int] = {}
    totals: dict[str, Decimal] = {}

    subtotal = tax = delivery = total = ZERO
    for sub in included:
        if not sub.is_active:
            continue
        subtotal += to_money(sub.effective_subtotal)
        tax += to_money(sub.tax_amount)
        delivery += to_money(sub.delivery_fee)
        total += to_money(sub.total_amount)

        for ro in sub.restaurant_orders:
            rid = ro.restaurant_id
            # same restaurant may arrive with different display names
            name = ro.restaurant_name
            names[rid] = min(names.get(rid, name), name)
            employees.setdefault(rid, set()).add(sub.employee_id or sub.id)
            items[rid] = items.get(rid, 0) + ro.item_count
            totals[rid] = totals.get(rid, ZERO) + to_money(ro.total_amount)

    restaurants = sorted(
        (
            RestaurantRollup(
                restaurant_id=rid,
                restaurant_name=names[rid],
                employee_count=len(employees[rid]),
                item_count=items[rid],
                total_amount=totals[rid],
            )
            for rid in names
        ),
        key=lambda r: (r.restaurant_name, r.restaurant_id),
    )
    views = sorted(
        (_employee_view(s) for s in included),
        key=lambda e: (e.employee_name, e.sub_order_id),
    )

    return AggregatedOrder(
        order_id=order_id,
        order_date=order_date,
        status=status,
        sub_orders=tuple(included),
        restaurants=tuple(restaurants),
        employees=tuple(views),
        subtotal=subtotal,
        tax_amount=tax,
        delivery_fee=delivery,
        total_amount=total,
    )


def aggregate_pending(response: PendingOrderResponse) -> AggregatedOrder | None:
    if not response.has_order:
        return None
    return aggregate(
        response.sub_orders,
        order_id=response.order_id,
        order_date=response.order_date,
        status=response.status,
    )
