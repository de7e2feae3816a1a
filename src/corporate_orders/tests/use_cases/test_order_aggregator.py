from __future__ import annotations

import itertools
from datetime import date
from decimal import Decimal

from src.corporate_orders.common.models.orders import PendingOrderResponse, SubOrder
from src.corporate_orders.use_cases.order_aggregator import aggregate, aggregate_pending


def _sub(sub_id: str, employee: str, status: str, lines: list[tuple[str, str, int, str]], **kw) -> SubOrder:
    restaurants: dict[str, dict] = {}
    for rid, rname, qty, total in lines:
        ro = restaurants.setdefault(
            rid, {"restaurantId": rid, "restaurantName": rname, "menuItems": []}
        )
        ro["menuItems"].append(
            {
                "menuItemId": f"{rid}-{len(ro['menuItems'])}",
                "name": "Dish",
                "quantity": qty,
                "unitPrice": total,
                "totalPrice": total,
            }
        )
    body = {
        "id": sub_id,
        "employeeId": employee,
        "employeeName": kw.pop("name", employee.title()),
        "status": status,
        "restaurantOrders": list(restaurants.values()),
        "totalAmount": kw.pop("total", sum(Decimal(t) for _, _, _, t in lines)),
    }
    body.update(kw)
    return SubOrder.model_validate(body)


def _fixture() -> list[SubOrder]:
    return [
        _sub("s1", "ann", "PENDING", [("r1", "Noodle Bar", 2, "12.00"), ("r2", "Taco Stand", 1, "6.50")],
             taxAmount="1.20", deliveryFee="2.00", total="21.70"),
        _sub("s2", "bob", "CONFIRMED", [("r1", "Noodle Bar", 1, "9.00")]),
        _sub("s3", "cy", "REJECTED", [("r2", "Taco Stand", 3, "15.00")]),
        _sub("s4", "dee", "CANCELLED", [("r1", "Noodle Bar", 5, "50.00")]),
    ]


def test_aggregate_filters_cancelled_and_rolls_up_restaurants() -> None:
    order = aggregate(_fixture(), order_id="o1", order_date=date(2025, 6, 11))

    assert order.total_employees == 3
    assert {s.id for s in order.sub_orders} == {"s1", "s2", "s3"}
    assert order.total_amount == Decimal("30.70")
    assert order.tax_amount == Decimal("1.20")
    assert order.delivery_fee == Decimal("2.00")
    assert order.subtotal == Decimal("27.50")

    noodle, taco = order.restaurants
    assert (noodle.restaurant_name, noodle.employee_count, noodle.item_count, noodle.total_amount) == (
        "Noodle Bar", 2, 3, Decimal("21.00")
    )
    assert (taco.restaurant_name, taco.employee_count, taco.item_count, taco.total_amount) == (
        "Taco Stand", 1, 1, Decimal("6.50")
    )


def test_rejected_sub_orders_are_listed_but_not_payable() -> None:
    order = aggregate(_fixture())
    cy = order.employee("s3")

    assert cy is not None
    assert cy.status.value == "REJECTED"
    assert cy.total_amount == Decimal("15.00")
    assert order.total_amount == Decimal("30.70")


def test_employee_views_expose_breakdown() -> None:
    order = aggregate(_fixture())
    ann = order.employee("s1")

    assert [e.employee_name for e in order.employees] == ["Ann", "Bob", "Cy"]
    assert ann is not None
    assert ann.restaurant_count == 2
    assert [r.restaurant_name for r in ann.restaurants] == ["Noodle Bar", "Taco Stand"]
    assert ann.total_amount == Decimal("21.70")
    assert order.employee("s4") is None


def test_aggregate_is_independent_of_input_order() -> None:
    subs = _fixture()
    baseline = aggregate(subs)
    for perm in itertools.permutations(subs):
        other = aggregate(list(perm))
        assert other.total_amount == baseline.total_amount
        assert other.subtotal == baseline.subtotal
        assert other.restaurants == baseline.restaurants
        assert other.employees == baseline.employees


def test_empty_input() -> None:
    order = aggregate([])
    assert order.total_employees == 0
    assert order.total_amount == Decimal("0.00")
    assert order.restaurants == ()


def test_aggregate_pending_reads_summary_payload() -> None:
    response = PendingOrderResponse.model_validate(
        {
            "hasOrder": True,
            "orderId": "o1",
            "status": "pending_approval",
            "date": "2025-06-11",
            "employeeOrders": [
                {
                    "subOrderId": "s1",
                    "employeeName": "Ann",
                    "jobTitle": "Engineer",
                    "totalAmount": 18.5,
                    "restaurantCount": 2,
                    "status": "PENDING",
                }
            ],
        }
    )
    order = aggregate_pending(response)

    assert order is not None
    assert order.order_id == "o1"
    assert order.order_date == date(2025, 6, 11)
    assert order.total_amount == Decimal("18.50")
    assert order.employees[0].restaurant_count == 2
    assert order.employees[0].job_title == "Engineer"


def test_aggregate_pending_without_order() -> None:
    assert aggregate_pending(PendingOrderResponse.model_validate({"hasOrder": False})) is None
