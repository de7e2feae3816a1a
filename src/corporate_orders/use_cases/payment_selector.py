"""Payment method choice and the single approve call.

Wallet is offered when the organization balance covers the payable total; the
server's `canPayFromWallet` overrides that check when it is reported. A
delivery address is required for both wallet and card; card payment also
needs a tokenized payment-method id from the payment processor widget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Sequence

from src.corporate_orders.common.errors import (
    ApiError,
    AuthError,
    ForbiddenError,
    PaymentError,
    ValidationError,
)
from src.corporate_orders.common.models.orders import (
    Address,
    ApprovalRecord,
    PaymentMethod,
    StoredPaymentMethod,
    to_money,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE_NOTICE = "Insufficient balance. Please add funds or pay with card."


@dataclass(frozen=True, slots=True)
class PaymentOption:
    method: PaymentMethod
    enabled: bool
    notice: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentOptions:
    total: Decimal
    wallet_balance: Decimal
    options: tuple[PaymentOption, ...]
    preselected: PaymentMethod
    has_stored_card: bool = False
    stored_cards: tuple[StoredPaymentMethod, ...] = ()
    delivery_addresses: tuple[Address, ...] = ()
    default_address_id: str | None = None

    def option(self, method: PaymentMethod) -> PaymentOption:
        return next(o for o in self.options if o.method is method)

    def is_enabled(self, method: PaymentMethod) -> bool:
        return self.option(method).enabled


@dataclass(frozen=True, slots=True)
class ApprovalRequest:
    manager_id: str
    payment_method: PaymentMethod
    delivery_address_id: str
    payment_method_id: str | None = None
    delivery_instructions: str | None = None
    notes: str | None = None


def select_payment(
    aggregated_total: Decimal,
    wallet_balance: Decimal,
    has_stored_card: bool = False,
    wallet_allowed: bool | None = None,
) -> PaymentOptions:
    """`wallet_allowed` is the server's own verdict and wins when present."""

    total = to_money(aggregated_total)
    balance = to_money(wallet_balance)
    wallet_ok = balance >= total if wallet_allowed is None else wallet_allowed

    wallet = PaymentOption(
        PaymentMethod.WALLET,
        enabled=wallet_ok,
        notice=None if wallet_ok else INSUFFICIENT_BALANCE_NOTICE,
    )
    card = PaymentOption(
        PaymentMethod.STRIPE_DIRECT,
        enabled=True,
        notice=None if has_stored_card else "Enter card details to pay.",
    )
    return PaymentOptions(
        total=total,
        wallet_balance=balance,
        options=(wallet, card),
        preselected=PaymentMethod.WALLET if wallet_ok else PaymentMethod.STRIPE_DIRECT,
        has_stored_card=has_stored_card,
    )


def default_delivery_address(addresses: Sequence[Address]) -> Address | None:
    """The address to pre-select: only when exactly one is flagged default."""

    defaults = [a for a in addresses if a.is_default]
    return defaults[0] if len(defaults) == 1 else None


def build_approval_request(
    options: PaymentOptions,
    *,
    manager_id: str,
    payment_method: PaymentMethod | str | None,
    delivery_address_id: str | None,
    payment_method_id: str | None = None,
    delivery_instructions: str | None = None,
    notes: str | None = None,
) -> ApprovalRequest:
    """Check the manager's selection before anything is sent."""

    if not delivery_address_id:
        raise ValidationError("Please select a delivery address")
    if not payment_method:
        raise ValidationError("Please select a payment method")
    try:
        method = PaymentMethod(payment_method)
    except ValueError as e:
        raise ValidationError(f"Unsupported payment method {payment_method!r}") from e

    if method is PaymentMethod.WALLET and not options.is_enabled(PaymentMethod.WALLET):
        raise ValidationError(INSUFFICIENT_BALANCE_NOTICE)
    if method is PaymentMethod.STRIPE_DIRECT and not payment_method_id:
        raise ValidationError("Please provide card details")

    return ApprovalRequest(
        manager_id=manager_id,
        payment_method=method,
        delivery_address_id=delivery_address_id,
        payment_method_id=payment_method_id if method is PaymentMethod.STRIPE_DIRECT else None,
        delivery_instructions=(delivery_instructions or "").strip() or None,
        notes=(notes or "").strip() or None,
    )


def finalize_approval(client: Any, order_id: str, request: ApprovalRequest) -> ApprovalRecord:
    """Send the approve call; failures other than auth become `PaymentError`."""

    try:
        record = client.approve_order(
            order_id,
            manager_id=request.manager_id,
            payment_method=request.payment_method.value,
            delivery_address_id=request.delivery_address_id,
            payment_method_id=request.payment_method_id,
            delivery_instructions=request.delivery_instructions,
            notes=request.notes,
        )
    except (AuthError, ForbiddenError):
        raise
    except ApiError as e:
        logger.warning("Approval payment failed for order %s: %s", order_id, e.message)
        raise PaymentError(e.message, status_code=e.status_code, payload=e.payload) from e

    logger.info(
        "Order %s approved by %s via %s", order_id, request.manager_id, request.payment_method.value
    )
    return record


def load_payment_options(
    client: Any,
    order_id: str,
    manager_id: str,
    organization_id: str,
    aggregated_total: Decimal | None = None,
) -> PaymentOptions:
    """Read wallet status, stored cards and addresses, then select."""

    status = client.get_payment_status(order_id, manager_id)
    total = aggregated_total if aggregated_total is not None else status.total_amount

    try:
        cards = tuple(client.list_payment_methods(organization_id))
    except (AuthError, ForbiddenError):
        raise
    except ApiError as e:
        logger.warning("Stored payment methods unavailable (%s)", e.message)
        cards = ()

    addresses = tuple(client.list_addresses(organization_id))
    default = default_delivery_address(addresses)

    options = select_payment(
        total,
        status.wallet_balance,
        has_stored_card=bool(cards),
        wallet_allowed=status.can_pay_from_wallet,
    )
    return replace(
        options,
        stored_cards=cards,
        delivery_addresses=addresses,
        default_address_id=default.id if default else None,
    )
