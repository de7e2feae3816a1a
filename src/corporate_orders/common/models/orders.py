"""
Backend payload models for corporate daily ordering.

Every response that crosses the API boundary is validated into one of these
models; unknown statuses fail validation instead of being passed through.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer, field_validator

TWO_PLACES = Decimal("0.01")

# Decimal in Python, plain JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce an amount to a 2dp Decimal (floats go through str to avoid binary noise)."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(TWO_PLACES)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SubOrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class AggregatedOrderStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class CorporateUserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    STRIPE_DIRECT = "stripe_direct"


class OrderAction(str, Enum):
    REPLACE = "replace"
    ADD = "add"


# ---------------------------------------------------------------------------
# Base Models
# ---------------------------------------------------------------------------

class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Organization(ApiModel):
    id: str
    name: Optional[str] = None
    wallet_balance: Money = Field(default=Decimal("0.00"), alias="walletBalance")
    order_cutoff_time: Optional[str] = Field(default=None, alias="orderCutoffTime")
    default_delivery_time_window: Optional[str] = Field(
        default=None, alias="defaultDeliveryTimeWindow"
    )
    auto_approve_employees: bool = Field(default=False, alias="autoApproveEmployees")


class JobTitle(ApiModel):
    """Budget policy template assigned to employees."""
    id: str
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    name: str
    daily_budget_limit: Optional[Money] = Field(default=None, alias="dailyBudgetLimit")
    monthly_budget_limit: Optional[Money] = Field(default=None, alias="monthlyBudgetLimit")
    max_order_value: Optional[Money] = Field(default=None, alias="maxOrderValue")
    approval_threshold: Optional[Money] = Field(default=None, alias="approvalThreshold")
    can_order: bool = Field(default=True, alias="canOrder")
    requires_approval: bool = Field(default=True, alias="requiresApproval")
    is_active: bool = Field(default=True, alias="isActive")


class CorporateUser(ApiModel):
    """An employee (or manager) of an organization."""
    id: str
    organization_id: str = Field(alias="organizationId")
    job_title_id: Optional[str] = Field(default=None, alias="jobTitleId")
    job_title_name: Optional[str] = Field(default=None, alias="jobTitleName")
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    corporate_role: Optional[str] = Field(default=None, alias="corporateRole")
    daily_budget_limit: Money = Field(default=Decimal("0.00"), alias="dailyBudgetLimit")
    daily_budget_remaining: Money = Field(default=Decimal("0.00"), alias="dailyBudgetRemaining")
    monthly_budget_limit: Money = Field(default=Decimal("0.00"), alias="monthlyBudgetLimit")
    monthly_budget_remaining: Money = Field(
        default=Decimal("0.00"), alias="monthlyBudgetRemaining"
    )
    status: CorporateUserStatus = CorporateUserStatus.PENDING
    can_order: bool = Field(default=True, alias="canOrder")
    dietary_restrictions: List[str] = Field(default_factory=list, alias="dietaryRestrictions")

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or (self.email or self.id)


class SelectedAddon(ApiModel):
    name: str
    price: Money = Decimal("0.00")
    quantity: int = Field(default=1, ge=1)
    group_title: Optional[str] = Field(default=None, alias="groupTitle")


class OrderLineItem(ApiModel):
    menu_item_id: str = Field(alias="menuItemId")
    name: str
    quantity: int = Field(ge=1)
    unit_price: Money = Field(alias="unitPrice")
    total_price: Money = Field(alias="totalPrice")
    selected_addons: List[SelectedAddon] = Field(default_factory=list, alias="selectedAddons")

    @field_validator("selected_addons", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []


class RestaurantOrder(ApiModel):
    restaurant_id: str = Field(alias="restaurantId")
    restaurant_name: str = Field(default="Unknown Restaurant", alias="restaurantName")
    menu_items: List[OrderLineItem] = Field(default_factory=list, alias="menuItems")
    special_instructions: Optional[str] = Field(default=None, alias="specialInstructions")

    @property
    def total_amount(self) -> Decimal:
        return sum((i.total_price for i in self.menu_items), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.menu_items)


class SubOrder(ApiModel):
    """One employee's order for one day."""
    id: str = Field(validation_alias=AliasChoices("id", "subOrderId"))
    employee_id: Optional[str] = Field(default=None, alias="employeeId")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    status: SubOrderStatus = SubOrderStatus.PENDING
    restaurant_orders: List[RestaurantOrder] = Field(default_factory=list, alias="restaurantOrders")
    total_amount: Money = Field(alias="totalAmount")
    subtotal: Optional[Money] = None
    tax_amount: Money = Field(default=Decimal("0.00"), alias="taxAmount")
    delivery_fee: Money = Field(default=Decimal("0.00"), alias="deliveryFee")
    employee_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("employeeName", "employee_name")
    )
    job_title: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("jobTitle", "jobTitleName", "job_title")
    )
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    # pending-view summaries carry a count instead of the restaurant orders
    restaurant_count: Optional[int] = Field(default=None, alias="restaurantCount")

    @property
    def is_active(self) -> bool:
        return self.status not in (SubOrderStatus.CANCELLED, SubOrderStatus.REJECTED)

    @property
    def effective_subtotal(self) -> Decimal:
        if self.subtotal is not None:
            return self.subtotal
        return self.total_amount - self.tax_amount - self.delivery_fee


class PendingOrderResponse(ApiModel):
    """Payload of GET /corporate-orders/pending/{managerId}."""
    has_order: bool = Field(default=False, alias="hasOrder")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    status: AggregatedOrderStatus = AggregatedOrderStatus.PENDING_APPROVAL
    order_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("date", "orderDate", "order_date")
    )
    sub_orders: List[SubOrder] = Field(
        default_factory=list,
        validation_alias=AliasChoices("subOrders", "employeeOrders", "sub_orders"),
    )


class Address(ApiModel):
    id: str
    name: Optional[str] = None
    address_line1: Optional[str] = Field(default=None, alias="addressLine1")
    city: Optional[str] = None
    zipcode: Optional[str] = None
    is_default: bool = Field(default=False, alias="isDefault")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")


class PaymentStatus(ApiModel):
    wallet_balance: Money = Field(default=Decimal("0.00"), alias="walletBalance")
    total_amount: Money = Field(default=Decimal("0.00"), alias="totalAmount")
    can_pay_from_wallet: Optional[bool] = Field(default=None, alias="canPayFromWallet")


class StoredPaymentMethod(ApiModel):
    id: str
    brand: Optional[str] = None
    last4: Optional[str] = None
    is_default: bool = Field(default=False, alias="isDefault")


class ApprovalRecord(ApiModel):
    order_id: Optional[str] = Field(default=None, alias="orderId")
    status: Optional[AggregatedOrderStatus] = None
    approved_by: Optional[str] = Field(default=None, alias="approvedBy")
    approved_at: Optional[datetime] = Field(default=None, alias="approvedAt")
    payment_method: Optional[PaymentMethod] = Field(default=None, alias="paymentMethod")
    notes: Optional[str] = None


class ValidationResult(ApiModel):
    """Payload of POST /corporate-orders/validate-approval/{orderId}."""
    valid: bool = Field(default=True, validation_alias=AliasChoices("valid", "canApprove", "success"))
    message: Optional[str] = None
