"""Organization order settings: read for scheduling, validate before update."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from src.corporate_orders.common.errors import ApiError, ValidationError
from src.corporate_orders.common.models.orders import Organization
from src.corporate_orders.config.settings import DEFAULT_CUTOFF_TIME
from src.corporate_orders.use_cases.cutoff_scheduler import (
    DeliveryInfo,
    compute_delivery_info,
    validate_cutoff_setting,
    validate_delivery_window_setting,
)

logger = logging.getLogger(__name__)


class OrganizationSettingsSource(Protocol):
    def get_organization(self, organization_id: str) -> Organization: ...

    def update_organization(self, organization_id: str, changes: dict[str, Any]) -> Any: ...


def load_delivery_info(
    client: OrganizationSettingsSource,
    organization_id: str,
    now: datetime,
    *,
    default_cutoff_time: str = DEFAULT_CUTOFF_TIME,
) -> DeliveryInfo:
    """Fetch the organization's cutoff config and compute today's `DeliveryInfo`.

    If the settings cannot be fetched the default cutoff is used; auth errors
    still propagate since they must block the caller.
    """

    cutoff = default_cutoff_time
    window = None
    try:
        org = client.get_organization(organization_id)
    except ApiError as e:
        if e.status_code in (401, 403):
            raise
        logger.warning(
            "Organization %s settings unavailable (%s); using default cutoff %s",
            organization_id,
            e.message,
            default_cutoff_time,
        )
    else:
        cutoff = org.order_cutoff_time or default_cutoff_time
        window = org.default_delivery_time_window

    return compute_delivery_info(cutoff, now, window)


def update_order_settings(
    client: OrganizationSettingsSource,
    organization_id: str,
    *,
    cutoff_time: str | None = None,
    delivery_window: str | None = None,
    auto_approve: bool | None = None,
) -> dict[str, Any]:
    """Validate and PUT only the supplied settings. Returns the body sent."""

    if not organization_id:
        raise ValidationError("Organization is required")

    changes: dict[str, Any] = {}
    if cutoff_time is not None:
        changes["orderCutoffTime"] = validate_cutoff_setting(cutoff_time)
    if delivery_window is not None:
        changes["defaultDeliveryTimeWindow"] = validate_delivery_window_setting(delivery_window)
    if auto_approve is not None:
        changes["autoApproveEmployees"] = bool(auto_approve)
    if not changes:
        raise ValidationError("No settings to update")

    client.update_organization(organization_id, changes)
    logger.info("Updated order settings for organization %s: %s", organization_id, sorted(changes))
    return changes
