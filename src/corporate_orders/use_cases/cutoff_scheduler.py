"""Daily ordering cutoff and delivery-date scheduling.

No network calls here: every function is a pure function of the configured
times and the `now` the caller passes in. Callers must recompute on every read
rather than cache a `DeliveryInfo`, since the answer depends on the wall clock.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from src.corporate_orders.common.errors import ValidationError
from src.corporate_orders.config.settings import DEFAULT_CUTOFF_TIME

# Strict HH:MM:SS, 24-hour.
_TIME_OF_DAY_RE = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9]):([0-5][0-9])$")

# Settings-screen input also accepts H:MM / HH:MM with optional seconds.
_TIME_INPUT_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$")

LATEST_CUTOFF = time(18, 0)
EARLIEST_DELIVERY = time(12, 0)
LATEST_DELIVERY = time(20, 0)

SATURDAY = 5
SUNDAY = 6


@dataclass(frozen=True, slots=True)
class DeliveryInfo:
    can_order: bool
    delivery_date: date
    cutoff_datetime: datetime
    formatted_cutoff_time: str
    delivery_datetime: datetime | None = None


def parse_time_of_day(value: str | None, *, field: str = "cutoff time") -> time:
    """Parse a strict `HH:MM:SS` string. `None`/blank means the default cutoff."""

    if value is None or not str(value).strip():
        value = DEFAULT_CUTOFF_TIME
    m = _TIME_OF_DAY_RE.match(str(value).strip())
    if not m:
        raise ValidationError(f"Invalid {field} {value!r}: expected HH:MM:SS (24-hour)")
    return time(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def normalize_time_input(value: str) -> str:
    """Turn `9:30`, `09:30` or `09:30:15` into `HH:MM:SS`."""

    m = _TIME_INPUT_RE.match((value or "").strip())
    if not m:
        raise ValidationError("Invalid time format. Please select a valid time.")
    hours, minutes, seconds = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_time_12h(value: time) -> str:
    """`time(11, 0)` -> `11:00 AM`; `time(0, 5)` -> `12:05 AM`."""

    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def next_working_day(day: date) -> date:
    """The next Monday to Friday strictly after `day`."""

    nxt = day + timedelta(days=1)
    while nxt.weekday() in (SATURDAY, SUNDAY):
        nxt += timedelta(days=1)
    return nxt


def compute_delivery_info(
    cutoff_time: str | None,
    now: datetime,
    delivery_window: str | None = None,
) -> DeliveryInfo:
    """Decide whether ordering is open and which day the order is delivered.

    Before the cutoff the order is delivered today; at or after the cutoff
    ordering is closed and delivery rolls to the next working day.
    """

    cutoff = parse_time_of_day(cutoff_time)
    cutoff_dt = datetime.combine(now.date(), cutoff, tzinfo=now.tzinfo)

    if now < cutoff_dt:
        can_order = True
        delivery_date = now.date()
    else:
        can_order = False
        delivery_date = next_working_day(now.date())

    delivery_dt = None
    if delivery_window:
        window = parse_time_of_day(delivery_window, field="delivery time window")
        delivery_dt = datetime.combine(delivery_date, window, tzinfo=now.tzinfo)

    return DeliveryInfo(
        can_order=can_order,
        delivery_date=delivery_date,
        cutoff_datetime=cutoff_dt,
        formatted_cutoff_time=format_time_12h(cutoff),
        delivery_datetime=delivery_dt,
    )


def validate_cutoff_setting(value: str) -> str:
    """Normalize a manager-entered cutoff; it must fall before 6:00 PM."""

    normalized = normalize_time_input(value)
    if parse_time_of_day(normalized) >= LATEST_CUTOFF:
        raise ValidationError("Cutoff time must be before 6:00 PM (18:00)")
    return normalized


def validate_delivery_window_setting(value: str) -> str:
    """Normalize a manager-entered delivery time; allowed 12:00 PM to 8:00 PM."""

    normalized = normalize_time_input(value)
    t = parse_time_of_day(normalized, field="delivery time window")
    if t < EARLIEST_DELIVERY:
        raise ValidationError("Delivery time must be after 12:00 PM")
    if t > LATEST_DELIVERY:
        raise ValidationError("Delivery time must be before 8:00 PM")
    return normalized
