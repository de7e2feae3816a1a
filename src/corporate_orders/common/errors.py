"""Error taxonomy for the daily ordering and approval core.

Every failure the core can surface is one of these classes. Callers at the
presentation boundary catch `CorporateOrdersError` and show `user_message(err)`;
nothing here leaves order state half-applied because the core never mutates
order state locally.
"""

from __future__ import annotations

from typing import Any, Mapping

DEFAULT_RETRY_AFTER_SECONDS = 60


class CorporateOrdersError(Exception):
    """Base class for all errors raised by the core."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CorporateOrdersError):
    """Local input problem detected before any network call."""

    default_message = "Invalid input."


class InvalidTransitionError(ValidationError):
    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from {current} to {target}")


class CutoffClosedError(CorporateOrdersError):
    def __init__(self, formatted_cutoff_time: str) -> None:
        self.formatted_cutoff_time = formatted_cutoff_time
        super().__init__(
            f"Ordering for today closed at {formatted_cutoff_time}. "
            "Please try again on the next working day."
        )


class BudgetExceededError(CorporateOrdersError):
    def __init__(self, combined_total: Any, budget_remaining: Any) -> None:
        self.combined_total = combined_total
        self.budget_remaining = budget_remaining
        super().__init__(
            f"Adding to your order would bring it to {combined_total}, "
            f"which exceeds your remaining daily budget of {budget_remaining}."
        )


class ActionInProgressError(CorporateOrdersError):
    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"An action is already in progress for {target}")


class ApiError(CorporateOrdersError):
    """Error reported by (or while talking to) the backend."""

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class AuthError(ApiError):
    default_message = "Your session has expired. Please log in again."


class ForbiddenError(ApiError):
    default_message = "Your account is not active. Please contact your administrator."


class ServerValidationError(ApiError):
    default_message = "The request was rejected by the server."


class PaymentError(ApiError):
    default_message = "Payment failed. The order has not been approved."


class RateLimitError(ApiError):
    def __init__(self, retry_after_seconds: int, **kwargs: Any) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded. Please try again in {retry_after_seconds} seconds.",
            **kwargs,
        )


class UnknownError(ApiError):
    pass


def extract_backend_message(payload: Any) -> str | None:
    """Pull the human-readable message out of a backend error body.

    The backend answers `{"message": "..."}`; validation failures sometimes
    carry a list of messages instead.
    """

    if isinstance(payload, str):
        return payload.strip() or None
    if not isinstance(payload, dict):
        return None

    msg = payload.get("message")
    if isinstance(msg, list):
        parts = [str(m).strip() for m in msg if str(m).strip()]
        return "; ".join(parts) or None
    if isinstance(msg, str) and msg.strip():
        return msg.strip()

    err = payload.get("error")
    if isinstance(err, dict):
        return extract_backend_message(err)
    if isinstance(err, str) and err.strip():
        return err.strip()
    return None


def user_message(err: BaseException) -> str:
    if isinstance(err, CorporateOrdersError):
        return err.message
    return UnknownError.default_message


def parse_retry_after(value: str | None) -> int:
    try:
        return max(int(value), 0) if value is not None else DEFAULT_RETRY_AFTER_SECONDS
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS


def error_for_status(
    status: int,
    payload: Any,
    *,
    headers: Mapping[str, str] | None = None,
    unauthorized_message: str | None = None,
) -> ApiError:
    """Map an HTTP error status and body onto the error taxonomy."""

    message = extract_backend_message(payload)
    if status == 401:
        return AuthError(unauthorized_message or message, status_code=status, payload=payload)
    if status == 403:
        return ForbiddenError(message, status_code=status, payload=payload)
    if status == 429:
        headers = headers or {}
        return RateLimitError(
            parse_retry_after(headers.get("retry-after") or headers.get("Retry-After")),
            status_code=status,
            payload=payload,
        )
    if status in (400, 409, 422):
        return ServerValidationError(message, status_code=status, payload=payload)
    return UnknownError(message or f"HTTP {status}", status_code=status, payload=payload)
