"""Explicit authenticated session for corporate users.

Purpose
- Hold the bearer/refresh tokens and the signed-in `CorporateUser`.
- Own the sign-in / sign-out / refresh lifecycle in one place.
- Notify listeners when the session expires so the presentation layer can
  force re-authentication.

Components that need identity receive a `Session` instance as a parameter;
there is no module-level session.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote

import requests

from src.corporate_orders.common.errors import (
    ApiError,
    AuthError,
    UnknownError,
    error_for_status,
)
from src.corporate_orders.common.models.orders import CorporateUser
from src.corporate_orders.config.settings import Settings

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."

ExpiryListener = Callable[[str], None]


@dataclass(slots=True)
class SessionTokens:
    access_token: str
    refresh_token: str | None = None
    saved_at_unix: int | None = None


class Session:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30.0,
        tokens_path: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._tokens_path = tokens_path
        self._tokens: SessionTokens | None = None
        self._user: CorporateUser | None = None
        self._expired = False
        self._listeners: list[ExpiryListener] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "Session":
        return cls(
            base_url=settings.api_base_url,
            timeout_seconds=settings.timeout_seconds,
            tokens_path=settings.tokens_path,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def tokens(self) -> SessionTokens | None:
        return self._tokens

    @property
    def user(self) -> CorporateUser | None:
        return self._user

    @property
    def is_expired(self) -> bool:
        return self._expired

    @property
    def is_authenticated(self) -> bool:
        return self._tokens is not None and self._user is not None and not self._expired

    @property
    def access_token(self) -> str | None:
        return self._tokens.access_token if self._tokens else None

    def on_expired(self, listener: ExpiryListener) -> None:
        self._listeners.append(listener)

    def require_identity(self) -> CorporateUser:
        """Return the signed-in user or raise `AuthError`."""

        if self._expired:
            raise AuthError(SESSION_EXPIRED_MESSAGE, status_code=401)
        if self._tokens is None or self._user is None:
            raise AuthError("Please log in to continue.", status_code=401)
        return self._user

    def set_user(self, user: CorporateUser) -> None:
        """Replace the cached profile (e.g. after a refetch shows a new budget)."""
        self._user = user
        self.save()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> CorporateUser:
        data = self._post_json(
            "/auth/corporate-login", {"email": email, "password": password}
        )
        access_token = data.get("access_token")
        if not access_token:
            raise AuthError("Login failed: no access token returned", payload=data)

        self._tokens = SessionTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            saved_at_unix=int(time.time()),
        )
        self._expired = False

        profile = self._get_json(f"/corporate-users/email/{quote(email, safe='@')}")
        self._user = CorporateUser.model_validate(profile)
        logger.info("Signed in corporate user %s", self._user.id)
        self.save()
        return self._user

    def sign_out(self) -> None:
        user_id = self._user.id if self._user else None
        self._tokens = None
        self._user = None
        self._expired = False
        if self._tokens_path and os.path.exists(self._tokens_path):
            os.remove(self._tokens_path)
        logger.info("Signed out corporate user %s", user_id)

    def refresh(self) -> SessionTokens:
        """Exchange the refresh token for a new access token.

        On any failure the session is expired and `AuthError` is raised.
        """

        if self._tokens is None or not self._tokens.refresh_token:
            self.expire()
            raise AuthError(SESSION_EXPIRED_MESSAGE, status_code=401)

        try:
            data = self._post_json(
                "/auth/refresh-corporate",
                {"refresh_token": self._tokens.refresh_token},
            )
        except ApiError as e:
            logger.warning("Token refresh failed (%s); expiring session", e.message)
            self.expire()
            raise AuthError(SESSION_EXPIRED_MESSAGE, status_code=401) from e

        access_token = data.get("access_token")
        if not access_token:
            self.expire()
            raise AuthError(SESSION_EXPIRED_MESSAGE, status_code=401, payload=data)

        self._tokens = SessionTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or self._tokens.refresh_token,
            saved_at_unix=int(time.time()),
        )
        self.save()
        logger.info("Access token refreshed")
        return self._tokens

    def expire(self, message: str = SESSION_EXPIRED_MESSAGE) -> None:
        """Mark the session expired and signal listeners (once per expiry)."""

        if self._expired:
            return
        self._expired = True
        self._tokens = None
        for listener in list(self._listeners):
            listener(message)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Restore tokens and profile from `tokens_path`. Returns False if absent or unreadable."""

        if not self._tokens_path or not os.path.exists(self._tokens_path):
            return False
        try:
            with open(self._tokens_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            tokens = SessionTokens(
                access_token=raw["access_token"],
                refresh_token=raw.get("refresh_token"),
                saved_at_unix=raw.get("saved_at_unix"),
            )
            user = raw.get("user")
            profile = CorporateUser.model_validate(user) if user else None
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self._tokens_path, e)
            return False

        self._tokens = tokens
        self._user = profile
        self._expired = False
        return True

    def save(self) -> None:
        if not self._tokens_path or self._tokens is None:
            return
        payload: dict[str, Any] = {
            "access_token": self._tokens.access_token,
            "refresh_token": self._tokens.refresh_token,
            "saved_at_unix": int(time.time()),
            "user": (
                self._user.model_dump(mode="json", by_alias=True) if self._user else None
            ),
        }
        with open(self._tokens_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    # ------------------------------------------------------------------
    # HTTP (auth endpoints only; everything else goes through the client)
    # ------------------------------------------------------------------

    def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._request_json("POST", path, json_body=body)

    def _get_json(self, path: str) -> dict[str, Any]:
        return self._request_json("GET", path, bearer=True)

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        bearer: bool = False,
    ) -> dict[str, Any]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if bearer and self._tokens:
            headers["Authorization"] = f"Bearer {self._tokens.access_token}"

        try:
            resp = requests.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                json=json_body,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as e:
            raise UnknownError(f"Could not reach the ordering service: {e}") from e
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = resp.text
            raise error_for_status(
                resp.status_code, payload, headers=getattr(resp, "headers", None)
            )
        return resp.json()
