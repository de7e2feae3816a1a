"""Advisory in-flight tracking for mutating calls.

Only one mutating request per target may run at a time. This is a local flag,
not a server lock: it prevents a double "Approve" from the same client.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from src.corporate_orders.common.errors import ActionInProgressError

logger = logging.getLogger(__name__)


class InFlightGuard:
    def __init__(self) -> None:
        self._active: set[str] = set()

    @contextmanager
    def hold(self, target: str) -> Iterator[None]:
        if target in self._active:
            logger.warning("Refusing concurrent action on %s", target)
            raise ActionInProgressError(target)
        self._active.add(target)
        try:
            yield
        finally:
            self._active.discard(target)
