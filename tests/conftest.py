from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import pytest

from csbench.client import CloudStackError


class FakeClient:
    """In-memory stand-in for CloudStackClient.

    ``handlers`` maps a command name to either a dict (returned as is) or a
    callable taking the call parameters. Commands listed in ``failing`` raise
    CloudStackError.
    """

    def __init__(
        self,
        handlers: dict[str, Any] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.handlers = handlers or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self._lock = threading.Lock()

    def request(self, command: str, **params: Any) -> dict[str, Any]:
        with self._lock:
            self.calls.append((command, params))
        if command in self.failing:
            raise CloudStackError(f"{command}: boom", code=530)
        handler = self.handlers.get(command, {})
        if callable(handler):
            return handler(params)
        return dict(handler)

    def commands(self) -> list[str]:
        with self._lock:
            return [command for command, _ in self.calls]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeClient]:
    return FakeClient


@pytest.fixture(autouse=True)
def _reset_csbench_logger():
    yield
    logger = logging.getLogger("csbench")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
