"""Handler registry: maps job names to idempotent async handlers."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from followupx.config import Settings

if TYPE_CHECKING:
    from followupx.delivery.base import DeliveryService
    from followupx.scheduler.store import JobStore


@dataclass
class JobContext:
    """Everything a handler may use while executing one job run."""

    job_id: str
    name: str
    data: dict[str, Any]
    now: datetime
    occurrence_at: datetime
    session_factory: async_sessionmaker[AsyncSession]
    delivery: DeliveryService
    settings: Settings
    store: JobStore | None = None
    extras: dict[str, Any] = field(default_factory=dict)


HandlerFn = Callable[[JobContext], Coroutine[Any, Any, None]]


class HandlerRegistry:
    """Routes job names to registered handlers and their concurrency ceilings."""

    def __init__(self, default_concurrency: int = 5) -> None:
        self.default_concurrency = default_concurrency
        self._handlers: dict[str, HandlerFn] = {}
        self._concurrency: dict[str, int] = {}

    def register(self, name: str, fn: HandlerFn, concurrency: int | None = None) -> HandlerFn:
        if name in self._handlers and self._handlers[name] is not fn:
            raise ValueError(f"A handler is already registered for job {name!r}")
        self._handlers[name] = fn
        if concurrency is not None:
            if concurrency < 1:
                raise ValueError("concurrency must be at least 1")
            self._concurrency[name] = concurrency
        return fn

    def handler(
        self, name: str, concurrency: int | None = None
    ) -> Callable[[HandlerFn], HandlerFn]:
        """Decorator form of :meth:`register`."""

        def decorator(fn: HandlerFn) -> HandlerFn:
            return self.register(name, fn, concurrency)

        return decorator

    def get(self, name: str) -> HandlerFn | None:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return list(self._handlers)

    def concurrency(self, name: str) -> int:
        return self._concurrency.get(name, self.default_concurrency)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
