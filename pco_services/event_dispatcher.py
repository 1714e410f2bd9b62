"""
EventDispatcher -- post-commit fan-out of domain events.

Responsibility:
    Delivers ``DomainEvent`` instances to the handlers subscribed to their
    ``event_type`` once the originating store transaction has committed.
    Notification and invoice handlers hang off this dispatcher, so their
    failure domains are separate from the transition that produced the
    event.

Architecture position:
    Services -- in-process publish/subscribe.  Called by
    ``pco_modules.private_client_orders.service`` after ``transaction()``
    returns; never inside it.

Invariants enforced:
    - A handler exception is caught, logged as ``event_handler_failed``
      with ``exc_info``, and never reaches the publisher or the remaining
      handlers.
    - Handlers run in subscription order.  With an injected
      ``concurrent.futures.Executor`` they run on the executor and
      ``publish`` returns without waiting.
    - Subscribing the same handler twice to one event type is a no-op.

Failure modes:
    - None raised to the caller.  No retries: a failed handler is logged
      and dropped.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future
from typing import Any

from pco_kernel.domain.events import DomainEvent
from pco_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.events")

Handler = Callable[[DomainEvent], Any]


class EventDispatcher:
    """Thread-safe subscriber registry with best-effort delivery."""

    def __init__(self, executor: Executor | None = None) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._executor = executor

    def subscribe(self, event_type: str | type[DomainEvent], handler: Handler) -> None:
        key = _event_key(event_type)
        with self._lock:
            if handler not in self._subscribers[key]:
                self._subscribers[key].append(handler)
        logger.debug(
            "event_handler_subscribed",
            extra={"event_type": key, "handler": _handler_name(handler)},
        )

    def unsubscribe(self, event_type: str | type[DomainEvent], handler: Handler) -> None:
        key = _event_key(event_type)
        with self._lock:
            handlers = self._subscribers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: str | type[DomainEvent]) -> tuple[Handler, ...]:
        with self._lock:
            return tuple(self._subscribers.get(_event_key(event_type), ()))

    def publish(self, event: DomainEvent) -> list[Future[Any]]:
        """Deliver ``event``; returns the executor futures (empty when synchronous)."""
        handlers = self.handlers_for(event.event_type)
        logger.info(
            "event_published",
            extra={
                "event_type": event.event_type,
                "event_id": str(event.event_id),
                "order_id": event.get_aggregate_id(),
                "handler_count": len(handlers),
            },
        )
        futures: list[Future[Any]] = []
        for handler in handlers:
            if self._executor is not None:
                futures.append(self._executor.submit(self._deliver, handler, event))
            else:
                self._deliver(handler, event)
        return futures

    def publish_all(self, events: Iterable[DomainEvent]) -> list[Future[Any]]:
        futures: list[Future[Any]] = []
        for event in events:
            futures.extend(self.publish(event))
        return futures

    def _deliver(self, handler: Handler, event: DomainEvent) -> Any:
        with LogContext.bind(event_id=event.event_id, order_id=event.get_aggregate_id()):
            try:
                return handler(event)
            except Exception:
                logger.error(
                    "event_handler_failed",
                    extra={
                        "event_type": event.event_type,
                        "event_id": str(event.event_id),
                        "handler": _handler_name(handler),
                    },
                    exc_info=True,
                )
                return None


def _event_key(event_type: str | type[DomainEvent]) -> str:
    if isinstance(event_type, str):
        return event_type
    return event_type.event_type


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__
