"""In-process lifecycle events for orchestration runs.

The EventBridge wraps pyee's EventEmitter. The orchestrator publishes a
lifecycle event at each state transition so hosts can attach metrics,
alerts or audit logs without touching the retry logic.

Example:
    >>> bridge = EventBridge()
    >>> bridge.start()
    >>>
    >>> def on_failure(outcome):
    ...     print(f"Order {outcome.order_id} failed: {outcome.error_message}")
    ...
    >>> bridge.subscribe(EventNames.ORCHESTRATION_FAILED, on_failure)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pyee.base import EventEmitter

from .logging import log_debug, log_error, log_info, log_warn


class EventNames:
    """Constants for lifecycle event names.

    Attributes:
        ORCHESTRATION_STARTED: A run started (order_id, operation).
        ORCHESTRATION_SKIPPED: The side effect already existed (RetryOutcome).
        ATTEMPT_STARTED: An attempt is about to call the operation (order_id, RetryAttempt).
        ATTEMPT_FAILED: An attempt failed (order_id, RetryAttempt, Exception).
        ORCHESTRATION_SUCCEEDED: Terminal success (RetryOutcome).
        ORCHESTRATION_FAILED: Terminal failure (RetryOutcome).
        IDEMPOTENCY_CHECK_FAILED: The guard failed open (order_id, Exception).
        STATE_WRITE_FAILED: Recording final state failed (order_id, Exception).
    """

    ORCHESTRATION_STARTED = "orchestration.started"
    ORCHESTRATION_SKIPPED = "orchestration.skipped"
    ATTEMPT_STARTED = "attempt.started"
    ATTEMPT_FAILED = "attempt.failed"
    ORCHESTRATION_SUCCEEDED = "orchestration.succeeded"
    ORCHESTRATION_FAILED = "orchestration.failed"
    IDEMPOTENCY_CHECK_FAILED = "idempotency.check_failed"
    STATE_WRITE_FAILED = "state.write_failed"


class EventBridge:
    """In-process event bus for orchestration lifecycle events.

    Subscriber exceptions are routed to pyee's ``error`` event and
    logged; they never reach the publisher.
    """

    def __init__(self) -> None:
        self._emitter = EventEmitter()
        self._emitter.on("error", self._on_subscriber_error)
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        """Activate the bridge. Calling start() twice is a no-op."""
        if self._active:
            return
        self._active = True
        log_info("EventBridge started")

    def stop(self) -> None:
        """Deactivate the bridge and drop every subscriber."""
        if not self._active:
            return
        self._active = False
        self._emitter.remove_all_listeners()
        self._emitter.on("error", self._on_subscriber_error)
        log_info("EventBridge stopped")

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        """Subscribe to an event.

        Args:
            event: Event name to subscribe to.
            handler: Callback invoked with the published arguments.
        """
        self._emitter.on(event, handler)
        handler_name = getattr(handler, "__name__", str(handler))
        log_debug(f"Subscribed to {event}: {handler_name}")

    def subscribe_once(self, event: str, handler: Callable[..., Any]) -> None:
        """Subscribe to an event for a single invocation."""
        self._emitter.once(event, handler)

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        """Unsubscribe a handler from an event."""
        self._emitter.remove_listener(event, handler)

    def publish(self, event: str, *args: Any, **kwargs: Any) -> None:
        """Publish an event to all subscribers.

        Events published while the bridge is inactive are dropped with a
        warning.

        Args:
            event: Event name to publish.
            *args: Positional arguments passed to handlers.
            **kwargs: Keyword arguments passed to handlers.
        """
        if not self._active:
            log_warn(f"EventBridge not active, dropping event: {event}")
            return

        log_debug(f"Publishing event: {event}")
        try:
            self._emitter.emit(event, *args, **kwargs)
        except Exception as e:
            self._on_subscriber_error(e)

    def listener_count(self, event: str) -> int:
        """Number of handlers subscribed to an event."""
        return len(self._emitter.listeners(event))

    def _on_subscriber_error(self, error: Exception) -> None:
        log_error(
            f"Event subscriber raised: {error}",
            {"error_type": type(error).__name__},
        )


__all__ = ["EventBridge", "EventNames"]
