"""Retry orchestration for non-idempotent side effects.

The orchestrator drives one order through the state machine::

    START -> CHECK_EXISTING -> SKIPPED
                            -> ATTEMPTING -> SUCCESS
                                          -> RETRY_WAIT -> ATTEMPTING
                                          -> FINAL_FAILURE

Every collaborator exception is caught here and turned into a
classified RetryOutcome; nothing escapes to the webhook layer. Attempts
for one order are strictly sequential because each strategy depends on
the previous attempt's error. Runs for the same order and operation
are serialized; the order is read and the idempotency check made only
once the run holds its lock.

Example:
    >>> orchestrator = RetryOrchestrator(store, scheduler=AsyncioScheduler())
    >>> outcome = await orchestrator.run("1001", invoice_operation)
    >>> outcome.state
    <OrchestrationState.SUCCESS: 'success'>
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from orderflow.errors.error_classifier import ErrorClassifier
from orderflow.event_bridge import EventBridge, EventNames
from orderflow.logging import log_error, log_info, log_warn
from orderflow.ports import StateStore
from orderflow.scheduler import AsyncioScheduler, CancellationToken, Scheduler
from orderflow.types import (
    BatchRetrySummary,
    ErrorKind,
    LogContext,
    OperationResult,
    OrchestrationState,
    Order,
    PreviousError,
    RetryAttempt,
    RetryOutcome,
    utc_now,
)

from .idempotency import IdempotencyGuard
from .state import (
    RetryState,
    compose_error_message,
    failure_fields,
    failure_tags,
    read_retry_state,
    success_fields,
    success_tags,
)
from .strategy import RetryStrategySelector

if TYPE_CHECKING:
    from orderflow.operations.base import SideEffectOperation


class RetryOrchestrator:
    """Drives bounded, durable retries of one side-effecting operation.

    Attributes:
        max_retries: Upper bound on the attempt number, persisted across
            webhook deliveries.
        attempts_per_delivery: Attempts made within one ``run`` call.
    """

    def __init__(
        self,
        state_store: StateStore,
        *,
        classifier: ErrorClassifier | None = None,
        selector: RetryStrategySelector | None = None,
        scheduler: Scheduler | None = None,
        events: EventBridge | None = None,
        max_retries: int = 3,
        attempts_per_delivery: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            state_store: Commerce-platform order state.
            classifier: Maps failures to ErrorKind.
            selector: Maps (ErrorKind, attempt) to a strategy.
            scheduler: Timer used for backoff waits.
            events: Bridge receiving lifecycle events.
            max_retries: Upper bound on the attempt number.
            attempts_per_delivery: Attempts made within one run.
            clock: Source of timestamps written to the order.
        """
        self._store = state_store
        self._classifier = classifier or ErrorClassifier()
        self._selector = selector or RetryStrategySelector()
        self._scheduler = scheduler or AsyncioScheduler()
        self._events = events
        self.max_retries = max_retries
        self.attempts_per_delivery = attempts_per_delivery
        self._clock = clock
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    async def run(
        self,
        order_id: str,
        operation: SideEffectOperation,
        *,
        previous_error: PreviousError | None = None,
        max_retries: int | None = None,
        attempts: int | None = None,
        token: CancellationToken | None = None,
    ) -> RetryOutcome:
        """Run the operation for one order until a terminal state.

        Args:
            order_id: Order to process.
            operation: The side effect to create.
            previous_error: Caller-supplied metadata about the failure that
                triggered this run; overrides the stored retry state.
            max_retries: Overrides the orchestrator's bound.
            attempts: Overrides ``attempts_per_delivery`` for this run.
            token: Cancels pending backoff waits.

        Returns:
            RetryOutcome in SKIPPED, SUCCESS or FINAL_FAILURE.
        """
        async with self._serialized(order_id, operation.name):
            return await self._run_locked(
                order_id,
                operation,
                previous_error=previous_error,
                max_retries=max_retries,
                attempts=attempts,
                token=token,
            )

    @asynccontextmanager
    async def _serialized(self, order_id: str, operation_name: str) -> AsyncIterator[None]:
        key = (order_id, operation_name)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def _run_locked(
        self,
        order_id: str,
        operation: SideEffectOperation,
        *,
        previous_error: PreviousError | None,
        max_retries: int | None,
        attempts: int | None,
        token: CancellationToken | None,
    ) -> RetryOutcome:
        max_retries = max_retries or self.max_retries
        budget = attempts or self.attempts_per_delivery
        markers = operation.markers
        context = LogContext(order_id=order_id, operation=operation.name)

        log_info("Orchestration started", context)
        self._publish(EventNames.ORCHESTRATION_STARTED, order_id, operation.name)

        # START
        try:
            order = await self._store.get_order(order_id)
        except Exception as e:
            kind = self._classifier.classify(e)
            log_error(f"Could not load order: {e}", context.model_copy(update={"error_kind": kind.value}))
            return self._finish(
                RetryOutcome(
                    order_id=order_id,
                    operation=operation.name,
                    state=OrchestrationState.FINAL_FAILURE,
                    error_kind=kind,
                    error_message=self._classifier.message(e),
                    status_code=self._classifier.status_code(e),
                    retryable=self._classifier.retryable(e),
                    state_persisted=False,
                )
            )

        # CHECK_EXISTING
        guard = IdempotencyGuard(
            markers,
            check_fulfillments=operation.tracks_fulfillments,
            events=self._events,
        )
        existing = guard.already_done(order)
        if existing.exists:
            return self._finish(
                RetryOutcome(
                    order_id=order_id,
                    operation=operation.name,
                    state=OrchestrationState.SKIPPED,
                    reference=existing.reference,
                    details={"source": existing.source, "created_at": existing.created_at},
                )
            )

        stored = read_retry_state(order, markers)
        previous = previous_error or _previous_from_state(stored)
        attempt = (stored.attempt if stored else 0) + 1

        if previous is not None and previous.retryable is False:
            return self._finish(
                RetryOutcome(
                    order_id=order_id,
                    operation=operation.name,
                    state=OrchestrationState.FINAL_FAILURE,
                    attempt_number=attempt - 1,
                    error_kind=previous.error_kind,
                    error_message=previous.message or "Previous error is marked non-retryable",
                    status_code=previous.status_code,
                    retryable=False,
                )
            )

        if attempt > max_retries:
            return self._finish(
                RetryOutcome(
                    order_id=order_id,
                    operation=operation.name,
                    state=OrchestrationState.FINAL_FAILURE,
                    attempt_number=attempt - 1,
                    error_kind=previous.error_kind if previous else None,
                    error_message=f"Maximum retry attempts ({max_retries}) exceeded",
                    exhausted=True,
                )
            )

        return await self._attempt_loop(
            order,
            operation,
            attempt=attempt,
            previous_kind=previous.error_kind if previous else None,
            max_retries=max_retries,
            budget=budget,
            token=token,
        )

    async def run_batch(
        self,
        order_ids: list[str],
        operation: SideEffectOperation,
        **kwargs,
    ) -> BatchRetrySummary:
        """Run the operation for several orders concurrently.

        Each order is handled independently; an unexpected crash for one
        order becomes a FINAL_FAILURE outcome for that order only.
        """
        results = await asyncio.gather(
            *(self.run(order_id, operation, **kwargs) for order_id in order_ids),
            return_exceptions=True,
        )

        outcomes: list[RetryOutcome] = []
        for order_id, result in zip(order_ids, results):
            if isinstance(result, RetryOutcome):
                outcomes.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            log_error(
                f"Batch item crashed: {result}",
                {"order_id": order_id, "operation": operation.name, "error_type": type(result).__name__},
            )
            outcomes.append(
                RetryOutcome(
                    order_id=order_id,
                    operation=operation.name,
                    state=OrchestrationState.FINAL_FAILURE,
                    error_kind=self._classifier.classify(result),
                    error_message=str(result),
                    state_persisted=False,
                )
            )

        total = len(outcomes)
        success_count = sum(1 for o in outcomes if o.state == OrchestrationState.SUCCESS)
        skipped_count = sum(1 for o in outcomes if o.state == OrchestrationState.SKIPPED)
        failure_count = total - success_count - skipped_count
        summary = BatchRetrySummary(
            total=total,
            success_count=success_count,
            failure_count=failure_count,
            skipped_count=skipped_count,
            success_rate=round(success_count / total * 100, 2) if total else 0.0,
            outcomes=outcomes,
        )
        log_info(
            "Batch retry completed",
            {"operation": operation.name, "total": total, "succeeded": success_count, "failed": failure_count},
        )
        return summary

    # =========================================================================
    # ATTEMPTING / RETRY_WAIT
    # =========================================================================

    async def _attempt_loop(
        self,
        order: Order,
        operation: SideEffectOperation,
        *,
        attempt: int,
        previous_kind: ErrorKind | None,
        max_retries: int,
        budget: int,
        token: CancellationToken | None,
    ) -> RetryOutcome:
        history: list[RetryAttempt] = []
        last_error: Exception | None = None
        runs = 0

        while True:
            runs += 1
            # The strategy for attempt N describes retry number N-1
            strategy = self._selector.select(previous_kind, attempt - 1)
            record = RetryAttempt(attempt=attempt, strategy_type=strategy.type, started_at=self._clock())
            history.append(record)
            context = LogContext(
                order_id=order.id,
                operation=operation.name,
                attempt=attempt,
                strategy=strategy.type.value,
            )

            if strategy.backoff_ms > 0:
                log_info(f"Waiting {strategy.backoff_ms} ms before attempt", context)
                completed = await self._scheduler.sleep(strategy.backoff_ms, token)
                if not completed:
                    history.pop()
                    log_warn("Backoff cancelled", context)
                    if last_error is not None:
                        return await self._record_failure(
                            order, operation, attempt - 1, history, last_error, max_retries
                        )
                    return self._finish(
                        RetryOutcome(
                            order_id=order.id,
                            operation=operation.name,
                            state=OrchestrationState.FINAL_FAILURE,
                            attempt_number=attempt - 1,
                            error_kind=previous_kind,
                            error_message="Retry cancelled during backoff",
                            retryable=True,
                            attempts=history,
                        )
                    )

            log_info("Attempt started", context)
            self._publish(EventNames.ATTEMPT_STARTED, order.id, record)

            try:
                result = await operation.execute(order, strategy)
            except Exception as e:
                kind = self._classifier.classify(e)
                retryable = self._classifier.retryable(e)
                record.error_kind = kind
                record.error_message = self._classifier.message(e)
                last_error = e

                log_warn(
                    f"Attempt failed: {record.error_message}",
                    context.model_copy(update={"error_kind": kind.value}),
                )
                self._publish(EventNames.ATTEMPT_FAILED, order.id, record, e)

                if retryable and attempt < max_retries and runs < budget:
                    previous_kind = kind
                    attempt += 1
                    continue
                return await self._record_failure(order, operation, attempt, history, e, max_retries)

            return await self._record_success(order, operation, attempt, history, result)

    # =========================================================================
    # Terminal writes
    # =========================================================================

    async def _record_success(
        self,
        order: Order,
        operation: SideEffectOperation,
        attempt: int,
        history: list[RetryAttempt],
        result: OperationResult,
    ) -> RetryOutcome:
        markers = operation.markers
        persisted = True
        try:
            # Reference field first: it is the guard's primary check
            await self._store.set_fields(order.id, success_fields(markers, result))
            await self._store.set_tags(order.id, success_tags(order, markers, result.reference))
        except Exception as e:
            persisted = False
            log_error(
                f"Side effect succeeded but recording it failed: {e}",
                {"order_id": order.id, "operation": operation.name, "reference": result.reference},
            )
            self._publish(EventNames.STATE_WRITE_FAILED, order.id, e)

        return self._finish(
            RetryOutcome(
                order_id=order.id,
                operation=operation.name,
                state=OrchestrationState.SUCCESS,
                attempt_number=attempt,
                attempts=history,
                reference=result.reference,
                state_persisted=persisted,
                details=result.details,
            )
        )

    async def _record_failure(
        self,
        order: Order,
        operation: SideEffectOperation,
        attempt: int,
        history: list[RetryAttempt],
        error: Exception,
        max_retries: int,
    ) -> RetryOutcome:
        markers = operation.markers
        now = self._clock()
        kind = self._classifier.classify(error)
        retryable = self._classifier.retryable(error)
        message = self._classifier.message(error)
        status_code = self._classifier.status_code(error)

        composed = compose_error_message(
            markers,
            getattr(error, "message", None) or str(error) or type(error).__name__,
            now,
            status_code=status_code,
            status_message=getattr(error, "status_message", None),
            is_retry=attempt > 1,
        )
        state = RetryState(
            operation=markers.operation,
            attempt=attempt,
            last_error_kind=kind,
            last_error_at=now,
            last_error_message=message,
            status_code=status_code,
            retryable=retryable,
        )

        persisted = True
        try:
            await self._store.set_tags(order.id, failure_tags(order, markers, now, attempt))
            await self._store.set_fields(order.id, failure_fields(markers, state, composed))
        except Exception as e:
            persisted = False
            log_error(
                f"Recording failure state failed: {e}",
                {"order_id": order.id, "operation": operation.name},
            )
            self._publish(EventNames.STATE_WRITE_FAILED, order.id, e)

        return self._finish(
            RetryOutcome(
                order_id=order.id,
                operation=operation.name,
                state=OrchestrationState.FINAL_FAILURE,
                attempt_number=attempt,
                attempts=history,
                error_kind=kind,
                error_message=composed,
                status_code=status_code,
                retryable=retryable and attempt < max_retries,
                exhausted=retryable and attempt >= max_retries,
                state_persisted=persisted,
            )
        )

    def _finish(self, outcome: RetryOutcome) -> RetryOutcome:
        fields = {
            "order_id": outcome.order_id,
            "operation": outcome.operation,
            "state": outcome.state.value,
            "attempt": outcome.attempt_number,
            "reference": outcome.reference,
            "error_kind": outcome.error_kind.value if outcome.error_kind else None,
        }
        if outcome.state == OrchestrationState.SKIPPED:
            log_info("Side effect already exists, skipping", fields)
            self._publish(EventNames.ORCHESTRATION_SKIPPED, outcome)
        elif outcome.state == OrchestrationState.SUCCESS:
            log_info("Orchestration succeeded", fields)
            self._publish(EventNames.ORCHESTRATION_SUCCEEDED, outcome)
        else:
            log_warn(f"Orchestration failed: {outcome.error_message}", fields)
            self._publish(EventNames.ORCHESTRATION_FAILED, outcome)
        return outcome

    def _publish(self, event: str, *args: object) -> None:
        if self._events is not None:
            self._events.publish(event, *args)


def _previous_from_state(state: RetryState | None) -> PreviousError | None:
    if state is None:
        return None
    return PreviousError(
        error_kind=state.last_error_kind,
        message=state.last_error_message,
        status_code=state.status_code,
        retryable=state.retryable,
    )


__all__ = ["RetryOrchestrator"]
