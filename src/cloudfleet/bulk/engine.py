"""Bulk operation engine: one unit of work per target on a bounded pool.

``submit()`` returns a ``BulkOperation`` handle immediately; targets run
on a shared ``ThreadPoolExecutor``. Each target ends in exactly one
bucket (completed, failed or cancelled) and the operation completes when
every target is accounted for, at which point exactly one terminal
notification fires (callback plus event).

Cancellation is cooperative: the flag is checked when a worker picks a
target up, right before its unit of work would run. Units already running
are never interrupted.

Usage::

    engine = BulkOperationEngine(max_workers=5)
    op = engine.submit(BulkOperationKind.DELETE, ["a", "b"], delete_one)
    op.wait(timeout=60)
    print(op.summary())
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
import warnings
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from cloudfleet.errors import (
    CloudFleetError,
    EventWarning,
    PartialFailureError,
    ValidationError,
)
from cloudfleet.events.notifier import DOMAIN_BULK, EventNotifier, dispatch_event, make_event
from cloudfleet.models import (
    BulkOperationKind,
    BulkOperationState,
    BulkProgress,
    RequestContext,
    TargetOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5
MAX_WORKERS_LIMIT = 10
DEFAULT_RETENTION_SECONDS = 5.0

UnitOfWork = Callable[[str], Any]
CompletionCallback = Callable[["BulkOperation"], None]

_TERMINAL = frozenset({BulkOperationState.COMPLETE, BulkOperationState.COMPLETE_CANCELLED})


class BulkOperation:
    """Handle for one submitted bulk operation.

    All counters and outcomes are guarded by a single lock. The terminal
    state is set by whichever worker records the last outcome.
    """

    def __init__(
        self,
        kind: BulkOperationKind,
        targets: list[str],
        operation_id: str | None = None,
        context: RequestContext | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self._id = operation_id or f"bulk-{uuid.uuid4().hex[:12]}"
        self._kind = BulkOperationKind(kind)
        self._targets = list(targets)
        self._context = context
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._cancel_requested = threading.Event()
        self._state = BulkOperationState.PENDING
        self._outcomes: dict[str, TargetOutcome] = dict.fromkeys(
            self._targets, TargetOutcome.PENDING,
        )
        self._errors: dict[str, str] = {}
        self._completed = 0
        self._failed = 0
        self._cancelled = 0
        self._created_at = datetime.now(tz=UTC)
        self._completed_at: datetime | None = None
        self._finished_mono: float | None = None
        self._futures: list[Future] = []

    # --- Read-only views ---

    @property
    def operation_id(self) -> str:
        return self._id

    @property
    def kind(self) -> BulkOperationKind:
        return self._kind

    @property
    def context(self) -> RequestContext | None:
        return self._context

    @property
    def targets(self) -> list[str]:
        return list(self._targets)

    @property
    def total(self) -> int:
        return len(self._targets)

    @property
    def state(self) -> BulkOperationState:
        with self._lock:
            return self._state

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    @property
    def cancelled(self) -> int:
        with self._lock:
            return self._cancelled

    @property
    def is_complete(self) -> bool:
        return self.state in _TERMINAL

    @property
    def is_cancelled(self) -> bool:
        """True if cancellation is pending or left at least one target cancelled."""
        return self.state == BulkOperationState.COMPLETE_CANCELLED or (
            not self.is_complete and self._cancel_requested.is_set()
        )

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    @property
    def errors(self) -> dict[str, str]:
        with self._lock:
            return dict(self._errors)

    def outcome(self, target: str) -> TargetOutcome:
        with self._lock:
            return self._outcomes[target]

    # --- Control ---

    def cancel(self) -> bool:
        """Request cooperative cancellation.

        Targets not yet picked up by a worker end as ``cancelled``; running
        units finish normally. Returns False if the operation had already
        completed.
        """
        with self._lock:
            if self._state in _TERMINAL:
                return False
            self._cancel_requested.set()
        logger.info("Cancellation requested for bulk operation %s", self._id)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the operation completes. Returns False on timeout."""
        return self._done.wait(timeout)

    # --- Reporting ---

    def summary(self) -> str:
        with self._lock:
            text = (
                f"succeeded {self._completed}, failed {self._failed}, "
                f"cancelled {self._cancelled}"
            )
            cancelled = self._state == BulkOperationState.COMPLETE_CANCELLED
        return f"Operation cancelled: {text}" if cancelled else text

    def progress(self) -> BulkProgress:
        with self._lock:
            return BulkProgress(
                operation_id=self._id,
                kind=self._kind,
                state=self._state,
                total=len(self._targets),
                completed=self._completed,
                failed=self._failed,
                cancelled=self._cancelled,
                is_complete=self._state in _TERMINAL,
                is_cancelled=(
                    self._state == BulkOperationState.COMPLETE_CANCELLED
                    or (self._state not in _TERMINAL and self._cancel_requested.is_set())
                ),
                outcomes=dict(self._outcomes),
                errors=dict(self._errors),
                created_at=self._created_at,
                completed_at=self._completed_at,
            )

    def raise_for_failures(self) -> None:
        """Raise PartialFailureError if any target failed."""
        with self._lock:
            if not self._failed:
                return
            errors = dict(self._errors)
            succeeded = self._completed
        raise PartialFailureError(f"bulk {self._kind}", errors, succeeded=succeeded)

    # --- Engine-side transitions ---

    def _start(self) -> None:
        with self._lock:
            if self._state == BulkOperationState.PENDING:
                self._state = BulkOperationState.RUNNING

    def _record(
        self,
        target: str,
        outcome: TargetOutcome,
        error: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> bool:
        """Record *target*'s outcome. Returns True for the call that completes the operation."""
        with self._lock:
            if self._outcomes.get(target) != TargetOutcome.PENDING:
                logger.warning("Duplicate outcome for %s in %s ignored", target, self._id)
                return False
            self._outcomes[target] = outcome
            if outcome == TargetOutcome.COMPLETED:
                self._completed += 1
            elif outcome == TargetOutcome.FAILED:
                self._failed += 1
                self._errors[target] = error or "failed"
            else:
                self._cancelled += 1
            if self._completed + self._failed + self._cancelled < len(self._targets):
                return False
            return self._finish_locked(clock)

    def _finish_empty(self, clock: Callable[[], float] = time.monotonic) -> bool:
        with self._lock:
            return self._finish_locked(clock)

    def _finish_locked(self, clock: Callable[[], float]) -> bool:
        if self._state in _TERMINAL:
            return False
        self._state = (
            BulkOperationState.COMPLETE_CANCELLED
            if self._cancelled > 0
            else BulkOperationState.COMPLETE
        )
        self._completed_at = datetime.now(tz=UTC)
        self._finished_mono = clock()
        return True

    def _release(self) -> None:
        self._done.set()

    def _expired(self, now: float, retention: float) -> bool:
        with self._lock:
            return self._finished_mono is not None and now - self._finished_mono >= retention


class BulkOperationEngine:
    """Runs bulk operations on a bounded worker pool and tracks their handles.

    Completed handles are kept until ``acknowledge()`` or until
    ``retention_seconds`` after completion, whichever comes first.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        notifier: EventNotifier | None = None,
        _clock: Callable[[], float] | None = None,
    ) -> None:
        if not 1 <= max_workers <= MAX_WORKERS_LIMIT:
            raise ValidationError(
                f"max_workers must be between 1 and {MAX_WORKERS_LIMIT}, got {max_workers}"
            )
        if retention_seconds < 0:
            raise ValidationError("retention_seconds must be >= 0")
        self._max_workers = max_workers
        self._retention = retention_seconds
        self._notifier = notifier
        self._clock = _clock or time.monotonic
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="cloudfleet-bulk",
        )
        self._lock = threading.Lock()
        self._operations: dict[str, BulkOperation] = {}
        self._closed = False

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def submit(
        self,
        kind: BulkOperationKind | str,
        targets: Iterable[str],
        unit_of_work: UnitOfWork,
        *,
        context: RequestContext | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> BulkOperation:
        """Start a bulk operation and return its handle immediately.

        ``unit_of_work(target)`` succeeds by returning and fails by raising
        or returning ``False``. Duplicate targets are collapsed.
        """
        unique: list[str] = []
        for target in targets:
            if target in unique:
                logger.warning("Duplicate bulk target %s ignored", target)
                continue
            unique.append(target)

        op = BulkOperation(kind, unique, context=context, on_complete=on_complete)
        self._purge_expired()
        with self._lock:
            if self._closed:
                raise RuntimeError("Bulk engine has been shut down")
            self._operations[op.operation_id] = op

        logger.info("Bulk %s %s submitted with %d targets", op.kind, op.operation_id, op.total)
        if not unique:
            if op._finish_empty(self._clock):
                self._complete(op)
            return op

        op._start()
        for index, target in enumerate(unique):
            try:
                future = self._pool.submit(self._run_target, op, target, unit_of_work)
            except RuntimeError as exc:
                # Pool shut down mid-dispatch: the rest can never run.
                logger.warning("Bulk %s %s: dispatch stopped: %s", op.kind, op.operation_id, exc)
                op.cancel()
                for pending in unique[index:]:
                    if op._record(pending, TargetOutcome.CANCELLED, clock=self._clock):
                        self._complete(op)
                break
            future.add_done_callback(_observe)
            op._futures.append(future)
        return op

    def get(self, operation_id: str) -> BulkOperation | None:
        self._purge_expired()
        with self._lock:
            return self._operations.get(operation_id)

    def operations(self) -> list[BulkOperation]:
        self._purge_expired()
        with self._lock:
            return list(self._operations.values())

    def cancel(self, operation_id: str) -> bool:
        op = self.get(operation_id)
        return op.cancel() if op is not None else False

    def acknowledge(self, operation_id: str) -> bool:
        """Drop a completed handle. Running operations are kept."""
        with self._lock:
            op = self._operations.get(operation_id)
            if op is None or not op.is_complete:
                return False
            del self._operations[operation_id]
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting operations and release the worker pool."""
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)

    # --- Private ---

    def _run_target(self, op: BulkOperation, target: str, unit_of_work: UnitOfWork) -> None:
        if op.cancel_requested:
            finished = op._record(target, TargetOutcome.CANCELLED, clock=self._clock)
        else:
            outcome, error = self._invoke(op, target, unit_of_work)
            finished = op._record(target, outcome, error, clock=self._clock)
        if finished:
            self._complete(op)

    def _invoke(
        self, op: BulkOperation, target: str, unit_of_work: UnitOfWork,
    ) -> tuple[TargetOutcome, str | None]:
        try:
            result = unit_of_work(target)
        except CloudFleetError as exc:
            logger.warning("Bulk %s %s: %s failed: %s", op.kind, op.operation_id, target, exc)
            return TargetOutcome.FAILED, str(exc)
        except Exception as exc:
            logger.exception("Bulk %s %s: unexpected error on %s", op.kind, op.operation_id, target)
            return TargetOutcome.FAILED, f"{type(exc).__name__}: {exc}"
        if result is False:
            return TargetOutcome.FAILED, "unit of work reported failure"
        return TargetOutcome.COMPLETED, None

    def _complete(self, op: BulkOperation) -> None:
        logger.info("Bulk %s %s finished: %s", op.kind, op.operation_id, op.summary())
        try:
            if op._on_complete is not None:
                try:
                    op._on_complete(op)
                except Exception as exc:
                    logger.warning("Bulk completion callback failed for %s: %s", op.operation_id, exc)
                    warnings.warn(
                        f"Bulk completion callback failed: {exc}", EventWarning, stacklevel=2,
                    )
            self._publish_completion(op)
        finally:
            op._release()

    def _publish_completion(self, op: BulkOperation) -> None:
        if self._notifier is None or op.context is None:
            return
        progress = op.progress()
        event = make_event(
            domain=DOMAIN_BULK,
            resource="operations",
            resource_kind="bulk_operation",
            resource_id=op.operation_id,
            action="cancelled" if progress.is_cancelled else "completed",
            status=progress.state,
            provider=op.context.provider,
            credential_id=op.context.credential_id,
            region=op.context.region,
            data=progress.model_dump(mode="json"),
        )
        dispatch_event([self._notifier], event)

    def _purge_expired(self) -> None:
        now = self._clock()
        with self._lock:
            expired = [
                op_id for op_id, op in self._operations.items()
                if op._expired(now, self._retention)
            ]
            for op_id in expired:
                del self._operations[op_id]
        if expired:
            logger.debug("Purged %d expired bulk operations", len(expired))


def _observe(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Bulk worker crashed: %s", exc, exc_info=exc)
