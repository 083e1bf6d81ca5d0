"""Serialized work queue and the worker driving SecretRotator passes."""

from __future__ import annotations

import contextvars
import logging
import threading
import time
from typing import Any, Callable

from . import metrics
from .constants import ANNOTATION_NAMESPACE_TRIGGER, UNEXPECTED_ERROR_DELAY_SECONDS
from .utils.errors import sanitize_exception

logger = logging.getLogger(__name__)


class WorkQueue:
    """A delaying, deduplicating queue of resource names.

    A key is queued at most once, keeping its earliest due time. A key handed
    out by :meth:`get` is not handed out again until :meth:`done`; adds made
    in between are remembered and scheduled when the key is released.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cond = threading.Condition()
        self._due: dict[str, float] = {}
        self._dirty: dict[str, float] = {}
        self._processing: set[str] = set()
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._due)

    def _update_depth(self) -> None:
        metrics.queue_depth.set(len(self._due))

    def add(self, key: str, delay: float = 0.0) -> None:
        """Schedule ``key`` to be processed after ``delay`` seconds."""
        with self._cond:
            if self._shutdown:
                return
            due = self._clock() + max(delay, 0.0)
            if key in self._processing:
                self._dirty[key] = min(self._dirty.get(key, due), due)
                return
            if key in self._due and self._due[key] <= due:
                return
            self._due[key] = due
            self._update_depth()
            self._cond.notify_all()

    def get(self, timeout: float | None = None) -> str | None:
        """Wait for the next due key.

        Returns:
            The key, or None on shutdown or when ``timeout`` expires
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while not self._shutdown:
                now = self._clock()
                wait = None
                if self._due:
                    key, due = min(self._due.items(), key=lambda item: item[1])
                    if due <= now:
                        del self._due[key]
                        self._processing.add(key)
                        self._update_depth()
                        return key
                    wait = due - now
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)
            return None

    def done(self, key: str) -> None:
        """Release a key returned by :meth:`get`."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                due = self._dirty.pop(key)
                if key not in self._due or due < self._due[key]:
                    self._due[key] = due
                    self._update_depth()
                self._cond.notify_all()

    def forget(self, key: str) -> None:
        """Drop any pending schedule of ``key``."""
        with self._cond:
            self._due.pop(key, None)
            self._dirty.pop(key, None)
            self._update_depth()

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()


def fingerprint(body: dict[str, Any]) -> tuple[Any, ...]:
    """The parts of a SecretRotator whose change calls for a new pass."""
    metadata = body.get("metadata", {})
    return (
        metadata.get("generation"),
        (metadata.get("annotations") or {}).get(ANNOTATION_NAMESPACE_TRIGGER),
        bool(metadata.get("deletionTimestamp")),
    )


class Controller:
    """Feeds watch events into the work queue and runs passes on one worker.

    Status writes made by a pass do not change the fingerprint, so the
    operator's own updates never queue another pass.
    """

    def __init__(self, reconciler: Any, queue: WorkQueue | None = None) -> None:
        self.reconciler = reconciler
        self.queue = queue or WorkQueue()
        self._fingerprints: dict[str, tuple[Any, ...]] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def observe(self, body: dict[str, Any]) -> bool:
        """Queue a SecretRotator when its fingerprint changed.

        Returns:
            True when the resource was queued
        """
        name = body["metadata"]["name"]
        current = fingerprint(body)
        with self._lock:
            if self._fingerprints.get(name) == current:
                return False
            self._fingerprints[name] = current
        self.queue.add(name)
        return True

    def forget(self, name: str) -> None:
        with self._lock:
            self._fingerprints.pop(name, None)
        self.queue.forget(name)

    def process_next(self, timeout: float | None = None) -> bool:
        """Run one pass for the next due resource.

        Returns:
            False when the queue is shut down or nothing became due
        """
        name = self.queue.get(timeout=timeout)
        if name is None:
            return False
        try:
            result = self.reconciler.reconcile(name)
        except Exception as e:
            logger.error(f"Unexpected error reconciling {name}: {sanitize_exception(e)}", exc_info=True)
            self.queue.add(name, UNEXPECTED_ERROR_DELAY_SECONDS)
        else:
            if result.requeue_after is not None:
                self.queue.add(name, result.requeue_after)
        finally:
            self.queue.done(name)
        return True

    def _run(self) -> None:
        logger.info("Reconcile worker started")
        while self.process_next():
            pass
        logger.info("Reconcile worker stopped")

    def start(self, context: contextvars.Context | None = None) -> None:
        """Start the worker thread, optionally inside a captured context."""
        target = self._run if context is None else (lambda: context.run(self._run))
        self._thread = threading.Thread(target=target, name="reconcile-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self.queue.shutdown()
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
