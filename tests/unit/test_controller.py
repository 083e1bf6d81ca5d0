"""Tests for the work queue and the reconcile worker."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import make_rotator
from pullsecret_rotator.constants import ANNOTATION_NAMESPACE_TRIGGER, UNEXPECTED_ERROR_DELAY_SECONDS
from pullsecret_rotator.controller import Controller, WorkQueue, fingerprint
from pullsecret_rotator.models import ReconcileResult


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(clock) -> WorkQueue:
    return WorkQueue(clock=clock)


class TestWorkQueue:
    def test_due_key_is_returned(self, queue):
        queue.add("a")

        assert queue.get(timeout=0) == "a"
        assert len(queue) == 0

    def test_delayed_key_waits(self, queue, clock):
        queue.add("a", delay=30)

        assert queue.get(timeout=0) is None
        clock.advance(30)
        assert queue.get(timeout=0) == "a"

    def test_duplicate_adds_keep_earliest_due_time(self, queue, clock):
        queue.add("a", delay=60)
        queue.add("a", delay=10)
        queue.add("a", delay=120)

        assert len(queue) == 1
        clock.advance(10)
        assert queue.get(timeout=0) == "a"

    def test_earliest_key_first(self, queue, clock):
        queue.add("late", delay=20)
        queue.add("early", delay=5)
        clock.advance(30)

        assert queue.get(timeout=0) == "early"
        assert queue.get(timeout=0) == "late"

    def test_key_in_progress_is_not_handed_out_twice(self, queue):
        queue.add("a")
        assert queue.get(timeout=0) == "a"

        queue.add("a")
        assert queue.get(timeout=0) is None

        queue.done("a")
        assert queue.get(timeout=0) == "a"

    def test_forget_drops_schedule(self, queue):
        queue.add("a")
        queue.forget("a")

        assert queue.get(timeout=0) is None

    def test_shutdown_releases_waiters(self, queue):
        queue.shutdown()
        queue.add("a")

        assert queue.get() is None


class TestFingerprint:
    def test_status_changes_are_ignored(self):
        body = make_rotator()
        with_status = make_rotator(status={"conditions": [{"type": "Available"}]})

        assert fingerprint(body) == fingerprint(with_status)

    def test_trigger_annotation_changes_fingerprint(self):
        body = make_rotator()
        touched = make_rotator()
        touched["metadata"]["annotations"] = {ANNOTATION_NAMESPACE_TRIGGER: "abc"}

        assert fingerprint(body) != fingerprint(touched)

    def test_generation_and_deletion_change_fingerprint(self):
        body = make_rotator()
        bumped = make_rotator()
        bumped["metadata"]["generation"] = 2

        assert fingerprint(body) != fingerprint(bumped)
        assert fingerprint(body) != fingerprint(make_rotator(deleting=True))


class TestController:
    def test_observe_queues_only_on_fingerprint_change(self, queue):
        controller = Controller(MagicMock(), queue=queue)

        assert controller.observe(make_rotator()) is True
        assert controller.observe(make_rotator(status={"conditions": []})) is False
        bumped = make_rotator()
        bumped["metadata"]["generation"] = 2
        assert controller.observe(bumped) is True

    def test_forget_allows_requeue_of_same_fingerprint(self, queue):
        controller = Controller(MagicMock(), queue=queue)
        controller.observe(make_rotator())

        controller.forget("example")

        assert len(queue) == 0
        assert controller.observe(make_rotator()) is True

    def test_process_next_requeues_after_result(self, queue, clock):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(requeue_after=300)
        controller = Controller(reconciler, queue=queue)
        queue.add("example")

        assert controller.process_next(timeout=0) is True

        reconciler.reconcile.assert_called_once_with("example")
        assert queue.get(timeout=0) is None
        clock.advance(300)
        assert queue.get(timeout=0) == "example"

    def test_process_next_stops_on_none(self, queue, clock):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(requeue_after=None)
        controller = Controller(reconciler, queue=queue)
        queue.add("example")

        controller.process_next(timeout=0)
        clock.advance(3600)

        assert queue.get(timeout=0) is None

    def test_unexpected_error_is_retried(self, queue, clock):
        reconciler = MagicMock()
        reconciler.reconcile.side_effect = RuntimeError("boom")
        controller = Controller(reconciler, queue=queue)
        queue.add("example")

        controller.process_next(timeout=0)

        clock.advance(UNEXPECTED_ERROR_DELAY_SECONDS)
        assert queue.get(timeout=0) == "example"

    def test_process_next_without_work(self, queue):
        assert Controller(MagicMock(), queue=queue).process_next(timeout=0) is False

    def test_worker_thread_lifecycle(self):
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(requeue_after=None)
        controller = Controller(reconciler)

        controller.start()
        assert controller.is_alive()

        controller.stop()
        assert not controller.is_alive()
