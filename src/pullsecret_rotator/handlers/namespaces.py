"""Namespace selection and namespace-driven reconciliation triggers."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .. import metrics
from ..constants import CONTROLLER_NAME
from ..logging import log_resource_event
from ..utils.errors import ReconcileError, SelectorError
from ..utils.selectors import LabelSelector
from .base import BaseHandler


class NamespaceSelector(BaseHandler):
    """Resolves a label selector into the names of the matching namespaces."""

    def __init__(self, store: Any) -> None:
        super().__init__()
        self.store = store

    def select(self, selector: LabelSelector) -> list[str]:
        """List the namespaces matching ``selector``, sorted by name.

        Raises:
            ReconcileError: If the namespaces cannot be listed
        """
        try:
            namespaces = self.store.list_namespaces(label_selector=selector.to_query())
        except Exception as e:
            raise ReconcileError(f"Unable to list namespaces matching {selector}", cause=e) from e
        return sorted(ns["metadata"]["name"] for ns in namespaces)


@dataclass(frozen=True)
class NamespaceCreated:
    name: str
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NamespaceLabelsChanged:
    name: str
    old_labels: dict[str, str] = field(default_factory=dict)
    new_labels: dict[str, str] = field(default_factory=dict)


NamespaceEvent = Union[NamespaceCreated, NamespaceLabelsChanged]


def labels_changed(old: Mapping[str, str] | None, new: Mapping[str, str] | None) -> bool:
    """Compare two label maps by key set and by value."""
    old = old or {}
    new = new or {}
    if old.keys() != new.keys():
        return True
    return any(old[key] != new[key] for key in old)


class NamespaceWatcher(BaseHandler):
    """Turns namespace watch events into reconciliation triggers.

    The watcher keeps the last seen labels of every namespace so a
    modification can be classified as a label change. Affected SecretRotators
    get a fresh ``namespace-trigger`` annotation value, which wakes up their
    own watch and queues a pass.
    """

    def __init__(self, store: Any) -> None:
        super().__init__(kind="Namespace")
        self.store = store
        self._labels: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def observe(
        self,
        event_type: str | None,
        name: str,
        labels: Mapping[str, str] | None,
    ) -> NamespaceEvent | None:
        """Update the label cache and classify a raw watch event.

        Args:
            event_type: Watch event type; None for the initial listing
            name: Namespace name
            labels: Current namespace labels

        Returns:
            The typed event, or None when nothing relevant happened
        """
        current = dict(labels or {})
        with self._lock:
            if event_type == "DELETED":
                self._labels.pop(name, None)
                return None
            previous = self._labels.get(name)
            self._labels[name] = current

        if event_type is None:
            return None
        if event_type == "ADDED":
            return NamespaceCreated(name=name, labels=current)
        if event_type == "MODIFIED" and previous is not None and labels_changed(previous, current):
            return NamespaceLabelsChanged(name=name, old_labels=previous, new_labels=current)
        return None

    def _matches(self, rotator: dict[str, Any], event: NamespaceEvent) -> bool:
        try:
            selector = LabelSelector.from_spec((rotator.get("spec") or {}).get("namespaceSelector"))
        except SelectorError:
            return False
        if isinstance(event, NamespaceCreated):
            return selector.matches(event.labels)
        return selector.matches(event.new_labels) or selector.matches(event.old_labels)

    def handle(self, event: NamespaceEvent) -> list[str]:
        """Touch every SecretRotator whose selector matches the event.

        Returns:
            Names of the SecretRotators that were triggered
        """
        event_name = "created" if isinstance(event, NamespaceCreated) else "labels_changed"
        triggered = []
        for rotator in self.store.list_rotators():
            if not self._matches(rotator, event):
                continue
            name = rotator["metadata"]["name"]
            try:
                self.store.touch_rotator(name, uuid.uuid4().hex)
            except Exception as e:
                self.logger.warning(f"Unable to trigger SecretRotator {name} for namespace {event.name}: {e}")
                continue
            triggered.append(name)
            metrics.namespace_triggers_total.labels(event=event_name).inc()
            log_resource_event(
                self.logger,
                controller=CONTROLLER_NAME,
                resource_kind=self.kind,
                resource_name=event.name,
                uid="",
                event="trigger",
                reason=type(event).__name__,
                message=f"Triggered SecretRotator {name}",
            )
        return triggered

    def on_event(
        self,
        event_type: str | None,
        name: str,
        labels: Mapping[str, str] | None,
    ) -> list[str]:
        """Process one raw namespace watch event."""
        event = self.observe(event_type, name, labels)
        if event is None:
            return []
        return self.handle(event)
