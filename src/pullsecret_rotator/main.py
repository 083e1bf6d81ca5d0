"""Main entry point for the Pull Secret Rotator operator."""

from __future__ import annotations

import contextvars
import logging
import os
from typing import Any

import kopf

from . import health
from . import logging as structured_logging
from . import tracing
from .constants import API_GROUP_VERSION, KIND_SECRET_ROTATOR
from .controller import Controller
from .handlers.namespaces import NamespaceWatcher
from .handlers.rotator import Reconciler
from .services.kubernetes.client import KubernetesStore

logger = logging.getLogger(__name__)

_controller: Controller | None = None
_namespace_watcher: NamespaceWatcher | None = None
_server: Any = None


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator and start the reconcile worker."""
    global _controller, _namespace_watcher, _server

    # Set up structured JSON logging
    structured_logging.setup_structured_logging()

    settings.posting.level = logging.INFO
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = 4
    settings.watching.server_timeout = 600

    tracing.initialize_tracing()

    store = KubernetesStore()
    _controller = Controller(Reconciler(store))
    _namespace_watcher = NamespaceWatcher(store)

    # Start metrics HTTP server with health check endpoints on port 8080
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    _server = health.start_http_server(metrics_port, ready=_controller.is_alive)

    # The worker inherits kopf's context so it can post events
    _controller.start(contextvars.copy_context())
    logger.info(f"Pull Secret Rotator started, metrics on port {metrics_port}")


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    """Stop the reconcile worker and the metrics server."""
    if _controller is not None:
        _controller.stop()
    if _server is not None:
        _server.shutdown()


@kopf.on.event(API_GROUP_VERSION, KIND_SECRET_ROTATOR)
def handle_rotator_event(type: str | None, body: kopf.Body, name: str, **_: Any) -> None:
    """Queue a SecretRotator pass when the resource changed in a relevant way."""
    if _controller is None:
        return
    if type == "DELETED":
        _controller.forget(name)
        return
    _controller.observe(dict(body))


@kopf.on.event("namespaces")
def handle_namespace_event(type: str | None, name: str, labels: kopf.Labels, **_: Any) -> None:
    """Trigger SecretRotators selecting a created or relabelled namespace."""
    if _namespace_watcher is None:
        return
    _namespace_watcher.on_event(type, name, dict(labels))


def run() -> None:
    """Run the operator across all namespaces."""
    kopf.run(clusterwide=True, standalone=True)


if __name__ == "__main__":
    run()
