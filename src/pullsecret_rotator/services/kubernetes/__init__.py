"""Kubernetes object store."""

from .client import KubernetesStore

__all__ = ["KubernetesStore"]
