"""Handlers composing a SecretRotator reconciliation pass."""
