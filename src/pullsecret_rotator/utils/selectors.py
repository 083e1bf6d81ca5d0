"""Kubernetes label selector parsing and matching."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import SelectorError

OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"
OPERATORS = (OP_IN, OP_NOT_IN, OP_EXISTS, OP_DOES_NOT_EXIST)

_NAME_RE = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
_PREFIX_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")


def _validate_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise SelectorError(f"Invalid label key {key!r}: must be a non-empty string")
    prefix, _, name = key.rpartition("/")
    if "/" in key and (not prefix or len(prefix) > 253 or not _PREFIX_RE.match(prefix)):
        raise SelectorError(f"Invalid label key {key!r}: prefix must be a DNS subdomain")
    if len(name) > 63 or not _NAME_RE.match(name):
        raise SelectorError(f"Invalid label key {key!r}")
    return key


def _validate_value(value: Any, key: str) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise SelectorError(f"Invalid label value {value!r} for key {key!r}: must be a string")
    if value and (len(value) > 63 or not _NAME_RE.match(value)):
        raise SelectorError(f"Invalid label value {value!r} for key {key!r}")
    return value


@dataclass(frozen=True)
class Requirement:
    """A single matchExpressions entry."""

    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == OP_EXISTS:
            return self.key in labels
        if self.operator == OP_DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator == OP_IN:
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches when the label is absent
        return self.key not in labels or labels[self.key] not in self.values

    def __str__(self) -> str:
        if self.operator == OP_EXISTS:
            return self.key
        if self.operator == OP_DOES_NOT_EXIST:
            return f"!{self.key}"
        op = "in" if self.operator == OP_IN else "notin"
        return f"{self.key} {op} ({','.join(sorted(self.values))})"


@dataclass(frozen=True)
class LabelSelector:
    """Parsed form of a metav1.LabelSelector.

    An empty selector matches every object.
    """

    match_labels: tuple[tuple[str, str], ...] = ()
    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any] | None) -> "LabelSelector":
        """Build a selector from ``{matchLabels, matchExpressions}``.

        Raises:
            SelectorError: If the selector is malformed
        """
        if spec is None:
            return cls()
        if not isinstance(spec, Mapping):
            raise SelectorError("namespaceSelector must be an object")

        match_labels = spec.get("matchLabels") or {}
        if not isinstance(match_labels, Mapping):
            raise SelectorError("namespaceSelector.matchLabels must be a map")
        labels = tuple(
            sorted((_validate_key(key), _validate_value(value, key)) for key, value in match_labels.items())
        )

        expressions = spec.get("matchExpressions") or []
        if not isinstance(expressions, list):
            raise SelectorError("namespaceSelector.matchExpressions must be a list")

        requirements = []
        for expr in expressions:
            if not isinstance(expr, Mapping):
                raise SelectorError(f"Invalid matchExpressions entry {expr!r}")
            key = _validate_key(expr.get("key"))
            operator = expr.get("operator")
            if operator not in OPERATORS:
                raise SelectorError(f"Invalid operator {operator!r} for key {key!r}, must be one of {', '.join(OPERATORS)}")
            values = expr.get("values") or []
            if not isinstance(values, list):
                raise SelectorError(f"values for key {key!r} must be a list")
            if operator in (OP_IN, OP_NOT_IN) and not values:
                raise SelectorError(f"Operator {operator} for key {key!r} requires at least one value")
            if operator in (OP_EXISTS, OP_DOES_NOT_EXIST) and values:
                raise SelectorError(f"Operator {operator} for key {key!r} must not have values")
            requirements.append(
                Requirement(key, operator, tuple(_validate_value(value, key) for value in values))
            )

        return cls(match_labels=labels, requirements=tuple(requirements))

    @property
    def empty(self) -> bool:
        return not self.match_labels and not self.requirements

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Check a label map against every term of the selector."""
        labels = labels or {}
        for key, value in self.match_labels:
            if labels.get(key) != value:
                return False
        return all(req.matches(labels) for req in self.requirements)

    def to_query(self) -> str:
        """Render the selector in the API server's label-query syntax."""
        terms = [f"{key}={value}" for key, value in self.match_labels]
        terms.extend(str(req) for req in self.requirements)
        return ",".join(terms)

    def __str__(self) -> str:
        return self.to_query() or "<everything>"
