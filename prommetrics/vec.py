"""Collections of metrics that share one descriptor and differ in label values."""

from __future__ import annotations

import copy
import json
import threading
from typing import Any, Callable, Iterator, Mapping, Sequence

from .metric import Desc, MetricError, validate_label_values, validate_values_in_labels

SEPARATOR_BYTE = 0xFF

_FNV_OFFSET64 = 14695981039346656037
_FNV_PRIME64 = 1099511628211
_MASK64 = (1 << 64) - 1


def _hash_add(h: int, text: str) -> int:
    """Fold the UTF-8 bytes of text into an FNV-1a hash."""
    for byte in text.encode("utf-8"):
        h = ((h ^ byte) * _FNV_PRIME64) & _MASK64
    return h


def _hash_add_byte(h: int, byte: int) -> int:
    return ((h ^ byte) * _FNV_PRIME64) & _MASK64


def _hash_values(values: Sequence[str]) -> int:
    h = _FNV_OFFSET64
    for value in values:
        h = _hash_add_byte(_hash_add(h, value), SEPARATOR_BYTE)
    return h


class _MetricMap:
    """Hash buckets of metrics, shared by all curried views of a vector."""

    def __init__(self, desc: Desc, new_metric: Callable[..., Any]) -> None:
        self.desc = desc
        self.new_metric = new_metric
        self.lock = threading.Lock()
        self.buckets: dict[int, list[tuple[tuple[str, ...], Any]]] = {}

    def get_or_create(self, h: int, values: tuple[str, ...]) -> Any:
        with self.lock:
            bucket = self.buckets.setdefault(h, [])
            for stored, metric in bucket:
                if stored == values:
                    return metric
            metric = self.new_metric(*values)
            bucket.append((values, metric))
            return metric

    def delete(self, h: int, values: tuple[str, ...]) -> bool:
        with self.lock:
            bucket = self.buckets.get(h)
            if not bucket:
                return False
            for position, (stored, _) in enumerate(bucket):
                if stored == values:
                    del bucket[position]
                    if not bucket:
                        del self.buckets[h]
                    return True
            return False

    def snapshot(self) -> list[Any]:
        with self.lock:
            return [metric for bucket in self.buckets.values() for _, metric in bucket]

    def reset(self) -> None:
        with self.lock:
            self.buckets.clear()


class MetricVec:
    """Bundle of metrics with the same descriptor, keyed by variable label values.

    Metrics are created on first access through ``new_metric``, which is called
    with the full list of label values in descriptor order. Curried views
    created with :meth:`curry_with` share the metrics of the original vector.
    """

    def __init__(self, desc: Desc, new_metric: Callable[..., Any]) -> None:
        self.desc = desc
        self._map = _MetricMap(desc, new_metric)
        self._curry: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._map.snapshot())

    def _values_from_list(self, values: Sequence[str]) -> tuple[str, ...]:
        validate_label_values(values, len(self.desc.variable_labels) - len(self._curry))
        remaining = iter(values)
        return tuple(
            self._curry[i] if i in self._curry else next(remaining)
            for i in range(len(self.desc.variable_labels))
        )

    def _values_from_labels(self, labels: Mapping[str, str] | None) -> tuple[str, ...]:
        labels = dict(labels or {})
        validate_values_in_labels(labels, len(self.desc.variable_labels) - len(self._curry))
        values = []
        for i, name in enumerate(self.desc.variable_labels):
            if i in self._curry:
                if name in labels:
                    raise MetricError(f"label name {json.dumps(name)} is already curried")
                values.append(self._curry[i])
            else:
                if name not in labels:
                    raise MetricError(f"label name {json.dumps(name)} missing in label map")
                values.append(labels[name])
        return tuple(values)

    def delete_label_values(self, *args: str) -> bool:
        """Remove the metric with these label values; True if one was removed."""
        try:
            values = self._values_from_list(args)
        except MetricError:
            return False
        return self._map.delete(_hash_values(values), values)

    def delete(self, labels: Mapping[str, str] | None) -> bool:
        """Remove the metric with these labels; True if one was removed."""
        try:
            values = self._values_from_labels(labels)
        except MetricError:
            return False
        return self._map.delete(_hash_values(values), values)

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Any]:
        yield from self._map.snapshot()

    def reset(self) -> None:
        """Delete all metrics, including those reached through curried views."""
        self._map.reset()

    def curry_with(self, labels: Mapping[str, str] | None) -> MetricVec:
        """Return a view of this vector with the given labels fixed."""
        labels = dict(labels or {})
        new_curry: dict[int, str] = {}
        for i, name in enumerate(self.desc.variable_labels):
            if i in self._curry:
                if name in labels:
                    raise MetricError(f"label name {json.dumps(name)} is already curried")
                new_curry[i] = self._curry[i]
            elif name in labels:
                new_curry[i] = labels[name]
        unknown = len(self._curry) + len(labels) - len(new_curry)
        if unknown > 0:
            raise MetricError(f"{unknown} unknown label(s) found during currying")
        view = copy.copy(self)
        view._curry = new_curry
        return view

    def get_metric_with_label_values(self, *args: str) -> Any:
        """Return the metric for these label values, creating it if needed."""
        values = self._values_from_list(args)
        return self._map.get_or_create(_hash_values(values), values)

    def get_metric_with(self, labels: Mapping[str, str] | None) -> Any:
        """Return the metric for this label map, creating it if needed."""
        values = self._values_from_labels(labels)
        return self._map.get_or_create(_hash_values(values), values)

    def with_label_values(self, *args: str) -> Any:
        return self.get_metric_with_label_values(*args)

    def with_labels(self, labels: Mapping[str, str] | None) -> Any:
        return self.get_metric_with(labels)