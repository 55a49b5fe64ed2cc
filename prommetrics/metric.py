"""Metric data model, descriptors and metrics that report a single value."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, Mapping, Sequence

EXEMPLAR_MAX_RUNES = 64
RESERVED_LABEL_PREFIX = "__"

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


class MetricError(ValueError):
    """Raised when a metric, descriptor or label set is invalid."""


def _q(text: str) -> str:
    """Quote a string the way error messages show names and values."""
    return json.dumps(text, ensure_ascii=False)


def is_valid_utf8(value: str) -> bool:
    """Whether the string can be encoded as UTF-8 (no lone surrogates)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_valid_metric_name(name: str) -> bool:
    """Whether name is a legal metric name."""
    return bool(_METRIC_NAME_RE.fullmatch(name))


def check_label_name(name: str) -> bool:
    """Whether name is a legal label name that is not reserved."""
    return bool(_LABEL_NAME_RE.fullmatch(name)) and not name.startswith(
        RESERVED_LABEL_PREFIX
    )


def validate_label_values(values: Sequence[str], expected: int) -> None:
    """Raise MetricError if the values have the wrong count or are not UTF-8."""
    if len(values) != expected:
        raise MetricError(
            f"inconsistent label cardinality: expected {expected} label values "
            f"but got {len(values)} in {list(values)!r}"
        )
    for value in values:
        if not is_valid_utf8(value):
            raise MetricError(f"label value {_q(value)} is not valid UTF-8")


def validate_values_in_labels(labels: Mapping[str, str], expected: int) -> None:
    """Raise MetricError if the label map has the wrong size or non-UTF-8 values."""
    if len(labels) != expected:
        raise MetricError(
            f"inconsistent label cardinality: expected {expected} label values "
            f"but got {len(labels)} in {dict(labels)!r}"
        )
    for name, value in labels.items():
        if not is_valid_utf8(value):
            raise MetricError(f"label {name}: value {_q(value)} is not valid UTF-8")


class ValueType(enum.Enum):
    """Kinds of metrics that carry one simple value."""

    COUNTER = 1
    GAUGE = 2
    UNTYPED = 3


class MetricType(enum.IntEnum):
    """Type of a metric family in the exposition model."""

    COUNTER = 0
    GAUGE = 1
    SUMMARY = 2
    UNTYPED = 3
    HISTOGRAM = 4


@dataclass(frozen=True)
class LabelPair:
    name: str
    value: str


@dataclass(frozen=True)
class Quantile:
    quantile: float
    value: float


@dataclass
class SummaryData:
    sample_count: int = 0
    sample_sum: float = 0.0
    quantiles: list[Quantile] = field(default_factory=list)


@dataclass(frozen=True)
class Bucket:
    upper_bound: float
    cumulative_count: int


@dataclass
class HistogramData:
    sample_count: int = 0
    sample_sum: float = 0.0
    buckets: list[Bucket] = field(default_factory=list)


@dataclass
class Exemplar:
    value: float
    timestamp: datetime | None = None
    labels: list[LabelPair] = field(default_factory=list)


@dataclass
class MetricData:
    """One sample set of a metric as written out for exposition."""

    labels: list[LabelPair] = field(default_factory=list)
    counter: float | None = None
    exemplar: Exemplar | None = None
    gauge: float | None = None
    untyped: float | None = None
    summary: SummaryData | None = None
    histogram: HistogramData | None = None
    timestamp_ms: int | None = None


@dataclass
class MetricFamily:
    name: str
    help: str | None = None
    type: MetricType = MetricType.UNTYPED
    metrics: list[MetricData] = field(default_factory=list)


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with '_'; an empty name yields an empty result."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


class Desc:
    """Descriptor of a metric: name, help, and label dimensions.

    An invalid descriptor is not rejected on construction; the problem is kept
    in ``error`` and reported when the descriptor is used.
    """

    def __init__(
        self,
        fq_name: str,
        help: str,
        variable_labels: Sequence[str] | None = None,
        const_labels: Mapping[str, str] | None = None,
    ) -> None:
        self.fq_name = fq_name
        self.help = help
        self.variable_labels: tuple[str, ...] = tuple(variable_labels or ())
        self.const_label_pairs: list[LabelPair] = []
        self.error: Exception | None = None
        const_labels = dict(const_labels or {})
        try:
            self._validate(const_labels)
        except MetricError as exc:
            self.error = exc
            return
        self.const_label_pairs = sorted(
            (LabelPair(n, v) for n, v in const_labels.items()), key=lambda p: p.name
        )

    def _validate(self, const_labels: dict[str, str]) -> None:
        if not is_valid_metric_name(self.fq_name):
            raise MetricError(f"{_q(self.fq_name)} is not a valid metric name")
        for name in const_labels:
            if not check_label_name(name):
                raise MetricError(
                    f"{_q(name)} is not a valid label name for metric {_q(self.fq_name)}"
                )
        values = [self.fq_name, *(const_labels[n] for n in sorted(const_labels))]
        validate_label_values(values, len(values))
        for name in self.variable_labels:
            if not check_label_name(name):
                raise MetricError(
                    f"{_q(name)} is not a valid label name for metric {_q(self.fq_name)}"
                )
        names = set(const_labels) | set(self.variable_labels)
        if len(names) != len(const_labels) + len(self.variable_labels):
            raise MetricError("duplicate label names")

    def __repr__(self) -> str:
        const = ",".join(f"{p.name}={_q(p.value)}" for p in self.const_label_pairs)
        return (
            f"Desc{{fqName: {_q(self.fq_name)}, help: {_q(self.help)}, "
            f"constLabels: {{{const}}}, variableLabels: {list(self.variable_labels)}}}"
        )


class SelfCollector:
    """Mixin for a metric that is also the collector of itself."""

    desc: Desc

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[SelfCollector]:
        yield self


def make_label_pairs(desc: Desc, label_values: Sequence[str]) -> list[LabelPair]:
    """Combine variable label values with the constant labels, sorted by name."""
    if not desc.variable_labels:
        return list(desc.const_label_pairs)
    if len(label_values) != len(desc.variable_labels):
        raise MetricError(
            f"expected {len(desc.variable_labels)} label values "
            f"but got {len(label_values)}"
        )
    pairs = [LabelPair(n, v) for n, v in zip(desc.variable_labels, label_values)]
    pairs.extend(desc.const_label_pairs)
    return sorted(pairs, key=lambda p: p.name)


def _populate_metric(
    value_type: ValueType,
    value: float,
    label_pairs: Sequence[LabelPair],
    exemplar: Exemplar | None = None,
) -> MetricData:
    out = MetricData(labels=list(label_pairs))
    if value_type is ValueType.COUNTER:
        out.counter = value
        out.exemplar = exemplar
    elif value_type is ValueType.GAUGE:
        out.gauge = value
    elif value_type is ValueType.UNTYPED:
        out.untyped = value
    else:
        raise MetricError(f"encountered unknown type {value_type}")
    return out


@dataclass(eq=False)
class ConstMetric:
    """A metric with one fixed value."""

    desc: Desc
    value_type: ValueType
    value: float
    label_pairs: list[LabelPair] = field(default_factory=list)

    def write(self) -> MetricData:
        return _populate_metric(self.value_type, self.value, self.label_pairs)


class ValueFunc(SelfCollector):
    """A metric whose value is obtained by calling a function at write time."""

    def __init__(
        self, desc: Desc, value_type: ValueType, function: Callable[[], float]
    ) -> None:
        self.desc = desc
        self.value_type = value_type
        self.function = function
        self.label_pairs = make_label_pairs(desc, ())

    def write(self) -> MetricData:
        return _populate_metric(self.value_type, self.function(), self.label_pairs)


def new_const_metric(
    desc: Desc, value_type: ValueType, value: float, *args: str
) -> ConstMetric:
    """Create a ConstMetric; the positional label values follow the descriptor."""
    if desc.error is not None:
        raise desc.error
    validate_label_values(args, len(desc.variable_labels))
    return ConstMetric(desc, value_type, value, make_label_pairs(desc, args))


def new_exemplar(
    value: float, timestamp: datetime | None, labels: Mapping[str, str] | None
) -> Exemplar:
    """Build an exemplar, validating its labels and their total length."""
    pairs = []
    runes = 0
    for name, label_value in (labels or {}).items():
        if not check_label_name(name):
            raise MetricError(f"exemplar label name {_q(name)} is invalid")
        runes += len(name)
        if not is_valid_utf8(label_value):
            raise MetricError(f"exemplar label value {_q(label_value)} is not valid UTF-8")
        runes += len(label_value)
        pairs.append(LabelPair(name, label_value))
    if runes > EXEMPLAR_MAX_RUNES:
        raise MetricError(
            f"exemplar labels have {runes} runes, exceeding the limit of "
            f"{EXEMPLAR_MAX_RUNES}"
        )
    return Exemplar(value=value, timestamp=timestamp, labels=pairs)


def new_untyped_func(
    function: Callable[[], float],
    name: str = "",
    namespace: str = "",
    subsystem: str = "",
    help: str = "",
    const_labels: Mapping[str, str] | None = None,
) -> ValueFunc:
    """Create an untyped metric whose value comes from calling function."""
    desc = Desc(build_fq_name(namespace, subsystem, name), help, None, const_labels)
    return ValueFunc(desc, ValueType.UNTYPED, function)