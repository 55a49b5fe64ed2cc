"""Summary metrics: count, sum and sliding-window quantile estimates."""

from __future__ import annotations

import json
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from .metric import (
    Desc,
    LabelPair,
    MetricData,
    MetricError,
    Quantile,
    SelfCollector,
    SummaryData,
    build_fq_name,
    make_label_pairs,
    validate_label_values,
)
from .quantile import TargetedStream

QUANTILE_LABEL = "quantile"
DEF_MAX_AGE = 600.0
DEF_AGE_BUCKETS = 5
DEF_BUF_CAP = 500


def _quantile_label_error() -> MetricError:
    return MetricError(
        f"{json.dumps(QUANTILE_LABEL)} is not allowed as label name in summaries"
    )


@dataclass
class SummaryOpts:
    """Options for a summary; zero values select the defaults.

    ``max_age`` is in seconds. ``clock`` supplies the current time in seconds
    and drives the expiry of old observations.
    """

    name: str = ""
    namespace: str = ""
    subsystem: str = ""
    help: str = ""
    const_labels: Mapping[str, str] | None = None
    objectives: Mapping[float, float] | None = None
    max_age: float = 0.0
    age_buckets: int = 0
    buf_cap: int = 0
    clock: Callable[[], float] = time.monotonic


class Summary(SelfCollector):
    """Summary with quantile objectives over a sliding time window."""

    def __init__(
        self,
        desc: Desc,
        label_pairs: list[LabelPair],
        *,
        objectives: Mapping[float, float],
        max_age: float,
        age_buckets: int,
        buf_cap: int,
        clock: Callable[[], float],
    ) -> None:
        self.desc = desc
        self.label_pairs = label_pairs
        self.objectives = dict(objectives)
        self._sorted_objectives = sorted(self.objectives)
        self._buf_cap = buf_cap
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._sum = 0.0
        self._hot: list[float] = []
        self._cold: list[float] = []
        self._streams = [TargetedStream(self.objectives) for _ in range(age_buckets)]
        self._stream_duration = max_age / age_buckets
        self._start = clock()
        self._hot_epoch = 0
        self._head_epoch = 0
        self._head_index = 0

    def _expiry(self, epoch: int) -> float:
        return self._start + (epoch + 1) * self._stream_duration

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            now = self._clock()
            if now > self._expiry(self._hot_epoch):
                self._flush(now)
            self._hot.append(value)
            if len(self._hot) >= self._buf_cap:
                self._flush(now)

    def write(self) -> MetricData:
        """Return count, sum and the current quantile estimates."""
        with self._lock:
            self._swap_bufs(self._clock())
            self._flush_cold_buf()
            head = self._streams[self._head_index]
            quantiles = [
                Quantile(rank, head.query(rank) if head.count() else math.nan)
                for rank in self._sorted_objectives
            ]
            data = SummaryData(
                sample_count=self._count, sample_sum=self._sum, quantiles=quantiles
            )
        return MetricData(labels=list(self.label_pairs), summary=data)

    def _flush(self, now: float) -> None:
        self._swap_bufs(now)
        self._flush_cold_buf()

    def _swap_bufs(self, now: float) -> None:
        if self._cold:
            raise RuntimeError("cold buffer is not empty")
        self._hot, self._cold = self._cold, self._hot
        while now > self._expiry(self._hot_epoch):
            self._hot_epoch += 1

    def _flush_cold_buf(self) -> None:
        for value in self._cold:
            for stream in self._streams:
                stream.insert(value)
            self._count += 1
            self._sum += value
        self._cold.clear()
        self._rotate_streams()

    def _rotate_streams(self) -> None:
        while self._head_epoch != self._hot_epoch:
            self._streams[self._head_index].reset()
            self._head_index = (self._head_index + 1) % len(self._streams)
            self._head_epoch += 1


class NoObjectivesSummary(SelfCollector):
    """Summary that only tracks count and sum."""

    def __init__(self, desc: Desc, label_pairs: list[LabelPair]) -> None:
        self.desc = desc
        self.label_pairs = label_pairs
        self._lock = threading.Lock()
        self._count = 0
        self._sum = 0.0

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            self._sum += value
            self._count += 1

    def write(self) -> MetricData:
        with self._lock:
            data = SummaryData(sample_count=self._count, sample_sum=self._sum)
        return MetricData(labels=list(self.label_pairs), summary=data)


@dataclass(eq=False)
class ConstSummary:
    """A summary with fixed count, sum and quantiles."""

    desc: Desc
    count: int
    sample_sum: float
    quantiles: Mapping[float, float] = field(default_factory=dict)
    label_pairs: list[LabelPair] = field(default_factory=list)

    def write(self) -> MetricData:
        quantiles = [Quantile(rank, q) for rank, q in sorted(self.quantiles.items())]
        data = SummaryData(
            sample_count=self.count, sample_sum=self.sample_sum, quantiles=quantiles
        )
        return MetricData(labels=list(self.label_pairs), summary=data)


def summary_for_desc(
    desc: Desc, opts: SummaryOpts, *args: str
) -> Summary | NoObjectivesSummary:
    """Create a summary for an existing descriptor and its label values."""
    if len(desc.variable_labels) != len(args):
        raise MetricError(
            f"{json.dumps(desc.fq_name)}: expected {len(desc.variable_labels)} "
            f"label values but got {len(args)} in {list(args)!r}"
        )
    if QUANTILE_LABEL in desc.variable_labels or any(
        pair.name == QUANTILE_LABEL for pair in desc.const_label_pairs
    ):
        raise _quantile_label_error()
    if opts.max_age < 0:
        raise MetricError(f"illegal max age MaxAge={opts.max_age}")
    if opts.age_buckets < 0 or opts.buf_cap < 0:
        raise MetricError("age buckets and buffer capacity must not be negative")

    label_pairs = make_label_pairs(desc, args)
    objectives = dict(opts.objectives or {})
    if not objectives:
        return NoObjectivesSummary(desc, label_pairs)
    return Summary(
        desc,
        label_pairs,
        objectives=objectives,
        max_age=opts.max_age or DEF_MAX_AGE,
        age_buckets=opts.age_buckets or DEF_AGE_BUCKETS,
        buf_cap=opts.buf_cap or DEF_BUF_CAP,
        clock=opts.clock,
    )


def new_summary(opts: SummaryOpts) -> Summary | NoObjectivesSummary:
    """Create a summary from options."""
    desc = Desc(
        build_fq_name(opts.namespace, opts.subsystem, opts.name),
        opts.help,
        None,
        opts.const_labels,
    )
    return summary_for_desc(desc, opts)


def new_const_summary(
    desc: Desc,
    count: int,
    total: float,
    quantiles: Mapping[float, float] | None,
    *args: str,
) -> ConstSummary:
    """Create a fixed summary; raises if the descriptor or label values are invalid."""
    if desc.error is not None:
        raise desc.error
    validate_label_values(args, len(desc.variable_labels))
    return ConstSummary(
        desc, count, total, dict(quantiles or {}), make_label_pairs(desc, args)
    )