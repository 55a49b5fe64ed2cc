"""Streaming estimation of targeted quantiles with bounded rank error."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from typing import Iterable, Mapping

BUFFER_SIZE = 500


@dataclass(slots=True)
class _Sample:
    value: float
    width: float
    delta: float


def _div(numerator: float, denominator: float) -> float:
    """Divide with IEEE semantics instead of raising on zero."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


def _floor(value: float) -> float:
    return float(math.floor(value)) if math.isfinite(value) else value


def _ceil(value: float) -> float:
    return float(math.ceil(value)) if math.isfinite(value) else value


class TargetedStream:
    """Quantile estimator for a fixed set of target quantiles.

    ``targets`` maps each quantile to its allowed absolute rank error. Values
    are buffered and merged into a compressed summary in batches; while
    nothing has been merged yet, queries are answered exactly from the buffer.
    """

    def __init__(self, targets: Mapping[float, float]) -> None:
        self._targets = tuple(targets.items())
        self._buffer: list[float] = []
        self._samples: list[_Sample] = []
        self._n = 0.0

    def _invariant(self, rank: float) -> float:
        allowed = sys.float_info.max
        for quantile, epsilon in self._targets:
            if quantile * self._n <= rank:
                f = _div(2 * epsilon * rank, quantile)
            else:
                f = _div(2 * epsilon * (self._n - rank), 1 - quantile)
            if f < allowed:
                allowed = f
        return allowed

    def insert(self, value: float) -> None:
        """Add one observation."""
        self._buffer.append(value)
        if len(self._buffer) >= BUFFER_SIZE:
            self._flush()

    def query(self, q: float) -> float:
        """Return the estimated value at quantile q (0.0 for an empty stream)."""
        if not self._samples:
            if not self._buffer:
                return 0.0
            index = math.ceil(len(self._buffer) * q)
            if index > 0:
                index -= 1
            self._buffer.sort()
            return self._buffer[index]
        self._flush()
        return self._query_samples(q)

    def reset(self) -> None:
        """Discard all observations."""
        self._samples = []
        self._n = 0.0
        self._buffer.clear()

    def count(self) -> int:
        """Number of observations currently held."""
        return len(self._buffer) + int(self._n)

    def __len__(self) -> int:
        return self.count()

    def _flush(self) -> None:
        self._buffer.sort()
        self._merge(self._buffer)
        self._buffer.clear()

    def _merge(self, values: Iterable[float]) -> None:
        samples = self._samples
        rank = 0.0
        i = 0
        for value in values:
            while i < len(samples):
                current = samples[i]
                if current.value > value:
                    delta = _floor(self._invariant(rank)) - 1
                    if not math.isnan(delta):
                        delta = max(0.0, delta)
                    samples.insert(i, _Sample(value, 1.0, delta))
                    i += 1
                    break
                rank += current.width
                i += 1
            else:
                samples.append(_Sample(value, 1.0, 0.0))
                i += 1
            self._n += 1
            rank += 1
        self._compress()

    def _compress(self) -> None:
        samples = self._samples
        if len(samples) < 2:
            return
        head = samples[-1]
        kept = [head]
        rank = self._n - 1 - head.width
        for current in reversed(samples[:-1]):
            if current.width + head.width + head.delta <= self._invariant(rank):
                head.width += current.width
            else:
                kept.append(current)
                head = current
            rank -= current.width
        kept.reverse()
        self._samples = kept

    def _query_samples(self, q: float) -> float:
        target = _ceil(q * self._n)
        target += _ceil(self._invariant(target) / 2)
        previous = self._samples[0]
        rank = 0.0
        for current in self._samples[1:]:
            rank += previous.width
            if rank + current.width + current.delta > target:
                return previous.value
            previous = current
        return previous.value