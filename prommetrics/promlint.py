"""Linter that flags naming and metadata issues in metric families."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from .exposition import parse_text
from .metric import MetricFamily, MetricType


@dataclass(frozen=True)
class Problem:
    """An issue found for the named metric."""

    metric: str
    text: str


class Linter:
    """Lints metrics given as exposition text, as parsed families, or both."""

    def __init__(
        self, text: str | None = None, families: Iterable[MetricFamily] | None = None
    ) -> None:
        self.text = text
        self.families = list(families or [])

    def lint(self) -> list[Problem]:
        """Return the problems found, sorted by metric name and description."""
        problems: list[Problem] = []
        if self.text is not None:
            for family in parse_text(self.text):
                problems.extend(_lint(family))
        for family in self.families:
            problems.extend(_lint(family))
        return sorted(problems, key=lambda p: (p.metric, p.text))


def _problem(mf: MetricFamily, text: str) -> Problem:
    return Problem(mf.name, text)


def _label_names(mf: MetricFamily) -> Iterable[str]:
    for metric in mf.metrics:
        for label in metric.labels:
            yield label.name


def _lint_help(mf: MetricFamily) -> list[Problem]:
    return [_problem(mf, "no help text")] if mf.help is None else []


def _lint_metric_units(mf: MetricFamily) -> list[Problem]:
    found = metric_units(mf.name)
    if found is None or found[0] == found[1]:
        return []
    unit, base = found
    return [_problem(mf, f"use base unit {json.dumps(base)} instead of {json.dumps(unit)}")]


def _lint_counter(mf: MetricFamily) -> list[Problem]:
    is_counter = mf.type is MetricType.COUNTER
    is_untyped = mf.type is MetricType.UNTYPED
    has_total = mf.name.endswith("_total")
    if is_counter and not has_total:
        return [_problem(mf, 'counter metrics should have "_total" suffix')]
    if not is_untyped and not is_counter and has_total:
        return [_problem(mf, 'non-counter metrics should not have "_total" suffix')]
    return []


def _lint_histogram_summary_reserved(mf: MetricFamily) -> list[Problem]:
    if mf.type is MetricType.UNTYPED:
        return []
    is_hist = mf.type is MetricType.HISTOGRAM
    is_summary = mf.type is MetricType.SUMMARY
    n = mf.name
    problems = []
    if not is_hist and n.endswith("_bucket"):
        problems.append(_problem(mf, 'non-histogram metrics should not have "_bucket" suffix'))
    if not is_hist and not is_summary and n.endswith("_count"):
        problems.append(_problem(
            mf, 'non-histogram and non-summary metrics should not have "_count" suffix'))
    if not is_hist and not is_summary and n.endswith("_sum"):
        problems.append(_problem(
            mf, 'non-histogram and non-summary metrics should not have "_sum" suffix'))
    for name in _label_names(mf):
        if not is_hist and name == "le":
            problems.append(_problem(mf, 'non-histogram metrics should not have "le" label'))
        if not is_summary and name == "quantile":
            problems.append(_problem(mf, 'non-summary metrics should not have "quantile" label'))
    return problems


def _lint_metric_type_in_name(mf: MetricFamily) -> list[Problem]:
    n = mf.name.lower()
    problems = []
    for metric_type in MetricType:
        if metric_type is MetricType.UNTYPED:
            continue
        typename = metric_type.name.lower()
        if f"_{typename}_" in n or n.endswith(f"_{typename}"):
            problems.append(_problem(mf, f"metric name should not include type '{typename}'"))
    return problems


def _lint_reserved_chars(mf: MetricFamily) -> list[Problem]:
    return [_problem(mf, "metric names should not contain ':'")] if ":" in mf.name else []


_CAMEL_CASE = re.compile(r"[a-z][A-Z]")


def _lint_camel_case(mf: MetricFamily) -> list[Problem]:
    problems = []
    if _CAMEL_CASE.search(mf.name):
        problems.append(_problem(
            mf, "metric names should be written in 'snake_case' not 'camelCase'"))
    for name in _label_names(mf):
        if _CAMEL_CASE.search(name):
            problems.append(_problem(
                mf, "label names should be written in 'snake_case' not 'camelCase'"))
    return problems


def _lint_unit_abbreviations(mf: MetricFamily) -> list[Problem]:
    n = mf.name.lower()
    return [
        _problem(mf, "metric names should not contain abbreviated units")
        for s in UNIT_ABBREVIATIONS
        if f"_{s}_" in n or n.endswith(f"_{s}")
    ]


_RULES: tuple[Callable[[MetricFamily], list[Problem]], ...] = (
    _lint_help,
    _lint_metric_units,
    _lint_counter,
    _lint_histogram_summary_reserved,
    _lint_metric_type_in_name,
    _lint_reserved_chars,
    _lint_camel_case,
    _lint_unit_abbreviations,
)


def _lint(mf: MetricFamily) -> list[Problem]:
    return [problem for rule in _RULES for problem in rule(mf)]


def metric_units(name: str) -> tuple[str, str] | None:
    """Return (unit, base unit) for a known unit word in name, or None."""
    parts = name.split("_")
    for unit, base in UNITS.items():
        for prefix in (*UNIT_PREFIXES, ""):
            if prefix + unit in parts:
                return prefix + unit, base
    return None


UNITS = {
    "amperes": "amperes",
    "bytes": "bytes",
    "celsius": "celsius",
    "grams": "grams",
    "joules": "joules",
    "kelvin": "kelvin",
    "meters": "meters",
    "metres": "metres",
    "seconds": "seconds",
    "volts": "volts",
    "minutes": "seconds",
    "hours": "seconds",
    "days": "seconds",
    "weeks": "seconds",
    "kelvins": "kelvin",
    "fahrenheit": "celsius",
    "rankine": "celsius",
    "inches": "meters",
    "yards": "meters",
    "miles": "meters",
    "bits": "bytes",
    "calories": "joules",
    "pounds": "grams",
    "ounces": "grams",
}

UNIT_PREFIXES = (
    "pico", "nano", "micro", "milli", "centi", "deci", "deca", "hecto", "kilo",
    "kibi", "mega", "mibi", "giga", "gibi", "tera", "tebi", "peta", "pebi",
)

UNIT_ABBREVIATIONS = (
    "s", "ms", "us", "ns", "sec", "b", "kb", "mb", "gb", "tb", "pb", "m", "h", "d",
)