"""Reading and writing metric families in the text exposition format."""

from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import Iterable

from .metric import (
    Bucket,
    HistogramData,
    LabelPair,
    MetricData,
    MetricFamily,
    MetricType,
    Quantile,
    SummaryData,
)

_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_TYPES = {t.name.lower(): t for t in MetricType}


class ParseError(ValueError):
    """Raised when text is not valid exposition format."""


def _unescape(text: str, quotes: bool) -> str:
    out = []
    chars = iter(text)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt == "n":
            out.append("\n")
        elif nxt == "\\" or (quotes and nxt == '"'):
            out.append(nxt)
        else:
            out.append("\\" + nxt)
    return "".join(out)


def _parse_float(text: str, line_no: int) -> float:
    try:
        return float(text)
    except ValueError:
        raise ParseError(f"line {line_no}: invalid value {text!r}") from None


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _parse_labels(text: str, pos: int, line_no: int) -> tuple[list[tuple[str, str]], int]:
    pos += 1
    labels: list[tuple[str, str]] = []
    while True:
        pos = _skip_ws(text, pos)
        if pos < len(text) and text[pos] == "}":
            return labels, pos + 1
        match = _LABEL_NAME_RE.match(text, pos)
        if not match:
            raise ParseError(f"line {line_no}: invalid label name")
        name = match.group()
        pos = _skip_ws(text, match.end())
        if pos >= len(text) or text[pos] != "=":
            raise ParseError(f"line {line_no}: expected '=' after label name {name!r}")
        pos = _skip_ws(text, pos + 1)
        if pos >= len(text) or text[pos] != '"':
            raise ParseError(f"line {line_no}: expected quoted label value")
        pos += 1
        start = pos
        while pos < len(text) and text[pos] != '"':
            pos += 2 if text[pos] == "\\" else 1
        if pos >= len(text):
            raise ParseError(f"line {line_no}: unterminated label value")
        if any(existing == name for existing, _ in labels):
            raise ParseError(f"line {line_no}: duplicate label name {name!r}")
        labels.append((name, _unescape(text[start:pos], quotes=True)))
        pos = _skip_ws(text, pos + 1)
        if pos < len(text) and text[pos] == ",":
            pos += 1
        elif pos >= len(text) or text[pos] != "}":
            raise ParseError(f"line {line_no}: expected ',' or '}}' in label set")


class _Parser:
    def __init__(self) -> None:
        self.families: dict[str, MetricFamily] = {}
        self.typed: set[str] = set()
        self.grouped: dict[str, dict[tuple, MetricData]] = {}

    def family(self, name: str) -> MetricFamily:
        if name not in self.families:
            self.families[name] = MetricFamily(name=name)
            self.grouped[name] = {}
        return self.families[name]

    def comment(self, line: str, line_no: int) -> None:
        tokens = line[1:].strip().split(None, 2)
        if len(tokens) < 2 or tokens[0] not in ("HELP", "TYPE"):
            return
        keyword, name = tokens[0], tokens[1]
        if not _NAME_RE.fullmatch(name):
            raise ParseError(f"line {line_no}: invalid metric name {name!r}")
        rest = tokens[2].strip() if len(tokens) > 2 else ""
        family = self.family(name)
        if keyword == "HELP":
            if family.help is not None:
                raise ParseError(f"line {line_no}: second HELP line for {name!r}")
            family.help = _unescape(rest, quotes=False) or None
            return
        if name in self.typed:
            raise ParseError(f"line {line_no}: second TYPE line for {name!r}")
        if family.metrics:
            raise ParseError(f"line {line_no}: TYPE line for {name!r} after samples")
        if rest not in _TYPES:
            raise ParseError(f"line {line_no}: unknown metric type {rest!r}")
        family.type = _TYPES[rest]
        self.typed.add(name)

    def resolve(self, name: str) -> tuple[MetricFamily, str]:
        for suffix in ("_bucket", "_sum", "_count"):
            if name.endswith(suffix):
                base = self.families.get(name[: -len(suffix)])
                if base is None:
                    continue
                if base.type is MetricType.HISTOGRAM or (
                    base.type is MetricType.SUMMARY and suffix != "_bucket"
                ):
                    return base, suffix
        return self.family(name), ""

    def sample(self, line: str, line_no: int) -> None:
        match = _NAME_RE.match(line)
        if not match:
            raise ParseError(f"line {line_no}: invalid metric name")
        name = match.group()
        pos = _skip_ws(line, match.end())
        labels: list[tuple[str, str]] = []
        if pos < len(line) and line[pos] == "{":
            labels, pos = _parse_labels(line, pos, line_no)
        tokens = line[pos:].split()
        if not tokens or len(tokens) > 2:
            raise ParseError(f"line {line_no}: expected value and optional timestamp")
        value = _parse_float(tokens[0], line_no)
        timestamp = None
        if len(tokens) == 2:
            try:
                timestamp = int(tokens[1])
            except ValueError:
                raise ParseError(f"line {line_no}: invalid timestamp {tokens[1]!r}") from None

        family, suffix = self.resolve(name)
        special = {MetricType.HISTOGRAM: "le", MetricType.SUMMARY: "quantile"}.get(family.type)
        if special is None:
            data = MetricData(labels=_sorted_pairs(labels), timestamp_ms=timestamp)
            if family.type is MetricType.COUNTER:
                data.counter = value
            elif family.type is MetricType.GAUGE:
                data.gauge = value
            else:
                data.untyped = value
            family.metrics.append(data)
            return

        marker = None
        plain = []
        for label_name, label_value in labels:
            if label_name == special:
                marker = _parse_float(label_value, line_no)
            else:
                plain.append((label_name, label_value))
        key = tuple(sorted(plain))
        group = self.grouped[family.name]
        data = group.get(key)
        if data is None:
            data = MetricData(labels=_sorted_pairs(plain), timestamp_ms=timestamp)
            if family.type is MetricType.HISTOGRAM:
                data.histogram = HistogramData()
            else:
                data.summary = SummaryData()
            group[key] = data
            family.metrics.append(data)
        target = data.histogram if data.histogram is not None else data.summary
        if suffix == "_count":
            target.sample_count = int(value)
        elif suffix == "_sum":
            target.sample_sum = value
        elif marker is not None:
            if data.histogram is not None:
                data.histogram.buckets.append(Bucket(marker, int(value)))
            else:
                data.summary.quantiles.append(Quantile(marker, value))


def _sorted_pairs(labels: Iterable[tuple[str, str]]) -> list[LabelPair]:
    return sorted((LabelPair(n, v) for n, v in labels), key=lambda p: p.name)


def parse_text(text: str) -> list[MetricFamily]:
    """Parse text exposition format into metric families, dropping empty ones."""
    parser = _Parser()
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#"):
            parser.comment(line, line_no)
        else:
            parser.sample(line, line_no)
    return [f for f in parser.families.values() if f.metrics]


def format_float(value: float) -> str:
    """Format a float in the shortest form, using an exponent for large or tiny values."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    sign = "-" if math.copysign(1.0, value) < 0 else ""
    value = abs(value)
    if value == 0:
        return sign + "0"
    decimal = Decimal(repr(value)).normalize()
    digits = "".join(map(str, decimal.as_tuple().digits))
    exponent = len(digits) + decimal.as_tuple().exponent - 1
    if exponent < -4 or exponent >= 21 or (exponent >= 6):
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exponent < 0 else "+"
        return f"{sign}{mantissa}e{exp_sign}{abs(exponent):02d}"
    return sign + format(decimal, "f")


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _line(name: str, labels: list[LabelPair], value: str, extra=None, ts=None) -> str:
    pairs = [(p.name, p.value) for p in labels]
    if extra is not None:
        pairs.append(extra)
    label_text = ""
    if pairs:
        label_text = "{" + ",".join(f'{n}="{_escape_label(v)}"' for n, v in pairs) + "}"
    suffix = f" {ts}" if ts is not None else ""
    return f"{name}{label_text} {value}{suffix}\n"


def _encode_family(family: MetricFamily) -> str:
    name = family.name
    out = []
    if family.help is not None:
        escaped = family.help.replace("\\", "\\\\").replace("\n", "\\n")
        out.append(f"# HELP {name} {escaped}\n")
    out.append(f"# TYPE {name} {family.type.name.lower()}\n")
    for m in family.metrics:
        ts = m.timestamp_ms
        if family.type is MetricType.SUMMARY:
            if m.summary is None:
                raise ValueError(f"expected summary in metric {name}")
            for q in m.summary.quantiles:
                out.append(_line(name, m.labels, format_float(q.value),
                                 ("quantile", format_float(q.quantile)), ts))
            out.append(_line(name + "_sum", m.labels, format_float(m.summary.sample_sum), ts=ts))
            out.append(_line(name + "_count", m.labels, str(m.summary.sample_count), ts=ts))
        elif family.type is MetricType.HISTOGRAM:
            if m.histogram is None:
                raise ValueError(f"expected histogram in metric {name}")
            inf_seen = False
            for b in m.histogram.buckets:
                inf_seen = inf_seen or math.isinf(b.upper_bound) and b.upper_bound > 0
                out.append(_line(name + "_bucket", m.labels, str(b.cumulative_count),
                                 ("le", format_float(b.upper_bound)), ts))
            if not inf_seen:
                out.append(_line(name + "_bucket", m.labels, str(m.histogram.sample_count),
                                 ("le", "+Inf"), ts))
            out.append(_line(name + "_sum", m.labels, format_float(m.histogram.sample_sum), ts=ts))
            out.append(_line(name + "_count", m.labels, str(m.histogram.sample_count), ts=ts))
        else:
            value = {
                MetricType.COUNTER: m.counter,
                MetricType.GAUGE: m.gauge,
                MetricType.UNTYPED: m.untyped,
            }[family.type]
            if value is None:
                raise ValueError(f"expected {family.type.name.lower()} value in metric {name}")
            out.append(_line(name, m.labels, format_float(value), ts=ts))
    return "".join(out)


def encode_text(families: Iterable[MetricFamily]) -> str:
    """Encode metric families in the text exposition format."""
    return "".join(_encode_family(f) for f in families)