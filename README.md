# prommetrics

Building blocks for Prometheus-style instrumentation in plain Python, with no
runtime dependencies.

## What it provides

- **Data model, descriptors and single-value metrics** (`prommetrics.metric`):
  the exposition records `MetricFamily`, `MetricData`, `LabelPair`,
  `SummaryData`, `Quantile`, `Exemplar` and the enums `MetricType` and
  `ValueType`; `Desc` (a descriptor that keeps any validation problem in its
  `error` attribute instead of raising), `build_fq_name`, `new_const_metric`,
  `ValueFunc`, `new_untyped_func`, `make_label_pairs` and `new_exemplar`.
- **Metric vectors** (`prommetrics.vec`): `MetricVec` keeps one metric per
  combination of label values, created on first access by a factory you
  supply. It supports lookup by positional values or by label map, deletion,
  `reset`, and currying with `curry_with`; curried views share their metrics
  with the original vector.
- **Quantile estimation** (`prommetrics.quantile`): `TargetedStream` estimates
  a fixed set of quantiles, each with its allowed rank error, in bounded
  memory.
- **Summaries** (`prommetrics.summary`): `new_summary` builds a summary from
  `SummaryOpts`. Without objectives it tracks only count and sum
  (`NoObjectivesSummary`); with objectives (`Summary`) it also reports
  quantile estimates over a sliding window set by `max_age` (seconds) and
  `age_buckets`, driven by the `clock` option. `new_const_summary` builds a
  summary with fixed values. The label name `quantile` is rejected.
- **Summary vectors** (`prommetrics.summary_vec`): `SummaryVec` is a
  `MetricVec` of summaries partitioned by label names.
- **Text exposition** (`prommetrics.exposition`): `parse_text` reads the
  Prometheus text format into `MetricFamily` objects, and `encode_text` writes
  families back out.
- **Linting** (`prommetrics.promlint`): `Linter` checks exposition text,
  parsed families, or both, and returns naming, unit and metadata issues as
  `Problem` records sorted by metric name and description. `metric_units`
  reports the unit word found in a name and its base unit.

## Installation

```
pip install prommetrics
```

## Examples

A summary with quantile objectives:

```python
from prommetrics.summary import SummaryOpts, new_summary

latency = new_summary(SummaryOpts(
    name="request_duration_seconds",
    help="Time spent serving requests.",
    objectives={0.5: 0.05, 0.9: 0.01, 0.99: 0.001},
))
latency.observe(0.42)
data = latency.write()
print(data.summary.sample_count, data.summary.sample_sum)
for q in data.summary.quantiles:
    print(q.quantile, q.value)
```

Labelled summaries with currying:

```python
from prommetrics.summary import SummaryOpts
from prommetrics.summary_vec import SummaryVec

by_method = SummaryVec(
    SummaryOpts(name="rpc_duration_seconds", help="RPC latency."),
    ["service", "method"],
)
by_method.with_label_values("users", "get").observe(0.1)
users = by_method.curry_with({"service": "users"})
users.with_label_values("list").observe(0.3)
print(len(by_method))  # 2
```

A constant metric written out in the text format:

```python
from prommetrics.exposition import encode_text
from prommetrics.metric import Desc, MetricFamily, MetricType, ValueType, new_const_metric

desc = Desc("queue_length", "Items waiting.", ["queue"])
metric = new_const_metric(desc, ValueType.GAUGE, 3, "inbox")
family = MetricFamily(
    name="queue_length", help="Items waiting.", type=MetricType.GAUGE,
    metrics=[metric.write()],
)
print(encode_text([family]), end="")
# # HELP queue_length Items waiting.
# # TYPE queue_length gauge
# queue_length{queue="inbox"} 3
```

Linting text exposition:

```python
from prommetrics.promlint import Linter

text = """
# HELP x_milliamperes Test metric.
# TYPE x_milliamperes untyped
x_milliamperes 10
"""
for problem in Linter(text, None).lint():
    print(problem.metric, problem.text)
# x_milliamperes use base unit "amperes" instead of "milliamperes"
```

## Errors

Invalid input raises: `MetricError` (a `ValueError`) for bad descriptors,
label names, label values or label counts, and for currying with unknown or
already curried labels; `ParseError` (also a `ValueError`) for malformed
exposition text.

## What it does not do

The package has no registry that gathers collectors into metric families, no
HTTP endpoint that serves metrics, and no live counter, gauge or histogram
types; histograms exist only as parsed data (`HistogramData`). There is no
timing helper. To expose metrics, build `MetricFamily` objects from the
`write()` results yourself and pass them to `encode_text`.

## Running the tests

```
pip install -e ".[test]"
pytest
```