import math
import random
import threading

import pytest

from prommetrics.metric import LabelPair, MetricError
from prommetrics.summary import NoObjectivesSummary, Summary, SummaryOpts
from prommetrics.summary_vec import SummaryVec

OBJECTIVES = {0.5: 0.05, 0.9: 0.01, 0.99: 0.001}


def _bounds(values, q, eps):
    n = len(values)
    lower = int((q - 2 * eps) * n)
    upper = math.ceil((q + 2 * eps) * n)
    low = values[lower - 1] if lower > 1 else values[0]
    high = values[upper - 1] if upper < n else values[-1]
    return low, high


def _opts(**kwargs):
    return SummaryOpts(name="test_summary", help="helpless", clock=lambda: 0.0, **kwargs)


def test_quantile_label_not_allowed():
    with pytest.raises(MetricError, match='"quantile" is not allowed'):
        SummaryVec(SummaryOpts(name="test_summary", help="less"), ["quantile"])


def test_const_quantile_label_rejected_on_creation():
    vec = SummaryVec(
        SummaryOpts(name="test_summary", help="less", const_labels={"quantile": "x"}),
        ["code"],
    )
    with pytest.raises(MetricError, match="quantile"):
        vec.with_label_values("200")


def test_concurrent_observations_per_label():
    vec = SummaryVec(_opts(objectives=OBJECTIVES), ["label"])
    rng = random.Random(42)
    labels = "ABC"
    plans = []
    all_values = {label: [] for label in labels}
    for _ in range(4):
        plan = []
        for _ in range(2500):
            value = rng.gauss(0.0, 1.0)
            label = rng.choice(labels)
            plan.append((label, value))
            all_values[label].append(value)
        plans.append(plan)

    start = threading.Event()

    def worker(plan):
        start.wait()
        for label, value in plan:
            vec.with_label_values(label).observe(value)

    threads = [threading.Thread(target=worker, args=(plan,)) for plan in plans]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join()

    for label in labels:
        values = sorted(all_values[label])
        data = vec.with_label_values(label).write().summary
        assert data.sample_count == len(values)
        expected_sum = sum(values)
        assert abs((data.sample_sum - expected_sum) / expected_sum) <= 0.001
        assert [q.quantile for q in data.quantiles] == [0.5, 0.9, 0.99]
        for q in data.quantiles:
            low, high = _bounds(values, q.quantile, OBJECTIVES[q.quantile])
            assert low <= q.value <= high


def test_without_objectives_creates_count_and_sum_summary():
    vec = SummaryVec(_opts(), ["code"])
    metric = vec.with_label_values("404")
    assert isinstance(metric, NoObjectivesSummary)
    metric.observe(3)
    metric.observe(0.14)
    data = vec.with_label_values("404").write()
    assert data.summary.sample_sum == pytest.approx(3.14)
    assert data.summary.sample_count == 2
    assert data.summary.quantiles == []
    assert data.labels == [LabelPair("code", "404")]


def test_with_objectives_creates_windowed_summary():
    vec = SummaryVec(_opts(objectives={0.5: 0.05}), ["code"])
    metric = vec.with_labels({"code": "200"})
    assert isinstance(metric, Summary)
    assert vec.with_label_values("200") is metric


def test_labels_include_const_labels_sorted():
    vec = SummaryVec(
        SummaryOpts(name="s", help="h", const_labels={"a": "x"}), ["method", "code"]
    )
    data = vec.with_label_values("GET", "200").write()
    assert data.labels == [
        LabelPair("a", "x"),
        LabelPair("code", "200"),
        LabelPair("method", "GET"),
    ]


def test_curry_with_shares_metrics():
    vec = SummaryVec(_opts(), ["method", "code"])
    curried = vec.curry_with({"method": "GET"})
    assert isinstance(curried, SummaryVec)
    curried.with_label_values("200").observe(2.0)
    data = vec.with_label_values("GET", "200").write()
    assert data.summary.sample_count == 1
    assert data.summary.sample_sum == 2.0
    assert len(list(vec.collect())) == 1


def test_curry_with_unknown_label():
    vec = SummaryVec(_opts(), ["method"])
    with pytest.raises(MetricError, match="1 unknown label"):
        vec.curry_with({"foo": "bar"})


def test_wrong_number_of_label_values():
    vec = SummaryVec(_opts(), ["method", "code"])
    with pytest.raises(MetricError):
        vec.with_label_values("GET")


def test_delete_and_reset():
    vec = SummaryVec(_opts(), ["code"])
    vec.with_label_values("200").observe(1.0)
    vec.with_label_values("500").observe(1.0)
    assert vec.delete({"code": "200"}) is True
    assert vec.delete({"code": "200"}) is False
    assert len(vec) == 1
    vec.reset()
    assert len(vec) == 0