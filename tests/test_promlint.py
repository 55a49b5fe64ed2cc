import pytest

from prommetrics.exposition import parse_text
from prommetrics.promlint import Linter, Problem, metric_units


def lint(text):
    return Linter(text=text).lint()


def simple(name, metric_type, labels=""):
    return f"\n# HELP {name} Test metric.\n# TYPE {name} {metric_type}\n{name}{labels} 10\n"


def test_no_help():
    assert lint("# TYPE go_goroutines gauge\ngo_goroutines 24\n") == [
        Problem("go_goroutines", "no help text")
    ]


def test_empty_help():
    text = "# HELP go_goroutines\n# TYPE go_goroutines gauge\ngo_goroutines 24\n"
    assert lint(text) == [Problem("go_goroutines", "no help text")]


def test_no_help_and_empty_help():
    text = (
        "# HELP go_goroutines\n# TYPE go_goroutines gauge\ngo_goroutines 24\n"
        "# TYPE go_threads gauge\ngo_threads 10\n"
    )
    assert lint(text) == [
        Problem("go_goroutines", "no help text"),
        Problem("go_threads", "no help text"),
    ]


def test_help_ok():
    text = (
        "# HELP go_goroutines Number of goroutines that currently exist.\n"
        "# TYPE go_goroutines gauge\ngo_goroutines 24\n"
    )
    assert lint(text) == []


@pytest.mark.parametrize(
    "unit",
    ["amperes", "bytes", "grams", "celsius", "meters", "metres", "moles",
     "seconds", "joules", "kelvin"],
)
def test_good_units(unit):
    assert lint(simple(f"x_{unit}", "untyped")) == []


@pytest.mark.parametrize(
    "name,base,unit",
    [
        ("x_milliamperes", "amperes", "milliamperes"),
        ("x_gigabytes", "bytes", "gigabytes"),
        ("x_kilograms", "grams", "kilograms"),
        ("x_nanocelsius", "celsius", "nanocelsius"),
        ("x_kilometers", "meters", "kilometers"),
        ("x_picometers", "meters", "picometers"),
        ("x_microseconds", "seconds", "microseconds"),
        ("x_minutes", "seconds", "minutes"),
        ("x_hours", "seconds", "hours"),
        ("x_days", "seconds", "days"),
        ("x_kelvins", "kelvin", "kelvins"),
        ("thermometers_fahrenheit", "celsius", "fahrenheit"),
        ("thermometers_rankine", "celsius", "rankine"),
        ("x_inches", "meters", "inches"),
        ("x_yards", "meters", "yards"),
        ("x_miles", "meters", "miles"),
        ("x_bits", "bytes", "bits"),
        ("x_calories", "joules", "calories"),
        ("x_pounds", "grams", "pounds"),
        ("x_ounces", "grams", "ounces"),
    ],
)
def test_bad_units(name, base, unit):
    assert lint(simple(name, "untyped")) == [
        Problem(name, f'use base unit "{base}" instead of "{unit}"')
    ]


def test_metric_units_function():
    assert metric_units("x_kilometers") == ("kilometers", "meters")
    assert metric_units("x_moles") is None


@pytest.mark.parametrize(
    "name,metric_type,expected",
    [
        ("x_bytes", "counter", ['counter metrics should have "_total" suffix']),
        ("x_bytes_total", "gauge", ['non-counter metrics should not have "_total" suffix']),
        ("x_bytes_total", "counter", []),
        ("x_bytes", "gauge", []),
        ("x_bytes_total", "untyped", []),
        ("x_bytes", "untyped", []),
    ],
)
def test_counter(name, metric_type, expected):
    assert lint(simple(name, metric_type)) == [Problem(name, t) for t in expected]


@pytest.mark.parametrize(
    "name,labels,text",
    [
        ("x_bytes_bucket", "", 'non-histogram metrics should not have "_bucket" suffix'),
        ("x_bytes_count", "",
         'non-histogram and non-summary metrics should not have "_count" suffix'),
        ("x_bytes_sum", "",
         'non-histogram and non-summary metrics should not have "_sum" suffix'),
        ("x_bytes", '{le="1"}', 'non-histogram metrics should not have "le" label'),
        ("x_bytes", '{quantile="1"}', 'non-summary metrics should not have "quantile" label'),
    ],
)
def test_gauge_reserved(name, labels, text):
    assert lint(simple(name, "gauge", labels)) == [Problem(name, text)]


HIST_QUANTILE = """
# HELP tsdb_compaction_duration Duration of compaction runs.
# TYPE tsdb_compaction_duration histogram
tsdb_compaction_duration_bucket{le="0.005",quantile="0.01"} 0
tsdb_compaction_duration_bucket{le="0.5",quantile="0.01"} 57
tsdb_compaction_duration_bucket{le="+Inf",quantile="0.01"} 69
tsdb_compaction_duration_sum 28.740810936000006
tsdb_compaction_duration_count 69
"""

SUMMARY_LE = """
# HELP go_gc_duration_seconds A summary of the GC invocation durations.
# TYPE go_gc_duration_seconds summary
go_gc_duration_seconds{quantile="0",le="0.01"} 4.2365e-05
go_gc_duration_seconds{quantile="1",le="0.01"} 0.021754305
go_gc_duration_seconds_sum 1.769429004
go_gc_duration_seconds_count 5962
"""


def test_histogram_with_quantile_label():
    assert lint(HIST_QUANTILE) == [
        Problem("tsdb_compaction_duration",
                'non-summary metrics should not have "quantile" label')
    ]


def test_summary_with_le_label():
    assert lint(SUMMARY_LE) == [
        Problem("go_gc_duration_seconds", 'non-histogram metrics should not have "le" label')
    ]


def test_histogram_and_summary_ok():
    assert lint(HIST_QUANTILE.replace(',quantile="0.01"', "")) == []
    assert lint(SUMMARY_LE.replace(',le="0.01"', "")) == []


@pytest.mark.parametrize(
    "name,metric_type,typename,extra",
    [
        ("http_requests_counter", "counter", "counter",
         ['counter metrics should have "_total" suffix']),
        ("instance_memory_limit_bytes_gauge", "gauge", "gauge", []),
        ("request_duration_seconds_summary", "summary", "summary", []),
        ("request_duration_seconds_summary", "histogram", "summary", []),
        ("request_duration_seconds_histogram", "histogram", "histogram", []),
        ("request_duration_seconds_HISTOGRAM", "histogram", "histogram", []),
        ("instance_memory_limit_gauge_bytes", "gauge", "gauge", []),
    ],
)
def test_type_in_name(name, metric_type, typename, extra):
    expected = [Problem(name, t) for t in extra]
    expected.append(Problem(name, f"metric name should not include type '{typename}'"))
    assert lint(simple(name, metric_type)) == expected


def test_reserved_chars():
    name = "request_duration::_seconds"
    assert lint(simple(name, "histogram")) == [
        Problem(name, "metric names should not contain ':'")
    ]


def test_camel_case_metric_name():
    name = "requestDuration_seconds"
    assert lint(simple(name, "histogram")) == [
        Problem(name, "metric names should be written in 'snake_case' not 'camelCase'")
    ]


def test_camel_case_label_name():
    name = "request_duration_seconds"
    assert lint(simple(name, "histogram", '{httpService="foo"}')) == [
        Problem(name, "label names should be written in 'snake_case' not 'camelCase'")
    ]


@pytest.mark.parametrize(
    "name",
    [
        "instance_memory_limit_b", "instance_memory_limit_kb", "instance_memory_limit_mb",
        "instance_memory_limit_MB", "instance_memory_limit_gb", "instance_memory_limit_tb",
        "instance_memory_limit_pb", "request_duration_s", "request_duration_ms",
        "request_duration_us", "request_duration_ns", "request_duration_sec",
        "request_sec_duration", "request_duration_m", "request_duration_h",
        "request_duration_d",
    ],
)
def test_unit_abbreviations(name):
    assert lint(simple(name, "gauge")) == [
        Problem(name, "metric names should not contain abbreviated units")
    ]


def test_families_input_matches_text_input():
    text = simple("x_bytes", "counter")
    assert Linter(families=parse_text(text)).lint() == lint(text)
    assert len(Linter(text=text, families=parse_text(text)).lint()) == 2