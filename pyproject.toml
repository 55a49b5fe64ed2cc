[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prommetrics"
version = "0.1.0"
description = "Prometheus-style metric descriptors, constant metrics, label vectors, summaries with streaming quantiles, text exposition and a metric linter"
requires-python = ">=3.10"
dependencies = []
keywords = ["prometheus", "metrics", "monitoring", "instrumentation", "summary", "quantile", "lint"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["prommetrics"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
