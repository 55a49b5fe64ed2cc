"""Metric descriptors, constant metrics, label vectors, summaries, text exposition and linting."""

__version__ = "0.1.0"