"""Vectors of summaries partitioned by label values."""

from __future__ import annotations

import json
from typing import Mapping, Sequence

from .metric import Desc, MetricError, build_fq_name
from .summary import QUANTILE_LABEL, SummaryOpts, summary_for_desc
from .vec import MetricVec


class SummaryVec(MetricVec):
    """Summaries that share one descriptor and differ in variable label values.

    The label name "quantile" is reserved for summaries and is rejected.
    """

    def __init__(self, opts: SummaryOpts, label_names: Sequence[str] | None) -> None:
        names = tuple(label_names or ())
        if QUANTILE_LABEL in names:
            raise MetricError(
                f"{json.dumps(QUANTILE_LABEL)} is not allowed as label name in summaries"
            )
        desc = Desc(
            build_fq_name(opts.namespace, opts.subsystem, opts.name),
            opts.help,
            names,
            opts.const_labels,
        )
        self.opts = opts
        super().__init__(desc, lambda *values: summary_for_desc(desc, opts, *values))

    def curry_with(self, labels: Mapping[str, str] | None) -> SummaryVec:
        """Return a view of this vector with the given labels fixed."""
        view = super().curry_with(labels)
        assert isinstance(view, SummaryVec)
        return view