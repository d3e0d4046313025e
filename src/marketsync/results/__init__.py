"""Quarterly results: fiscal-quarter arithmetic, comparisons and publication monitoring."""

from marketsync.results.comparison import QuarterlyComparisonEngine, build_record
from marketsync.results.financials import QuarterlyFinancialsSync
from marketsync.results.models import (
    METRIC_FIELDS,
    PublicationStatus,
    QuarterlyFigures,
    QuarterlyMetricsRecord,
    ResultsPublication,
)
from marketsync.results.monitor import ResultsMonitor
from marketsync.results.quarters import (
    QuarterKey,
    classify_quarter,
    percent_change,
    previous_quarter,
    year_ago_quarter,
)

__all__ = [
    "METRIC_FIELDS",
    "PublicationStatus",
    "QuarterKey",
    "QuarterlyComparisonEngine",
    "QuarterlyFigures",
    "QuarterlyFinancialsSync",
    "QuarterlyMetricsRecord",
    "ResultsMonitor",
    "ResultsPublication",
    "build_record",
    "classify_quarter",
    "percent_change",
    "previous_quarter",
    "year_ago_quarter",
]
