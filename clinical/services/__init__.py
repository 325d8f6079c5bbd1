"""
Core services for the clinical records client.

This package contains record resolution for edit/create forms, the save
flows behind them, and ROM/MMT history aggregation and trend analysis.
"""

from .measurement_history import MeasurementHistory, MeasurementHistoryAggregator
from .record_editor import RecordEditor
from .record_resolver import (
    FormSession,
    RecordResolver,
    ResolutionStatus,
    ResolvedState,
    form_session,
)
from .record_store import LocalRecordStore, Result
from .trend_analysis import (
    PatientTrendService,
    TrendAnalyzer,
    TrendConfig,
    TrendDirection,
    TrendingData,
    TrendResult,
    classify,
)

__all__ = [
    "LocalRecordStore",
    "Result",
    "RecordResolver",
    "ResolvedState",
    "ResolutionStatus",
    "FormSession",
    "form_session",
    "RecordEditor",
    "MeasurementHistory",
    "MeasurementHistoryAggregator",
    "TrendAnalyzer",
    "TrendConfig",
    "TrendDirection",
    "TrendResult",
    "TrendingData",
    "PatientTrendService",
    "classify",
]
