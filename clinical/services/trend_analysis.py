"""
Trend classification for ROM/MMT measurement histories.

The rule is a thresholded delta: compare the latest reading with a
baseline reading and call the change improving, worsening or stable.
Higher values are clinically better for both instruments (more degrees of
motion, a stronger muscle grade).

The analyzer has no error channel. Sparse or malformed history collapses
to INSUFFICIENT_DATA.
"""

import math
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinical.config import BaselineMode, TrendSettings, get_config
from clinical.domain.models import GroupKey, Measurement, MeasurementType, Side
from clinical.services.measurement_history import MeasurementHistoryAggregator
from clinical.services.record_store import logger

DEFAULT_THRESHOLDS: dict[MeasurementType, float] = {
    MeasurementType.ROM: 5.0,  # degrees
    MeasurementType.MMT: 1.0,  # one grade step
}


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class TrendConfig(BaseModel):
    """Thresholds and baseline selection for trend classification."""

    model_config = ConfigDict(frozen=True)

    thresholds: dict[MeasurementType, float] = Field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS),
        description="Minimum change per instrument type to count as a trend",
    )
    comparison_span: int = Field(
        default=1, ge=1, description="Records between baseline and latest in 'previous' mode"
    )
    baseline_mode: BaselineMode = Field(default="previous")

    @field_validator("thresholds")
    @classmethod
    def complete_thresholds(cls, v: dict[MeasurementType, float]) -> dict[MeasurementType, float]:
        merged = {**DEFAULT_THRESHOLDS, **v}
        for measurement_type, threshold in merged.items():
            if not threshold > 0:
                raise ValueError(f"threshold for {measurement_type.value} must be positive")
        return merged

    @classmethod
    def from_settings(cls, settings: TrendSettings) -> "TrendConfig":
        return cls(
            thresholds={
                MeasurementType.ROM: settings.rom_threshold,
                MeasurementType.MMT: settings.mmt_threshold,
            },
            comparison_span=settings.comparison_span,
            baseline_mode=settings.baseline_mode,
        )

    def threshold_for(self, measurement_type: MeasurementType) -> float:
        return self.thresholds[measurement_type]


class TrendResult(BaseModel):
    """Outcome of classifying one trend group."""

    model_config = ConfigDict(frozen=True)

    direction: TrendDirection
    delta: float | None = None
    latest_value: float | None = None
    baseline_value: float | None = None
    threshold: float | None = None
    sample_count: int = Field(default=0, ge=0, description="Usable readings in the group")

    @property
    def has_indicator(self) -> bool:
        return self.direction != TrendDirection.INSUFFICIENT_DATA


def _usable(entry: Any) -> bool:
    if entry is None:
        return False
    value = getattr(entry, "value", None)
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


def classify(
    history: Iterable[Measurement | None], config: TrendConfig | None = None
) -> TrendResult:
    """
    Classify the trend of one chronologically ordered group.

    Args:
        history: Readings oldest first. Entries without a usable value are skipped.
        config: Thresholds and baseline choice; defaults when omitted.
    """
    config = config or TrendConfig()
    samples = [entry for entry in history if _usable(entry)]

    if config.baseline_mode == "first":
        required = 2
    else:
        required = config.comparison_span + 1

    if len(samples) < required:
        return TrendResult(direction=TrendDirection.INSUFFICIENT_DATA, sample_count=len(samples))

    latest = samples[-1]
    baseline = samples[0] if config.baseline_mode == "first" else samples[-1 - config.comparison_span]

    try:
        threshold = config.threshold_for(MeasurementType(latest.type))
    except (ValueError, KeyError, AttributeError):
        return TrendResult(direction=TrendDirection.INSUFFICIENT_DATA, sample_count=len(samples))

    delta = latest.value - baseline.value
    if delta >= threshold:
        direction = TrendDirection.IMPROVING
    elif delta <= -threshold:
        direction = TrendDirection.WORSENING
    else:
        direction = TrendDirection.STABLE

    return TrendResult(
        direction=direction,
        delta=delta,
        latest_value=latest.value,
        baseline_value=baseline.value,
        threshold=threshold,
        sample_count=len(samples),
    )


class TrendAnalyzer:
    """Classifies histories against a fixed configuration."""

    def __init__(self, config: TrendConfig | None = None) -> None:
        self.config = config or TrendConfig()

    def classify(self, history: Iterable[Measurement | None]) -> TrendResult:
        return classify(history, self.config)


def get_trend_config() -> TrendConfig:
    """Trend configuration from the application settings."""
    return TrendConfig.from_settings(get_config().trend)


class TrendDataPoint(BaseModel):
    value: float
    recorded_at: datetime
    notes: str | None = None


class TrendingData(BaseModel):
    """Everything a history view needs to draw one trend group."""

    patient_id: str
    type: MeasurementType
    target: str
    side: Side
    data_points: list[TrendDataPoint]
    baseline: float | None = Field(default=None, description="First recorded value")
    current: float | None = Field(default=None, description="Most recent value")
    change: float | None = Field(default=None, description="current - baseline")
    trend: TrendResult

    @property
    def key(self) -> GroupKey:
        return GroupKey(self.type, self.target, self.side)


class PatientTrendService:
    """Aggregates a patient's history and classifies every group."""

    def __init__(self, aggregator: MeasurementHistoryAggregator, analyzer: TrendAnalyzer) -> None:
        self.aggregator = aggregator
        self.analyzer = analyzer
        self.logger = logger.bind(component="patient_trends")

    async def patient_trends(self, patient_id: str) -> list[TrendingData]:
        groups = await self.aggregator.aggregate(patient_id)

        trends = []
        for key in sorted(groups, key=lambda k: (k.type.value, k.target, k.side.value)):
            trends.append(self._build(patient_id, key, groups[key]))

        self.logger.info(
            "patient_trends_computed",
            patient_id=patient_id,
            groups=len(trends),
            with_indicator=sum(1 for t in trends if t.trend.has_indicator),
        )
        return trends

    async def trend_for(self, patient_id: str, key: GroupKey) -> TrendingData | None:
        groups = await self.aggregator.aggregate(patient_id)
        history = groups.get(key)
        if history is None:
            return None
        return self._build(patient_id, key, history)

    def _build(
        self, patient_id: str, key: GroupKey, history: Iterable[Measurement]
    ) -> TrendingData:
        readings = list(history)
        baseline = readings[0].value if readings else None
        current = readings[-1].value if readings else None
        change = current - baseline if baseline is not None and current is not None else None

        return TrendingData(
            patient_id=patient_id,
            type=key.type,
            target=key.target,
            side=key.side,
            data_points=[
                TrendDataPoint(value=m.value, recorded_at=m.recorded_at, notes=m.notes)
                for m in readings
            ],
            baseline=baseline,
            current=current,
            change=change,
            trend=self.analyzer.classify(readings),
        )
