from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class Trend(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


class TrendPoint(BaseModel):
    risk_score: float
    finding_count: int
    recorded_at: datetime | None = None


class TrendResult(BaseModel):
    trend: Trend
    label: str
    message: str
    icon: str | None = None
    score_diff: float | None = None
    anomaly_diff: int | None = None
    latest_score: float | None = None
    previous_score: float | None = None
    record_count: int


class ChartSeries(BaseModel):
    label: str
    labels: list[str]
    scores: list[float]
