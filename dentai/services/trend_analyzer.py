from typing import Sequence

from dentai.schemas.trend import ChartSeries, Trend, TrendPoint, TrendResult
from dentai.services.risk_scorer import round1

SCORE_DELTA = 2
ANOMALY_DELTA = 1


def analyze_trend(history: Sequence[TrendPoint]) -> TrendResult:
    """Classify the latest record against the one before it.

    ``history`` must be oldest first. Only the last two entries matter.
    """
    if len(history) < 2:
        return TrendResult(
            trend=Trend.INSUFFICIENT_DATA,
            label="Insufficient data",
            message="At least 2 analyses are needed to show a trend",
            record_count=len(history),
        )

    previous, latest = history[-2], history[-1]
    score_diff = latest.risk_score - previous.risk_score
    anomaly_diff = latest.finding_count - previous.finding_count

    if score_diff > SCORE_DELTA or anomaly_diff > ANOMALY_DELTA:
        trend, label, icon = Trend.WORSENING, "Worsening", "📈"
        message = "Oral health has worsened since the last check; please pay closer attention"
    elif score_diff < -SCORE_DELTA or anomaly_diff < -ANOMALY_DELTA:
        trend, label, icon = Trend.IMPROVING, "Improving", "📉"
        message = "Oral health has improved since the last check; keep it up"
    else:
        trend, label, icon = Trend.STABLE, "Stable", "➡️"
        message = "No notable change since the last check"

    return TrendResult(
        trend=trend,
        label=label,
        message=message,
        icon=icon,
        score_diff=round1(score_diff),
        anomaly_diff=anomaly_diff,
        latest_score=latest.risk_score,
        previous_score=previous.risk_score,
        record_count=len(history),
    )


def chart_series(history: Sequence[TrendPoint]) -> ChartSeries | None:
    if not history:
        return None
    labels = [
        f"{p.recorded_at.month}/{p.recorded_at.day}" if p.recorded_at else str(i + 1)
        for i, p in enumerate(history)
    ]
    return ChartSeries(
        label="Risk score",
        labels=labels,
        scores=[p.risk_score for p in history],
    )
