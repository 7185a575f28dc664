"""Weighted risk scoring of detected findings."""
import math
from dataclasses import dataclass
from typing import Iterable

from dentai.schemas.analysis import (
    AnomalyType,
    Contribution,
    Finding,
    RiskAlert,
    RiskResult,
    RiskTier,
)

CATEGORY_WEIGHTS: dict[str, int] = {
    AnomalyType.CARIES.value: 3,
    AnomalyType.RECESSION.value: 3,
    AnomalyType.GINGIVITIS.value: 2,
    AnomalyType.CALCULUS.value: 2,
    AnomalyType.DISCOLORATION.value: 1,
}
DEFAULT_WEIGHT = 1

HIGH_THRESHOLD = 8.0
MEDIUM_THRESHOLD = 5.0


@dataclass(frozen=True)
class TierProfile:
    label: str
    color: str
    icon: str
    recommendation: str


TIER_PROFILES: dict[RiskTier, TierProfile] = {
    RiskTier.LOW: TierProfile(
        label="Low risk",
        color="#10B981",
        icon="✅",
        recommendation=(
            "No significant anomalies found. Keep up your oral hygiene routine "
            "and check again in 3 months."
        ),
    ),
    RiskTier.MEDIUM: TierProfile(
        label="Medium risk",
        color="#F59E0B",
        icon="🟠",
        recommendation=(
            "Some findings need attention. Improve daily cleaning and arrange "
            "a follow-up check within one week."
        ),
    ),
    RiskTier.HIGH: TierProfile(
        label="High risk",
        color="#EF4444",
        icon="🔴",
        recommendation=(
            "Signs of serious anomalies were detected. Book a dental examination "
            "as soon as possible to avoid delaying treatment."
        ),
    ),
}


def weight_for(category: str) -> int:
    return CATEGORY_WEIGHTS.get(category, DEFAULT_WEIGHT)


def round1(value: float) -> float:
    """Round to one decimal, halves away from zero."""
    return math.copysign(math.floor(abs(value) * 10 + 0.5) / 10, value)


def tier_for(score: float) -> RiskTier:
    if score >= HIGH_THRESHOLD:
        return RiskTier.HIGH
    if score >= MEDIUM_THRESHOLD:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def score(findings: Iterable[Finding]) -> RiskResult:
    """Aggregate findings into a score and tier.

    The high/medium/low counts group findings by their category weight
    (3/2/1), not by how much each one contributed to the total.
    """
    findings = list(findings)
    total = 0.0
    contributions = []
    for finding in findings:
        weight = weight_for(finding.type)
        contribution = finding.confidence / 100 * weight
        total += contribution
        contributions.append(Contribution(
            type=finding.type,
            confidence=finding.confidence,
            weight=weight,
            contribution=round1(contribution),
        ))

    total = round1(total)
    tier = tier_for(total)
    profile = TIER_PROFILES[tier]
    weights = [weight_for(f.type) for f in findings]

    return RiskResult(
        score=total,
        tier=tier,
        label=profile.label,
        color=profile.color,
        icon=profile.icon,
        recommendation=profile.recommendation,
        finding_count=len(findings),
        high_risk_count=weights.count(3),
        medium_risk_count=weights.count(2),
        low_risk_count=weights.count(1),
        contributions=contributions,
    )


def build_alert(risk: RiskResult) -> RiskAlert:
    """Patient-facing alert for a scored analysis."""
    if risk.tier == RiskTier.HIGH:
        return RiskAlert(
            title="⚠️ High-risk anomalies found",
            message=(
                f"Your oral health score is {risk.score} (high risk) with "
                f"{risk.finding_count} anomalies detected. {risk.recommendation}"
            ),
            action="Book now",
            urgency="immediate",
        )
    if risk.tier == RiskTier.MEDIUM:
        return RiskAlert(
            title="⚡ Needs attention",
            message=(
                f"Your oral health score is {risk.score} (medium risk) with "
                f"{risk.finding_count} findings to watch. {risk.recommendation}"
            ),
            action="View details",
            urgency="soon",
        )
    return RiskAlert(
        title="✅ Oral health looks good",
        message=f"Your oral health score is {risk.score} (low risk). {risk.recommendation}",
        action="View report",
        urgency="routine",
    )


class RiskScorer:
    """Object seam around :func:`score` for injection into the workflow."""

    def score(self, findings: Iterable[Finding]) -> RiskResult:
        return score(findings)

    def alert(self, risk: RiskResult) -> RiskAlert:
        return build_alert(risk)
