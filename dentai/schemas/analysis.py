from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class AnomalyType(str, Enum):
    CARIES = "caries"
    CALCULUS = "calculus"
    GINGIVITIS = "gingivitis"
    DISCOLORATION = "discoloration"
    RECESSION = "recession"


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    REVIEWED = "reviewed"
    FOLLOW_UP_SCHEDULED = "follow_up_scheduled"


class Finding(BaseModel):
    id: str
    # Any string is accepted; categories outside AnomalyType score with the default weight.
    type: str
    confidence: float = Field(ge=0, le=100)
    location: str
    severity: Severity
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _enum_to_value(cls, value):
        if isinstance(value, Enum):
            return value.value
        return value


class Contribution(BaseModel):
    type: str
    confidence: float
    weight: int
    contribution: float


class RiskResult(BaseModel):
    score: float
    tier: RiskTier
    label: str
    color: str
    icon: str
    recommendation: str
    finding_count: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    contributions: list[Contribution]


class RiskAlert(BaseModel):
    title: str
    message: str
    action: str
    urgency: str


class AnalysisRecord(BaseModel):
    id: str
    image_id: str
    user_id: str
    user_name: str
    findings: list[Finding]
    risk_score: float
    risk_tier: RiskTier
    recommendation: str
    status: AnalysisStatus = AnalysisStatus.PENDING_REVIEW
    reviewer_id: str | None = None
    reviewer_name: str | None = None
    reviewed_at: datetime | None = None
    reviewer_notes: str | None = None
    created_at: datetime


class ReviewOutcome(str, Enum):
    REVIEWED = "reviewed"
    FOLLOW_UP_SCHEDULED = "follow_up_scheduled"


class ReviewRequest(BaseModel):
    reviewer_id: str
    reviewer_name: str
    outcome: ReviewOutcome = ReviewOutcome.REVIEWED
    notes: str = ""


class ReviewSubmission(BaseModel):
    """Review body accepted by the API; the reviewer comes from the caller's identity."""

    outcome: ReviewOutcome = ReviewOutcome.REVIEWED
    notes: str = ""
