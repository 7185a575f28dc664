from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ImageStatus(str, Enum):
    UPLOADED = "uploaded"
    QUALITY_PASSED = "quality_passed"
    QUALITY_FAILED = "quality_failed"
    ANALYZED = "analyzed"


class Brightness(str, Enum):
    TOO_DARK = "too_dark"
    GOOD = "good"
    TOO_BRIGHT = "too_bright"


class Angle(str, Enum):
    APPROPRIATE = "appropriate"
    NEEDS_ADJUSTMENT = "needs_adjustment"


class QualityMeasurement(BaseModel):
    """Raw readings a quality sampler takes from an image."""

    clarity: int = Field(ge=0, le=100)
    brightness: Brightness
    angle: Angle


class QualityResult(BaseModel):
    passed: bool
    overall_score: int = Field(ge=0, le=100)
    clarity: int = Field(ge=0, le=100)
    brightness: Brightness
    brightness_score: int
    angle: Angle
    angle_score: int
    suggestions: list[str]
    timestamp: datetime

    model_config = {"frozen": True}


class ImageRecord(BaseModel):
    id: str
    user_id: str
    user_name: str
    payload_ref: str
    file_name: str
    file_size: int
    uploaded_at: datetime
    quality_check: QualityResult | None = None
    analysis_id: str | None = None
    status: ImageStatus = ImageStatus.UPLOADED
