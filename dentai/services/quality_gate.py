"""Pre-check that an uploaded dental photo is fit for anomaly detection."""
import logging
import random
from datetime import datetime, timezone
from typing import Protocol

from dentai.config import settings
from dentai.schemas.image import Angle, Brightness, QualityMeasurement, QualityResult
from dentai.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

MIN_CLARITY = 70

BRIGHTNESS_SCORES: dict[Brightness, int] = {
    Brightness.GOOD: 85,
    Brightness.TOO_DARK: 40,
    Brightness.TOO_BRIGHT: 45,
}

ANGLE_SCORES: dict[Angle, int] = {
    Angle.APPROPRIATE: 90,
    Angle.NEEDS_ADJUSTMENT: 55,
}

SUGGESTION_CLARITY = "Clean the camera lens and keep your hand steady."
SUGGESTION_TOO_DARK = "Lighting is too dim; move somewhere brighter or turn on the flash."
SUGGESTION_TOO_BRIGHT = "Lighting is too strong; avoid pointing at direct light sources."
SUGGESTION_ANGLE = "Adjust the camera angle so the lens is parallel to the teeth."
SUGGESTION_GOOD = "Image quality is good and ready for analysis."


class QualitySampler(Protocol):
    def measure(self, image: bytes) -> QualityMeasurement:
        ...


class RandomQualitySampler:
    """Stochastic stand-in for a real image-quality model."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def measure(self, image: bytes) -> QualityMeasurement:
        clarity = self._rng.randint(70, 94)

        roll = self._rng.random()
        if roll < 0.15:
            brightness = Brightness.TOO_DARK
        elif roll > 0.85:
            brightness = Brightness.TOO_BRIGHT
        else:
            brightness = Brightness.GOOD

        angle = Angle.APPROPRIATE if self._rng.random() > 0.2 else Angle.NEEDS_ADJUSTMENT
        return QualityMeasurement(clarity=clarity, brightness=brightness, angle=angle)


class FixedQualitySampler:
    """Always reports the same measurement."""

    def __init__(
        self,
        clarity: int = 85,
        brightness: Brightness = Brightness.GOOD,
        angle: Angle = Angle.APPROPRIATE,
    ) -> None:
        self._measurement = QualityMeasurement(clarity=clarity, brightness=brightness, angle=angle)

    def measure(self, image: bytes) -> QualityMeasurement:
        return self._measurement


def build_suggestions(clarity: int, brightness: Brightness, angle: Angle) -> list[str]:
    suggestions = []
    if clarity < MIN_CLARITY:
        suggestions.append(SUGGESTION_CLARITY)
    if brightness == Brightness.TOO_DARK:
        suggestions.append(SUGGESTION_TOO_DARK)
    elif brightness == Brightness.TOO_BRIGHT:
        suggestions.append(SUGGESTION_TOO_BRIGHT)
    if angle == Angle.NEEDS_ADJUSTMENT:
        suggestions.append(SUGGESTION_ANGLE)
    if not suggestions:
        suggestions.append(SUGGESTION_GOOD)
    return suggestions


def assess(measurement: QualityMeasurement) -> QualityResult:
    """Turn raw readings into a pass/fail verdict with diagnostics."""
    brightness_score = BRIGHTNESS_SCORES[measurement.brightness]
    angle_score = ANGLE_SCORES[measurement.angle]
    passed = (
        measurement.clarity >= MIN_CLARITY
        and measurement.brightness == Brightness.GOOD
        and measurement.angle == Angle.APPROPRIATE
    )
    return QualityResult(
        passed=passed,
        # half-up, not banker's rounding
        overall_score=int((measurement.clarity + brightness_score + angle_score) / 3 + 0.5),
        clarity=measurement.clarity,
        brightness=measurement.brightness,
        brightness_score=brightness_score,
        angle=measurement.angle,
        angle_score=angle_score,
        suggestions=build_suggestions(measurement.clarity, measurement.brightness, measurement.angle),
        timestamp=datetime.now(timezone.utc),
    )


def check_payload(image: bytes | None, max_size: int | None = None) -> bytes:
    """Reject missing, empty or oversize image payloads."""
    if image is None:
        raise InvalidInputError("Image payload is missing")
    if not isinstance(image, (bytes, bytearray)):
        raise InvalidInputError("Image payload must be bytes")
    if len(image) == 0:
        raise InvalidInputError("Image payload is empty")
    limit = settings.max_image_size_bytes if max_size is None else max_size
    if len(image) > limit:
        raise InvalidInputError(f"Image exceeds the {limit} byte limit")
    return bytes(image)


class QualityGate:
    def __init__(self, sampler: QualitySampler | None = None, max_size: int | None = None) -> None:
        self._sampler = sampler or RandomQualitySampler()
        self._max_size = max_size

    def evaluate(self, image: bytes) -> QualityResult:
        payload = check_payload(image, self._max_size)
        result = assess(self._sampler.measure(payload))
        logger.info(
            "Quality check: passed=%s overall=%d clarity=%d brightness=%s angle=%s",
            result.passed, result.overall_score, result.clarity,
            result.brightness.value, result.angle.value,
        )
        return result
