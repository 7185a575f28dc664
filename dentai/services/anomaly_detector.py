"""Anomaly detectors: given an image, return typed, scored, located findings.

Any object with an ``async detect(image) -> list[Finding]`` method can be
plugged into the pipeline. Three are provided: a randomised simulator, a
fixed fixture for tests, and an OpenAI vision backend.
"""
import asyncio
import base64
import json
import logging
import random
import uuid
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from dentai.config import settings
from dentai.schemas.analysis import AnomalyType, Finding, Severity
from dentai.services.quality_gate import check_payload

logger = logging.getLogger(__name__)

TOOTH_SITES = [
    ("11", "upper right central incisor"),
    ("12", "upper right lateral incisor"),
    ("13", "upper right canine"),
    ("21", "upper left central incisor"),
    ("22", "upper left lateral incisor"),
    ("31", "lower left central incisor"),
    ("32", "lower left lateral incisor"),
    ("41", "lower right central incisor"),
    ("42", "lower right lateral incisor"),
]
TOOTH_LOCATIONS = [f"{code} ({name})" for code, name in TOOTH_SITES]

GUM_REGIONS = [
    "upper anterior region",
    "lower anterior region",
    "right molar region",
    "left molar region",
    "full-mouth gingiva",
]

GINGIVA = "gingiva"

DESCRIPTIONS: dict[AnomalyType, str] = {
    AnomalyType.CARIES: "Possible cavity or demineralisation on the tooth surface",
    AnomalyType.CALCULUS: "Mineralised deposits along the gum line or between teeth",
    AnomalyType.GINGIVITIS: "Gum tissue appears swollen or discoloured",
    AnomalyType.DISCOLORATION: "Uneven tooth colour or pigment deposits",
    AnomalyType.RECESSION: "Exposed root surface with reduced gum height",
}


def new_finding_id() -> str:
    return str(uuid.uuid4())


class AnomalyDetector(Protocol):
    async def detect(self, image: bytes) -> list[Finding]:
        ...


@dataclass(frozen=True)
class CategoryRule:
    """How the simulator decides on and shapes findings of one category."""

    category: AnomalyType
    probability: float
    confidence_range: tuple[int, int]  # inclusive
    locations: Sequence[str]
    pick_severity: Callable[[random.Random], Severity]
    max_count: int = 1


def _moderate_or_severe(rng: random.Random) -> Severity:
    return Severity.MODERATE if rng.random() > 0.5 else Severity.SEVERE


def _always_mild(rng: random.Random) -> Severity:
    return Severity.MILD


def _mild_or_moderate(rng: random.Random) -> Severity:
    return Severity.MILD if rng.random() > 0.6 else Severity.MODERATE


DETECTION_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(AnomalyType.CARIES, 0.40, (60, 94), TOOTH_LOCATIONS, _moderate_or_severe, max_count=3),
    CategoryRule(AnomalyType.CALCULUS, 0.50, (55, 84), GUM_REGIONS, _always_mild),
    CategoryRule(AnomalyType.GINGIVITIS, 0.30, (65, 89), (GINGIVA,), _mild_or_moderate),
    CategoryRule(AnomalyType.DISCOLORATION, 0.35, (50, 79), TOOTH_LOCATIONS, _always_mild),
    CategoryRule(AnomalyType.RECESSION, 0.20, (60, 87), TOOTH_LOCATIONS, _moderate_or_severe),
)


class SimulatedAnomalyDetector:
    """Randomised stand-in for a vision model.

    Each category is rolled independently; caries may produce up to three
    findings in one pass, every other category at most one.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        rules: Sequence[CategoryRule] = DETECTION_RULES,
        latency_seconds: float | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._rules = rules
        self._latency = settings.detector_latency_seconds if latency_seconds is None else latency_seconds

    def _roll(self, rule: CategoryRule) -> list[Finding]:
        if self._rng.random() >= rule.probability:
            return []
        count = self._rng.randint(1, rule.max_count)
        low, high = rule.confidence_range
        return [
            Finding(
                id=new_finding_id(),
                type=rule.category,
                confidence=self._rng.randint(low, high),
                location=self._rng.choice(rule.locations),
                severity=rule.pick_severity(self._rng),
                description=DESCRIPTIONS[rule.category],
            )
            for _ in range(count)
        ]

    async def detect(self, image: bytes) -> list[Finding]:
        check_payload(image)
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        findings = [finding for rule in self._rules for finding in self._roll(rule)]
        logger.info("Simulated detection: %d findings", len(findings))
        return findings


class FixtureAnomalyDetector:
    """Returns a fixed set of findings, each with a fresh id."""

    def __init__(self, findings: Sequence[Finding] = ()) -> None:
        self._findings = list(findings)
        self.calls = 0

    async def detect(self, image: bytes) -> list[Finding]:
        check_payload(image)
        self.calls += 1
        return [f.model_copy(update={"id": new_finding_id()}) for f in self._findings]


DETECTION_PROMPT = """\
You are a dental screening assistant reviewing an intra-oral photo.

Reply ONLY with a JSON object (no extra text):
{{
  "findings": [
    {{
      "type": one of {types},
      "confidence": integer 0-100,
      "location": FDI tooth code with name (e.g. "11 (upper right central incisor)") or a gum region,
      "severity": one of {severities},
      "description": "short explanation"
    }}
  ]
}}

Rules:
- Report only anomalies that are visible in the image
- Return an empty "findings" list if the teeth look healthy
"""


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text


def parse_findings(raw: str) -> list[Finding]:
    """Parse a model reply into findings, dropping entries outside the catalog."""
    parsed = json.loads(_strip_code_fence(raw))
    if not isinstance(parsed, dict):
        logger.warning("Vision reply is not a JSON object, treating as no findings")
        return []
    entries = parsed.get("findings") or []
    if not isinstance(entries, list):
        logger.warning("Vision reply has a non-list 'findings' field, treating as no findings")
        return []

    valid_types = {t.value for t in AnomalyType}
    valid_severities = {s.value for s in Severity}

    findings = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Skipping invalid finding entry: %s", entry)
            continue
        confidence = entry.get("confidence")
        if (
            entry.get("type") in valid_types
            and entry.get("severity") in valid_severities
            and isinstance(confidence, (int, float))
            and not isinstance(confidence, bool)
            and 0 <= confidence <= 100
            and entry.get("location")
        ):
            findings.append(Finding(
                id=new_finding_id(),
                type=entry["type"],
                confidence=confidence,
                location=entry["location"],
                severity=entry["severity"],
                description=entry.get("description") or DESCRIPTIONS[AnomalyType(entry["type"])],
            ))
        else:
            logger.warning("Skipping invalid finding entry: %s", entry)

    logger.info("Vision analysis: %d findings validated out of %d returned", len(findings), len(entries))
    return findings


class OpenAIAnomalyDetector:
    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._api_key = api_key or settings.openai_api_key
        self._model = model or settings.openai_model

    def _build_api_kwargs(self, content: list[dict]) -> dict:
        api_kwargs: dict = {
            "model": self._model,
            "messages": [{"role": "user", "content": content}],
        }
        if self._model.startswith("o"):
            # o-series reasoning models take no temperature
            api_kwargs["max_completion_tokens"] = 4096
        else:
            api_kwargs["max_tokens"] = 2048
            api_kwargs["temperature"] = 0.1
        return api_kwargs

    async def detect(self, image: bytes) -> list[Finding]:
        payload = check_payload(image)
        if not self._api_key:
            raise RuntimeError("OpenAI API key not configured")

        from openai import OpenAI

        client = OpenAI(api_key=self._api_key)
        prompt = DETECTION_PROMPT.format(
            types=[t.value for t in AnomalyType],
            severities=[s.value for s in Severity],
        )
        b64 = base64.b64encode(payload).decode("utf-8")
        content = [
            {"type": "text", "text": prompt},
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{b64}", "detail": "high"},
            },
        ]

        logger.info("Calling OpenAI model=%s (%d bytes)", self._model, len(payload))
        response = await asyncio.to_thread(
            client.chat.completions.create, **self._build_api_kwargs(content)
        )
        raw_text = response.choices[0].message.content or ""
        logger.info("OpenAI raw response (%d chars): %s", len(raw_text), raw_text[:500])
        return parse_findings(raw_text)


def build_detector(kind: str | None = None) -> AnomalyDetector:
    kind = kind or settings.detector
    if kind == "openai":
        return OpenAIAnomalyDetector()
    if kind == "simulated":
        return SimulatedAnomalyDetector()
    raise ValueError(f"Unknown detector: {kind}")
