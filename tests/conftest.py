from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from dentai.schemas.analysis import AnomalyType, Finding, Severity
from dentai.schemas.user import CurrentUser, UserRole
from dentai.services.workflow import ReviewWorkflow
from dentai.store import MemoryRecordStore


@pytest.fixture(autouse=True)
def test_settings(tmp_path):
    # Disable API key auth and the OpenAI backend for tests
    from dentai.config import settings
    settings.api_key = ""
    settings.openai_api_key = ""
    settings.detector_latency_seconds = 0.0
    settings.data_dir = str(tmp_path)
    return settings


class StepClock:
    """Each call returns a moment one minute after the previous one."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def make_finding(kind, confidence, severity=Severity.MODERATE, location="11 (upper right central incisor)"):
    return Finding(
        id=f"{kind}-{confidence}",
        type=kind,
        confidence=confidence,
        location=location,
        severity=severity,
        description="test finding",
    )


HIGH_RISK_FINDINGS = [
    make_finding(AnomalyType.CARIES, 100, Severity.SEVERE),
    make_finding(AnomalyType.RECESSION, 100, Severity.SEVERE),
    make_finding(AnomalyType.CARIES, 90),
]  # 3 + 3 + 2.7 = 8.7 -> high

LOW_RISK_FINDINGS = [
    make_finding(AnomalyType.CARIES, 80),
    make_finding(AnomalyType.CALCULUS, 60, Severity.MILD),
]  # 2.4 + 1.2 = 3.6 -> low


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def workflow(store, clock):
    return ReviewWorkflow(store, clock=clock)


@pytest.fixture
def patient():
    return CurrentUser(id="patient-1", name="Alex Patient", role=UserRole.PATIENT)


@pytest_asyncio.fixture
async def api_app():
    from dentai.main import create_app
    from dentai.seed import seed_data
    from dentai.services.anomaly_detector import FixtureAnomalyDetector
    from dentai.services.quality_gate import FixedQualitySampler, QualityGate

    store = MemoryRecordStore()
    await seed_data(store)
    app = create_app(
        store=store,
        quality_gate=QualityGate(FixedQualitySampler()),
        detector=FixtureAnomalyDetector(HIGH_RISK_FINDINGS),
    )
    yield app
    await app.state.pipeline.drain()
