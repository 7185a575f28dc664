import logging

import pytest

from dentai.schemas.analysis import RiskTier
from dentai.schemas.image import Brightness, ImageStatus
from dentai.services.anomaly_detector import FixtureAnomalyDetector
from dentai.services.pipeline import ImagePipeline
from dentai.services.quality_gate import FixedQualitySampler, QualityGate

from conftest import HIGH_RISK_FINDINGS

FAKE_JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 100


def _pipeline(workflow, detector=None, **quality):
    return ImagePipeline(
        workflow,
        QualityGate(FixedQualitySampler(**quality)),
        detector or FixtureAnomalyDetector(HIGH_RISK_FINDINGS),
    )


async def _upload(workflow, patient):
    return await workflow.create_image(patient, payload_ref="mem://1", file_name="1.jpg", file_size=len(FAKE_JPEG))


@pytest.mark.asyncio
async def test_process_good_image_reaches_analyzed(workflow, patient):
    image = await _upload(workflow, patient)
    outcome = await _pipeline(workflow).process(image.id, FAKE_JPEG)

    assert outcome.ok
    assert outcome.quality.passed is True
    assert outcome.risk.tier == RiskTier.HIGH
    assert len(outcome.transition.events) == 1
    stored = await workflow.get_image(image.id)
    assert stored.status == ImageStatus.ANALYZED
    assert stored.analysis_id == outcome.transition.analysis.id


@pytest.mark.asyncio
async def test_process_bad_image_stops_at_quality_gate(workflow, patient):
    detector = FixtureAnomalyDetector(HIGH_RISK_FINDINGS)
    image = await _upload(workflow, patient)
    outcome = await _pipeline(workflow, detector, brightness=Brightness.TOO_DARK).process(image.id, FAKE_JPEG)

    assert outcome.ok
    assert outcome.transition is None
    assert detector.calls == 0
    assert (await workflow.get_image(image.id)).status == ImageStatus.QUALITY_FAILED


@pytest.mark.asyncio
async def test_process_reports_errors_instead_of_raising(workflow):
    outcome = await _pipeline(workflow).process("missing", FAKE_JPEG)
    assert not outcome.ok
    assert "missing" in outcome.error


class DeletingDetector:
    """Deletes the image mid-detection, like a user removing an upload."""

    def __init__(self, workflow, image_id):
        self.workflow = workflow
        self.image_id = image_id

    async def detect(self, payload):
        await self.workflow.delete_image(self.image_id)
        return list(HIGH_RISK_FINDINGS)


@pytest.mark.asyncio
async def test_image_deleted_during_run_is_not_an_error_log(workflow, patient, caplog):
    image = await _upload(workflow, patient)
    pipeline = _pipeline(workflow, DeletingDetector(workflow, image.id))

    with caplog.at_level(logging.INFO, logger="dentai.services.pipeline"):
        outcome = await pipeline.process(image.id, FAKE_JPEG)

    assert outcome.error == f"Image not found: {image.id}"
    assert outcome.transition is None
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert any("gone before processing finished" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_schedule_calls_completion_callback(workflow, patient):
    pipeline = _pipeline(workflow)
    image = await _upload(workflow, patient)
    received = []

    async def on_complete(outcome):
        received.append(outcome)

    task = pipeline.schedule(image.id, FAKE_JPEG, on_complete)
    outcome = await task

    assert received == [outcome]
    assert outcome.image.status == ImageStatus.ANALYZED
    assert pipeline.in_flight == 0


@pytest.mark.asyncio
async def test_drain_waits_for_scheduled_runs(workflow, patient):
    pipeline = _pipeline(workflow)
    images = [await _upload(workflow, patient) for _ in range(3)]
    for image in images:
        pipeline.schedule(image.id, FAKE_JPEG)

    await pipeline.drain()
    for image in images:
        assert (await workflow.get_image(image.id)).status == ImageStatus.ANALYZED
