import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

from dentai.schemas.analysis import RiskResult
from dentai.schemas.image import ImageRecord, QualityResult
from dentai.services.anomaly_detector import AnomalyDetector
from dentai.services.quality_gate import QualityGate
from dentai.services.risk_scorer import RiskScorer
from dentai.services.workflow import ReviewWorkflow, Transition
from dentai.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    image_id: str
    image: ImageRecord | None = None
    quality: QualityResult | None = None
    risk: RiskResult | None = None
    transition: Transition | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


CompletionCallback = Callable[[PipelineOutcome], Awaitable[None] | None]


def _mask_secrets(message: str) -> str:
    return re.sub(r"sk-[A-Za-z0-9_-]+", "sk-***", message)


class ImagePipeline:
    """Quality gate -> detection -> scoring -> workflow, for one uploaded image."""

    def __init__(
        self,
        workflow: ReviewWorkflow,
        quality_gate: QualityGate,
        detector: AnomalyDetector,
        scorer: RiskScorer | None = None,
    ) -> None:
        self._workflow = workflow
        self._quality_gate = quality_gate
        self._detector = detector
        self._scorer = scorer or RiskScorer()
        self._tasks: set[asyncio.Task] = set()

    async def process(self, image_id: str, payload: bytes) -> PipelineOutcome:
        outcome = PipelineOutcome(image_id=image_id)
        try:
            quality = self._quality_gate.evaluate(payload)
            outcome.quality = quality
            outcome.image = await self._workflow.submit_quality(image_id, quality)
            if not quality.passed:
                logger.info("Image %s failed the quality gate: %s", image_id, quality.suggestions)
                return outcome

            findings = await self._detector.detect(payload)
            risk = self._scorer.score(findings)
            outcome.risk = risk
            outcome.transition = await self._workflow.record_analysis(image_id, findings, risk)
            outcome.image = outcome.transition.image
            logger.info("Pipeline completed for image %s: tier=%s", image_id, risk.tier.value)
        except NotFoundError as e:
            # deleted while the run was in flight
            logger.info("Image %s gone before processing finished: %s", image_id, e)
            outcome.error = str(e)
        except Exception as e:
            logger.exception("Pipeline FAILED for image %s: %s", image_id, e)
            outcome.error = _mask_secrets(str(e))
        return outcome

    def schedule(
        self,
        image_id: str,
        payload: bytes,
        on_complete: CompletionCallback | None = None,
    ) -> asyncio.Task:
        """Run :meth:`process` in the background and report through ``on_complete``."""

        async def _run() -> PipelineOutcome:
            outcome = await self.process(image_id, payload)
            if on_complete is not None:
                try:
                    result = on_complete(outcome)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception:
                    logger.exception("Completion callback failed for image %s", image_id)
            return outcome

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled run to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
