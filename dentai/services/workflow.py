"""Lifecycle of an image and its analysis.

Image:    uploaded -> quality_passed | quality_failed;  quality_passed -> analyzed
Analysis: pending_review -> reviewed | follow_up_scheduled

An image and its (at most one) analysis form a record pair. Every operation
on a pair runs under that pair's lock and commits its writes in a single
``RecordStore.apply`` call, so a failed operation changes nothing. Operations
that emit notifications return the events they produced; the events are also
handed to the dispatcher once the state change has been committed.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from dentai.schemas.analysis import (
    AnalysisRecord,
    AnalysisStatus,
    Finding,
    ReviewOutcome,
    ReviewRequest,
    RiskResult,
    RiskTier,
)
from dentai.schemas.image import ImageRecord, ImageStatus, QualityResult
from dentai.schemas.notification import NotificationEvent, NotificationKind, Priority
from dentai.schemas.trend import TrendPoint
from dentai.schemas.user import CurrentUser
from dentai.services.notifications import NotificationDispatcher
from dentai.services.risk_scorer import RiskScorer
from dentai.store import ANALYSES, IMAGES, ChangeSet, RecordStore
from dentai.utils.exceptions import InvalidInputError, InvalidStateError, NotFoundError
from dentai.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Transition:
    analysis: AnalysisRecord
    image: ImageRecord | None = None
    events: list[NotificationEvent] = field(default_factory=list)


@dataclass
class DeleteResult:
    image_id: str
    deleted: bool
    analysis_ids: list[str] = field(default_factory=list)


def high_risk_event(analysis: AnalysisRecord) -> NotificationEvent:
    return NotificationEvent(
        kind=NotificationKind.HIGH_RISK_ALERT,
        user_id=analysis.user_id,
        related_id=analysis.id,
        priority=Priority.HIGH,
        title="⚠️ High-risk anomalies found",
        message=(
            f"The image you uploaded on {analysis.created_at:%Y-%m-%d %H:%M} shows "
            f"high-risk findings (score {analysis.risk_score}). Please see a dentist soon."
        ),
    )


def review_completed_event(analysis: AnalysisRecord) -> NotificationEvent:
    return NotificationEvent(
        kind=NotificationKind.REVIEW_COMPLETED,
        user_id=analysis.user_id,
        related_id=analysis.id,
        priority=Priority.MEDIUM,
        title="📋 Review completed",
        message=(
            f"Your oral health report has been reviewed by {analysis.reviewer_name}. "
            "Open it to see the details."
        ),
    )


class ReviewWorkflow:
    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher | None = None,
        scorer: RiskScorer | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._scorer = scorer or RiskScorer()
        self._clock = clock
        self._locks = KeyedLocks()

    # -- loading -------------------------------------------------------

    async def get_image(self, image_id: str) -> ImageRecord:
        record = await self._store.find(IMAGES, image_id)
        if record is None:
            raise NotFoundError("Image", image_id)
        return ImageRecord.model_validate(record)

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        record = await self._store.find(ANALYSES, analysis_id)
        if record is None:
            raise NotFoundError("Analysis", analysis_id)
        return AnalysisRecord.model_validate(record)

    async def _analyses(self) -> list[AnalysisRecord]:
        return [AnalysisRecord.model_validate(r) for r in await self._store.get(ANALYSES)]

    # -- transitions ---------------------------------------------------

    async def create_image(
        self,
        user: CurrentUser,
        payload_ref: str,
        file_name: str,
        file_size: int,
        image_id: str | None = None,
    ) -> ImageRecord:
        if not payload_ref:
            raise InvalidInputError("Image payload reference is required")
        image = ImageRecord(
            id=image_id or str(uuid.uuid4()),
            user_id=user.id,
            user_name=user.name,
            payload_ref=payload_ref,
            file_name=file_name,
            file_size=file_size,
            uploaded_at=self._clock(),
        )
        async with self._locks.hold(image.id):
            if await self._store.find(IMAGES, image.id) is not None:
                raise InvalidStateError(f"Image {image.id} already exists")
            await self._store.put(IMAGES, [image.model_dump(mode="json")])
        logger.info("Image %s created for user %s", image.id, user.id)
        return image

    async def submit_quality(self, image_id: str, quality: QualityResult) -> ImageRecord:
        """Attach a quality verdict; a later call overwrites an earlier one."""
        async with self._locks.hold(image_id):
            image = await self.get_image(image_id)
            if image.status == ImageStatus.ANALYZED:
                raise InvalidStateError(
                    f"Image {image_id} is already analyzed", current=image.status.value
                )
            image = image.model_copy(update={
                "quality_check": quality,
                "status": ImageStatus.QUALITY_PASSED if quality.passed else ImageStatus.QUALITY_FAILED,
            })
            await self._store.put(IMAGES, [image.model_dump(mode="json")])

        logger.info("Image %s quality %s (score %d)", image_id, image.status.value, quality.overall_score)
        return image

    async def record_analysis(
        self,
        image_id: str,
        findings: Sequence[Finding],
        risk: RiskResult,
    ) -> Transition:
        findings = list(findings)

        async with self._locks.hold(image_id):
            image = await self.get_image(image_id)
            if image.status != ImageStatus.QUALITY_PASSED:
                raise InvalidStateError(
                    f"Image {image_id} must pass the quality check before analysis",
                    current=image.status.value,
                )

            expected = self._scorer.score(findings)
            if expected.score != risk.score or expected.tier != risk.tier:
                raise InvalidInputError(
                    f"Risk result {risk.score}/{risk.tier.value} does not match its findings "
                    f"({expected.score}/{expected.tier.value})"
                )

            analysis = AnalysisRecord(
                id=str(uuid.uuid4()),
                image_id=image.id,
                user_id=image.user_id,
                user_name=image.user_name,
                findings=findings,
                risk_score=risk.score,
                risk_tier=risk.tier,
                recommendation=risk.recommendation,
                created_at=self._clock(),
            )
            image = image.model_copy(update={"analysis_id": analysis.id, "status": ImageStatus.ANALYZED})

            changes = ChangeSet()
            changes.put(ANALYSES, analysis.model_dump(mode="json"))
            changes.put(IMAGES, image.model_dump(mode="json"))
            await self._store.apply(changes)

        events = [high_risk_event(analysis)] if analysis.risk_tier == RiskTier.HIGH else []
        logger.info(
            "Analysis %s recorded for image %s: score=%s tier=%s findings=%d",
            analysis.id, image_id, analysis.risk_score, analysis.risk_tier.value, len(findings),
        )
        await self._dispatch(events)
        return Transition(analysis=analysis, image=image, events=events)

    async def apply_review(self, analysis_id: str, request: ReviewRequest) -> Transition:
        """Record a reviewer's verdict.

        Re-reviewing is allowed: the latest review overwrites reviewer, time,
        notes and outcome.
        """
        image_id = (await self.get_analysis(analysis_id)).image_id

        async with self._locks.hold(image_id):
            # re-read under the lock; the pair may have been deleted meanwhile
            analysis = await self.get_analysis(analysis_id)
            analysis = analysis.model_copy(update={
                "reviewer_id": request.reviewer_id,
                "reviewer_name": request.reviewer_name,
                "reviewed_at": self._clock(),
                "reviewer_notes": request.notes,
                "status": AnalysisStatus(request.outcome.value),
            })
            await self._store.put(ANALYSES, [analysis.model_dump(mode="json")])

        events = [review_completed_event(analysis)] if request.outcome == ReviewOutcome.REVIEWED else []
        logger.info("Analysis %s reviewed by %s: %s", analysis_id, request.reviewer_id, request.outcome.value)
        await self._dispatch(events)
        return Transition(analysis=analysis, events=events)

    async def delete_image(self, image_id: str) -> DeleteResult:
        """Remove an image and its analysis. Deleting a missing image is a no-op."""
        async with self._locks.hold(image_id):
            record = await self._store.find(IMAGES, image_id)
            if record is None:
                return DeleteResult(image_id=image_id, deleted=False)

            image = ImageRecord.model_validate(record)
            analysis_ids = {a.id for a in await self._analyses() if a.image_id == image_id}
            if image.analysis_id:
                analysis_ids.add(image.analysis_id)

            changes = ChangeSet().delete(IMAGES, image_id)
            for analysis_id in sorted(analysis_ids):
                changes.delete(ANALYSES, analysis_id)
            await self._store.apply(changes)

        logger.info("Image %s deleted (analyses: %s)", image_id, sorted(analysis_ids))
        return DeleteResult(image_id=image_id, deleted=True, analysis_ids=sorted(analysis_ids))

    async def _dispatch(self, events: list[NotificationEvent]) -> None:
        if self._dispatcher is None:
            return
        for event in events:
            try:
                await self._dispatcher.emit(event)
            except Exception:
                logger.exception("Dispatching %s for %s failed", event.kind.value, event.related_id)

    # -- queries -------------------------------------------------------

    async def list_pending_reviews(self) -> list[AnalysisRecord]:
        """Pending analyses, high tier first, newest first within a tier."""
        pending = [a for a in await self._analyses() if a.status == AnalysisStatus.PENDING_REVIEW]
        pending.sort(key=lambda a: a.created_at, reverse=True)
        pending.sort(key=lambda a: a.risk_tier != RiskTier.HIGH)
        return pending

    async def list_user_images(self, user_id: str) -> list[ImageRecord]:
        images = [
            ImageRecord.model_validate(r)
            for r in await self._store.get(IMAGES)
            if r["user_id"] == user_id
        ]
        return sorted(images, key=lambda i: i.uploaded_at, reverse=True)

    async def list_user_analyses(self, user_id: str) -> list[AnalysisRecord]:
        analyses = [a for a in await self._analyses() if a.user_id == user_id]
        return sorted(analyses, key=lambda a: a.created_at, reverse=True)

    async def history_for_user(self, user_id: str) -> list[TrendPoint]:
        analyses = sorted(
            (a for a in await self._analyses() if a.user_id == user_id),
            key=lambda a: a.created_at,
        )
        return [
            TrendPoint(risk_score=a.risk_score, finding_count=len(a.findings), recorded_at=a.created_at)
            for a in analyses
        ]
