import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from dentai.config import settings
from dentai.database import async_session, create_tables
from dentai.dependencies import verify_api_key
from dentai.seed import seed_data
from dentai.routers.analyses import router as analyses_router
from dentai.routers.auth import router as auth_router
from dentai.routers.images import router as images_router
from dentai.routers.notifications import router as notifications_router
from dentai.services.anomaly_detector import AnomalyDetector, build_detector
from dentai.services.notifications import NotificationInbox
from dentai.services.pipeline import ImagePipeline
from dentai.services.quality_gate import QualityGate
from dentai.services.risk_scorer import RiskScorer
from dentai.services.workflow import ReviewWorkflow
from dentai.store import RecordStore, SqlRecordStore
from dentai.utils.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    store: RecordStore | None = None,
    quality_gate: QualityGate | None = None,
    detector: AnomalyDetector | None = None,
) -> FastAPI:
    """Build the API around an explicit store and detection stack."""
    uses_database = store is None
    store = store or SqlRecordStore(async_session)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level.upper())
        if uses_database:
            await create_tables()
        await seed_data(app.state.store)
        logger.info("DentAI review API started (detector=%s)", settings.detector)
        yield
        await app.state.pipeline.drain()

    app = FastAPI(
        title="DentAI Review API",
        description="Dental photo quality gate, anomaly screening and doctor review workflow",
        version=VERSION,
        lifespan=lifespan,
    )

    scorer = RiskScorer()
    inbox = NotificationInbox(store)
    workflow = ReviewWorkflow(store, dispatcher=inbox, scorer=scorer)
    app.state.store = store
    app.state.inbox = inbox
    app.state.workflow = workflow
    app.state.pipeline = ImagePipeline(
        workflow,
        quality_gate or QualityGate(),
        detector or build_detector(),
        scorer=scorer,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    _api_key_dep = [Depends(verify_api_key)]

    app.include_router(auth_router, prefix="/api/v1", dependencies=_api_key_dep)
    app.include_router(images_router, prefix="/api/v1", dependencies=_api_key_dep)
    app.include_router(analyses_router, prefix="/api/v1", dependencies=_api_key_dep)
    app.include_router(notifications_router, prefix="/api/v1", dependencies=_api_key_dep)

    @app.get("/health")
    async def health_check():
        return {"status": "success", "data": {"service": "dentai-review-api", "version": VERSION}, "message": None}

    return app


app = create_app()
