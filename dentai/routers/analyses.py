from fastapi import APIRouter, Depends

from dentai.dependencies import get_current_doctor, get_current_user, get_workflow
from dentai.schemas.analysis import ReviewRequest, ReviewSubmission
from dentai.schemas.user import CurrentUser, UserRole
from dentai.services import trend_analyzer
from dentai.services.risk_scorer import build_alert, score
from dentai.services.workflow import ReviewWorkflow
from dentai.utils.exceptions import NotFoundError
from dentai.utils.response import success_response

router = APIRouter(prefix="/analyses", tags=["analyses"])


@router.get("")
async def list_analyses(
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    return success_response(data=await workflow.list_user_analyses(user.id))


@router.get("/pending")
async def list_pending_reviews(
    doctor: CurrentUser = Depends(get_current_doctor),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    return success_response(data=await workflow.list_pending_reviews())


@router.get("/trend")
async def get_trend(
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    history = await workflow.history_for_user(user.id)
    return success_response(data={
        "trend": trend_analyzer.analyze_trend(history),
        "chart": trend_analyzer.chart_series(history),
    })


@router.get("/{analysis_id}")
async def get_analysis(
    analysis_id: str,
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    analysis = await workflow.get_analysis(analysis_id)
    if analysis.user_id != user.id and user.role != UserRole.DOCTOR:
        raise NotFoundError("Analysis", analysis_id)

    risk = score(analysis.findings)
    return success_response(data={
        "analysis": analysis,
        "risk": risk,
        "alert": build_alert(risk),
    })


@router.post("/{analysis_id}/review")
async def review_analysis(
    analysis_id: str,
    payload: ReviewSubmission,
    doctor: CurrentUser = Depends(get_current_doctor),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    transition = await workflow.apply_review(
        analysis_id,
        ReviewRequest(
            reviewer_id=doctor.id,
            reviewer_name=doctor.name,
            outcome=payload.outcome,
            notes=payload.notes,
        ),
    )
    return success_response(data={
        "analysis": transition.analysis,
        "events": transition.events,
    })
