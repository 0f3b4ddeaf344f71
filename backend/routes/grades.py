"""
Grades routes — subject calculation, report cards and class summaries.
"""

from fastapi import APIRouter, Depends, HTTPException

from evaluation.calculator import calculate
from evaluation.report_card import build_report_card, class_subject_summary
from evaluation.repository import InMemoryAssessmentRepository, InMemoryDirectory
from evaluation.settings import Settings
from routes.dependencies import get_directory, get_repository, get_settings

router = APIRouter()


@router.post("/calculate")
async def calculate_subject(payload: dict, settings: Settings = Depends(get_settings)):
    """
    Stateless calculation of one subject.
    Expects: { "assessments": [...], "rule": {...}, "periods": [...],
               "assessment_types": [...], "subject": "Matemática" }
    """
    rule = payload.get("rule")
    if not rule:
        raise HTTPException(400, "No evaluation rule provided.")
    periods = payload.get("periods")
    if not periods:
        raise HTTPException(400, "No periods provided.")

    result = calculate(
        payload.get("assessments") or [],
        rule,
        periods,
        payload.get("assessment_types") or payload.get("assessmentTypes") or [],
        subject=payload.get("subject"),
        subject_id=payload.get("subject_id") or payload.get("subjectId"),
        default_strategy=settings.default_recovery_strategy,
    )
    return result.to_dict()


@router.get("/report-card/{student_id}")
async def report_card(
    student_id: str,
    classroom_id: str,
    directory: InMemoryDirectory = Depends(get_directory),
    repository: InMemoryAssessmentRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """Report card (boletim) of a student in a classroom."""
    try:
        return build_report_card(
            student_id, classroom_id, directory, repository, settings.default_recovery_strategy
        )
    except LookupError as e:
        raise HTTPException(404, str(e))


@router.get("/classes/{classroom_id}/subjects/{subject_id}/summary")
async def class_summary(
    classroom_id: str,
    subject_id: str,
    directory: InMemoryDirectory = Depends(get_directory),
    repository: InMemoryAssessmentRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """In-class gradebook summary for one subject."""
    try:
        return class_subject_summary(
            classroom_id, subject_id, directory, repository, settings.default_recovery_strategy
        )
    except LookupError as e:
        raise HTTPException(404, str(e))
