"""
Gradebook routes — validated entry of assessment values.
"""

from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException

from evaluation.assessment_types import applicable_types
from evaluation.errors import ValidationError
from evaluation.gradebook import save_entry
from evaluation.models import Assessment
from evaluation.repository import InMemoryAssessmentRepository, InMemoryDirectory
from evaluation.rules import resolve
from evaluation.settings import Settings
from routes.dependencies import get_directory, get_repository, get_settings

router = APIRouter()


@router.post("/entries")
async def save_gradebook_entry(
    payload: dict,
    directory: InMemoryDirectory = Depends(get_directory),
    repository: InMemoryAssessmentRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Create or update one assessment entry.
    Expects: { "student_id", "classroom_id", "subject_id", "period_id",
               "assessment_type_id", "value", "category"?, "related_assessment_id"? }
    """
    if not payload:
        raise HTTPException(400, "No data provided.")
    entry = Assessment.from_dict(payload)

    classroom = directory.get_classroom(entry.classroom_id) if entry.classroom_id else None
    if classroom is None:
        raise HTTPException(404, f"Classroom '{entry.classroom_id}' not found.")
    grade = directory.get_grade(classroom.grade_id)
    course_id = grade.course_id if grade else None

    rule = resolve(course_id, classroom.grade_id, directory, settings.default_recovery_strategy)
    if not rule:
        raise HTTPException(409, rule.to_error(entry.subject_id).to_dict())
    types = applicable_types(course_id, classroom.grade_id, directory.assessment_types())

    entry = replace(
        entry,
        school_id=entry.school_id or classroom.school_id,
        academic_year_id=entry.academic_year_id or classroom.academic_year_id,
    )
    try:
        stored = save_entry(repository, entry, rule, types)
    except ValidationError as e:
        raise HTTPException(422, e.to_dict())
    return stored.to_dict()


@router.get("/classes/{classroom_id}/subjects/{subject_id}/periods/{period_id}")
async def class_entries(
    classroom_id: str,
    subject_id: str,
    period_id: str,
    repository: InMemoryAssessmentRepository = Depends(get_repository),
):
    """Stored entries for a classroom, subject and period."""
    entries = repository.for_class(classroom_id, subject_id, period_id)
    return {"entries": [a.to_dict() for a in entries], "count": len(entries)}
