"""
report_card.py — Report card (boletim) and class gradebook summaries.

Both surfaces resolve enrollment -> classroom -> grade -> rule through ids and
delegate every grade to ``calculator.calculate``. A subject whose grade has no
rule or no assessment types is reported as a configuration error while the
other subjects still compute.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from evaluation.assessment_types import applicable_types
from evaluation.calculator import SubjectResult, sanitize, calculate
from evaluation.errors import ConfigurationError
from evaluation.models import REPLACE_IF_HIGHER, AssessmentType, Classroom, EvaluationRule, Grade, Period
from evaluation.repository import AssessmentRepository, Directory
from evaluation.rules import NotConfigured, resolve
from evaluation.status import APPROVED, DEPENDENCY, FAILED, IN_PROGRESS

logger = logging.getLogger(__name__)

# Worst status decides the overall result
STATUS_SEVERITY = {APPROVED: 0, DEPENDENCY: 1, FAILED: 2}


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _classroom_context(
    classroom_id: str,
    directory: Directory,
    default_strategy: str,
) -> Tuple[Classroom, Optional[Grade], Union[EvaluationRule, NotConfigured], List[AssessmentType], List[Period]]:
    classroom = directory.get_classroom(classroom_id)
    if classroom is None:
        raise LookupError(f"Classroom '{classroom_id}' not found.")
    grade = directory.get_grade(classroom.grade_id)
    course_id = grade.course_id if grade else None
    rule = resolve(course_id, classroom.grade_id, directory, default_strategy)
    types = applicable_types(course_id, classroom.grade_id, directory.assessment_types())
    periods = directory.periods(classroom.academic_year_id)
    return classroom, grade, rule, types, periods


def _configuration_error(
    rule: Union[EvaluationRule, NotConfigured],
    types: List[AssessmentType],
    grade_id: str,
    subject_id: str,
) -> Optional[ConfigurationError]:
    if not rule:
        return rule.to_error(subject_id)
    if not types:
        logger.warning(" NO_APPLICABLE_TYPES grade=%s subject=%s", grade_id, subject_id)
        return ConfigurationError(
            f"No assessment types apply to grade {grade_id}.",
            code="no_applicable_types",
            grade_id=grade_id,
            subject_id=subject_id,
        )
    return None


def _subject_name(directory: Directory, subject_id: str) -> str:
    subject = directory.get_subject(subject_id)
    return subject.name if subject and subject.name else subject_id


# ── Report card ─────────────────────────────────────────────────────

def build_report_card(
    student_id: str,
    classroom_id: str,
    directory: Directory,
    repository: AssessmentRepository,
    default_strategy: str = REPLACE_IF_HIGHER,
) -> Dict[str, Any]:
    """Every subject of the student's grade, in the grade's subject order."""
    student_id = str(student_id)
    classroom, grade, rule, types, periods = _classroom_context(str(classroom_id), directory, default_strategy)
    assessments = [a for a in repository.for_student(student_id) if a.classroom_id == classroom.id]

    subjects: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for subject_id in (grade.subject_ids if grade else ()):
        problem = _configuration_error(rule, types, classroom.grade_id, subject_id)
        if problem is not None:
            errors.append({"subject_id": subject_id, "subject": _subject_name(directory, subject_id), **problem.to_dict()})
            continue
        result = calculate(
            [a for a in assessments if a.subject_id == subject_id],
            rule,
            periods,
            types,
            subject=_subject_name(directory, subject_id),
            default_strategy=default_strategy,
            subject_id=subject_id,
        )
        subjects.append(result.to_dict())

    if grade is None and not rule:
        errors.append(rule.to_error().to_dict())

    statuses = [s["status"] for s in subjects]
    if errors or not subjects or IN_PROGRESS in statuses:
        overall = IN_PROGRESS
    elif all(s == APPROVED for s in statuses):
        overall = APPROVED
    else:
        overall = max(statuses, key=lambda s: STATUS_SEVERITY.get(s, 0))

    return sanitize({
        "student_id": student_id,
        "classroom_id": classroom.id,
        "grade_id": classroom.grade_id,
        "periods": [{"id": p.id, "name": p.name} for p in periods],
        "subjects": subjects,
        "errors": errors,
        "overall_status": overall,
    })


# ── Class gradebook summary ─────────────────────────────────────────

def class_subject_results(
    classroom_id: str,
    subject_id: str,
    directory: Directory,
    repository: AssessmentRepository,
    default_strategy: str = REPLACE_IF_HIGHER,
) -> Tuple[List[Period], Dict[str, SubjectResult], Optional[ConfigurationError]]:
    classroom, _, rule, types, periods = _classroom_context(str(classroom_id), directory, default_strategy)
    problem = _configuration_error(rule, types, classroom.grade_id, str(subject_id))
    if problem is not None:
        return periods, {}, problem

    name = _subject_name(directory, str(subject_id))
    by_student: Dict[str, list] = {}
    for period in periods:
        for a in repository.for_class(classroom.id, str(subject_id), period.id):
            by_student.setdefault(a.student_id, []).append(a)

    results = {
        e.student_id: calculate(
            by_student.get(e.student_id, []), rule, periods, types,
            subject=name, default_strategy=default_strategy, subject_id=str(subject_id),
        )
        for e in directory.enrollments(classroom.id)
    }
    return periods, results, None


def class_subject_summary(
    classroom_id: str,
    subject_id: str,
    directory: Directory,
    repository: AssessmentRepository,
    default_strategy: str = REPLACE_IF_HIGHER,
) -> Dict[str, Any]:
    """Class-level view of one subject: per-student results plus class statistics."""
    periods, results, problem = class_subject_results(
        classroom_id, subject_id, directory, repository, default_strategy
    )
    if problem is not None:
        return {"classroom_id": str(classroom_id), "subject_id": str(subject_id), "students": [],
                "summary": {"total": 0}, "error": problem.to_dict()}

    rows = []
    for student_id, result in sorted(results.items()):
        row = {
            "student_id": student_id,
            "final": result.final,
            "final_display": result.final_display,
            "status": result.status,
            "passing": result.passing,
            "formula": result.formula,
        }
        for period, grade in zip(periods, result.period_grades):
            row[f"period_{period.id}"] = grade
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        return {"classroom_id": str(classroom_id), "subject_id": str(subject_id), "students": [],
                "summary": {"total": 0}}

    finals = pd.to_numeric(df["final"], errors="coerce").dropna()
    period_means = {}
    for period in periods:
        col = pd.to_numeric(df[f"period_{period.id}"], errors="coerce").dropna()
        period_means[period.id] = _safe_float(col.mean()) if len(col) else None

    pass_count = int(df["passing"].sum())
    summary = {
        "total": len(df),
        "graded": int(len(finals)),
        "class_mean": _safe_float(finals.mean()) if len(finals) else None,
        "class_median": _safe_float(finals.median()) if len(finals) else None,
        "pass_count": pass_count,
        "fail_count": int(len(df) - pass_count),
        "pass_rate": _safe_float(pass_count / len(df) * 100),
        "status_counts": {str(k): int(v) for k, v in df["status"].value_counts().sort_index().items()},
        "period_means": period_means,
    }

    students = []
    for row in df.to_dict(orient="records"):
        students.append({
            "student_id": row["student_id"],
            "period_grades": [row[f"period_{p.id}"] for p in periods],
            "final": row["final"],
            "final_display": row["final_display"],
            "status": row["status"],
            "passing": bool(row["passing"]),
            "formula": row["formula"],
        })

    return sanitize({
        "classroom_id": str(classroom_id),
        "subject_id": str(subject_id),
        "periods": [{"id": p.id, "name": p.name} for p in periods],
        "students": students,
        "summary": summary,
    })
