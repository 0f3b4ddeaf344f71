"""
assessment_types.py — Assessment Type Catalog lookups.
"""

from typing import Any, Dict, Iterable, List, Optional

from evaluation.models import AssessmentType


def applicable_types(
    course_id: Any,
    grade_id: Any,
    catalog: Iterable[AssessmentType],
) -> List[AssessmentType]:
    """
    Types usable in a course/grade.

    A type applies when its grade set is empty or contains ``grade_id`` and it
    is not scoped to a different course. Inactive types are left out.
    Ordered by display order, then name.
    """
    course = None if course_id is None else str(course_id)
    selected = [
        t for t in catalog
        if t.is_active
        and t.applies_to(grade_id)
        and (t.course_id is None or course is None or t.course_id == course)
    ]
    return sorted(selected, key=lambda t: (t.display_order, t.name, t.id))


def index_types(types: Iterable[AssessmentType]) -> Dict[str, AssessmentType]:
    return {t.id: t for t in types}


def type_name(types_by_id: Dict[str, AssessmentType], type_id: str) -> str:
    found: Optional[AssessmentType] = types_by_id.get(type_id)
    return found.name if found and found.name else "Desconhecido"
