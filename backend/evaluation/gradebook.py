"""
gradebook.py — Gradebook entry validation and saving.

Values are validated here, at the point of entry, so the engine only ever
sees pre-validated numbers. Recovery entries are linked to the single regular
assessment of the same student, classroom, subject, period and type; the
upsert key guarantees there is never more than one candidate.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, Optional, Union

from evaluation.errors import ValidationError
from evaluation.models import (
    REGULAR,
    Assessment,
    AssessmentType,
    EvaluationRule,
    parse_score,
)
from evaluation.repository import AssessmentRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("student_id", "classroom_id", "subject_id", "period_id", "assessment_type_id")


def validate_entry(
    value: Any,
    rule: EvaluationRule,
    assessment_type: Optional[AssessmentType] = None,
) -> Union[float, str]:
    """Return the value to store, or raise ValidationError."""
    if rule.is_descriptive:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValidationError("Descriptive evaluation requires a text.", code="value_required")
        return text

    score = parse_score(value)
    if score is None:
        raise ValidationError(
            f"Value '{value}' is not numeric.", code="value_not_numeric", value=str(value)
        )
    if score < rule.min_grade or score > rule.max_grade:
        raise ValidationError(
            f"Value {score:g} is outside [{rule.min_grade:g}, {rule.max_grade:g}].",
            code="value_out_of_range",
            value=score,
            min_grade=rule.min_grade,
            max_grade=rule.max_grade,
        )
    if assessment_type is not None and score > assessment_type.max_score:
        raise ValidationError(
            f"Value {score:g} exceeds the maximum score of {assessment_type.name or assessment_type.id}.",
            code="value_above_type_max",
            value=score,
            max_score=assessment_type.max_score,
        )
    return score


def _resolve_recovery_link(repository: AssessmentRepository, entry: Assessment) -> str:
    regular_key = (
        entry.student_id,
        entry.classroom_id,
        entry.subject_id,
        entry.period_id,
        REGULAR,
        entry.assessment_type_id,
    )
    if entry.related_assessment_id:
        target = repository.get(entry.related_assessment_id)
        if target is None or not target.is_regular or target.key != regular_key:
            raise ValidationError(
                "Recovery must point to the regular assessment of the same student, subject, period and type.",
                code="invalid_recovery_link",
                related_assessment_id=entry.related_assessment_id,
            )
        return target.id

    target = repository.find_by_key(regular_key)
    if target is None:
        raise ValidationError(
            "There is no regular assessment to recover for this period and type.",
            code="no_regular_to_recover",
        )
    return target.id


def save_entry(
    repository: AssessmentRepository,
    entry: Union[Assessment, Dict[str, Any]],
    rule: EvaluationRule,
    assessment_types: Iterable[AssessmentType] = (),
) -> Assessment:
    """Validate one gradebook entry and upsert it. Returns the stored record."""
    if not isinstance(entry, Assessment):
        entry = Assessment.from_dict(entry)

    missing = [f for f in REQUIRED_FIELDS if not getattr(entry, f)]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}.", code="missing_field", fields=missing)

    types_by_id = {t.id: t for t in assessment_types}
    assessment_type = types_by_id.get(entry.assessment_type_id)
    if types_by_id and assessment_type is None:
        raise ValidationError(
            f"Assessment type {entry.assessment_type_id} does not apply to this grade.",
            code="unknown_assessment_type",
        )

    value = validate_entry(entry.value, rule, assessment_type)

    if entry.is_recovery:
        if not rule.allow_recovery:
            raise ValidationError("This evaluation rule does not permit recovery.", code="recovery_not_permitted")
        if assessment_type is not None and assessment_type.exclude_from_average:
            raise ValidationError(
                f"{assessment_type.name or assessment_type.id} does not count toward the average; it has no recovery.",
                code="recovery_excluded_type",
            )
        entry = replace(entry, related_assessment_id=_resolve_recovery_link(repository, entry))
    elif entry.is_regular:
        entry = replace(entry, related_assessment_id=None)
    else:
        raise ValidationError(f"Unknown category '{entry.category}'.", code="invalid_category")

    stored = repository.upsert(replace(entry, value=value))
    logger.info(
        " GRADEBOOK_SAVE id=%s student=%s subject=%s period=%s type=%s category=%s",
        stored.id,
        stored.student_id,
        stored.subject_id,
        stored.period_id,
        stored.assessment_type_id,
        stored.category,
    )
    return stored
