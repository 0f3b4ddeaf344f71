"""
recovery.py — Recovery (recuperação) Resolver.

A recovery assessment counts only when its ``related_assessment_id`` resolves
to a regular assessment of the same student, subject, period and type.
Anything else is an orphan: it is logged for administrative review and the
regular period grade stands.

Strategies:
- replace_if_higher: max(period grade, recovery)
- always_replace:    recovery
- average:           (period grade + recovery) / 2
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from evaluation.errors import DataInconsistencyError
from evaluation.models import (
    ALWAYS_REPLACE,
    AVERAGE,
    REPLACE_IF_HIGHER,
    Assessment,
    AssessmentType,
)

logger = logging.getLogger(__name__)


STRATEGY_LABELS = {
    REPLACE_IF_HIGHER: "substituição se maior",
    ALWAYS_REPLACE: "substituição sempre",
    AVERAGE: "média entre nota e recuperação",
}


@dataclass
class RecoveryOutcome:
    grade: Optional[float]
    recovery_value: Optional[float] = None
    applied: bool = False
    recovery_ids: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)
    issues: List[DataInconsistencyError] = field(default_factory=list)


# ── Linking ─────────────────────────────────────────────────────────

def _same_slot(recovery: Assessment, regular: Assessment) -> bool:
    if (recovery.student_id, recovery.subject_id, recovery.period_id, recovery.assessment_type_id) != (
        regular.student_id, regular.subject_id, regular.period_id, regular.assessment_type_id
    ):
        return False
    if recovery.classroom_id and regular.classroom_id:
        return recovery.classroom_id == regular.classroom_id
    return True


def _issue(event: str, code: str, message: str, recovery: Assessment, **details) -> DataInconsistencyError:
    logger.warning(
        " %s recovery=%s related=%s student=%s subject=%s period=%s",
        event,
        recovery.id,
        recovery.related_assessment_id,
        recovery.student_id,
        recovery.subject_id,
        recovery.period_id,
    )
    return DataInconsistencyError(
        message,
        code=code,
        recovery_id=recovery.id,
        related_assessment_id=recovery.related_assessment_id,
        student_id=recovery.student_id,
        subject_id=recovery.subject_id,
        period_id=recovery.period_id,
        **details,
    )


def link_recoveries(
    period_id: str,
    assessments: Iterable[Assessment],
    types_by_id: Optional[Dict[str, AssessmentType]] = None,
) -> Tuple[List[Tuple[Assessment, Assessment]], List[DataInconsistencyError]]:
    """
    Pair each recovery of ``period_id`` with the regular assessment it remediates.

    Returns (links, issues); links are (recovery, regular) pairs ordered by
    recovery id. Recoveries of a type excluded from the average are refused.
    """
    items = list(assessments)
    regular_by_id: Dict[str, Assessment] = {a.id: a for a in items if a.is_regular}
    recoveries = sorted(
        (a for a in items if a.is_recovery and a.period_id == period_id),
        key=lambda a: a.id,
    )

    links: List[Tuple[Assessment, Assessment]] = []
    issues: List[DataInconsistencyError] = []
    for rec in recoveries:
        target = regular_by_id.get(rec.related_assessment_id) if rec.related_assessment_id else None
        if target is None:
            issues.append(_issue(
                "RECOVERY_ORPHAN", "recovery_orphan",
                "Recovery assessment is not linked to any existing regular assessment.", rec,
            ))
            continue
        if not _same_slot(rec, target):
            issues.append(_issue(
                "RECOVERY_MISMATCH", "recovery_mismatch",
                "Recovery assessment points to a regular assessment of another subject, period or type.",
                rec,
                target_subject_id=target.subject_id,
                target_period_id=target.period_id,
                target_type_id=target.assessment_type_id,
            ))
            continue
        target_type = (types_by_id or {}).get(target.assessment_type_id)
        if target_type is not None and target_type.exclude_from_average:
            issues.append(_issue(
                "RECOVERY_EXCLUDED_TYPE", "recovery_excluded_type",
                "Recovery assessment targets a type that does not count toward the average.",
                rec,
                assessment_type_id=target.assessment_type_id,
            ))
            continue
        if rec.score is None:
            issues.append(_issue(
                "RECOVERY_UNPARSEABLE", "recovery_unparseable",
                "Recovery value is not numeric.", rec, value=str(rec.value),
            ))
            continue
        links.append((rec, target))
    return links, issues


# ── Strategy ────────────────────────────────────────────────────────

def apply_strategy(regular_grade: float, recovery_value: float, strategy: str) -> float:
    if strategy == ALWAYS_REPLACE:
        return recovery_value
    if strategy == AVERAGE:
        return (regular_grade + recovery_value) / 2
    return max(regular_grade, recovery_value)


def resolve_period_recovery(
    period_id: str,
    regular_grade: Optional[float],
    assessments: Iterable[Assessment],
    strategy: str,
    allow_recovery: bool = True,
    types_by_id: Optional[Dict[str, AssessmentType]] = None,
) -> RecoveryOutcome:
    """Adjusted period grade after applying the linked recoveries of the period."""
    links, issues = link_recoveries(period_id, assessments, types_by_id)
    outcome = RecoveryOutcome(grade=regular_grade, issues=issues)
    for issue in issues:
        outcome.logs.append(f"Recuperação {issue.details.get('recovery_id')} desconsiderada ({issue.code}).")

    if not links:
        return outcome

    if not allow_recovery:
        logger.info(" RECOVERY_NOT_PERMITTED period=%s count=%s", period_id, len(links))
        outcome.logs.append("Regra não permite recuperação; notas de recuperação desconsideradas.")
        return outcome

    if regular_grade is None:
        outcome.logs.append("Período sem nota regular válida; recuperação não aplicada.")
        return outcome

    recovery_value = max(rec.score for rec, _ in links)
    adjusted = apply_strategy(regular_grade, recovery_value, strategy)

    outcome.recovery_value = recovery_value
    outcome.recovery_ids = [rec.id for rec, _ in links]
    outcome.applied = True
    outcome.grade = adjusted

    if strategy == ALWAYS_REPLACE:
        outcome.logs.append(
            f"Recuperação (sempre substituir): {recovery_value:g} substitui a média {regular_grade:.2f}."
        )
    elif strategy == AVERAGE:
        outcome.logs.append(
            f"Recuperação (média): ({regular_grade:.2f} + {recovery_value:g}) / 2 = {adjusted:.2f}."
        )
    elif recovery_value > regular_grade:
        outcome.logs.append(
            f"Recuperação (maior nota): {recovery_value:g} supera a média {regular_grade:.2f}; nota substituída."
        )
    else:
        outcome.logs.append(
            f"Recuperação (maior nota): {recovery_value:g} não superou a média {regular_grade:.2f}; mantida."
        )
    return outcome
