"""
calculator.py — Grade Calculator.

Single source of truth for subject grades. Every surface (report card,
individual performance report, class gradebook, transfers) calls
``calculate`` instead of averaging on its own.

Per subject:
1. Period grades in academic-year order (Period Aggregator)
2. Recovery adjustment per period when the rule permits it (Recovery Resolver)
3. Final grade over the periods that have data; pending periods are kept in
   the output but never count as 0
4. Status on the unrounded final; rounding happens only for display

The function is pure: inputs are sorted internally, so shuffling them does not
change the result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from evaluation.aggregator import GRADED, NO_DATA, aggregate_period
from evaluation.assessment_types import index_types
from evaluation.models import (
    REPLACE_IF_HIGHER,
    SIMPLE,
    SUM,
    WEIGHTED,
    Assessment,
    AssessmentType,
    EvaluationRule,
    Period,
    sort_periods,
)
from evaluation.recovery import STRATEGY_LABELS, resolve_period_recovery
from evaluation.rules import effective_strategy
from evaluation.status import determine_status, format_grade, is_passing

logger = logging.getLogger(__name__)


MODE_LABELS = {
    SIMPLE: "Média simples",
    WEIGHTED: "Média ponderada",
    SUM: "Soma de notas",
}
DESCRIPTIVE_FORMULA = "Avaliação descritiva (sem nota numérica)"


# ── Results ─────────────────────────────────────────────────────────

@dataclass
class PeriodResult:
    period_id: str
    period_name: str
    status: str
    regular_grade: Optional[float] = None
    recovery_value: Optional[float] = None
    grade: Optional[float] = None
    recovery_applied: bool = False
    logs: List[str] = field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == NO_DATA

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "period_name": self.period_name,
            "status": self.status,
            "regular_grade": self.regular_grade,
            "recovery_value": self.recovery_value,
            "grade": self.grade,
            "display": format_grade(self.grade),
            "recovery_applied": self.recovery_applied,
            "logs": list(self.logs),
        }


@dataclass
class SubjectResult:
    subject: str
    period_grades: List[Optional[float]]
    final: Optional[float]
    status: str
    passing: bool
    formula: str
    subject_id: Optional[str] = None
    rule_id: Optional[str] = None
    rule_name: str = ""
    recovery_strategy: Optional[str] = None
    periods: List[PeriodResult] = field(default_factory=list)
    issues: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def final_display(self) -> str:
        return format_grade(self.final)

    @property
    def period_grades_display(self) -> List[str]:
        return [format_grade(g) for g in self.period_grades]

    @property
    def pending_periods(self) -> int:
        return sum(1 for p in self.periods if p.is_pending)

    def to_dict(self) -> Dict[str, Any]:
        return sanitize({
            "subject": self.subject,
            "subject_id": self.subject_id,
            "period_grades": list(self.period_grades),
            "period_grades_display": self.period_grades_display,
            "final": self.final,
            "final_display": self.final_display,
            "status": self.status,
            "passing": self.passing,
            "formula": self.formula,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "recovery_strategy": self.recovery_strategy,
            "pending_periods": self.pending_periods,
            "periods": [p.to_dict() for p in self.periods],
            "issues": list(self.issues),
        })


# ── Helpers ─────────────────────────────────────────────────────────

def sanitize(obj):
    """Recursively coerce numpy scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _coerce(items: Optional[Iterable[Any]], cls) -> List[Any]:
    out = []
    for position, item in enumerate(items or []):
        if isinstance(item, cls):
            out.append(item)
        elif cls is Period:
            out.append(Period.from_dict(item, position))
        else:
            out.append(cls.from_dict(item))
    return out


def _final_grade(grades: List[Optional[float]], rule: EvaluationRule) -> Optional[float]:
    """Combine the period grades that have data; None when every period is pending."""
    present = [(i, g) for i, g in enumerate(grades) if g is not None]
    if not present:
        return None
    values = [g for _, g in present]

    if rule.calculation_mode == SUM:
        return float(sum(values))

    if rule.calculation_mode == WEIGHTED and rule.period_weights:
        weights = [
            rule.period_weights[i] if i < len(rule.period_weights) else 1.0
            for i, _ in present
        ]
        if sum(weights) > 0:
            return float(np.average(values, weights=weights))

    return float(np.mean(values))


def describe_formula(rule: EvaluationRule, strategy: str, recovery_used: bool, pending: int) -> str:
    """Short audit text of the path taken, e.g. 'Média simples com recuperação: substituição se maior'."""
    if rule.is_descriptive:
        return DESCRIPTIVE_FORMULA
    text = MODE_LABELS.get(rule.calculation_mode, MODE_LABELS[SIMPLE])
    if recovery_used:
        text += f" com recuperação: {STRATEGY_LABELS.get(strategy, strategy)}"
    if pending:
        text += f" ({pending} período(s) pendente(s) fora da média)"
    return text


# ── Calculation ─────────────────────────────────────────────────────

def calculate(
    assessments: Iterable[Union[Assessment, Dict[str, Any]]],
    rule: Union[EvaluationRule, Dict[str, Any]],
    periods: Iterable[Union[Period, Dict[str, Any]]],
    assessment_types: Iterable[Union[AssessmentType, Dict[str, Any]]],
    subject: Optional[str] = None,
    default_strategy: str = REPLACE_IF_HIGHER,
    subject_id: Optional[str] = None,
) -> SubjectResult:
    """
    Compute one subject for one student.

    ``assessments`` should hold that student's entries for the subject; the
    caller supplies ``periods`` in any order and they are sorted by their
    academic-year sequence. ``subject`` is the display name; ``subject_id``
    defaults to the single subject found in ``assessments``.
    """
    if not isinstance(rule, EvaluationRule):
        rule = EvaluationRule.from_dict(rule)
    ordered_periods = sort_periods(_coerce(periods, Period))
    period_rank = {p.id: i for i, p in enumerate(ordered_periods)}
    items = sorted(
        _coerce(assessments, Assessment),
        key=lambda a: (
            period_rank.get(a.period_id, len(period_rank)),
            a.period_id,
            a.assessment_type_id,
            a.category,
            a.id,
        ),
    )
    types_by_id = index_types(_coerce(assessment_types, AssessmentType))
    strategy = effective_strategy(rule, default_strategy)

    subject_ids = sorted({a.subject_id for a in items if a.subject_id})
    if len(subject_ids) > 1:
        logger.warning(" MIXED_SUBJECTS subjects=%s", ",".join(subject_ids))
    if subject_id is None and len(subject_ids) == 1:
        subject_id = subject_ids[0]
    elif subject_id is not None:
        subject_id = str(subject_id)

    stray = sorted({a.period_id for a in items if a.period_id not in period_rank})
    if stray:
        logger.debug(" UNKNOWN_PERIODS periods=%s", ",".join(stray))

    result = SubjectResult(
        subject=subject or subject_id or "",
        period_grades=[],
        final=None,
        status="",
        passing=False,
        formula="",
        subject_id=subject_id,
        rule_id=rule.id or None,
        rule_name=rule.name,
        recovery_strategy=strategy if rule.allow_recovery else None,
    )

    if rule.is_descriptive:
        for p in ordered_periods:
            result.periods.append(PeriodResult(
                period_id=p.id,
                period_name=p.name,
                status=NO_DATA,
                logs=["Avaliação descritiva: sem nota numérica."],
            ))
        result.period_grades = [None] * len(ordered_periods)
        result.status = determine_status(None, rule)
        result.formula = DESCRIPTIVE_FORMULA
        return result

    recovery_used = False
    for p in ordered_periods:
        in_period = [a for a in items if a.period_id == p.id]
        agg = aggregate_period(
            p.id, in_period, rule.calculation_mode, types_by_id, drop_lowest=rule.allowed_exclusions
        )
        outcome = resolve_period_recovery(
            p.id, agg.grade, items, strategy,
            allow_recovery=rule.allow_recovery, types_by_id=types_by_id,
        )
        recovery_used = recovery_used or outcome.applied

        result.periods.append(PeriodResult(
            period_id=p.id,
            period_name=p.name,
            status=GRADED if outcome.grade is not None else NO_DATA,
            regular_grade=agg.grade,
            recovery_value=outcome.recovery_value,
            grade=outcome.grade,
            recovery_applied=outcome.applied,
            logs=agg.logs + outcome.logs,
        ))
        result.issues.extend(i.to_dict() for i in agg.issues + outcome.issues)

    result.period_grades = [p.grade for p in result.periods]
    result.final = _final_grade(result.period_grades, rule)
    result.passing = is_passing(result.final, rule)
    result.status = determine_status(result.final, rule)
    result.formula = describe_formula(rule, strategy, recovery_used, result.pending_periods)
    return result
