"""
rules.py — Evaluation Rule Resolver.

Finds the evaluation rule attached to a course/grade pair. Minimum grade,
passing grade and calculation mode always come from the grade-level rule;
only the recovery strategy may fall back to the institution default.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from evaluation.errors import ConfigurationError
from evaluation.models import RECOVERY_STRATEGIES, REPLACE_IF_HIGHER, EvaluationRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotConfigured:
    """Falsy signal returned when no rule can be resolved."""

    course_id: Optional[str]
    grade_id: Optional[str]
    reason: str

    def __bool__(self) -> bool:
        return False

    def to_error(self, subject_id: Optional[str] = None) -> ConfigurationError:
        return ConfigurationError(
            f"No evaluation rule configured for grade {self.grade_id} ({self.reason}).",
            code=self.reason,
            course_id=self.course_id,
            grade_id=self.grade_id,
            subject_id=subject_id,
        )


def effective_strategy(rule: EvaluationRule, default_strategy: str = REPLACE_IF_HIGHER) -> str:
    """Recovery strategy of the rule, or the institution default."""
    if rule.recovery_strategy in RECOVERY_STRATEGIES:
        return rule.recovery_strategy
    if default_strategy in RECOVERY_STRATEGIES:
        return default_strategy
    return REPLACE_IF_HIGHER


def resolve(
    course_id: Any,
    grade_id: Any,
    directory,
    default_strategy: str = REPLACE_IF_HIGHER,
) -> Union[EvaluationRule, NotConfigured]:
    """
    Resolve the rule for (course, grade).

    ``directory`` is any object exposing ``get_grade(grade_id)`` and
    ``get_rule(rule_id)``. Returns ``NotConfigured`` instead of raising so a
    report can flag one subject and keep computing the others.
    """
    course_id = None if course_id is None else str(course_id)
    grade_id = None if grade_id is None else str(grade_id)

    def _missing(reason: str) -> NotConfigured:
        logger.warning(" RULE_NOT_CONFIGURED course=%s grade=%s reason=%s", course_id, grade_id, reason)
        return NotConfigured(course_id, grade_id, reason)

    grade = directory.get_grade(grade_id) if grade_id else None
    if grade is None:
        return _missing("grade_not_found")
    if course_id is not None and grade.course_id != course_id:
        return _missing("grade_not_in_course")
    if not grade.evaluation_rule_id:
        return _missing("no_rule_for_grade")

    rule = directory.get_rule(grade.evaluation_rule_id)
    if rule is None:
        return _missing("rule_not_found")

    strategy = effective_strategy(rule, default_strategy)
    if strategy != rule.recovery_strategy:
        rule = replace(rule, recovery_strategy=strategy)
    return rule
