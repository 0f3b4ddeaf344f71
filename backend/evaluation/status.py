"""
status.py — Pass/fail status bands and display rounding.

Status is always decided on the unrounded final grade; rounding here is for
display only (one decimal place, half-up, the way report cards print it).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from evaluation.models import EvaluationRule


APPROVED = "Aprovado"
DEPENDENCY = "Dependência"
FAILED = "Reprovado"
IN_PROGRESS = "Cursando"

NO_DATA_LABEL = "-"


def round_half_up(value: Optional[float], places: int = 1) -> Optional[Decimal]:
    """Round like the printed report card: 5.75 -> 5.8, 5.65 -> 5.7."""
    if value is None:
        return None
    try:
        exponent = Decimal(1).scaleb(-places)
        # repr() gives the shortest round-tripping text, so 5.65 stays 5.65
        return Decimal(repr(float(value))).quantize(exponent, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return None


def format_grade(value: Optional[float], places: int = 1) -> str:
    """Display text for a grade; no-data periods render as '-'."""
    rounded = round_half_up(value, places)
    return NO_DATA_LABEL if rounded is None else str(rounded)


def is_passing(final: Optional[float], rule: EvaluationRule) -> bool:
    return final is not None and final >= rule.passing_grade


def determine_status(final: Optional[float], rule: EvaluationRule) -> str:
    """
    Status bands, high to low:
      final >= passing_grade          -> Aprovado
      final >= min_dependency_grade   -> Dependência (only when the rule sets it)
      otherwise                       -> Reprovado
    No final grade yet -> Cursando.
    """
    if final is None or rule.is_descriptive:
        return IN_PROGRESS
    if is_passing(final, rule):
        return APPROVED
    if rule.min_dependency_grade is not None and final >= rule.min_dependency_grade:
        return DEPENDENCY
    return FAILED
