"""
aggregator.py — Period Aggregator.

Reduces one student's regular assessments for one subject and one period to a
single period grade:
- weighted mode: sum(value * type weight) / sum(type weight) over types present
- otherwise: arithmetic mean of the values present
A period without usable regular assessments is ``no-data``, never 0.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np

from evaluation.assessment_types import type_name
from evaluation.errors import DataInconsistencyError
from evaluation.models import WEIGHTED, Assessment, AssessmentType

logger = logging.getLogger(__name__)

NO_DATA = "no-data"
GRADED = "graded"


@dataclass
class PeriodAggregate:
    period_id: str
    grade: Optional[float]
    status: str
    type_values: Dict[str, float] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    issues: List[DataInconsistencyError] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.status == GRADED


def _type_weight(types_by_id: Dict[str, AssessmentType], type_id: str) -> float:
    found = types_by_id.get(type_id)
    if found is None or found.weight is None or found.weight < 0:
        return 1.0
    return float(found.weight)


def aggregate_period(
    period_id: str,
    assessments: Iterable[Assessment],
    calculation_mode: str,
    types_by_id: Dict[str, AssessmentType],
    drop_lowest: bool = False,
) -> PeriodAggregate:
    """
    Period grade from the regular assessments of ``period_id``.

    ``drop_lowest`` removes one lowest value from a simple mean of two or more.
    """
    regulars = sorted(
        (a for a in assessments if a.is_regular and a.period_id == period_id),
        key=lambda a: (a.assessment_type_id, a.id),
    )
    result = PeriodAggregate(period_id=period_id, grade=None, status=NO_DATA)

    per_type: Dict[str, List[float]] = {}
    for a in regulars:
        name = type_name(types_by_id, a.assessment_type_id)
        score = a.score
        if score is None:
            result.logs.append(f"Nota '{a.value}' ({name}) não numérica; desconsiderada.")
            continue
        found = types_by_id.get(a.assessment_type_id)
        if found is not None and found.exclude_from_average:
            result.logs.append(f"Nota {score:g} ignorada (Tipo: {name} não contabiliza na média).")
            continue
        per_type.setdefault(a.assessment_type_id, []).append(score)

    for type_id, values in per_type.items():
        if len(values) > 1:
            issue = DataInconsistencyError(
                "More than one regular assessment for the same period and type.",
                code="duplicate_regular",
                period_id=period_id,
                assessment_type_id=type_id,
                count=len(values),
            )
            logger.warning(
                " DUPLICATE_REGULAR period=%s type=%s count=%s", period_id, type_id, len(values)
            )
            result.issues.append(issue)
        result.type_values[type_id] = float(np.mean(values))

    if not result.type_values:
        result.logs.append("Nenhuma avaliação regular válida; período pendente.")
        return result

    type_ids = sorted(result.type_values)
    values = [result.type_values[t] for t in type_ids]

    if calculation_mode == WEIGHTED:
        weights = [_type_weight(types_by_id, t) for t in type_ids]
        if sum(weights) > 0:
            grade = float(np.average(values, weights=weights))
            for t, v, w in zip(type_ids, values, weights):
                result.logs.append(f"• {type_name(types_by_id, t)}: {v:.2f} (Peso {w:g})")
            result.logs.append(f"Média ponderada por tipo de avaliação = {grade:.2f}")
        else:
            grade = float(np.mean(values))
            result.logs.append(f"Pesos zerados; média aritmética = {grade:.2f}")
    else:
        if drop_lowest and len(values) > 1:
            lowest = min(values)
            values.remove(lowest)
            result.logs.append(f"Regra de Exclusão Ativa: Removendo a menor nota ({lowest:g}) do cálculo.")
        grade = float(np.mean(values))
        result.logs.append(
            f"Média aritmética: soma ({sum(values):g}) / qtd ({len(values)}) = {grade:.2f}"
        )

    result.grade = grade
    result.status = GRADED
    return result
