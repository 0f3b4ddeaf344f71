"""
models.py — Records consumed and produced by the evaluation engine.

Payloads reach us from the gradebook UI in camelCase and from the database in
snake_case, so every record offers a tolerant ``from_dict`` that accepts both.
Ids are always compared as strings.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple


REGULAR = "regular"
RECOVERY = "recovery"

CATEGORY_ALIASES = {
    "regular": REGULAR,
    "recovery": RECOVERY,
    "recuperation": RECOVERY,
    "recuperacao": RECOVERY,
    "recuperação": RECOVERY,
}

NUMERIC = "numeric"
DESCRIPTIVE = "descriptive"

SIMPLE = "simple"
WEIGHTED = "weighted"
SUM = "sum"

CALCULATION_ALIASES = {
    "simple": SIMPLE,
    "media_simples": SIMPLE,
    "weighted": WEIGHTED,
    "media_ponderada": WEIGHTED,
    "sum": SUM,
    "soma_notas": SUM,
}

REPLACE_IF_HIGHER = "replace_if_higher"
ALWAYS_REPLACE = "always_replace"
AVERAGE = "average"
RECOVERY_STRATEGIES = (REPLACE_IF_HIGHER, ALWAYS_REPLACE, AVERAGE)


# ── Helpers ─────────────────────────────────────────────────────────

def _pick(data: Dict[str, Any], aliases: List[str], default: Any = None) -> Any:
    """Return the first non-null value among the aliased keys."""
    for key in aliases:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float(value: Any, default: Optional[float]) -> Optional[float]:
    parsed = parse_score(value)
    return default if parsed is None else parsed


def _bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "sim"}
    return bool(value)


def parse_score(value: Any) -> Optional[float]:
    """
    Convert a stored score to float.

    Returns None for anything that is not a finite number (text grades,
    blanks, NaN). Accepts the decimal comma used in pt-BR entry forms.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def normalize_category(value: Any) -> str:
    if value is None or str(value).strip() == "":
        return REGULAR
    return CATEGORY_ALIASES.get(str(value).strip().lower(), str(value).strip().lower())


def normalize_calculation_mode(value: Any) -> str:
    if value is None:
        return SIMPLE
    return CALCULATION_ALIASES.get(str(value).strip().lower(), SIMPLE)


# ── Assessment ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Assessment:
    id: str
    student_id: str
    subject_id: str
    period_id: str
    assessment_type_id: str
    value: Any
    classroom_id: Optional[str] = None
    school_id: Optional[str] = None
    academic_year_id: Optional[str] = None
    category: str = REGULAR
    date: Optional[str] = None
    related_assessment_id: Optional[str] = None

    @property
    def is_regular(self) -> bool:
        return self.category == REGULAR

    @property
    def is_recovery(self) -> bool:
        return self.category == RECOVERY

    @property
    def key(self) -> Tuple[Optional[str], ...]:
        """Upsert key: one entry per student/classroom/subject/period/category/type."""
        return (
            self.student_id,
            self.classroom_id,
            self.subject_id,
            self.period_id,
            self.category,
            self.assessment_type_id,
        )

    @property
    def slot(self) -> Tuple[Optional[str], ...]:
        """Key shared by a regular assessment and the recoveries that may remediate it."""
        return (
            self.student_id,
            self.classroom_id,
            self.subject_id,
            self.period_id,
            self.assessment_type_id,
        )

    @property
    def score(self) -> Optional[float]:
        return parse_score(self.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assessment":
        return cls(
            id=_id(_pick(data, ["id"])) or "",
            student_id=_id(_pick(data, ["student_id", "studentId"])) or "",
            subject_id=_id(_pick(data, ["subject_id", "subjectId"])) or "",
            period_id=_id(_pick(data, ["period_id", "periodId"])) or "",
            assessment_type_id=_id(_pick(data, ["assessment_type_id", "assessmentTypeId"])) or "",
            value=_pick(data, ["value", "score"]),
            classroom_id=_id(_pick(data, ["classroom_id", "classroomId", "class_id"])),
            school_id=_id(_pick(data, ["school_id", "schoolId"])),
            academic_year_id=_id(_pick(data, ["academic_year_id", "academicYearId", "yearId"])),
            category=normalize_category(_pick(data, ["category"])),
            date=_id(_pick(data, ["date", "entry_date"])),
            related_assessment_id=_id(_pick(data, ["related_assessment_id", "relatedAssessmentId"])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Configuration records ───────────────────────────────────────────

@dataclass(frozen=True)
class EvaluationRule:
    id: str
    name: str = ""
    grading_mode: str = NUMERIC
    min_grade: float = 0.0
    max_grade: float = 10.0
    passing_grade: float = 6.0
    calculation_mode: str = SIMPLE
    allow_recovery: bool = True
    recovery_strategy: Optional[str] = None
    min_dependency_grade: Optional[float] = None
    period_weights: Tuple[float, ...] = ()
    allowed_exclusions: bool = False

    @property
    def is_descriptive(self) -> bool:
        return self.grading_mode == DESCRIPTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluationRule":
        raw_mode = _pick(data, ["calculation_mode", "calculationMode", "calculation_type"])
        grading_mode = str(_pick(data, ["grading_mode", "gradingMode", "type"], NUMERIC)).lower()
        if str(raw_mode or "").lower() == "descritiva":
            grading_mode = DESCRIPTIVE
        if grading_mode not in (NUMERIC, DESCRIPTIVE):
            grading_mode = NUMERIC

        strategy = _pick(data, ["recovery_strategy", "recoveryStrategy"])
        if strategy is not None and str(strategy) not in RECOVERY_STRATEGIES:
            strategy = None

        weights = _pick(data, ["period_weights", "periodWeights"], ())
        if isinstance(weights, dict):
            weights = weights.get("weights", ())

        return cls(
            id=_id(_pick(data, ["id"])) or "",
            name=str(_pick(data, ["name"], "")),
            grading_mode=grading_mode,
            min_grade=_float(_pick(data, ["min_grade", "minGrade"]), 0.0),
            max_grade=_float(_pick(data, ["max_grade", "maxGrade"]), 10.0),
            passing_grade=_float(
                _pick(data, ["passing_grade", "passingGrade", "min_approval_grade", "min_passing_grade"]),
                6.0,
            ),
            calculation_mode=normalize_calculation_mode(raw_mode),
            allow_recovery=_bool(_pick(data, ["allow_recovery", "allowRecovery"]), True),
            recovery_strategy=strategy,
            min_dependency_grade=_float(
                _pick(data, ["min_dependency_grade", "minDependencyGrade"]), None
            ),
            period_weights=tuple(_float(w, 1.0) for w in (weights or ())),
            allowed_exclusions=_bool(_pick(data, ["allowed_exclusions", "allowedExclusions"]), False),
        )


@dataclass(frozen=True)
class AssessmentType:
    id: str
    name: str = ""
    weight: float = 1.0
    max_score: float = 10.0
    passing_score: float = 6.0
    is_recovery: bool = False
    is_mandatory: bool = False
    exclude_from_average: bool = False
    grade_ids: Tuple[str, ...] = ()
    course_id: Optional[str] = None
    is_active: bool = True
    display_order: int = 0

    def applies_to(self, grade_id: Any) -> bool:
        return not self.grade_ids or str(grade_id) in self.grade_ids

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssessmentType":
        grade_ids = _pick(
            data, ["grade_ids", "applicable_grade_ids", "applicableGradeIds", "applicableSerieAnoIds"], ()
        )
        if isinstance(grade_ids, (str, int)):
            grade_ids = (grade_ids,)
        return cls(
            id=_id(_pick(data, ["id"])) or "",
            name=str(_pick(data, ["name"], "")),
            weight=_float(_pick(data, ["weight"]), 1.0),
            max_score=_float(_pick(data, ["max_score", "maxScore"]), 10.0),
            passing_score=_float(_pick(data, ["passing_score", "passingScore"]), 6.0),
            is_recovery=_bool(_pick(data, ["is_recovery", "isRecovery"]), False),
            is_mandatory=_bool(_pick(data, ["is_mandatory", "isMandatory"]), False),
            exclude_from_average=_bool(_pick(data, ["exclude_from_average", "excludeFromAverage"]), False),
            grade_ids=tuple(str(g) for g in (grade_ids or ())),
            course_id=_id(_pick(data, ["course_id", "courseId"])),
            is_active=_bool(_pick(data, ["is_active", "isActive"]), True),
            display_order=int(_float(_pick(data, ["display_order", "displayOrder"]), 0)),
        )


@dataclass(frozen=True)
class Period:
    id: str
    name: str = ""
    order: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int = 0) -> "Period":
        return cls(
            id=_id(_pick(data, ["id"])) or "",
            name=str(_pick(data, ["name"], "")),
            order=int(_float(_pick(data, ["order", "period_order", "sequence"]), position)),
            start_date=_id(_pick(data, ["start_date", "startDate"])),
            end_date=_id(_pick(data, ["end_date", "endDate"])),
        )


def sort_periods(periods: Iterable[Period]) -> List[Period]:
    """Academic-year order: explicit sequence, then start date, then id."""
    return sorted(periods, key=lambda p: (p.order, p.start_date or "", p.id))


# ── Directory records ───────────────────────────────────────────────

@dataclass(frozen=True)
class Subject:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Grade:
    id: str
    course_id: str
    name: str = ""
    evaluation_rule_id: Optional[str] = None
    subject_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Classroom:
    id: str
    grade_id: str
    school_id: Optional[str] = None
    academic_year_id: Optional[str] = None
    name: str = ""


@dataclass(frozen=True)
class Enrollment:
    student_id: str
    classroom_id: str
    status: str = "active"

