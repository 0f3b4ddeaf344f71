"""
repository.py — Storage ports used around the engine, with in-memory adapters.

The engine never reads storage itself. Callers fetch through these ports,
hand plain records to ``calculate`` and write back through ``upsert``.

Ports:
- AssessmentRepository: assessments, upsert keyed by
  (student, classroom, subject, period, category, type)
- Directory: grades, classrooms, enrollments, rules, assessment types, periods
- TransferStore: transfer requests
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from evaluation.models import (
    Assessment,
    AssessmentType,
    Classroom,
    Enrollment,
    EvaluationRule,
    Grade,
    Period,
    Subject,
    sort_periods,
)


def new_id() -> str:
    return uuid.uuid4().hex


# ── Assessments ─────────────────────────────────────────────────────

class AssessmentRepository(ABC):

    @abstractmethod
    def get(self, assessment_id: str) -> Optional[Assessment]:
        ...

    @abstractmethod
    def find_by_key(self, key: Tuple[Optional[str], ...]) -> Optional[Assessment]:
        ...

    @abstractmethod
    def for_student(self, student_id: str) -> List[Assessment]:
        ...

    @abstractmethod
    def for_class(self, classroom_id: str, subject_id: str, period_id: str) -> List[Assessment]:
        ...

    @abstractmethod
    def upsert(self, assessment: Assessment) -> Assessment:
        """Insert, or update in place the entry with the same key. Returns the stored record."""

    @abstractmethod
    def upsert_many(self, assessments: Iterable[Assessment]) -> List[Assessment]:
        """Upsert a batch; either every record is written or none is."""


class InMemoryAssessmentRepository(AssessmentRepository):

    def __init__(self, assessments: Iterable[Assessment] = (), id_factory: Callable[[], str] = new_id):
        self._id_factory = id_factory
        self._by_id: Dict[str, Assessment] = {}
        self._by_key: Dict[Tuple[Optional[str], ...], str] = {}
        if assessments:
            self.upsert_many(assessments)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, assessment_id: str) -> Optional[Assessment]:
        return self._by_id.get(str(assessment_id))

    def find_by_key(self, key: Tuple[Optional[str], ...]) -> Optional[Assessment]:
        found = self._by_key.get(tuple(key))
        return self._by_id.get(found) if found else None

    def for_student(self, student_id: str) -> List[Assessment]:
        sid = str(student_id)
        return sorted((a for a in self._by_id.values() if a.student_id == sid), key=lambda a: a.id)

    def for_class(self, classroom_id: str, subject_id: str, period_id: str) -> List[Assessment]:
        wanted = (str(classroom_id), str(subject_id), str(period_id))
        return sorted(
            (a for a in self._by_id.values() if (a.classroom_id, a.subject_id, a.period_id) == wanted),
            key=lambda a: a.id,
        )

    @staticmethod
    def _write(
        by_id: Dict[str, Assessment],
        by_key: Dict[Tuple[Optional[str], ...], str],
        assessment: Assessment,
        id_factory: Callable[[], str],
    ) -> Assessment:
        existing_id = by_key.get(assessment.key)
        if existing_id is not None:
            stored = replace(assessment, id=existing_id)
        else:
            stored = assessment if assessment.id else replace(assessment, id=id_factory())
            if stored.id in by_id:
                # id reuse with a different key: drop the stale key mapping
                by_key.pop(by_id[stored.id].key, None)
        by_id[stored.id] = stored
        by_key[stored.key] = stored.id
        return stored

    def upsert(self, assessment: Assessment) -> Assessment:
        return self._write(self._by_id, self._by_key, assessment, self._id_factory)

    def upsert_many(self, assessments: Iterable[Assessment]) -> List[Assessment]:
        by_id = dict(self._by_id)
        by_key = dict(self._by_key)
        stored = [self._write(by_id, by_key, a, self._id_factory) for a in assessments]
        self._by_id, self._by_key = by_id, by_key
        return stored


# ── Directory ───────────────────────────────────────────────────────

class Directory(ABC):

    @abstractmethod
    def get_grade(self, grade_id: str) -> Optional[Grade]:
        ...

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[EvaluationRule]:
        ...

    @abstractmethod
    def get_classroom(self, classroom_id: str) -> Optional[Classroom]:
        ...

    @abstractmethod
    def get_subject(self, subject_id: str) -> Optional[Subject]:
        ...

    @abstractmethod
    def enrollments(self, classroom_id: str) -> List[Enrollment]:
        ...

    @abstractmethod
    def assessment_types(self) -> List[AssessmentType]:
        ...

    @abstractmethod
    def periods(self, academic_year_id: Optional[str]) -> List[Period]:
        ...


class InMemoryDirectory(Directory):

    def __init__(
        self,
        grades: Iterable[Grade] = (),
        rules: Iterable[EvaluationRule] = (),
        classrooms: Iterable[Classroom] = (),
        subjects: Iterable[Subject] = (),
        enrollments: Iterable[Enrollment] = (),
        assessment_types: Iterable[AssessmentType] = (),
        periods: Optional[Dict[Optional[str], Iterable[Period]]] = None,
    ):
        self._grades = {g.id: g for g in grades}
        self._rules = {r.id: r for r in rules}
        self._classrooms = {c.id: c for c in classrooms}
        self._subjects = {s.id: s for s in subjects}
        self._enrollments = list(enrollments)
        self._types = list(assessment_types)
        self._periods = {k: list(v) for k, v in (periods or {}).items()}

    def get_grade(self, grade_id: str) -> Optional[Grade]:
        return self._grades.get(str(grade_id))

    def get_rule(self, rule_id: str) -> Optional[EvaluationRule]:
        return self._rules.get(str(rule_id))

    def get_classroom(self, classroom_id: str) -> Optional[Classroom]:
        return self._classrooms.get(str(classroom_id))

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        return self._subjects.get(str(subject_id))

    def enrollments(self, classroom_id: str) -> List[Enrollment]:
        cid = str(classroom_id)
        return sorted(
            (e for e in self._enrollments if e.classroom_id == cid and e.status == "active"),
            key=lambda e: e.student_id,
        )

    def assessment_types(self) -> List[AssessmentType]:
        return list(self._types)

    def periods(self, academic_year_id: Optional[str]) -> List[Period]:
        found = self._periods.get(academic_year_id)
        if found is None:
            found = self._periods.get(None, [])
        return sort_periods(found)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryDirectory":
        """Build from a seed document (lists of plain dicts, snake_case keys)."""
        periods: Dict[Optional[str], List[Period]] = {}
        for position, raw in enumerate(data.get("periods", [])):
            year = raw.get("academic_year_id")
            periods.setdefault(None if year is None else str(year), []).append(
                Period.from_dict(raw, position)
            )
        return cls(
            grades=[
                Grade(
                    id=str(g["id"]),
                    course_id=str(g["course_id"]),
                    name=g.get("name", ""),
                    evaluation_rule_id=None if g.get("evaluation_rule_id") is None else str(g["evaluation_rule_id"]),
                    subject_ids=tuple(str(s) for s in g.get("subject_ids", ())),
                )
                for g in data.get("grades", [])
            ],
            rules=[EvaluationRule.from_dict(r) for r in data.get("rules", [])],
            classrooms=[
                Classroom(
                    id=str(c["id"]),
                    grade_id=str(c["grade_id"]),
                    school_id=None if c.get("school_id") is None else str(c["school_id"]),
                    academic_year_id=None if c.get("academic_year_id") is None else str(c["academic_year_id"]),
                    name=c.get("name", ""),
                )
                for c in data.get("classrooms", [])
            ],
            subjects=[Subject(id=str(s["id"]), name=s.get("name", "")) for s in data.get("subjects", [])],
            enrollments=[
                Enrollment(
                    student_id=str(e["student_id"]),
                    classroom_id=str(e["classroom_id"]),
                    status=e.get("status", "active"),
                )
                for e in data.get("enrollments", [])
            ],
            assessment_types=[AssessmentType.from_dict(t) for t in data.get("assessment_types", [])],
            periods=periods,
        )


# ── Transfers ───────────────────────────────────────────────────────

class TransferStore(ABC):

    @abstractmethod
    def get(self, transfer_id: str):
        ...

    @abstractmethod
    def save(self, transfer) -> None:
        ...


class InMemoryTransferStore(TransferStore):

    def __init__(self):
        self._transfers: Dict[str, Any] = {}

    def get(self, transfer_id: str):
        return self._transfers.get(str(transfer_id))

    def save(self, transfer) -> None:
        self._transfers[transfer.id] = transfer
