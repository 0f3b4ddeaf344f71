"""
Tests for evaluation/gradebook.py and the assessment repository upsert key.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from evaluation.errors import ValidationError
from evaluation.gradebook import save_entry, validate_entry
from evaluation.models import RECOVERY, Assessment, AssessmentType, EvaluationRule
from evaluation.repository import InMemoryAssessmentRepository

RULE = EvaluationRule(id="r1", min_grade=0.0, max_grade=10.0, passing_grade=6.0)
TYPES = [
    AssessmentType(id="prova", name="Prova", max_score=10.0),
    AssessmentType(id="trabalho", name="Trabalho", max_score=5.0),
    AssessmentType(id="simulado", name="Simulado", exclude_from_average=True),
]


def entry(value, type_id="prova", category="regular", related=None, period="b1", **kwargs):
    data = {
        "student_id": "s1",
        "classroom_id": "6A",
        "subject_id": "mat",
        "period_id": period,
        "assessment_type_id": type_id,
        "value": value,
        "category": category,
        "related_assessment_id": related,
    }
    data.update(kwargs)
    return data


@pytest.fixture
def repository():
    counter = iter(range(1, 1000))
    return InMemoryAssessmentRepository(id_factory=lambda: f"id{next(counter)}")


class TestValidateEntry:

    def test_accepts_decimal_comma(self):
        assert validate_entry("7,5", RULE) == 7.5

    @pytest.mark.parametrize("value", ["abc", "", None, float("nan")])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValidationError) as exc:
            validate_entry(value, RULE)
        assert exc.value.code == "value_not_numeric"

    @pytest.mark.parametrize("value", [-0.5, 10.5])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(ValidationError) as exc:
            validate_entry(value, RULE)
        assert exc.value.code == "value_out_of_range"

    def test_rejects_above_type_max(self):
        with pytest.raises(ValidationError) as exc:
            validate_entry(6.0, RULE, TYPES[1])
        assert exc.value.code == "value_above_type_max"

    def test_descriptive_requires_text(self):
        rule = EvaluationRule(id="r2", grading_mode="descriptive")
        assert validate_entry("  Bom desempenho ", rule) == "Bom desempenho"
        with pytest.raises(ValidationError):
            validate_entry("   ", rule)


class TestSaveEntry:

    def test_saves_new_entry(self, repository):
        stored = save_entry(repository, entry("8"), RULE, TYPES)
        assert stored.id == "id1"
        assert stored.value == 8.0
        assert len(repository) == 1

    def test_same_key_updates_in_place(self, repository):
        first = save_entry(repository, entry(5.0), RULE, TYPES)
        second = save_entry(repository, entry(9.0), RULE, TYPES)
        assert second.id == first.id
        assert len(repository) == 1
        assert repository.get(first.id).value == 9.0

    def test_different_type_is_new_entry(self, repository):
        save_entry(repository, entry(5.0), RULE, TYPES)
        save_entry(repository, entry(4.0, "trabalho"), RULE, TYPES)
        assert len(repository) == 2

    def test_missing_fields(self, repository):
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(5.0, period=""), RULE, TYPES)
        assert exc.value.code == "missing_field"
        assert exc.value.details["fields"] == ["period_id"]

    def test_unknown_type(self, repository):
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(5.0, "feira"), RULE, TYPES)
        assert exc.value.code == "unknown_assessment_type"

    def test_invalid_value_is_not_stored(self, repository):
        with pytest.raises(ValidationError):
            save_entry(repository, entry(11), RULE, TYPES)
        assert len(repository) == 0

    def test_regular_drops_related_id(self, repository):
        stored = save_entry(repository, entry(5.0, related="x"), RULE, TYPES)
        assert stored.related_assessment_id is None

    def test_unknown_category(self, repository):
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(5.0, category="bonus"), RULE, TYPES)
        assert exc.value.code == "invalid_category"


class TestRecoveryEntry:

    def test_links_to_regular_of_same_slot(self, repository):
        regular = save_entry(repository, entry(4.0), RULE, TYPES)
        recovery = save_entry(repository, entry(7.0, category=RECOVERY), RULE, TYPES)
        assert recovery.related_assessment_id == regular.id
        assert recovery.id != regular.id

    def test_accepts_explicit_valid_link(self, repository):
        regular = save_entry(repository, entry(4.0), RULE, TYPES)
        recovery = save_entry(repository, entry(7.0, category="recuperacao", related=regular.id), RULE, TYPES)
        assert recovery.related_assessment_id == regular.id

    def test_rejects_link_to_other_period(self, repository):
        other = save_entry(repository, entry(4.0, period="b2"), RULE, TYPES)
        save_entry(repository, entry(4.0), RULE, TYPES)
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(7.0, category=RECOVERY, related=other.id), RULE, TYPES)
        assert exc.value.code == "invalid_recovery_link"

    def test_requires_regular_to_recover(self, repository):
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(7.0, category=RECOVERY), RULE, TYPES)
        assert exc.value.code == "no_regular_to_recover"

    def test_excluded_type_has_no_recovery(self, repository):
        save_entry(repository, entry(3.0, "simulado"), RULE, TYPES)
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(9.0, "simulado", category=RECOVERY), RULE, TYPES)
        assert exc.value.code == "recovery_excluded_type"
        assert len(repository) == 1

    def test_rule_without_recovery(self, repository):
        rule = EvaluationRule(id="r3", allow_recovery=False)
        save_entry(repository, entry(4.0), rule, TYPES)
        with pytest.raises(ValidationError) as exc:
            save_entry(repository, entry(7.0, category=RECOVERY), rule, TYPES)
        assert exc.value.code == "recovery_not_permitted"


class TestRepository:

    def test_upsert_many_is_all_or_nothing(self):
        issued = []

        def id_factory():
            if issued:
                raise RuntimeError("id service unavailable")
            issued.append("new1")
            return "new1"

        repository = InMemoryAssessmentRepository(id_factory=id_factory)
        batch = [
            Assessment(id="", student_id="s1", subject_id="mat", period_id="b1",
                       assessment_type_id="prova", value=5.0, classroom_id="6A"),
            Assessment(id="", student_id="s1", subject_id="mat", period_id="b2",
                       assessment_type_id="prova", value=6.0, classroom_id="6A"),
        ]
        with pytest.raises(RuntimeError):
            repository.upsert_many(batch)
        assert len(repository) == 0

    def test_classroom_is_part_of_the_key(self):
        repository = InMemoryAssessmentRepository()
        base = dict(student_id="s1", subject_id="mat", period_id="b1", assessment_type_id="prova", value=5.0)
        repository.upsert(Assessment(id="a1", classroom_id="6A", **base))
        repository.upsert(Assessment(id="a2", classroom_id="6B", **base))
        assert len(repository) == 2

    def test_for_class(self):
        repository = InMemoryAssessmentRepository([
            Assessment(id="a1", student_id="s1", subject_id="mat", period_id="b1",
                       assessment_type_id="prova", value=5.0, classroom_id="6A"),
            Assessment(id="a2", student_id="s2", subject_id="mat", period_id="b1",
                       assessment_type_id="prova", value=7.0, classroom_id="6A"),
            Assessment(id="a3", student_id="s1", subject_id="por", period_id="b1",
                       assessment_type_id="prova", value=7.0, classroom_id="6A"),
        ])
        assert [a.id for a in repository.for_class("6A", "mat", "b1")] == ["a1", "a2"]
