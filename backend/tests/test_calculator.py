"""
Tests for evaluation/calculator.py — the single calculation path for subject grades.
"""

import os
import random
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from evaluation.aggregator import NO_DATA
from evaluation.calculator import DESCRIPTIVE_FORMULA, calculate
from evaluation.models import (
    ALWAYS_REPLACE,
    AVERAGE,
    RECOVERY,
    REPLACE_IF_HIGHER,
    Assessment,
    AssessmentType,
    EvaluationRule,
    Period,
)
from evaluation.status import APPROVED, DEPENDENCY, FAILED, IN_PROGRESS

RULE = EvaluationRule(id="r1", name="Fundamental", passing_grade=6.0)
PERIODS = [Period(id=f"b{i}", name=f"{i}º Bimestre", order=i) for i in range(1, 5)]
TYPES = [
    AssessmentType(id="prova", name="Prova", weight=2.0),
    AssessmentType(id="trabalho", name="Trabalho", weight=1.0),
]


def reg(aid, period, value, type_id="prova"):
    return Assessment(
        id=aid, student_id="s1", subject_id="mat", period_id=period,
        assessment_type_id=type_id, value=value, classroom_id="6A",
    )


def rec(aid, period, value, related, type_id="prova"):
    return Assessment(
        id=aid, student_id="s1", subject_id="mat", period_id=period,
        assessment_type_id=type_id, value=value, classroom_id="6A",
        category=RECOVERY, related_assessment_id=related,
    )


@pytest.fixture
def full_year():
    return [
        reg("a1", "b1", 6.0),
        reg("a2", "b1", 8.0, "trabalho"),
        reg("a3", "b2", 3.0),
        rec("a4", "b2", 6.5, "a3"),
        reg("a5", "b3", 7.0),
        reg("a6", "b3", 5.5, "trabalho"),
        reg("a7", "b4", 9.0),
        rec("a8", "b4", 2.0, "a7"),
        rec("a9", "b1", 10.0, "nope"),
    ]


class TestIdempotence:

    def test_shuffled_input_gives_same_result(self, full_year):
        expected = calculate(full_year, RULE, PERIODS, TYPES, subject="Matemática").to_dict()
        rng = random.Random(42)
        for _ in range(10):
            items = list(full_year)
            periods = list(PERIODS)
            types = list(TYPES)
            rng.shuffle(items)
            rng.shuffle(periods)
            rng.shuffle(types)
            result = calculate(items, RULE, periods, types, subject="Matemática")
            assert result.to_dict() == expected

    def test_periods_follow_academic_order(self, full_year):
        result = calculate(full_year, RULE, list(reversed(PERIODS)), TYPES)
        assert [p.period_id for p in result.periods] == ["b1", "b2", "b3", "b4"]


class TestBaseline:

    def test_single_regular_without_recovery(self):
        result = calculate([reg("a1", "b1", 5.0)], RULE, PERIODS[:1], TYPES)
        assert result.period_grades == [5.0]
        assert result.final == 5.0
        assert result.periods[0].recovery_applied is False

    @pytest.mark.parametrize("strategy, expected", [
        (REPLACE_IF_HIGHER, 7.0),
        (ALWAYS_REPLACE, 7.0),
        (AVERAGE, 5.5),
    ])
    def test_recovery_strategies(self, strategy, expected):
        rule = EvaluationRule(id="r1", passing_grade=6.0, recovery_strategy=strategy)
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 7.0, "a1")]
        result = calculate(items, rule, PERIODS[:1], TYPES)
        assert result.period_grades == [pytest.approx(expected)]
        assert result.periods[0].regular_grade == 4.0
        assert result.periods[0].recovery_value == 7.0

    def test_default_strategy_applies_when_rule_has_none(self):
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 7.0, "a1")]
        result = calculate(items, RULE, PERIODS[:1], TYPES, default_strategy=AVERAGE)
        assert result.final == pytest.approx(5.5)
        assert result.recovery_strategy == AVERAGE

    def test_recovery_not_permitted(self):
        rule = EvaluationRule(id="r1", passing_grade=6.0, allow_recovery=False)
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 7.0, "a1")]
        result = calculate(items, rule, PERIODS[:1], TYPES)
        assert result.final == 4.0
        assert result.recovery_strategy is None


class TestFinalGrade:

    def _four_periods(self, values):
        return [reg(f"a{i}", f"b{i}", v) for i, v in enumerate(values, start=1) if v is not None]

    def test_average_and_passing_threshold(self):
        result = calculate(self._four_periods([6.0, 4.0, 8.0, 5.0]), RULE, PERIODS, TYPES)
        assert result.final == pytest.approx(5.75)
        assert result.final_display == "5.8"
        assert result.passing is False
        assert result.status == FAILED

    def test_dependency_band(self):
        rule = EvaluationRule(id="r1", passing_grade=6.0, min_dependency_grade=4.0)
        result = calculate(self._four_periods([6.0, 4.0, 8.0, 5.0]), rule, PERIODS, TYPES)
        assert result.status == DEPENDENCY

    def test_approved(self):
        result = calculate(self._four_periods([6.0, 7.0, 8.0, 5.0]), RULE, PERIODS, TYPES)
        assert result.final == pytest.approx(6.5)
        assert result.passing is True
        assert result.status == APPROVED

    def test_no_data_periods_are_excluded(self):
        result = calculate(self._four_periods([6.0, None, 8.0, None]), RULE, PERIODS, TYPES)
        assert result.final == pytest.approx(7.0)
        assert result.period_grades == [6.0, None, 8.0, None]
        assert result.period_grades_display == ["6.0", "-", "8.0", "-"]
        assert [p.status for p in result.periods][1] == NO_DATA
        assert result.pending_periods == 2
        assert "2 período(s) pendente(s)" in result.formula

    def test_zero_is_not_no_data(self):
        result = calculate(self._four_periods([6.0, 0.0, 8.0, None]), RULE, PERIODS, TYPES)
        assert result.period_grades[1] == 0.0
        assert result.final == pytest.approx(14.0 / 3)
        assert result.pending_periods == 1

    def test_no_data_at_all_is_in_progress(self):
        result = calculate([], RULE, PERIODS, TYPES)
        assert result.final is None
        assert result.final_display == "-"
        assert result.passing is False
        assert result.status == IN_PROGRESS

    def test_sum_mode(self):
        rule = EvaluationRule(id="r1", passing_grade=24.0, max_grade=40.0, calculation_mode="sum")
        result = calculate(self._four_periods([6.0, 7.0, 8.0, 5.0]), rule, PERIODS, TYPES)
        assert result.final == 26.0
        assert result.status == APPROVED
        assert result.formula.startswith("Soma de notas")

    def test_weighted_mode_uses_type_weights(self):
        rule = EvaluationRule(id="r1", passing_grade=6.0, calculation_mode="weighted")
        items = [reg("a1", "b1", 8.0), reg("a2", "b1", 5.0, "trabalho")]
        result = calculate(items, rule, PERIODS[:1], TYPES)
        assert result.final == pytest.approx(7.0)

    def test_weighted_period_weights(self):
        rule = EvaluationRule(id="r1", calculation_mode="weighted", period_weights=(1, 1, 2, 2))
        result = calculate(self._four_periods([4.0, 4.0, 7.0, 7.0]), rule, PERIODS, TYPES)
        assert result.final == pytest.approx(6.0)


class TestOrphanRecovery:

    def test_orphan_does_not_change_grade(self):
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 10.0, "does-not-exist")]
        result = calculate(items, RULE, PERIODS[:1], TYPES)
        assert result.final == 4.0
        assert [i["code"] for i in result.issues] == ["recovery_orphan"]

    def test_recovery_without_link_is_orphan(self):
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 10.0, None)]
        result = calculate(items, RULE, PERIODS[:1], TYPES)
        assert result.final == 4.0
        assert result.issues[0]["code"] == "recovery_orphan"


class TestFormulaAndOutput:

    def test_formula_mentions_strategy(self):
        items = [reg("a1", "b1", 4.0), rec("r1", "b1", 7.0, "a1")]
        result = calculate(items, RULE, PERIODS[:1], TYPES)
        assert result.formula == "Média simples com recuperação: substituição se maior"

    def test_plain_formula(self):
        result = calculate([reg("a1", "b1", 4.0)], RULE, PERIODS[:1], TYPES)
        assert result.formula == "Média simples"

    def test_descriptive_rule(self):
        rule = EvaluationRule(id="r1", grading_mode="descriptive")
        items = [reg("a1", "b1", "Participa das atividades")]
        result = calculate(items, rule, PERIODS, TYPES)
        assert result.final is None
        assert result.status == IN_PROGRESS
        assert result.formula == DESCRIPTIVE_FORMULA
        assert result.period_grades == [None] * 4

    def test_accepts_plain_dicts(self):
        result = calculate(
            [
                {"id": 1, "studentId": "s1", "subjectId": "mat", "periodId": "b1",
                 "assessmentTypeId": "prova", "value": "4,0", "category": "regular"},
                {"id": 2, "studentId": "s1", "subjectId": "mat", "periodId": "b1",
                 "assessmentTypeId": "prova", "value": 7, "category": "recuperation",
                 "relatedAssessmentId": 1},
            ],
            {"id": "r1", "passingGrade": 6, "recoveryStrategy": "average"},
            [{"id": "b1", "name": "1º Bimestre"}],
            [{"id": "prova", "name": "Prova", "weight": 2}],
            subject="Matemática",
        )
        assert result.final == pytest.approx(5.5)
        assert result.subject == "Matemática"
        assert result.subject_id == "mat"

    def test_to_dict_shape(self, full_year):
        data = calculate(full_year, RULE, PERIODS, TYPES, subject="Matemática").to_dict()
        for key in ("subject", "period_grades", "final", "final_display", "status", "passing", "formula", "periods"):
            assert key in data
        assert len(data["periods"]) == 4
        assert data["periods"][1]["recovery_applied"] is True


class TestSubjectIdentity:

    def test_subject_id_given_without_assessments(self):
        result = calculate([], RULE, PERIODS, TYPES, subject="Ciências", subject_id="cie")
        assert result.subject_id == "cie"
        assert result.to_dict()["subject_id"] == "cie"

    def test_subject_id_taken_from_assessments(self):
        result = calculate([reg("a1", "b1", 5.0)], RULE, PERIODS, TYPES)
        assert result.subject_id == "mat"


class TestExcludedTypes:

    EXCLUDING = TYPES + [AssessmentType(id="simulado", name="Simulado", exclude_from_average=True)]

    def test_recovery_of_excluded_type_does_not_change_grade(self):
        items = [
            reg("a1", "b1", 4.0),
            reg("s1", "b1", 3.0, "simulado"),
            rec("r1", "b1", 10.0, "s1", "simulado"),
        ]
        result = calculate(items, RULE, PERIODS[:1], self.EXCLUDING)
        assert result.period_grades == [4.0]
        assert result.periods[0].recovery_applied is False
        assert [i["code"] for i in result.issues] == ["recovery_excluded_type"]

    def test_drop_lowest_rule(self):
        rule = EvaluationRule.from_dict({"id": "r1", "passingGrade": 6, "allowedExclusions": True})
        items = [reg("a1", "b1", 3.0), reg("a2", "b1", 8.0, "trabalho")]
        result = calculate(items, rule, PERIODS[:1], TYPES)
        assert result.final == 8.0
        assert any("Removendo a menor nota (3)" in line for line in result.periods[0].logs)
