"""
Supplier EPI - Scoring Engine Tests

Tests for point values, category/global scores, classification and progress.
"""

from datetime import datetime, timezone

import pytest

from supplier_epi.schemas.epi import (
    Answer,
    Category,
    Classification,
    Question,
    Section,
)
from supplier_epi.services import scoring

from conftest import build_questionnaire


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_section(section_id, weight, question_count):
    return Section(
        id=section_id,
        title=section_id,
        weight=weight,
        questions=[Question(id=f"{section_id}_q{i}") for i in range(question_count)],
    )


def respond(section, question_id, answer, category=Category.CALIDAD):
    return scoring.build_response(
        question_id=question_id,
        section_id=section.id,
        category=category,
        answer=answer,
        points_possible=scoring.question_point_value(section),
        timestamp=NOW,
    )


class TestQuestionPointValue:
    """Test per-question point values."""

    @pytest.mark.parametrize("weight,count", [(50, 2), (100, 3), (33.3, 7), (0, 4)])
    def test_point_values_add_up_to_section_weight(self, weight, count):
        """Point value times question count equals the section weight."""
        section = make_section("s", weight, count)
        assert scoring.question_point_value(section) * count == pytest.approx(weight)

    def test_empty_section_is_worth_nothing(self):
        """A section without questions yields 0 instead of dividing by zero."""
        assert scoring.question_point_value(make_section("s", 40, 0)) == 0.0

    def test_question_weight_is_ignored(self):
        """Per-question weights do not change the point value."""
        section = Section(
            id="s",
            weight=60,
            questions=[Question(id="a", weight=90), Question(id="b", weight=10)],
        )
        assert scoring.question_point_value(section) == 30


class TestCategoryScore:
    """Test category score aggregation."""

    def test_one_cumple_per_section_scores_fifty(self):
        """Two sections of weight 50 with two questions, one cumple in each."""
        s1, s2 = make_section("s1", 50, 2), make_section("s2", 50, 2)
        responses = [
            respond(s1, "s1_q0", Answer.CUMPLE),
            respond(s1, "s1_q1", Answer.NO_CUMPLE),
            respond(s2, "s2_q0", Answer.CUMPLE),
            respond(s2, "s2_q1", Answer.NO_CUMPLE),
        ]
        assert scoring.category_score([s1, s2], responses, Category.CALIDAD) == pytest.approx(50)

    @pytest.mark.parametrize("weights", [(50, 50), (70, 30), (10, 90)])
    def test_all_cumple_is_hundred_all_no_cumple_is_zero(self, weights):
        """Extreme answers give 100 and 0 whatever the weight split."""
        s1, s2 = make_section("s1", weights[0], 3), make_section("s2", weights[1], 1)
        questions = [(s, q.id) for s in (s1, s2) for q in s.questions]

        all_yes = [respond(s, qid, Answer.CUMPLE) for s, qid in questions]
        all_no = [respond(s, qid, Answer.NO_CUMPLE) for s, qid in questions]

        assert scoring.category_score([s1, s2], all_yes, Category.CALIDAD) == pytest.approx(100)
        assert scoring.category_score([s1, s2], all_no, Category.CALIDAD) == 0

    def test_other_category_responses_are_ignored(self):
        """Only responses of the scored category count."""
        s1 = make_section("s1", 100, 1)
        responses = [respond(s1, "s1_q0", Answer.CUMPLE, category=Category.ABASTECIMIENTO)]
        assert scoring.category_score([s1], responses, Category.CALIDAD) == 0

    def test_no_possible_points_scores_zero(self):
        """Sections with zero total weight give 0."""
        s1 = make_section("s1", 0, 2)
        responses = [respond(s1, "s1_q0", Answer.CUMPLE)]
        assert scoring.category_score([s1], responses, Category.CALIDAD) == 0

    def test_weights_not_adding_to_hundred_still_score(self):
        """Scoring tolerates category weights that do not sum to 100."""
        s1, s2 = make_section("s1", 60, 1), make_section("s2", 60, 1)
        responses = [respond(s1, "s1_q0", Answer.CUMPLE), respond(s2, "s2_q0", Answer.NO_CUMPLE)]
        assert scoring.category_score([s1, s2], responses, Category.CALIDAD) == pytest.approx(50)

    def test_breakdown_reports_each_section(self):
        """Section breakdown keeps questionnaire order and counts."""
        s1, s2 = make_section("s1", 50, 2), make_section("s2", 50, 2)
        breakdown = scoring.category_breakdown(
            [s1, s2], [respond(s1, "s1_q0", Answer.CUMPLE)], Category.CALIDAD
        )

        assert [b.section_id for b in breakdown] == ["s1", "s2"]
        assert breakdown[0].questions_answered == 1
        assert breakdown[0].points_earned == pytest.approx(25)
        assert breakdown[0].percentage == pytest.approx(50)
        assert breakdown[1].points_earned == 0


class TestGlobalScoreAndClassification:
    """Test global score and SALIR / MEJORAR / CRECER tiers."""

    def test_global_score_is_plain_mean(self):
        """calidad 80 and abastecimiento 60 average to 70 (MEJORAR)."""
        overall = scoring.global_score(80, 60)
        assert overall == 70
        assert scoring.classify(overall) == Classification.MEJORAR

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, Classification.SALIR),
            (59.99, Classification.SALIR),
            (60, Classification.MEJORAR),
            (79.99, Classification.MEJORAR),
            (80, Classification.CRECER),
            (100, Classification.CRECER),
        ],
    )
    def test_classification_boundaries(self, score, expected):
        """60 and 80 belong to the upper tier."""
        assert scoring.classify(score) == expected

    def test_classification_is_monotonic(self):
        """A higher score never yields a lower tier."""
        order = [Classification.SALIR, Classification.MEJORAR, Classification.CRECER]
        tiers = [order.index(scoring.classify(score / 2)) for score in range(0, 201)]
        assert tiers == sorted(tiers)

    @pytest.mark.parametrize(
        "value,expected",
        [(54.5, 55), (55.5, 56), (70.49, 70), (-2.5, -2), (-12.5, -12), (-2.6, -3)],
    )
    def test_round_score_rounds_halves_up(self, value, expected):
        """Halves round towards positive infinity, negative ones included."""
        assert scoring.round_score(value) == expected


class TestProgressAndResponses:
    """Test progress counters and response construction."""

    def test_progress_counts_per_category(self):
        """Answered questions are counted per category."""
        questionnaire = build_questionnaire({"c1": ["q1", "q2", "q3"]}, {"a1": ["q4"]})
        section = questionnaire.calidad.sections[0]
        responses = [respond(section, "q1", Answer.CUMPLE), respond(section, "q2", Answer.NO_CUMPLE)]

        progress = scoring.calculate_progress(questionnaire, responses)

        assert progress.total_questions == 4
        assert progress.answered_questions == 2
        assert progress.percentage_complete == 50
        assert progress.calidad_answered == 2
        assert progress.calidad_questions == 3
        assert progress.abastecimiento_answered == 0

    def test_responses_to_removed_questions_are_not_counted(self):
        """Stale responses do not inflate progress."""
        questionnaire = build_questionnaire({"c1": ["q1"]}, {"a1": ["q2"]})
        section = questionnaire.calidad.sections[0]
        progress = scoring.calculate_progress(questionnaire, [respond(section, "gone", Answer.CUMPLE)])
        assert progress.answered_questions == 0

    def test_empty_questionnaire_progress(self):
        """No questions means 0% rather than an error."""
        progress = scoring.calculate_progress(build_questionnaire({}, {}), [])
        assert progress.percentage_complete == 0

    def test_build_response_earns_points_only_when_cumple(self):
        """cumple earns the full point value, no_cumple earns nothing."""
        section = make_section("s", 50, 2)
        yes = respond(section, "s_q0", Answer.CUMPLE)
        no = respond(section, "s_q1", Answer.NO_CUMPLE)

        assert yes.points_earned == yes.points_possible == 25
        assert no.points_earned == 0
        assert no.points_possible == 25

    def test_score_responses_combines_everything(self):
        """Score card carries category, global scores and progress."""
        questionnaire = build_questionnaire({"c1": ["q1", "q2"]}, {"a1": ["q3"]})
        calidad = questionnaire.calidad.sections[0]
        abastecimiento = questionnaire.abastecimiento.sections[0]
        responses = [
            respond(calidad, "q1", Answer.CUMPLE),
            respond(calidad, "q2", Answer.CUMPLE),
            respond(abastecimiento, "q3", Answer.NO_CUMPLE, category=Category.ABASTECIMIENTO),
        ]

        card = scoring.score_responses(questionnaire, responses)

        assert card.calidad_score == pytest.approx(100)
        assert card.abastecimiento_score == 0
        assert card.global_score == pytest.approx(50)
        assert card.classification == Classification.SALIR
        assert card.progress.answered_questions == 3

    def test_unanswered_questions_in_questionnaire_order(self):
        """Unanswered ids follow the questionnaire order."""
        questionnaire = build_questionnaire({"c1": ["q1", "q2"], "c2": ["q3"]}, {"a1": ["q4"]})
        section = questionnaire.calidad.sections[0]
        responses = [respond(section, "q2", Answer.CUMPLE)]

        assert scoring.unanswered_questions(questionnaire, responses, Category.CALIDAD) == ["q1", "q3"]
        assert scoring.unanswered_questions(questionnaire, responses, Category.ABASTECIMIENTO) == ["q4"]
