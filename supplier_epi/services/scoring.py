"""
Supplier EPI - Scoring Engine

Pure functions computing point values, section/category/global scores,
classification and completion progress.

Scoring rules:
- A question is worth section.weight / number of questions in the section.
  The per-question `weight` field of the questionnaire is NOT consulted.
- A "cumple" answer earns the full point value, "no_cumple" earns 0.
- Category score = 100 * earned / possible across all its sections.
- Global score = plain mean of the two category scores.
- SALIR below 60, MEJORAR from 60 up to (not including) 80, CRECER from 80.

No function here reads the clock or any store: the same questionnaire and
responses always produce the same scores.
"""

from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, List, Optional, Sequence

from supplier_epi.schemas.epi import (
    Answer,
    Category,
    Classification,
    Progress,
    Questionnaire,
    ScoreCard,
    Section,
    SectionScore,
    SupplierResponse,
)


# Classification thresholds (inclusive lower bounds)
MEJORAR_THRESHOLD = 60
CRECER_THRESHOLD = 80


def question_point_value(section: Section) -> float:
    """Points a compliant answer is worth in this section."""
    question_count = len(section.questions)
    if question_count == 0:
        return 0.0
    return section.weight / question_count


def section_score(section: Section, responses: Iterable[SupplierResponse]) -> SectionScore:
    """Score one section from the responses that belong to it."""
    points_per_question = question_point_value(section)
    section_responses = [r for r in responses if r.section_id == section.id]

    points_earned = sum(
        points_per_question for r in section_responses if r.answer == Answer.CUMPLE
    )
    points_possible = section.weight
    percentage = (points_earned / points_possible) * 100 if points_possible > 0 else 0.0

    return SectionScore(
        section_id=section.id,
        section_title=section.title,
        weight=section.weight,
        questions_total=len(section.questions),
        questions_answered=len(section_responses),
        points_earned=points_earned,
        points_possible=points_possible,
        percentage=percentage,
    )


def category_breakdown(
    sections: Sequence[Section],
    responses: Iterable[SupplierResponse],
    category: Category,
) -> List[SectionScore]:
    """Section scores of a category, in questionnaire order."""
    category_responses = [r for r in responses if r.category == Category(category)]
    return [section_score(section, category_responses) for section in sections]


def category_score(
    sections: Sequence[Section],
    responses: Iterable[SupplierResponse],
    category: Category,
) -> float:
    """Category score on a 0-100 scale (0 when no points are possible)."""
    scores = category_breakdown(sections, responses, category)
    total_earned = sum(s.points_earned for s in scores)
    total_possible = sum(s.points_possible for s in scores)
    return (total_earned / total_possible) * 100 if total_possible > 0 else 0.0


def global_score(calidad_score: float, abastecimiento_score: float) -> float:
    """Unweighted mean of the two category scores."""
    return (calidad_score + abastecimiento_score) / 2


def round_score(value: float) -> int:
    """Round halves up towards +inf (-2.5 gives -2), the way scores are shown to users."""
    return int((Decimal(str(value)) + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def classify(score: float) -> Classification:
    """Map a global score to SALIR / MEJORAR / CRECER."""
    if score < MEJORAR_THRESHOLD:
        return Classification.SALIR
    if score < CRECER_THRESHOLD:
        return Classification.MEJORAR
    return Classification.CRECER


def calculate_progress(
    questionnaire: Questionnaire,
    responses: Iterable[SupplierResponse],
) -> Progress:
    """Count answered vs. total questions per category."""
    answered_ids = {r.question_id for r in responses}

    calidad_ids = questionnaire.calidad.question_ids
    abastecimiento_ids = questionnaire.abastecimiento.question_ids
    calidad_answered = sum(1 for qid in calidad_ids if qid in answered_ids)
    abastecimiento_answered = sum(1 for qid in abastecimiento_ids if qid in answered_ids)

    total_questions = len(calidad_ids) + len(abastecimiento_ids)
    answered_questions = calidad_answered + abastecimiento_answered
    percentage = (answered_questions / total_questions) * 100 if total_questions > 0 else 0

    return Progress(
        total_questions=total_questions,
        answered_questions=answered_questions,
        percentage_complete=round_score(percentage),
        calidad_questions=len(calidad_ids),
        calidad_answered=calidad_answered,
        abastecimiento_questions=len(abastecimiento_ids),
        abastecimiento_answered=abastecimiento_answered,
    )


def score_responses(
    questionnaire: Questionnaire,
    responses: Sequence[SupplierResponse],
) -> ScoreCard:
    """All derived scores for a response set."""
    calidad = category_score(questionnaire.calidad.sections, responses, Category.CALIDAD)
    abastecimiento = category_score(
        questionnaire.abastecimiento.sections, responses, Category.ABASTECIMIENTO
    )
    overall = global_score(calidad, abastecimiento)
    return ScoreCard(
        calidad_score=calidad,
        abastecimiento_score=abastecimiento,
        global_score=overall,
        classification=classify(overall),
        progress=calculate_progress(questionnaire, responses),
    )


def build_response(
    question_id: str,
    section_id: str,
    category: Category,
    answer: Answer,
    points_possible: float,
    timestamp: datetime,
    evidence_url: Optional[str] = None,
    note: Optional[str] = None,
) -> SupplierResponse:
    """Create a response carrying its earned points."""
    answer = Answer(answer)
    return SupplierResponse(
        question_id=question_id,
        section_id=section_id,
        category=Category(category),
        answer=answer,
        points_earned=points_possible if answer == Answer.CUMPLE else 0.0,
        points_possible=points_possible,
        timestamp=timestamp,
        evidence_url=evidence_url or None,
        note=note or None,
    )


def unanswered_questions(
    questionnaire: Questionnaire,
    responses: Iterable[SupplierResponse],
    category: Category,
) -> List[str]:
    """Question ids of a category that have no response yet."""
    answered_ids = {r.question_id for r in responses if r.category == Category(category)}
    return [qid for qid in questionnaire.category(category).question_ids if qid not in answered_ids]
