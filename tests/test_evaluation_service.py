"""
Supplier EPI - Evaluation Service Tests

Tests for recording answers, observations, evidence and loading evaluations.
"""

import pytest

from supplier_epi.schemas.epi import Answer, Category, EvaluationStatus
from supplier_epi.utils.error_handling import (
    ConcurrentModificationError,
    UnknownQuestionError,
    ValidationException,
)

from conftest import SUPPLIER_ID, answer_all


class TestRecordAnswer:
    """Test creating and replacing responses."""

    @pytest.mark.asyncio
    async def test_first_answer_creates_evaluation(self, evaluation_service, stores):
        """The aggregate is created on the first answer."""
        evaluation = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE
        )

        assert evaluation.status == EvaluationStatus.IN_PROGRESS
        assert evaluation.version == 1
        assert len(evaluation.responses) == 1
        assert evaluation.responses[0].points_earned == 25
        assert evaluation.calidad_score == pytest.approx(25)
        assert evaluation.progress.answered_questions == 1
        assert await stores.evaluations.get(SUPPLIER_ID) == evaluation

    @pytest.mark.asyncio
    async def test_answer_is_replaced_not_appended(self, evaluation_service):
        """Changing an answer keeps a single response per question."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)
        evaluation = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.NO_CUMPLE
        )

        assert len(evaluation.responses) == 1
        assert evaluation.responses[0].answer == Answer.NO_CUMPLE
        assert evaluation.calidad_score == 0

    @pytest.mark.asyncio
    async def test_replacing_keeps_response_position(self, evaluation_service):
        """A replaced response stays where it was in the list."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)
        await evaluation_service.record_answer(SUPPLIER_ID, "cq2", "cs1", Category.CALIDAD, Answer.CUMPLE)
        evaluation = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.NO_CUMPLE
        )
        assert [r.question_id for r in evaluation.responses] == ["cq1", "cq2"]

    @pytest.mark.asyncio
    async def test_same_answer_twice_is_idempotent(self, evaluation_service):
        """Repeating an answer yields the same response and scores."""
        first = await evaluation_service.record_answer(
            SUPPLIER_ID, "aq1", "as1", Category.ABASTECIMIENTO, Answer.CUMPLE
        )
        second = await evaluation_service.record_answer(
            SUPPLIER_ID, "aq1", "as1", Category.ABASTECIMIENTO, Answer.CUMPLE
        )

        assert second.responses == first.responses
        assert second.abastecimiento_score == first.abastecimiento_score
        assert second.global_score == first.global_score
        assert second.progress == first.progress

    @pytest.mark.asyncio
    async def test_full_evaluation_scores(self, evaluation_service, questionnaire):
        """One no_cumple per calidad section gives calidad 50 and global 75."""
        answers = {"cq2": Answer.NO_CUMPLE, "cq4": Answer.NO_CUMPLE}
        await answer_all(evaluation_service, questionnaire, answers=answers)

        evaluation = await evaluation_service.evaluations.get(SUPPLIER_ID)

        assert evaluation.calidad_score == pytest.approx(50)
        assert evaluation.abastecimiento_score == pytest.approx(100)
        assert evaluation.global_score == pytest.approx(75)
        assert evaluation.classification.value == "MEJORAR"
        assert evaluation.progress.percentage_complete == 100

    @pytest.mark.asyncio
    async def test_unknown_question_is_rejected(self, evaluation_service, stores):
        """Answers must reference a question of the given section."""
        with pytest.raises(UnknownQuestionError):
            await evaluation_service.record_answer(
                SUPPLIER_ID, "aq1", "cs1", Category.CALIDAD, Answer.CUMPLE
            )
        assert await stores.evaluations.get(SUPPLIER_ID) is None

    @pytest.mark.asyncio
    async def test_stale_version_is_refused(self, evaluation_service, stores):
        """A concurrent write with an old version token fails."""
        evaluation = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE
        )
        stale = evaluation.model_copy(update={"version": evaluation.version + 1})

        await stores.evaluations.put(SUPPLIER_ID, stale, expected_version=evaluation.version)
        with pytest.raises(ConcurrentModificationError):
            await stores.evaluations.put(SUPPLIER_ID, stale, expected_version=evaluation.version)


class TestObservationsAndEvidence:
    """Test notes and evidence on existing responses."""

    @pytest.mark.asyncio
    async def test_observation_is_stored_on_response(self, evaluation_service):
        """The note is attached without changing scores."""
        before = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE
        )

        patched = await evaluation_service.record_observation(SUPPLIER_ID, "cq1", "Certificado vencido")

        evaluation = await evaluation_service.evaluations.get(SUPPLIER_ID)
        assert patched.note == "Certificado vencido"
        assert evaluation.responses[0].note == "Certificado vencido"
        assert evaluation.global_score == before.global_score

    @pytest.mark.asyncio
    async def test_observation_on_unanswered_question_is_noop(self, evaluation_service):
        """Notes for unanswered questions are ignored."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)

        assert await evaluation_service.record_observation(SUPPLIER_ID, "cq2", "nota") is None
        evaluation = await evaluation_service.evaluations.get(SUPPLIER_ID)
        assert [r.question_id for r in evaluation.responses] == ["cq1"]

    @pytest.mark.asyncio
    async def test_observation_without_evaluation_is_noop(self, evaluation_service):
        """Nothing is created for a supplier without answers."""
        assert await evaluation_service.record_observation(SUPPLIER_ID, "cq1", "nota") is None
        assert await evaluation_service.evaluations.get(SUPPLIER_ID) is None

    @pytest.mark.asyncio
    async def test_evidence_url_is_attached(self, evaluation_service):
        """Evidence URL is stored on the response."""
        await evaluation_service.record_answer(SUPPLIER_ID, "aq2", "as1", Category.ABASTECIMIENTO, Answer.CUMPLE)

        patched = await evaluation_service.attach_evidence(
            SUPPLIER_ID, "aq2", "https://files.example.com/aq2.jpg"
        )
        assert patched.evidence_url == "https://files.example.com/aq2.jpg"

    @pytest.mark.asyncio
    async def test_empty_evidence_url_is_rejected(self, evaluation_service):
        """An empty URL is a validation error."""
        with pytest.raises(ValidationException):
            await evaluation_service.attach_evidence(SUPPLIER_ID, "aq2", "")

    @pytest.mark.asyncio
    async def test_new_answer_drops_previous_note(self, evaluation_service):
        """Re-answering replaces the whole response."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)
        await evaluation_service.record_observation(SUPPLIER_ID, "cq1", "nota")

        evaluation = await evaluation_service.record_answer(
            SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.NO_CUMPLE
        )
        assert evaluation.responses[0].note is None


class TestLoadEvaluation:
    """Test what readers see for a supplier."""

    @pytest.mark.asyncio
    async def test_nothing_recorded_returns_none(self, evaluation_service):
        """Unknown suppliers have no evaluation."""
        assert await evaluation_service.load_evaluation(SUPPLIER_ID) is None

    @pytest.mark.asyncio
    async def test_live_evaluation_is_returned_before_submit(self, evaluation_service):
        """Without submissions the live aggregate is shown."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)

        view = await evaluation_service.load_evaluation(SUPPLIER_ID)

        assert view.source == "evaluation"
        assert view.submission_id is None
        assert view.status == EvaluationStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_submission_wins_over_newer_live_edits(
        self, evaluation_service, submitted, clock
    ):
        """The latest snapshot is shown even if the aggregate changed afterwards."""
        clock.advance(hours=1)
        await evaluation_service.record_answer(SUPPLIER_ID, "cq1", "cs1", Category.CALIDAD, Answer.NO_CUMPLE)

        view = await evaluation_service.load_evaluation(SUPPLIER_ID)

        assert view.source == "submission"
        assert view.submission_id == submitted.id
        assert view.global_score == pytest.approx(100)

    @pytest.mark.asyncio
    async def test_progress_and_unanswered(self, evaluation_service):
        """Progress and unanswered ids reflect recorded answers."""
        await evaluation_service.record_answer(SUPPLIER_ID, "cq3", "cs2", Category.CALIDAD, Answer.CUMPLE)

        progress = await evaluation_service.get_progress(SUPPLIER_ID)
        unanswered = await evaluation_service.get_unanswered_questions(SUPPLIER_ID, Category.CALIDAD)

        assert progress.answered_questions == 1
        assert progress.total_questions == 6
        assert unanswered == ["cq1", "cq2", "cq4"]

    @pytest.mark.asyncio
    async def test_progress_without_evaluation_is_empty(self, evaluation_service):
        """Suppliers without answers report zero progress."""
        progress = await evaluation_service.get_progress(SUPPLIER_ID)
        assert progress.total_questions == 0

    @pytest.mark.asyncio
    async def test_list_evaluations_by_status(self, evaluation_service):
        """Evaluations can be filtered by status."""
        await evaluation_service.record_answer("s-1", "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)
        await evaluation_service.record_answer("s-2", "cq1", "cs1", Category.CALIDAD, Answer.CUMPLE)

        in_progress = await evaluation_service.list_evaluations(EvaluationStatus.IN_PROGRESS)
        approved = await evaluation_service.list_evaluations(EvaluationStatus.APPROVED)

        assert sorted(e.supplier_id for e in in_progress) == ["s-1", "s-2"]
        assert approved == []
