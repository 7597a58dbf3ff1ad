"""
Supplier EPI - Evaluation Service

Supplier-side answers on the live evaluation aggregate.

Every answer is a full read-modify-write of the supplier's document: the
response list is updated in memory, all scores are recomputed from the
current questionnaire and the whole document is written back with a
compare-and-swap on its version.

record_answer does not check whether the supplier may still edit; callers
go through SubmissionWorkflow.answer_question for the gated path.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from supplier_epi.schemas.epi import (
    Answer,
    Category,
    EvaluationAggregate,
    EvaluationStatus,
    EvaluationView,
    Progress,
    SupplierResponse,
    utcnow,
)
from supplier_epi.services import scoring
from supplier_epi.services.questionnaire_service import QuestionnaireService
from supplier_epi.stores.base import EvaluationStore, SubmissionStore
from supplier_epi.utils.error_handling import (
    UnknownQuestionError,
    ValidationException,
)

logger = logging.getLogger(__name__)


def latest_submission(submissions):
    """Most recently created submission (later in the list wins ties)."""
    if not submissions:
        return None
    return max(enumerate(submissions), key=lambda pair: (pair[1].created_at, pair[0]))[1]


class EvaluationService:
    """Record answers, observations and evidence for a supplier."""

    def __init__(
        self,
        questionnaires: QuestionnaireService,
        evaluations: EvaluationStore,
        submissions: SubmissionStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.questionnaires = questionnaires
        self.evaluations = evaluations
        self.submissions = submissions
        self.clock = clock

    async def record_answer(
        self,
        supplier_id: str,
        question_id: str,
        section_id: str,
        category: Category,
        answer: Answer,
    ) -> EvaluationAggregate:
        """
        Create or replace the response for a question and rescore.

        Creates the aggregate on the first answer. Sets status to in_progress
        on every write.
        """
        category = Category(category)
        questionnaire = await self.questionnaires.get_questionnaire()
        section = questionnaire.find_section(category, section_id)
        if section is None or question_id not in {q.id for q in section.questions}:
            raise UnknownQuestionError(question_id)

        now = self.clock()
        evaluation = await self.evaluations.get(supplier_id)
        expected_version = evaluation.version if evaluation else 0
        if evaluation is None:
            evaluation = EvaluationAggregate(supplier_id=supplier_id, created_at=now)

        response = scoring.build_response(
            question_id=question_id,
            section_id=section_id,
            category=category,
            answer=answer,
            points_possible=scoring.question_point_value(section),
            timestamp=now,
        )

        if evaluation.response_for(question_id) is not None:
            responses = [
                response if r.question_id == question_id else r for r in evaluation.responses
            ]
        else:
            responses = [*evaluation.responses, response]

        evaluation.responses = responses
        evaluation.apply_scores(scoring.score_responses(questionnaire, responses))
        evaluation.status = EvaluationStatus.IN_PROGRESS
        evaluation.updated_at = now
        evaluation.version = expected_version + 1

        await self.evaluations.put(supplier_id, evaluation, expected_version=expected_version)
        logger.info(
            f"Supplier {supplier_id} answered {question_id}={Answer(answer).value} "
            f"(global {evaluation.global_score:.1f}, {evaluation.progress.percentage_complete}% complete)"
        )
        return evaluation

    async def record_observation(
        self,
        supplier_id: str,
        question_id: str,
        text: str,
    ) -> Optional[SupplierResponse]:
        """Set the note of an existing response. No-op when unanswered."""
        return await self._patch_response(supplier_id, question_id, note=text)

    async def attach_evidence(
        self,
        supplier_id: str,
        question_id: str,
        url: str,
    ) -> Optional[SupplierResponse]:
        """Set the evidence URL of an existing response. No-op when unanswered."""
        if not url:
            raise ValidationException("Evidence URL is required", field="url")
        return await self._patch_response(supplier_id, question_id, evidence_url=url)

    async def _patch_response(self, supplier_id: str, question_id: str, **fields) -> Optional[SupplierResponse]:
        evaluation = await self.evaluations.get(supplier_id)
        if evaluation is None:
            return None
        existing = evaluation.response_for(question_id)
        if existing is None:
            logger.debug(f"Ignoring {sorted(fields)} for unanswered question {question_id}")
            return None

        patched = existing.model_copy(update=fields)
        evaluation.responses = [
            patched if r.question_id == question_id else r for r in evaluation.responses
        ]
        expected_version = evaluation.version
        evaluation.version += 1
        evaluation.updated_at = self.clock()
        await self.evaluations.put(supplier_id, evaluation, expected_version=expected_version)
        return patched

    async def load_evaluation(self, supplier_id: str) -> Optional[EvaluationView]:
        """
        What a reader should see for a supplier.

        The latest submission snapshot wins over the live aggregate, even when
        the aggregate was updated later.
        """
        submission = latest_submission(await self.submissions.list_by_supplier(supplier_id))
        if submission is not None:
            return EvaluationView(
                source="submission",
                supplier_id=supplier_id,
                submission_id=submission.id,
                status=submission.status,
                responses=submission.responses,
                calidad_score=submission.calidad_score,
                abastecimiento_score=submission.abastecimiento_score,
                global_score=submission.global_score,
                classification=submission.classification,
                progress=submission.progress,
                audit_validations=submission.audit_validations,
                expires_at=submission.expires_at,
                updated_at=submission.updated_at,
            )

        evaluation = await self.evaluations.get(supplier_id)
        if evaluation is None:
            return None
        return EvaluationView(
            source="evaluation",
            supplier_id=supplier_id,
            status=evaluation.status,
            responses=evaluation.responses,
            calidad_score=evaluation.calidad_score,
            abastecimiento_score=evaluation.abastecimiento_score,
            global_score=evaluation.global_score,
            classification=evaluation.classification,
            progress=evaluation.progress,
            updated_at=evaluation.updated_at,
        )

    async def get_progress(self, supplier_id: str) -> Progress:
        """Progress stored with the last write (empty when never answered)."""
        evaluation = await self.evaluations.get(supplier_id)
        return evaluation.progress if evaluation else Progress()

    async def get_unanswered_questions(self, supplier_id: str, category: Category) -> List[str]:
        questionnaire = await self.questionnaires.get_questionnaire()
        evaluation = await self.evaluations.get(supplier_id)
        responses = evaluation.responses if evaluation else []
        return scoring.unanswered_questions(questionnaire, responses, category)

    async def list_evaluations(self, status: Optional[EvaluationStatus] = None) -> List[EvaluationAggregate]:
        return await self.evaluations.list_by_status(status)
