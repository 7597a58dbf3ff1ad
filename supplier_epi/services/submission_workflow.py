"""
Supplier EPI - Submission Workflow

Lifecycle of a supplier evaluation:

    draft -> in_progress -> submitted -> approved | rejected | revision_requested
    revision_requested -> in_progress (supplier edits again) -> submitted
    approved -> submitted (re-audit once the approval has expired)

Every status change goes through transition(), which only accepts the edges
declared in ALLOWED_TRANSITIONS. Editability is decided from the latest
submission snapshot, never from the live aggregate.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from supplier_epi.schemas.epi import (
    Answer,
    Category,
    Classification,
    EvaluationAggregate,
    EvaluationStatus,
    Submission,
    utcnow,
)
from supplier_epi.services.evaluation_service import EvaluationService, latest_submission
from supplier_epi.stores.base import EvaluationStore, SubmissionStore, SupplierProfileStore
from supplier_epi.utils.error_handling import (
    EvaluationLockedError,
    EvaluationNotFoundError,
    IncompleteEvaluationError,
    InvalidTransitionError,
    SubmissionNotFoundError,
    ValidationException,
)

logger = logging.getLogger(__name__)


S = EvaluationStatus

ALLOWED_TRANSITIONS: Dict[EvaluationStatus, FrozenSet[EvaluationStatus]] = {
    S.DRAFT: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.IN_PROGRESS, S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.APPROVED, S.REJECTED, S.REVISION_REQUESTED}),
    S.REVISION_REQUESTED: frozenset({S.IN_PROGRESS, S.SUBMITTED}),
    S.APPROVED: frozenset({S.SUBMITTED}),
    S.REJECTED: frozenset(),
}

# Submission states in which the supplier may change answers
EDITABLE_SUBMISSION_STATES = frozenset({S.DRAFT, S.REVISION_REQUESTED})

# Supplier profile status values
PROFILE_SUBMITTED = "epi_submitted"
PROFILE_APPROVED = "epi_approved"
PROFILE_REJECTED = "epi_rejected"
PROFILE_REVISION_REQUESTED = "epi_revision_requested"


def transition(current: EvaluationStatus, target: EvaluationStatus) -> EvaluationStatus:
    """Validate a lifecycle edge and return the new state."""
    current, target = EvaluationStatus(current), EvaluationStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


def approval_is_current(submission: Optional[Submission], now: datetime) -> bool:
    """True while an approved submission has not reached its expiry."""
    if submission is None or submission.status != S.APPROVED:
        return False
    return submission.expires_at is not None and submission.expires_at > now


def submission_allows_edit(submission: Optional[Submission]) -> bool:
    """Editability rule applied to the latest submission."""
    if submission is None:
        return True
    if submission.status in EDITABLE_SUBMISSION_STATES:
        return True
    return submission.status == S.SUBMITTED and submission.can_edit


class SubmissionWorkflow:
    """Submit, lock and review supplier evaluations."""

    def __init__(
        self,
        evaluations: EvaluationStore,
        submissions: SubmissionStore,
        profiles: SupplierProfileStore,
        evaluation_service: Optional[EvaluationService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.evaluations = evaluations
        self.submissions = submissions
        self.profiles = profiles
        self.evaluation_service = evaluation_service
        self.clock = clock

    # ===========================================
    # QUERIES
    # ===========================================

    async def latest_submission(self, supplier_id: str) -> Optional[Submission]:
        return latest_submission(await self.submissions.list_by_supplier(supplier_id))

    async def can_edit(self, supplier_id: str) -> bool:
        return submission_allows_edit(await self.latest_submission(supplier_id))

    async def _get_submission(self, submission_id: str) -> Submission:
        submission = await self.submissions.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    # ===========================================
    # SUPPLIER ACTIONS
    # ===========================================

    async def answer_question(
        self,
        supplier_id: str,
        question_id: str,
        section_id: str,
        category: Category,
        answer: Answer,
    ) -> EvaluationAggregate:
        """record_answer, refused while the evaluation is locked for review."""
        if self.evaluation_service is None:
            raise RuntimeError("SubmissionWorkflow was created without an EvaluationService")
        if not await self.can_edit(supplier_id):
            raise EvaluationLockedError(supplier_id)
        return await self.evaluation_service.record_answer(
            supplier_id, question_id, section_id, category, answer
        )

    async def submit(self, supplier_id: str) -> Submission:
        """
        Freeze the evaluation into a new submission snapshot.

        Completeness is checked against the progress stored with the last
        answer, not against the current questionnaire.
        """
        evaluation = await self.evaluations.get(supplier_id)
        if evaluation is None:
            raise EvaluationNotFoundError(supplier_id)

        calidad_answered = len(evaluation.responses_for(Category.CALIDAD))
        abastecimiento_answered = len(evaluation.responses_for(Category.ABASTECIMIENTO))
        calidad_total = evaluation.progress.calidad_questions
        abastecimiento_total = evaluation.progress.abastecimiento_questions

        if calidad_answered < calidad_total:
            raise IncompleteEvaluationError(Category.CALIDAD.value, calidad_answered, calidad_total)
        if abastecimiento_answered < abastecimiento_total:
            raise IncompleteEvaluationError(
                Category.ABASTECIMIENTO.value, abastecimiento_answered, abastecimiento_total
            )

        now = self.clock()
        previous = await self.latest_submission(supplier_id)
        if previous is not None and not submission_allows_edit(previous):
            if previous.status != S.APPROVED or approval_is_current(previous, now):
                raise InvalidTransitionError(previous.status.value, S.SUBMITTED.value)
        transition(evaluation.status, S.SUBMITTED)

        submission = Submission(
            supplier_id=supplier_id,
            status=S.SUBMITTED,
            responses=evaluation.responses,
            calidad_score=evaluation.calidad_score,
            abastecimiento_score=evaluation.abastecimiento_score,
            global_score=evaluation.global_score,
            classification=evaluation.classification,
            progress=evaluation.progress,
            can_edit=False,
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )
        submission.id = await self.submissions.create(submission)

        await self.profiles.update(supplier_id, {
            "supplier_status": PROFILE_SUBMITTED,
            "epi_submitted_at": now,
        })
        await self.evaluations.patch(supplier_id, {"status": S.SUBMITTED, "updated_at": now})

        logger.info(f"EPI submitted for supplier {supplier_id} as {submission.id}")
        return submission

    # ===========================================
    # AUDITOR DECISIONS
    # ===========================================

    async def approve(
        self,
        submission_id: str,
        supplier_id: str,
        auditor_id: str,
        comments: str = "",
        expires_at: Optional[datetime] = None,
        override_score: Optional[float] = None,
        override_classification: Optional[Classification] = None,
    ) -> Submission:
        submission = await self._get_submission(submission_id)
        transition(submission.status, S.APPROVED)

        now = self.clock()
        if expires_at is not None and expires_at <= now:
            raise ValidationException("Expiry date must be in the future", field="expires_at")

        fields = {
            "status": S.APPROVED,
            "can_edit": False,
            "reviewed_at": now,
            "reviewed_by": auditor_id,
            "review_comments": comments or "",
            "updated_at": now,
        }
        if expires_at is not None:
            fields["expires_at"] = expires_at
        if override_score is not None:
            fields["global_score"] = override_score
        if override_classification is not None:
            fields["classification"] = Classification(override_classification)
        await self.submissions.patch(submission_id, fields)

        profile = {
            "supplier_status": PROFILE_APPROVED,
            "approved": True,
            "can_search_match": True,
            "epi_approved_at": now,
            "epi_approved_by": auditor_id,
        }
        if expires_at is not None:
            profile["epi_expires_at"] = expires_at
        await self.profiles.update(supplier_id, profile)
        await self._sync_evaluation_status(supplier_id, S.APPROVED)

        logger.info(f"EPI {submission_id} approved by {auditor_id}")
        return await self._get_submission(submission_id)

    async def reject(
        self,
        submission_id: str,
        supplier_id: str,
        auditor_id: str,
        comments: str = "",
        override_score: Optional[float] = None,
        override_classification: Optional[Classification] = None,
    ) -> Submission:
        submission = await self._get_submission(submission_id)
        transition(submission.status, S.REJECTED)

        now = self.clock()
        fields = {
            "status": S.REJECTED,
            "can_edit": False,
            "reviewed_at": now,
            "reviewed_by": auditor_id,
            "review_comments": comments or "",
            "updated_at": now,
        }
        if override_score is not None:
            fields["global_score"] = override_score
        if override_classification is not None:
            fields["classification"] = Classification(override_classification)
        await self.submissions.patch(submission_id, fields)

        await self.profiles.update(supplier_id, {
            "supplier_status": PROFILE_REJECTED,
            "approved": False,
            "can_search_match": False,
            "epi_rejected_at": now,
        })
        await self._sync_evaluation_status(supplier_id, S.REJECTED)

        logger.info(f"EPI {submission_id} rejected by {auditor_id}")
        return await self._get_submission(submission_id)

    async def request_revision(
        self,
        submission_id: str,
        supplier_id: str,
        auditor_id: str,
        comments: str,
    ) -> Submission:
        """Send the evaluation back to the supplier; re-opens editing."""
        submission = await self._get_submission(submission_id)
        transition(submission.status, S.REVISION_REQUESTED)

        now = self.clock()
        await self.submissions.patch(submission_id, {
            "status": S.REVISION_REQUESTED,
            "can_edit": True,
            "reviewed_at": now,
            "reviewed_by": auditor_id,
            "review_comments": comments,
            "updated_at": now,
        })
        await self.profiles.update(supplier_id, {"supplier_status": PROFILE_REVISION_REQUESTED})
        await self._sync_evaluation_status(supplier_id, S.REVISION_REQUESTED)

        logger.info(f"Revision requested on EPI {submission_id} by {auditor_id}")
        return await self._get_submission(submission_id)

    async def reopen_editing(self, submission_id: str, auditor_id: str) -> Submission:
        """Let the supplier edit a submitted evaluation without a formal review."""
        submission = await self._get_submission(submission_id)
        if submission.status != S.SUBMITTED:
            raise InvalidTransitionError(submission.status.value, "submitted (editable)")

        await self.submissions.patch(submission_id, {
            "can_edit": True,
            "reviewed_by": auditor_id,
            "updated_at": self.clock(),
        })
        logger.info(f"Editing re-opened on EPI {submission_id} by {auditor_id}")
        return await self._get_submission(submission_id)

    async def reopen_for_audit(self, submission_id: str) -> Submission:
        """Move an expired approval back to submitted so it can be audited again."""
        submission = await self._get_submission(submission_id)
        if approval_is_current(submission, self.clock()):
            raise InvalidTransitionError(submission.status.value, S.SUBMITTED.value)
        transition(submission.status, S.SUBMITTED)

        await self.submissions.patch(submission_id, {
            "status": S.SUBMITTED,
            "can_edit": False,
            "updated_at": self.clock(),
        })
        logger.info(f"EPI {submission_id} re-opened for recalibration")
        return await self._get_submission(submission_id)

    async def _sync_evaluation_status(self, supplier_id: str, status: EvaluationStatus) -> None:
        # the live aggregate mirrors review outcomes for list_evaluations
        if await self.evaluations.get(supplier_id) is not None:
            await self.evaluations.patch(supplier_id, {"status": status})
