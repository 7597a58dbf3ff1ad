"""
Supplier EPI - Audit Recalibration Engine

Auditor validation of a submitted evaluation.

Each answered question is marked valid or invalid (with a finding). Two
scoring rules coexist on purpose:

- The live preview treats every question of a category as equally weighted
  (valid / total questions in the category).
- The final recalibrated score honours section weights: each valid item is
  worth question_point_value(section).

The two can differ when sections carry different weights and question
counts. The final score replaces the submission's global score and decides
approval (MEJORAR / CRECER) or rejection (SALIR).
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from supplier_epi.config import settings
from supplier_epi.schemas.epi import (
    AuditItemStatus,
    AuditPreview,
    AuditResult,
    AuditValidation,
    Category,
    Classification,
    EvaluationStatus,
    Questionnaire,
    Submission,
    utcnow,
)
from supplier_epi.services import scoring
from supplier_epi.services.questionnaire_service import QuestionnaireService
from supplier_epi.services.submission_workflow import (
    SubmissionWorkflow,
    approval_is_current,
    transition,
)
from supplier_epi.stores.base import SubmissionStore
from supplier_epi.utils.error_handling import (
    AuditLockedError,
    IncompleteAuditError,
    InvalidTransitionError,
    MissingFindingError,
    SubmissionNotFoundError,
    UnknownQuestionError,
    ValidationException,
)

logger = logging.getLogger(__name__)


# Label shown while an approval is still in force
LOCKED_AUDIT_LABEL = "Vigente"


# ===========================================
# SCORING
# ===========================================

def initial_validations(submission: Submission) -> Dict[str, AuditValidation]:
    """Saved validations of a submission, or every answered question pending."""
    if submission.audit_validations:
        return {qid: v.model_copy() for qid, v in submission.audit_validations.items()}
    return {r.question_id: AuditValidation() for r in submission.responses}


def merge_validations(
    submission: Submission,
    updates: Dict[str, AuditValidation],
) -> Dict[str, AuditValidation]:
    """
    Apply edited validations on top of the submission's current ones.

    The result has one entry per answered question; questions the caller
    left out keep their saved state, or stay pending.
    """
    answered = [r.question_id for r in submission.responses]
    for question_id in updates:
        if question_id not in answered:
            raise UnknownQuestionError(question_id)

    saved = initial_validations(submission)
    merged = {qid: saved.get(qid, AuditValidation()) for qid in answered}
    merged.update(updates)
    return merged


def _is_valid(validations: Dict[str, AuditValidation], question_id: str) -> bool:
    validation = validations.get(question_id)
    return validation is not None and validation.status == AuditItemStatus.VALID


def preview_category_score(
    questionnaire: Questionnaire,
    validations: Dict[str, AuditValidation],
    category: Category,
) -> float:
    """Share of a category's questions marked valid, all questions weighted equally."""
    question_ids = questionnaire.category(category).question_ids
    if not question_ids:
        return 0.0
    valid = sum(1 for qid in question_ids if _is_valid(validations, qid))
    return valid / len(question_ids) * 100


def final_category_score(
    questionnaire: Questionnaire,
    validations: Dict[str, AuditValidation],
    category: Category,
) -> float:
    """Weighted category score from valid items only."""
    sections = questionnaire.category(category).sections
    possible = sum(section.weight for section in sections)
    if possible <= 0:
        return 0.0

    earned = 0.0
    for section in sections:
        point_value = scoring.question_point_value(section)
        earned += sum(point_value for q in section.questions if _is_valid(validations, q.id))
    return earned / possible * 100


def pending_count(validations: Dict[str, AuditValidation]) -> int:
    return sum(1 for v in validations.values() if v.status == AuditItemStatus.PENDING)


def invalid_without_finding(validations: Dict[str, AuditValidation]) -> List[str]:
    return [
        qid for qid, v in validations.items()
        if v.status == AuditItemStatus.INVALID and not v.finding.strip()
    ]


def preview(
    questionnaire: Questionnaire,
    submission: Submission,
    validations: Dict[str, AuditValidation],
) -> AuditPreview:
    """Original score next to the running audit score."""
    calidad = preview_category_score(questionnaire, validations, Category.CALIDAD)
    abastecimiento = preview_category_score(questionnaire, validations, Category.ABASTECIMIENTO)
    audit_score = scoring.global_score(calidad, abastecimiento)
    original_score = submission.global_score

    return AuditPreview(
        original_score=scoring.round_score(original_score),
        audit_score=scoring.round_score(audit_score),
        delta=scoring.round_score(audit_score - original_score),
        calidad_audit_score=calidad,
        abastecimiento_audit_score=abastecimiento,
        pending_count=pending_count(validations),
    )


def can_recalibrate(submission: Optional[Submission], now: datetime) -> bool:
    """False only while an approval has not expired."""
    return not approval_is_current(submission, now)


def audit_state_label(submission: Optional[Submission], now: datetime) -> Optional[str]:
    if can_recalibrate(submission, now):
        return None
    return LOCKED_AUDIT_LABEL


# ===========================================
# EDITING SESSION
# ===========================================

class AuditSession:
    """
    In-memory validation state for one submission.

    Nothing is persisted until AuditService.save_audit is called with
    session.validations.
    """

    def __init__(self, questionnaire: Questionnaire, submission: Submission):
        self.questionnaire = questionnaire
        self.submission = submission
        self.validations = initial_validations(submission)

    def _item(self, question_id: str) -> AuditValidation:
        if question_id not in self.validations:
            raise UnknownQuestionError(question_id)
        return self.validations[question_id]

    def set_status(self, question_id: str, status: AuditItemStatus) -> AuditValidation:
        item = self._item(question_id).model_copy(update={"status": AuditItemStatus(status)})
        self.validations[question_id] = item
        return item

    def set_finding(self, question_id: str, finding: str) -> AuditValidation:
        item = self._item(question_id).model_copy(update={"finding": finding})
        self.validations[question_id] = item
        return item

    def attach_evidence(self, question_id: str, url: str) -> AuditValidation:
        if not url:
            raise ValidationException("Evidence URL is required", field="url")
        item = self._item(question_id).model_copy(update={"evidence_url": url})
        self.validations[question_id] = item
        return item

    @property
    def pending_count(self) -> int:
        return pending_count(self.validations)

    def preview(self) -> AuditPreview:
        return preview(self.questionnaire, self.submission, self.validations)


# ===========================================
# SERVICE
# ===========================================

class AuditService:
    """Start, preview and finalize audits of submitted evaluations."""

    def __init__(
        self,
        questionnaires: QuestionnaireService,
        submissions: SubmissionStore,
        workflow: SubmissionWorkflow,
        clock: Callable[[], datetime] = utcnow,
        validity_days: Optional[int] = None,
    ):
        self.questionnaires = questionnaires
        self.submissions = submissions
        self.workflow = workflow
        self.clock = clock
        self.validity_days = validity_days if validity_days is not None else settings.audit_validity_days

    async def _get_submission(self, submission_id: str) -> Submission:
        submission = await self.submissions.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    async def start_audit(self, submission_id: str) -> AuditSession:
        """
        Open an editing session on a submission.

        An expired approval is moved back to submitted first. A current
        approval is read-only.
        """
        submission = await self._get_submission(submission_id)
        if not can_recalibrate(submission, self.clock()):
            raise AuditLockedError(submission_id, submission.expires_at)

        if submission.status == EvaluationStatus.APPROVED:
            submission = await self.workflow.reopen_for_audit(submission_id)
        elif submission.status != EvaluationStatus.SUBMITTED:
            raise InvalidTransitionError(submission.status.value, "audit")

        questionnaire = await self.questionnaires.get_questionnaire()
        return AuditSession(questionnaire, submission)

    async def preview(
        self,
        submission_id: str,
        validations: Optional[Dict[str, AuditValidation]] = None,
    ) -> AuditPreview:
        submission = await self._get_submission(submission_id)
        questionnaire = await self.questionnaires.get_questionnaire()
        if validations is None:
            validations = initial_validations(submission)
        else:
            validations = merge_validations(submission, validations)
        return preview(questionnaire, submission, validations)

    async def save_audit(
        self,
        submission_id: str,
        auditor_id: str,
        validations: Dict[str, AuditValidation],
        expires_at: Optional[datetime] = None,
    ) -> AuditResult:
        """
        Finalize an audit.

        Every answered question must be judged, either in validations or in
        the saved state, and every invalid item needs a finding. The
        weighted final score replaces the global score; SALIR rejects the
        submission, anything else approves it until expires_at.
        """
        submission = await self._get_submission(submission_id)
        validations = merge_validations(submission, validations)

        pending = pending_count(validations)
        if pending:
            raise IncompleteAuditError(pending)
        missing = invalid_without_finding(validations)
        if missing:
            raise MissingFindingError(missing)

        questionnaire = await self.questionnaires.get_questionnaire()
        now = self.clock()

        calidad = final_category_score(questionnaire, validations, Category.CALIDAD)
        abastecimiento = final_category_score(questionnaire, validations, Category.ABASTECIMIENTO)
        final_score = scoring.round_score(scoring.global_score(calidad, abastecimiento))
        classification = scoring.classify(final_score)
        delta = preview(questionnaire, submission, validations).delta

        target = (
            EvaluationStatus.REJECTED
            if classification == Classification.SALIR
            else EvaluationStatus.APPROVED
        )
        transition(submission.status, target)

        if target == EvaluationStatus.APPROVED:
            if expires_at is None:
                expires_at = now + timedelta(days=self.validity_days)
            elif expires_at <= now:
                raise ValidationException("Expiry date must be in the future", field="expires_at")

        await self.submissions.patch(submission_id, {
            "audit_validations": validations,
            "audited_at": now,
            "audited_by": auditor_id,
            "calidad_score": scoring.round_score(calidad),
            "abastecimiento_score": scoring.round_score(abastecimiento),
            "updated_at": now,
        })

        if target == EvaluationStatus.REJECTED:
            updated = await self.workflow.reject(
                submission_id,
                submission.supplier_id,
                auditor_id,
                comments=f"Auditoría Completada: Clasificación SALIR. Score: {final_score}",
                override_score=final_score,
                override_classification=classification,
            )
        else:
            updated = await self.workflow.approve(
                submission_id,
                submission.supplier_id,
                auditor_id,
                comments=f"Auditoría Realizada. Recalibración: {delta:+d} Pts. Nuevo Score: {final_score}",
                expires_at=expires_at,
                override_score=final_score,
                override_classification=classification,
            )

        logger.info(
            f"Audit of EPI {submission_id} by {auditor_id}: {final_score} "
            f"({classification.value}, delta {delta:+d})"
        )
        return AuditResult(
            submission_id=submission_id,
            calidad_score=scoring.round_score(calidad),
            abastecimiento_score=scoring.round_score(abastecimiento),
            final_score=final_score,
            classification=classification,
            status=updated.status,
            delta=delta,
            expires_at=updated.expires_at,
        )

    async def recalibration_status(self, submission_id: str) -> Dict[str, object]:
        submission = await self._get_submission(submission_id)
        now = self.clock()
        return {
            "submission_id": submission_id,
            "status": submission.status,
            "can_recalibrate": can_recalibrate(submission, now),
            "label": audit_state_label(submission, now),
            "expires_at": submission.expires_at,
        }
