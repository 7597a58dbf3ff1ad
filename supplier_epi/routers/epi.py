"""
Supplier EPI - Router

API endpoints for the supplier EPI (evaluation of supplier performance):

- Questionnaire administration and weight validation
- Supplier answers, observations and evidence
- Submission and auditor review decisions
- Audit recalibration of submitted evaluations
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from supplier_epi.dependencies import (
    EpiStores,
    get_audit_service,
    get_epi_stores,
    get_evaluation_service,
    get_questionnaire_service,
    get_submission_workflow,
)
from supplier_epi.schemas.epi import (
    Answer,
    AuditPreview,
    AuditResult,
    AuditValidation,
    Category,
    Classification,
    EvaluationAggregate,
    EvaluationStatus,
    EvaluationView,
    Progress,
    Questionnaire,
    Submission,
    SupplierResponse,
    WeightValidation,
)
from supplier_epi.services.audit_recalibration import AuditService
from supplier_epi.services.evaluation_service import EvaluationService
from supplier_epi.services.legacy_migration import migrate_legacy_submissions
from supplier_epi.services.questionnaire_service import QuestionnaireService, validate_weights
from supplier_epi.services.submission_workflow import SubmissionWorkflow
from supplier_epi.utils.error_handling import (
    EvaluationNotFoundError,
    SubmissionNotFoundError,
)


router = APIRouter(prefix="/epi", tags=["Supplier EPI"])


# ===========================================
# SCHEMAS
# ===========================================

class AnswerRequest(BaseModel):
    """Answer to a single questionnaire question."""
    section_id: str
    category: Category
    answer: Answer


class ObservationRequest(BaseModel):
    text: str


class EvidenceRequest(BaseModel):
    url: str = Field(..., min_length=1)


class CanEditResponse(BaseModel):
    supplier_id: str
    can_edit: bool


class UnansweredResponse(BaseModel):
    supplier_id: str
    category: Category
    question_ids: List[str]


class ApproveRequest(BaseModel):
    """Auditor approval of a submission."""
    auditor_id: str
    comments: str = ""
    expires_at: Optional[datetime] = None
    override_score: Optional[float] = Field(None, ge=0, le=100)
    override_classification: Optional[Classification] = None


class RejectRequest(BaseModel):
    auditor_id: str
    comments: str = ""
    override_score: Optional[float] = Field(None, ge=0, le=100)
    override_classification: Optional[Classification] = None


class RevisionRequest(BaseModel):
    auditor_id: str
    comments: str = Field(..., min_length=1)


class ReopenRequest(BaseModel):
    auditor_id: str


class AuditPreviewRequest(BaseModel):
    """Validations being edited; omitted means the saved ones."""
    validations: Optional[Dict[str, AuditValidation]] = None


class AuditSaveRequest(BaseModel):
    auditor_id: str
    validations: Dict[str, AuditValidation]
    expires_at: Optional[datetime] = None


class RecalibrationStatusResponse(BaseModel):
    submission_id: str
    status: EvaluationStatus
    can_recalibrate: bool
    label: Optional[str] = None
    expires_at: Optional[datetime] = None


class MigrationResponse(BaseModel):
    migrated: int


# ===========================================
# HELPER FUNCTIONS
# ===========================================

async def get_submission_or_404(submission_id: str, stores: EpiStores) -> Submission:
    submission = await stores.submissions.get(submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    return submission


# ===========================================
# QUESTIONNAIRE ENDPOINTS
# ===========================================

@router.get(
    "/questionnaire",
    response_model=Questionnaire,
    summary="Get EPI questionnaire",
)
async def get_questionnaire(
    service: QuestionnaireService = Depends(get_questionnaire_service),
):
    """Current questionnaire, or the built-in default when none is stored."""
    return await service.get_questionnaire()


@router.put(
    "/questionnaire",
    response_model=Questionnaire,
    summary="Save EPI questionnaire",
    description="Section weights of each category must add up to 100.",
)
async def save_questionnaire(
    questionnaire: Questionnaire,
    service: QuestionnaireService = Depends(get_questionnaire_service),
):
    return await service.save_questionnaire(questionnaire)


@router.post(
    "/questionnaire/validate",
    response_model=WeightValidation,
    summary="Validate section weights without saving",
)
async def validate_questionnaire(questionnaire: Questionnaire):
    return validate_weights(questionnaire)


# ===========================================
# SUPPLIER ENDPOINTS
# ===========================================

@router.put(
    "/suppliers/{supplier_id}/answers/{question_id}",
    response_model=EvaluationAggregate,
    summary="Record an answer",
)
async def record_answer(
    supplier_id: str,
    question_id: str,
    request: AnswerRequest,
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    """
    Create or replace the supplier's answer to a question.

    Refused with 409 while the latest submission is locked for review.
    """
    return await workflow.answer_question(
        supplier_id, question_id, request.section_id, request.category, request.answer
    )


@router.put(
    "/suppliers/{supplier_id}/answers/{question_id}/observation",
    response_model=Optional[SupplierResponse],
    summary="Set the observation of an answer",
)
async def record_observation(
    supplier_id: str,
    question_id: str,
    request: ObservationRequest,
    service: EvaluationService = Depends(get_evaluation_service),
):
    return await service.record_observation(supplier_id, question_id, request.text)


@router.put(
    "/suppliers/{supplier_id}/answers/{question_id}/evidence",
    response_model=Optional[SupplierResponse],
    summary="Attach evidence to an answer",
)
async def attach_evidence(
    supplier_id: str,
    question_id: str,
    request: EvidenceRequest,
    service: EvaluationService = Depends(get_evaluation_service),
):
    return await service.attach_evidence(supplier_id, question_id, request.url)


@router.get(
    "/suppliers/{supplier_id}/evaluation",
    response_model=EvaluationView,
    summary="Load a supplier's evaluation",
    description="The latest submission snapshot takes precedence over the live evaluation.",
)
async def load_evaluation(
    supplier_id: str,
    service: EvaluationService = Depends(get_evaluation_service),
):
    view = await service.load_evaluation(supplier_id)
    if view is None:
        raise EvaluationNotFoundError(supplier_id)
    return view


@router.get(
    "/suppliers/{supplier_id}/progress",
    response_model=Progress,
    summary="Get completion progress",
)
async def get_progress(
    supplier_id: str,
    service: EvaluationService = Depends(get_evaluation_service),
):
    return await service.get_progress(supplier_id)


@router.get(
    "/suppliers/{supplier_id}/unanswered",
    response_model=UnansweredResponse,
    summary="List unanswered questions of a category",
)
async def get_unanswered_questions(
    supplier_id: str,
    category: Category = Query(...),
    service: EvaluationService = Depends(get_evaluation_service),
):
    question_ids = await service.get_unanswered_questions(supplier_id, category)
    return UnansweredResponse(supplier_id=supplier_id, category=category, question_ids=question_ids)


@router.get(
    "/suppliers/{supplier_id}/can-edit",
    response_model=CanEditResponse,
    summary="Check whether the supplier may still edit",
)
async def can_edit(
    supplier_id: str,
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    return CanEditResponse(supplier_id=supplier_id, can_edit=await workflow.can_edit(supplier_id))


@router.post(
    "/suppliers/{supplier_id}/submit",
    response_model=Submission,
    status_code=status.HTTP_201_CREATED,
    summary="Submit the evaluation for review",
)
async def submit_evaluation(
    supplier_id: str,
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    """Every question of both categories must be answered."""
    return await workflow.submit(supplier_id)


@router.get(
    "/evaluations",
    response_model=List[EvaluationAggregate],
    summary="List evaluations",
)
async def list_evaluations(
    status_filter: Optional[EvaluationStatus] = Query(None, alias="status"),
    service: EvaluationService = Depends(get_evaluation_service),
):
    return await service.list_evaluations(status_filter)


# ===========================================
# REVIEW ENDPOINTS
# ===========================================

@router.post(
    "/submissions/{submission_id}/approve",
    response_model=Submission,
    summary="Approve a submission",
)
async def approve_submission(
    submission_id: str,
    request: ApproveRequest,
    stores: EpiStores = Depends(get_epi_stores),
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    submission = await get_submission_or_404(submission_id, stores)
    return await workflow.approve(
        submission_id,
        submission.supplier_id,
        request.auditor_id,
        comments=request.comments,
        expires_at=request.expires_at,
        override_score=request.override_score,
        override_classification=request.override_classification,
    )


@router.post(
    "/submissions/{submission_id}/reject",
    response_model=Submission,
    summary="Reject a submission",
)
async def reject_submission(
    submission_id: str,
    request: RejectRequest,
    stores: EpiStores = Depends(get_epi_stores),
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    submission = await get_submission_or_404(submission_id, stores)
    return await workflow.reject(
        submission_id,
        submission.supplier_id,
        request.auditor_id,
        comments=request.comments,
        override_score=request.override_score,
        override_classification=request.override_classification,
    )


@router.post(
    "/submissions/{submission_id}/request-revision",
    response_model=Submission,
    summary="Send a submission back to the supplier",
)
async def request_revision(
    submission_id: str,
    request: RevisionRequest,
    stores: EpiStores = Depends(get_epi_stores),
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    submission = await get_submission_or_404(submission_id, stores)
    return await workflow.request_revision(
        submission_id, submission.supplier_id, request.auditor_id, request.comments
    )


@router.post(
    "/submissions/{submission_id}/reopen",
    response_model=Submission,
    summary="Re-open editing on a submitted evaluation",
)
async def reopen_editing(
    submission_id: str,
    request: ReopenRequest,
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
):
    return await workflow.reopen_editing(submission_id, request.auditor_id)


# ===========================================
# AUDIT ENDPOINTS
# ===========================================

@router.post(
    "/submissions/{submission_id}/audit/preview",
    response_model=AuditPreview,
    summary="Preview the recalibrated score",
)
async def preview_audit(
    submission_id: str,
    request: AuditPreviewRequest,
    service: AuditService = Depends(get_audit_service),
):
    return await service.preview(submission_id, request.validations)


@router.post(
    "/submissions/{submission_id}/audit",
    response_model=AuditResult,
    summary="Finalize an audit",
    description="Approves the submission unless the recalibrated score classifies as SALIR.",
)
async def save_audit(
    submission_id: str,
    request: AuditSaveRequest,
    service: AuditService = Depends(get_audit_service),
):
    return await service.save_audit(
        submission_id, request.auditor_id, request.validations, expires_at=request.expires_at
    )


@router.get(
    "/submissions/{submission_id}/recalibration",
    response_model=RecalibrationStatusResponse,
    summary="Check whether a submission can be re-audited",
)
async def recalibration_status(
    submission_id: str,
    service: AuditService = Depends(get_audit_service),
):
    return await service.recalibration_status(submission_id)


@router.post(
    "/submissions/{submission_id}/recalibration/start",
    response_model=Submission,
    summary="Start a recalibration audit",
)
async def start_recalibration(
    submission_id: str,
    service: AuditService = Depends(get_audit_service),
):
    """Re-opens an expired approval for audit. Current approvals are read-only."""
    session = await service.start_audit(submission_id)
    return session.submission


# ===========================================
# MAINTENANCE ENDPOINTS
# ===========================================

@router.post(
    "/maintenance/migrate-submissions",
    response_model=MigrationResponse,
    summary="Rewrite legacy submissions in the current schema",
)
async def migrate_submissions(stores: EpiStores = Depends(get_epi_stores)):
    return MigrationResponse(migrated=await migrate_legacy_submissions(stores.submissions))
