"""
Supplier EPI - Evaluation Schemas

Pydantic schemas for the weighted questionnaire, supplier responses,
evaluation aggregates, submission snapshots and audit validations.

Wire values (calidad, cumple, SALIR, in_progress...) match the documents
stored by the mobile application.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS
# =============================================================================

class Category(str, Enum):
    """Top-level question groups."""
    CALIDAD = "calidad"
    ABASTECIMIENTO = "abastecimiento"


class Answer(str, Enum):
    """Supplier answer to a yes/no question."""
    CUMPLE = "cumple"
    NO_CUMPLE = "no_cumple"


class Classification(str, Enum):
    """Three-tier outcome derived from the global score."""
    SALIR = "SALIR"
    MEJORAR = "MEJORAR"
    CRECER = "CRECER"


CLASSIFICATION_DESCRIPTIONS: Dict[Classification, str] = {
    Classification.CRECER: "Proveedor excelente para desarrollar relación a largo plazo",
    Classification.MEJORAR: "Proveedor aceptable con áreas de mejora identificadas",
    Classification.SALIR: "Proveedor no cumple con estándares mínimos requeridos",
}


class EvaluationStatus(str, Enum):
    """Lifecycle states of an evaluation and its submissions."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class AuditItemStatus(str, Enum):
    """Auditor judgment on a single answer."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


# =============================================================================
# QUESTIONNAIRE
# =============================================================================

class Question(BaseModel):
    """
    A single yes/no question.

    `weight` is kept for the configuration screens only. Point values are
    always derived from the section weight (see scoring.question_point_value).
    """
    id: str = Field(..., min_length=1)
    text: str = ""
    weight: float = 0
    evidence_required: bool = False
    evidence_description: Optional[str] = None


class Section(BaseModel):
    """Named, weighted group of questions."""
    id: str = Field(..., min_length=1)
    title: str = ""
    weight: float = Field(0, ge=0)
    questions: List[Question] = Field(default_factory=list)


class CategoryQuestionnaire(BaseModel):
    """Sections of one category."""
    total_weight: float = 100
    sections: List[Section] = Field(default_factory=list)

    @property
    def question_count(self) -> int:
        return sum(len(section.questions) for section in self.sections)

    @property
    def question_ids(self) -> List[str]:
        return [q.id for section in self.sections for q in section.questions]

    @property
    def sections_weight(self) -> float:
        return sum(section.weight for section in self.sections)


class Questionnaire(BaseModel):
    """The weighted EPI questionnaire for both categories."""
    calidad: CategoryQuestionnaire = Field(default_factory=CategoryQuestionnaire)
    abastecimiento: CategoryQuestionnaire = Field(default_factory=CategoryQuestionnaire)

    def category(self, category: Category) -> CategoryQuestionnaire:
        return getattr(self, Category(category).value)

    def find_section(self, category: Category, section_id: str) -> Optional[Section]:
        for section in self.category(category).sections:
            if section.id == section_id:
                return section
        return None

    def find_question(self, question_id: str) -> Optional[Tuple[Category, Section, Question]]:
        """Locate a question in either category."""
        for category in Category:
            for section in self.category(category).sections:
                for question in section.questions:
                    if question.id == question_id:
                        return category, section, question
        return None


class WeightValidation(BaseModel):
    """Result of checking section weights per category."""
    is_valid: bool
    messages: List[str] = Field(default_factory=list)


# =============================================================================
# RESPONSES & SCORES
# =============================================================================

class SupplierResponse(BaseModel):
    """
    One supplier answer. Immutable: note and evidence_url are patched by
    replacing the instance (model_copy) rather than mutating it.
    """
    model_config = ConfigDict(frozen=True)

    question_id: str
    section_id: str
    category: Category
    answer: Answer
    points_earned: float
    points_possible: float
    timestamp: datetime
    evidence_url: Optional[str] = None
    note: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class Progress(BaseModel):
    """Completion counters for an evaluation."""
    total_questions: int = 0
    answered_questions: int = 0
    percentage_complete: int = 0
    calidad_questions: int = 0
    calidad_answered: int = 0
    abastecimiento_questions: int = 0
    abastecimiento_answered: int = 0


class SectionScore(BaseModel):
    """Per-section scoring breakdown."""
    section_id: str
    section_title: str
    weight: float
    questions_total: int
    questions_answered: int
    points_earned: float
    points_possible: float
    percentage: float


class ScoreCard(BaseModel):
    """Scores derived from a questionnaire and a response set."""
    calidad_score: float = 0
    abastecimiento_score: float = 0
    global_score: float = 0
    classification: Classification = Classification.SALIR
    progress: Progress = Field(default_factory=Progress)


# =============================================================================
# EVALUATION AGGREGATE
# =============================================================================

class EvaluationAggregate(BaseModel):
    """Live, editable record of one supplier's answers and scores."""
    supplier_id: str
    responses: List[SupplierResponse] = Field(default_factory=list)
    calidad_score: float = 0
    abastecimiento_score: float = 0
    global_score: float = 0
    classification: Classification = Classification.SALIR
    progress: Progress = Field(default_factory=Progress)
    status: EvaluationStatus = EvaluationStatus.DRAFT
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_dates(cls, value: datetime) -> datetime:
        return as_utc(value)

    def response_for(self, question_id: str) -> Optional[SupplierResponse]:
        for response in self.responses:
            if response.question_id == question_id:
                return response
        return None

    def responses_for(self, category: Category) -> List[SupplierResponse]:
        return [r for r in self.responses if r.category == Category(category)]

    def apply_scores(self, card: ScoreCard) -> None:
        self.calidad_score = card.calidad_score
        self.abastecimiento_score = card.abastecimiento_score
        self.global_score = card.global_score
        self.classification = card.classification
        self.progress = card.progress


# =============================================================================
# SUBMISSIONS & AUDIT
# =============================================================================

SUBMISSION_SCHEMA_VERSION = 2


class AuditValidation(BaseModel):
    """Auditor judgment on one answered question."""
    status: AuditItemStatus = AuditItemStatus.PENDING
    finding: str = ""
    evidence_url: Optional[str] = None


class Submission(BaseModel):
    """
    Point-in-time snapshot of an evaluation, created once per submit.

    Responses and scores are copied verbatim from the aggregate. Review and
    audit fields are updated in place on the same document.
    """
    id: Optional[str] = None
    supplier_id: str
    status: EvaluationStatus = EvaluationStatus.SUBMITTED
    responses: List[SupplierResponse] = Field(default_factory=list)
    calidad_score: float = 0
    abastecimiento_score: float = 0
    global_score: float = 0
    classification: Classification = Classification.SALIR
    progress: Progress = Field(default_factory=Progress)
    can_edit: bool = False
    expires_at: Optional[datetime] = None
    audit_validations: Dict[str, AuditValidation] = Field(default_factory=dict)
    submitted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_comments: str = ""
    audited_at: Optional[datetime] = None
    audited_by: Optional[str] = None
    schema_version: int = SUBMISSION_SCHEMA_VERSION

    @field_validator(
        "expires_at", "submitted_at", "created_at", "updated_at", "reviewed_at", "audited_at"
    )
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def quality_responses(self) -> List[SupplierResponse]:
        return [r for r in self.responses if r.category == Category.CALIDAD]

    @property
    def supply_responses(self) -> List[SupplierResponse]:
        return [r for r in self.responses if r.category == Category.ABASTECIMIENTO]


class EvaluationView(BaseModel):
    """What a reader sees for a supplier: the latest snapshot, else the live draft."""
    source: Literal["submission", "evaluation"]
    supplier_id: str
    submission_id: Optional[str] = None
    status: EvaluationStatus
    responses: List[SupplierResponse] = Field(default_factory=list)
    calidad_score: float = 0
    abastecimiento_score: float = 0
    global_score: float = 0
    classification: Classification = Classification.SALIR
    progress: Progress = Field(default_factory=Progress)
    audit_validations: Dict[str, AuditValidation] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuditPreview(BaseModel):
    """Running comparison shown to the auditor while validating answers."""
    original_score: int
    audit_score: int
    delta: int
    calidad_audit_score: float
    abastecimiento_audit_score: float
    pending_count: int


class AuditResult(BaseModel):
    """Outcome of a finalized audit."""
    submission_id: str
    calidad_score: float
    abastecimiento_score: float
    final_score: int
    classification: Classification
    status: EvaluationStatus
    delta: int
    expires_at: Optional[datetime] = None
