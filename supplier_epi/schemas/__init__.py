"""
Supplier EPI - Schemas Package

Pydantic schemas for documents and request/response validation.
"""

from supplier_epi.schemas.epi import (
    # Enums
    Category,
    Answer,
    Classification,
    EvaluationStatus,
    AuditItemStatus,
    CLASSIFICATION_DESCRIPTIONS,
    # Questionnaire
    Question,
    Section,
    CategoryQuestionnaire,
    Questionnaire,
    WeightValidation,
    # Evaluation
    SupplierResponse,
    Progress,
    SectionScore,
    ScoreCard,
    EvaluationAggregate,
    # Submission & audit
    AuditValidation,
    Submission,
    EvaluationView,
    AuditPreview,
    AuditResult,
)
