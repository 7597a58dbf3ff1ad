"""
Supplier EPI - FastAPI Dependencies

Store and service wiring for the EPI router.

The router never builds stores itself: it asks for get_epi_stores, which
binds the SQLAlchemy stores to the request's session. Tests override that
one dependency to run the API over the in-memory stores.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from supplier_epi.config import settings
from supplier_epi.database import get_async_session
from supplier_epi.schemas.epi import utcnow
from supplier_epi.services.audit_recalibration import AuditService
from supplier_epi.services.evaluation_service import EvaluationService
from supplier_epi.services.questionnaire_service import QuestionnaireService
from supplier_epi.services.submission_workflow import SubmissionWorkflow
from supplier_epi.stores.base import (
    ConfigurationStore,
    EvaluationStore,
    SubmissionStore,
    SupplierProfileStore,
)
from supplier_epi.stores.sql import (
    SqlConfigurationStore,
    SqlEvaluationStore,
    SqlSubmissionStore,
    SqlSupplierProfileStore,
)


@dataclass
class EpiStores:
    """The four collaborators the EPI core reads and writes."""
    configuration: ConfigurationStore
    evaluations: EvaluationStore
    submissions: SubmissionStore
    profiles: SupplierProfileStore


async def get_epi_stores(db: AsyncSession = Depends(get_async_session)) -> EpiStores:
    return EpiStores(
        configuration=SqlConfigurationStore(db),
        evaluations=SqlEvaluationStore(db),
        submissions=SqlSubmissionStore(db),
        profiles=SqlSupplierProfileStore(db),
    )


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_questionnaire_service(stores: EpiStores = Depends(get_epi_stores)) -> QuestionnaireService:
    return QuestionnaireService(stores.configuration)


def get_evaluation_service(
    stores: EpiStores = Depends(get_epi_stores),
    questionnaires: QuestionnaireService = Depends(get_questionnaire_service),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> EvaluationService:
    return EvaluationService(questionnaires, stores.evaluations, stores.submissions, clock=clock)


def get_submission_workflow(
    stores: EpiStores = Depends(get_epi_stores),
    evaluation_service: EvaluationService = Depends(get_evaluation_service),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SubmissionWorkflow:
    return SubmissionWorkflow(
        stores.evaluations,
        stores.submissions,
        stores.profiles,
        evaluation_service=evaluation_service,
        clock=clock,
    )


def get_audit_service(
    stores: EpiStores = Depends(get_epi_stores),
    questionnaires: QuestionnaireService = Depends(get_questionnaire_service),
    workflow: SubmissionWorkflow = Depends(get_submission_workflow),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuditService:
    return AuditService(
        questionnaires,
        stores.submissions,
        workflow,
        clock=clock,
        validity_days=settings.audit_validity_days,
    )
