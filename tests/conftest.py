"""
Supplier EPI - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Dict, List

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from supplier_epi.database import Base
from supplier_epi.dependencies import EpiStores, get_clock, get_epi_stores
from supplier_epi.schemas.epi import (
    Answer,
    AuditItemStatus,
    AuditValidation,
    Category,
    CategoryQuestionnaire,
    Question,
    Questionnaire,
    Section,
)
from supplier_epi.services.audit_recalibration import AuditService
from supplier_epi.services.evaluation_service import EvaluationService
from supplier_epi.services.questionnaire_service import QuestionnaireService
from supplier_epi.services.submission_workflow import SubmissionWorkflow
from supplier_epi.stores.memory import (
    InMemoryConfigurationStore,
    InMemoryEvaluationStore,
    InMemorySubmissionStore,
    InMemorySupplierProfileStore,
)
import supplier_epi.models  # noqa: F401  (register tables on Base.metadata)


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SUPPLIER_ID = "supplier-001"
AUDITOR_ID = "auditor-007"

# Calidad: two sections of weight 50 with two questions each
# Abastecimiento: one section of weight 100 with two questions
CALIDAD_QUESTIONS = {"cs1": ["cq1", "cq2"], "cs2": ["cq3", "cq4"]}
ABASTECIMIENTO_QUESTIONS = {"as1": ["aq1", "aq2"]}


class FixedClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def build_questionnaire(
    calidad: Dict[str, List[str]],
    abastecimiento: Dict[str, List[str]],
    calidad_weights: Dict[str, float] = None,
    abastecimiento_weights: Dict[str, float] = None,
) -> Questionnaire:
    """Questionnaire with evenly weighted sections unless weights are given."""

    def sections(layout, weights):
        even = 100 / len(layout) if layout else 0
        return [
            Section(
                id=section_id,
                title=f"Sección {section_id}",
                weight=(weights or {}).get(section_id, even),
                questions=[Question(id=qid, text=f"Pregunta {qid}") for qid in question_ids],
            )
            for section_id, question_ids in layout.items()
        ]

    return Questionnaire(
        calidad=CategoryQuestionnaire(sections=sections(calidad, calidad_weights)),
        abastecimiento=CategoryQuestionnaire(sections=sections(abastecimiento, abastecimiento_weights)),
    )


def section_of(questionnaire: Questionnaire, question_id: str):
    category, section, _ = questionnaire.find_question(question_id)
    return category, section.id


async def answer_all(
    service,
    questionnaire: Questionnaire,
    supplier_id: str = SUPPLIER_ID,
    answers: Dict[str, Answer] = None,
    skip: tuple = (),
):
    """Answer every question (cumple unless overridden), skipping some ids."""
    answers = answers or {}
    for category in Category:
        for qid in questionnaire.category(category).question_ids:
            if qid in skip:
                continue
            _, section_id = section_of(questionnaire, qid)
            record = getattr(service, "answer_question", None) or service.record_answer
            await record(supplier_id, qid, section_id, category, answers.get(qid, Answer.CUMPLE))


def validations_for(question_ids, status=AuditItemStatus.VALID, finding=""):
    return {qid: AuditValidation(status=status, finding=finding) for qid in question_ids}


# ===========================================
# CORE FIXTURES
# ===========================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def questionnaire() -> Questionnaire:
    return build_questionnaire(CALIDAD_QUESTIONS, ABASTECIMIENTO_QUESTIONS)


@pytest.fixture
def stores(questionnaire: Questionnaire) -> EpiStores:
    return EpiStores(
        configuration=InMemoryConfigurationStore(questionnaire),
        evaluations=InMemoryEvaluationStore(),
        submissions=InMemorySubmissionStore(),
        profiles=InMemorySupplierProfileStore(),
    )


@pytest.fixture
def questionnaire_service(stores: EpiStores) -> QuestionnaireService:
    return QuestionnaireService(stores.configuration)


@pytest.fixture
def evaluation_service(stores, questionnaire_service, clock) -> EvaluationService:
    return EvaluationService(
        questionnaire_service, stores.evaluations, stores.submissions, clock=clock
    )


@pytest.fixture
def workflow(stores, evaluation_service, clock) -> SubmissionWorkflow:
    return SubmissionWorkflow(
        stores.evaluations,
        stores.submissions,
        stores.profiles,
        evaluation_service=evaluation_service,
        clock=clock,
    )


@pytest.fixture
def audit_service(stores, questionnaire_service, workflow, clock) -> AuditService:
    return AuditService(
        questionnaire_service, stores.submissions, workflow, clock=clock, validity_days=365
    )


@pytest_asyncio.fixture
async def submitted(workflow, questionnaire):
    """A fully answered (all cumple) evaluation, submitted for review."""
    await answer_all(workflow, questionnaire)
    return await workflow.submit(SUPPLIER_ID)


# ===========================================
# DATABASE FIXTURES
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory SQLite database for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


# ===========================================
# API FIXTURES
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def client(stores: EpiStores, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """Test client running the API over the in-memory stores."""
    from main import app

    async def override_get_epi_stores():
        return stores

    def override_get_clock() -> Callable[[], datetime]:
        return clock

    app.dependency_overrides[get_epi_stores] = override_get_epi_stores
    app.dependency_overrides[get_clock] = override_get_clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
