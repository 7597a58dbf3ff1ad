"""
Supplier EPI - In-Memory Stores

Dictionary-backed implementations of the store contracts. Documents are
kept in their JSON form, so reads always hand out fresh copies, the same
way a remote document store would.
"""

import copy
import uuid
from typing import Any, Dict, List, Optional

from supplier_epi.schemas.epi import (
    EvaluationAggregate,
    EvaluationStatus,
    Questionnaire,
    Submission,
)
from supplier_epi.services.legacy_migration import document_to_submission
from supplier_epi.utils.error_handling import (
    ConcurrentModificationError,
    EvaluationNotFoundError,
    SubmissionNotFoundError,
)


def merge_document(model_cls, document: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a partial update and return the validated JSON document."""
    current = model_cls.model_validate(document).model_dump()
    current.update(fields)
    return model_cls.model_validate(current).model_dump(mode="json")


class InMemoryConfigurationStore:
    """Single questionnaire document."""

    def __init__(self, questionnaire: Optional[Questionnaire] = None):
        self._document: Optional[Dict[str, Any]] = (
            questionnaire.model_dump(mode="json") if questionnaire else None
        )

    async def get(self) -> Optional[Questionnaire]:
        if self._document is None:
            return None
        return Questionnaire.model_validate(copy.deepcopy(self._document))

    async def put(self, questionnaire: Questionnaire) -> None:
        self._document = questionnaire.model_dump(mode="json")


class InMemoryEvaluationStore:
    """Evaluation documents keyed by supplier id."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    async def get(self, supplier_id: str) -> Optional[EvaluationAggregate]:
        document = self._documents.get(supplier_id)
        if document is None:
            return None
        return EvaluationAggregate.model_validate(copy.deepcopy(document))

    async def put(
        self,
        supplier_id: str,
        evaluation: EvaluationAggregate,
        expected_version: Optional[int] = None,
    ) -> None:
        if expected_version is not None:
            stored = self._documents.get(supplier_id)
            actual = stored["version"] if stored else 0
            if actual != expected_version:
                raise ConcurrentModificationError(supplier_id, expected_version, actual)
        self._documents[supplier_id] = evaluation.model_dump(mode="json")

    async def patch(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        document = self._documents.get(supplier_id)
        if document is None:
            raise EvaluationNotFoundError(supplier_id)
        self._documents[supplier_id] = merge_document(EvaluationAggregate, document, fields)

    async def list_by_status(self, status: Optional[EvaluationStatus] = None) -> List[EvaluationAggregate]:
        evaluations = [
            EvaluationAggregate.model_validate(copy.deepcopy(doc))
            for doc in self._documents.values()
        ]
        if status is None:
            return evaluations
        return [e for e in evaluations if e.status == EvaluationStatus(status)]


class InMemorySubmissionStore:
    """Submission documents keyed by generated id, in creation order."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    async def create(self, submission: Submission) -> str:
        submission_id = submission.id or uuid.uuid4().hex
        document = submission.model_copy(update={"id": submission_id}).model_dump(mode="json")
        self._documents[submission_id] = document
        return submission_id

    async def get(self, submission_id: str) -> Optional[Submission]:
        document = self._documents.get(submission_id)
        if document is None:
            return None
        return document_to_submission(copy.deepcopy(document))

    async def list_by_supplier(self, supplier_id: str) -> List[Submission]:
        submissions = [
            document_to_submission(copy.deepcopy(doc)) for doc in self._documents.values()
        ]
        return [s for s in submissions if s.supplier_id == supplier_id]

    async def patch(self, submission_id: str, fields: Dict[str, Any]) -> None:
        submission = await self.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        self._documents[submission_id] = merge_document(
            Submission, submission.model_dump(), fields
        )

    async def list_raw(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._documents.values()]

    async def replace_raw(self, submission_id: str, document: Dict[str, Any]) -> None:
        self._documents[submission_id] = copy.deepcopy(document)

    def seed_raw(self, document: Dict[str, Any]) -> str:
        """Insert a document exactly as given (legacy imports, fixtures)."""
        submission_id = document.get("id") or uuid.uuid4().hex
        self._documents[submission_id] = {**copy.deepcopy(document), "id": submission_id}
        return submission_id


class InMemorySupplierProfileStore:
    """Accumulates profile flag writes per supplier."""

    def __init__(self):
        self.profiles: Dict[str, Dict[str, Any]] = {}

    async def update(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        self.profiles.setdefault(supplier_id, {}).update(fields)
