"""
Supplier EPI - SQLAlchemy Stores

Store contracts implemented over SQLAlchemy 2.0 async sessions. Every
write commits; SQLAlchemy failures are wrapped in StoreError and
propagate to the caller without retry.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supplier_epi.models.epi import (
    EpiConfigDocument,
    EpiSubmissionRecord,
    SupplierEvaluationRecord,
    SupplierProfileRecord,
)
from supplier_epi.schemas.epi import (
    EvaluationAggregate,
    EvaluationStatus,
    Questionnaire,
    Submission,
)
from supplier_epi.services.legacy_migration import document_to_submission
from supplier_epi.stores.memory import merge_document
from supplier_epi.utils.error_handling import (
    ConcurrentModificationError,
    EvaluationNotFoundError,
    StoreError,
    SubmissionNotFoundError,
)

logger = logging.getLogger(__name__)

CONFIG_DOCUMENT_ID = "default"


class _SqlStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, operation: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(operation, original_error=e) from e


class SqlConfigurationStore(_SqlStore):
    """Questionnaire stored in the epi_config table."""

    async def get(self) -> Optional[Questionnaire]:
        try:
            record = await self.db.get(EpiConfigDocument, CONFIG_DOCUMENT_ID)
        except SQLAlchemyError as e:
            raise StoreError("get questionnaire", original_error=e) from e
        if record is None:
            return None
        return Questionnaire.model_validate(record.document)

    async def put(self, questionnaire: Questionnaire) -> None:
        document = questionnaire.model_dump(mode="json")
        record = await self.db.get(EpiConfigDocument, CONFIG_DOCUMENT_ID)
        if record is None:
            self.db.add(EpiConfigDocument(id=CONFIG_DOCUMENT_ID, document=document))
        else:
            record.document = document
        await self._commit("put questionnaire")


class SqlEvaluationStore(_SqlStore):
    """Evaluation aggregates in supplier_evaluations."""

    async def _record(self, supplier_id: str) -> Optional[SupplierEvaluationRecord]:
        try:
            return await self.db.get(SupplierEvaluationRecord, supplier_id)
        except SQLAlchemyError as e:
            raise StoreError(f"get evaluation {supplier_id}", original_error=e) from e

    async def get(self, supplier_id: str) -> Optional[EvaluationAggregate]:
        record = await self._record(supplier_id)
        if record is None:
            return None
        return EvaluationAggregate.model_validate(record.document)

    async def put(
        self,
        supplier_id: str,
        evaluation: EvaluationAggregate,
        expected_version: Optional[int] = None,
    ) -> None:
        record = await self._record(supplier_id)
        if expected_version is not None:
            actual = record.version if record else 0
            if actual != expected_version:
                raise ConcurrentModificationError(supplier_id, expected_version, actual)

        document = evaluation.model_dump(mode="json")
        if record is None:
            self.db.add(SupplierEvaluationRecord(
                supplier_id=supplier_id,
                status=evaluation.status.value,
                version=evaluation.version,
                document=document,
            ))
        else:
            record.status = evaluation.status.value
            record.version = evaluation.version
            record.document = document
        await self._commit(f"put evaluation {supplier_id}")

    async def patch(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        record = await self._record(supplier_id)
        if record is None:
            raise EvaluationNotFoundError(supplier_id)
        document = merge_document(EvaluationAggregate, record.document, fields)
        record.document = document
        record.status = document["status"]
        record.version = document["version"]
        await self._commit(f"patch evaluation {supplier_id}")

    async def list_by_status(self, status: Optional[EvaluationStatus] = None) -> List[EvaluationAggregate]:
        query = select(SupplierEvaluationRecord)
        if status is not None:
            query = query.where(SupplierEvaluationRecord.status == EvaluationStatus(status).value)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreError("list evaluations", original_error=e) from e
        return [EvaluationAggregate.model_validate(r.document) for r in result.scalars().all()]


class SqlSubmissionStore(_SqlStore):
    """Submission snapshots in epi_submissions."""

    async def _record(self, submission_id: str) -> Optional[EpiSubmissionRecord]:
        try:
            return await self.db.get(EpiSubmissionRecord, submission_id)
        except SQLAlchemyError as e:
            raise StoreError(f"get submission {submission_id}", original_error=e) from e

    async def create(self, submission: Submission) -> str:
        submission_id = submission.id or uuid.uuid4().hex
        snapshot = submission.model_copy(update={"id": submission_id})
        self.db.add(EpiSubmissionRecord(
            id=submission_id,
            supplier_id=snapshot.supplier_id,
            status=snapshot.status.value,
            schema_version=snapshot.schema_version,
            document=snapshot.model_dump(mode="json"),
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        ))
        await self._commit(f"create submission for {snapshot.supplier_id}")
        return submission_id

    async def get(self, submission_id: str) -> Optional[Submission]:
        record = await self._record(submission_id)
        if record is None:
            return None
        return document_to_submission({**record.document, "id": record.id})

    async def list_by_supplier(self, supplier_id: str) -> List[Submission]:
        query = (
            select(EpiSubmissionRecord)
            .where(EpiSubmissionRecord.supplier_id == supplier_id)
            .order_by(EpiSubmissionRecord.created_at)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreError(f"list submissions for {supplier_id}", original_error=e) from e
        return [
            document_to_submission({**r.document, "id": r.id}) for r in result.scalars().all()
        ]

    async def patch(self, submission_id: str, fields: Dict[str, Any]) -> None:
        record = await self._record(submission_id)
        if record is None:
            raise SubmissionNotFoundError(submission_id)
        current = document_to_submission({**record.document, "id": record.id})
        document = merge_document(Submission, current.model_dump(), fields)
        record.document = document
        record.status = document["status"]
        record.schema_version = document["schema_version"]
        await self._commit(f"patch submission {submission_id}")

    async def list_raw(self) -> List[Dict[str, Any]]:
        try:
            result = await self.db.execute(select(EpiSubmissionRecord))
        except SQLAlchemyError as e:
            raise StoreError("list submissions", original_error=e) from e
        return [{**r.document, "id": r.id} for r in result.scalars().all()]

    async def replace_raw(self, submission_id: str, document: Dict[str, Any]) -> None:
        record = await self._record(submission_id)
        if record is None:
            raise SubmissionNotFoundError(submission_id)
        record.document = document
        record.status = document.get("status", record.status)
        record.schema_version = int(document.get("schema_version") or 1)
        await self._commit(f"replace submission {submission_id}")


class SqlSupplierProfileStore(_SqlStore):
    """Supplier profile flags in supplier_profiles."""

    async def update(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        values = to_jsonable_python(fields)
        try:
            record = await self.db.get(SupplierProfileRecord, supplier_id)
        except SQLAlchemyError as e:
            raise StoreError(f"get profile {supplier_id}", original_error=e) from e
        if record is None:
            self.db.add(SupplierProfileRecord(supplier_id=supplier_id, fields=values))
        else:
            record.fields = {**record.fields, **values}
        await self._commit(f"update profile {supplier_id}")
        logger.debug(f"Supplier profile {supplier_id} updated: {sorted(values)}")
