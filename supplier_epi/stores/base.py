"""
Supplier EPI - Store Contracts

Async contracts for the document stores the engine reads and writes.
Services depend on these protocols only; `memory` and `sql` provide the
implementations.
"""

from typing import Any, Dict, List, Optional, Protocol

from supplier_epi.schemas.epi import (
    EvaluationAggregate,
    EvaluationStatus,
    Questionnaire,
    Submission,
)


class ConfigurationStore(Protocol):
    """Holds the single weighted questionnaire document."""

    async def get(self) -> Optional[Questionnaire]:
        """Stored questionnaire, or None when nothing was saved yet."""
        ...

    async def put(self, questionnaire: Questionnaire) -> None:
        ...


class EvaluationStore(Protocol):
    """One mutable evaluation document per supplier."""

    async def get(self, supplier_id: str) -> Optional[EvaluationAggregate]:
        ...

    async def put(
        self,
        supplier_id: str,
        evaluation: EvaluationAggregate,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Replace the whole document.

        When expected_version is given, the write only succeeds if the
        stored version still equals it (ConcurrentModificationError
        otherwise). None keeps last-write-wins behaviour.
        """
        ...

    async def patch(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def list_by_status(self, status: Optional[EvaluationStatus] = None) -> List[EvaluationAggregate]:
        ...


class SubmissionStore(Protocol):
    """Append-only snapshots; review and audit fields are patched in place."""

    async def create(self, submission: Submission) -> str:
        ...

    async def get(self, submission_id: str) -> Optional[Submission]:
        ...

    async def list_by_supplier(self, supplier_id: str) -> List[Submission]:
        ...

    async def patch(self, submission_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def list_raw(self) -> List[Dict[str, Any]]:
        """Stored documents as-is, used by the legacy migration."""
        ...

    async def replace_raw(self, submission_id: str, document: Dict[str, Any]) -> None:
        ...


class SupplierProfileStore(Protocol):
    """Write-only supplier profile flags (supplier_status, approved...)."""

    async def update(self, supplier_id: str, fields: Dict[str, Any]) -> None:
        ...
