"""
Supplier EPI - Document Models

Each table stores the pydantic document as JSON next to the columns used
for lookups and ordering. The document column is the source of truth.
"""

from typing import Any, Dict

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from supplier_epi.database import Base
from supplier_epi.models.base import TimestampMixin


class EpiConfigDocument(Base, TimestampMixin):
    """Weighted questionnaire (a single row keyed 'default')."""

    __tablename__ = "epi_config"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<EpiConfigDocument(id={self.id})>"


class SupplierEvaluationRecord(Base, TimestampMixin):
    """Live evaluation aggregate, one row per supplier."""

    __tablename__ = "supplier_evaluations"

    supplier_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    document: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<SupplierEvaluationRecord(supplier_id={self.supplier_id}, status={self.status})>"


class EpiSubmissionRecord(Base, TimestampMixin):
    """Submission snapshot; review and audit fields are updated in place."""

    __tablename__ = "epi_submissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    supplier_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    document: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<EpiSubmissionRecord(id={self.id}, supplier_id={self.supplier_id})>"


class SupplierProfileRecord(Base, TimestampMixin):
    """Supplier status flags written on submit/approve/reject."""

    __tablename__ = "supplier_profiles"

    supplier_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<SupplierProfileRecord(supplier_id={self.supplier_id})>"
