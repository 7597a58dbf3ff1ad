"""
Supplier EPI - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from supplier_epi.models.base import TimestampMixin
from supplier_epi.models.epi import (
    EpiConfigDocument,
    SupplierEvaluationRecord,
    EpiSubmissionRecord,
    SupplierProfileRecord,
)
