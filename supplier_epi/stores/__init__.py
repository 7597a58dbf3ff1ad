"""
Supplier EPI - Stores Package

Store contracts and their in-memory and SQLAlchemy implementations.
"""

from supplier_epi.stores.base import (
    ConfigurationStore,
    EvaluationStore,
    SubmissionStore,
    SupplierProfileStore,
)
from supplier_epi.stores.memory import (
    InMemoryConfigurationStore,
    InMemoryEvaluationStore,
    InMemorySubmissionStore,
    InMemorySupplierProfileStore,
)
