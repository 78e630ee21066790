"""Domain models for the livestock CSV/JSON import pipeline.

This package contains the model classes shared by the tabular pipeline,
persistence engine and orchestration services.
"""

from .column_map import ColumnMap
from .column_role import ColumnRole, RoleRule
from .config_models import CacheConfig, CollectionConfig, DatabaseConfig, ImportConfig, RecordKind
from .processing_result import PersistResult, ProcessingResult, Progress
from .records import CandidateUnit, FlatRecord, ImportBatch, Transaction

__all__ = [
    # Configuration models
    "CacheConfig",
    "CollectionConfig",
    "DatabaseConfig",
    "ImportConfig",
    "RecordKind",
    # Column resolution
    "ColumnMap",
    "ColumnRole",
    "RoleRule",
    # Records
    "CandidateUnit",
    "FlatRecord",
    "ImportBatch",
    "Transaction",
    # Results
    "PersistResult",
    "ProcessingResult",
    "Progress",
]
