"""corrigible: reversible, composable corrections over per-record lists.

Public API:
    CorrectionDefinition — A named filter or synthesis correction (+ chain rules)
    ChainRule            — Drives a dependent correction from a trigger's params
    CorrectionRegistry   — Definitions for one record type, shared by its records
    CorrectableCollection — One corrected list: status vectors, visible count, views
    CascadeCoordinator   — Manual/automatic ledger and chain propagation
    Record               — Owner of correctable attributes: apply(), unapply(), get_data()
    RecordStore          — All records of a type: fan-out, aggregate filter, snapshots
    EngineConfig         — YAML + env configuration (get_config / reset_config)
    deep_equal           — Structural equality used for idempotence
    check_params         — Rejects parameters that are not plain data
"""

from corrigible.cascade import CascadeCoordinator
from corrigible.collection import CollectionView, CorrectableCollection, ElementView
from corrigible.config import EngineConfig, get_config, reset_config
from corrigible.equality import check_params, deep_equal
from corrigible.errors import (
    CascadeCycleDetected,
    CorrectionError,
    InvalidCorrectionResult,
    RegistrationConflict,
    TypeMismatch,
    UnknownCorrection,
)
from corrigible.record import Record
from corrigible.registry import CorrectionRegistry
from corrigible.store import RecordStore
from corrigible.types import (
    REMOVED,
    ChainRule,
    CorrectionDefinition,
    CorrectionKind,
    CorrectionStatus,
    Slot,
)

__all__ = [
    # Engine
    "CorrectionRegistry",
    "CorrectableCollection",
    "CollectionView",
    "ElementView",
    "CascadeCoordinator",
    "Record",
    "RecordStore",
    # Types
    "CorrectionDefinition",
    "CorrectionKind",
    "ChainRule",
    "CorrectionStatus",
    "Slot",
    "REMOVED",
    # Config
    "EngineConfig",
    "get_config",
    "reset_config",
    # Utilities
    "deep_equal",
    "check_params",
    # Errors
    "CorrectionError",
    "UnknownCorrection",
    "TypeMismatch",
    "InvalidCorrectionResult",
    "RegistrationConflict",
    "CascadeCycleDetected",
]
