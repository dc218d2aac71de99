"""corrigible observability: typed events routed to structured logs.

Public API:
    emit(event)     — Fire-and-forget event emission (no-op if not configured)
    configure(cfg)  — Initialize emitter + subscribers (call once at startup)
    reset()         — Reset for testing

Logging (swappable formatter x destination):
    get_logger(name)             — Get a structured logger
    bound_record(record_id)      — Tag log lines with a record id
    register_formatter(n, cls)   — Register custom LogFormatter
    register_destination(n, cls) — Register custom LogDestination
"""

from corrigible.observability.config import ObservabilityConfig
from corrigible.observability.emitter import configure, emit, is_configured, reset
from corrigible.observability.events import (
    CascadeCycleAborted,
    CascadeStepTaken,
    CorrectionApplied,
    CorrectionRegistered,
    CorrectionRemoved,
    RecordDataChanged,
    RegistrationConflictDetected,
    StoreCorrectionApplied,
    StoreCorrectionRemoved,
    VisibleCountRecomputed,
)
from corrigible.observability.logging import (
    LogDestination,
    LogFormatter,
    bound_record,
    get_logger,
    register_destination,
    register_formatter,
)

__all__ = [
    # Core API
    "emit",
    "configure",
    "is_configured",
    "reset",
    "ObservabilityConfig",
    # Logging (swappable)
    "get_logger",
    "bound_record",
    "LogFormatter",
    "LogDestination",
    "register_formatter",
    "register_destination",
    # Registry
    "CorrectionRegistered",
    "RegistrationConflictDetected",
    # Collection
    "CorrectionApplied",
    "CorrectionRemoved",
    "VisibleCountRecomputed",
    # Cascade
    "CascadeStepTaken",
    "CascadeCycleAborted",
    # Record / store
    "RecordDataChanged",
    "StoreCorrectionApplied",
    "StoreCorrectionRemoved",
]
