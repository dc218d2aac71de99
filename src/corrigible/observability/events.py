"""Typed event dataclasses for corrigible observability.

All events are frozen (immutable) dataclasses. Engine modules emit these;
they don't know about logs or listeners. Subscribers handle routing.

Grouped by domain: registry, collection, cascade, record, store.
"""

from __future__ import annotations

from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CorrectionRegistered:
    name: str
    attribute: str
    kind: str  # "filter" | "synthesize"
    chain_targets: tuple[str, ...]


@dataclass(frozen=True)
class RegistrationConflictDetected:
    name: str
    attribute: str  # where the name already lives
    requested_attribute: str


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CorrectionApplied:
    name: str
    attribute: str
    kind: str
    length: int  # collection length after applying
    excluded: int  # elements this correction excludes
    synthesized: int  # elements this correction appended
    reapplied: bool  # params changed on an already-active correction


@dataclass(frozen=True)
class CorrectionRemoved:
    name: str
    attribute: str
    kind: str
    length: int  # collection length after removal
    dropped: int  # synthesized elements removed


@dataclass(frozen=True)
class VisibleCountRecomputed:
    attribute: str
    visible: int
    length: int
    active_filters: int


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CascadeStepTaken:
    trigger: str
    target: str
    action: str  # "apply" | "withdraw"
    depth: int


@dataclass(frozen=True)
class CascadeCycleAborted:
    path: tuple[str, ...]
    reason: str  # "cycle" | "depth"


# ---------------------------------------------------------------------------
# Record / store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordDataChanged:
    record_id: str
    attributes: tuple[str, ...]
    correction: str
    operation: str  # "apply" | "unapply" | "replace"


@dataclass(frozen=True)
class StoreCorrectionApplied:
    name: str
    records: int
    changed: int


@dataclass(frozen=True)
class StoreCorrectionRemoved:
    name: str
    records: int
    changed: int
