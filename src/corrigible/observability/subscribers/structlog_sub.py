"""Routes all events to structured log lines via the configured LogFormatter.

Always-on subscriber. Called by emitter.configure() on every startup.
Uses get_logger() from the logging module -- works with structlog, stdlib,
or any registered LogFormatter.
"""

from __future__ import annotations

from dataclasses import asdict

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
from corrigible.observability.linker import CorrigibleEventLinker
from corrigible.observability.logging import get_logger

_registered = False


def _get_logger():
    """Lazy logger -- always reflects the active formatter, not stale import-time state."""
    return get_logger("corrigible.events")


def _to_dict(event: object) -> dict:
    """Convert frozen dataclass to dict for structlog."""
    return asdict(event)  # type: ignore[arg-type]


def register_structlog_subscriber() -> None:
    """Register structlog handlers for all events on CorrigibleEventLinker.

    Safe to call multiple times: handlers are only linked once per process.
    """
    global _registered
    if _registered:
        return

    # Registry
    @CorrigibleEventLinker.on(CorrectionRegistered)
    def _log_registered(event: CorrectionRegistered) -> None:
        _get_logger().debug("correction.registered", **_to_dict(event))

    @CorrigibleEventLinker.on(RegistrationConflictDetected)
    def _log_conflict(event: RegistrationConflictDetected) -> None:
        _get_logger().warning("correction.registration_conflict", **_to_dict(event))

    # Collection
    @CorrigibleEventLinker.on(CorrectionApplied)
    def _log_applied(event: CorrectionApplied) -> None:
        _get_logger().info("correction.applied", **_to_dict(event))

    @CorrigibleEventLinker.on(CorrectionRemoved)
    def _log_removed(event: CorrectionRemoved) -> None:
        _get_logger().info("correction.removed", **_to_dict(event))

    @CorrigibleEventLinker.on(VisibleCountRecomputed)
    def _log_recount(event: VisibleCountRecomputed) -> None:
        _get_logger().debug("collection.visible_recomputed", **_to_dict(event))

    # Cascade
    @CorrigibleEventLinker.on(CascadeStepTaken)
    def _log_cascade_step(event: CascadeStepTaken) -> None:
        _get_logger().debug("cascade.step", **_to_dict(event))

    @CorrigibleEventLinker.on(CascadeCycleAborted)
    def _log_cascade_abort(event: CascadeCycleAborted) -> None:
        _get_logger().error("cascade.aborted", **_to_dict(event))

    # Record / store
    @CorrigibleEventLinker.on(RecordDataChanged)
    def _log_record_changed(event: RecordDataChanged) -> None:
        _get_logger().debug("record.changed", **_to_dict(event))

    @CorrigibleEventLinker.on(StoreCorrectionApplied)
    def _log_store_applied(event: StoreCorrectionApplied) -> None:
        _get_logger().info("store.correction_applied", **_to_dict(event))

    @CorrigibleEventLinker.on(StoreCorrectionRemoved)
    def _log_store_removed(event: StoreCorrectionRemoved) -> None:
        _get_logger().info("store.correction_removed", **_to_dict(event))

    _registered = True
