"""Singleton emitter: configure once, emit everywhere.

The global emit() function is the only API engine modules need.
It's a no-op when not configured (zero overhead in tests).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pyventus.events import EventEmitter

if TYPE_CHECKING:
    from corrigible.observability.config import ObservabilityConfig

_emitter: EventEmitter | None = None
_configured: bool = False


def emit(event: Any) -> None:
    """Fire-and-forget event emission. No-op if not configured."""
    if _emitter is not None:
        _emitter.emit(event)


def configure(config: ObservabilityConfig | None = None) -> EventEmitter:
    """Initialize the global emitter and register subscribers.

    Called once at startup. Idempotent -- second call returns existing emitter.
    """
    global _emitter, _configured

    if _configured and _emitter is not None:
        return _emitter

    from corrigible.observability.config import ObservabilityConfig

    cfg = config or ObservabilityConfig()

    # Setup structured logging first (formatter x destination from config)
    from corrigible.observability.logging import setup_logging

    setup_logging(cfg)

    from pyventus.core.processing.asyncio import AsyncIOProcessingService

    from corrigible.observability.linker import CorrigibleEventLinker

    _emitter = EventEmitter(
        event_linker=CorrigibleEventLinker,
        event_processor=AsyncIOProcessingService(),
    )

    # Always register structured log subscriber (uses configured LogFormatter)
    from corrigible.observability.subscribers.structlog_sub import (
        register_structlog_subscriber,
    )

    register_structlog_subscriber()

    _configured = True
    return _emitter


def is_configured() -> bool:
    return _configured


def reset() -> None:
    """Reset for testing."""
    global _emitter, _configured

    from corrigible.observability.logging import shutdown_logging

    shutdown_logging()

    _emitter = None
    _configured = False
