"""Structured logging: swappable formatter × destination via config.

    LogFormatter   — how a record is rendered (structlog, stdlib)
    LogDestination — where rendered lines go (stderr, JSONL file)

setup_logging(config) looks both up by name, asks the formatter for a
logging.Formatter and the destination for a logging.Handler, and installs
the handler on the root logger. Only the handler it installed is ever
replaced or removed; pytest's caplog and user handlers stay put.

Loggers from get_logger() take key=value fields:

    get_logger(__name__).info("correction.applied", name="night", excluded=2)

Anything logged inside ``bound_record(record_id)`` carries the record id,
whichever formatter is active.

Custom pieces register by name before configure():

    register_destination("syslog", SyslogDestination)
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from corrigible.observability.config import ObservabilityConfig

_DEFAULT_JSONL = Path("~/.corrigible/logs/corrigible.jsonl")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class LogFormatter(Protocol):
    """How records are rendered, and which logger API callers get."""

    def setup(self, config: ObservabilityConfig) -> logging.Formatter: ...

    def get_logger(self, name: str, **kwargs: Any) -> Any: ...


@runtime_checkable
class LogDestination(Protocol):
    """Where rendered lines are written."""

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler: ...

    def shutdown(self) -> None: ...


# ---------------------------------------------------------------------------
# Record context
# ---------------------------------------------------------------------------


@contextmanager
def bound_record(record_id: str) -> Iterator[None]:
    """Attach ``record_id`` to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(record_id=record_id):
        yield


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructlogFormatter:
    """structlog pipeline; stdlib records are rendered by the same chain."""

    def setup(self, config: ObservabilityConfig) -> logging.Formatter:
        pre_chain: list = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *pre_chain,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        if config.log_format == "console":
            renderer: Any = structlog.dev.ConsoleRenderer()
        else:
            renderer = structlog.processors.JSONRenderer()
        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                renderer,
            ],
        )

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        return structlog.get_logger(name, **kwargs)


class StdlibFormatter:
    """Plain logging.Formatter output; fields travel in the record's ``extra``."""

    def setup(self, config: ObservabilityConfig) -> logging.Formatter:
        if config.log_format == "console":
            return _StdlibConsoleFormatter(
                "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        return _StdlibJsonFormatter()

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        return _FieldsAdapter(logging.getLogger(name), kwargs)


class _FieldsAdapter(logging.LoggerAdapter):
    """Accepts ``logger.info("event", key=value)`` on a stdlib logger."""

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel")

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        passthrough = {k: kwargs.pop(k) for k in self._PASSTHROUGH if k in kwargs}
        fields = {**(self.extra or {}), **kwargs}
        return msg, {**passthrough, "extra": {"fields": fields}}


def _fields_of(record: logging.LogRecord) -> dict[str, Any]:
    fields = dict(structlog.contextvars.get_contextvars())
    fields.update(getattr(record, "fields", None) or {})
    return fields


class _StdlibJsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            **_fields_of(record),
        }
        if record.exc_info and record.exc_info[1]:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class _StdlibConsoleFormatter(logging.Formatter):
    """Human-readable line with fields appended as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = _fields_of(record)
        if not fields:
            return text
        return text + " " + " ".join(f"{k}={v!r}" for k, v in fields.items())


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------


class StderrDestination:
    """Write to stderr. Default."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self._handler: logging.Handler | None = None

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        self._handler = logging.StreamHandler(sys.stderr)
        self._handler.setFormatter(formatter)
        return self._handler

    def shutdown(self) -> None:
        if self._handler is not None:
            self._handler.flush()


class JsonlFileDestination:
    """Append to a JSONL file (CORRIGIBLE_LOG_PATH)."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        raw = config.jsonl_path if config is not None and config.jsonl_path else _DEFAULT_JSONL
        self.path = Path(raw).expanduser()
        self._handler: logging.FileHandler | None = None

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(formatter)
        return self._handler

    def shutdown(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

_FORMATTERS: dict[str, type] = {
    "structlog": StructlogFormatter,
    "stdlib": StdlibFormatter,
}

_DESTINATIONS: dict[str, type] = {
    "stderr": StderrDestination,
    "jsonl": JsonlFileDestination,
}


def register_formatter(name: str, cls: type) -> None:
    """Register a custom log formatter. Call before configure()."""
    _FORMATTERS[name] = cls


def register_destination(name: str, cls: type) -> None:
    """Register a custom log destination (constructed with the config)."""
    _DESTINATIONS[name] = cls


def _lookup(registry: dict[str, type], name: str, what: str, hint: str) -> type:
    try:
        return registry[name]
    except KeyError:
        raise ValueError(
            f"Unknown log {what}: {name!r}. Available: {sorted(registry)}. "
            f"Register your own with {hint}()."
        ) from None


# ---------------------------------------------------------------------------
# Module state
# ---------------------------------------------------------------------------

_MANAGED = "_corrigible_managed"

_active_formatter: LogFormatter | None = None
_active_destination: LogDestination | None = None


def _drop_managed_handlers() -> None:
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _MANAGED, False)]:
        root.removeHandler(handler)


def setup_logging(config: ObservabilityConfig) -> None:
    """Install the configured formatter × destination on the root logger."""
    global _active_formatter, _active_destination

    formatter_cls = _lookup(_FORMATTERS, config.log_formatter, "formatter", "register_formatter")
    destination_cls = _lookup(
        _DESTINATIONS, config.log_destination, "destination", "register_destination",
    )

    formatter = formatter_cls()
    destination = destination_cls(config)
    handler = destination.create_handler(formatter.setup(config))
    setattr(handler, _MANAGED, True)

    shutdown_logging()
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    _active_formatter = formatter
    _active_destination = destination


def get_logger(name: str = "", **kwargs: Any) -> Any:
    """Logger from the active formatter; a stdlib field adapter before setup."""
    if _active_formatter is not None:
        return _active_formatter.get_logger(name, **kwargs)
    return _FieldsAdapter(logging.getLogger(name), kwargs)


def shutdown_logging() -> None:
    """Close the active destination and detach its handler."""
    global _active_formatter, _active_destination
    if _active_destination is not None:
        _active_destination.shutdown()
    _drop_managed_handlers()
    _active_formatter = None
    _active_destination = None
