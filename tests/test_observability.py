"""Tests for the observability layer: events, emitter, logging.

Coverage:
- Events: frozen immutability, serialization
- Emitter: emit no-op when unconfigured, configure idempotency, reset
- Logging: formatter × destination composition, get_logger pre/post config
"""

from __future__ import annotations

import json
import logging
from dataclasses import FrozenInstanceError, asdict

import pytest

from corrigible.observability.config import ObservabilityConfig
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

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture()
def configured():
    """Configure observability with stderr + structlog defaults."""
    from corrigible.observability.emitter import configure

    cfg = ObservabilityConfig(
        log_formatter="structlog",
        log_destination="stderr",
        log_level="DEBUG",
        log_format="json",
    )
    return configure(cfg)


# =============================================================================
# Event dataclass tests
# =============================================================================


class TestEvents:
    """All events are frozen dataclasses."""

    def test_correction_applied_fields(self):
        e = CorrectionApplied(
            name="night",
            attribute="offer",
            kind="filter",
            length=4,
            excluded=2,
            synthesized=0,
            reapplied=False,
        )
        assert e.excluded == 2
        with pytest.raises(FrozenInstanceError):
            e.name = "day"  # type: ignore[misc]

    def test_cycle_aborted_serializable(self):
        e = CascadeCycleAborted(path=("A", "B", "A"), reason="cycle")
        d = asdict(e)
        assert d["path"] == ("A", "B", "A")
        json.dumps(d)

    def test_all_events_frozen(self):
        """Every event type must be frozen."""
        events = [
            CorrectionRegistered("f", "xs", "filter", ()),
            RegistrationConflictDetected("f", "xs", "ys"),
            CorrectionApplied("f", "xs", "filter", 3, 1, 0, False),
            CorrectionRemoved("s", "xs", "synthesize", 3, 2),
            VisibleCountRecomputed("xs", 2, 3, 1),
            CascadeStepTaken("language", "positions", "apply", 1),
            CascadeCycleAborted(("A", "B", "A"), "cycle"),
            RecordDataChanged("r1", ("offer",), "night", "apply"),
            StoreCorrectionApplied("night", 2, 2),
            StoreCorrectionRemoved("night", 2, 1),
        ]
        for event in events:
            d = asdict(event)
            first_field = list(d.keys())[0]
            with pytest.raises(FrozenInstanceError):
                setattr(event, first_field, "changed")


# =============================================================================
# Emitter tests
# =============================================================================


class TestEmitter:
    """emit() is no-op when not configured, works after configure()."""

    def test_emit_noop_when_not_configured(self):
        from corrigible.observability.emitter import emit

        # Should not raise
        emit(StoreCorrectionApplied("night", 0, 0))

    def test_configure_returns_emitter(self, configured):
        from pyventus.events import EventEmitter

        assert isinstance(configured, EventEmitter)

    def test_configure_idempotent(self):
        from corrigible.observability.emitter import configure

        cfg = ObservabilityConfig(log_destination="stderr")
        e1 = configure(cfg)
        e2 = configure(cfg)
        assert e1 is e2

    def test_is_configured(self):
        from corrigible.observability.emitter import configure, is_configured

        assert not is_configured()
        configure(ObservabilityConfig(log_destination="stderr"))
        assert is_configured()

    def test_reset_clears_state(self, configured):
        from corrigible.observability.emitter import is_configured, reset

        assert is_configured()
        reset()
        assert not is_configured()

    def test_engine_runs_with_emitter_configured(self, configured, school):
        assert school.apply("language", {"languages": ["en"]}) is True
        assert school.visible_count("assignments") == 2


# =============================================================================
# Logging tests
# =============================================================================


class TestLogging:
    """LogFormatter × LogDestination composition."""

    def test_structlog_formatter_setup(self):
        from corrigible.observability.logging import StructlogFormatter

        result = StructlogFormatter().setup(ObservabilityConfig(log_format="json"))
        assert isinstance(result, logging.Formatter)

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_stdlib_formatter_setup(self, log_format):
        from corrigible.observability.logging import StdlibFormatter

        result = StdlibFormatter().setup(ObservabilityConfig(log_format=log_format))
        assert isinstance(result, logging.Formatter)

    def test_get_logger_before_config(self):
        from corrigible.observability.logging import _FieldsAdapter, get_logger

        assert isinstance(get_logger("test"), _FieldsAdapter)

    def test_get_logger_after_config(self, configured):
        from corrigible.observability.logging import get_logger

        lg = get_logger("test")
        assert hasattr(lg, "info")
        assert hasattr(lg, "warning")

    def test_stderr_destination(self):
        from corrigible.observability.logging import StderrDestination

        dest = StderrDestination()
        handler = dest.create_handler(logging.Formatter())
        assert isinstance(handler, logging.StreamHandler)
        dest.shutdown()

    def test_stdlib_jsonl_writes_structured_lines(self, tmp_path):
        from corrigible.observability.logging import (
            get_logger,
            setup_logging,
            shutdown_logging,
        )

        path = tmp_path / "logs" / "corrigible.jsonl"
        setup_logging(ObservabilityConfig(
            log_formatter="stdlib",
            log_destination="jsonl",
            log_level="DEBUG",
            log_format="json",
            jsonl_path=str(path),
        ))
        get_logger("corrigible.test").info("correction.applied", name="night", excluded=2)
        shutdown_logging()

        line = json.loads(path.read_text().strip().splitlines()[-1])
        assert line["event"] == "correction.applied"
        assert line["name"] == "night"
        assert line["excluded"] == 2
        assert line["level"] == "info"

    def test_bound_record_tags_lines(self, tmp_path):
        from corrigible.observability.logging import (
            bound_record,
            get_logger,
            setup_logging,
            shutdown_logging,
        )

        path = tmp_path / "corrigible.jsonl"
        setup_logging(ObservabilityConfig(
            log_formatter="stdlib", log_destination="jsonl", jsonl_path=str(path),
        ))
        with bound_record("school-1"):
            get_logger("corrigible.test").warning("cascade.aborted")
        get_logger("corrigible.test").warning("outside")
        shutdown_logging()

        inside, outside = (json.loads(s) for s in path.read_text().splitlines())
        assert inside["record_id"] == "school-1"
        assert "record_id" not in outside

    def test_shutdown_removes_managed_handlers(self):
        from corrigible.observability.logging import setup_logging, shutdown_logging

        setup_logging(ObservabilityConfig(log_destination="stderr"))
        root = logging.getLogger()
        assert any(getattr(h, "_corrigible_managed", False) for h in root.handlers)
        shutdown_logging()
        assert not any(getattr(h, "_corrigible_managed", False) for h in root.handlers)

    def test_register_custom_formatter(self):
        from corrigible.observability.logging import _FORMATTERS, register_formatter

        class CustomFormatter:
            def setup(self, config):
                return logging.Formatter()

            def get_logger(self, name, **kwargs):
                return logging.getLogger(name)

        register_formatter("custom", CustomFormatter)
        assert "custom" in _FORMATTERS
        del _FORMATTERS["custom"]

    def test_register_custom_destination(self):
        from corrigible.observability.logging import _DESTINATIONS, register_destination

        class CustomDest:
            def create_handler(self, formatter):
                return logging.StreamHandler()

            def shutdown(self):
                pass

        register_destination("custom", CustomDest)
        assert "custom" in _DESTINATIONS
        del _DESTINATIONS["custom"]

    def test_setup_unknown_formatter_raises(self):
        from corrigible.observability.logging import setup_logging

        with pytest.raises(ValueError, match="Unknown log formatter"):
            setup_logging(ObservabilityConfig(log_formatter="nonexistent"))

    def test_setup_unknown_destination_raises(self):
        from corrigible.observability.logging import setup_logging

        with pytest.raises(ValueError, match="Unknown log destination"):
            setup_logging(ObservabilityConfig(log_destination="nonexistent"))


# =============================================================================
# Config tests
# =============================================================================


class TestConfig:
    """ObservabilityConfig env-var driven defaults."""

    def test_default_values(self, monkeypatch):
        for var in ("FORMATTER", "DESTINATION", "LEVEL", "FORMAT", "PATH"):
            monkeypatch.delenv(f"CORRIGIBLE_LOG_{var}", raising=False)
        cfg = ObservabilityConfig()
        assert cfg.log_formatter == "structlog"
        assert cfg.log_destination == "stderr"
        assert cfg.log_level == "INFO"
        assert cfg.log_format == "json"
        assert cfg.jsonl_path is None

    def test_env_values(self, monkeypatch):
        monkeypatch.setenv("CORRIGIBLE_LOG_FORMATTER", "stdlib")
        monkeypatch.setenv("CORRIGIBLE_LOG_LEVEL", "DEBUG")
        cfg = ObservabilityConfig()
        assert cfg.log_formatter == "stdlib"
        assert cfg.log_level == "DEBUG"
