"""RecordStore: every record of one type, corrected together.

The store fans type-level requests out to its records, keeps the ledger
of what was requested at type level, filters whole records by their
visible counts, and captures/restores correction state as plain data.

Snapshot format (JSON-safe as long as the parameters are):

    {"manual": {"night": {}, "languages": {"keep": ["en"]}},
     "automatic": {"positions": {"languages": {"codes": ["11"]}}}}

Only "manual" is replayed on restore; automatic entries are re-derived
by the chain rules and kept in the snapshot for display.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from typing import Any

from corrigible.config import EngineConfig
from corrigible.observability import emit
from corrigible.observability.events import StoreCorrectionApplied, StoreCorrectionRemoved
from corrigible.record import ChangeListener, Record
from corrigible.registry import CorrectionRegistry
from corrigible.types import CorrectionStatus

logger = logging.getLogger(__name__)


class RecordStore:
    """The records sharing one CorrectionRegistry."""

    def __init__(
        self,
        registry: CorrectionRegistry,
        config: EngineConfig | None = None,
    ) -> None:
        self.registry = registry
        self._config = config
        self._records: dict[str, Record] = {}
        self._manual: dict[str, Any] = {}
        self._listeners: list[ChangeListener] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._records.values()))

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    @property
    def records(self) -> list[Record]:
        return list(self._records.values())

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def add(
        self,
        item: Record | MutableMapping[str, Any],
        record_id: str | None = None,
    ) -> Record:
        """Add a record (or raw data for one). Type-level corrections are replayed on it."""
        if isinstance(item, Record):
            if item.registry is not self.registry:
                raise ValueError(f"Record {item.id!r} uses a different registry")
            record = item
        else:
            record = Record(self.registry, item, record_id=record_id, config=self._config)
        if record.id in self._records:
            raise ValueError(f"Duplicate record id {record.id!r}")

        self._records[record.id] = record
        for listener in self._listeners:
            record.add_listener(listener)
        replayed: list[str] = []
        try:
            for name, params in self._manual.items():
                record.apply(name, params)
                replayed.append(name)
        except Exception:
            for name in reversed(replayed):
                record.unapply(name)
            self.remove(record.id)
            raise
        return record

    def remove(self, record_id: str) -> Record | None:
        """Drop a record from the store and detach the store-level listeners."""
        record = self._records.pop(record_id, None)
        if record is not None:
            for listener in self._listeners:
                record.remove_listener(listener)
        return record

    def add_listener(self, listener: ChangeListener) -> None:
        """Listen to changes on every record, current and future."""
        if listener in self._listeners:
            return
        self._listeners.append(listener)
        for record in self._records.values():
            record.add_listener(listener)

    # ------------------------------------------------------------------
    # Type-level corrections
    # ------------------------------------------------------------------

    def apply(self, name: str, params: Any = None) -> int:
        """Apply a correction to every record. Returns how many changed."""
        self.registry.definition(name)  # UnknownCorrection before touching anything
        changed = self._fan_out(name, lambda record: record.apply(name, params))
        self._manual[name] = params
        emit(StoreCorrectionApplied(name=name, records=len(self._records), changed=changed))
        logger.info("Applied %r to %d/%d records", name, changed, len(self._records))
        return changed

    def unapply(self, name: str) -> int:
        """Withdraw a correction from every record. Returns how many changed."""
        self.registry.definition(name)
        changed = self._fan_out(name, lambda record: record.unapply(name))
        self._manual.pop(name, None)
        emit(StoreCorrectionRemoved(name=name, records=len(self._records), changed=changed))
        logger.info("Removed %r from %d/%d records", name, changed, len(self._records))
        return changed

    def _fan_out(self, name: str, operation: Callable[[Record], bool]) -> int:
        """Run operation on every record; if one raises, put the others back."""
        done: list[tuple[Record, bool, Any]] = []
        changed = 0
        for record in self:
            manual = record.correction_status().manual
            try:
                if operation(record):
                    changed += 1
            except Exception:
                for other, held, params in reversed(done):
                    if held:
                        other.apply(name, params)
                    else:
                        other.unapply(name)
                logger.warning(
                    "%r failed on record %s; %d record(s) restored", name, record.id, len(done),
                )
                raise
            done.append((record, name in manual, manual.get(name)))
        return changed

    def correction_status(self) -> CorrectionStatus:
        """Type-level status: requested corrections plus what chains derived from them."""
        automatic: dict[str, dict[str, Any]] = {}
        for record in self:
            for name, by_trigger in record.correction_status().automatic.items():
                merged = automatic.setdefault(name, {})
                for trigger, params in by_trigger.items():
                    merged.setdefault(trigger, params)
        return CorrectionStatus(manual=dict(self._manual), automatic=automatic)

    # ------------------------------------------------------------------
    # Aggregate filter
    # ------------------------------------------------------------------

    def visible(self, thresholds: Mapping[str, int]) -> list[Record]:
        """Records whose visible counts meet every minimum in ``thresholds``."""
        return [record for record in self if not record.is_hidden(thresholds)]

    def hidden(self, thresholds: Mapping[str, int]) -> list[Record]:
        return [record for record in self if record.is_hidden(thresholds)]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return self.correction_status().to_dict()

    def restore(self, snapshot: Mapping[str, Any]) -> int:
        """Replace the type-level corrections with those of a snapshot.

        Returns the number of corrections replayed.
        """
        status = CorrectionStatus.from_dict(snapshot)
        previous = dict(self._manual)
        self._clear()
        try:
            for name, params in status.manual.items():
                self.apply(name, params)
        except Exception:
            self._clear()
            for name, params in previous.items():
                self.apply(name, params)
            raise
        return len(status.manual)

    def _clear(self) -> None:
        for name in reversed(list(self._manual)):
            self.unapply(name)

    def encode_snapshot(self) -> str:
        """Snapshot as compact base64 JSON, e.g. for a URL fragment."""
        raw = json.dumps(self.snapshot(), separators=(",", ":"), sort_keys=True)
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    def restore_encoded(self, token: str) -> int:
        data = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        if not isinstance(data, dict):
            raise ValueError("Encoded snapshot must decode to an object")
        return self.restore(data)
