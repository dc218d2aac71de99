"""Record: the owner of correctable attributes.

A record holds raw nested data (plain dicts and lists), a reference to the
registry shared by its type, one CorrectableCollection per corrected
attribute, and a CascadeCoordinator. Callers talk to the record; the
record finds the right collection through the registry and tells its
listeners (typically a renderer) which attributes went stale.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, MutableMapping
from typing import Any

from corrigible.cascade import CascadeCoordinator
from corrigible.collection import CorrectableCollection
from corrigible.config import EngineConfig
from corrigible.observability import emit
from corrigible.observability.events import RecordDataChanged
from corrigible.observability.logging import bound_record
from corrigible.registry import CorrectionRegistry
from corrigible.types import CorrectionStatus

logger = logging.getLogger(__name__)

ChangeListener = Callable[["Record", frozenset[str]], None]


class Record:
    """One domain record whose list attributes accept corrections.

    Usage:
        registry = CorrectionRegistry("school")
        registry.register(CorrectionDefinition.filter("night", "offer", is_night))
        school = Record(registry, {"offer": [...]}, record_id="41001234")
        school.apply("night", {})
        school.get_data("offer").visible_count
    """

    def __init__(
        self,
        registry: CorrectionRegistry,
        data: MutableMapping[str, Any] | None = None,
        *,
        record_id: str | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.registry = registry
        self.id = record_id or uuid.uuid4().hex[:12]
        self._data: MutableMapping[str, Any] = {} if data is None else data
        self._collections: dict[str, CorrectableCollection] = {}
        self._cascade = CascadeCoordinator(self, config)
        self._listeners: list[ChangeListener] = []

    def __repr__(self) -> str:
        return f"Record(id={self.id!r}, corrected={list(self._collections)})"

    @property
    def data(self) -> MutableMapping[str, Any]:
        return self._data

    @property
    def collections(self) -> dict[str, CorrectableCollection]:
        """Collections created so far, by attribute path."""
        return self._collections

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    def apply(self, name: str, params: Any = None) -> bool:
        """Apply a correction manually. True if any attribute changed."""
        with bound_record(self.id):
            changed = self._cascade.apply(name, params)
            self._notify(changed, name, "apply")
        return bool(changed)

    def unapply(self, name: str) -> bool:
        """Withdraw a manual application. True if any attribute changed."""
        with bound_record(self.id):
            changed = self._cascade.unapply(name)
            self._notify(changed, name, "unapply")
        return bool(changed)

    def correction_status(self) -> CorrectionStatus:
        return self._cascade.status()

    def is_applied(self, name: str) -> bool:
        attribute = self.registry.lookup_attribute(name)
        collection = self._collections.get(attribute) if attribute else None
        return collection is not None and collection.is_active(name)

    def triggers(self, name: str) -> tuple[str, ...]:
        return self._cascade.triggers(name)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def get_data(self, attribute: str) -> CorrectableCollection:
        """Live collection for an attribute (wrapped on first access)."""
        return self.registry.wrap(self, attribute)

    def visible_count(self, attribute: str) -> int:
        return self.get_data(attribute).visible_count

    def is_hidden(self, thresholds: Mapping[str, int]) -> bool:
        """Aggregate record filter: hidden when any attribute falls below its minimum."""
        return any(
            self.visible_count(attribute) < minimum
            for attribute, minimum in thresholds.items()
        )

    def replace_data(self, data: MutableMapping[str, Any]) -> None:
        """Swap in new raw data. All correction state is discarded."""
        stale = frozenset(self._collections) | frozenset(self.registry.attributes)
        self._data = data
        self._collections.clear()
        self._cascade.reset()
        logger.debug("Record %s data replaced; correction state discarded", self.id)
        self._notify(stale, "", "replace")

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, attributes: set[str] | frozenset[str], correction: str, operation: str) -> None:
        if not attributes:
            return
        stale = frozenset(attributes)
        emit(RecordDataChanged(
            record_id=self.id,
            attributes=tuple(sorted(stale)),
            correction=correction,
            operation=operation,
        ))
        for listener in list(self._listeners):
            listener(self, stale)
