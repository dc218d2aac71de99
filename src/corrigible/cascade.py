"""CascadeCoordinator: manual/automatic bookkeeping and chain propagation.

Each record owns one coordinator. It keeps a ledger of why every
correction is active:

    manual:    {name: params}                   at most one per correction
    automatic: {name: {trigger_name: params}}   one per chain driving it

A correction is applied to its collection while anything in the ledger
holds it, and removed only when nothing does. The parameters actually
used (the *effective* params) are the manual ones when present, otherwise
those of the most recent automatic attribution.

Whenever a correction's collection actually changes, its chain rules run:

    rule returns params -> apply the target automatically, trigger=name
    rule returns False  -> withdraw the target's attribution from name

Propagation is depth-first and synchronous: apply() returns after every
transitively triggered correction has settled.

Each outermost apply()/unapply() is all-or-nothing. If any step raises,
the ledger and every collection the cascade touched return to their state
before the call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from corrigible.config import EngineConfig, get_config
from corrigible.errors import CascadeCycleDetected
from corrigible.observability import emit
from corrigible.observability.events import CascadeCycleAborted, CascadeStepTaken
from corrigible.types import REMOVED, CorrectionDefinition, CorrectionStatus

if TYPE_CHECKING:
    from corrigible.collection import Checkpoint, CorrectableCollection
    from corrigible.record import Record

logger = logging.getLogger(__name__)


class CascadeCoordinator:
    """Applies corrections to one record and propagates their chain rules."""

    def __init__(self, record: Record, config: EngineConfig | None = None) -> None:
        self._record = record
        self._config = config or get_config()
        self._manual: dict[str, Any] = {}
        self._automatic: dict[str, dict[str, Any]] = {}
        self._stack: list[str] = []
        # attribute -> (collection, state before the outermost call)
        self._journal: dict[str, tuple[CorrectableCollection, Checkpoint]] | None = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def apply(self, name: str, params: Any = None, trigger: str | None = None) -> set[str]:
        """Apply manually (trigger=None) or on behalf of a triggering correction.

        Returns the attributes whose collections changed.
        """
        definition = self._record.registry.definition(name)
        with self._transaction(), self._propagating(name):
            if trigger is None:
                self._manual[name] = params
            else:
                by_trigger = self._automatic.setdefault(name, {})
                # Re-insert so the latest attribution is last
                by_trigger.pop(trigger, None)
                by_trigger[trigger] = params
            return self._settle(definition)

    def unapply(self, name: str, trigger: str | None = None) -> set[str]:
        """Withdraw the manual application, or one automatic attribution."""
        definition = self._record.registry.definition(name)
        with self._transaction(), self._propagating(name):
            if trigger is None:
                if name not in self._manual:
                    return set()
                del self._manual[name]
            else:
                by_trigger = self._automatic.get(name)
                if not by_trigger or trigger not in by_trigger:
                    return set()
                del by_trigger[trigger]
                if not by_trigger:
                    del self._automatic[name]
            return self._settle(definition)

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    def status(self) -> CorrectionStatus:
        return CorrectionStatus(
            manual=dict(self._manual),
            automatic={name: dict(by) for name, by in self._automatic.items()},
        )

    def is_manual(self, name: str) -> bool:
        return name in self._manual

    def triggers(self, name: str) -> tuple[str, ...]:
        """Names of the corrections currently driving ``name`` automatically."""
        return tuple(self._automatic.get(name, ()))

    def effective_params(self, name: str) -> Any:
        """Parameters the collection is using for ``name``. KeyError if not held."""
        if name in self._manual:
            return self._manual[name]
        by_trigger = self._automatic.get(name)
        if not by_trigger:
            raise KeyError(name)
        return next(reversed(by_trigger.values()))

    def reset(self) -> None:
        """Forget the whole ledger (the collections are discarded by the caller)."""
        self._manual.clear()
        self._automatic.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _held(self, name: str) -> bool:
        return name in self._manual or bool(self._automatic.get(name))

    def _settle(self, definition: CorrectionDefinition) -> set[str]:
        """Bring the collection in line with the ledger, then run chain rules."""
        name = definition.name
        collection = self._record.registry.wrap(self._record, definition.attribute)
        if self._journal is not None and definition.attribute not in self._journal:
            self._journal[definition.attribute] = (collection, collection.checkpoint())

        if self._held(name):
            params = self.effective_params(name)
            if not collection.apply(name, params):
                return set()
        else:
            if not collection.unapply(name):
                return set()
            params = REMOVED

        changed = {definition.attribute}
        depth = len(self._stack)
        for rule in definition.chain:
            derived = rule.evaluate(params)
            if derived is False or derived is REMOVED:
                if name in self._automatic.get(rule.target, ()):
                    emit(CascadeStepTaken(
                        trigger=name, target=rule.target, action="withdraw", depth=depth,
                    ))
                    changed |= self.unapply(rule.target, trigger=name)
            else:
                emit(CascadeStepTaken(
                    trigger=name, target=rule.target, action="apply", depth=depth,
                ))
                changed |= self.apply(rule.target, derived, trigger=name)
        return changed

    @contextmanager
    def _propagating(self, name: str) -> Iterator[None]:
        if self._config.detect_cycles and name in self._stack:
            self._abort((*self._stack, name), "cycle")
        if len(self._stack) >= self._config.max_cascade_depth:
            self._abort((*self._stack, name), "depth")
        self._stack.append(name)
        try:
            yield
        finally:
            self._stack.pop()

    def _abort(self, path: tuple[str, ...], reason: str) -> None:
        emit(CascadeCycleAborted(path=path, reason=reason))
        logger.error("Cascade %s on record %s: %s", reason, self._record.id, " -> ".join(path))
        raise CascadeCycleDetected(path, reason)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        if self._journal is not None:
            yield
            return

        manual = dict(self._manual)
        automatic = {name: dict(by) for name, by in self._automatic.items()}
        self._journal = {}
        try:
            yield
        except Exception:
            self._manual = manual
            self._automatic = automatic
            for collection, checkpoint in self._journal.values():
                collection.rollback(checkpoint)
            logger.warning(
                "Correction failed on record %s; rolled back %d collection(s)",
                self._record.id, len(self._journal),
            )
            raise
        finally:
            self._journal = None
