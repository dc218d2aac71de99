"""CorrectableCollection: reversible corrections over one record attribute.

The collection wraps the list stored at a record attribute and keeps, for
every active correction, a status vector aligned index by index with that
list:

              [ e0        e1        e2       e3          ]
    status = {
      "F1":   [ KEPT      EXCLUDED  KEPT     KEPT        ]
      "S":    [ NOT_EVAL  NOT_EVAL  NOT_EVAL SYNTHESIZED ]
    }

Filters never touch the list, they only mark slots. Synthesis corrections
append a block of new elements and mark it SYNTHESIZED in their own
vector. Removing a synthesis correction deletes exactly that block from the
list and from every vector, so all vectors stay aligned.

The list is mutated in place: the raw data held by the owning record sees
synthesized elements while they are active.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

from corrigible.equality import check_params, deep_equal
from corrigible.errors import InvalidCorrectionResult, TypeMismatch, UnknownCorrection
from corrigible.observability import emit
from corrigible.observability.events import (
    CorrectionApplied,
    CorrectionRemoved,
    VisibleCountRecomputed,
)
from corrigible.types import CorrectionDefinition, Slot

if TYPE_CHECKING:
    from corrigible.registry import CorrectionRegistry

logger = logging.getLogger(__name__)


class ElementView(NamedTuple):
    """One position of a collection as seen by rendering code."""

    value: Any  # None when excluded
    excluded_by: tuple[str, ...]

    @property
    def visible(self) -> bool:
        return not self.excluded_by


class CollectionView:
    """Lazy, finite, restartable walk over a collection.

    Each iteration reads the collection's current state, so a view taken
    before an apply() reflects it when iterated afterwards.
    """

    def __init__(self, collection: CorrectableCollection) -> None:
        self._collection = collection

    def __iter__(self) -> Iterator[ElementView]:
        coll = self._collection
        for idx in range(len(coll)):
            excluded_by = tuple(coll.status_at(idx))
            yield ElementView(None if excluded_by else coll[idx], excluded_by)

    def __len__(self) -> int:
        return len(self._collection)

    def visible(self) -> Iterator[Any]:
        """Only the elements no filter excludes."""
        return (item.value for item in self if not item.excluded_by)


class Checkpoint(NamedTuple):
    elements: list[Any]
    status: dict[str, list[Slot]]
    params: dict[str, Any]
    visible: int | None


class CorrectableCollection(Sequence):
    """The runtime wrapper of one list belonging to one record attribute.

    Usage:
        coll = registry.wrap(record, "offer")
        coll.apply("bilingual", {"languages": ["en"]})
        coll.visible_count
        coll.unapply("bilingual")
    """

    def __init__(
        self,
        elements: list[Any],
        registry: CorrectionRegistry,
        attribute: str,
        owner: Any = None,
    ) -> None:
        if not isinstance(elements, list):
            raise TypeMismatch(attribute, type(elements))
        self._elements = elements
        self._registry = registry
        self.attribute = attribute
        self.owner = owner  # the record, reachable from evaluators
        self._status: dict[str, list[Slot]] = {}
        self._params: dict[str, Any] = {}
        self._visible: int | None = len(elements)

    # ------------------------------------------------------------------
    # Sequence protocol (raw elements, corrections ignored)
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._elements)

    def __getitem__(self, idx):  # type: ignore[override]
        return self._elements[idx]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._elements)

    def __repr__(self) -> str:
        return (
            f"CorrectableCollection(attribute={self.attribute!r}, "
            f"length={len(self._elements)}, active={list(self._status)})"
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def elements(self) -> list[Any]:
        """The live underlying list. Do not mutate it directly."""
        return self._elements

    @property
    def active(self) -> tuple[str, ...]:
        """Names of active corrections in application order."""
        return tuple(self._status)

    @property
    def status(self) -> dict[str, tuple[Slot, ...]]:
        return {name: tuple(vector) for name, vector in self._status.items()}

    @property
    def applied_params(self) -> dict[str, Any]:
        return dict(self._params)

    def is_active(self, name: str) -> bool:
        return name in self._status

    def vector(self, name: str) -> list[Slot]:
        """Copy of a correction's status vector. KeyError if inactive."""
        return list(self._status[name])

    def params(self, name: str) -> Any:
        """Parameters of the last application. KeyError if inactive."""
        return self._params[name]

    @property
    def visible_count(self) -> int:
        """Number of elements excluded by no active filter."""
        if self._visible is None:
            filters = [
                vector
                for name, vector in self._status.items()
                if self._definition(name).is_filter
            ]
            self._visible = sum(
                1
                for idx in range(len(self._elements))
                if not any(vector[idx] is Slot.EXCLUDED for vector in filters)
            )
            emit(VisibleCountRecomputed(
                attribute=self.attribute,
                visible=self._visible,
                length=len(self._elements),
                active_filters=len(filters),
            ))
        return self._visible

    def status_at(self, idx: int) -> list[str]:
        """Names of the corrections that exclude the element at idx."""
        idx = range(len(self._elements))[idx]  # normalizes, raises IndexError
        return [
            name for name, vector in self._status.items()
            if vector[idx] is Slot.EXCLUDED
        ]

    def value_at(self, idx: int) -> Any:
        """The element at idx, or None if any correction excludes it."""
        return None if self.status_at(idx) else self._elements[idx]

    def view(self) -> CollectionView:
        return CollectionView(self)

    # ------------------------------------------------------------------
    # Apply / unapply
    # ------------------------------------------------------------------

    def apply(self, name: str, params: Any = None) -> bool:
        """Apply a correction. Returns False when already applied with equal params."""
        definition = self._definition(name)
        check_params(params)
        reapplied = name in self._status

        if reapplied:
            if deep_equal(self._params[name], params):
                return False
            if definition.is_filter:
                self._reapply_filter(definition, params)
            else:
                checkpoint = self.checkpoint()
                try:
                    self._remove(definition)
                    self._synthesize(definition, params)
                except Exception:
                    self.rollback(checkpoint)
                    raise
        elif definition.is_filter:
            vector = self._evaluate_filter(definition, params)
            self._status[name] = vector
            self._params[name] = params
            if Slot.EXCLUDED in vector:
                self._invalidate()
        else:
            self._synthesize(definition, params)

        vector = self._status[name]
        emit(CorrectionApplied(
            name=name,
            attribute=self.attribute,
            kind=definition.kind.value,
            length=len(self._elements),
            excluded=vector.count(Slot.EXCLUDED),
            synthesized=vector.count(Slot.SYNTHESIZED),
            reapplied=reapplied,
        ))
        logger.debug(
            "Applied %s correction %r on %r (length=%d)",
            definition.kind.value, name, self.attribute, len(self._elements),
        )
        return True

    def unapply(self, name: str) -> bool:
        """Undo a correction. Returns False when it was not active."""
        definition = self._definition(name)
        if name not in self._status:
            return False

        dropped = self._remove(definition)
        emit(CorrectionRemoved(
            name=name,
            attribute=self.attribute,
            kind=definition.kind.value,
            length=len(self._elements),
            dropped=dropped,
        ))
        logger.debug(
            "Removed %s correction %r from %r (dropped=%d)",
            definition.kind.value, name, self.attribute, dropped,
        )
        return True

    def clear(self) -> bool:
        """Undo every active correction, restoring the original elements."""
        if not self._status:
            return False
        for name in reversed(self.active):
            self.unapply(name)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _definition(self, name: str) -> CorrectionDefinition:
        definition = self._registry.corrections_for(self.attribute).get(name)
        if definition is None:
            raise UnknownCorrection(name)
        return definition

    def _invalidate(self) -> None:
        self._visible = None

    def _judge(self, definition: CorrectionDefinition, element: Any, params: Any) -> Slot:
        return Slot.EXCLUDED if definition.evaluator(element, self, params) else Slot.KEPT

    def _evaluate_filter(self, definition: CorrectionDefinition, params: Any) -> list[Slot]:
        return [self._judge(definition, element, params) for element in self._elements]

    def _reapply_filter(self, definition: CorrectionDefinition, params: Any) -> None:
        name = definition.name
        old_vector = self._status[name]
        old_params = self._params[name]

        if definition.subsumes is not None and definition.subsumes(old_params, params):
            # The new exclusions are a subset of the old ones
            vector = [
                self._judge(definition, element, params) if slot is Slot.EXCLUDED else Slot.KEPT
                for element, slot in zip(self._elements, old_vector)
            ]
        else:
            vector = self._evaluate_filter(definition, params)

        self._status[name] = vector
        self._params[name] = params
        if Slot.EXCLUDED in old_vector or Slot.EXCLUDED in vector:
            self._invalidate()

    def _synthesize(self, definition: CorrectionDefinition, params: Any) -> None:
        name = definition.name
        result = definition.evaluator(self, params)
        if (
            isinstance(result, (str, bytes, bytearray, Mapping))
            or not isinstance(result, Sequence)
        ):
            raise InvalidCorrectionResult(name, result)
        new = list(result)
        start = len(self._elements)
        count = len(new)

        # Filters see the new elements in place, as part of the collection
        self._elements.extend(new)
        try:
            extensions: dict[str, list[Slot]] = {}
            for other in self._status:
                other_def = self._definition(other)
                if other_def.is_filter:
                    other_params = self._params[other]
                    extensions[other] = [
                        self._judge(other_def, element, other_params) for element in new
                    ]
                else:
                    extensions[other] = [Slot.NOT_EVALUATED] * count
        except Exception:
            del self._elements[start:]
            raise

        for other, extension in extensions.items():
            self._status[other].extend(extension)
        self._status[name] = [Slot.NOT_EVALUATED] * start + [Slot.SYNTHESIZED] * count
        self._params[name] = params
        if count:
            self._invalidate()

    def _remove(self, definition: CorrectionDefinition) -> int:
        """Drop a correction's bookkeeping. Returns the number of elements removed."""
        name = definition.name
        vector = self._status.pop(name)
        self._params.pop(name)

        if definition.is_filter:
            if Slot.EXCLUDED in vector:
                self._invalidate()
            return 0

        block = _synthesized_block(vector)
        if block is None:
            return 0
        start, stop = block
        del self._elements[start:stop]
        for other in self._status.values():
            del other[start:stop]
        self._invalidate()
        return stop - start

    def checkpoint(self) -> Checkpoint:
        """Copy of the whole state, for rollback() after a failed batch of changes."""
        return Checkpoint(
            elements=list(self._elements),
            status={name: list(vector) for name, vector in self._status.items()},
            params=dict(self._params),
            visible=self._visible,
        )

    def rollback(self, checkpoint: Checkpoint) -> None:
        """Return to a checkpoint taken on this collection."""
        self._elements[:] = checkpoint.elements  # keep list identity
        self._status = {name: list(vector) for name, vector in checkpoint.status.items()}
        self._params = dict(checkpoint.params)
        self._visible = checkpoint.visible


def _synthesized_block(vector: Sequence[Slot]) -> tuple[int, int] | None:
    """Locate the contiguous SYNTHESIZED run in a synthesis vector."""
    try:
        start = vector.index(Slot.SYNTHESIZED)
    except ValueError:
        return None
    stop = start
    while stop < len(vector) and vector[stop] is Slot.SYNTHESIZED:
        stop += 1
    return start, stop
