"""CorrectionRegistry: correction definitions for one record type.

One registry per record type, shared read-only by every record of that
type. Definitions are stored by target attribute, then by name; a name is
unique across the whole registry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, MutableMapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from corrigible.collection import CorrectableCollection
from corrigible.config import get_config
from corrigible.errors import RegistrationConflict, TypeMismatch, UnknownCorrection
from corrigible.observability import emit
from corrigible.observability.events import (
    CorrectionRegistered,
    RegistrationConflictDetected,
)
from corrigible.types import CorrectionDefinition

if TYPE_CHECKING:
    from corrigible.record import Record

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, CorrectionDefinition] = MappingProxyType({})


class CorrectionRegistry:
    """Registry of correction definitions, keyed by attribute then name."""

    def __init__(self, record_type: str = "record", *, strict: bool | None = None) -> None:
        self.record_type = record_type
        self.strict = get_config().strict_registration if strict is None else strict
        self._by_attribute: dict[str, dict[str, CorrectionDefinition]] = {}
        self._attribute_of: dict[str, str] = {}  # name → attribute

    def register(self, definition: CorrectionDefinition) -> bool:
        """Register a definition. Returns False (or raises, if strict) on a duplicate name."""
        existing = self._attribute_of.get(definition.name)
        if existing is not None:
            emit(RegistrationConflictDetected(
                name=definition.name,
                attribute=existing,
                requested_attribute=definition.attribute,
            ))
            if self.strict:
                raise RegistrationConflict(definition.name, existing)
            logger.warning(
                "Correction %r already registered on %r for %s; ignoring",
                definition.name, existing, self.record_type,
            )
            return False

        self._by_attribute.setdefault(definition.attribute, {})[definition.name] = definition
        self._attribute_of[definition.name] = definition.attribute
        emit(CorrectionRegistered(
            name=definition.name,
            attribute=definition.attribute,
            kind=definition.kind.value,
            chain_targets=definition.dependents,
        ))
        return True

    def lookup_attribute(self, name: str) -> str | None:
        """Attribute a correction affects, or None if unregistered."""
        return self._attribute_of.get(name)

    def corrections_for(self, attribute: str) -> Mapping[str, CorrectionDefinition]:
        """Read-only view of the corrections targeting an attribute."""
        by_name = self._by_attribute.get(attribute)
        if by_name is None:
            return _EMPTY
        return MappingProxyType(by_name)

    def definition(self, name: str) -> CorrectionDefinition:
        attribute = self._attribute_of.get(name)
        if attribute is None:
            raise UnknownCorrection(name)
        return self._by_attribute[attribute][name]

    def is_correctable(self, attribute: str) -> bool:
        return bool(self._by_attribute.get(attribute))

    @property
    def attributes(self) -> tuple[str, ...]:
        return tuple(self._by_attribute)

    def names(self) -> tuple[str, ...]:
        return tuple(self._attribute_of)

    def __contains__(self, name: object) -> bool:
        return name in self._attribute_of

    def __len__(self) -> int:
        return len(self._attribute_of)

    def __iter__(self) -> Iterator[CorrectionDefinition]:
        for by_name in self._by_attribute.values():
            yield from by_name.values()

    def wrap(self, record: Record, attribute: str) -> CorrectableCollection:
        """Return the record's collection for an attribute, creating it on first use.

        A missing attribute of a correctable path is created as an empty
        list. A path with no registered corrections is never written to: it
        gets an uncached collection, empty if the path is missing. A value
        that is not a list raises TypeMismatch.
        """
        existing = record.collections.get(attribute)
        if existing is not None:
            return existing

        correctable = self.is_correctable(attribute)
        elements = _resolve_list(record.data, attribute, create=correctable)
        collection = CorrectableCollection(
            [] if elements is None else elements, self, attribute, owner=record,
        )
        if correctable:
            record.collections[attribute] = collection
        return collection


def _resolve_list(
    data: MutableMapping[str, Any], attribute: str, *, create: bool,
) -> list[Any] | None:
    """Walk a dot-separated path and return the list at its end.

    With ``create`` set, missing levels are created and a tuple is replaced
    by a list in place. Without it the data is only read and a missing level
    yields None.
    """
    *parents, leaf = attribute.split(".")
    container: Any = data
    for segment in parents:
        child = container.get(segment)
        if child is None:
            if not create:
                return None
            child = {}
            container[segment] = child
        elif not isinstance(child, MutableMapping):
            raise TypeMismatch(attribute, type(child))
        container = child

    value = container.get(leaf)
    if value is None:
        if not create:
            return None
        value = []
        container[leaf] = value
    elif isinstance(value, tuple):
        value = list(value)
        if create:
            container[leaf] = value
    elif not isinstance(value, list):
        raise TypeMismatch(attribute, type(value))
    return value
