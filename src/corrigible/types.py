"""Correction type system: kinds, slot states, definitions, chain rules.

Every other corrigible module imports from here. Definitions are frozen so
a registry can be shared by all records of a type without copying.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# =============================================================================
# Enums
# =============================================================================


class CorrectionKind(StrEnum):
    """What a correction does to its collection."""

    FILTER = "filter"  # marks existing elements as excluded
    SYNTHESIZE = "synthesize"  # appends new elements


class Slot(StrEnum):
    """Effect of one correction on one element of a collection."""

    EXCLUDED = "excluded"  # the correction hides the element
    KEPT = "kept"  # evaluated, not hidden
    NOT_EVALUATED = "not_evaluated"  # predates a synthesis correction
    SYNTHESIZED = "synthesized"  # created by the correction


# =============================================================================
# Sentinels
# =============================================================================


class _Removed:
    """Passed to chain rules with on_removal=True when their trigger is unapplied."""

    _instance: _Removed | None = None

    def __new__(cls) -> _Removed:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVED"

    def __bool__(self) -> bool:
        return False


REMOVED = _Removed()


# =============================================================================
# Definitions
# =============================================================================

FilterEvaluator = Callable[[Any, Sequence[Any], Any], bool]
SynthesisEvaluator = Callable[[Sequence[Any], Any], Sequence[Any]]
Derivation = Callable[[Any], Any]
SubsumesHook = Callable[[Any, Any], bool]


def _never(element: Any, collection: Sequence[Any], params: Any) -> bool:
    return False


@dataclass(frozen=True)
class ChainRule:
    """A dependent correction driven by the owning correction.

    ``derive`` maps the triggering parameters to the dependent's parameters,
    or to ``False`` meaning "leave the dependent alone / withdraw it".
    """

    target: str
    derive: Derivation
    # When False the rule is skipped on removal and behaves as if it had
    # returned False; when True derive() receives REMOVED.
    on_removal: bool = False

    def evaluate(self, params: Any) -> Any:
        if params is REMOVED and not self.on_removal:
            return False
        return self.derive(params)


@dataclass(frozen=True)
class CorrectionDefinition:
    """A named, registered transformation of one attribute's list."""

    name: str
    attribute: str  # dot-separated path, e.g. "offer.courses"
    kind: CorrectionKind
    evaluator: FilterEvaluator | SynthesisEvaluator
    chain: tuple[ChainRule, ...] = ()
    # Filters only: True when every element excluded under the new params
    # was already excluded under the old ones.
    subsumes: SubsumesHook | None = None
    # Auto-chain-only: a no-op filter that exists to carry chain rules.
    anchor: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Correction name must be non-empty")
        if not self.attribute:
            raise ValueError(f"Correction {self.name!r} needs a target attribute")
        if self.subsumes is not None and self.kind is not CorrectionKind.FILTER:
            raise ValueError(f"Correction {self.name!r}: subsumes applies to filters only")
        # Accept any iterable of rules, store a tuple
        object.__setattr__(self, "chain", tuple(self.chain))

    @property
    def is_filter(self) -> bool:
        return self.kind is CorrectionKind.FILTER

    @property
    def is_synthesis(self) -> bool:
        return self.kind is CorrectionKind.SYNTHESIZE

    @property
    def dependents(self) -> tuple[str, ...]:
        return tuple(rule.target for rule in self.chain)

    @classmethod
    def filter(
        cls,
        name: str,
        attribute: str,
        evaluator: FilterEvaluator,
        *,
        chain: Sequence[ChainRule] = (),
        subsumes: SubsumesHook | None = None,
        description: str = "",
    ) -> CorrectionDefinition:
        return cls(
            name=name,
            attribute=attribute,
            kind=CorrectionKind.FILTER,
            evaluator=evaluator,
            chain=tuple(chain),
            subsumes=subsumes,
            description=description,
        )

    @classmethod
    def synthesize(
        cls,
        name: str,
        attribute: str,
        evaluator: SynthesisEvaluator,
        *,
        chain: Sequence[ChainRule] = (),
        description: str = "",
    ) -> CorrectionDefinition:
        return cls(
            name=name,
            attribute=attribute,
            kind=CorrectionKind.SYNTHESIZE,
            evaluator=evaluator,
            chain=tuple(chain),
            description=description,
        )

    @classmethod
    def anchor_for(
        cls,
        name: str,
        attribute: str,
        chain: Sequence[ChainRule],
        *,
        description: str = "",
    ) -> CorrectionDefinition:
        """Build an auto-chain-only correction: never excludes anything."""
        if not chain:
            raise ValueError(f"Anchor correction {name!r} needs at least one chain rule")
        return cls(
            name=name,
            attribute=attribute,
            kind=CorrectionKind.FILTER,
            evaluator=_never,
            chain=tuple(chain),
            anchor=True,
            description=description,
        )


# =============================================================================
# Status reflection
# =============================================================================


@dataclass(frozen=True)
class CorrectionStatus:
    """Which corrections are active and why: for UI reflection and snapshots.

    manual:    {name: params}
    automatic: {name: {triggering_name: params}}
    """

    manual: dict[str, Any] = field(default_factory=dict)
    automatic: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self.manual) | frozenset(self.automatic)

    def is_empty(self) -> bool:
        return not self.manual and not self.automatic

    def to_dict(self) -> dict[str, Any]:
        return {
            "manual": dict(self.manual),
            "automatic": {name: dict(by) for name, by in self.automatic.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CorrectionStatus:
        return cls(
            manual=dict(data.get("manual") or {}),
            automatic={
                name: dict(by) for name, by in (data.get("automatic") or {}).items()
            },
        )
