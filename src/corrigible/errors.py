"""Error taxonomy for the correction engine.

Every engine failure derives from CorrectionError. Each class also
inherits the builtin that best describes it, so callers that only know
about KeyError / TypeError / ValueError keep working.

"No change" is never an error: apply/unapply return False for it.
"""

from __future__ import annotations


class CorrectionError(Exception):
    """Base class for all correction engine errors."""


class UnknownCorrection(CorrectionError, KeyError):
    """A correction name is not registered for this record type."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown correction: {self.name!r}"


class TypeMismatch(CorrectionError, TypeError):
    """The value at an attribute path is not a list and cannot be wrapped."""

    def __init__(self, attribute: str, found: type) -> None:
        super().__init__(f"Attribute {attribute!r} is not a list (found {found.__name__})")
        self.attribute = attribute
        self.found = found


class InvalidCorrectionResult(CorrectionError, ValueError):
    """A synthesis evaluator returned something other than a sequence."""

    def __init__(self, name: str, result: object) -> None:
        super().__init__(
            f"Correction {name!r} must return a sequence of new elements, "
            f"got {type(result).__name__}"
        )
        self.name = name
        self.result = result


class RegistrationConflict(CorrectionError, ValueError):
    """A correction name is already registered (possibly under another attribute)."""

    def __init__(self, name: str, attribute: str) -> None:
        super().__init__(f"Correction {name!r} is already registered on {attribute!r}")
        self.name = name
        self.attribute = attribute


class CascadeCycleDetected(CorrectionError, RuntimeError):
    """Chain rules re-entered a correction that is still propagating."""

    def __init__(self, path: tuple[str, ...], reason: str = "cycle") -> None:
        super().__init__(f"Cascade {reason}: {' -> '.join(path)}")
        self.path = path
        self.reason = reason
