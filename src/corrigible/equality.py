"""Deep structural equality over plain parameter data.

Correction parameters are opaque to the engine. The only thing it ever
asks of them is "are these the same parameters as last time?", so the
comparison is restricted to a closed set of shapes:

    None, bool, int, float, str,
    sequences (list / tuple, compared in order),
    mappings (compared by key set, then value by value),
    sets / frozensets (compared as sets of hashable scalars).

bool is kept apart from int: ``True`` and ``1`` are different parameters,
inside sets too. Anything else raises TypeError instead of silently
falling back to ``==``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence, Set
from typing import Any

_SCALARS = (str, int, float)


def _check(value: Any) -> None:
    if value is None or isinstance(value, (bool, *_SCALARS)):
        return
    if isinstance(value, (Mapping, Set)):
        return
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return
    raise TypeError(
        f"Unsupported parameter type {type(value).__name__!r}; "
        "parameters must be plain data (scalars, sequences, mappings, sets)"
    )


def check_params(value: Any) -> None:
    """Raise TypeError unless ``value`` is plain data all the way down."""
    _check(value)
    if isinstance(value, Mapping):
        for key, item in value.items():
            check_params(key)
            check_params(item)
    elif isinstance(value, (Set, Sequence)) and not isinstance(value, str):
        for item in value:
            check_params(item)


def _member_key(value: Any) -> Any:
    """Hashable key for a set member under the same rules as deep_equal."""
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, tuple):
        return ("seq", tuple(_member_key(item) for item in value))
    if isinstance(value, frozenset):
        return ("set", frozenset(_member_key(item) for item in value))
    return ("", value)


def deep_equal(a: Any, b: Any) -> bool:
    """Return True when ``a`` and ``b`` are structurally equal plain data."""
    _check(a)
    _check(b)

    if a is None or b is None:
        return a is None and b is None

    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b

    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b

    if isinstance(a, (int, float)) or isinstance(b, (int, float)):
        if not (isinstance(a, (int, float)) and isinstance(b, (int, float))):
            return False
        # NaN parameters compare equal to themselves
        if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
            return True
        return a == b

    if isinstance(a, Mapping) or isinstance(b, Mapping):
        if not (isinstance(a, Mapping) and isinstance(b, Mapping)):
            return False
        if set(a.keys()) != set(b.keys()):
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, Set) or isinstance(b, Set):
        if not (isinstance(a, Set) and isinstance(b, Set)):
            return False
        for item in (*a, *b):
            check_params(item)
        return {_member_key(x) for x in a} == {_member_key(y) for y in b}

    # Both are non-string sequences
    if len(a) != len(b):
        return False
    return all(deep_equal(x, y) for x, y in zip(a, b))
