"""
Lookup operators used by the in-process filter matcher.

A lookup is a comparison ``compare(value, operand) -> bool`` registered under
an operator name. Filters reference lookups by name::

    {"age": {"gte": 18}, "name": {"iContains": "ana"}}

Unknown operator names resolve to strict equality so that matching never
fails on an unrecognised operator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterable, Mapping

Compare = Callable[[Any, Any], bool]


class _Missing:
    """Marker for an attribute that is absent, as opposed to set to ``None``."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Lookup(str, Enum):
    """Built-in lookup operator names."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    ICONTAINS = "iContains"
    STARTS_WITH = "startsWith"
    ISTARTS_WITH = "iStartsWith"
    ENDS_WITH = "endsWith"
    IENDS_WITH = "iEndsWith"
    EXACT = "exact"
    IEXACT = "iExact"
    IS = "is"
    IS_NULL = "isNull"
    EXISTS = "exists"
    RANGE = "range"
    LENGTH = "length"


# Lowercase spellings accepted in keyword filters such as ``name__icontains``.
LOOKUP_ALIASES: dict[str, str] = {
    "icontains": Lookup.ICONTAINS.value,
    "startswith": Lookup.STARTS_WITH.value,
    "istartswith": Lookup.ISTARTS_WITH.value,
    "endswith": Lookup.ENDS_WITH.value,
    "iendswith": Lookup.IENDS_WITH.value,
    "iexact": Lookup.IEXACT.value,
    "not_in": Lookup.NOT_IN.value,
    "notin": Lookup.NOT_IN.value,
    "isnull": Lookup.IS_NULL.value,
}


def strict_equals(left: Any, right: Any) -> bool:
    """
    Equality without cross-type coercion.

    ``True`` never equals ``1`` and a missing value equals nothing.
    """
    if left is MISSING or right is MISSING:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


def _ordered(op: Callable[[Any, Any], Any]) -> Compare:
    def compare(left: Any, right: Any) -> bool:
        if left is MISSING or left is None or right is None:
            return False
        try:
            return bool(op(left, right))
        except TypeError:
            return False

    return compare


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _in(left: Any, right: Any) -> bool:
    return _is_sequence(right) and any(strict_equals(left, item) for item in right)


def _not_in(left: Any, right: Any) -> bool:
    return _is_sequence(right) and not any(
        strict_equals(left, item) for item in right
    )


def _string_lookup(op: Callable[[str, str], bool], *, fold: bool = False) -> Compare:
    def compare(left: Any, right: Any) -> bool:
        if not isinstance(left, str):
            return False
        if fold:
            return op(left.lower(), str(right).lower())
        if not isinstance(right, str):
            return False
        return op(left, right)

    return compare


def _iexact(left: Any, right: Any) -> bool:
    if left is MISSING or right is MISSING:
        return False
    return str(left).lower() == str(right).lower()


def _is_null(left: Any, right: Any) -> bool:
    return (left is None or left is MISSING) == bool(right)


def _exists(left: Any, right: Any) -> bool:
    return (left is not MISSING) == bool(right)


def _range(left: Any, right: Any) -> bool:
    if isinstance(right, Mapping):
        start, end = right.get("start"), right.get("end")
    elif _is_sequence(right) and len(right) == 2:
        start, end = tuple(right)
    else:
        return False
    lower = _ordered(lambda a, b: a >= b)
    upper = _ordered(lambda a, b: a <= b)
    return lower(left, start) and upper(left, end)


class LookupRegistry:
    """
    Maps operator names to comparison callables.

    Example:
        >>> registry = LookupRegistry()
        >>> registry.register("divisibleBy", lambda v, n: v % n == 0)
        >>> registry.resolve("divisibleBy")(9, 3)
        True
    """

    def __init__(self, *, builtins: bool = True) -> None:
        self._lookups: dict[str, Compare] = {}
        if builtins:
            self._register_builtins()

    def register(self, name: str | Lookup, compare: Compare) -> None:
        """Register (or replace) the comparison for an operator name."""
        self._lookups[str(getattr(name, "value", name))] = compare

    def alias(self, name: str, target: str | Lookup) -> None:
        """Register ``name`` as an alternate spelling of ``target``."""
        self._lookups[name] = self.resolve(target)

    def resolve(self, name: str | Lookup) -> Compare:
        """Return the comparison for ``name``; unknown names use strict equality."""
        return self._lookups.get(str(getattr(name, "value", name)), strict_equals)

    def compare(self, name: str | Lookup, value: Any, operand: Any) -> bool:
        return self.resolve(name)(value, operand)

    def names(self) -> Iterable[str]:
        return tuple(self._lookups)

    def __contains__(self, name: object) -> bool:
        return str(getattr(name, "value", name)) in self._lookups

    def _length(self, value: Any, operand: Any) -> bool:
        try:
            size = len(value)
        except TypeError:
            return False
        if isinstance(operand, Mapping):
            return all(
                self.compare(op, size, expected) for op, expected in operand.items()
            )
        return strict_equals(size, operand)

    def _register_builtins(self) -> None:
        self.register(Lookup.EQ, strict_equals)
        self.register(Lookup.NE, lambda a, b: not strict_equals(a, b))
        self.register(Lookup.GT, _ordered(lambda a, b: a > b))
        self.register(Lookup.GTE, _ordered(lambda a, b: a >= b))
        self.register(Lookup.LT, _ordered(lambda a, b: a < b))
        self.register(Lookup.LTE, _ordered(lambda a, b: a <= b))
        self.register(Lookup.IN, _in)
        self.register(Lookup.NOT_IN, _not_in)
        self.register(Lookup.CONTAINS, _string_lookup(lambda a, b: b in a))
        self.register(
            Lookup.ICONTAINS, _string_lookup(lambda a, b: b in a, fold=True)
        )
        self.register(Lookup.STARTS_WITH, _string_lookup(str.startswith))
        self.register(
            Lookup.ISTARTS_WITH, _string_lookup(str.startswith, fold=True)
        )
        self.register(Lookup.ENDS_WITH, _string_lookup(str.endswith))
        self.register(Lookup.IENDS_WITH, _string_lookup(str.endswith, fold=True))
        self.register(Lookup.EXACT, strict_equals)
        self.register(Lookup.IEXACT, _iexact)
        self.register(Lookup.IS, strict_equals)
        self.register(Lookup.IS_NULL, _is_null)
        self.register(Lookup.EXISTS, _exists)
        self.register(Lookup.RANGE, _range)
        self.register(Lookup.LENGTH, self._length)
        for alias, target in LOOKUP_ALIASES.items():
            self.alias(alias, target)


# Process-wide default registry
lookup_registry = LookupRegistry()


def register_lookup(name: str, compare: Compare) -> None:
    """Register a lookup on the default registry."""
    lookup_registry.register(name, compare)


def get_lookup(name: str) -> Compare:
    """Resolve a lookup on the default registry."""
    return lookup_registry.resolve(name)
