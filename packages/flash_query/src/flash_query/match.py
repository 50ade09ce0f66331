from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Sequence

from .lookups import MISSING, Lookup, lookup_registry

if TYPE_CHECKING:
    from .lookups import LookupRegistry

LOGICAL_KEYS = frozenset({"AND", "OR", "NOT"})


def _step(obj: Any, part: str) -> Any:
    if obj is None or obj is MISSING:
        return MISSING
    if isinstance(obj, Mapping):
        return obj.get(part, MISSING)
    if isinstance(obj, Sequence) and not isinstance(obj, str):
        if part.lstrip("-").isdigit():
            index = int(part)
            return obj[index] if -len(obj) <= index < len(obj) else MISSING
        return MISSING
    getter = getattr(obj, "get_value", None)
    if callable(getter) and not isinstance(obj, type):
        return getter(part)
    return getattr(obj, part, MISSING)


def get_by_path(obj: Any, path: str) -> Any:
    """
    Resolve a dot-separated path against mappings, sequences and entities.

    Any ``None`` or missing intermediate yields ``MISSING`` instead of raising.

    Example:
        >>> get_by_path({"group": {"id": "g1"}}, "group.id")
        'g1'
    """
    value = obj
    for part in path.split("."):
        value = _step(value, part)
    return value


def match(
    entity: Any,
    filters: Mapping[str, Any],
    registry: LookupRegistry | None = None,
) -> bool:
    """
    Evaluate ``entity`` against a filter expression.

    Field keys are combined with AND. A mapping value is a set of lookups that
    must all pass; any other value is an implicit ``exact`` match. Only one
    logical key applies per expression, checked in the fixed order AND, then
    OR, then NOT, so ``{"AND": a, "OR": b}`` ignores ``b``. Nest expressions to
    combine several logical operators.
    """
    lookups = registry or lookup_registry

    field_result = True
    for key, expected in filters.items():
        if key in LOGICAL_KEYS:
            continue
        value = get_by_path(entity, key)
        if isinstance(expected, Mapping):
            passed = all(
                lookups.compare(op, value, operand) for op, operand in expected.items()
            )
        else:
            passed = lookups.compare(Lookup.EXACT, value, expected)
        if not passed:
            field_result = False
            break

    if filters.get("AND") is not None:
        return field_result and match(entity, filters["AND"], lookups)
    if filters.get("OR") is not None:
        return field_result or match(entity, filters["OR"], lookups)
    if filters.get("NOT") is not None:
        return field_result and not match(entity, filters["NOT"], lookups)
    return field_result
