"""
Declarative field descriptors.

Fields are declared on a model class and shared by all of its instances::

    class User(Model):
        name = StringField(required=True)
        age = NumberField()
        group = RelationField("Group", reverse_name="members")

Each field converts raw input to its internal form (``to_internal``), renders
it back for serialization (``to_external``) and validates values.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import InvalidModelReferenceError
from .lookups import MISSING
from .types import FieldType

if TYPE_CHECKING:
    from .models import BaseModel
    from .registry import ModelRegistry

Converter = Callable[[Any], Any]
Validator = Callable[[Any], Any]

_email_adapter = TypeAdapter(EmailStr)


class Field:
    """
    Base field descriptor.

    Args:
        required: Reject ``None``/unset values during validation.
        default: Value applied by ``normalize`` when the field is absent.
        default_factory: Callable producing the default (for mutable values).
        choices: Allowed values.
        model: Relation target, either a registered name or a model class.
        reverse_name: Accessor name installed on a relation target.
        related_name: Attribute on the related model pointing back here.
        to_internal: Overrides the built-in input conversion.
        to_external: Overrides the built-in output conversion.
        validator: Extra check; may raise or return False to reject.
        label: Human readable name.
        description: Help text.
        type: Overrides the field kind, e.g. for custom kinds.
    """

    field_type: str = FieldType.STRING.value

    def __init__(
        self,
        *,
        required: bool = False,
        default: Any = MISSING,
        default_factory: Callable[[], Any] | None = None,
        choices: Iterable[Any] | None = None,
        model: Any = None,
        reverse_name: str | None = None,
        related_name: str | None = None,
        to_internal: Converter | None = None,
        to_external: Converter | None = None,
        validator: Validator | None = None,
        label: str | None = None,
        description: str | None = None,
        type: str | FieldType | None = None,  # noqa: A002
    ) -> None:
        kind = type if type is not None else self.field_type
        self.type = str(getattr(kind, "value", kind))
        self.required = required
        self.default = default
        self.default_factory = default_factory
        self.choices = tuple(choices) if choices is not None else None
        self.model = model
        self.reverse_name = reverse_name
        self.related_name = related_name
        self.internal_converter = to_internal
        self.external_converter = to_external
        self.validator = validator
        self.label = label
        self.description = description
        self.name: str | None = None
        self.owner: type[BaseModel] | None = None
        self._frozen = True

    def __setattr__(self, key: str, value: Any) -> None:
        if self.__dict__.get("_frozen"):
            msg = f"Field definitions are read-only (tried to set '{key}')"
            raise AttributeError(msg)
        super().__setattr__(key, value)

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            object.__setattr__(self, "name", name)
            object.__setattr__(self, "owner", owner)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.name, None)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.name] = value

    def __delete__(self, instance: Any) -> None:
        instance.__dict__.pop(self.name, None)

    def __repr__(self) -> str:
        target = f", model={self.model!r}" if self.model is not None else ""
        return f"<{self.__class__.__name__} {self.name or '?'} type={self.type}{target}>"

    # --- Defaults ---

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING or self.default_factory is not None

    def get_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return None if self.default is MISSING else self.default

    # --- Conversion ---

    def to_internal(self, value: Any) -> Any:
        """Convert raw input to the stored representation."""
        if self.internal_converter is not None:
            return self.internal_converter(value)
        if value is None:
            return None
        return self.parse(value)

    def to_external(self, value: Any) -> Any:
        """Convert a stored value to its serializable representation."""
        if self.external_converter is not None:
            return self.external_converter(value)
        if value is None or value is MISSING:
            return value
        return self.serialize(value)

    def parse(self, value: Any) -> Any:
        return value

    def serialize(self, value: Any) -> Any:
        return value

    # --- Validation ---

    def validate(self, value: Any) -> None:
        """
        Validate a value, raising ``ValueError`` or ``TypeError`` on failure.
        """
        if value is None or value is MISSING:
            if self.required:
                raise ValueError("This field is required.")
            return
        self.check(value)
        if self.choices is not None and value not in self.choices:
            msg = f"Value {value!r} is not one of {list(self.choices)!r}."
            raise ValueError(msg)
        if self.validator is not None and self.validator(value) is False:
            msg = f"Value {value!r} failed custom validation."
            raise ValueError(msg)

    def check(self, value: Any) -> None:
        """Type check for the field kind. Subclasses override."""

    # --- Relations ---

    @property
    def is_relation(self) -> bool:
        return self.type == FieldType.RELATION.value

    @property
    def is_reverse(self) -> bool:
        return self.type in (FieldType.REVERSE.value, FieldType.MANY_TO_MANY.value)

    @property
    def is_nested(self) -> bool:
        return self.type == FieldType.NESTED.value

    def resolve_target(
        self, registry: ModelRegistry | None = None
    ) -> type[BaseModel] | None:
        """
        Resolve ``model`` to a model class.

        Strings are looked up in ``registry`` (default: the owner's registry,
        then the process-wide one). ``"self"`` and the owner's own name resolve
        to the owner. Zero-argument callables are called lazily.

        Raises:
            InvalidModelReferenceError: If ``model`` is neither a name, a class
                nor a callable.
        """
        target = self.model
        if target is None:
            return None
        if isinstance(target, str):
            owner = self.owner
            if owner is not None and target in ("self", owner.__name__):
                return owner
            if registry is None:
                from .registry import model_registry

                meta = getattr(owner, "_meta", None)
                registry = getattr(meta, "registry", None) or model_registry
            return registry.get(target)
        if isinstance(target, type):
            return target
        if callable(target):
            return target()
        owner_name = self.owner.__name__ if self.owner else "?"
        raise InvalidModelReferenceError(owner_name, self.name or "?", target)

    def target_name(self) -> str | None:
        target = self.model
        if isinstance(target, str):
            return target
        return getattr(target, "__name__", None)


class StringField(Field):
    field_type = FieldType.STRING.value

    def check(self, value: Any) -> None:
        if not isinstance(value, str):
            msg = f"Expected a string, got {type(value).__name__}."
            raise TypeError(msg)


class NumberField(Field):
    """Numeric field. Numeric strings are parsed on input."""

    field_type = FieldType.NUMBER.value

    def parse(self, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                # Left as-is so validation reports it.
                return value
        return value

    def check(self, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            msg = f"Expected a number, got {type(value).__name__}."
            raise TypeError(msg)


class BooleanField(Field):
    field_type = FieldType.BOOLEAN.value

    def check(self, value: Any) -> None:
        if not isinstance(value, bool):
            msg = f"Expected a boolean, got {type(value).__name__}."
            raise TypeError(msg)


class DateField(Field):
    """
    Timestamp field.

    Accepts ISO-8601 strings, epoch milliseconds and ``datetime`` objects.
    Serializes to UTC ISO-8601 with millisecond precision and a ``Z`` suffix.
    """

    field_type = FieldType.DATE.value

    def parse(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        if isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return value
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return value

    def serialize(self, value: Any) -> Any:
        if not isinstance(value, datetime):
            return value
        utc = value.astimezone(timezone.utc)
        return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def check(self, value: Any) -> None:
        if not isinstance(value, datetime):
            msg = f"Expected a date, got {value!r}."
            raise TypeError(msg)


class EmailField(StringField):
    field_type = FieldType.EMAIL.value

    def check(self, value: Any) -> None:
        super().check(value)
        try:
            _email_adapter.validate_python(value)
        except PydanticValidationError as e:
            msg = f"'{value}' is not a valid email address."
            raise ValueError(msg) from e


class EnumField(Field):
    """
    Field restricted to a fixed set of values.

    ``values`` is either a sequence or an ``Enum`` class; enum members are
    stored by value.
    """

    field_type = FieldType.ENUM.value

    def __init__(self, values: Iterable[Any] | type[Enum], **kwargs: Any) -> None:
        if isinstance(values, type) and issubclass(values, Enum):
            choices = [member.value for member in values]
        else:
            choices = list(values)
        kwargs.setdefault("choices", choices)
        super().__init__(**kwargs)

    def parse(self, value: Any) -> Any:
        return value.value if isinstance(value, Enum) else value


class JSONField(Field):
    """
    Arbitrary JSON value.

    Objects and arrays are encoded as JSON text on output and decoded on
    input. Scalars (strings, numbers, booleans) are kept as they are, so a
    string payload such as ``'"123"'`` is never decoded twice.
    """

    field_type = FieldType.JSON.value

    def parse(self, value: Any) -> Any:
        if isinstance(value, str) and value.lstrip()[:1] in ("{", "["):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value

    def serialize(self, value: Any) -> Any:
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value


class RelationField(Field):
    """
    Forward relation holding a target id, ``{"id": ...}`` mapping or entity.
    """

    field_type = FieldType.RELATION.value

    def __init__(self, model: Any, **kwargs: Any) -> None:
        super().__init__(model=model, **kwargs)

    def serialize(self, value: Any) -> Any:
        return _reference(value)


class ReverseField(Field):
    """
    Virtual field naming the reverse side of another model's relation.

    ``related_name`` is the relation field on ``model`` that points back.
    """

    field_type = FieldType.REVERSE.value

    def __init__(self, model: Any, **kwargs: Any) -> None:
        super().__init__(model=model, **kwargs)


class ManyToManyField(Field):
    """Holds a list of target ids, mappings or entities."""

    field_type = FieldType.MANY_TO_MANY.value

    def __init__(self, model: Any, **kwargs: Any) -> None:
        super().__init__(model=model, **kwargs)

    def parse(self, value: Any) -> Any:
        if isinstance(value, (tuple, set, frozenset)):
            return list(value)
        return value

    def serialize(self, value: Any) -> Any:
        if isinstance(value, list):
            return [_reference(item) for item in value]
        return value

    def check(self, value: Any) -> None:
        if not isinstance(value, list):
            msg = f"Expected a list, got {type(value).__name__}."
            raise TypeError(msg)


class NestedField(Field):
    """Embeds another model, built from a mapping on input."""

    field_type = FieldType.NESTED.value

    def __init__(self, model: Any, **kwargs: Any) -> None:
        super().__init__(model=model, **kwargs)

    def parse(self, value: Any) -> Any:
        target = self.resolve_target()
        if target is None or isinstance(value, target):
            return value
        if isinstance(value, Mapping):
            return target.new(value)
        return value

    def serialize(self, value: Any) -> Any:
        to_dict = getattr(value, "to_dict", None)
        if callable(to_dict):
            return to_dict(external=True)
        return dict(value) if isinstance(value, Mapping) else value

    def check(self, value: Any) -> None:
        target = self.resolve_target()
        if target is not None and not isinstance(value, target):
            msg = f"Expected a {target.__name__} instance, got {type(value).__name__}."
            raise TypeError(msg)


def _reference(value: Any) -> Any:
    meta = getattr(type(value), "_meta", None)
    if meta is None:
        return value
    return {meta.pk_field: value.pk}
