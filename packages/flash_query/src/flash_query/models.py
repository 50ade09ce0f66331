from __future__ import annotations

import inspect
import re
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Mapping,
    Self,
    Union,
)

from .config import query_settings
from .exceptions import (
    DoesNotExistError,
    InvalidRelationFieldError,
    MultipleObjectsReturnedError,
    RelatedModelNotFoundError,
    ValidationError,
)
from .fields import (
    BooleanField,
    DateField,
    Field,
    JSONField,
    NumberField,
    StringField,
)
from .lookups import MISSING
from .logging import get_logger
from .signals import ModelSignal, SignalRegistry, model_signals
from .types import FieldType

if TYPE_CHECKING:
    from .backends.base import QueryBackend
    from .queryset import QuerySet
    from .registry import ModelRegistry

logger = get_logger(__name__)

Schema = dict[str, Callable[[Any], Any]]
BackendSpec = Union["QueryBackend[Any]", Callable[[type], "QueryBackend[Any]"]]

# Annotation name -> field class used when a model declares plain annotations.
INFERRED_FIELDS: dict[str, type[Field]] = {
    "str": StringField,
    "int": NumberField,
    "float": NumberField,
    "bool": BooleanField,
    "datetime": DateField,
    "dict": JSONField,
    "list": JSONField,
}


def lower_first(value: str) -> str:
    """``"BlogPost"`` -> ``"blogPost"``."""
    return value[:1].lower() + value[1:]


def extract_pk(value: Any, model: type[BaseModel] | None = None) -> Any:
    """
    Return the primary key referenced by ``value``.

    Accepts a bare id, a mapping carrying the pk field, or an entity.
    """
    if value is None or value is MISSING:
        return None
    if isinstance(value, BaseModel):
        return value.pk
    if isinstance(value, Mapping):
        pk_field = model._meta.pk_field if model else query_settings.DEFAULT_PK_FIELD
        return value.get(pk_field, value.get("pk"))
    return value


def _infer_field(annotation: Any) -> type[Field] | None:
    text = annotation if isinstance(annotation, str) else getattr(
        annotation, "__name__", str(annotation)
    )
    text = text.replace("typing.", "").replace(" ", "")
    if "ClassVar" in text:
        return None
    optional = re.fullmatch(r"Optional\[(.+)\]", text)
    if optional:
        text = optional.group(1)
    options = [part for part in text.split("|") if part != "None"]
    if len(options) != 1:
        return None
    return INFERRED_FIELDS.get(options[0].split("[", 1)[0].split(".")[-1])


@dataclass
class ReverseRelation:
    """A relation pointing at a model, recorded on the target's metadata."""

    accessor: str
    source: type[Model]
    field_name: str


@dataclass
class ModelOptions:
    """Per-model binding of fields, backend, registry and signals."""

    name: str
    fields: dict[str, Field]
    pk_field: str
    abstract: bool = False
    registry: ModelRegistry | None = None
    signals: SignalRegistry = field(default_factory=lambda: model_signals)
    backend: QueryBackend[Any] | None = None
    reverse_relations: dict[str, ReverseRelation] = field(default_factory=dict)


class BaseModel:
    """
    Declarative entity with field normalization and validation.

    Fields are declared as ``Field`` descriptors or inferred from plain
    annotations (``str``, ``int``, ``float``, ``bool``, ``datetime``, ``dict``,
    ``list``); a plain class value becomes the inferred field's default.

    Example:
        >>> class Address(NestedModel):
        ...     city: str
        ...     zip_code = StringField(required=True)
    """

    __abstract__: ClassVar[bool] = True
    __auto_pk__: ClassVar[bool] = True
    pk_field: ClassVar[str | None] = None
    _meta: ClassVar[ModelOptions]

    def __init_subclass__(
        cls,
        *,
        name: str | None = None,
        signals: SignalRegistry | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        parent = getattr(cls, "_meta", None)
        pk_field = cls.pk_field or (
            parent.pk_field if parent else query_settings.DEFAULT_PK_FIELD
        )
        abstract = bool(cls.__dict__.get("__abstract__", False))
        cls._meta = ModelOptions(
            name=name or cls.__name__,
            fields=cls._collect_fields(pk_field, abstract=abstract),
            pk_field=pk_field,
            abstract=abstract,
            signals=signals or (parent.signals if parent else model_signals),
        )

    @classmethod
    def _collect_fields(cls, pk_field: str, *, abstract: bool) -> dict[str, Field]:
        fields: dict[str, Field] = {}
        for base in reversed(cls.__mro__[1:]):
            meta = base.__dict__.get("_meta")
            if meta is not None:
                fields.update(meta.fields)

        for attr, annotation in inspect.get_annotations(cls).items():
            if attr.startswith("_") or isinstance(cls.__dict__.get(attr), Field):
                continue
            field_cls = _infer_field(annotation)
            if field_cls is None:
                continue
            default = cls.__dict__.get(attr, MISSING)
            inferred = (
                field_cls(default_factory=default.copy)
                if isinstance(default, (dict, list))
                else field_cls(default=default)
            )
            setattr(cls, attr, inferred)
            inferred.__set_name__(cls, attr)

        for attr, value in cls.__dict__.items():
            if isinstance(value, Field):
                fields[attr] = value

        if cls.__auto_pk__ and not abstract and pk_field not in fields:
            pk = Field()
            setattr(cls, pk_field, pk)
            pk.__set_name__(cls, pk_field)
            fields = {pk_field: pk, **fields}
        return fields

    def __init__(self, data: Mapping[str, Any] | None = None, /, **values: Any):
        self.__dict__.update(self.normalize({**(data or {}), **values}))

    @classmethod
    def new(cls, data: Mapping[str, Any] | None = None) -> Self:
        """Build an instance from raw (external) data."""
        return cls(data)

    from_dict = new

    @classmethod
    def get_fields(cls) -> dict[str, Field]:
        return dict(cls._meta.fields)

    @property
    def pk(self) -> Any:
        return self.__dict__.get(self._meta.pk_field)

    @pk.setter
    def pk(self, value: Any) -> None:
        self.__dict__[self._meta.pk_field] = value

    def get_value(self, name: str) -> Any:
        """Return a field value, or ``MISSING`` when the field was never set."""
        if name in self.__dict__:
            return self.__dict__[name]
        if name in self._meta.fields:
            return MISSING
        return getattr(self, name, MISSING)

    def _field_state(self) -> dict[str, Any]:
        fields = self._meta.fields
        return {k: v for k, v in self.__dict__.items() if k in fields}

    def normalize(self, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Convert raw values to their internal form.

        Present values go through each field's ``to_internal`` (nested fields
        build the nested model). Absent fields stay unset unless the field
        declares a default. Keys that are not fields are dropped. Applying
        ``normalize`` to its own output returns the same values.
        """
        if data is None:
            data = self._field_state()
        normalized: dict[str, Any] = {}
        for name, fld in self._meta.fields.items():
            if name in data and data[name] is not MISSING:
                normalized[name] = fld.to_internal(data[name])
            elif fld.has_default:
                normalized[name] = fld.to_internal(fld.get_default())
        return normalized

    @classmethod
    def get_schema(cls, cache: dict[str, Schema] | None = None) -> Schema:
        """
        Compile a field name -> validator map.

        Nested models are inlined as composite validators. The schema is cached
        under the model name before recursing so self-referencing and mutually
        referencing nested models terminate.
        """
        if cache is None:
            cache = {}
        name = cls._meta.name
        if name in cache:
            return cache[name]

        schema: Schema = {}
        cache[name] = schema
        for key, fld in cls._meta.fields.items():
            target = fld.resolve_target() if fld.is_nested else None
            if target is not None and issubclass(target, BaseModel):
                schema[key] = _composite_validator(fld, target.get_schema(cache))
            else:
                schema[key] = fld.validate
        return schema

    async def full_clean(self) -> None:
        """
        Validate every field, then run ``clean()``.

        Raises:
            ValidationError: On the first failing field. Nested entities report
                the dotted path (``"address.city"``).
        """
        schema = type(self).get_schema()
        for key, validator in schema.items():
            value = self.get_value(key)
            if isinstance(value, BaseModel) and self._meta.fields[key].is_nested:
                try:
                    await value.full_clean()
                except ValidationError as e:
                    path = f"{key}.{e.field}" if e.field else key
                    raise ValidationError(path, e.value, e.cause, e.details) from e
                continue
            try:
                result = validator(value)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise ValidationError(key, value, e) from e
        await self.clean()

    async def clean(self) -> None:
        """Hook for cross-field validation. Raise ``ValidationError`` to reject."""

    def to_dict(self, external: bool = False) -> dict[str, Any]:
        """
        Return the set field values.

        With ``external=True`` values go through ``to_external`` and virtual
        reverse fields are omitted.
        """
        data: dict[str, Any] = {}
        for name, fld in self._meta.fields.items():
            if name not in self.__dict__:
                continue
            value = self.__dict__[name]
            if external:
                if fld.type == FieldType.REVERSE.value:
                    continue
                value = fld.to_external(value)
            data[name] = value
        return data

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._meta.pk_field}={self.pk!r}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BaseModel) or type(other) is not type(self):
            return NotImplemented
        if self.pk is None or other.pk is None:
            return self is other
        return self.pk == other.pk

    def __hash__(self) -> int:
        if self.pk is None:
            return id(self)
        return hash((type(self), self.pk))


def _composite_validator(fld: Field, nested: Schema) -> Callable[[Any], None]:
    def validate(value: Any) -> None:
        if value is None or value is MISSING:
            if fld.required:
                raise ValueError("This field is required.")
            return
        fld.check(value)
        for key, validator in nested.items():
            if isinstance(value, Mapping):
                validator(value.get(key))
            else:
                validator(getattr(value, key, None))

    return validate


class NestedModel(BaseModel):
    """An embedded value object without identity or persistence."""

    __abstract__ = True
    __auto_pk__ = False


class _ObjectsDescriptor:
    def __get__(self, instance: Any, owner: type[Model]) -> QuerySet[Any]:
        if instance is not None:
            msg = "objects is accessible via the model class only"
            raise AttributeError(msg)
        return owner.get_queryset()


class Model(BaseModel):
    """
    Persistent entity bound to a query backend.

    ``Model.objects`` is the model's default ``QuerySet``.

    Example:
        >>> class User(Model, backend=MemoryBackend):
        ...     name = StringField(required=True)
        ...     group = RelationField("Group")
        >>> await User(name="Ana").save()
        >>> ana = await User.objects.get(name="Ana")
    """

    __abstract__ = True
    objects: ClassVar[QuerySet[Any]] = _ObjectsDescriptor()  # type: ignore[assignment]

    # Model-specific exception aliases
    DoesNotExist = DoesNotExistError
    MultipleObjectsReturned = MultipleObjectsReturnedError

    def __init_subclass__(cls, *, backend: BackendSpec | None = None, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        if backend is not None:
            cls.set_backend(backend)

    @classmethod
    def set_backend(cls, backend: BackendSpec) -> QueryBackend[Any]:
        """
        Bind a backend instance, or a factory called with the model class.
        """
        from .backends.base import QueryBackend

        if not isinstance(backend, QueryBackend):
            backend = backend(cls)
        cls._meta.backend = backend
        return backend

    @classmethod
    def get_backend(cls) -> QueryBackend[Any]:
        backend = cls._meta.backend
        if backend is None:
            msg = f"No backend bound to {cls.__name__}. Call set_backend() first."
            raise RuntimeError(msg)
        return backend

    @classmethod
    def get_queryset(cls) -> QuerySet[Self]:
        from .queryset import QuerySet

        return QuerySet(cls, cls.get_backend())

    def before_save(self) -> Self:
        """Hook run right before the backend write. Returns the entity to store."""
        return self

    async def save(self, validate: bool = True) -> Self:
        """
        Normalize, validate and persist the entity.

        Emits ``pre_save`` and ``post_save``. A validation failure aborts the
        save before anything is emitted or written.
        """
        cls = type(self)
        self.__dict__.update(self.normalize())
        if validate:
            await self.full_clean()
        signals = cls._meta.signals
        await signals.emit(ModelSignal.PRE_SAVE, cls, self)
        entity = self.before_save()
        await cls.objects.save(entity)
        logger.debug("Saved %r", entity)
        await signals.emit(ModelSignal.POST_SAVE, cls, self)
        return self

    async def delete(self) -> None:
        """Remove the entity, emitting ``pre_delete`` and ``post_delete``."""
        cls = type(self)
        signals = cls._meta.signals
        await signals.emit(ModelSignal.PRE_DELETE, cls, self)
        await cls.objects.delete(self)
        logger.debug("Deleted %r", self)
        await signals.emit(ModelSignal.POST_DELETE, cls, self)

    def _relation_target(self, field_name: str, *, reverse: bool) -> tuple[Field, type[Model]]:
        meta = self._meta
        fld = meta.fields.get(field_name)
        valid = fld is not None and (fld.is_reverse if reverse else fld.is_relation)
        if not valid:
            raise InvalidRelationFieldError(meta.name, field_name)
        target = fld.resolve_target(meta.registry)
        if target is None:
            raise RelatedModelNotFoundError(meta.name, field_name, fld.target_name())
        return fld, target

    def prepare_related(self, field_name: str) -> QuerySet[Any]:
        """Return the target queryset narrowed to the related entity's pk."""
        _, target = self._relation_target(field_name, reverse=False)
        pk = extract_pk(self.get_value(field_name), target)
        return target.objects.filter({target._meta.pk_field: pk})

    async def get_related(self, field_name: str) -> Model | None:
        """
        Fetch the entity referenced by a relation field, or None when absent.

        Raises:
            InvalidRelationFieldError: If the field is missing or not a relation.
            RelatedModelNotFoundError: If the target model cannot be resolved.
        """
        return await self.prepare_related(field_name).first()

    def get_related_many(self, field_name: str) -> QuerySet[Any]:
        """
        Return a lazy queryset over a reverse or many-to-many field.

        Reverse fields filter the target on ``"<related_name>.<pk>"``;
        many-to-many fields filter the target's pk on the ids held here.
        """
        fld, target = self._relation_target(field_name, reverse=True)
        if fld.type == FieldType.MANY_TO_MANY.value:
            refs = self.get_value(field_name)
            ids = [extract_pk(ref, target) for ref in (refs or ())]
            return target.objects.filter({target._meta.pk_field: {"in": ids}})
        related = fld.related_name or lower_first(self._meta.name)
        return target.objects.filter({f"{related}.{self._meta.pk_field}": self.pk})
