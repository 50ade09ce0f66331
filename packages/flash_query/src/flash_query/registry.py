from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, TypeVar

from .exceptions import ModelAlreadyRegisteredError, RelatedModelNotFoundError
from .logging import get_logger
from .models import BaseModel, ReverseRelation, lower_first
from .validator import ModelValidator

if TYPE_CHECKING:
    from .models import Model

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class ReverseAccessor:
    """
    Reverse side of a relation, installed on the relation's target.

    Reading it from an entity returns the source model's queryset narrowed to
    rows whose relation field points at that entity.
    """

    def __init__(self, source: type[Model], field_name: str) -> None:
        self.source = source
        self.field_name = field_name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        pk_field = type(instance)._meta.pk_field
        return self.source.objects.filter({f"{self.field_name}.{pk_field}": instance.pk})

    def __repr__(self) -> str:
        return f"<ReverseAccessor {self.source.__name__}.{self.field_name}>"


class ModelRegistry:
    """
    Name-keyed store of model classes.

    ``validate()`` checks that every relation target is registered and wires
    reverse accessors on the targets.

    Example:
        >>> registry = ModelRegistry()
        >>> registry.register(Group)
        >>> registry.register(User)
        >>> registry.validate()
        >>> await group.user_set.execute()
    """

    def __init__(self) -> None:
        self._models: dict[str, type[BaseModel]] = {}

    def register(self, model: type[M], name: str | None = None) -> type[M]:
        """
        Register ``model`` under ``name`` (default: the model's name).

        Usable as a class decorator.

        Raises:
            ModelAlreadyRegisteredError: If the name is already taken.
            TypeError: If ``model`` is not a concrete model class.
        """
        ModelValidator.validate_model(model)
        key = name or model._meta.name
        if key in self._models:
            raise ModelAlreadyRegisteredError(key)
        self._models[key] = model
        model._meta.registry = self
        logger.debug("Registered model %s", key)
        return model

    def get(self, name: str) -> type[BaseModel] | None:
        return self._models.get(name)

    def get_all(self) -> dict[str, type[BaseModel]]:
        return dict(self._models)

    def resolve(self, target: Any) -> type[BaseModel] | None:
        """Resolve a name or a registered class; anything else gives None."""
        if isinstance(target, str):
            return self.get(target)
        if isinstance(target, type) and target in self._models.values():
            return target
        return None

    def clear(self) -> None:
        """Forget every model and remove the reverse accessors installed for them."""
        sources = set(self._models.values())
        for model in sources:
            meta = model._meta
            for accessor, relation in list(meta.reverse_relations.items()):
                if relation.source in sources:
                    del meta.reverse_relations[accessor]
                    if isinstance(model.__dict__.get(accessor), ReverseAccessor):
                        delattr(model, accessor)
            if meta.registry is self:
                meta.registry = None
        self._models.clear()

    def validate(self) -> None:
        """
        Resolve every relation target and install reverse accessors.

        Idempotent: accessors already present are left alone.

        Raises:
            RelatedModelNotFoundError: If a relation target is not registered.
        """
        for model in self._models.values():
            meta = model._meta
            for field_name, field in meta.fields.items():
                if not (field.is_relation or field.is_reverse):
                    continue
                target = self._resolve_target(model, field_name)
                if field.is_relation:
                    self._install_reverse(model, field_name, target)

    def _resolve_target(self, model: type[BaseModel], field_name: str) -> type[BaseModel]:
        field = model._meta.fields[field_name]
        target = field.resolve_target(self)
        if target is None or target not in self._models.values():
            raise RelatedModelNotFoundError(
                model._meta.name, field_name, field.target_name()
            )
        return target

    def _install_reverse(
        self, model: type[BaseModel], field_name: str, target: type[BaseModel]
    ) -> None:
        field = model._meta.fields[field_name]
        accessor = field.reverse_name or f"{lower_first(model._meta.name)}_set"
        relations = target._meta.reverse_relations
        if accessor in relations or hasattr(target, accessor):
            return
        setattr(target, accessor, ReverseAccessor(model, field_name))  # type: ignore[arg-type]
        relations[accessor] = ReverseRelation(accessor, model, field_name)  # type: ignore[arg-type]
        logger.debug(
            "Installed reverse accessor %s.%s -> %s.%s",
            target.__name__,
            accessor,
            model.__name__,
            field_name,
        )

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __iter__(self) -> Iterator[type[BaseModel]]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


# Process-wide default registry
model_registry = ModelRegistry()
