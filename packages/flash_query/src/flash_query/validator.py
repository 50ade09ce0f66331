from typing import Type, TypeVar

from .fields import Field
from .logging import get_logger
from .models import BaseModel, Model

logger = get_logger(__name__)

T = TypeVar("T", bound="BaseModel")


class ModelValidator:
    """Validates that a class is a proper, registrable model."""

    @staticmethod
    def validate_model(model: Type[T]) -> Type[T]:
        """
        Validate that the provided class is a concrete BaseModel subclass.

        Raises:
            TypeError: If model is not a model class, is abstract, or declares a
                field that is not a Field instance.
        """
        if not isinstance(model, type):
            raise TypeError(f"model must be a class, got {type(model).__name__}")

        if not issubclass(model, BaseModel):
            raise TypeError(
                f"model must be a BaseModel subclass, got {model.__name__}. "
                f"Make sure '{model.__name__}' inherits from flash_query.Model"
            )

        if model._meta.abstract:
            raise TypeError(f"Model {model.__name__} is abstract and cannot be registered.")

        for name, field in model._meta.fields.items():
            if not isinstance(field, Field):
                raise TypeError(
                    f"Field '{name}' of {model.__name__} must be a Field instance, "
                    f"got {type(field).__name__}"
                )

        if issubclass(model, Model) and model._meta.pk_field not in model._meta.fields:
            logger.warning(
                f"Model {model.__name__} has no '{model._meta.pk_field}' field. "
                f"This may cause issues with pk-based lookups."
            )

        return model
