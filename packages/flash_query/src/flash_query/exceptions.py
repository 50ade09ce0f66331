from __future__ import annotations

from typing import Any


class FlashQueryError(Exception):
    """Base class for all Flash Query exceptions."""


class DoesNotExistError(FlashQueryError, ValueError):
    """Raised when a single object was expected but none was found."""

    def __init__(self, model_name: str, filters: dict[str, Any] | None = None):
        self.model_name = model_name
        self.filters = filters
        super().__init__(f"{model_name} matching filters not found.")


class MultipleObjectsReturnedError(FlashQueryError, ValueError):
    """Raised when a single object was expected but multiple were found."""

    def __init__(self, model_name: str, filters: dict[str, Any] | None = None):
        self.model_name = model_name
        self.filters = filters
        msg = f"Multiple {model_name} objects returned for given filters."
        if filters:
            msg = f"{msg} Filters: {filters!r}"
        super().__init__(msg)


class ValidationError(FlashQueryError, ValueError):
    """
    Raised when an entity fails ``full_clean()``.

    Attributes:
        field: Name of the offending field, or None for cross-field failures.
        value: The value that was rejected.
        cause: The underlying exception raised by the validator.
        details: Optional mapping of field name to error messages.
    """

    def __init__(
        self,
        field: str | None = None,
        value: Any = None,
        cause: BaseException | None = None,
        details: dict[str, list[str]] | None = None,
        message: str | None = None,
    ):
        self.field = field
        self.value = value
        self.cause = cause
        self.details = details
        if message is None:
            message = (
                f"Validation failed for field '{field}': {cause}"
                if field
                else "Validation error"
            )
        super().__init__(message)


class InvalidRelationFieldError(FlashQueryError):
    """Raised when relation traversal targets a missing or non-relation field."""

    def __init__(self, model_name: str, field_name: str):
        self.model_name = model_name
        self.field_name = field_name
        super().__init__(
            f"Field '{field_name}' in model '{model_name}' is not a valid relation."
        )


class RelatedModelNotFoundError(FlashQueryError, LookupError):
    """Raised when a relation target cannot be resolved in the model registry."""

    def __init__(self, model_name: str, field_name: str, target: Any = None):
        self.model_name = model_name
        self.field_name = field_name
        self.target = target
        super().__init__(
            f"Model '{model_name}' has a relation field '{field_name}' "
            f"referencing unknown model '{target}'"
        )


class ModelAlreadyRegisteredError(FlashQueryError):
    """Raised when a model name is registered twice in the same registry."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        super().__init__(f"Model '{model_name}' is already registered.")


class MissingPrimaryKeyError(FlashQueryError, ValueError):
    """Raised when saving an entity without a primary key and no generator."""

    def __init__(self, model_name: str, pk_field: str):
        self.model_name = model_name
        self.pk_field = pk_field
        super().__init__(
            f"Missing primary key '{pk_field}' on {model_name} "
            "and auto-generation is disabled."
        )


class BackendNotImplementedError(FlashQueryError, NotImplementedError):
    """Raised by backend operations an integrator chose not to implement."""

    def __init__(self, feature: str):
        self.feature = feature
        super().__init__(f'"{feature}" is not implemented.')


class InvalidModelReferenceError(FlashQueryError, TypeError):
    """Raised when a field references something that is neither a name nor a model."""

    def __init__(self, model_name: str, field_name: str, received: Any):
        self.model_name = model_name
        self.field_name = field_name
        self.received = received
        kind = (
            getattr(received, "__name__", "[anonymous callable]")
            if callable(received)
            else repr(received)
        )
        super().__init__(
            f"Invalid model reference in field '{field_name}' of '{model_name}': "
            f"expected a registered model name or a model class, but received: {kind}"
        )


class GraphQLResponseError(FlashQueryError):
    """Raised when a GraphQL response carries errors or no data."""

    def __init__(self, errors: list[Any]):
        self.errors = errors
        messages = "; ".join(
            str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
        )
        super().__init__(f"GraphQL request failed: {messages}")
