import logging

import pytest
from flash_query import Field, Model, NestedModel, StringField
from flash_query.validator import ModelValidator

from .models import Address, User


class NotAModel:
    pass


class TestModelValidator:
    def test_validate_model_with_valid_model(self):
        """Test that a valid model passes validation."""
        assert ModelValidator.validate_model(User) is User

    def test_validate_nested_model(self):
        """Test that concrete nested models pass validation."""
        assert ModelValidator.validate_model(Address) is Address

    def test_validate_model_with_non_class(self):
        """Test that a non-class raises TypeError."""
        with pytest.raises(TypeError, match="model must be a class"):
            ModelValidator.validate_model(123)  # type: ignore[arg-type]

    def test_validate_model_with_non_model_subclass(self):
        """Test that a non-BaseModel subclass raises TypeError."""
        with pytest.raises(TypeError, match="model must be a BaseModel subclass"):
            ModelValidator.validate_model(NotAModel)  # type: ignore[arg-type]

    def test_validate_abstract_model(self):
        """Test that abstract models are rejected."""

        class Timestamped(Model):
            __abstract__ = True
            created = StringField()

        with pytest.raises(TypeError, match="is abstract"):
            ModelValidator.validate_model(Timestamped)
        with pytest.raises(TypeError, match="is abstract"):
            ModelValidator.validate_model(NestedModel)

    def test_validate_non_field_entries(self):
        """Test that metadata entries must be Field instances."""

        class Broken(Model):
            name = StringField()

        Broken._meta.fields["bogus"] = "not a field"  # type: ignore[assignment]

        with pytest.raises(TypeError, match="must be a Field instance"):
            ModelValidator.validate_model(Broken)

    def test_validate_model_missing_pk_warns(self, caplog):
        """Test that a Model without its pk field logs a warning."""

        class Keyless(Model):
            __auto_pk__ = False
            name = StringField()

        with caplog.at_level(logging.WARNING, logger="flash_query.validator"):
            ModelValidator.validate_model(Keyless)

        assert "has no 'id' field" in caplog.text
        assert isinstance(Keyless._meta.fields["name"], Field)
