from datetime import datetime, timezone

import pytest
from flash_query import (
    DateField,
    EmailField,
    EnumField,
    Field,
    FieldType,
    InvalidModelReferenceError,
    JSONField,
    ManyToManyField,
    Model,
    NestedField,
    NumberField,
    RelationField,
    StringField,
)

from .models import Address, Group, Role, Tag, User


class TestFieldDefinition:
    def test_fields_are_read_only(self):
        """Should reject assignment to a declared field's definition."""
        with pytest.raises(AttributeError, match="read-only"):
            User.name.required = False

    def test_class_access_returns_the_field(self):
        """Should return the descriptor itself when read from the class."""
        field = User.__dict__["name"]
        assert User.name is field
        assert field.name == "name"
        assert field.owner is User
        assert field.type == FieldType.STRING.value

    def test_custom_type_string(self):
        """Should accept open string kinds for extension fields."""
        field = Field(type="geo_point")
        assert field.type == "geo_point"

    def test_default_factory_produces_fresh_values(self):
        """Should call the factory each time a default is needed."""
        field = JSONField(default_factory=list)
        first, second = field.get_default(), field.get_default()
        assert first == [] and first is not second
        assert field.has_default

    def test_custom_converters_override_builtins(self):
        """Should use user converters instead of parse/serialize."""
        field = StringField(to_internal=str.strip, to_external=str.upper)
        assert field.to_internal("  ana ") == "ana"
        assert field.to_external("ana") == "ANA"


class TestValidation:
    def test_required(self):
        """Should reject None for required fields only."""
        with pytest.raises(ValueError, match="required"):
            StringField(required=True).validate(None)
        StringField().validate(None)

    def test_type_checks(self):
        """Should reject values of the wrong kind."""
        with pytest.raises(TypeError):
            StringField().validate(3)
        with pytest.raises(TypeError):
            NumberField().validate(True)
        with pytest.raises(TypeError):
            NumberField().validate("abc")

    def test_email_shape(self):
        """Should accept well formed addresses only."""
        EmailField().validate("ana@example.com")
        EmailField().validate("ana.maria+news@mail.example.org")
        for bad in ("ana@", "ana@example..com", "a..b@example.com", "ana example@x.io"):
            with pytest.raises(ValueError, match="not a valid email"):
                EmailField().validate(bad)

    def test_enum_membership(self):
        """Should restrict values to the enum's values."""
        field = EnumField(Role)
        assert field.choices == ("admin", "member")
        assert field.to_internal(Role.ADMIN) == "admin"
        with pytest.raises(ValueError, match="not one of"):
            field.validate("owner")

    def test_user_validator_returning_false(self):
        """Should reject a value when the validator returns False."""
        field = NumberField(validator=lambda value: value > 0)
        field.validate(1)
        with pytest.raises(ValueError, match="custom validation"):
            field.validate(-1)


class TestConversion:
    def test_number_parses_numeric_strings(self):
        """Should turn integral strings into int and others into float."""
        field = NumberField()
        assert field.to_internal("42") == 42
        assert field.to_internal("4.5") == 4.5
        assert field.to_internal("abc") == "abc"
        assert field.to_internal(7) == 7

    def test_date_round_trip(self):
        """Should parse ISO strings and render them back unchanged."""
        field = DateField()
        value = field.to_internal("2024-01-02T03:04:05.678Z")

        assert value == datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert field.to_external(value) == "2024-01-02T03:04:05.678Z"

    def test_date_from_epoch_milliseconds(self):
        """Should read numbers as epoch milliseconds."""
        value = DateField().to_internal(1_000)
        assert value == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    def test_date_normalizes_offsets_to_utc(self):
        """Should render any offset as UTC with a Z suffix."""
        field = DateField()
        value = field.to_internal("2024-01-02T05:04:05+02:00")
        assert field.to_external(value) == "2024-01-02T03:04:05.000Z"

    def test_json_round_trip(self):
        """Should decode strings on input and encode on output."""
        field = JSONField()
        value = field.to_internal('{"theme": "dark", "sizes": [1, 2]}')

        assert value == {"theme": "dark", "sizes": [1, 2]}
        assert field.to_internal(field.to_external(value)) == value

    def test_json_keeps_non_json_strings(self):
        """Should leave strings that are not JSON documents untouched."""
        assert JSONField().to_internal("hello") == "hello"

    def test_json_scalars_are_not_decoded_twice(self):
        """Should keep scalar payloads and encode only objects and arrays."""
        field = JSONField()
        for raw in ('"123"', "123", "true", "null"):
            once = field.to_internal(raw)
            assert once == raw
            assert field.to_internal(once) == once

        assert field.to_external(5) == 5
        assert field.to_external([1, 2]) == "[1, 2]"
        assert field.to_internal(field.to_external("[broken")) == "[broken"

    def test_relation_serializes_entities_as_references(self):
        """Should render related entities as pk mappings."""
        group = Group(id="g1", name="Dev")
        assert RelationField("Group").to_external(group) == {"id": "g1"}
        assert RelationField("Group").to_external("g1") == "g1"

    def test_many_to_many_serializes_each_item(self):
        """Should render a list of entities and ids as references."""
        field = ManyToManyField("Tag")
        value = field.to_internal((Tag(id="t1", name="a"), {"id": "t2"}))
        assert field.to_external(value) == [{"id": "t1"}, {"id": "t2"}]

    def test_nested_builds_model_from_mapping(self):
        """Should build the nested model and render it back as a dict."""
        field = User.__dict__["address"]
        address = field.to_internal({"city": "Lisbon"})

        assert isinstance(address, Address)
        assert address.city == "Lisbon"
        assert field.to_internal(address) is address
        assert field.to_external(address) == {"city": "Lisbon"}


class TestTargetResolution:
    def test_name_resolves_through_owner_registry(self):
        """Should find a target registered alongside the owner."""
        assert User.__dict__["group"].resolve_target() is Group

    def test_self_reference(self):
        """Should resolve 'self' and the owner's name to the owner."""

        class Node(Model):
            parent = RelationField("self")
            sibling = RelationField("Node")

        assert Node.__dict__["parent"].resolve_target() is Node
        assert Node.__dict__["sibling"].resolve_target() is Node

    def test_class_and_callable_targets(self):
        """Should accept classes and lazy callables."""
        assert RelationField(Tag).resolve_target() is Tag
        assert RelationField(lambda: Tag).resolve_target() is Tag
        assert NestedField(Address).target_name() == "Address"

    def test_invalid_reference(self):
        """Should reject targets that are neither names nor models."""
        with pytest.raises(InvalidModelReferenceError) as exc:
            RelationField(42).resolve_target()
        assert exc.value.received == 42
        assert isinstance(exc.value, TypeError)
