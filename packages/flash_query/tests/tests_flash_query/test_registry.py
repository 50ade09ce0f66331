import pytest
from flash_query import (
    ManyToManyField,
    MemoryBackend,
    Model,
    ModelAlreadyRegisteredError,
    ModelRegistry,
    NestedModel,
    RelatedModelNotFoundError,
    RelationField,
    ReverseField,
    StringField,
)
from flash_query.registry import ReverseAccessor


def build_models():
    """Declare a fresh Author/Book pair bound to in-memory backends."""

    class Author(Model, backend=MemoryBackend):
        name = StringField()

    class Book(Model, backend=MemoryBackend):
        title = StringField()
        author = RelationField("Author")

    return Author, Book


class TestModelRegistry:
    def test_register_and_lookup(self):
        """Should store models by name and expose them."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book, name="Novel")

        assert registry.get("Author") is Author
        assert registry.get("Novel") is Book
        assert registry.get("Missing") is None
        assert registry.get_all() == {"Author": Author, "Novel": Book}
        assert "Author" in registry
        assert len(registry) == 2
        assert list(registry) == [Author, Book]
        assert Author._meta.registry is registry

    def test_register_as_decorator(self):
        """Should return the model so it can decorate a class."""
        registry = ModelRegistry()

        @registry.register
        class Shelf(Model):
            pass

        assert registry.get("Shelf") is Shelf

    def test_duplicate_registration(self):
        """Should refuse a name that is already taken."""
        registry = ModelRegistry()
        Author, _ = build_models()
        registry.register(Author)

        with pytest.raises(ModelAlreadyRegisteredError) as exc:
            registry.register(Author)
        assert exc.value.model_name == "Author"

    def test_register_rejects_invalid_models(self):
        """Should only accept concrete model classes."""
        registry = ModelRegistry()

        with pytest.raises(TypeError):
            registry.register(Model)
        with pytest.raises(TypeError):
            registry.register(object)  # type: ignore[arg-type]

    def test_resolve(self):
        """Should resolve names and registered classes only."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)

        assert registry.resolve("Author") is Author
        assert registry.resolve(Author) is Author
        assert registry.resolve(Book) is None
        assert registry.resolve(42) is None

    def test_names_resolve_within_the_owning_registry(self):
        """Should resolve string targets through the registry that owns the model."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book)

        assert Book._meta.fields["author"].resolve_target() is Author


class TestValidate:
    def test_validate_installs_default_reverse_accessor(self):
        """Should install '<model>_set' on the relation target."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book)

        registry.validate()

        accessor = Author.__dict__["book_set"]
        assert isinstance(accessor, ReverseAccessor)
        assert accessor.source is Book
        assert Author._meta.reverse_relations["book_set"].field_name == "author"

    def test_validate_is_idempotent(self):
        """Should leave already installed accessors alone."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book)

        registry.validate()
        accessor = Author.__dict__["book_set"]
        registry.validate()

        assert Author.__dict__["book_set"] is accessor
        assert len(Author._meta.reverse_relations) == 1

    def test_validate_rejects_unregistered_targets(self):
        """Should raise when a relation target is not registered."""
        registry = ModelRegistry()
        _, Book = build_models()
        registry.register(Book)

        with pytest.raises(RelatedModelNotFoundError) as exc:
            registry.validate()
        assert exc.value.model_name == "Book"
        assert exc.value.field_name == "author"

    def test_validate_checks_reverse_and_many_to_many_targets(self):
        """Should also resolve reverse and many-to-many targets."""
        registry = ModelRegistry()

        @registry.register
        class Team(Model):
            players = ReverseField("Player", related_name="team")

        with pytest.raises(RelatedModelNotFoundError):
            registry.validate()

        registry = ModelRegistry()

        @registry.register
        class Playlist(Model):
            songs = ManyToManyField("Song")

        with pytest.raises(RelatedModelNotFoundError):
            registry.validate()

    def test_validate_does_not_shadow_existing_attributes(self):
        """Should not overwrite an attribute already present on the target."""
        registry = ModelRegistry()

        @registry.register
        class Owner(Model):
            def pet_set(self):
                return "kept"

        @registry.register
        class Pet(Model):
            owner = RelationField("Owner")

        registry.validate()
        assert Owner().pet_set() == "kept"
        assert "pet_set" not in Owner._meta.reverse_relations

    def test_clear_removes_models_and_accessors(self):
        """Should forget models and uninstall the accessors it created."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book)
        registry.validate()

        registry.clear()

        assert len(registry) == 0
        assert "book_set" not in Author.__dict__
        assert Author._meta.reverse_relations == {}
        assert Author._meta.registry is None

    def test_nested_models_are_registrable(self):
        """Should accept nested models for name-based nesting."""
        registry = ModelRegistry()

        @registry.register
        class Coordinates(NestedModel):
            pass

        assert registry.get("Coordinates") is Coordinates


class TestReverseAccessor:
    pytestmark = pytest.mark.asyncio

    async def test_reverse_accessor_queries_source_model(self):
        """Should return the source queryset filtered on the relation path."""
        registry = ModelRegistry()
        Author, Book = build_models()
        registry.register(Author)
        registry.register(Book)
        registry.validate()

        ana = await Author(id="a1", name="Ana").save()
        await Book(id="b1", title="One", author={"id": "a1"}).save()
        await Book(id="b2", title="Two", author={"id": "a2"}).save()

        qs = ana.book_set
        assert qs._filters == {"author.id": "a1"}
        assert [b.title for b in await qs.execute()] == ["One"]
        assert Author.book_set is Author.__dict__["book_set"]
