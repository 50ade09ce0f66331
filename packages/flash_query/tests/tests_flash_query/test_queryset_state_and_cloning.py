import pytest
from flash_query import MemoryBackend, OrderBy, Ordering, Pagination, PrefetchOptions
from flash_query.queryset import QuerySet, normalize_filter
from flash_query.queryset.base import QuerySetBase, copy_tree
from pydantic import ValidationError as PydanticValidationError

from .models import Group, User


def test_queryset_clone_preserves_state_and_class():
    """
    Verify that _clone keeps the model, backend and the concrete QuerySet
    class while applying the requested changes.
    """
    backend = MemoryBackend(User)
    qs1 = QuerySet(User, backend, filters={"name": "Ana"}, only=["name"])
    qs2 = qs1._clone(flat=True)

    assert type(qs2) is QuerySet
    assert qs2.model is User
    assert qs2.backend is backend
    assert qs2._filters == {"name": "Ana"}
    assert qs2._only == ["name"]
    assert qs2._flat is True
    assert qs1._flat is False


def test_base_clone_instantiates_the_same_class():
    """Verify that a QuerySetBase clones into a QuerySetBase."""
    qs = QuerySetBase(User, MemoryBackend(User))
    assert type(qs._clone()) is QuerySetBase


def test_chaining_never_mutates_the_source():
    """Verify that each chain method returns a new, independent instance."""
    base = User.objects.filter({"age": {"gte": 18}})
    derived = (
        base.filter(name="Ana")
        .order_by("-age")
        .limit(5)
        .offset(2)
        .only("name")
        .select_related("group")
        .prefetch_related("tags")
        .values_list("name", flat=True)
    )

    assert base is not derived
    assert base._filters == {"age": {"gte": 18}}
    assert base._ordering == []
    assert base._pagination == Pagination()
    assert base._only is None
    assert base._select_related == []
    assert base._prefetch_related == {}
    assert base._values_list is None


def test_nested_filter_containers_are_not_shared():
    """Verify that mutating a derived queryset's filter tree leaves the source intact."""
    expr = {"age": {"gte": 18}, "OR": {"tags": {"in": ["a"]}}}
    base = User.objects.filter(expr)
    derived = base.filter(name="Ana")

    derived._filters["age"]["gte"] = 99
    derived._filters["OR"]["tags"]["in"].append("b")

    assert base._filters["age"] == {"gte": 18}
    assert base._filters["OR"]["tags"]["in"] == ["a"]
    assert expr["OR"]["tags"]["in"] == ["a"]


def test_copy_tree_shares_leaves():
    """Verify that copy_tree copies containers but not leaf values."""
    leaf = object()
    tree = {"a": [leaf, {"b": leaf}]}
    copied = copy_tree(tree)

    assert copied == tree
    assert copied["a"] is not tree["a"]
    assert copied["a"][0] is leaf


class TestConstruction:
    def test_filter_merges_shallowly(self):
        """Should replace top-level keys given again, logical keys included."""
        qs = User.objects.filter({"age": {"gte": 18}, "OR": {"name": "A"}})
        qs = qs.filter({"age": {"lt": 30}, "OR": {"name": "B"}})
        assert qs._filters == {"age": {"lt": 30}, "OR": {"name": "B"}}

    def test_keyword_lookups(self):
        """Should parse field__lookup keywords into filter expressions."""
        qs = User.objects.filter(age__gte=18, age__lt=30, group__id="g1", name__icontains="an")
        assert qs._filters == {
            "age": {"gte": 18, "lt": 30},
            "group.id": {"exact": "g1"},
            "name": {"icontains": "an"},
        }

    def test_exclude_wraps_in_not(self):
        """Should be equivalent to filter({'NOT': expr})."""
        qs = User.objects.exclude({"name": "Ana"})
        assert qs._filters == {"NOT": {"name": "Ana"}}
        assert User.objects.exclude(age__lt=18)._filters == {"NOT": {"age": {"lt": 18}}}

    def test_order_by_replaces_and_parses(self):
        """Should parse a leading '-' as descending and replace prior ordering."""
        qs = User.objects.order_by("name").order_by("-age", OrderBy("name"))
        assert qs._ordering == [OrderBy("age", Ordering.DESC), OrderBy("name", Ordering.ASC)]
        assert qs._ordering[0].descending

    def test_limit_and_offset_keep_each_other(self):
        """Should only change the key they set."""
        qs = User.objects.offset(10).limit(5)
        assert qs._pagination == Pagination(limit=5, offset=10)
        assert qs.limit(3)._pagination.offset == 10

    def test_paginate_merges_provided_keys(self):
        """Should merge keyword, mapping and Pagination inputs."""
        qs = User.objects.paginate(limit=5, offset=10)
        assert qs.paginate(offset=20)._pagination == Pagination(limit=5, offset=20)
        assert qs.paginate({"limit": None})._pagination == Pagination(offset=10)
        assert qs.paginate(Pagination(limit=1))._pagination == Pagination(limit=1, offset=10)

    def test_negative_pagination_is_rejected(self):
        """Should refuse negative limits and offsets."""
        with pytest.raises(PydanticValidationError):
            User.objects.limit(-1)

    def test_prefetch_related_accepts_names_and_options(self):
        """Should record bare names as True and mappings as PrefetchOptions."""
        qs = Group.objects.prefetch_related(
            "members", {"members": {"ordering": "-age", "pagination": {"limit": 2}}}
        )
        options = qs._prefetch_related["members"]

        assert isinstance(options, PrefetchOptions)
        assert options.ordering == ["-age"]
        assert options.pagination == Pagination(limit=2)

    def test_prefetch_related_ignores_unknown_names(self):
        """Should silently drop names that are not fields."""
        qs = User.objects.prefetch_related("nope", {"ghost": {}}, "tags")
        assert qs._prefetch_related == {"tags": True}

    def test_prefetch_related_accumulates(self):
        """Should keep earlier prefetch names."""
        qs = User.objects.prefetch_related("tags").prefetch_related("group")
        assert set(qs._prefetch_related) == {"tags", "group"}

    def test_select_related_replaces(self):
        """Should keep only the latest select-related names."""
        qs = User.objects.select_related("group").select_related("tags")
        assert qs._select_related == ["tags"]

    def test_values_list_state(self):
        """Should record the projected fields and the flat flag."""
        qs = User.objects.values_list("id", "name", flat=True)
        assert qs._values_list == ("id", "name")
        assert qs._flat is True


class TestNormalizeFilter:
    def test_wraps_literals_in_exact(self):
        """Should wrap non-mapping values and recurse into logical keys."""
        assert normalize_filter(
            {"name": "Ana", "age": {"gte": 1}, "OR": {"role": "admin"}}
        ) == {
            "name": {"exact": "Ana"},
            "age": {"gte": 1},
            "OR": {"role": {"exact": "admin"}},
        }

    def test_is_idempotent(self):
        """Should produce the same expression when applied twice."""
        expr = {"a": 1, "b": [1, 2], "NOT": {"AND": {"c": None}}, "OR": None}
        once = normalize_filter(expr)
        assert normalize_filter(once) == once

    def test_wraps_none_and_lists(self):
        """Should treat None and lists as literal values."""
        assert normalize_filter({"a": None, "b": [1]}) == {
            "a": {"exact": None},
            "b": {"exact": [1]},
        }
