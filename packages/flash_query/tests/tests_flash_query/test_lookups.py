import pytest
from flash_query.lookups import (
    MISSING,
    Lookup,
    LookupRegistry,
    get_lookup,
    lookup_registry,
    register_lookup,
    strict_equals,
)


class TestStrictEquality:
    def test_booleans_never_equal_numbers(self):
        """Should not coerce True to 1 or False to 0."""
        assert strict_equals(True, 1) is False
        assert strict_equals(0, False) is False
        assert strict_equals(True, True) is True

    def test_missing_equals_nothing(self):
        """Should treat a missing value as unequal to everything, itself included."""
        assert strict_equals(MISSING, None) is False
        assert strict_equals(MISSING, MISSING) is False

    def test_none_equals_none(self):
        """Should match an explicit None against None."""
        assert strict_equals(None, None) is True

    def test_missing_is_falsy_singleton(self):
        """Should expose MISSING as a falsy singleton."""
        assert not MISSING
        assert type(MISSING)() is MISSING
        assert repr(MISSING) == "MISSING"


class TestBuiltinLookups:
    def test_all_canonical_names_are_registered(self):
        """Should register every built-in operator name."""
        for lookup in Lookup:
            assert lookup in lookup_registry
            assert lookup.value in lookup_registry.names()

    def test_ordering_lookups(self):
        """Should compare ordered values and reject incomparable ones."""
        assert get_lookup("gt")(5, 3) is True
        assert get_lookup("gte")(3, 3) is True
        assert get_lookup("lt")(2, 3) is True
        assert get_lookup("lte")(4, 3) is False
        assert get_lookup("gt")("a", 1) is False
        assert get_lookup("gt")(None, 1) is False
        assert get_lookup("lt")(MISSING, 1) is False

    def test_ne_is_strict(self):
        """Should consider True and 1 different values."""
        assert get_lookup("ne")(True, 1) is True
        assert get_lookup("ne")("a", "a") is False

    def test_in_and_not_in(self):
        """Should check membership with strict equality and require a collection."""
        assert get_lookup("in")(2, [1, 2, 3]) is True
        assert get_lookup("in")(1, [True]) is False
        assert get_lookup("in")("a", "abc") is False
        assert get_lookup("notIn")(4, (1, 2)) is True
        assert get_lookup("notIn")(1, [1]) is False
        assert get_lookup("notIn")(1, 5) is False

    def test_string_lookups_reject_non_strings(self):
        """Should return False when the value is not a string."""
        for name in ("contains", "iContains", "startsWith", "endsWith"):
            assert get_lookup(name)(42, "4") is False

    def test_string_lookups(self):
        """Should match substrings, prefixes and suffixes."""
        assert get_lookup("contains")("Ana Maria", "Maria") is True
        assert get_lookup("contains")("Ana", "ana") is False
        assert get_lookup("iContains")("Ana", "AN") is True
        assert get_lookup("startsWith")("Ana", "An") is True
        assert get_lookup("iStartsWith")("Ana", "aN") is True
        assert get_lookup("endsWith")("Ana", "na") is True
        assert get_lookup("iEndsWith")("Ana", "NA") is True

    def test_iexact_ignores_case(self):
        """Should compare case-insensitively."""
        assert get_lookup("iExact")("Ana", "aNA") is True
        assert get_lookup("iExact")("Ana", "Bob") is False
        assert get_lookup("iExact")(MISSING, "x") is False

    def test_is_null(self):
        """Should treat None and missing values as null."""
        is_null = get_lookup("isNull")
        assert is_null(None, True) is True
        assert is_null(MISSING, True) is True
        assert is_null("x", True) is False
        assert is_null("x", False) is True
        assert is_null(None, False) is False

    def test_exists(self):
        """Should be true for any set value, None included."""
        exists = get_lookup("exists")
        assert exists(None, True) is True
        assert exists(0, True) is True
        assert exists(MISSING, True) is False
        assert exists(MISSING, False) is True

    def test_range_is_inclusive(self):
        """Should accept start/end mappings and two-item sequences."""
        in_range = get_lookup("range")
        assert in_range(5, {"start": 1, "end": 5}) is True
        assert in_range(1, [1, 4]) is True
        assert in_range(5, [1, 4]) is False
        assert in_range("x", [1, 4]) is False
        assert in_range(3, [1, 2, 3]) is False

    def test_length(self):
        """Should compare lengths directly or through nested lookups."""
        length = get_lookup("length")
        assert length("abc", 3) is True
        assert length([1, 2], {"gte": 2, "lt": 5}) is True
        assert length([1, 2], {"gt": 2}) is False
        assert length(5, 1) is False
        assert length(None, 0) is False

    def test_lowercase_aliases(self):
        """Should resolve keyword-style aliases to the canonical lookups."""
        assert get_lookup("icontains")("Ana", "an") is True
        assert get_lookup("startswith")("Ana", "A") is True
        assert get_lookup("not_in")(3, [1]) is True
        assert get_lookup("isnull")(None, True) is True


class TestLookupRegistry:
    def test_unknown_lookup_falls_back_to_strict_equality(self):
        """Should never raise on an unknown operator name."""
        compare = get_lookup("doesNotExist")
        assert compare(1, 1) is True
        assert compare(True, 1) is False

    def test_register_on_isolated_registry(self):
        """Should keep custom lookups local to their registry."""
        registry = LookupRegistry()
        registry.register("divisibleBy", lambda value, n: value % n == 0)

        assert registry.compare("divisibleBy", 9, 3) is True
        assert "divisibleBy" in registry
        assert "divisibleBy" not in lookup_registry

    def test_registry_without_builtins(self):
        """Should start empty when built-ins are disabled."""
        registry = LookupRegistry(builtins=False)
        assert tuple(registry.names()) == ()
        assert registry.compare("gt", 5, 1) is False

    def test_register_lookup_on_default_registry(self):
        """Should make a lookup available through get_lookup."""
        register_lookup("isEven", lambda value, flag: (value % 2 == 0) == flag)
        assert get_lookup("isEven")(4, True) is True
        assert get_lookup("isEven")(3, True) is False

    @pytest.mark.parametrize("name", ["notin", "istartswith", "iendswith", "iexact"])
    def test_alias_shares_the_target_comparison(self, name):
        """Should register each alias to the same callable as its target."""
        assert lookup_registry.resolve(name) is not None
        assert name in lookup_registry
