from decimal import Decimal
from types import SimpleNamespace

from academy_office.domain.pricing import PricingResolver, is_billable_name, normalize_name


def test_normalize_name_collapses_whitespace_and_case():
    assert normalize_name("  Korean   Language ") == "korean language"
    assert normalize_name(None) == ""


def test_is_billable_name_excludes_empty_and_not_applicable():
    assert is_billable_name("Art") is True
    assert is_billable_name("N/A") is False
    assert is_billable_name("   ") is False
    assert is_billable_name(None) is False


def test_resolver_prefers_exact_persisted_price():
    """
    Validate persisted prices win over defaults.

    1. Build a resolver from academies with explicit prices.
    2. Resolve an exact, differently-cased name.
    3. Validate the persisted price in cents is returned.
    """
    resolver = PricingResolver.from_academies(
        [SimpleNamespace(name="Art", price=Decimal("120.00")), SimpleNamespace(name="Soccer", price=Decimal("45.50"))]
    )
    assert resolver.resolve_price("art") == 12000
    assert resolver.resolve_price(" SOCCER ") == 4550


def test_resolver_matches_by_substring_and_compact_name():
    """
    Validate fuzzy lookups by containment and whitespace-insensitive equality.

    1. Build a resolver with persisted names.
    2. Resolve a name that contains a persisted key and one that only differs in spacing.
    3. Validate both resolve to the persisted price.
    """
    resolver = PricingResolver({"Korean Language": 6000, "Pickle Ball": 5500})
    assert resolver.resolve_price("Korean Language Beginner") == 6000
    assert resolver.resolve_price("Pickleball") == 5500


def test_resolver_falls_back_to_default_table_and_skips_zero_prices():
    """
    Validate zero persisted prices count as unpriced.

    1. Build a resolver whose Piano price is zero.
    2. Resolve Piano and an academy only present in the default table.
    3. Validate both resolve from the static default table.
    """
    resolver = PricingResolver({"Piano": 0})
    assert resolver.resolve_price("Piano") == 10000
    assert resolver.resolve_price("Taekwondo") == 10000


def test_resolver_returns_zero_for_unknown_and_not_applicable_names():
    """
    Validate unresolvable names price at zero.

    1. Build a resolver with an empty default table.
    2. Resolve an unknown academy and the N/A placeholder.
    3. Validate both resolve to zero.
    """
    resolver = PricingResolver({"Art": 10000}, defaults={})
    assert resolver.resolve_price("Chess Club") == 0
    assert resolver.resolve_price("N/A") == 0
    assert resolver.resolve_price(None) == 0
