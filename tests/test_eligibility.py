"""Test the eligibility matcher."""
from decimal import Decimal

from pricing.categories import build_tree
from pricing.eligibility import matched_positions, matches, scope_categories
from pricing.rules import Category, LineItem, RuleScope, Scope


def _item(product_id, category_id=None):
    return LineItem(product_id=product_id, unit_price=Decimal("10"), category_id=category_id)


def test_all_scope_matches_everything_but_excluded():
    scope = RuleScope.from_lists(Scope.ALL, excluded_product_ids=["p2"])
    assert matches(scope, _item("p1"))
    assert not matches(scope, _item("p2"))


def test_specific_products_ignores_exclusions():
    scope = RuleScope.from_lists(
        Scope.SPECIFIC_PRODUCTS,
        included_product_ids=["p1"],
        excluded_product_ids=["p1"],
    )
    assert matches(scope, _item("p1"))
    assert not matches(scope, _item("p3"))


def test_specific_categories_exact_match():
    scope = RuleScope.from_lists(
        Scope.SPECIFIC_CATEGORIES,
        included_category_ids=["shoes"],
        excluded_product_ids=["p9"],
    )
    assert matches(scope, _item("p1", "shoes"))
    assert not matches(scope, _item("p9", "shoes"))
    assert not matches(scope, _item("p2", "hats"))
    assert not matches(scope, _item("p3"))


def test_stale_selection_ignored_after_scope_change():
    # Product list left behind when the rule was switched to "all"
    scope = RuleScope.from_lists(Scope.ALL, included_product_ids=["p1"])
    assert scope.effective_included_products == frozenset()
    assert matches(scope, _item("p2"))

    scope = RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_category_ids=["shoes"])
    assert not matches(scope, _item("p1", "shoes"))


def test_matched_positions_in_cart_order():
    scope = RuleScope.from_lists(Scope.ALL, excluded_product_ids=["b"])
    items = [_item("c"), _item("b"), _item("a")]
    assert matched_positions(scope, items) == (0, 2)


def test_category_cascade_only_with_forest():
    forest = build_tree([
        Category(id="apparel", name="Apparel"),
        Category(id="shoes", name="Shoes", parent_id="apparel"),
        Category(id="boots", name="Boots", parent_id="shoes"),
    ])
    scope = RuleScope.from_lists(Scope.SPECIFIC_CATEGORIES, included_category_ids=["shoes"])
    boot = _item("p1", "boots")

    assert matched_positions(scope, [boot]) == ()
    assert matched_positions(scope, [boot], forest) == (0,)
    assert scope_categories(scope, forest) == frozenset({"shoes", "boots"})
