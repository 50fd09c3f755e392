"""Eligibility matcher: does a rule's scope cover a cart line?

Category matching is exact unless the caller passes an expanded category
set (see ``scope_categories``), which is how subcategory cascading is
switched on from PricingConfig.
"""

from __future__ import annotations

from typing import Sequence

from pricing.categories import CategoryForest, expand_categories
from pricing.rules import LineItem, RuleScope, Scope


def scope_categories(
    rule_scope: RuleScope,
    forest: CategoryForest | None = None,
) -> frozenset[str]:
    """Included category ids, expanded to subtrees when a forest is given."""
    included = rule_scope.effective_included_categories
    if forest is None or not included:
        return included
    return expand_categories(forest, included)


def matches(
    rule_scope: RuleScope,
    item: LineItem,
    categories: frozenset[str] | None = None,
) -> bool:
    """Return True if the rule applies to this line item.

    ``categories`` overrides the scope's own included categories; pass the
    result of ``scope_categories`` to match descendants as well.
    """
    excluded = rule_scope.effective_excluded_products

    if rule_scope.scope == Scope.ALL:
        return item.product_id not in excluded

    if rule_scope.scope == Scope.SPECIFIC_PRODUCTS:
        return item.product_id in rule_scope.effective_included_products

    if rule_scope.scope == Scope.SPECIFIC_CATEGORIES:
        allowed = categories if categories is not None else rule_scope.effective_included_categories
        if item.category_id is None or item.category_id not in allowed:
            return False
        return item.product_id not in excluded

    return False


def matched_positions(
    rule_scope: RuleScope,
    items: Sequence[LineItem],
    forest: CategoryForest | None = None,
) -> tuple[int, ...]:
    """Indexes of the cart lines a rule covers, in cart order."""
    categories = scope_categories(rule_scope, forest)
    return tuple(i for i, item in enumerate(items) if matches(rule_scope, item, categories))

