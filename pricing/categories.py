"""Category hierarchy resolver.

Builds a forest from the flat category list and walks it in pre-order with
a depth annotation. Nodes live in an arena indexed by position and children
are stored as index lists, so there are no object cycles to manage.

Category data is assumed acyclic; nothing here detects cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from pricing.rules import Category


@dataclass
class CategoryNode:
    category: Category
    children: list[int] = field(default_factory=list)


@dataclass
class CategoryForest:
    """Arena of category nodes plus the indices of the roots."""

    nodes: list[CategoryNode] = field(default_factory=list)
    roots: list[int] = field(default_factory=list)
    index: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class FlatCategory:
    category: Category
    depth: int


def build_tree(categories: Iterable[Category]) -> CategoryForest:
    """Attach each category to its parent; orphans become roots.

    A category whose ``parent_id`` is None or not present in the input is
    treated as a root. Sibling order follows input order.
    """
    forest = CategoryForest()
    for category in categories:
        forest.index[category.id] = len(forest.nodes)
        forest.nodes.append(CategoryNode(category=category))

    for position, node in enumerate(forest.nodes):
        parent_id = node.category.parent_id
        parent_pos = forest.index.get(parent_id) if parent_id is not None else None
        if parent_pos is None or parent_pos == position:
            forest.roots.append(position)
        else:
            forest.nodes[parent_pos].children.append(position)

    return forest


def flatten(forest: CategoryForest) -> list[FlatCategory]:
    """Pre-order traversal annotated with nesting depth.

    Used to render indented category checklists::

        for row in flatten(build_tree(categories)):
            print("  " * row.depth + row.category.name)
    """
    result: list[FlatCategory] = []
    stack = [(pos, 0) for pos in reversed(forest.roots)]
    while stack:
        pos, depth = stack.pop()
        node = forest.nodes[pos]
        result.append(FlatCategory(category=node.category, depth=depth))
        for child in reversed(node.children):
            stack.append((child, depth + 1))
    return result


def descendants(forest: CategoryForest, category_id: str) -> frozenset[str]:
    """Ids in the subtree rooted at ``category_id``, itself included.

    Unknown ids resolve to just themselves so exact matching still works.
    """
    start = forest.index.get(category_id)
    if start is None:
        return frozenset({category_id})

    found: set[str] = set()
    stack = [start]
    while stack:
        node = forest.nodes[stack.pop()]
        found.add(node.category.id)
        stack.extend(node.children)
    return frozenset(found)


def expand_categories(forest: CategoryForest, category_ids: Iterable[str]) -> frozenset[str]:
    """Union of the subtrees of every id in ``category_ids``."""
    expanded: set[str] = set()
    for category_id in category_ids:
        expanded |= descendants(forest, category_id)
    return frozenset(expanded)
