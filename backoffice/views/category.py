"""Dish categories derived from the dish name.

The category is never stored: it is recomputed from the current name every
time a list is rendered, filtered or bulk-updated.
"""

from __future__ import annotations

from enum import Enum

SALAD_MARKER = "SALADE"
DESSERT_MARKER = "DESSERT"


class Category(str, Enum):
    salad = "salad"
    dessert = "dessert"
    other = "other"


class CategoryFilter(str, Enum):
    all = "all"
    salad = "salad"
    dessert = "dessert"
    other = "other"


# Fixed presentation order of the buckets
BUCKET_ORDER: tuple[Category, ...] = (Category.salad, Category.dessert, Category.other)

CATEGORY_LABELS = {
    Category.salad: "salades",
    Category.dessert: "desserts",
    Category.other: "autres plats",
}


def classify_dish(name: str | None) -> Category:
    upper_name = (name or "").upper()
    if SALAD_MARKER in upper_name:
        return Category.salad
    if DESSERT_MARKER in upper_name:
        return Category.dessert
    return Category.other


def is_salad(name: str | None) -> bool:
    return classify_dish(name) is Category.salad


def matches_filter(name: str | None, category_filter: CategoryFilter) -> bool:
    if category_filter is CategoryFilter.all:
        return True
    return classify_dish(name).value == category_filter.value
