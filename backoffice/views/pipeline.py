"""Pure derivations from a cached snapshot to the list that gets rendered."""

from __future__ import annotations

import unicodedata
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar

from backoffice.api.models import Dish, Menu, Order
from backoffice.views.category import BUCKET_ORDER, Category, CategoryFilter, classify_dish, matches_filter

T = TypeVar("T")


class SortKey(str, Enum):
    name = "name"
    price = "price"


@dataclass(frozen=True)
class DishQuery:
    search: str = ""
    category: CategoryFilter = CategoryFilter.all
    sort: SortKey = SortKey.name


def collation_key(text: str) -> tuple[str, str]:
    """Accent- and case-insensitive ordering key, ties broken on the raw text."""
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(char for char in decomposed if not unicodedata.combining(char))
    return (base.casefold(), text)


def matches_text(term: str, *fields: str | None) -> bool:
    if not term:
        return True
    needle = term.lower()
    return any(value and needle in value.lower() for value in fields)


def filter_by_text(
    items: Iterable[T],
    term: str,
    fields: Callable[[T], Sequence[str | None]],
) -> list[T]:
    if not term:
        return list(items)
    return [item for item in items if matches_text(term, *fields(item))]


def _dish_fields(dish: Dish) -> tuple[str | None, ...]:
    return (dish.dish_name, dish.dish_description)


def bucket_dishes(dishes: Iterable[Dish]) -> dict[Category, list[Dish]]:
    buckets: dict[Category, list[Dish]] = {category: [] for category in BUCKET_ORDER}
    for dish in dishes:
        buckets[classify_dish(dish.dish_name)].append(dish)
    return buckets


def sort_bucket(dishes: list[Dish], sort: SortKey) -> list[Dish]:
    if sort is SortKey.price:
        # Dishes whose price could not be parsed go last
        return sorted(
            dishes,
            key=lambda dish: (dish.dish_price is None, dish.dish_price or Decimal(0)),
        )
    return sorted(dishes, key=lambda dish: collation_key(dish.dish_name))


def derive_dish_buckets(dishes: Iterable[Dish], query: DishQuery) -> dict[Category, list[Dish]]:
    result = filter_by_text(dishes, query.search, _dish_fields)
    result = [dish for dish in result if matches_filter(dish.dish_name, query.category)]
    buckets = bucket_dishes(result)
    return {category: sort_bucket(items, query.sort) for category, items in buckets.items()}


def derive_dishes(dishes: Iterable[Dish], query: DishQuery) -> list[Dish]:
    buckets = derive_dish_buckets(dishes, query)
    return [dish for category in BUCKET_ORDER for dish in buckets[category]]


@dataclass(frozen=True)
class CategoryStats:
    count: int
    average_price: Decimal


def category_stats(dishes: Iterable[Dish]) -> dict[Category, CategoryStats]:
    stats = {}
    for category, items in bucket_dishes(dishes).items():
        prices = [dish.dish_price for dish in items if dish.dish_price is not None]
        average = sum(prices, Decimal(0)) / len(prices) if prices else Decimal(0)
        stats[category] = CategoryStats(count=len(items), average_price=average)
    return stats


def derive_menus(menus: Iterable[Menu], search: str = "") -> list[Menu]:
    result = filter_by_text(menus, search, lambda menu: (menu.menu_description,))
    # Menu of the day first, then the fullest menus
    return sorted(result, key=lambda menu: (not menu.is_menu_of_the_day, -len(menu.dishes)))


@dataclass
class Page(Generic[T]):
    items: list[T]
    page_number: int
    page_size: int
    has_next: bool = field(default=False)


def paginate(items: Sequence[T], page_number: int, page_size: int) -> Page[T]:
    page_number = max(1, page_number)
    start = (page_number - 1) * page_size
    chunk = list(items[start : start + page_size])
    return Page(
        items=chunk,
        page_number=page_number,
        page_size=page_size,
        has_next=start + page_size < len(items),
    )


class OrderTab(int, Enum):
    unpaid_unserved = 0
    unserved = 1
    unpaid = 2
    settled = 3

    @property
    def is_paid(self) -> bool | None:
        return {
            OrderTab.unpaid_unserved: False,
            OrderTab.unserved: None,
            OrderTab.unpaid: False,
            OrderTab.settled: True,
        }[self]

    @property
    def is_served(self) -> bool | None:
        return {
            OrderTab.unpaid_unserved: False,
            OrderTab.unserved: False,
            OrderTab.unpaid: None,
            OrderTab.settled: True,
        }[self]

    def matches(self, order: Order) -> bool:
        if self.is_paid is not None and order.paid is not self.is_paid:
            return False
        if self.is_served is not None and order.served is not self.is_served:
            return False
        return True


def tabs_for(order: Order) -> list[OrderTab]:
    return [tab for tab in OrderTab if tab.matches(order)]


def orders_for_day(orders: Iterable[Order], day: date) -> list[Order]:
    return [order for order in orders if order.order_date.date() == day]
