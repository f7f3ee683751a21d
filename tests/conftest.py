from __future__ import annotations

import time
from typing import Any
from unittest.mock import MagicMock

import jwt
import pytest

from backoffice.api.models import Dish, Menu, MenuDish, Order
from backoffice.auth.session import EMAIL_CLAIM, ROLE_CLAIM, USER_ID_CLAIM
from backoffice.core.errors import ExternalAPIError


def _encode_token(expires_in: float = 3600, **claims: Any) -> str:
    payload = {
        USER_ID_CLAIM: "42",
        EMAIL_CLAIM: "admin@example.com",
        ROLE_CLAIM: "Admin",
        "exp": int(time.time() + expires_in),
    }
    payload.update(claims)
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class FakeAPI:
    """In-memory stand-in for BackofficeAPI that behaves like the real backend."""

    def __init__(self) -> None:
        self.dishes: dict[int, dict[str, Any]] = {}
        self.menus: dict[int, dict[str, Any]] = {}
        self.orders: dict[int, dict[str, Any]] = {}
        self.unpaid_pages: dict[int, list[dict[str, Any]]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[Any, ExternalAPIError] = {}
        self.http = MagicMock()
        self._next_id = 100

    def fail(self, name: str, status_code: int | None = 500, entity_id: int | None = None) -> None:
        key = (name, entity_id) if entity_id is not None else name
        self.failures[key] = ExternalAPIError("backoffice_api", f"{name} failed", status_code=status_code)

    def _call(self, name: str, *args: Any, entity_id: int | None = None) -> None:
        self.calls.append((name, *args))
        if entity_id is not None and (name, entity_id) in self.failures:
            raise self.failures[(name, entity_id)]
        if name in self.failures:
            raise self.failures[name]

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def add_dish(self, dish_id: int, name: str, price: Any, description: str | None = None) -> None:
        self.dishes[dish_id] = {
            "dishId": dish_id,
            "dishName": name,
            "dishDescription": description,
            "dishPrice": price,
        }

    def add_menu(self, menu_id: int, description: str, dishes: list[tuple[int, int]] = (), of_the_day: bool = False) -> None:
        self.menus[menu_id] = {
            "menuId": menu_id,
            "menuDescription": description,
            "isMenuOfTheDay": of_the_day,
            "dishes": {
                "$values": [
                    {"dishId": dish_id, "dishName": self.dishes.get(dish_id, {}).get("dishName", f"Plat {dish_id}"), "dishQuantity": quantity}
                    for dish_id, quantity in dishes
                ]
            },
        }

    def add_order(self, order_id: int, order_date: str, paid: bool = False, served: bool = False) -> None:
        self.orders[order_id] = {
            "orderId": order_id,
            "firstName": "Jean",
            "lastName": "Dupont",
            "totalAmount": 12.5,
            "paid": paid,
            "served": served,
            "orderDate": order_date,
            "dishes": {"$values": [{"dishName": "Couscous", "dishId": 3, "quantity": 1}]},
        }

    # Dishes

    def list_dishes(self) -> list[Dish]:
        self._call("list_dishes")
        return [Dish.model_validate(dish) for dish in self.dishes.values()]

    def get_dish(self, dish_id: int) -> Dish:
        self._call("get_dish", dish_id, entity_id=dish_id)
        if dish_id not in self.dishes:
            raise ExternalAPIError("backoffice_api", "not found", status_code=404)
        return Dish.model_validate(self.dishes[dish_id])

    def create_dish(self, *, name: str, description: str, price: str, photo: Any = None) -> None:
        self._call("create_dish", name)
        self._next_id += 1
        self.add_dish(self._next_id, name, price.replace(",", "."), description)

    def update_dish(self, dish_id: int, changes: dict[str, Any], photo: Any = None) -> None:
        self._call("update_dish", dish_id, dict(changes), entity_id=dish_id)
        for key, value in changes.items():
            self.dishes[dish_id][key] = value

    def delete_dish(self, dish_id: int) -> None:
        self._call("delete_dish", dish_id, entity_id=dish_id)
        del self.dishes[dish_id]

    # Menus

    def list_menus(self) -> list[Menu]:
        self._call("list_menus")
        return [Menu.model_validate(menu) for menu in self.menus.values()]

    def get_menu(self, menu_id: int) -> Menu:
        self._call("get_menu", menu_id, entity_id=menu_id)
        if menu_id not in self.menus:
            raise ExternalAPIError("backoffice_api", "not found", status_code=404)
        return Menu.model_validate(self.menus[menu_id])

    def list_menu_dishes(self, menu_id: int) -> list[MenuDish]:
        self._call("list_menu_dishes", menu_id)
        return Menu.model_validate(self.menus[menu_id]).dishes

    def create_menu(self, description: str, dishes: list[tuple[int, int]]) -> None:
        self._call("create_menu", description, list(dishes))
        self._next_id += 1
        self.add_menu(self._next_id, description, dishes)

    def delete_menu(self, menu_id: int) -> None:
        self._call("delete_menu", menu_id, entity_id=menu_id)
        del self.menus[menu_id]

    def _menu_dishes(self, menu_id: int) -> list[dict[str, Any]]:
        return self.menus[menu_id]["dishes"]["$values"]

    def add_dish_to_menu(self, menu_id: int, dish_id: int, quantity: int) -> None:
        self._call("add_dish_to_menu", menu_id, dish_id, quantity, entity_id=dish_id)
        if any(dish["dishId"] == dish_id for dish in self._menu_dishes(menu_id)):
            raise ExternalAPIError("backoffice_api", "already in menu", status_code=400)
        self._menu_dishes(menu_id).append(
            {"dishId": dish_id, "dishName": self.dishes[dish_id]["dishName"], "dishQuantity": quantity}
        )

    def remove_dish_from_menu(self, menu_id: int, dish_id: int) -> None:
        self._call("remove_dish_from_menu", menu_id, dish_id)
        self.menus[menu_id]["dishes"]["$values"] = [
            dish for dish in self._menu_dishes(menu_id) if dish["dishId"] != dish_id
        ]

    def update_menu_description(self, menu_id: int, description: str) -> None:
        self._call("update_menu_description", menu_id, description)
        self.menus[menu_id]["menuDescription"] = description

    def add_dish_with_description(self, menu_id: int, dish_id: int, quantity: int, description: str) -> bool:
        self._call("add_dish_with_description", menu_id, dish_id, quantity, description)
        self.menus[menu_id]["menuDescription"] = description
        if any(dish["dishId"] == dish_id for dish in self._menu_dishes(menu_id)):
            return False
        self._menu_dishes(menu_id).append(
            {"dishId": dish_id, "dishName": self.dishes[dish_id]["dishName"], "dishQuantity": quantity}
        )
        return True

    def set_menu_of_the_day(self, menu_id: int) -> None:
        self._call("set_menu_of_the_day", menu_id)
        for menu in self.menus.values():
            menu["isMenuOfTheDay"] = menu["menuId"] == menu_id

    # Orders

    def list_orders(self, *, page_number: int, page_size: int, is_paid: bool | None = None, is_served: bool | None = None) -> list[Order]:
        self._call("list_orders", page_number, page_size, is_paid, is_served)
        matching = [
            order
            for order in self.orders.values()
            if (is_paid is None or order["paid"] is is_paid)
            and (is_served is None or order["served"] is is_served)
        ]
        start = (page_number - 1) * page_size
        return [Order.model_validate(order) for order in matching[start : start + page_size]]

    def list_unpaid_orders(self, *, page_number: int, page_size: int, first_name: str = "", last_name: str = "") -> list[Order]:
        self._call("list_unpaid_orders", page_number, page_size, first_name, last_name)
        return [Order.model_validate(order) for order in self.unpaid_pages.get(page_number, [])]

    def update_order_status(self, order_id: int, *, paid: bool | None = None, served: bool | None = None) -> None:
        self._call("update_order_status", order_id, paid, served, entity_id=order_id)
        if paid is not None:
            self.orders[order_id]["paid"] = paid
        if served is not None:
            self.orders[order_id]["served"] = served


@pytest.fixture()
def make_token():
    return _encode_token


@pytest.fixture()
def fake_api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture()
def sample_dishes(fake_api: FakeAPI) -> FakeAPI:
    fake_api.add_dish(1, "Salade César", 8.5)
    fake_api.add_dish(2, "Tiramisu Dessert", 5)
    fake_api.add_dish(3, "Couscous", 12)
    return fake_api
