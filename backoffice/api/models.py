from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from backoffice.api.envelope import unwrap_values
from backoffice.views.category import Category, classify_dish

PRICE_INPUT_RE = re.compile(r"[^0-9,\.]")


def parse_price(value: Any) -> Decimal | None:
    """Parse a price typed with a comma or a period; None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = value.strip().replace(",", ".")
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    return price if price.is_finite() else None


def sanitize_price_input(value: str) -> str:
    """Keep digits and the decimal separator, as the price fields do while typing."""
    return PRICE_INPUT_RE.sub("", value)


def format_price_for_display(price: Decimal | None) -> str:
    if price is None:
        return ""
    return str(price).replace(".", ",")


def format_price_for_backend(price: str | Decimal) -> str:
    return str(price).strip().replace(",", ".")


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Dish(WireModel):
    dish_id: int
    dish_name: str = ""
    dish_description: str | None = None
    dish_price: Decimal | None = None
    dish_photo: str | None = None
    is_salad: bool = False

    @field_validator("dish_price", mode="before")
    @classmethod
    def validate_price(cls, value: Any) -> Decimal | None:
        return parse_price(value)

    @property
    def category(self) -> Category:
        return classify_dish(self.dish_name)


class MenuDish(WireModel):
    dish_id: int | None = None
    dish_name: str = "Nom non disponible"
    dish_quantity: int = 0

    @field_validator("dish_name", mode="before")
    @classmethod
    def default_name(cls, value: Any) -> Any:
        return value or "Nom non disponible"

    @field_validator("dish_quantity", mode="before")
    @classmethod
    def default_quantity(cls, value: Any) -> Any:
        return value or 0


class Menu(WireModel):
    menu_id: int
    menu_description: str = ""
    is_menu_of_the_day: bool = False
    dishes: list[MenuDish] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_dishes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("dishes") is not None:
            data["dishes"] = unwrap_values(data["dishes"])
        elif data.get("menuDishes") is not None:
            # GET /menu/{id} nests the dish under each link row
            data["dishes"] = [
                {
                    "dishId": row.get("dishId") or (row.get("dish") or {}).get("dishId"),
                    "dishName": (row.get("dish") or {}).get("dishName"),
                    "dishQuantity": row.get("dishQuantity") or row.get("quantity") or 1,
                }
                for row in unwrap_values(data.pop("menuDishes"))
            ]
        if not (data.get("menuDescription") or data.get("menu_description")):
            data.pop("menu_description", None)
            data["menuDescription"] = f"Menu {data.get('menuId', data.get('menu_id'))}"
        if "isMenuOfTheDay" in data and data["isMenuOfTheDay"] is None:
            data["isMenuOfTheDay"] = False
        return data


class OrderDish(WireModel):
    dish_name: str
    dish_id: int | None = None
    quantity: int = 1


class Order(WireModel):
    order_id: int
    first_name: str = ""
    last_name: str = ""
    profile_picture: str | None = None
    order_remark: str | None = None
    total_amount: Decimal = Decimal("0")
    paid: bool = False
    served: bool = False
    order_date: datetime
    dishes: list[OrderDish] = Field(default_factory=list)

    @field_validator("dishes", mode="before")
    @classmethod
    def unwrap_dishes(cls, value: Any) -> Any:
        if value is None:
            return []
        return unwrap_values(value)

    @property
    def customer_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
