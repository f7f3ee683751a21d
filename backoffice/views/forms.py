from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backoffice.api.client import PhotoUpload
from backoffice.api.models import Dish, format_price_for_backend, format_price_for_display, parse_price, sanitize_price_input
from backoffice.core.errors import ValidationError


class DirtyForm:
    """Form values plus the set of fields the user actually edited."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(initial or {})
        self.touched: set[str] = set()

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value
        self.touched.add(name)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    @property
    def can_submit(self) -> bool:
        return bool(self.touched)

    def changes(self) -> dict[str, Any]:
        return {name: self.values[name] for name in self.values if name in self.touched}

    def reset(self, initial: dict[str, Any] | None = None) -> None:
        self.values = dict(initial or {})
        self.touched = set()


class DishEditForm(DirtyForm):
    """Edit form of an existing dish; submits only the touched fields."""

    def __init__(self, dish: Dish) -> None:
        super().__init__(
            {
                "dishName": dish.dish_name,
                "dishDescription": dish.dish_description or "",
                "dishPrice": format_price_for_display(dish.dish_price),
            }
        )
        self.dish_id = dish.dish_id
        self.photo: PhotoUpload | None = None

    def set(self, name: str, value: Any) -> None:
        if name == "dishPrice":
            value = sanitize_price_input(str(value))
        super().set(name, value)

    def set_photo(self, photo: PhotoUpload) -> None:
        self.photo = photo
        self.touched.add("Photo")

    def validate(self) -> None:
        errors = {}
        if "dishName" in self.touched and not str(self.values["dishName"]).strip():
            errors["dishName"] = "Le nom du plat est obligatoire"
        if "dishPrice" in self.touched and parse_price(self.values["dishPrice"]) is None:
            errors["dishPrice"] = "Le prix du plat est invalide"
        if errors:
            raise ValidationError(errors)

    def payload(self) -> dict[str, Any]:
        changes = self.changes()
        if "dishPrice" in changes:
            changes["dishPrice"] = format_price_for_backend(changes["dishPrice"])
        return changes


@dataclass
class DishDraft:
    name: str = ""
    description: str = ""
    price: str = ""
    photo: PhotoUpload | None = field(default=None, repr=False)

    def validate(self) -> None:
        errors = {}
        if not self.name.strip():
            errors["name"] = "Le nom du plat est obligatoire"
        if not self.price.strip():
            errors["price"] = "Le prix du plat est obligatoire"
        elif parse_price(self.price) is None:
            errors["price"] = "Le prix du plat est invalide"
        if errors:
            raise ValidationError(errors)
