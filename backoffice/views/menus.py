from __future__ import annotations

import structlog

from backoffice.api.client import BackofficeAPI
from backoffice.api.models import Dish, Menu
from backoffice.core.errors import ConflictError, ExternalAPIError, FetchError, ValidationError
from backoffice.views.cache import RemoteCollection, as_fetch
from backoffice.views.dialog import Dialog
from backoffice.views.mutations import BatchResult, MutationCoordinator, raise_for_batch
from backoffice.views.pipeline import derive_menus, filter_by_text
from backoffice.views.selection import QuantitySelection, ToggleSet

logger = structlog.get_logger(__name__)

DISH_ALREADY_IN_MENU = "Ce plat existe déjà dans le menu."


class MenuScreen:
    name = "menus"

    def __init__(self, api: BackofficeAPI) -> None:
        self.api = api
        self.cache: RemoteCollection[Menu] = RemoteCollection(
            "menus", api.list_menus, key=lambda menu: menu.menu_id
        )
        self.search = ""
        self.expanded = ToggleSet()
        self.mutations = MutationCoordinator(self.name)

    def refresh(self) -> tuple[Menu, ...]:
        return self.cache.refresh()

    def view(self) -> list[Menu]:
        return derive_menus(self.cache.items, self.search)

    def detail(self, menu_id: int) -> Menu:
        """Fresh copy of one menu with its dishes; ``KeyError`` when it does not exist."""
        try:
            menu = self.api.get_menu(menu_id)
        except ExternalAPIError as exc:
            if exc.status_code == 404:
                raise KeyError(menu_id) from exc
            logger.warning("menu_fetch_failed", menu_id=menu_id, status_code=exc.status_code)
            raise FetchError("Erreur lors du chargement du menu.") from exc
        if self.cache.get(menu_id) is not None:
            self.cache.patch(
                menu_id,
                menu_description=menu.menu_description,
                is_menu_of_the_day=menu.is_menu_of_the_day,
                dishes=menu.dishes,
            )
        return menu

    def menu_of_the_day(self) -> Menu | None:
        return next((menu for menu in self.cache.items if menu.is_menu_of_the_day), None)

    def toggle_expanded(self, menu_id: int) -> bool:
        return self.expanded.toggle(menu_id)

    def create_menu(self, description: str, dishes: list[tuple[int, int]]) -> None:
        valid = [(dish_id, quantity) for dish_id, quantity in dishes if dish_id > 0 and quantity > 0]
        errors = {}
        if not description.strip():
            errors["menuDescription"] = "La description du menu est obligatoire"
        if not valid:
            errors["dishes"] = "Veuillez sélectionner un plat"
        if errors:
            raise ValidationError(errors)
        self.mutations.run(
            "create_menu",
            lambda: self.api.create_menu(description.strip(), valid),
            failure_message="Une erreur est survenue lors de la création du menu",
        )
        self.refresh()

    def delete_menu(self, menu_id: int) -> None:
        self.mutations.run(
            f"delete_menu:{menu_id}",
            lambda: self.api.delete_menu(menu_id),
            failure_message="Erreur lors de la suppression du menu.",
        )
        self.cache.remove(menu_id)
        if self.expanded.is_set(menu_id):
            self.expanded.toggle(menu_id)

    def set_menu_of_the_day(self, menu_id: int) -> None:
        self.mutations.run(
            f"set_menu_of_the_day:{menu_id}",
            lambda: self.api.set_menu_of_the_day(menu_id),
            failure_message="Erreur lors de la définition du menu du jour.",
        )
        # The backend unsets the other menus; only a refetch shows it
        self.refresh()

    def update_description(self, menu_id: int, description: str) -> None:
        if not description.strip():
            raise ValidationError({"menuDescription": "La description du menu est obligatoire"})
        self.mutations.run(
            f"update_menu:{menu_id}",
            lambda: self.api.update_menu_description(menu_id, description.strip()),
            failure_message="Une erreur est survenue lors de la mise à jour du menu",
        )
        self.refresh()

    def add_dish_with_description(
        self,
        menu_id: int,
        dish_id: int,
        quantity: int,
        description: str,
    ) -> None:
        if dish_id <= 0:
            raise ValidationError({"new-dish": "Veuillez sélectionner un plat"})
        if quantity < 1:
            raise ValidationError({"quantity": "La quantité doit être au moins 1"})
        added = self.mutations.run(
            f"update_menu:{menu_id}",
            lambda: self.api.add_dish_with_description(menu_id, dish_id, quantity, description),
            conflict_statuses=(400,),
            conflict_message=DISH_ALREADY_IN_MENU,
            failure_message="Une erreur est survenue lors de l'ajout du plat",
        )
        if not added:
            raise ConflictError(DISH_ALREADY_IN_MENU)
        self.refresh()

    def remove_dish(self, menu_id: int, dish_id: int) -> None:
        self.mutations.run(
            f"update_menu:{menu_id}",
            lambda: self.api.remove_dish_from_menu(menu_id, dish_id),
            failure_message="Une erreur est survenue lors de la suppression du plat",
        )
        menu = self.cache.get(menu_id)
        if menu is not None:
            self.cache.patch(
                menu_id,
                dishes=[dish for dish in menu.dishes if dish.dish_id != dish_id],
            )

    def add_dishes(self, menu_id: int, selection: list[tuple[int, int]]) -> list[BatchResult]:
        """Add several dishes at once; reports one result per dish."""
        if not selection:
            raise ValidationError({"dishes": "Veuillez sélectionner au moins un plat à ajouter au menu."})
        quantities = dict(selection)
        results = self.mutations.run_batch(
            f"add_dishes:{menu_id}",
            list(quantities),
            lambda dish_id: self.api.add_dish_to_menu(menu_id, dish_id, quantities[dish_id]),
            conflict_statuses=(400,),
        )
        if any(result.ok for result in results):
            self.refresh()
        failed = [result for result in results if not result.ok]
        if failed and all(result.conflict for result in failed) and len(failed) == len(results):
            raise ConflictError(DISH_ALREADY_IN_MENU)
        raise_for_batch(results)
        return results


class MenuDishPicker:
    """State of the "add dishes to a menu" dialog."""

    def __init__(self, screen: MenuScreen) -> None:
        self.screen = screen
        self.dialog = Dialog("add_dish_to_menu")
        self.selection = QuantitySelection()
        self.menu_id: int | None = None
        self.available: list[Dish] = []
        self.in_menu: set[int] = set()
        self.search = ""
        self.dialog.on_open(self.selection.reset)

    def open(self, menu_id: int) -> None:
        self.menu_id = menu_id
        self.search = ""
        self.dialog.open(as_fetch(self._load, "Erreur lors du chargement des plats."))

    def retry(self) -> None:
        self.dialog.load(as_fetch(self._load, "Erreur lors du chargement des plats."))

    def _load(self) -> None:
        api = self.screen.api
        self.available = api.list_dishes()
        self.in_menu = {dish.dish_id for dish in api.list_menu_dishes(self.menu_id) if dish.dish_id}

    def visible(self) -> list[Dish]:
        return filter_by_text(
            self.available,
            self.search.strip(),
            lambda dish: (dish.dish_name, dish.dish_description),
        )

    def is_selectable(self, dish_id: int) -> bool:
        return dish_id not in self.in_menu

    def toggle(self, dish_id: int) -> None:
        if self.is_selectable(dish_id):
            self.selection.toggle(dish_id)

    def increment(self, dish_id: int) -> int:
        if not self.is_selectable(dish_id):
            return 0
        return self.selection.increment(dish_id)

    def decrement(self, dish_id: int) -> int:
        return self.selection.decrement(dish_id)

    def submit(self) -> list[BatchResult] | None:
        menu_id = self.menu_id

        def validate() -> None:
            if not self.selection:
                raise ValidationError({"dishes": "Veuillez sélectionner au moins un plat à ajouter au menu."})

        return self.dialog.submit(
            lambda: self.screen.add_dishes(menu_id, self.selection.items()),
            validate=validate,
        )

    def cancel(self) -> None:
        self.dialog.cancel()
