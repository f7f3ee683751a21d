from __future__ import annotations

from decimal import Decimal

import structlog

from backoffice.api.client import BackofficeAPI
from backoffice.api.models import Dish, format_price_for_backend, parse_price
from backoffice.core.errors import ExternalAPIError, FetchError, ValidationError
from backoffice.views.cache import RemoteCollection, as_fetch
from backoffice.views.category import CATEGORY_LABELS, Category, CategoryFilter, classify_dish
from backoffice.views.dialog import Dialog
from backoffice.views.forms import DishDraft, DishEditForm
from backoffice.views.mutations import BatchResult, MutationCoordinator, raise_for_batch
from backoffice.views.pipeline import (
    CategoryStats,
    DishQuery,
    Page,
    SortKey,
    category_stats,
    derive_dish_buckets,
    derive_dishes,
    paginate,
)

logger = structlog.get_logger(__name__)


class DishScreen:
    name = "dishes"

    def __init__(self, api: BackofficeAPI) -> None:
        self.api = api
        self.cache: RemoteCollection[Dish] = RemoteCollection(
            "dishes", api.list_dishes, key=lambda dish: dish.dish_id
        )
        self.query = DishQuery()
        self.mutations = MutationCoordinator(self.name)
        self.add_dialog = Dialog("add_dish")
        self.edit_dialog = Dialog("edit_dish")
        self.edit_form: DishEditForm | None = None
        self.add_dialog.on_success_closed(self.refresh)
        self.edit_dialog.on_success_closed(self.refresh)

    def refresh(self) -> tuple[Dish, ...]:
        return self.cache.refresh()

    def set_search(self, text: str) -> None:
        self.query = DishQuery(search=text, category=self.query.category, sort=self.query.sort)

    def set_category(self, category: CategoryFilter | str) -> None:
        self.query = DishQuery(
            search=self.query.search,
            category=CategoryFilter(category),
            sort=self.query.sort,
        )

    def set_sort(self, sort: SortKey | str) -> None:
        self.query = DishQuery(search=self.query.search, category=self.query.category, sort=SortKey(sort))

    def view(self) -> list[Dish]:
        return derive_dishes(self.cache.items, self.query)

    def page(self, page_number: int, page_size: int) -> Page[Dish]:
        return paginate(self.view(), page_number, page_size)

    def buckets(self) -> dict[Category, list[Dish]]:
        return derive_dish_buckets(self.cache.items, self.query)

    def stats(self) -> dict[Category, CategoryStats]:
        return category_stats(self.cache.items)

    def create_dish(self, draft: DishDraft) -> None:
        draft.validate()
        self._send_create(draft)
        self.refresh()

    def _send_create(self, draft: DishDraft) -> None:
        self.mutations.run(
            "create_dish",
            lambda: self.api.create_dish(
                name=draft.name.strip(),
                description=draft.description,
                price=draft.price,
                photo=draft.photo,
            ),
            failure_message="Erreur lors de l'ajout du plat. Veuillez réessayer.",
        )

    def get_dish(self, dish_id: int) -> Dish:
        """Cached dish, or the server copy when it is not in the snapshot.

        Raises ``KeyError`` when the server does not know the id.
        """
        dish = self.cache.get(dish_id)
        if dish is not None:
            return dish
        try:
            return self.api.get_dish(dish_id)
        except ExternalAPIError as exc:
            if exc.status_code == 404:
                raise KeyError(dish_id) from exc
            logger.warning("dish_fetch_failed", dish_id=dish_id, status_code=exc.status_code)
            raise FetchError("Erreur lors du chargement des données du plat.") from exc

    def open_edit(self, dish_id: int) -> DishEditForm | None:
        def load() -> None:
            self.edit_form = DishEditForm(self.api.get_dish(dish_id))

        self.edit_form = None
        self.edit_dialog.open(as_fetch(load, "Erreur lors du chargement des données du plat."))
        return self.edit_form

    def update_dish(self, form: DishEditForm) -> bool:
        """Send the touched fields of ``form``; nothing is sent when none was touched."""
        if not form.can_submit:
            return False
        form.validate()
        self._send_update(form)
        self.refresh()
        return True

    def _send_update(self, form: DishEditForm) -> None:
        self.mutations.run(
            f"update_dish:{form.dish_id}",
            lambda: self.api.update_dish(form.dish_id, form.payload(), form.photo),
            failure_message="Erreur lors de la mise à jour du plat. Veuillez réessayer.",
        )

    def submit_edit(self) -> bool:
        if self.edit_form is None or not self.edit_form.can_submit:
            return False
        form = self.edit_form
        self.edit_dialog.submit(lambda: self._send_update(form), validate=form.validate)
        return True

    def open_add(self) -> None:
        self.add_dialog.open()

    def submit_add(self, draft: DishDraft) -> None:
        self.add_dialog.submit(lambda: self._send_create(draft), validate=draft.validate)

    def delete_dish(self, dish_id: int) -> None:
        self.mutations.run(
            f"delete_dish:{dish_id}",
            lambda: self.api.delete_dish(dish_id),
            failure_message="Erreur lors de la suppression du plat.",
        )
        self.cache.remove(dish_id)

    def update_category_price(self, category: Category | str, new_price: str | Decimal) -> list[BatchResult]:
        category = Category(category)
        price = parse_price(new_price)
        if price is None or price <= 0:
            raise ValidationError({"price": "Le prix doit être un nombre positif"})
        targets = [dish.dish_id for dish in self.cache.items if classify_dish(dish.dish_name) is category]
        wire_price = format_price_for_backend(price)
        results = self.mutations.run_batch(
            f"update_prices:{category.value}",
            targets,
            lambda dish_id: self.api.update_dish(dish_id, {"dishPrice": wire_price}),
        )
        succeeded = [result.entity_id for result in results if result.ok]
        self.cache.patch_many(succeeded, dish_price=price)
        logger.info(
            "category_price_updated",
            category=category.value,
            updated=len(succeeded),
            total=len(results),
        )
        raise_for_batch(
            results,
            f"Erreur lors de la mise à jour des prix des {CATEGORY_LABELS[category]}.",
        )
        return results

