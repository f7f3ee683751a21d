from __future__ import annotations

from collections.abc import Callable
from datetime import date

import structlog

from backoffice.api.client import BackofficeAPI
from backoffice.api.models import Order
from backoffice.core.config import settings
from backoffice.views.cache import RemoteCollection
from backoffice.views.mutations import MutationCoordinator
from backoffice.views.pipeline import OrderTab, orders_for_day
from backoffice.views.selection import ToggleSet

logger = structlog.get_logger(__name__)

STATUS_FAILURE = "Erreur lors de la mise à jour du statut de la commande."


class OrderStatusMixin:
    cache: RemoteCollection[Order]
    mutations: MutationCoordinator
    api: BackofficeAPI

    def toggle_paid(self, order_id: int) -> Order:
        return self._toggle(order_id, "paid")

    def toggle_served(self, order_id: int) -> Order:
        return self._toggle(order_id, "served")

    def _toggle(self, order_id: int, flag: str) -> Order:
        order = self.cache.get(order_id)
        if order is None:
            raise KeyError(order_id)
        new_value = not getattr(order, flag)
        self.mutations.run(
            f"{flag}:{order_id}",
            lambda: self.api.update_order_status(order_id, **{flag: new_value}),
            failure_message=STATUS_FAILURE,
        )
        logger.info("order_status_updated", order_id=order_id, flag=flag, value=new_value)
        return self.cache.patch(order_id, **{flag: new_value})


class DailyOrdersScreen(OrderStatusMixin):
    """Orders of the current day, split in four paid/served tabs."""

    name = "orders"

    def __init__(
        self,
        api: BackofficeAPI,
        *,
        page_size: int | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.api = api
        self.page_size = page_size or settings.orders_page_size
        self.page_number = 1
        self.tab = OrderTab.unpaid_unserved
        self._today = today
        self.expanded = ToggleSet()
        self.mutations = MutationCoordinator(self.name)
        self.cache: RemoteCollection[Order] = RemoteCollection(
            "orders", self._fetch, key=lambda order: order.order_id
        )

    def _fetch(self) -> list[Order]:
        return self.api.list_orders(
            page_number=self.page_number,
            page_size=self.page_size,
            is_paid=self.tab.is_paid,
            is_served=self.tab.is_served,
        )

    def refresh(self) -> tuple[Order, ...]:
        return self.cache.refresh()

    def set_tab(self, tab: OrderTab | int) -> None:
        self.tab = OrderTab(tab)
        self.page_number = 1
        self.refresh()

    def set_page(self, page_number: int) -> None:
        self.page_number = max(1, page_number)
        self.refresh()

    def next_page(self) -> None:
        if self.has_next:
            self.set_page(self.page_number + 1)

    def previous_page(self) -> None:
        if self.page_number > 1:
            self.set_page(self.page_number - 1)

    def view(self) -> list[Order]:
        return orders_for_day(self.cache.items, self._today())

    @property
    def has_next(self) -> bool:
        return len(self.view()) == self.page_size

    def toggle_expanded(self, order_id: int) -> bool:
        return self.expanded.toggle(order_id)


class UnpaidOrdersScreen(OrderStatusMixin):
    """Unpaid orders, searchable by customer name."""

    name = "unpaid"

    def __init__(self, api: BackofficeAPI, *, page_size: int | None = None) -> None:
        self.api = api
        self.page_size = page_size or settings.unpaid_page_size
        self.page_number = 1
        self.first_name = ""
        self.last_name = ""
        self.expanded = ToggleSet()
        self.mutations = MutationCoordinator(self.name)
        self.cache: RemoteCollection[Order] = RemoteCollection(
            "unpaid_orders", self._fetch, key=lambda order: order.order_id
        )

    def _fetch(self) -> list[Order]:
        orders = self._fetch_page()
        # Past the last page: step back until a page has orders
        while not orders and self.page_number > 1:
            self.page_number -= 1
            orders = self._fetch_page()
        return orders

    def _fetch_page(self) -> list[Order]:
        return self.api.list_unpaid_orders(
            page_number=self.page_number,
            page_size=self.page_size,
            first_name=self.first_name,
            last_name=self.last_name,
        )

    def refresh(self) -> tuple[Order, ...]:
        return self.cache.refresh()

    def search(self, first_name: str = "", last_name: str = "") -> None:
        self.first_name = first_name.strip()
        self.last_name = last_name.strip()
        self.page_number = 1
        self.refresh()

    def set_page(self, page_number: int) -> None:
        self.page_number = max(1, page_number)
        self.refresh()

    def view(self) -> list[Order]:
        return list(self.cache.items)

    @property
    def has_next(self) -> bool:
        return len(self.cache) == self.page_size

    def toggle_expanded(self, order_id: int) -> bool:
        return self.expanded.toggle(order_id)
