from __future__ import annotations

from backoffice.api.client import BackofficeAPI
from backoffice.auth.session import Session
from backoffice.views.dishes import DishScreen
from backoffice.views.menus import MenuDishPicker, MenuScreen
from backoffice.views.orders import DailyOrdersScreen, UnpaidOrdersScreen


class Workspace:
    """All screens of one admin session, each owning its own cache."""

    def __init__(self, session: Session, api: BackofficeAPI | None = None) -> None:
        self.session = session
        self.api = api or BackofficeAPI(session)
        self.dishes = DishScreen(self.api)
        self.menus = MenuScreen(self.api)
        self.menu_dish_picker = MenuDishPicker(self.menus)
        self.orders = DailyOrdersScreen(self.api)
        self.unpaid = UnpaidOrdersScreen(self.api)

    def close(self) -> None:
        self.session.clear()
        self.api.http.close()
