from __future__ import annotations

from typing import Any

import requests
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from backoffice.api.envelope import unwrap_collection, unwrap_single
from backoffice.api.models import Dish, Menu, MenuDish, Order, format_price_for_backend
from backoffice.auth.session import Session
from backoffice.core.config import settings
from backoffice.core.errors import ExternalAPIError, FetchError
from backoffice.core.retry import raise_for_status, retryable
from backoffice.views.category import is_salad

logger = structlog.get_logger(__name__)

SERVICE = "backoffice_api"
# Wire value of POST /menu/{id} meaning "no dish, only the description"
DESCRIPTION_ONLY_DISH_ID = -1


class PhotoUpload(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    def as_file(self) -> tuple[str, bytes, str]:
        return (self.filename, self.content, self.content_type)


def _form_fields(fields: dict[str, Any]) -> dict[str, tuple[None, str]]:
    # requests only sends multipart/form-data when ``files`` is set
    return {name: (None, str(value)) for name, value in fields.items()}


class BackofficeAPI:
    """Thin client for the back-office REST API (base path ``/api``)."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self.session = session
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api_timeout
        self.http = http or requests.Session()

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        files: dict[str, Any] | None = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        headers = self.session.authorization_header() if self.session else {}
        if params is not None:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=json,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("api_request_failed", method=method, path=path, error=str(exc))
            raise ExternalAPIError(SERVICE, str(exc)) from exc
        logger.debug("api_response", method=method, path=path, status_code=response.status_code)
        raise_for_status(response, SERVICE)
        return response

    @retryable(SERVICE)
    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = self._send("GET", path, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError("Réponse illisible du serveur.") from exc

    @staticmethod
    def _parse_list(model: type[BaseModel], data: Any) -> list[Any]:
        try:
            return [model.model_validate(item) for item in unwrap_collection(data)]
        except PydanticValidationError as exc:
            raise FetchError("Format de réponse invalide.") from exc

    @staticmethod
    def _parse_one(model: type[BaseModel], data: Any) -> Any:
        try:
            return model.model_validate(unwrap_single(data))
        except PydanticValidationError as exc:
            raise FetchError("Format de réponse invalide.") from exc

    # Dishes

    def list_dishes(self) -> list[Dish]:
        return self._parse_list(Dish, self._get_json("/dish"))

    def get_dish(self, dish_id: int) -> Dish:
        return self._parse_one(Dish, self._get_json(f"/dish/{dish_id}"))

    def create_dish(
        self,
        *,
        name: str,
        description: str,
        price: str,
        photo: PhotoUpload | None = None,
    ) -> None:
        files = _form_fields(
            {
                "DishName": name,
                "DishDescription": description,
                "DishQuantity": 1,
                "IsSalad": str(is_salad(name)).lower(),
                "DishPrice": format_price_for_backend(price),
            }
        )
        if photo is not None:
            files["DishPhoto"] = photo.as_file()
        self._send("POST", "/dish", files=files)

    def update_dish(
        self,
        dish_id: int,
        changes: dict[str, Any],
        photo: PhotoUpload | None = None,
    ) -> None:
        files = _form_fields(changes)
        if photo is not None:
            files["Photo"] = photo.as_file()
        self._send("PATCH", f"/dish/{dish_id}", files=files)

    def delete_dish(self, dish_id: int) -> None:
        self._send("DELETE", f"/dish/{dish_id}")

    # Menus

    def list_menus(self) -> list[Menu]:
        return self._parse_list(Menu, self._get_json("/menu"))

    def get_menu(self, menu_id: int) -> Menu:
        return self._parse_one(Menu, self._get_json(f"/menu/{menu_id}"))

    def list_menu_dishes(self, menu_id: int) -> list[MenuDish]:
        return self._parse_list(MenuDish, self._get_json(f"/menu/{menu_id}/dishes"))

    def create_menu(self, description: str, dishes: list[tuple[int, int]]) -> None:
        payload = {
            "menuDescription": description,
            "dishes": [
                {"dishId": dish_id, "dishQuantity": quantity}
                for dish_id, quantity in dishes
                if dish_id > 0
            ],
        }
        self._send("POST", "/menu", json=payload)

    def delete_menu(self, menu_id: int) -> None:
        self._send("DELETE", f"/menu/{menu_id}")

    def add_dish_to_menu(self, menu_id: int, dish_id: int, quantity: int) -> None:
        self._send("POST", f"/menu/{menu_id}/{dish_id}", params={"quantity": quantity})

    def remove_dish_from_menu(self, menu_id: int, dish_id: int) -> None:
        self._send("DELETE", "/menu", json={"menuId": menu_id, "dishId": dish_id})

    def update_menu_description(self, menu_id: int, description: str) -> None:
        self._send(
            "POST",
            f"/menu/{menu_id}",
            json={
                "dishId": DESCRIPTION_ONLY_DISH_ID,
                "quantity": 0,
                "newDescription": description,
            },
        )

    def add_dish_with_description(
        self,
        menu_id: int,
        dish_id: int,
        quantity: int,
        description: str,
    ) -> bool:
        """Add a dish and save the description; False when the dish was already there."""
        response = self._send(
            "POST",
            f"/menu/{menu_id}",
            json={"dishId": dish_id, "quantity": quantity, "newDescription": description},
        )
        try:
            data = response.json()
        except ValueError:
            return True
        return not (isinstance(data, dict) and data.get("dishAlreadyExists"))

    def set_menu_of_the_day(self, menu_id: int) -> None:
        self._send("PATCH", "/menu/setMenuOfTheDay", json={"menuId": menu_id})

    # Orders

    def list_orders(
        self,
        *,
        page_number: int,
        page_size: int,
        is_paid: bool | None = None,
        is_served: bool | None = None,
    ) -> list[Order]:
        params = {
            "pageNumber": page_number,
            "pageSize": page_size,
            "isPaid": _bool_param(is_paid),
            "isServed": _bool_param(is_served),
        }
        return self._parse_list(Order, self._get_json("/order", params))

    def list_unpaid_orders(
        self,
        *,
        page_number: int,
        page_size: int,
        first_name: str = "",
        last_name: str = "",
    ) -> list[Order]:
        params = {
            "PageNumber": page_number,
            "PageSize": page_size,
            "FirstName": first_name,
            "LastName": last_name,
        }
        return self._parse_list(Order, self._get_json("/order/unpaid", params))

    def update_order_status(
        self,
        order_id: int,
        *,
        paid: bool | None = None,
        served: bool | None = None,
    ) -> None:
        payload: dict[str, Any] = {"orderId": order_id}
        if paid is not None:
            payload["paid"] = paid
        if served is not None:
            payload["served"] = served
        self._send("PATCH", "/order/update-order-status", json=payload)


def _bool_param(value: bool | None) -> str | None:
    if value is None:
        return None
    return "true" if value else "false"
