from __future__ import annotations

import time
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from backoffice import main
from backoffice.auth.session import Session
from backoffice.core.config import settings
from backoffice.views.workspace import Workspace


@pytest.fixture()
def workspace(sample_dishes) -> Workspace:
    today = date.today().isoformat()
    sample_dishes.add_menu(7, "Menu soir", [(2, 1), (3, 1)])
    sample_dishes.add_order(1, f"{today}T09:00:00")
    sample_dishes.add_order(2, f"{today}T10:00:00", paid=True, served=True)
    return Workspace(Session(access_token="token"), api=sample_dishes)


@pytest.fixture()
def client(workspace: Workspace):
    main.app.dependency_overrides[main.get_workspace] = lambda: workspace
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_health() -> None:
    response = TestClient(main.app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["x-request-id"]


def test_request_id_is_echoed() -> None:
    response = TestClient(main.app).get("/health", headers={"x-request-id": "req-1"})

    assert response.headers["x-request-id"] == "req-1"


def test_ready_when_api_answers() -> None:
    mock_response = MagicMock(status_code=200)

    with patch("requests.get", return_value=mock_response):
        response = TestClient(main.app).get("/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["api"]["status"] == "ok"


def test_ready_when_api_is_down() -> None:
    with patch("requests.get", side_effect=ConnectionError("refused")):
        response = TestClient(main.app).get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["api"]["status"] == "error"


def test_missing_token_is_unauthorized(monkeypatch) -> None:
    monkeypatch.setattr(settings, "access_token", None)

    response = TestClient(main.app).get("/dishes")

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentification requise."


def test_expired_token_is_unauthorized(make_token) -> None:
    response = TestClient(main.app).get(
        "/dishes", headers={"Authorization": f"Bearer {make_token(expires_in=-10)}"}
    )

    assert response.status_code == 401


def test_token_opens_and_logout_closes_workspace(monkeypatch, make_token, sample_dishes) -> None:
    monkeypatch.setattr(main, "Workspace", lambda session: Workspace(session, api=sample_dishes))
    monkeypatch.setattr(main, "workspaces", {})
    token = make_token()
    headers = {"Authorization": f"Bearer {token}"}
    client = TestClient(main.app)

    response = client.get("/dishes", headers=headers)

    assert response.status_code == 200
    assert main.workspaces[token].session.user_id == "42"

    response = client.delete("/session", headers=headers)

    assert response.json() == {"status": "logged_out"}
    assert token not in main.workspaces
    sample_dishes.http.close.assert_called_once()


def test_list_dishes(client) -> None:
    response = client.get("/dishes", params={"sort": "price"})

    assert response.status_code == 200
    data = response.json()
    assert [item["dishId"] for item in data["items"]] == [1, 2, 3]
    assert [item["dishId"] for item in data["buckets"]["salad"]] == [1]
    assert data["stats"]["other"]["count"] == 1


def test_list_dishes_with_search(client) -> None:
    response = client.get("/dishes", params={"search": "des"})

    assert [item["dishId"] for item in response.json()["items"]] == [2]


def test_list_dishes_upstream_failure(client, sample_dishes) -> None:
    sample_dishes.fail("list_dishes")

    response = client.get("/dishes")

    assert response.status_code == 502
    assert response.json()["detail"] == "Erreur lors de la récupération des données."


def test_create_dish_validation(client) -> None:
    response = client.post("/dishes", data={"name": "", "price": "4"})

    assert response.status_code == 422
    assert response.json()["errors"] == {"name": "Le nom du plat est obligatoire"}


def test_create_dish(client, sample_dishes) -> None:
    response = client.post("/dishes", data={"name": "Flan dessert", "description": "", "price": "3,5"})

    assert response.status_code == 201
    assert "Flan dessert" in [item["dishName"] for item in response.json()["items"]]


def test_patch_dish_sends_only_given_fields(client, sample_dishes) -> None:
    client.get("/dishes")

    response = client.patch("/dishes/3", data={"dishPrice": "13"})

    assert response.json() == {"updated": True, "fields": ["dishPrice"]}
    assert sample_dishes.calls_to("update_dish") == [("update_dish", 3, {"dishPrice": "13"})]


def test_patch_dish_without_fields_is_a_noop(client, sample_dishes) -> None:
    client.get("/dishes")

    response = client.patch("/dishes/3", data={})

    assert response.json() == {"updated": False, "fields": []}
    assert sample_dishes.calls_to("update_dish") == []


def test_delete_dish(client, sample_dishes) -> None:
    client.get("/dishes")

    response = client.delete("/dishes/2")

    assert response.json() == {"deleted": 2}
    assert 2 not in sample_dishes.dishes


def test_category_price_partial_failure(client, sample_dishes) -> None:
    sample_dishes.add_dish(4, "Salade verte", 6)
    sample_dishes.fail("update_dish", status_code=500, entity_id=4)

    response = client.post("/dishes/categories/salad/price", json={"price": "9,5"})

    assert response.status_code == 207
    body = response.json()
    assert body["detail"] == "Erreur lors de la mise à jour des prix des salades."
    assert {result["id"]: result["ok"] for result in body["results"]} == {1: True, 4: False}


def test_menus_listing_and_menu_of_the_day(client) -> None:
    response = client.post("/menus/7/menu-of-the-day")

    assert response.status_code == 200
    assert response.json()["menuOfTheDay"]["menuId"] == 7


def test_create_menu_requires_dishes(client) -> None:
    response = client.post("/menus", json={"description": "Menu vide", "dishes": []})

    assert response.status_code == 422
    assert "dishes" in response.json()["errors"]


def test_adding_existing_dishes_is_a_conflict(client) -> None:
    client.get("/menus")

    response = client.post(
        "/menus/7/dishes",
        json={"dishes": [{"dishId": 2, "quantity": 1}, {"dishId": 3, "quantity": 2}]},
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Ce plat existe déjà dans le menu."


def test_remove_dish_from_menu(client) -> None:
    client.get("/menus")

    response = client.delete("/menus/7/dishes/3")

    assert response.status_code == 200
    assert [dish["dishId"] for dish in response.json()["menu"]["dishes"]] == [2]


def test_orders_by_tab(client) -> None:
    response = client.get("/orders", params={"tab": 3})

    body = response.json()
    assert body["tab"] == 3
    assert [order["orderId"] for order in body["items"]] == [2]
    assert body["hasNext"] is False


def test_toggle_order_status(client) -> None:
    client.get("/orders", params={"tab": 0})

    response = client.post("/orders/1/served/toggle")

    assert response.status_code == 200
    assert response.json()["order"]["served"] is True


def test_toggle_unknown_order(client) -> None:
    client.get("/orders")

    response = client.post("/orders/42/paid/toggle")

    assert response.status_code == 404


def test_expired_workspaces_are_evicted(monkeypatch, make_token, sample_dishes) -> None:
    stale_api = MagicMock()
    stale = Workspace(Session(access_token="stale", expires_at=time.time() - 10), api=stale_api)
    monkeypatch.setattr(main, "workspaces", {"stale": stale})
    monkeypatch.setattr(main, "Workspace", lambda session: Workspace(session, api=sample_dishes))
    token = make_token()

    response = TestClient(main.app).get("/dishes", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert list(main.workspaces) == [token]
    stale_api.http.close.assert_called_once()


def test_returning_with_an_expired_token_is_unauthorized(monkeypatch) -> None:
    stale = Workspace(Session(access_token="stale", expires_at=time.time() - 10), api=MagicMock())
    monkeypatch.setattr(main, "workspaces", {"stale": stale})

    response = TestClient(main.app).get("/dishes", headers={"Authorization": "Bearer stale"})

    assert response.status_code == 401
    assert main.workspaces == {}


def test_list_dishes_paging(client) -> None:
    response = client.get("/dishes", params={"sort": "price", "page": 2, "page_size": 2})

    body = response.json()
    assert [item["dishId"] for item in body["items"]] == [3]
    assert (body["pageNumber"], body["pageSize"], body["hasNext"]) == (2, 2, False)


def test_list_dishes_rejects_page_zero(client) -> None:
    response = client.get("/dishes", params={"page": 0})

    assert response.status_code == 422


def test_patch_unknown_dish_is_not_found(client) -> None:
    response = client.patch("/dishes/404", data={"dishName": "Tajine"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Plat introuvable"


def test_menu_detail(client) -> None:
    response = client.get("/menus/7")

    assert response.status_code == 200
    assert [dish["dishId"] for dish in response.json()["menu"]["dishes"]] == [2, 3]


def test_unknown_menu_detail(client) -> None:
    response = client.get("/menus/99")

    assert response.status_code == 404
