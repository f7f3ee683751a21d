from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Literal

import anyio
import requests
import structlog
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backoffice.api.client import PhotoUpload
from backoffice.auth.session import Session
from backoffice.core.config import settings
from backoffice.core.errors import (
    ConflictError,
    DialogBusyError,
    ExternalAPIError,
    FetchError,
    MutationError,
    PartialBatchError,
    SessionExpiredError,
    ValidationError,
)
from backoffice.core.logging import configure_logging, request_id_ctx, screen_ctx
from backoffice.core.sentry import init_sentry
from backoffice.views.category import Category, CategoryFilter
from backoffice.views.forms import DishDraft, DishEditForm
from backoffice.views.orders import DailyOrdersScreen, UnpaidOrdersScreen
from backoffice.views.pipeline import OrderTab, SortKey
from backoffice.views.workspace import Workspace

configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)

# One workspace per access token; each keeps its own screen caches
workspaces: dict[str, Workspace] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_sentry()
    logger.info("service_started", api_base_url=settings.api_base_url)
    try:
        yield
    finally:
        for workspace in workspaces.values():
            workspace.close()
        workspaces.clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header.split(" ", 1)[1].strip() or None
    return settings.access_token


def _evict_expired_workspaces() -> None:
    expired = [token for token, workspace in workspaces.items() if workspace.session.is_expired()]
    for token in expired:
        workspace = workspaces.pop(token)
        logger.info("workspace_expired", user_id=workspace.session.user_id)
        workspace.close()


def get_workspace(request: Request) -> Workspace:
    token = _bearer_token(request)
    if not token:
        raise SessionExpiredError("Authentification requise.")
    was_open = token in workspaces
    _evict_expired_workspaces()
    workspace = workspaces.get(token)
    if was_open and workspace is None:
        raise SessionExpiredError()
    if workspace is None:
        workspace = Workspace(Session.from_token(token))
        workspaces[token] = workspace
        logger.info("workspace_opened", user_id=workspace.session.user_id)
    return workspace


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    segments = [segment for segment in request.url.path.split("/") if segment]

    request_id_token = request_id_ctx.set(request_id)
    screen_token = screen_ctx.set(segments[0] if segments else None)

    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(request_id_token)
        screen_ctx.reset(screen_token)

    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("request_validation_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(ValidationError)
async def form_validation_handler(request: Request, exc: ValidationError):
    logger.info("form_validation_failed", path=request.url.path, fields=list(exc.errors))
    return JSONResponse(status_code=422, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    logger.warning("fetch_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(DialogBusyError)
async def busy_handler(request: Request, exc: DialogBusyError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(MutationError)
async def mutation_error_handler(request: Request, exc: MutationError):
    logger.warning("mutation_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(PartialBatchError)
async def partial_batch_handler(request: Request, exc: PartialBatchError):
    logger.warning(
        "batch_partially_failed",
        path=request.url.path,
        failed=len(exc.failed),
        total=len(exc.results),
    )
    return JSONResponse(
        status_code=207,
        content={
            "detail": exc.message,
            "results": [
                {"id": result.entity_id, "ok": result.ok, "error": result.error}
                for result in exc.results
            ],
        },
    )


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(request: Request, exc: SessionExpiredError):
    return JSONResponse(status_code=401, content={"detail": exc.message})


@app.exception_handler(ExternalAPIError)
async def external_api_handler(request: Request, exc: ExternalAPIError):
    logger.warning(
        "external_api_failed",
        path=request.url.path,
        service=exc.service,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=503,
        content={"detail": f"Upstream {exc.service} error"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/ready")
async def ready() -> JSONResponse:
    def check_api() -> None:
        response = requests.get(f"{settings.api_base_url.rstrip('/')}/dish", timeout=1.5)
        if response.status_code >= 500:
            raise RuntimeError(f"status {response.status_code}")

    try:
        with anyio.fail_after(1.5):
            await anyio.to_thread.run_sync(check_api)
    except Exception as exc:  # noqa: BLE001 - any failure means not ready
        return JSONResponse(
            status_code=503,
            content={"status": "error", "checks": {"api": {"status": "error", "error": str(exc)}}},
        )
    return JSONResponse(status_code=200, content={"status": "ok", "checks": {"api": {"status": "ok"}}})


@app.delete("/session")
async def logout(request: Request) -> dict[str, str]:
    token = _bearer_token(request)
    workspace = workspaces.pop(token, None) if token else None
    if workspace is not None:
        logger.info("workspace_closed", user_id=workspace.session.user_id)
        workspace.close()
    return {"status": "logged_out"}


# Dishes


class CategoryPriceRequest(BaseModel):
    price: str = Field(..., min_length=1)


@app.get("/dishes")
async def list_dishes(
    search: str = "",
    category: CategoryFilter = CategoryFilter.all,
    sort: SortKey = SortKey.name,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    refresh: bool = False,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.dishes
    if refresh or not screen.cache.loaded:
        screen.refresh()
    screen.set_search(search)
    screen.set_category(category)
    screen.set_sort(sort)
    current = screen.page(page, page_size or settings.dishes_page_size)
    return {
        "items": current.items,
        "pageNumber": current.page_number,
        "pageSize": current.page_size,
        "hasNext": current.has_next,
        "buckets": {category.value: dishes for category, dishes in screen.buckets().items()},
        "stats": {
            category.value: {"count": stats.count, "averagePrice": stats.average_price}
            for category, stats in screen.stats().items()
        },
    }


async def _photo(upload: UploadFile | None) -> PhotoUpload | None:
    if upload is None or not upload.filename:
        return None
    return PhotoUpload(
        filename=upload.filename,
        content=await upload.read(),
        content_type=upload.content_type or "application/octet-stream",
    )


@app.post("/dishes", status_code=201)
async def create_dish(
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    photo: UploadFile | None = File(None),
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    draft = DishDraft(name=name, description=description, price=price, photo=await _photo(photo))
    workspace.dishes.create_dish(draft)
    return {"detail": "Plat ajouté avec succès !", "items": workspace.dishes.view()}


@app.patch("/dishes/{dish_id}")
async def update_dish(
    dish_id: int,
    dishName: str | None = Form(None),
    dishDescription: str | None = Form(None),
    dishPrice: str | None = Form(None),
    photo: UploadFile | None = File(None),
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.dishes
    try:
        dish = screen.get_dish(dish_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Plat introuvable") from None
    form = DishEditForm(dish)
    for name, value in (
        ("dishName", dishName),
        ("dishDescription", dishDescription),
        ("dishPrice", dishPrice),
    ):
        if value is not None:
            form.set(name, value)
    upload = await _photo(photo)
    if upload is not None:
        form.set_photo(upload)
    updated = screen.update_dish(form)
    return {"updated": updated, "fields": sorted(form.touched)}


@app.delete("/dishes/{dish_id}")
async def delete_dish(dish_id: int, workspace: Workspace = Depends(get_workspace)) -> dict[str, object]:
    workspace.dishes.delete_dish(dish_id)
    return {"deleted": dish_id}


@app.post("/dishes/categories/{category}/price")
async def update_category_price(
    category: Category,
    payload: CategoryPriceRequest,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.dishes
    if not screen.cache.loaded:
        screen.refresh()
    results = screen.update_category_price(category, payload.price)
    return {
        "results": [{"id": result.entity_id, "ok": result.ok} for result in results],
        "items": screen.view(),
    }


# Menus


class MenuDishRequest(BaseModel):
    dish_id: int = Field(..., alias="dishId")
    quantity: int = Field(default=1, ge=1)


class MenuCreateRequest(BaseModel):
    description: str
    dishes: list[MenuDishRequest] = Field(default_factory=list)


class MenuDescriptionRequest(BaseModel):
    description: str


class MenuAddDishesRequest(BaseModel):
    dishes: list[MenuDishRequest] = Field(default_factory=list)


class MenuAddDishRequest(BaseModel):
    quantity: int = Field(default=1, ge=1)
    description: str | None = None


@app.get("/menus")
async def list_menus(
    search: str = "",
    refresh: bool = False,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.menus
    if refresh or not screen.cache.loaded:
        screen.refresh()
    screen.search = search
    return {"items": screen.view(), "menuOfTheDay": screen.menu_of_the_day()}


@app.get("/menus/{menu_id}")
async def get_menu(menu_id: int, workspace: Workspace = Depends(get_workspace)) -> dict[str, object]:
    try:
        menu = workspace.menus.detail(menu_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Menu introuvable") from None
    return {"menu": menu}


@app.post("/menus", status_code=201)
async def create_menu(payload: MenuCreateRequest, workspace: Workspace = Depends(get_workspace)) -> dict[str, object]:
    workspace.menus.create_menu(
        payload.description,
        [(dish.dish_id, dish.quantity) for dish in payload.dishes],
    )
    return {"detail": "Menu ajouté avec succès !", "items": workspace.menus.view()}


@app.delete("/menus/{menu_id}")
async def delete_menu(menu_id: int, workspace: Workspace = Depends(get_workspace)) -> dict[str, object]:
    workspace.menus.delete_menu(menu_id)
    return {"deleted": menu_id}


@app.patch("/menus/{menu_id}")
async def update_menu_description(
    menu_id: int,
    payload: MenuDescriptionRequest,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    workspace.menus.update_description(menu_id, payload.description)
    return {"detail": "Menu mis à jour avec succès !", "items": workspace.menus.view()}


@app.post("/menus/{menu_id}/menu-of-the-day")
async def set_menu_of_the_day(menu_id: int, workspace: Workspace = Depends(get_workspace)) -> dict[str, object]:
    workspace.menus.set_menu_of_the_day(menu_id)
    return {"items": workspace.menus.view(), "menuOfTheDay": workspace.menus.menu_of_the_day()}


@app.post("/menus/{menu_id}/dishes")
async def add_dishes_to_menu(
    menu_id: int,
    payload: MenuAddDishesRequest,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    results = workspace.menus.add_dishes(
        menu_id,
        [(dish.dish_id, dish.quantity) for dish in payload.dishes],
    )
    return {"results": [{"id": result.entity_id, "ok": result.ok} for result in results]}


@app.post("/menus/{menu_id}/dishes/{dish_id}")
async def add_dish_to_menu(
    menu_id: int,
    dish_id: int,
    payload: MenuAddDishRequest,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.menus
    if payload.description is None:
        screen.add_dishes(menu_id, [(dish_id, payload.quantity)])
    else:
        screen.add_dish_with_description(menu_id, dish_id, payload.quantity, payload.description)
    return {"detail": "Plat ajouté avec succès !", "menu": screen.cache.get(menu_id)}


@app.delete("/menus/{menu_id}/dishes/{dish_id}")
async def remove_dish_from_menu(
    menu_id: int,
    dish_id: int,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    workspace.menus.remove_dish(menu_id, dish_id)
    return {"detail": "Plat supprimé avec succès !", "menu": workspace.menus.cache.get(menu_id)}


# Orders


def _order_page(screen: DailyOrdersScreen | UnpaidOrdersScreen) -> dict[str, object]:
    return {
        "items": screen.view(),
        "pageNumber": screen.page_number,
        "pageSize": screen.page_size,
        "hasNext": screen.has_next,
    }


@app.get("/orders")
async def list_orders(
    tab: OrderTab = OrderTab.unpaid_unserved,
    page: int = 1,
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.orders
    screen.tab = tab
    screen.page_number = max(1, page)
    screen.refresh()
    return {"tab": screen.tab.value, **_order_page(screen)}


@app.get("/orders/unpaid")
async def list_unpaid_orders(
    page: int = 1,
    first_name: str = "",
    last_name: str = "",
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    screen = workspace.unpaid
    screen.first_name = first_name.strip()
    screen.last_name = last_name.strip()
    screen.set_page(page)
    return _order_page(screen)


@app.post("/orders/{order_id}/{flag}/toggle")
async def toggle_order_status(
    order_id: int,
    flag: Literal["paid", "served"],
    screen: Literal["orders", "unpaid"] = "orders",
    workspace: Workspace = Depends(get_workspace),
) -> dict[str, object]:
    target = workspace.orders if screen == "orders" else workspace.unpaid
    if target.cache.get(order_id) is None:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    order = target.toggle_paid(order_id) if flag == "paid" else target.toggle_served(order_id)
    return {"order": order}
