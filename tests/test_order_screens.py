from __future__ import annotations

from datetime import date

import pytest

from backoffice.core.errors import MutationError
from backoffice.views.orders import DailyOrdersScreen, UnpaidOrdersScreen
from backoffice.views.pipeline import OrderTab

TODAY = date(2026, 10, 18)


@pytest.fixture()
def orders_api(fake_api):
    fake_api.add_order(1, "2026-10-18T09:00:00")
    fake_api.add_order(2, "2026-10-18T10:00:00", paid=True)
    fake_api.add_order(3, "2026-10-18T11:00:00", paid=True, served=True)
    fake_api.add_order(4, "2026-10-17T20:00:00")
    return fake_api


@pytest.fixture()
def daily(orders_api) -> DailyOrdersScreen:
    screen = DailyOrdersScreen(orders_api, page_size=10, today=lambda: TODAY)
    screen.refresh()
    return screen


def test_default_tab_shows_todays_unpaid_unserved(daily, orders_api) -> None:
    assert [order.order_id for order in daily.view()] == [1]
    assert orders_api.calls_to("list_orders")[-1] == ("list_orders", 1, 10, False, False)


def test_switching_tab_resets_page_and_refetches(daily, orders_api) -> None:
    daily.page_number = 3
    daily.set_tab(OrderTab.unserved)

    assert daily.page_number == 1
    assert orders_api.calls_to("list_orders")[-1] == ("list_orders", 1, 10, None, False)
    assert [order.order_id for order in daily.view()] == [1, 2]


def test_settled_tab(daily) -> None:
    daily.set_tab(3)

    assert [order.order_id for order in daily.view()] == [3]


def test_toggle_paid_updates_only_that_order(daily, orders_api) -> None:
    order = daily.toggle_paid(1)

    assert order.paid is True
    assert orders_api.calls_to("update_order_status") == [("update_order_status", 1, True, None)]
    assert daily.cache.get(1).served is False


def test_failed_toggle_keeps_order(daily, orders_api) -> None:
    orders_api.fail("update_order_status", status_code=500)

    with pytest.raises(MutationError):
        daily.toggle_served(1)

    assert daily.cache.get(1).served is False


def test_toggle_of_unknown_order(daily) -> None:
    with pytest.raises(KeyError):
        daily.toggle_paid(99)


def test_daily_paging(orders_api) -> None:
    screen = DailyOrdersScreen(orders_api, page_size=1, today=lambda: TODAY)
    screen.set_tab(OrderTab.unpaid)

    assert screen.has_next is True
    screen.next_page()
    assert screen.page_number == 2
    screen.previous_page()
    assert screen.page_number == 1
    screen.previous_page()
    assert screen.page_number == 1


def test_expanded_toggle(daily) -> None:
    assert daily.toggle_expanded(1) is True
    assert daily.expanded.is_set(1)


@pytest.fixture()
def unpaid_api(orders_api):
    orders_api.unpaid_pages = {
        1: [orders_api.orders[1], orders_api.orders[4]],
        2: [orders_api.orders[4]],
    }
    return orders_api


def test_unpaid_search_resets_page(unpaid_api) -> None:
    screen = UnpaidOrdersScreen(unpaid_api, page_size=2)
    screen.page_number = 2
    screen.search(" Jean ", "Dupont")

    assert screen.page_number == 1
    assert unpaid_api.calls_to("list_unpaid_orders")[-1] == ("list_unpaid_orders", 1, 2, "Jean", "Dupont")
    assert screen.has_next is True


def test_unpaid_empty_page_steps_back(unpaid_api) -> None:
    screen = UnpaidOrdersScreen(unpaid_api, page_size=2)
    screen.set_page(3)

    assert screen.page_number == 2
    assert [order.order_id for order in screen.view()] == [4]
    assert screen.has_next is False


def test_unpaid_toggle_paid(unpaid_api) -> None:
    screen = UnpaidOrdersScreen(unpaid_api, page_size=2)
    screen.refresh()

    assert screen.toggle_paid(1).paid is True


def test_unpaid_steps_back_over_several_empty_pages(orders_api) -> None:
    orders_api.unpaid_pages = {1: [orders_api.orders[1]]}
    screen = UnpaidOrdersScreen(orders_api, page_size=2)

    screen.set_page(3)

    assert screen.page_number == 1
    assert [order.order_id for order in screen.view()] == [1]
    pages = [call[1] for call in orders_api.calls_to("list_unpaid_orders")]
    assert pages == [3, 2, 1]


def test_unpaid_first_page_empty_stays_on_first_page(orders_api) -> None:
    screen = UnpaidOrdersScreen(orders_api, page_size=2)

    screen.refresh()

    assert screen.page_number == 1
    assert screen.view() == []
    assert len(orders_api.calls_to("list_unpaid_orders")) == 1
