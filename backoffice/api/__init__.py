from backoffice.api.client import BackofficeAPI, PhotoUpload
from backoffice.api.models import Dish, Menu, MenuDish, Order, OrderDish

__all__ = [
    "BackofficeAPI",
    "Dish",
    "Menu",
    "MenuDish",
    "Order",
    "OrderDish",
    "PhotoUpload",
]
