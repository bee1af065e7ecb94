# Models
from .store import Store
from .product import Product
from .product_stocks import ProductStock
from .inventory_reservations import InventoryReservation, ReservationStatus
from .inventory_logs import InventoryLog, ChangeType
from .idempotency_keys import IdempotencyKey, IdempotencyStatus
from .cart import Cart, CartItem
from .order import Order, OrderItem, OrderStatus

__all__ = [
    "Store",
    "Product",
    "ProductStock",
    "InventoryReservation",
    "ReservationStatus",
    "InventoryLog",
    "ChangeType",
    "IdempotencyKey",
    "IdempotencyStatus",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
]
