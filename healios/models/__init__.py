"""SQLAlchemy models."""

from healios.models.base import Base
from healios.models.cart import Cart, CartStatus
from healios.models.cart_event import CartEvent
from healios.models.customer import ConsentState, Customer
from healios.models.order import Order, OrderStatus, ReorderLog, ReorderStatus
from healios.models.recovery_token import RecoveryToken
from healios.models.reminder_log import ReminderLog, ReminderStatus

__all__ = [
    # Base
    "Base",
    # Customers
    "Customer",
    "ConsentState",
    # Carts
    "Cart",
    "CartStatus",
    "CartEvent",
    # Orders
    "Order",
    "OrderStatus",
    "ReorderLog",
    "ReorderStatus",
    # Cart Recovery
    "RecoveryToken",
    "ReminderLog",
    "ReminderStatus",
]
