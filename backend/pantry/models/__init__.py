from .tenancy import Organization, Space
from .catalog import Category, Item
from .auth import User, AuthToken
from .sessions import OrderingSession
from .coupons import Coupon
from .orders import Order, OrderItem, OrderSequence
from .payments import Payment

__all__ = [
    'Organization', 'Space',
    'Category', 'Item',
    'User', 'AuthToken',
    'OrderingSession',
    'Coupon',
    'Order', 'OrderItem', 'OrderSequence',
    'Payment',
]
