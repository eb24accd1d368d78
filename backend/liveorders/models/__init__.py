# Overview: Model package exports.
from .tenancy import Tenant
from .catalog import Product
from .orders import Cart, CartItem, Order
from .messaging import CustomerWhatsAppGroup, WhatsAppTemplate, WhatsAppMessage

__all__ = [
    'Tenant',
    'Product',
    'Cart', 'CartItem', 'Order',
    'CustomerWhatsAppGroup', 'WhatsAppTemplate', 'WhatsAppMessage',
]
