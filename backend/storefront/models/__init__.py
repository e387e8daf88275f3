from .inventory import Product, ProductVariant, StockMovement
from .promotions import Coupon
from .sales import Order, OrderItem, PendingCheckout, Payment, PaymentEvent
from .documents import Invoice, InvoiceLine, DocumentSequence
from .customers import Customer
from .settings import DeliverySettings, DeliveryProvinceRate

__all__ = [
    'Product', 'ProductVariant', 'StockMovement',
    'Coupon',
    'Order', 'OrderItem', 'PendingCheckout', 'Payment', 'PaymentEvent',
    'Invoice', 'InvoiceLine', 'DocumentSequence',
    'Customer',
    'DeliverySettings', 'DeliveryProvinceRate',
]
