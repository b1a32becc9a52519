from .auth import Account, User, SessionToken
from .inventory import Product, StockMovement
from .sales import Sale
from .audits import SaleAudit, SaleSnapshot, QuantityChange, PaymentUpdate, Deletion

__all__ = [
    'Account', 'User', 'SessionToken',
    'Product', 'StockMovement',
    'Sale',
    'SaleAudit', 'SaleSnapshot', 'QuantityChange', 'PaymentUpdate', 'Deletion',
]
