from .clients import Client
from .sales import Sale, SaleItem, Payment
from .invoices import Invoice, InvoiceSale
from .audit import AuditLog

__all__ = [
    'Client',
    'Sale', 'SaleItem', 'Payment',
    'Invoice', 'InvoiceSale',
    'AuditLog',
]
