from .catalog import Part, Supplier, Customer, SoftDeleteMixin, PART_NUMBER_PATTERN
from .invoices import Invoice, InvoiceItem, InvoiceNumberBucket
from .inventory import InventoryTransaction

__all__ = [
    'Part', 'Supplier', 'Customer', 'SoftDeleteMixin', 'PART_NUMBER_PATTERN',
    'Invoice', 'InvoiceItem', 'InvoiceNumberBucket',
    'InventoryTransaction',
]
