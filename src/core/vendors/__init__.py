"""
Домен продавцов.
Модели постоянного хранилища и эфемерная запись активного продавца.
"""

from src.core.vendors.models import ActiveVendorRecord, Order, Vendor
from src.core.vendors.repository import OrderRepository, VendorRepository

__all__ = [
    "ActiveVendorRecord",
    "Order",
    "OrderRepository",
    "Vendor",
    "VendorRepository",
]
