"""
SQLAlchemy Models for Storefront Insights.

These are read models: the storefront's CRUD layer owns writes, the
recommendation and analytics engine only reads through gateways.

This package is organized by domain:
- base.py: Base class and mixins
- tenant.py: Tenant (isolation boundary)
- catalog.py: Category, size, product, image and variant models
- client.py: Storefront customers
- sale.py: Sales and line items
- inventory.py: Suppliers and inventory receipts
"""

# Base
from app.models.base import Base, UUIDMixin, TimestampMixin, TenantMixin

# Core domain models
from app.models.tenant import Tenant
from app.models.catalog import Category, Size, Product, ProductImage, ProductVariant
from app.models.client import Client
from app.models.sale import Sale, SaleLine, SaleStatus

# Inventory
from app.models.inventory import Supplier, InventoryReceipt, InventoryReceiptLine


__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "TenantMixin",

    # Core domain
    "Tenant",
    "Category",
    "Size",
    "Product",
    "ProductImage",
    "ProductVariant",
    "Client",
    "Sale",
    "SaleLine",
    "SaleStatus",

    # Inventory
    "Supplier",
    "InventoryReceipt",
    "InventoryReceiptLine",
]
