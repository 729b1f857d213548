"""
SQLAlchemy implementations of the read-only data gateways.

Every call opens its own short-lived AsyncSession, so a composer may run
several gateway calls concurrently with asyncio.gather. Database errors are
wrapped as CollaboratorUnavailable; there is no retry here.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy import select, func, distinct, exists, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from app.exceptions import CollaboratorUnavailable
from app.gateways.base import (
    ClientReader,
    ClientRecord,
    InventoryItem,
    InventoryReader,
    ProductFilter,
    ProductReader,
    ProductRecord,
    ReceiptLineRecord,
    ReceiptRecord,
    SaleLineRecord,
    SaleReader,
    SaleRecord,
    SupplierRecord,
    VariantRecord,
    VariantSalesRecord,
)
from app.models import (
    Category,
    Client,
    InventoryReceipt,
    InventoryReceiptLine,
    Product,
    ProductVariant,
    Sale,
    SaleLine,
    SaleStatus,
    Supplier,
)

logger = logging.getLogger(__name__)


class _SqlGateway:
    """Session handling and error translation shared by all SQL gateways."""

    collaborator = "database"

    def __init__(self, session_maker=None):
        self._session_maker = session_maker

    def _sessions(self):
        if self._session_maker is None:
            # Deferred so importing a gateway never builds the engine
            from app.database import async_session_maker
            self._session_maker = async_session_maker
        return self._session_maker

    @asynccontextmanager
    async def _reading(self):
        try:
            async with self._sessions()() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"{self.collaborator} query failed: {type(e).__name__}: {e}")
            raise CollaboratorUnavailable(self.collaborator) from e


# ---------------------------------------------------------------------------
# Filter translation
# ---------------------------------------------------------------------------

def _variant_conditions(filters: ProductFilter) -> list:
    conditions = []
    if not filters.include_out_of_stock:
        conditions.append(ProductVariant.quantity > 0)
    for low, high in filters.price_ranges:
        conditions.append(ProductVariant.price >= low)
        if high is not None:
            conditions.append(ProductVariant.price <= high)
    return conditions


def _product_conditions(tenant_id: str, filters: ProductFilter, with_variants: bool = True) -> list:
    conditions = [Product.tenant_id == tenant_id, Product.is_active.is_(True)]

    if filters.category_id:
        conditions.append(Product.category_id == filters.category_id)
    if filters.category_names:
        conditions.append(Product.category.has(Category.name.in_(list(filters.category_names))))
    if filters.subcategory:
        conditions.append(Product.subcategory == filters.subcategory)
    if filters.exclude_product_ids:
        conditions.append(Product.id.notin_(list(filters.exclude_product_ids)))
    if filters.product_ids is not None:
        conditions.append(Product.id.in_(list(filters.product_ids)))

    if with_variants and filters.has_variant_predicates():
        # One variant must satisfy every variant predicate at once
        conditions.append(
            exists().where(
                ProductVariant.product_id == Product.id,
                *_variant_conditions(filters),
            )
        )
    return conditions


# ---------------------------------------------------------------------------
# Row -> record conversion
# ---------------------------------------------------------------------------

def _variant_record(variant: ProductVariant) -> VariantRecord:
    return VariantRecord(
        id=variant.id,
        product_id=variant.product_id,
        size=variant.size.name if variant.size else None,
        color=variant.color,
        price=float(variant.price),
        quantity=variant.quantity or 0,
    )


def _product_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        name=product.name,
        description=product.description,
        category_id=product.category_id,
        category=product.category.name if product.category else "",
        subcategory=product.subcategory,
        is_active=bool(product.is_active),
        created_at=product.created_at,
        variants=tuple(_variant_record(v) for v in sorted(product.variants, key=lambda v: v.id)),
        images=tuple(img.url for img in product.images),
    )


def _sale_line_record(line: SaleLine) -> SaleLineRecord:
    variant = line.variant
    product = variant.product
    return SaleLineRecord(
        variant_id=variant.id,
        product_id=product.id,
        product_name=product.name,
        category=product.category.name if product.category else "",
        size=variant.size.name if variant.size else None,
        color=variant.color,
        quantity=line.quantity,
        unit_price=float(line.unit_price),
    )


def _receipt_record(receipt: InventoryReceipt) -> ReceiptRecord:
    lines = []
    for line in receipt.lines:
        variant = line.variant
        lines.append(ReceiptLineRecord(
            variant_id=variant.id,
            product_name=variant.product.name,
            size=variant.size.name if variant.size else None,
            color=variant.color,
            quantity=line.quantity,
            unit_cost=float(line.unit_cost),
        ))
    return ReceiptRecord(
        id=receipt.id,
        supplier_id=receipt.supplier_id,
        received_at=receipt.received_at,
        total_amount=float(receipt.total_amount or 0),
        lines=tuple(lines),
        supplier_name=receipt.supplier.name if receipt.supplier else None,
        operator_name=receipt.operator_name,
    )


def _product_options():
    return (
        selectinload(Product.category),
        selectinload(Product.variants).selectinload(ProductVariant.size),
        selectinload(Product.images),
    )


def _variant_options():
    return (
        selectinload(ProductVariant.size),
        selectinload(ProductVariant.product).selectinload(Product.category),
    )


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------

class SqlProductReader(_SqlGateway, ProductReader):
    collaborator = "catalog gateway"

    async def get_product(self, tenant_id: str, product_id: str) -> Optional[ProductRecord]:
        query = (
            select(Product)
            .options(*_product_options())
            .where(Product.tenant_id == tenant_id, Product.id == product_id)
        )
        async with self._reading() as session:
            product = (await session.execute(query)).scalar_one_or_none()
            return _product_record(product) if product else None

    async def find_products(
        self,
        tenant_id: str,
        filters: ProductFilter,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[ProductRecord]:
        query = select(Product).options(*_product_options()).where(*_product_conditions(tenant_id, filters))
        if newest_first:
            query = query.order_by(desc(Product.created_at), desc(Product.id))
        else:
            query = query.order_by(Product.name, Product.id)
        if limit is not None:
            query = query.limit(limit)

        async with self._reading() as session:
            products = (await session.execute(query)).scalars().all()
            return [_product_record(p) for p in products]

    async def count_categories(self, tenant_id: str, filters: ProductFilter) -> int:
        query = select(func.count(distinct(Product.category_id))).where(*_product_conditions(tenant_id, filters))
        async with self._reading() as session:
            return (await session.execute(query)).scalar() or 0

    async def count_active_products(self, tenant_id: str) -> int:
        query = select(func.count(Product.id)).where(
            Product.tenant_id == tenant_id, Product.is_active.is_(True)
        )
        async with self._reading() as session:
            return (await session.execute(query)).scalar() or 0

    async def list_inventory(
        self,
        tenant_id: str,
        category_id: Optional[str] = None,
        max_quantity: Optional[int] = None,
    ) -> List[InventoryItem]:
        query = (
            select(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
            .options(*_variant_options())
            .where(ProductVariant.tenant_id == tenant_id, Product.is_active.is_(True))
        )
        if category_id:
            query = query.where(Product.category_id == category_id)
        if max_quantity is not None:
            query = query.where(ProductVariant.quantity <= max_quantity)
        query = query.order_by(ProductVariant.quantity, ProductVariant.id)

        async with self._reading() as session:
            variants = (await session.execute(query)).scalars().all()
            return [
                InventoryItem(
                    variant_id=v.id,
                    product_id=v.product_id,
                    product_name=v.product.name,
                    category_id=v.product.category_id,
                    category=v.product.category.name if v.product.category else "",
                    size=v.size.name if v.size else None,
                    color=v.color,
                    price=float(v.price),
                    quantity=v.quantity or 0,
                )
                for v in variants
            ]


class SqlClientReader(_SqlGateway, ClientReader):
    collaborator = "client gateway"

    async def get_client(self, tenant_id: str, client_id: str) -> Optional[ClientRecord]:
        query = select(Client).where(Client.tenant_id == tenant_id, Client.id == client_id)
        async with self._reading() as session:
            client = (await session.execute(query)).scalar_one_or_none()
            if client is None:
                return None
            return ClientRecord(id=client.id, email=client.email, full_name=client.full_name)


class SqlSaleReader(_SqlGateway, SaleReader):
    collaborator = "transaction gateway"

    async def list_sales(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        client_id: Optional[str] = None,
    ) -> List[SaleRecord]:
        query = (
            select(Sale)
            .options(
                selectinload(Sale.client),
                selectinload(Sale.lines).selectinload(SaleLine.variant).options(*_variant_options()),
            )
            .where(Sale.tenant_id == tenant_id, Sale.status == SaleStatus.COMPLETED)
        )
        if start is not None:
            query = query.where(Sale.sold_at >= start)
        if end is not None:
            query = query.where(Sale.sold_at <= end)
        if client_id is not None:
            query = query.where(Sale.client_id == client_id)
        query = query.order_by(Sale.sold_at, Sale.id)

        async with self._reading() as session:
            sales = (await session.execute(query)).scalars().all()
            return [
                SaleRecord(
                    id=sale.id,
                    client_id=sale.client_id,
                    sold_at=sale.sold_at,
                    total=float(sale.total),
                    lines=tuple(_sale_line_record(line) for line in sale.lines),
                    client_name=sale.client.full_name if sale.client else None,
                    client_email=sale.client.email if sale.client else None,
                    operator_name=sale.operator_name,
                )
                for sale in sales
            ]

    async def variant_sales(self, tenant_id: str, filters: ProductFilter) -> List[VariantSalesRecord]:
        query = (
            select(
                SaleLine.variant_id,
                ProductVariant.product_id,
                func.sum(SaleLine.quantity).label("units_sold"),
                func.count(distinct(SaleLine.sale_id)).label("sale_count"),
            )
            .join(Sale, SaleLine.sale_id == Sale.id)
            .join(ProductVariant, SaleLine.variant_id == ProductVariant.id)
            .join(Product, ProductVariant.product_id == Product.id)
            .where(
                Sale.tenant_id == tenant_id,
                Sale.status == SaleStatus.COMPLETED,
                *_product_conditions(tenant_id, filters, with_variants=False),
                *_variant_conditions(filters),
            )
            .group_by(SaleLine.variant_id, ProductVariant.product_id)
        )
        async with self._reading() as session:
            rows = (await session.execute(query)).all()
            return [
                VariantSalesRecord(
                    variant_id=row.variant_id,
                    product_id=row.product_id,
                    units_sold=int(row.units_sold or 0),
                    sale_count=int(row.sale_count or 0),
                )
                for row in rows
            ]

    async def purchased_product_ids(self, tenant_id: str, client_id: str) -> Set[str]:
        query = (
            select(ProductVariant.product_id).distinct()
            .join(SaleLine, SaleLine.variant_id == ProductVariant.id)
            .join(Sale, SaleLine.sale_id == Sale.id)
            .where(
                Sale.tenant_id == tenant_id,
                Sale.client_id == client_id,
                Sale.status == SaleStatus.COMPLETED,
            )
        )
        async with self._reading() as session:
            return set((await session.execute(query)).scalars().all())

    async def last_sale_dates(self, tenant_id: str) -> Dict[str, datetime]:
        query = (
            select(SaleLine.variant_id, func.max(Sale.sold_at))
            .join(Sale, SaleLine.sale_id == Sale.id)
            .where(Sale.tenant_id == tenant_id, Sale.status == SaleStatus.COMPLETED)
            .group_by(SaleLine.variant_id)
        )
        async with self._reading() as session:
            return {variant_id: sold_at for variant_id, sold_at in (await session.execute(query)).all()}


class SqlInventoryReader(_SqlGateway, InventoryReader):
    collaborator = "inventory gateway"

    async def list_suppliers(self, tenant_id: str) -> List[SupplierRecord]:
        query = (
            select(Supplier)
            .where(Supplier.tenant_id == tenant_id, Supplier.is_active.is_(True))
            .order_by(Supplier.name, Supplier.id)
        )
        async with self._reading() as session:
            suppliers = (await session.execute(query)).scalars().all()
            return [SupplierRecord(id=s.id, name=s.name, email=s.email, phone=s.phone) for s in suppliers]

    async def list_receipts(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
    ) -> List[ReceiptRecord]:
        query = (
            select(InventoryReceipt)
            .options(
                selectinload(InventoryReceipt.supplier),
                selectinload(InventoryReceipt.lines)
                .selectinload(InventoryReceiptLine.variant)
                .options(*_variant_options()),
            )
            .where(InventoryReceipt.tenant_id == tenant_id)
        )
        if start is not None:
            query = query.where(InventoryReceipt.received_at >= start)
        if end is not None:
            query = query.where(InventoryReceipt.received_at <= end)
        if supplier_id is not None:
            query = query.where(InventoryReceipt.supplier_id == supplier_id)
        query = query.order_by(InventoryReceipt.received_at, InventoryReceipt.id)

        async with self._reading() as session:
            receipts = (await session.execute(query)).scalars().all()
            return [_receipt_record(r) for r in receipts]

    async def last_receipt_dates(self, tenant_id: str) -> Dict[str, datetime]:
        query = (
            select(InventoryReceiptLine.variant_id, func.max(InventoryReceipt.received_at))
            .join(InventoryReceipt, InventoryReceiptLine.receipt_id == InventoryReceipt.id)
            .where(InventoryReceipt.tenant_id == tenant_id)
            .group_by(InventoryReceiptLine.variant_id)
        )
        async with self._reading() as session:
            return {variant_id: received_at for variant_id, received_at in (await session.execute(query)).all()}
