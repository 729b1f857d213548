"""
In-memory gateways and record builders for service tests.

Each fake holds the data of a single tenant; any other tenant id sees an
empty store. `calls` records every gateway method invoked and setting
`unavailable` makes every call raise CollaboratorUnavailable.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

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

TENANT = "tenant-1"
OTHER_TENANT = "tenant-2"


class _FakeGateway:
    collaborator = "gateway"

    def __init__(self, tenant_id: str = TENANT):
        self.tenant_id = tenant_id
        self.calls: List[str] = []
        self.unavailable = False

    def _enter(self, name: str, tenant_id: str) -> bool:
        self.calls.append(name)
        if self.unavailable:
            raise CollaboratorUnavailable(self.collaborator)
        return tenant_id == self.tenant_id


class FakeCatalog(_FakeGateway, ProductReader):
    collaborator = "catalog gateway"

    def __init__(self, products: Iterable[ProductRecord] = (), tenant_id: str = TENANT):
        super().__init__(tenant_id)
        self.products = list(products)

    def by_id(self, product_id: str) -> Optional[ProductRecord]:
        return next((p for p in self.products if p.id == product_id), None)

    async def get_product(self, tenant_id, product_id):
        if not self._enter("get_product", tenant_id):
            return None
        return self.by_id(product_id)

    async def find_products(self, tenant_id, filters, limit=None, newest_first=False):
        if not self._enter("find_products", tenant_id):
            return []
        found = [p for p in self.products if filters.matches(p)]
        if newest_first:
            found.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        else:
            found.sort(key=lambda p: (p.name, p.id))
        return found[:limit] if limit is not None else found

    async def count_categories(self, tenant_id, filters):
        if not self._enter("count_categories", tenant_id):
            return 0
        return len({p.category_id for p in self.products if filters.matches(p)})

    async def count_active_products(self, tenant_id):
        if not self._enter("count_active_products", tenant_id):
            return 0
        return sum(1 for p in self.products if p.is_active)

    async def list_inventory(self, tenant_id, category_id=None, max_quantity=None):
        if not self._enter("list_inventory", tenant_id):
            return []
        items = [
            InventoryItem(
                variant_id=v.id,
                product_id=p.id,
                product_name=p.name,
                category_id=p.category_id,
                category=p.category,
                size=v.size,
                color=v.color,
                price=v.price,
                quantity=v.quantity,
            )
            for p in self.products if p.is_active
            for v in p.variants
        ]
        if category_id:
            items = [i for i in items if i.category_id == category_id]
        if max_quantity is not None:
            items = [i for i in items if i.quantity <= max_quantity]
        return sorted(items, key=lambda i: (i.quantity, i.variant_id))


class FakeClients(_FakeGateway, ClientReader):
    collaborator = "client gateway"

    def __init__(self, clients: Iterable[ClientRecord] = (), tenant_id: str = TENANT):
        super().__init__(tenant_id)
        self.clients = {c.id: c for c in clients}

    async def get_client(self, tenant_id, client_id):
        if not self._enter("get_client", tenant_id):
            return None
        return self.clients.get(client_id)


class FakeSales(_FakeGateway, SaleReader):
    collaborator = "transaction gateway"

    def __init__(self, sales: Iterable[SaleRecord] = (), catalog: Optional[FakeCatalog] = None,
                 tenant_id: str = TENANT):
        super().__init__(tenant_id)
        self.sales = list(sales)
        self.catalog = catalog or FakeCatalog(tenant_id=tenant_id)

    async def list_sales(self, tenant_id, start=None, end=None, client_id=None):
        if not self._enter("list_sales", tenant_id):
            return []
        found = [
            s for s in self.sales
            if (start is None or s.sold_at >= start)
            and (end is None or s.sold_at <= end)
            and (client_id is None or s.client_id == client_id)
        ]
        return sorted(found, key=lambda s: (s.sold_at, s.id))

    async def variant_sales(self, tenant_id, filters: ProductFilter):
        if not self._enter("variant_sales", tenant_id):
            return []
        product_filter = replace(filters, price_ranges=[], include_out_of_stock=True)
        units: Dict[str, int] = {}
        sale_ids: Dict[str, set] = {}
        owners: Dict[str, str] = {}
        for sale in self.sales:
            for line in sale.lines:
                product = self.catalog.by_id(line.product_id)
                if product is None or not product_filter.matches(product):
                    continue
                variant = next((v for v in product.variants if v.id == line.variant_id), None)
                if variant is None or not filters.matches_variant(variant):
                    continue
                units[line.variant_id] = units.get(line.variant_id, 0) + line.quantity
                sale_ids.setdefault(line.variant_id, set()).add(sale.id)
                owners[line.variant_id] = line.product_id
        return [
            VariantSalesRecord(variant_id=vid, product_id=owners[vid], units_sold=units[vid],
                               sale_count=len(sale_ids[vid]))
            for vid in units
        ]

    async def purchased_product_ids(self, tenant_id, client_id):
        if not self._enter("purchased_product_ids", tenant_id):
            return set()
        return {line.product_id for s in self.sales if s.client_id == client_id for line in s.lines}

    async def last_sale_dates(self, tenant_id):
        if not self._enter("last_sale_dates", tenant_id):
            return {}
        latest: Dict[str, datetime] = {}
        for sale in self.sales:
            for line in sale.lines:
                if line.variant_id not in latest or sale.sold_at > latest[line.variant_id]:
                    latest[line.variant_id] = sale.sold_at
        return latest


class FakeInventory(_FakeGateway, InventoryReader):
    collaborator = "inventory gateway"

    def __init__(self, suppliers: Iterable[SupplierRecord] = (), receipts: Iterable[ReceiptRecord] = (),
                 tenant_id: str = TENANT):
        super().__init__(tenant_id)
        self.suppliers = list(suppliers)
        self.receipts = list(receipts)

    async def list_suppliers(self, tenant_id):
        if not self._enter("list_suppliers", tenant_id):
            return []
        return list(self.suppliers)

    async def list_receipts(self, tenant_id, start=None, end=None, supplier_id=None):
        if not self._enter("list_receipts", tenant_id):
            return []
        found = [
            r for r in self.receipts
            if (start is None or r.received_at >= start)
            and (end is None or r.received_at <= end)
            and (supplier_id is None or r.supplier_id == supplier_id)
        ]
        return sorted(found, key=lambda r: (r.received_at, r.id))

    async def last_receipt_dates(self, tenant_id):
        if not self._enter("last_receipt_dates", tenant_id):
            return {}
        latest: Dict[str, datetime] = {}
        for receipt in self.receipts:
            for line in receipt.lines:
                if line.variant_id not in latest or receipt.received_at > latest[line.variant_id]:
                    latest[line.variant_id] = receipt.received_at
        return latest


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_product(
    product_id: str,
    name: Optional[str] = None,
    category: str = "Shirts",
    prices: Sequence[float] = (40.0,),
    quantity: int = 10,
    subcategory: Optional[str] = None,
    colors: Sequence[Optional[str]] = ("Blue",),
    sizes: Sequence[Optional[str]] = ("M",),
    created_at: datetime = datetime(2024, 1, 1),
    is_active: bool = True,
    category_id: Optional[str] = None,
) -> ProductRecord:
    variants = tuple(
        VariantRecord(
            id=f"{product_id}-v{i}",
            product_id=product_id,
            size=sizes[i % len(sizes)] if sizes else None,
            color=colors[i % len(colors)] if colors else None,
            price=price,
            quantity=quantity,
        )
        for i, price in enumerate(prices)
    )
    return ProductRecord(
        id=product_id,
        name=name or product_id.title(),
        description=f"{name or product_id} description",
        category_id=category_id or f"cat-{category.lower()}",
        category=category,
        subcategory=subcategory,
        is_active=is_active,
        created_at=created_at,
        variants=variants,
        images=(f"https://cdn.example.com/{product_id}.jpg",),
    )


def make_line(product: ProductRecord, quantity: int = 1, variant_index: int = 0,
              unit_price: Optional[float] = None) -> SaleLineRecord:
    variant = product.variants[variant_index]
    return SaleLineRecord(
        variant_id=variant.id,
        product_id=product.id,
        product_name=product.name,
        category=product.category,
        size=variant.size,
        color=variant.color,
        quantity=quantity,
        unit_price=variant.price if unit_price is None else unit_price,
    )


def make_sale(sale_id: str, client_id: str, sold_at: datetime, lines: Sequence[SaleLineRecord],
              total: Optional[float] = None, client_name: Optional[str] = None,
              operator_name: Optional[str] = None) -> SaleRecord:
    return SaleRecord(
        id=sale_id,
        client_id=client_id,
        sold_at=sold_at,
        total=sum(line.revenue for line in lines) if total is None else total,
        lines=tuple(lines),
        client_name=client_name or client_id,
        client_email=f"{client_id}@example.com",
        operator_name=operator_name,
    )


def make_receipt(receipt_id: str, supplier: Optional[SupplierRecord], received_at: datetime,
                 product: ProductRecord, quantity: int = 10, unit_cost: float = 20.0) -> ReceiptRecord:
    variant = product.variants[0]
    return ReceiptRecord(
        id=receipt_id,
        supplier_id=supplier.id if supplier else None,
        received_at=received_at,
        total_amount=quantity * unit_cost,
        lines=(ReceiptLineRecord(
            variant_id=variant.id,
            product_name=product.name,
            size=variant.size,
            color=variant.color,
            quantity=quantity,
            unit_cost=unit_cost,
        ),),
        supplier_name=supplier.name if supplier else None,
        operator_name="warehouse",
    )
