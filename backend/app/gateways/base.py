"""
Read-only data gateways - the only way the engine sees storefront data.

The recommendation and analytics services never import SQLAlchemy. They
depend on the narrow ports below and receive plain, fully-joined read
records. Every method is already tenant-scoped by its `tenant_id`
argument; implementations must never return rows of another tenant.

Each port is independently replaceable: the SQL implementations live in
app/gateways/sql.py, tests use in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple


# ---------------------------------------------------------------------------
# Read records - what every gateway returns. Prices and amounts are floats,
# timestamps are naive UTC.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VariantRecord:
    """One size/color/price of a product, with its current stock."""
    id: str
    product_id: str
    size: Optional[str]
    color: Optional[str]
    price: float
    quantity: int


@dataclass(frozen=True)
class ProductRecord:
    """A catalog product joined with its category, variants and images."""
    id: str
    name: str
    description: Optional[str]
    category_id: str
    category: str
    subcategory: Optional[str]
    is_active: bool
    created_at: datetime
    variants: Tuple[VariantRecord, ...] = ()
    images: Tuple[str, ...] = ()

    @property
    def prices(self) -> List[float]:
        return [v.price for v in self.variants]

    @property
    def average_price(self) -> Optional[float]:
        if not self.variants:
            return None
        return sum(self.prices) / len(self.variants)

    @property
    def colors(self) -> List[str]:
        return _unique(v.color for v in self.variants)

    @property
    def sizes(self) -> List[str]:
        return _unique(v.size for v in self.variants)


@dataclass(frozen=True)
class InventoryItem:
    """A variant of an active product, flattened for inventory reports."""
    variant_id: str
    product_id: str
    product_name: str
    category_id: str
    category: str
    size: Optional[str]
    color: Optional[str]
    price: float
    quantity: int


@dataclass(frozen=True)
class ClientRecord:
    id: str
    email: str
    full_name: Optional[str] = None


@dataclass(frozen=True)
class SaleLineRecord:
    """A sale line joined with its variant, product, size and category."""
    variant_id: str
    product_id: str
    product_name: str
    category: str
    size: Optional[str]
    color: Optional[str]
    quantity: int
    unit_price: float

    @property
    def revenue(self) -> float:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class SaleRecord:
    """A completed sale with its client and lines."""
    id: str
    client_id: str
    sold_at: datetime
    total: float
    lines: Tuple[SaleLineRecord, ...] = ()
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    operator_name: Optional[str] = None

    @property
    def units(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class VariantSalesRecord:
    """Units and distinct completed sales for one variant."""
    variant_id: str
    product_id: str
    units_sold: int
    sale_count: int


@dataclass(frozen=True)
class SupplierRecord:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class ReceiptLineRecord:
    variant_id: str
    product_name: str
    size: Optional[str]
    color: Optional[str]
    quantity: int
    unit_cost: float


@dataclass(frozen=True)
class ReceiptRecord:
    """An inventory receipt (stock delivery) with its lines."""
    id: str
    supplier_id: Optional[str]
    received_at: datetime
    total_amount: float
    lines: Tuple[ReceiptLineRecord, ...] = ()
    supplier_name: Optional[str] = None
    operator_name: Optional[str] = None


@dataclass
class ProductFilter:
    """
    Predicates for catalog queries.

    Variant-level predicates (every entry of `price_ranges`, plus stock when
    `include_out_of_stock` is false) must all hold for the SAME variant for a
    product to match. A price range is (min, max); max None means unbounded.
    """
    category_id: Optional[str] = None
    category_names: Sequence[str] = ()
    subcategory: Optional[str] = None
    price_ranges: List[Tuple[float, Optional[float]]] = field(default_factory=list)
    exclude_product_ids: Set[str] = field(default_factory=set)
    product_ids: Optional[Set[str]] = None
    include_out_of_stock: bool = False

    def matches_variant(self, variant: VariantRecord) -> bool:
        if not self.include_out_of_stock and variant.quantity <= 0:
            return False
        for low, high in self.price_ranges:
            if variant.price < low or (high is not None and variant.price > high):
                return False
        return True

    def has_variant_predicates(self) -> bool:
        return bool(self.price_ranges) or not self.include_out_of_stock

    def matches(self, product: ProductRecord) -> bool:
        """Reference semantics for in-memory implementations."""
        if not product.is_active:
            return False
        if self.product_ids is not None and product.id not in self.product_ids:
            return False
        if product.id in self.exclude_product_ids:
            return False
        if self.category_id and product.category_id != self.category_id:
            return False
        if self.category_names and product.category not in self.category_names:
            return False
        if self.subcategory and product.subcategory != self.subcategory:
            return False
        if self.has_variant_predicates():
            return any(self.matches_variant(v) for v in product.variants)
        return True


def _unique(values) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class ProductReader(ABC):
    """Catalog Data Gateway."""

    @abstractmethod
    async def get_product(self, tenant_id: str, product_id: str) -> Optional[ProductRecord]:
        """Fetch one product of the tenant (active or not). None if absent."""
        pass

    @abstractmethod
    async def find_products(
        self,
        tenant_id: str,
        filters: ProductFilter,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[ProductRecord]:
        """
        Active products matching `filters`.

        Ordered by name (then id) or, with `newest_first`, by creation
        time descending (then id descending).
        """
        pass

    @abstractmethod
    async def count_categories(self, tenant_id: str, filters: ProductFilter) -> int:
        """Distinct categories among active products matching `filters`."""
        pass

    @abstractmethod
    async def count_active_products(self, tenant_id: str) -> int:
        pass

    @abstractmethod
    async def list_inventory(
        self,
        tenant_id: str,
        category_id: Optional[str] = None,
        max_quantity: Optional[int] = None,
    ) -> List[InventoryItem]:
        """Variants of active products, optionally at or below a stock level."""
        pass


class ClientReader(ABC):

    @abstractmethod
    async def get_client(self, tenant_id: str, client_id: str) -> Optional[ClientRecord]:
        """None if the client does not exist or belongs to another tenant."""
        pass


class SaleReader(ABC):
    """Transaction Data Gateway. Only completed sales are ever returned."""

    @abstractmethod
    async def list_sales(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        client_id: Optional[str] = None,
    ) -> List[SaleRecord]:
        """Completed sales in [start, end], oldest first."""
        pass

    @abstractmethod
    async def variant_sales(self, tenant_id: str, filters: ProductFilter) -> List[VariantSalesRecord]:
        """
        Units and distinct sales per sold variant of active products.

        Product predicates of `filters` apply to the owning product and
        variant predicates to the sold variant itself. Unordered.
        """
        pass

    @abstractmethod
    async def purchased_product_ids(self, tenant_id: str, client_id: str) -> Set[str]:
        """Every product the client bought in a completed sale."""
        pass

    @abstractmethod
    async def last_sale_dates(self, tenant_id: str) -> Dict[str, datetime]:
        """variant_id -> most recent completed sale containing it."""
        pass


class InventoryReader(ABC):
    """Supplier and inventory receipt data."""

    @abstractmethod
    async def list_suppliers(self, tenant_id: str) -> List[SupplierRecord]:
        """Active suppliers."""
        pass

    @abstractmethod
    async def list_receipts(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        supplier_id: Optional[str] = None,
    ) -> List[ReceiptRecord]:
        """Receipts in [start, end], oldest first."""
        pass

    @abstractmethod
    async def last_receipt_dates(self, tenant_id: str) -> Dict[str, datetime]:
        """variant_id -> most recent receipt containing it."""
        pass
