# backend/app/services/candidates.py
"""
Candidate Selector
==================

Narrows the tenant's catalog to the products eligible for one
recommendation strategy. Ordering here is the heuristic ranking order:
the scorer assigns decreasing scores down the list.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from app.exceptions import MissingBaseProduct, NotFound
from app.gateways.base import ProductFilter, ProductReader, ProductRecord, SaleReader
from app.services.aggregation import KeyedAggregator
from app.services.behavior import DEFAULT_LOOKBACK_DAYS, PRICE_BANDS, BehaviorAnalyzer, BehavioralProfile

logger = logging.getLogger(__name__)

# Candidate pool is twice the requested size so ranking has room to choose
POOL_FACTOR = 2
SIMILAR_PRICE_MARGIN = 0.3


class RecommendationType(str, Enum):
    BESTSELLER = "bestseller"
    SIMILAR = "similar"
    PERSONALIZED = "personalized"
    NEW_ARRIVALS = "new_arrivals"


@dataclass
class RecommendationContext:
    """A validated recommendation request."""
    tenant_id: str
    strategy: RecommendationType = RecommendationType.BESTSELLER
    client_id: Optional[str] = None
    based_on_product_id: Optional[str] = None
    category_id: Optional[str] = None
    subcategory: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    limit: int = 10
    exclude_product_ids: List[str] = field(default_factory=list)
    include_out_of_stock: bool = False
    min_confidence: float = 0.3
    lookback_days: Optional[int] = None

    def base_filter(self) -> ProductFilter:
        price_ranges = []
        if self.min_price is not None or self.max_price is not None:
            price_ranges.append((self.min_price or 0.0, self.max_price))
        return ProductFilter(
            category_id=self.category_id,
            subcategory=self.subcategory,
            price_ranges=price_ranges,
            exclude_product_ids=set(self.exclude_product_ids),
            include_out_of_stock=self.include_out_of_stock,
        )


@dataclass
class Candidate:
    product: ProductRecord
    units_sold: Optional[int] = None


@dataclass
class CandidateSet:
    strategy: RecommendationType  # effective strategy after fallbacks
    candidates: List[Candidate]
    sales_data_points: int = 0
    categories_analyzed: Optional[int] = None
    base_product: Optional[ProductRecord] = None
    profile: Optional[BehavioralProfile] = None

    @property
    def products(self) -> List[ProductRecord]:
        return [c.product for c in self.candidates]


class CandidateSelector:
    def __init__(self, products: ProductReader, sales: SaleReader, behavior: BehaviorAnalyzer):
        self.products = products
        self.sales = sales
        self.behavior = behavior

    async def select(self, ctx: RecommendationContext) -> CandidateSet:
        if ctx.strategy == RecommendationType.SIMILAR:
            if not ctx.based_on_product_id:
                raise MissingBaseProduct()
            return await self.similar(ctx)

        if ctx.strategy == RecommendationType.PERSONALIZED:
            if not ctx.client_id:
                logger.info("Personalized recommendations requested without a client, using bestsellers")
                return await self.bestseller(ctx)
            return await self.personalized(ctx)

        if ctx.strategy == RecommendationType.NEW_ARRIVALS:
            return await self.new_arrivals(ctx)

        return await self.bestseller(ctx)

    async def bestseller(self, ctx: RecommendationContext) -> CandidateSet:
        rows = await self.sales.variant_sales(ctx.tenant_id, ctx.base_filter())
        ranked = sorted(rows, key=lambda r: (-r.units_sold, -r.sale_count, r.variant_id))
        top_variants = ranked[:ctx.limit * POOL_FACTOR]

        # Several variants of one product collapse into a single candidate
        units = KeyedAggregator(merge=lambda a, b: a + b)
        for row in top_variants:
            units.add(row.product_id, row.units_sold)

        candidates: List[Candidate] = []
        if len(units):
            records = await self.products.find_products(
                ctx.tenant_id,
                ProductFilter(product_ids=set(units.keys()), include_out_of_stock=True),
            )
            by_id = {p.id: p for p in records}
            candidates = [
                Candidate(product=by_id[product_id], units_sold=total)
                for product_id, total in units.items()
                if product_id in by_id
            ]

        return CandidateSet(
            strategy=RecommendationType.BESTSELLER,
            candidates=candidates,
            sales_data_points=len(top_variants),
        )

    async def similar(self, ctx: RecommendationContext) -> CandidateSet:
        base = await self.products.get_product(ctx.tenant_id, ctx.based_on_product_id)
        if base is None:
            raise NotFound("Product", ctx.based_on_product_id)

        filters = ctx.base_filter()
        filters.exclude_product_ids = filters.exclude_product_ids | {base.id}

        conflicting = (
            (ctx.category_id and ctx.category_id != base.category_id)
            or (base.subcategory and ctx.subcategory and ctx.subcategory != base.subcategory)
        )
        candidates: List[Candidate] = []
        if not conflicting:
            filters.category_id = base.category_id
            if base.subcategory:
                filters.subcategory = base.subcategory

            average = base.average_price
            if average is not None:
                margin = average * SIMILAR_PRICE_MARGIN
                filters.price_ranges.append((average - margin, average + margin))

            products = await self.products.find_products(
                ctx.tenant_id, filters, limit=ctx.limit * POOL_FACTOR
            )
            candidates = [Candidate(product=p) for p in products]

        return CandidateSet(
            strategy=RecommendationType.SIMILAR,
            candidates=candidates,
            sales_data_points=len(candidates),
            categories_analyzed=1,
            base_product=base,
        )

    async def personalized(self, ctx: RecommendationContext) -> CandidateSet:
        profile = await self.behavior.analyze(
            ctx.tenant_id, ctx.client_id, ctx.lookback_days or DEFAULT_LOOKBACK_DAYS
        )
        purchased: Set[str] = await self.sales.purchased_product_ids(ctx.tenant_id, ctx.client_id)

        filters = ctx.base_filter()
        filters.exclude_product_ids = filters.exclude_product_ids | purchased
        if profile.preferred_categories:
            filters.category_names = list(profile.preferred_categories)
        if profile.price_preference != "budget":
            filters.price_ranges.append(PRICE_BANDS[profile.price_preference])

        products = await self.products.find_products(
            ctx.tenant_id, filters, limit=ctx.limit * POOL_FACTOR
        )
        return CandidateSet(
            strategy=RecommendationType.PERSONALIZED,
            candidates=[Candidate(product=p) for p in products],
            sales_data_points=len(purchased),
            profile=profile,
        )

    async def new_arrivals(self, ctx: RecommendationContext) -> CandidateSet:
        products = await self.products.find_products(
            ctx.tenant_id, ctx.base_filter(), limit=ctx.limit, newest_first=True
        )
        return CandidateSet(
            strategy=RecommendationType.NEW_ARRIVALS,
            candidates=[Candidate(product=p) for p in products],
            sales_data_points=len(products),
        )
