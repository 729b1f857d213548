# backend/app/services/recommendations.py
"""
Recommendation Service
======================

Entry point of the recommendation engine:

    request -> validation -> CandidateSelector -> RankingScorer -> insights

Also exposes client behavior analysis and tenant-level insights.
Everything is tenant-scoped and read-only.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from app.exceptions import InvalidRequest, MissingBaseProduct
from app.gateways.base import ClientReader, ProductReader, SaleReader
from app.services.aggregation import counter
from app.services.behavior import DEFAULT_LOOKBACK_DAYS, BehaviorAnalyzer, BehavioralProfile, BulkBehaviorAnalysis
from app.services.candidates import CandidateSelector, RecommendationContext, RecommendationType
from app.services.ranking import RankingContext, RankingScorer, RecommendationResult
from app.services.statistics import round2

logger = logging.getLogger(__name__)

MAX_LIMIT = 50
TOP_INSIGHTS = 5
INSIGHT_PAIRS = 10


@dataclass
class RecommendationAnalysis:
    total_products: int
    categories_analyzed: int
    sales_data_points: int
    analysis_date: datetime
    recommendations: List[RecommendationResult]
    insights: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_products": self.total_products,
            "categories_analyzed": self.categories_analyzed,
            "sales_data_points": self.sales_data_points,
            "analysis_date": self.analysis_date,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "insights": self.insights,
        }


def validate_context(ctx: RecommendationContext) -> None:
    """Reject unsatisfiable requests before any gateway is touched."""
    if not 1 <= ctx.limit <= MAX_LIMIT:
        raise InvalidRequest(f"limit must be between 1 and {MAX_LIMIT}, got {ctx.limit}", field="limit")
    if not 0 <= ctx.min_confidence <= 1:
        raise InvalidRequest("min_confidence must be between 0 and 1", field="min_confidence")
    for name in ("min_price", "max_price"):
        value = getattr(ctx, name)
        if value is not None and value < 0:
            raise InvalidRequest(f"{name} must not be negative", field=name)
    if ctx.min_price is not None and ctx.max_price is not None and ctx.min_price > ctx.max_price:
        raise InvalidRequest("min_price must not exceed max_price", field="min_price")
    if ctx.lookback_days is not None:
        BehaviorAnalyzer.validate_lookback(ctx.lookback_days)
    if ctx.strategy == RecommendationType.SIMILAR and not ctx.based_on_product_id:
        raise MissingBaseProduct()


class RecommendationService:
    def __init__(
        self,
        products: ProductReader,
        sales: SaleReader,
        clients: ClientReader,
        scorer: Optional[RankingScorer] = None,
        insights_window_days: int = 30,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        current_date: Optional[datetime] = None,
    ):
        self.products = products
        self.sales = sales
        self.behavior = BehaviorAnalyzer(sales, clients, current_date=current_date)
        self.selector = CandidateSelector(products, sales, self.behavior)
        self.scorer = scorer or RankingScorer()
        self.insights_window_days = insights_window_days
        self.lookback_days = lookback_days
        self.current_date = current_date

    def _now(self) -> datetime:
        return self.current_date or datetime.utcnow()

    async def get_recommendations(self, ctx: RecommendationContext) -> RecommendationAnalysis:
        if ctx.lookback_days is None:
            ctx = replace(ctx, lookback_days=self.lookback_days)
        validate_context(ctx)

        candidate_set = await self.selector.select(ctx)
        ranking_ctx = RankingContext(
            strategy=candidate_set.strategy,
            limit=ctx.limit,
            min_confidence=ctx.min_confidence,
            tenant_id=ctx.tenant_id,
        )
        recommendations = await self.scorer.score(candidate_set, ranking_ctx)

        if candidate_set.categories_analyzed is not None:
            categories_analyzed = candidate_set.categories_analyzed
            insights = await self._insights(ctx.tenant_id, recommendations)
        else:
            categories_analyzed, insights = await asyncio.gather(
                self.products.count_categories(ctx.tenant_id, ctx.base_filter()),
                self._insights(ctx.tenant_id, recommendations),
            )

        logger.info(
            f"Recommendations tenant={ctx.tenant_id} strategy={candidate_set.strategy.value} "
            f"requested={ctx.strategy.value} candidates={len(candidate_set.candidates)} "
            f"returned={len(recommendations)}"
        )
        return RecommendationAnalysis(
            total_products=len(recommendations),
            categories_analyzed=categories_analyzed,
            sales_data_points=candidate_set.sales_data_points,
            analysis_date=self._now(),
            recommendations=recommendations,
            insights=insights,
        )

    async def _insights(self, tenant_id: str, recommendations: List[RecommendationResult]) -> Dict[str, Any]:
        if not recommendations:
            return {
                "trending_categories": [],
                "popular_price_range": {"min": 0, "max": 0},
                "top_colors": [],
                "top_sizes": [],
            }

        categories = list(dict.fromkeys(r.category for r in recommendations))

        now = self._now()
        recent = await self.sales.list_sales(
            tenant_id, start=now - timedelta(days=self.insights_window_days), end=now
        )
        pairs = counter()
        for sale in recent:
            for line in sale.lines:
                pairs.add((line.color, line.size), 1)
        top_pairs = [key for key, _ in pairs.top(INSIGHT_PAIRS)]

        return {
            "trending_categories": categories[:TOP_INSIGHTS],
            "popular_price_range": {
                "min": min(r.price_min for r in recommendations),
                "max": max(r.price_max for r in recommendations),
            },
            "top_colors": list(dict.fromkeys(c for c, _ in top_pairs if c))[:TOP_INSIGHTS],
            "top_sizes": list(dict.fromkeys(s for _, s in top_pairs if s))[:TOP_INSIGHTS],
        }

    async def analyze_client_behavior(self, tenant_id: str, client_id: str,
                                      days_period: int = 90) -> BehavioralProfile:
        return await self.behavior.analyze(tenant_id, client_id, days_period)

    async def analyze_clients(self, tenant_id: str, client_ids: Sequence[str],
                              days_period: int = 90) -> BulkBehaviorAnalysis:
        return await self.behavior.analyze_many(tenant_id, client_ids, days_period)

    async def get_tenant_insights(self, tenant_id: str) -> Dict[str, Any]:
        """Catalog size, completed sales, average ticket and top categories by units."""
        total_products, sales = await asyncio.gather(
            self.products.count_active_products(tenant_id),
            self.sales.list_sales(tenant_id),
        )

        units_by_category = counter()
        for sale in sales:
            for line in sale.lines:
                units_by_category.add(line.category, line.quantity)

        average = sum(s.total for s in sales) / len(sales) if sales else 0.0
        return {
            "total_products": total_products,
            "total_sales": len(sales),
            "average_order_value": round2(average),
            "top_categories": [
                {"name": name, "total_sold": int(units)}
                for name, units in units_by_category.top(TOP_INSIGHTS)
            ],
            "analysis_date": self._now(),
        }
