# backend/app/services/behavior.py
"""
Behavior Analyzer
=================

Turns a client's completed purchases into a behavioral profile: preferred
categories, sizes and colors, average order value, purchase cadence and
price tier. Profiles are recomputed on every call and never cached.
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from app.exceptions import CollaboratorUnavailable, InvalidRequest, NotFound
from app.gateways.base import ClientReader, SaleReader, SaleRecord
from app.services.aggregation import KeyedAggregator, counter
from app.services.statistics import round2

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 90
MAX_LOOKBACK_DAYS = 365
TOP_PREFERENCES = 3
TOP_SUMMARY = 5

# Price tier bands used by personalized candidate selection. None = unbounded.
PRICE_BANDS = {
    "budget": (0.0, 80.0),
    "mid-range": (50.0, 200.0),
    "premium": (150.0, None),
}


@dataclass
class BehavioralProfile:
    client_id: str
    preferred_categories: List[str] = field(default_factory=list)
    average_order_value: float = 0.0
    frequent_sizes: List[str] = field(default_factory=list)
    frequent_colors: List[str] = field(default_factory=list)
    last_purchase_date: Optional[datetime] = None
    purchase_frequency: str = "low"   # 'low', 'medium', 'high'
    price_preference: str = "budget"  # 'budget', 'mid-range', 'premium'
    order_count: int = 0

    @property
    def is_cold_start(self) -> bool:
        return self.order_count == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["average_order_value"] = round2(self.average_order_value)
        return data


@dataclass
class BulkBehaviorAnalysis:
    profiles: List[BehavioralProfile]
    summary: Dict[str, Any]
    missing_client_ids: List[str] = field(default_factory=list)


def classify_purchase_frequency(order_count: int, first: datetime, last: datetime) -> str:
    span_days = (last - first).total_seconds() / 86400
    if span_days <= 0:
        return "low"
    rate = order_count / span_days
    if rate > 0.1:
        return "high"
    if rate > 0.05:
        return "medium"
    return "low"


def classify_price_preference(average_order_value: float) -> str:
    if average_order_value > 200:
        return "premium"
    if average_order_value > 80:
        return "mid-range"
    return "budget"


def _top_keys(aggregator: KeyedAggregator, n: int) -> List[str]:
    return [key for key, _ in aggregator.top(n)]


def build_profile(client_id: str, sales: Sequence[SaleRecord], now: datetime) -> BehavioralProfile:
    """Pure profile computation over already-fetched completed sales."""
    if not sales:
        return BehavioralProfile(client_id=client_id, last_purchase_date=now)

    categories = counter()
    sizes = counter()
    colors = counter()
    for sale in sales:
        for line in sale.lines:
            categories.add(line.category, line.quantity)
            if line.size:
                sizes.add(line.size, line.quantity)
            if line.color:
                colors.add(line.color, line.quantity)

    dates = [sale.sold_at for sale in sales]
    aov = sum(sale.total for sale in sales) / len(sales)

    return BehavioralProfile(
        client_id=client_id,
        preferred_categories=_top_keys(categories, TOP_PREFERENCES),
        average_order_value=aov,
        frequent_sizes=_top_keys(sizes, TOP_PREFERENCES),
        frequent_colors=_top_keys(colors, TOP_PREFERENCES),
        last_purchase_date=max(dates),
        purchase_frequency=classify_purchase_frequency(len(sales), min(dates), max(dates)),
        price_preference=classify_price_preference(aov),
        order_count=len(sales),
    )


class BehaviorAnalyzer:
    """
    Builds behavioral profiles from the transaction gateway.

    `current_date` pins "now" (tests); otherwise each call reads the clock.
    """

    def __init__(
        self,
        sales: SaleReader,
        clients: ClientReader,
        current_date: Optional[datetime] = None,
    ):
        self.sales = sales
        self.clients = clients
        self.current_date = current_date

    def _now(self) -> datetime:
        return self.current_date or datetime.utcnow()

    @staticmethod
    def validate_lookback(lookback_days: int) -> None:
        if not 1 <= lookback_days <= MAX_LOOKBACK_DAYS:
            raise InvalidRequest(
                f"lookback_days must be between 1 and {MAX_LOOKBACK_DAYS}, got {lookback_days}",
                field="lookback_days",
            )

    async def analyze(self, tenant_id: str, client_id: str,
                      lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> BehavioralProfile:
        self.validate_lookback(lookback_days)

        client = await self.clients.get_client(tenant_id, client_id)
        if client is None:
            raise NotFound("Client", client_id)

        now = self._now()
        try:
            history = await self.sales.list_sales(
                tenant_id,
                start=now - timedelta(days=lookback_days),
                end=now,
                client_id=client_id,
            )
        except CollaboratorUnavailable as e:
            logger.warning(f"Purchase history unavailable for client {client_id}, using cold-start profile: {e}")
            return BehavioralProfile(client_id=client_id, last_purchase_date=now)

        profile = build_profile(client_id, history, now)
        logger.debug(
            f"Profile for {client_id}: {profile.order_count} orders, "
            f"{profile.price_preference}, {profile.purchase_frequency}"
        )
        return profile

    async def analyze_many(
        self,
        tenant_id: str,
        client_ids: Sequence[str],
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> BulkBehaviorAnalysis:
        """Profiles for several clients plus a cross-profile summary."""
        if not client_ids:
            raise InvalidRequest("client_ids must not be empty", field="client_ids")
        self.validate_lookback(lookback_days)

        unique_ids = list(dict.fromkeys(client_ids))

        async def _one(client_id: str) -> Optional[BehavioralProfile]:
            try:
                return await self.analyze(tenant_id, client_id, lookback_days)
            except NotFound:
                return None

        results = await asyncio.gather(*(_one(cid) for cid in unique_ids))
        profiles = [p for p in results if p is not None]
        missing = [cid for cid, p in zip(unique_ids, results) if p is None]
        if missing:
            logger.info(f"Bulk analysis skipped {len(missing)} unknown clients")

        return BulkBehaviorAnalysis(
            profiles=profiles,
            summary=summarize_profiles(profiles),
            missing_client_ids=missing,
        )


def summarize_profiles(profiles: Sequence[BehavioralProfile]) -> Dict[str, Any]:
    """Mean AOV and the most common preferences, counted once per profile."""
    categories = counter()
    sizes = counter()
    colors = counter()
    for profile in profiles:
        for name in profile.preferred_categories:
            categories.add(name, 1)
        for name in profile.frequent_sizes:
            sizes.add(name, 1)
        for name in profile.frequent_colors:
            colors.add(name, 1)

    aov = sum(p.average_order_value for p in profiles) / len(profiles) if profiles else 0.0
    return {
        "total_clients": len(profiles),
        "average_order_value": round2(aov),
        "common_categories": _top_keys(categories, TOP_SUMMARY),
        "common_sizes": _top_keys(sizes, TOP_SUMMARY),
        "common_colors": _top_keys(colors, TOP_SUMMARY),
    }
