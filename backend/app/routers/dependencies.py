"""
Router Dependencies
====================

Shared FastAPI dependencies that wire services to the SQL gateways.
Tests swap them through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends

from app.config import get_settings
from app.gateways.sql import SqlClientReader, SqlInventoryReader, SqlProductReader, SqlSaleReader
from app.services.analytics import AnalyticsService
from app.services.ranking import RankingScorer, build_ranking_scorer
from app.services.recommendations import RecommendationService
from app.services.reports import ReportComposer


@lru_cache()
def get_ranking_scorer() -> RankingScorer:
    """One scorer (and LLM client pool) per process."""
    return build_ranking_scorer(get_settings())


def get_recommendation_service() -> RecommendationService:
    settings = get_settings()
    return RecommendationService(
        products=SqlProductReader(),
        sales=SqlSaleReader(),
        clients=SqlClientReader(),
        scorer=get_ranking_scorer(),
        insights_window_days=settings.INSIGHTS_WINDOW_DAYS,
        lookback_days=settings.RECOMMENDATION_LOOKBACK_DAYS,
    )


def get_analytics_service() -> AnalyticsService:
    return AnalyticsService(
        products=SqlProductReader(),
        sales=SqlSaleReader(),
        inventory=SqlInventoryReader(),
    )


def get_report_composer(analytics: AnalyticsService = Depends(get_analytics_service)) -> ReportComposer:
    return ReportComposer(analytics)
