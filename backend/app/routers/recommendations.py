"""
Recommendations API Router.

Storefront recommendations plus back-office behavior and tenant insights.
Validation lives in the services; this layer only maps HTTP to calls.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.auth_middleware import get_current_tenant, get_optional_client, require_back_office
from app.exceptions import InvalidRequest
from app.routers.dependencies import get_recommendation_service
from app.services.candidates import RecommendationContext, RecommendationType
from app.services.recommendations import RecommendationService

router = APIRouter()


class PriceRange(BaseModel):
    min: float
    max: float


class RecommendationItem(BaseModel):
    id: str
    name: str
    description: str
    images: List[str]
    category: str
    subcategory: Optional[str]
    price: PriceRange
    score: float
    confidence: float
    reason: str
    tags: List[str]


class RecommendationInsights(BaseModel):
    trending_categories: List[str]
    popular_price_range: PriceRange
    top_colors: List[str]
    top_sizes: List[str]


class RecommendationResponse(BaseModel):
    total_products: int
    categories_analyzed: int
    sales_data_points: int
    analysis_date: datetime
    recommendations: List[RecommendationItem]
    insights: RecommendationInsights


class BehaviorProfileResponse(BaseModel):
    client_id: str
    preferred_categories: List[str]
    average_order_value: float
    frequent_sizes: List[str]
    frequent_colors: List[str]
    last_purchase_date: Optional[datetime]
    purchase_frequency: str
    price_preference: str
    order_count: int


class BulkBehaviorRequest(BaseModel):
    client_ids: List[str]
    days_period: int = 90


class BulkBehaviorResponse(BaseModel):
    profiles: List[BehaviorProfileResponse]
    summary: dict
    missing_client_ids: List[str]


def _strategy(value: str) -> RecommendationType:
    try:
        return RecommendationType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in RecommendationType)
        raise InvalidRequest(f"type must be one of {allowed}", field="type")


@router.get("", response_model=RecommendationResponse)
async def get_recommendations(
    type: str = Query("bestseller"),
    based_on_product_id: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None),
    subcategory: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    limit: int = Query(10),
    exclude_product_ids: List[str] = Query([]),
    include_out_of_stock: bool = Query(False),
    min_confidence: float = Query(0.3),
    client_id: Optional[str] = Query(None, description="Back-office preview for a given client"),
    tenant_id: str = Depends(get_current_tenant),
    token_client_id: Optional[str] = Depends(get_optional_client),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """
    Ranked product recommendations.

    Shoppers get personalized results from their own token; back-office
    callers may pass client_id explicitly.
    """
    ctx = RecommendationContext(
        tenant_id=tenant_id,
        strategy=_strategy(type),
        client_id=token_client_id or client_id,
        based_on_product_id=based_on_product_id,
        category_id=category_id,
        subcategory=subcategory,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
        exclude_product_ids=exclude_product_ids,
        include_out_of_stock=include_out_of_stock,
        min_confidence=min_confidence,
    )
    analysis = await service.get_recommendations(ctx)
    return analysis.to_dict()


@router.get("/clients/{client_id}/behavior", response_model=BehaviorProfileResponse)
async def get_client_behavior(
    client_id: str,
    days_period: int = Query(90),
    tenant_id: str = Depends(require_back_office),
    service: RecommendationService = Depends(get_recommendation_service),
):
    profile = await service.analyze_client_behavior(tenant_id, client_id, days_period)
    return profile.to_dict()


@router.post("/clients/behavior", response_model=BulkBehaviorResponse)
async def analyze_clients(
    body: BulkBehaviorRequest,
    tenant_id: str = Depends(require_back_office),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Profiles for several clients with a cross-profile summary."""
    result = await service.analyze_clients(tenant_id, body.client_ids, body.days_period)
    return {
        "profiles": [p.to_dict() for p in result.profiles],
        "summary": result.summary,
        "missing_client_ids": result.missing_client_ids,
    }


@router.get("/insights")
async def get_tenant_insights(
    tenant_id: str = Depends(require_back_office),
    service: RecommendationService = Depends(get_recommendation_service),
):
    return await service.get_tenant_insights(tenant_id)
