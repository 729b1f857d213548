from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from app.auth_middleware import require_back_office
from app.routers.dependencies import get_analytics_service, get_report_composer
from app.services.analytics import AnalyticsService, ReportFilters
from app.services.reports import ReportComposer

router = APIRouter()


def report_filters(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    category_id: Optional[str] = Query(None),
    supplier_id: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
) -> ReportFilters:
    return ReportFilters(
        start_date=start_date,
        end_date=end_date,
        category_id=category_id,
        supplier_id=supplier_id,
        client_id=client_id,
    )


# --- Sales ---

@router.get("/sales/summary")
async def sales_summary(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    """Revenue, transactions and ticket for the window vs the previous one."""
    return await analytics.get_sales_summary(tenant_id, filters)


@router.get("/sales/top-products")
async def top_products(
    limit: int = Query(10),
    sort_by: str = Query("revenue"),
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_top_products(tenant_id, filters, limit=limit, sort_by=sort_by)


@router.get("/sales/trends")
async def sales_trends(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_sales_trends(tenant_id, filters)


@router.get("/sales/trend-analysis")
async def trend_analysis(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    """Daily series with regression slope, volatility and a 7-day projection."""
    return await composer.trend_analysis(tenant_id, filters)


@router.get("/customers")
async def customer_performance(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_customer_performance(tenant_id, filters)


@router.get("/customers/segmentation")
async def customer_segmentation(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    return await composer.customer_segmentation(tenant_id, filters)


# --- Inventory ---

@router.get("/inventory/low-stock")
async def low_stock(
    threshold: int = Query(10),
    category_id: Optional[str] = Query(None),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_low_stock(tenant_id, threshold=threshold, category_id=category_id)


@router.get("/inventory/movements")
async def inventory_movements(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_inventory_movements(tenant_id, filters)


@router.get("/inventory/rotation")
async def inventory_rotation(
    rotation_type: str = Query("todas"),
    limit: int = Query(20),
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_inventory_rotation(tenant_id, filters, rotation_type=rotation_type, limit=limit)


@router.get("/inventory/valuation")
async def inventory_valuation(
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return await analytics.get_inventory_valuation(tenant_id)


# --- Suppliers ---

@router.get("/suppliers")
async def supplier_performance(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_supplier_performance(tenant_id, filters)


@router.get("/suppliers/replenishment")
async def replenishment_times(
    tenant_id: str = Depends(require_back_office),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[Dict[str, Any]]:
    return await analytics.get_replenishment_times(tenant_id)


# --- Dashboards ---

@router.get("/executive")
async def executive_summary(
    filters: ReportFilters = Depends(report_filters),
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    """
    Aggregated KPIs for the back-office dashboard.
    """
    return await composer.executive_summary(tenant_id, filters)


@router.get("/alerts")
async def alerts(
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    return await composer.alerts(tenant_id)


@router.get("/daily")
async def daily_report(
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    return await composer.daily_report(tenant_id)


@router.get("/weekly-inventory")
async def weekly_inventory_report(
    tenant_id: str = Depends(require_back_office),
    composer: ReportComposer = Depends(get_report_composer),
) -> Dict[str, Any]:
    return await composer.weekly_inventory_report(tenant_id)
