# backend/app/services/reports.py
"""
Report Composer
===============

Dashboard-style reports assembled from several analytics calls.

The sub-queries of a report are independent, so they run as one
asyncio.gather batch. If any of them fails the whole report fails;
partial dashboards are never returned.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from app.services.analytics import AnalyticsService, ReportFilters
from app.services.statistics import SEGMENT_FREQUENT, SEGMENT_NEW, SEGMENT_OCCASIONAL, SEGMENT_VIP, round2

logger = logging.getLogger(__name__)

ALERT_THRESHOLD = 5
CRITICAL_STOCK = 3
LOW_INVENTORY_VALUE = 10000

SEGMENT_KEYS = {
    SEGMENT_VIP: "vip",
    SEGMENT_FREQUENT: "frequent",
    SEGMENT_OCCASIONAL: "occasional",
    SEGMENT_NEW: "new",
}


def segment_advice(counts: Dict[str, int], total_clients: int) -> List[str]:
    """Advisory actions derived from the customer segment mix."""
    if total_clients == 0:
        return []

    def share(segment: str) -> float:
        return counts.get(segment, 0) / total_clients * 100

    advice = []
    if share(SEGMENT_VIP) < 5:
        advice.append("Implementar programa de fidelización para convertir clientes frecuentes en VIP")
    if share(SEGMENT_NEW) > 50:
        advice.append("Alto porcentaje de clientes nuevos: enfocar en retención y seguimiento post-venta")
    if share(SEGMENT_FREQUENT) > 40:
        advice.append("Excelente base de clientes frecuentes: oportunidad para upselling y cross-selling")
    if counts.get(SEGMENT_OCCASIONAL, 0) > counts.get(SEGMENT_FREQUENT, 0):
        advice.append("Implementar campañas de reactivación para convertir clientes ocasionales en frecuentes")
    return advice


class ReportComposer:
    def __init__(self, analytics: AnalyticsService):
        self.analytics = analytics

    async def executive_summary(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        sales, top, low_stock, valuation = await asyncio.gather(
            self.analytics.get_sales_summary(tenant_id, filters),
            self.analytics.get_top_products(tenant_id, limit=5, sort_by="revenue"),
            self.analytics.get_low_stock(tenant_id, threshold=10),
            self.analytics.get_inventory_valuation(tenant_id),
        )
        return {
            "sales": sales,
            "top_products": top,
            "alerts": {
                "low_stock": len(low_stock),
                "products": low_stock[:5],
                "inventory_value": valuation["summary"]["total_value"],
            },
            "inventory": valuation,
        }

    async def alerts(self, tenant_id: str) -> Dict[str, Any]:
        low_stock, valuation = await asyncio.gather(
            self.analytics.get_low_stock(tenant_id, threshold=ALERT_THRESHOLD),
            self.analytics.get_inventory_valuation(tenant_id),
        )
        critical = [row for row in low_stock if row["stock"] <= CRITICAL_STOCK]
        low = [row for row in low_stock if row["stock"] > CRITICAL_STOCK]
        no_movement = valuation["alerts"]["no_movement"]

        if critical:
            criticality = "Alta"
        elif len(low_stock) > 5:
            criticality = "Media"
        else:
            criticality = "Baja"
        logger.info(f"Alerts tenant={tenant_id}: {len(critical)} critical, {len(low)} low, criticality={criticality}")

        return {
            "critical_stock": critical,
            "low_stock": low,
            "no_movement": no_movement,
            "low_inventory_value": valuation["summary"]["total_value"] < LOW_INVENTORY_VALUE,
            "summary": {
                "total_alerts": len(low_stock) + no_movement,
                "criticality": criticality,
            },
        }

    async def daily_report(self, tenant_id: str) -> Dict[str, Any]:
        today = self.analytics.now().date()
        filters = ReportFilters(start_date=today - timedelta(days=1), end_date=today)

        sales, top, urgent = await asyncio.gather(
            self.analytics.get_sales_summary(tenant_id, filters),
            self.analytics.get_top_products(tenant_id, limit=3, sort_by="revenue"),
            self.analytics.get_low_stock(tenant_id, threshold=ALERT_THRESHOLD),
        )
        return {
            "date": today.isoformat(),
            "type": "daily",
            "sales": sales,
            "featured_products": top,
            "urgent_alerts": urgent[:5],
            "summary": {
                "revenue": sales["totals"]["revenue"],
                "transactions": sales["totals"]["transactions"],
                "critical_alerts": sum(1 for row in urgent if row["stock"] <= CRITICAL_STOCK),
            },
        }

    async def weekly_inventory_report(self, tenant_id: str) -> Dict[str, Any]:
        today = self.analytics.now().date()
        week_ago = today - timedelta(days=7)
        filters = ReportFilters(start_date=week_ago, end_date=today)

        movements, rotation, suppliers = await asyncio.gather(
            self.analytics.get_inventory_movements(tenant_id, filters),
            self.analytics.get_inventory_rotation(tenant_id, limit=10),
            self.analytics.get_supplier_performance(tenant_id, filters),
        )
        return {
            "week": {"start_date": week_ago.isoformat(), "end_date": today.isoformat()},
            "type": "weekly_inventory",
            "movements": {
                "total": len(movements),
                "entries": sum(1 for m in movements if m["type"] == "entrada"),
                "exits": sum(1 for m in movements if m["type"] == "salida"),
                "detail": movements[:10],
            },
            "rotation": {
                "fast_movers": sum(1 for r in rotation if r["classification"] == "Rápida"),
                "slow_movers": sum(1 for r in rotation if r["classification"] == "Lenta"),
                "top": rotation[:5],
            },
            "suppliers": {
                "active": len(suppliers),
                "top_performance": suppliers[:3],
            },
        }

    async def trend_analysis(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        return await self.analytics.get_trend_analysis(tenant_id, filters)

    async def customer_segmentation(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        clients = await self.analytics.get_customer_performance(tenant_id, filters)

        total_clients = len(clients)
        total_revenue = sum(c["total_spent"] for c in clients)
        counts: Dict[str, int] = {}
        revenue: Dict[str, float] = {}
        for client in clients:
            counts[client["segment"]] = counts.get(client["segment"], 0) + 1
            revenue[client["segment"]] = revenue.get(client["segment"], 0.0) + client["total_spent"]

        segments = {}
        for segment, key in SEGMENT_KEYS.items():
            seg_revenue = revenue.get(segment, 0.0)
            segments[key] = {
                "label": segment,
                "count": counts.get(segment, 0),
                "share_pct": round2(counts.get(segment, 0) / total_clients * 100) if total_clients else 0.0,
                "revenue": round2(seg_revenue),
                "revenue_share_pct": round2(seg_revenue / total_revenue * 100) if total_revenue else 0.0,
            }

        return {
            "total_clients": total_clients,
            "total_revenue": round2(total_revenue),
            "segments": segments,
            "recommendations": segment_advice(counts, total_clients),
        }
