# backend/app/services/analytics.py
"""
Analytics Aggregator
====================

Sales, customer, inventory and supplier analytics for one tenant.

Every operation is a pure function of the data visible at call time:
nothing is cached or stored. Date windows are whole calendar days,
[start 00:00:00, end 23:59:59.999999], naive UTC.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from app.exceptions import InvalidRequest
from app.gateways.base import InventoryReader, ProductReader, SaleRecord, SaleReader
from app.services.aggregation import KeyedAggregator
from app.services import statistics as stats
from app.services.statistics import round2

logger = logging.getLogger(__name__)

NEVER_SOLD_DAYS = 999
LOW_STOCK_THRESHOLD = 10
OVERSTOCK_THRESHOLD = 100
NO_MOVEMENT_DAYS = 90
MAX_LIMIT = 100
SHORT_WINDOW_DAYS = 7
PROJECTION_HORIZON_DAYS = 7
SORT_FIELDS = ("quantity", "revenue")


@dataclass
class ReportFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[str] = None
    supplier_id: Optional[str] = None
    client_id: Optional[str] = None


@dataclass
class Window:
    start_date: date
    end_date: date

    @property
    def start(self) -> datetime:
        return datetime.combine(self.start_date, time.min)

    @property
    def end(self) -> datetime:
        return datetime.combine(self.end_date, time.max)

    @property
    def days(self) -> int:
        """Calendar days from start to end (0 for a single-day window)."""
        return (self.end_date - self.start_date).days

    def previous(self) -> "Window":
        """The immediately preceding window of equal inclusive length."""
        prev_end = self.start_date - timedelta(days=1)
        return Window(prev_end - timedelta(days=self.days), prev_end)

    def to_dict(self) -> Dict[str, str]:
        return {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()}


@dataclass
class _VariantSales:
    """Running totals for one variant in the top-products leaderboard."""
    product_name: str
    size: Optional[str]
    color: Optional[str]
    category: str
    quantity: int = 0
    revenue: float = 0.0
    transactions: int = 0

    def merge(self, other: "_VariantSales") -> "_VariantSales":
        self.quantity += other.quantity
        self.revenue += other.revenue
        self.transactions += other.transactions
        return self


@dataclass
class _CategoryValue:
    value: float = 0.0
    units: int = 0

    def merge(self, other: "_CategoryValue") -> "_CategoryValue":
        self.value += other.value
        self.units += other.units
        return self


@dataclass
class _ClientHistory:
    name: Optional[str]
    email: Optional[str]
    sales: List[SaleRecord] = field(default_factory=list)

    def merge(self, other: "_ClientHistory") -> "_ClientHistory":
        self.sales.extend(other.sales)
        return self


def _validate_limit(limit: int) -> None:
    if not 1 <= limit <= MAX_LIMIT:
        raise InvalidRequest(f"limit must be between 1 and {MAX_LIMIT}, got {limit}", field="limit")


def _days_since(now: datetime, then: Optional[datetime]) -> int:
    if then is None:
        return NEVER_SOLD_DAYS
    return (now - then).days


class AnalyticsService:
    """
    Tenant-scoped analytics over the read gateways.

    `current_date` pins "now" for deterministic tests.
    """

    def __init__(
        self,
        products: ProductReader,
        sales: SaleReader,
        inventory: InventoryReader,
        current_date: Optional[datetime] = None,
    ):
        self.products = products
        self.sales = sales
        self.inventory = inventory
        self.current_date = current_date

    def now(self) -> datetime:
        return self.current_date or datetime.utcnow()

    def _window(self, filters: Optional[ReportFilters], default_days: int) -> Window:
        filters = filters or ReportFilters()
        today = self.now().date()
        end_date = filters.end_date or today
        start_date = filters.start_date or (end_date - timedelta(days=default_days))
        if start_date > end_date:
            raise InvalidRequest("start_date must not be after end_date", field="start_date")
        return Window(start_date, end_date)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    async def get_sales_summary(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        window = self._window(filters, 30)
        previous = window.previous()

        current_sales, previous_sales = await asyncio.gather(
            self.sales.list_sales(tenant_id, start=window.start, end=window.end),
            self.sales.list_sales(tenant_id, start=previous.start, end=previous.end),
        )

        revenue = sum(s.total for s in current_sales)
        transactions = len(current_sales)
        ticket = revenue / transactions if transactions else 0.0

        prev_revenue = sum(s.total for s in previous_sales)
        prev_transactions = len(previous_sales)
        prev_ticket = prev_revenue / prev_transactions if prev_transactions else 0.0

        return {
            "period": window.to_dict(),
            "totals": {
                "revenue": round2(revenue),
                "transactions": transactions,
                "average_ticket": round2(ticket),
                "units_sold": sum(s.units for s in current_sales),
                "distinct_customers": len({s.client_id for s in current_sales}),
            },
            "previous_period": {
                "period": previous.to_dict(),
                "revenue": {
                    "value": round2(prev_revenue),
                    "change_pct": stats.percent_change(revenue, prev_revenue),
                },
                "transactions": {
                    "value": prev_transactions,
                    "change_pct": stats.percent_change(transactions, prev_transactions),
                },
                "average_ticket": {
                    "value": round2(prev_ticket),
                    "change_pct": stats.percent_change(ticket, prev_ticket),
                },
            },
        }

    async def get_top_products(
        self,
        tenant_id: str,
        filters: Optional[ReportFilters] = None,
        limit: int = 10,
        sort_by: str = "revenue",
    ) -> List[Dict[str, Any]]:
        _validate_limit(limit)
        if sort_by not in SORT_FIELDS:
            raise InvalidRequest(f"sort_by must be one of {', '.join(SORT_FIELDS)}", field="sort_by")
        window = self._window(filters, 30)

        sales = await self.sales.list_sales(tenant_id, start=window.start, end=window.end)

        board: KeyedAggregator[str, _VariantSales] = KeyedAggregator(merge=lambda a, b: a.merge(b))
        for sale in sales:
            for line in sale.lines:
                board.add(line.variant_id, _VariantSales(
                    product_name=line.product_name,
                    size=line.size,
                    color=line.color,
                    category=line.category,
                    quantity=line.quantity,
                    revenue=line.revenue,
                    transactions=1,
                ))

        ranked = board.top(limit, key=lambda v: getattr(v, sort_by))
        return [
            {
                "rank": position,
                "variant_id": variant_id,
                "product_name": row.product_name,
                "size": row.size,
                "color": row.color,
                "category": row.category,
                "quantity_sold": row.quantity,
                "revenue": round2(row.revenue),
                "average_price": round2(row.revenue / row.quantity) if row.quantity else 0.0,
                "transactions": row.transactions,
            }
            for position, (variant_id, row) in enumerate(ranked, start=1)
        ]

    async def get_customer_performance(
        self, tenant_id: str, filters: Optional[ReportFilters] = None
    ) -> List[Dict[str, Any]]:
        window = self._window(filters, 365)
        client_id = filters.client_id if filters else None
        sales = await self.sales.list_sales(tenant_id, start=window.start, end=window.end, client_id=client_id)

        histories: KeyedAggregator[str, _ClientHistory] = KeyedAggregator(merge=lambda a, b: a.merge(b))
        for sale in sales:
            histories.add(sale.client_id, _ClientHistory(sale.client_name, sale.client_email, [sale]))

        results = []
        for cid, history in histories.items():
            orders = len(history.sales)
            total = sum(s.total for s in history.sales)
            dates = [s.sold_at for s in history.sales]
            gaps = stats.intervals_in_days(dates)
            avg_interval = stats.mean(gaps) if gaps else None
            variants = {line.variant_id for s in history.sales for line in s.lines}
            results.append((total, {
                "client_id": cid,
                "name": history.name,
                "email": history.email,
                "total_spent": round2(total),
                "orders": orders,
                "average_days_between_purchases": round(avg_interval) if avg_interval is not None else 0,
                "average_order_value": round2(total / orders),
                "last_purchase": max(dates),
                "distinct_products": len(variants),
                "segment": stats.classify_customer(total, orders, avg_interval),
            }))

        results.sort(key=lambda pair: pair[0], reverse=True)
        return [row for _, row in results]

    async def get_sales_trends(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> List[Dict[str, Any]]:
        """One point per calendar day in the window, zero-filled."""
        window = self._window(filters, 30)
        sales = await self.sales.list_sales(tenant_id, start=window.start, end=window.end)
        return self._series(self._daily_totals(window, sales))

    @staticmethod
    def _daily_totals(window: Window, sales: List[SaleRecord]) -> pd.DataFrame:
        """Revenue ('sum') and transaction ('count') per day, zero-filled."""
        days = pd.date_range(window.start_date, window.end_date, freq="D")
        frame = pd.DataFrame(
            {"day": [s.sold_at.date() for s in sales], "total": [s.total for s in sales]},
            columns=["day", "total"],
        )
        frame["day"] = pd.to_datetime(frame["day"])
        frame["total"] = frame["total"].astype(float)
        return frame.groupby("day")["total"].agg(["sum", "count"]).reindex(days, fill_value=0)

    @staticmethod
    def _series(daily: pd.DataFrame) -> List[Dict[str, Any]]:
        series = []
        for day, row in daily.iterrows():
            revenue = float(row["sum"])
            transactions = int(row["count"])
            series.append({
                "date": day.date().isoformat(),
                "revenue": round2(revenue),
                "transactions": transactions,
                "average_ticket": round2(revenue / transactions) if transactions else 0.0,
                "weekday": day.day_name(),
                "month": day.month_name(),
                "year": day.year,
            })
        return series

    async def get_trend_analysis(self, tenant_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        """Least-squares trend over daily revenue with a 7-day projection."""
        window = self._window(filters, 30)
        sales = await self.sales.list_sales(tenant_id, start=window.start, end=window.end)
        daily = self._daily_totals(window, sales)
        series = self._series(daily)

        values = [float(v) for v in daily["sum"]]
        n = len(values)
        average = stats.mean(values)
        slope, intercept = stats.linear_regression(values)
        trend_pct = (slope * n / average * 100) if average else 0.0

        short_window = n < SHORT_WINDOW_DAYS
        if short_window:
            logger.info(f"Trend analysis for tenant {tenant_id} over {n} days; projection is low-confidence")

        return {
            "period": window.to_dict(),
            "trends": series,
            "analysis": {
                "average_daily_revenue": round2(average),
                "direction": stats.trend_direction(slope),
                "slope": round(slope, 4),
                "intercept": round(intercept, 4),
                "trend_pct": round2(trend_pct),
                "next_week_projection": round2(intercept + slope * (n + PROJECTION_HORIZON_DAYS)),
                "volatility": stats.classify_volatility(values),
                "days_above_average": sum(1 for v in values if v > average * 1.2),
                "days_below_average": sum(1 for v in values if v < average * 0.8),
                "short_window": short_window,
            },
        }

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    async def get_low_stock(
        self,
        tenant_id: str,
        threshold: int = LOW_STOCK_THRESHOLD,
        category_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if threshold < 0:
            raise InvalidRequest("threshold must not be negative", field="threshold")

        items, last_sales, last_receipts = await asyncio.gather(
            self.products.list_inventory(tenant_id, category_id=category_id, max_quantity=threshold),
            self.sales.last_sale_dates(tenant_id),
            self.inventory.last_receipt_dates(tenant_id),
        )

        now = self.now()
        rows = [
            {
                "variant_id": item.variant_id,
                "product_name": item.product_name,
                "size": item.size,
                "color": item.color,
                "category": item.category,
                "stock": item.quantity,
                "threshold": threshold,
                "days_since_last_sale": _days_since(now, last_sales.get(item.variant_id)),
                "last_sale": last_sales.get(item.variant_id),
                "last_receipt": last_receipts.get(item.variant_id),
            }
            for item in items
        ]
        rows.sort(key=lambda r: r["stock"])
        return rows

    async def get_inventory_movements(
        self, tenant_id: str, filters: Optional[ReportFilters] = None
    ) -> List[Dict[str, Any]]:
        """Stock entries (receipts) and exits (sales) in the window, newest first."""
        window = self._window(filters, 30)
        supplier_id = filters.supplier_id if filters else None

        receipts, sales = await asyncio.gather(
            self.inventory.list_receipts(tenant_id, start=window.start, end=window.end, supplier_id=supplier_id),
            self.sales.list_sales(tenant_id, start=window.start, end=window.end),
        )

        movements = []
        for receipt in receipts:
            for line in receipt.lines:
                movements.append({
                    "date": receipt.received_at,
                    "type": "entrada",
                    "quantity": line.quantity,
                    "reason": "Compra a proveedor",
                    "user": receipt.operator_name,
                    "supplier": receipt.supplier_name,
                    "client": None,
                    "product_name": line.product_name,
                    "size": line.size,
                    "color": line.color,
                    "price": round2(line.unit_cost),
                })
        for sale in sales:
            for line in sale.lines:
                movements.append({
                    "date": sale.sold_at,
                    "type": "salida",
                    "quantity": line.quantity,
                    "reason": "Venta a cliente",
                    "user": sale.operator_name or "Autoservicio",
                    "supplier": None,
                    "client": sale.client_name,
                    "product_name": line.product_name,
                    "size": line.size,
                    "color": line.color,
                    "price": round2(line.unit_price),
                })

        movements.sort(key=lambda m: m["date"], reverse=True)
        return movements

    async def get_inventory_rotation(
        self,
        tenant_id: str,
        filters: Optional[ReportFilters] = None,
        rotation_type: str = "todas",
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        _validate_limit(limit)
        if rotation_type not in stats.ROTATION_FILTERS:
            raise InvalidRequest(
                f"rotation_type must be one of {', '.join(stats.ROTATION_FILTERS)}", field="rotation_type"
            )
        window = self._window(filters, 365)
        category_id = filters.category_id if filters else None

        items, sales = await asyncio.gather(
            self.products.list_inventory(tenant_id, category_id=category_id),
            self.sales.list_sales(tenant_id, start=window.start, end=window.end),
        )

        sold = KeyedAggregator(merge=lambda a, b: a + b)
        for sale in sales:
            for line in sale.lines:
                sold.add(line.variant_id, line.quantity)

        window_days = max(window.days, 1)
        wanted = stats.ROTATION_FILTERS[rotation_type]
        rows: List[Tuple[float, Dict[str, Any]]] = []
        for item in items:
            units = sold.get(item.variant_id, 0)
            rotation = stats.annual_rotation(units, item.quantity, window_days)
            classification = stats.classify_rotation(rotation)
            if wanted and classification != wanted:
                continue
            rows.append((rotation, {
                "variant_id": item.variant_id,
                "product_name": item.product_name,
                "size": item.size,
                "color": item.color,
                "category": item.category,
                "stock": item.quantity,
                "units_sold": units,
                "rotation": round2(rotation),
                "days_of_inventory": round(stats.days_of_inventory(rotation)),
                "classification": classification,
                "inventory_value": round2(item.quantity * item.price),
            }))

        rows.sort(key=lambda pair: pair[0], reverse=True)
        return [row for _, row in rows[:limit]]

    async def get_inventory_valuation(self, tenant_id: str) -> Dict[str, Any]:
        items, last_sales = await asyncio.gather(
            self.products.list_inventory(tenant_id),
            self.sales.last_sale_dates(tenant_id),
        )

        total_value = sum(i.quantity * i.price for i in items)
        total_units = sum(i.quantity for i in items)

        by_category: KeyedAggregator[str, _CategoryValue] = KeyedAggregator(merge=lambda a, b: a.merge(b))
        for item in items:
            by_category.add(item.category, _CategoryValue(item.quantity * item.price, item.quantity))

        cutoff = self.now() - timedelta(days=NO_MOVEMENT_DAYS)
        no_movement = sum(
            1 for i in items
            if last_sales.get(i.variant_id) is None or last_sales[i.variant_id] < cutoff
        )

        return {
            "summary": {
                "total_value": round2(total_value),
                "total_units": total_units,
                "variant_count": len(items),
                "average_unit_value": round2(total_value / total_units) if total_units else 0.0,
            },
            "by_category": [
                {
                    "category": name,
                    "value": round2(entry.value),
                    "share_pct": round2(entry.value / total_value * 100) if total_value else 0.0,
                    "units": entry.units,
                }
                for name, entry in by_category.top(len(by_category), key=lambda e: e.value)
            ],
            "alerts": {
                "low_stock": sum(1 for i in items if i.quantity <= LOW_STOCK_THRESHOLD),
                "no_movement": no_movement,
                "overstocked": sum(1 for i in items if i.quantity > OVERSTOCK_THRESHOLD),
            },
        }

    # ------------------------------------------------------------------
    # Suppliers
    # ------------------------------------------------------------------

    async def get_supplier_performance(
        self, tenant_id: str, filters: Optional[ReportFilters] = None
    ) -> List[Dict[str, Any]]:
        window = self._window(filters, 365)
        supplier_id = filters.supplier_id if filters else None

        suppliers, receipts = await asyncio.gather(
            self.inventory.list_suppliers(tenant_id),
            self.inventory.list_receipts(tenant_id, start=window.start, end=window.end, supplier_id=supplier_id),
        )

        grouped = KeyedAggregator(merge=lambda a, b: a + b)
        for receipt in receipts:
            if receipt.supplier_id:
                grouped.add(receipt.supplier_id, [receipt])

        results = []
        for supplier in suppliers:
            history = grouped.get(supplier.id)
            if not history:
                continue
            orders = len(history)
            total = sum(r.total_amount for r in history)
            gaps = stats.intervals_in_days([r.received_at for r in history])
            variants = {line.variant_id for r in history for line in r.lines}
            results.append((total, {
                "supplier_id": supplier.id,
                "name": supplier.name,
                "contact": supplier.email or supplier.phone or "No disponible",
                "total_purchased": round2(total),
                "orders": orders,
                "average_cost": round2(total / orders),
                "average_days_between_receipts": round(stats.mean(gaps)) if gaps else 0,
                "distinct_products": len(variants),
                "last_receipt": max(r.received_at for r in history),
                "rating": stats.classify_supplier(total, orders),
            }))

        results.sort(key=lambda pair: pair[0], reverse=True)
        return [row for _, row in results]

    async def get_replenishment_times(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Delivery cadence and its consistency per supplier with 2+ receipts."""
        suppliers, receipts = await asyncio.gather(
            self.inventory.list_suppliers(tenant_id),
            self.inventory.list_receipts(tenant_id),
        )

        grouped = KeyedAggregator(merge=lambda a, b: a + b)
        for receipt in receipts:
            if receipt.supplier_id:
                grouped.add(receipt.supplier_id, [receipt])

        results = []
        for supplier in suppliers:
            history = sorted(grouped.get(supplier.id) or [], key=lambda r: r.received_at)
            if len(history) < 2:
                continue
            gaps = stats.intervals_in_days([r.received_at for r in history])
            average = stats.mean(gaps)
            deviation = stats.population_std(gaps)
            cv = deviation / average if average > 0 else None
            results.append((average, {
                "supplier_id": supplier.id,
                "name": supplier.name,
                "average_days": round2(average),
                "std_dev_days": round2(deviation),
                "orders": len(history),
                "deliveries": [
                    {"date": later.received_at, "interval_days": round2(gap), "lines": len(later.lines)}
                    for later, gap in zip(history[1:], gaps)
                ],
                "consistency": stats.classify_consistency(cv),
            }))

        results.sort(key=lambda pair: pair[0])
        return [row for _, row in results]
