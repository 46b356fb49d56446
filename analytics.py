"""
Campaign and product performance rollups for the admin dashboard.

ROI is a percentage and is defined as 0 for campaigns without cost.
``performance`` (revenue minus campaign spend) and ``profit`` (revenue minus
cost of goods) are separate metrics and are reported side by side.
"""
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from schemas import OrderStatus

NON_SALE_STATUSES = frozenset({OrderStatus.cancelled, OrderStatus.refunded})

ROLLUP_SORT_KEYS = {
    "profit": "profit",
    "revenue": "revenue",
    "margin": "profit_margin",
    "performance": "performance",
    "units": "units_sold",
    "cost": "total_cost",
}


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _counts_as_sale(order: Any) -> bool:
    return OrderStatus(_get(order, "status", OrderStatus.pending)) not in NON_SALE_STATUSES


# ---------- Campaign metrics ----------

@dataclass
class CampaignMetrics:
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0


def aggregate_campaign(campaign: Any) -> CampaignMetrics:
    metrics = CampaignMetrics()
    for row in _get(campaign, "campaign_products", []):
        metrics.impressions += int(_get(row, "impressions", 0))
        metrics.clicks += int(_get(row, "clicks", 0))
        metrics.conversions += int(_get(row, "conversions", 0))
        metrics.revenue += float(_get(row, "revenue", 0))
    return metrics


def roi(cost: float, revenue: float) -> float:
    cost = float(cost or 0)
    if cost <= 0:
        return 0.0
    return (float(revenue or 0) - cost) / cost * 100


def performance(revenue: float, campaign_spend: float) -> float:
    return float(revenue or 0) - float(campaign_spend or 0)


def profit(revenue: float, cost_of_goods: float) -> float:
    return float(revenue or 0) - float(cost_of_goods or 0)


def allocate_campaign_cost(campaigns: Iterable[Any]) -> Dict[str, float]:
    """Campaign spend per product id; each cost is split evenly over its linked products."""
    spend: Dict[str, float] = defaultdict(float)
    for campaign in campaigns:
        rows = _get(campaign, "campaign_products", [])
        if not rows:
            continue
        share = float(_get(campaign, "cost", 0)) / len(rows)
        for row in rows:
            spend[str(_get(row, "product_id"))] += share
    return dict(spend)


def campaign_status(campaign: Any, now: Optional[datetime] = None) -> str:
    if not _get(campaign, "is_active", False):
        return "inactive"
    end_date = _as_datetime(_get(campaign, "end_date"))
    now = _as_datetime(now) or _as_datetime(datetime.now(timezone.utc))
    if end_date is not None and end_date < now:
        return "completed"
    return "active"


@dataclass
class CampaignSummary:
    total_spend: float = 0.0
    active_campaigns: int = 0
    total_revenue: float = 0.0
    overall_roi: float = 0.0


def summarize_campaigns(campaigns: Iterable[Any]) -> CampaignSummary:
    summary = CampaignSummary()
    for campaign in campaigns:
        summary.total_spend += float(_get(campaign, "cost", 0))
        summary.total_revenue += aggregate_campaign(campaign).revenue
        if _get(campaign, "is_active", False):
            summary.active_campaigns += 1
    summary.overall_roi = roi(summary.total_spend, summary.total_revenue)
    return summary


# ---------- Product rollups ----------

@dataclass
class ProductRollup:
    product_id: str
    name: str
    category_id: Optional[str] = None
    units_sold: int = 0
    revenue: float = 0.0
    total_cost: float = 0.0
    profit: float = 0.0
    profit_margin: float = 0.0
    campaign_spend: float = 0.0
    performance: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def product_rollups(products: Iterable[Any], orders: Iterable[Any], campaigns: Iterable[Any] = ()) -> List[ProductRollup]:
    rows: Dict[str, ProductRollup] = {}
    unit_costs: Dict[str, float] = {}
    for product in products:
        product_id = str(_get(product, "id"))
        unit_costs[product_id] = float(_get(product, "cost", 0))
        rows[product_id] = ProductRollup(
            product_id=product_id,
            name=_get(product, "name", "Unnamed Product"),
            category_id=_get(product, "category_id"),
        )

    for order in orders:
        if not _counts_as_sale(order):
            continue
        for item in _get(order, "items", []):
            row = rows.get(str(_get(item, "product_id")))
            if row is None:
                continue
            quantity = int(_get(item, "quantity", 0))
            row.units_sold += quantity
            row.revenue += float(_get(item, "unit_price", 0)) * quantity
            row.total_cost += unit_costs[row.product_id] * quantity

    spend = allocate_campaign_cost(campaigns)
    for row in rows.values():
        row.campaign_spend = spend.get(row.product_id, 0.0)
        row.profit = profit(row.revenue, row.total_cost)
        row.profit_margin = round(row.profit / row.revenue * 100, 2) if row.revenue > 0 else 0.0
        row.performance = performance(row.revenue, row.campaign_spend)
    return list(rows.values())


def sort_rollups(rows: List[ProductRollup], sort_by: str = "profit", sort_order: str = "desc",
                 limit: Optional[int] = 50, category_id: Optional[str] = None) -> List[ProductRollup]:
    attr = ROLLUP_SORT_KEYS.get(sort_by, "profit")
    if category_id:
        rows = [r for r in rows if r.category_id == category_id]
    ordered = sorted(rows, key=lambda r: getattr(r, attr), reverse=sort_order != "asc")
    return ordered[:limit] if limit else ordered


# ---------- Dashboard ----------

@dataclass
class DashboardStats:
    revenue: float = 0.0
    orders_count: int = 0
    campaign_spend: float = 0.0
    delivery_fees: float = 0.0
    net_profit: float = 0.0

    def to_dict(self) -> dict:
        return {k: round(v, 2) if isinstance(v, float) else v for k, v in asdict(self).items()}


def _in_range(moment: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if moment is None:
        return start is None and end is None
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def _campaign_overlaps(campaign: Any, start: Optional[datetime], end: Optional[datetime]) -> bool:
    campaign_start = _as_datetime(_get(campaign, "start_date"))
    campaign_end = _as_datetime(_get(campaign, "end_date"))
    if end is not None and campaign_start is not None and campaign_start > end:
        return False
    if start is not None and campaign_end is not None and campaign_end < start:
        return False
    return True


def dashboard_stats(orders: Iterable[Any], products: Iterable[Any], campaigns: Iterable[Any],
                    from_date: Any = None, to_date: Any = None) -> DashboardStats:
    """Headline numbers for the dashboard over an optional date range."""
    start, end = _as_datetime(from_date), _as_datetime(to_date)
    if end is not None and end.time() == datetime.min.time():
        # a bare date covers the whole day
        end += timedelta(days=1, microseconds=-1)
    unit_costs = {str(_get(p, "id")): float(_get(p, "cost", 0)) for p in products}
    stats = DashboardStats()
    cost_of_goods = 0.0

    for order in orders:
        if not _counts_as_sale(order) or not _in_range(_as_datetime(_get(order, "created_at")), start, end):
            continue
        stats.orders_count += 1
        stats.revenue += float(_get(order, "subtotal", 0)) - float(_get(order, "discount_amount", 0))
        stats.delivery_fees += float(_get(order, "delivery_fee", 0))
        for item in _get(order, "items", []):
            cost_of_goods += unit_costs.get(str(_get(item, "product_id")), 0.0) * int(_get(item, "quantity", 0))

    stats.campaign_spend = sum(
        float(_get(c, "cost", 0)) for c in campaigns if _campaign_overlaps(c, start, end)
    )
    stats.net_profit = profit(stats.revenue, cost_of_goods) - stats.campaign_spend
    return stats


def sales_over_time(orders: Iterable[Any], days: int = 30, today: Optional[date] = None) -> List[dict]:
    """Daily revenue and order counts for the last ``days`` days, oldest first."""
    today = today or datetime.now(timezone.utc).date()
    first_day = today - timedelta(days=max(1, days) - 1)
    buckets = {first_day + timedelta(days=i): {"revenue": 0.0, "orders": 0} for i in range(max(1, days))}
    for order in orders:
        created = _as_datetime(_get(order, "created_at"))
        if created is None or not _counts_as_sale(order):
            continue
        bucket = buckets.get(created.date())
        if bucket is None:
            continue
        bucket["orders"] += 1
        bucket["revenue"] += float(_get(order, "subtotal", 0)) - float(_get(order, "discount_amount", 0))
    return [
        {"date": day.isoformat(), "revenue": round(b["revenue"], 2), "orders": b["orders"]}
        for day, b in sorted(buckets.items())
    ]


def total_stock_value(products: Iterable[Any]) -> float:
    """Inventory valued at cost."""
    return round(sum(float(_get(p, "cost", 0)) * int(_get(p, "stock_quantity", 0)) for p in products), 2)
