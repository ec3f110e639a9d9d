"""
Reporting

Aggregates behind the merchant tax-audit page, the merchant live dashboard
and the platform admin dashboard.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.models import FoodTruck, Order, OrderStatus
from qrtruck.services.pricing import get_tax_label, round2

logger = logging.getLogger(__name__)

AUDIT_PERIODS = ("today", "week", "month", "quarter", "year", "all")
ACTIVE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    # Clamp to the 28th so every month has the day
    return moment.replace(year=year, month=month + 1, day=min(moment.day, 28))


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    First instant of an audit period, or None for ``all``.

    Raises:
        ValueError: unknown period name
    """
    if period not in AUDIT_PERIODS:
        raise ValueError(f"Invalid period. Options: {list(AUDIT_PERIODS)}")

    now = now or datetime.now(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "today":
        return midnight
    if period == "week":
        return midnight - timedelta(days=7)
    if period == "month":
        return _months_back(midnight, 1)
    if period == "quarter":
        return _months_back(midnight, 3)
    if period == "year":
        return _months_back(midnight, 12)
    return None


def _money(value: float) -> float:
    return float(round2(value))


def summarize_orders(orders: list[Order]) -> dict[str, Any]:
    """Compute tax-audit statistics for a list of paid orders."""
    total_revenue = sum(o.subtotal for o in orders)
    total_tax = sum(o.tax for o in orders)
    total_fees = sum(o.platform_fee for o in orders)
    total_collected = sum(o.total for o in orders)

    daily: dict[str, dict[str, Any]] = {}
    hourly: dict[int, dict[str, Any]] = {}
    statuses: dict[str, int] = defaultdict(int)
    item_sales: dict[str, dict[str, Any]] = {}

    for order in orders:
        created = _as_utc(order.created_at)

        day = daily.setdefault(
            created.date().isoformat(),
            {"date": created.date().isoformat(), "revenue": 0.0, "tax": 0.0, "orders": 0},
        )
        day["revenue"] += order.subtotal
        day["tax"] += order.tax
        day["orders"] += 1

        hour = hourly.setdefault(created.hour, {"hour": created.hour, "orders": 0, "revenue": 0.0})
        hour["orders"] += 1
        hour["revenue"] += order.subtotal

        statuses[order.status.value] += 1

        for item in order.items or []:
            sales = item_sales.setdefault(
                item["name"], {"name": item["name"], "quantity": 0, "revenue": 0.0}
            )
            sales["quantity"] += item["quantity"]
            sales["revenue"] += item["price"] * item["quantity"]

    for bucket in list(daily.values()) + list(hourly.values()) + list(item_sales.values()):
        bucket["revenue"] = _money(bucket["revenue"])
        if "tax" in bucket:
            bucket["tax"] = _money(bucket["tax"])

    return {
        "total_revenue": _money(total_revenue),
        "total_tax_collected": _money(total_tax),
        "total_platform_fees": _money(total_fees),
        "total_collected": _money(total_collected),
        "net_revenue": _money(total_revenue - total_fees),
        "order_count": len(orders),
        "average_order_value": _money(total_revenue / len(orders)) if orders else 0.0,
        "status_breakdown": dict(statuses),
        "daily_breakdown": sorted(daily.values(), key=lambda d: d["date"]),
        "best_selling_items": sorted(
            item_sales.values(), key=lambda i: i["revenue"], reverse=True
        )[:10],
        "peak_hours": sorted(hourly.values(), key=lambda h: h["orders"], reverse=True)[:5],
    }


async def get_paid_orders(
    db: AsyncSession,
    truck_id: str,
    start: Optional[datetime] = None,
) -> list[Order]:
    query = (
        select(Order)
        .where(
            Order.truck_id == truck_id,
            Order.stripe_status == "succeeded",
            Order.stripe_payment_id.is_not(None),
        )
        .order_by(Order.created_at.desc())
    )
    if start is not None:
        query = query.where(Order.created_at >= start)

    result = await db.execute(query)
    return list(result.scalars().all())


async def build_tax_audit(db: AsyncSession, truck: FoodTruck, period: str = "month") -> dict[str, Any]:
    """Tax audit for one truck over a named period."""
    now = datetime.now(timezone.utc)
    start = period_start(period, now)
    orders = await get_paid_orders(db, truck.id, start)

    logger.info(f"Tax audit for truck {truck.id}: {len(orders)} orders ({period})")

    return {
        "truck_id": truck.id,
        "truck_name": truck.name,
        "province": truck.province.value,
        "tax_label": get_tax_label(truck.province),
        "tax_rate": truck.tax_rate,
        "period": period,
        "start_date": start.isoformat() if start else None,
        "end_date": now.isoformat(),
        "stats": summarize_orders(orders),
        "orders": [
            {
                "order_number": o.order_number,
                "created_at": _as_utc(o.created_at).isoformat(),
                "status": o.status.value,
                "subtotal": o.subtotal,
                "tax": o.tax,
                "platform_fee": o.platform_fee,
                "total": o.total,
                "stripe_payment_id": o.stripe_payment_id,
            }
            for o in orders
        ],
    }


async def build_truck_stats(db: AsyncSession, truck_id: str) -> dict[str, Any]:
    """Live counters for the merchant dashboard."""
    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    today_result = await db.execute(
        select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0.0)).where(
            Order.truck_id == truck_id,
            Order.created_at >= today_start,
            Order.status != OrderStatus.CANCELLED,
        )
    )
    today_orders, today_revenue = today_result.one()

    active_result = await db.execute(
        select(func.count(Order.id)).where(
            Order.truck_id == truck_id,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        )
    )
    total_result = await db.execute(
        select(func.count(Order.id)).where(Order.truck_id == truck_id)
    )

    return {
        "today_orders": today_orders or 0,
        "today_revenue": _money(today_revenue or 0),
        "active_orders": active_result.scalar() or 0,
        "total_orders": total_result.scalar() or 0,
    }


async def build_admin_stats(db: AsyncSession) -> dict[str, Any]:
    """Platform-wide totals for the admin dashboard."""
    trucks_result = await db.execute(
        select(func.count(FoodTruck.id)).where(FoodTruck.is_active.is_(True))
    )
    totals_result = await db.execute(
        select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.platform_fee), 0.0),
            func.coalesce(func.sum(Order.total), 0.0),
            func.coalesce(func.sum(Order.tax), 0.0),
        )
    )
    order_count, platform_revenue, volume, tax_collected = totals_result.one()

    province_result = await db.execute(
        select(
            FoodTruck.province,
            func.count(Order.id),
            func.coalesce(func.sum(Order.subtotal), 0.0),
            func.coalesce(func.sum(Order.tax), 0.0),
        )
        .join(FoodTruck, FoodTruck.id == Order.truck_id)
        .group_by(FoodTruck.province)
    )
    by_province = [
        {
            "province": province.value,
            "tax_label": get_tax_label(province),
            "orders": count,
            "revenue": _money(revenue),
            "tax": _money(tax),
        }
        for province, count, revenue, tax in province_result.all()
    ]

    recent_trucks_result = await db.execute(
        select(FoodTruck).order_by(FoodTruck.created_at.desc()).limit(5)
    )
    recent_orders_result = await db.execute(
        select(Order).order_by(Order.created_at.desc()).limit(10)
    )

    return {
        "total_trucks": trucks_result.scalar() or 0,
        "total_orders": order_count or 0,
        "platform_revenue": _money(platform_revenue or 0),
        "total_volume": _money(volume or 0),
        "tax_collected": _money(tax_collected or 0),
        "by_province": sorted(by_province, key=lambda p: p["province"]),
        "recent_trucks": [
            {
                "id": t.id,
                "name": t.name,
                "province": t.province.value,
                "shop_status": t.shop_status.value,
                "is_active": t.is_active,
                "created_at": _as_utc(t.created_at).isoformat(),
            }
            for t in recent_trucks_result.scalars().all()
        ],
        "recent_orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "truck_id": o.truck_id,
                "total": o.total,
                "status": o.status.value,
                "created_at": _as_utc(o.created_at).isoformat(),
            }
            for o in recent_orders_result.scalars().all()
        ],
    }
