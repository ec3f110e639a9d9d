"""
Admin Endpoints

    - GET /api/admin/stats: Platform totals
    - DELETE /api/admin/trucks/{id}: Remove a truck and its data
    - POST /api/admin/trucks/{id}/soft-delete: Clear a truck's order history
    - DELETE /api/merchants/{id}: Remove a merchant and all their trucks
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.security import require_admin
from qrtruck.database import get_db
from qrtruck.models import FoodTruck, MenuItem, Order, PickupEvent, User, UserRole
from qrtruck.services.reports import build_admin_stats

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


async def _purge_orders(db: AsyncSession, truck_ids: list[str]) -> int:
    """Delete orders and their pickup events. Returns orders deleted."""
    if not truck_ids:
        return 0
    order_ids = select(Order.id).where(Order.truck_id.in_(truck_ids))
    await db.execute(delete(PickupEvent).where(PickupEvent.order_id.in_(order_ids)))
    result = await db.execute(delete(Order).where(Order.truck_id.in_(truck_ids)))
    return result.rowcount or 0


async def _purge_trucks(db: AsyncSession, truck_ids: list[str]) -> int:
    orders = await _purge_orders(db, truck_ids)
    await db.execute(delete(MenuItem).where(MenuItem.truck_id.in_(truck_ids)))
    await db.execute(delete(FoodTruck).where(FoodTruck.id.in_(truck_ids)))
    return orders


@router.get("/api/admin/stats", summary="Platform statistics")
async def admin_stats(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await build_admin_stats(db)


@router.delete("/api/admin/trucks/{truck_id}", summary="Delete a truck")
async def delete_truck(
    truck_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await db.get(FoodTruck, truck_id)
    if truck is None:
        raise HTTPException(status_code=404, detail="Food truck not found")

    orders_deleted = await _purge_trucks(db, [truck_id])
    await db.commit()

    logger.warning(f"Admin {admin.email} deleted truck {truck_id} ({orders_deleted} orders)")
    return {"success": True, "message": "Food truck deleted", "orders_deleted": orders_deleted}


@router.post("/api/admin/trucks/{truck_id}/soft-delete", summary="Clear a truck's order history")
async def soft_delete_truck(
    truck_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Remove all orders of a truck while keeping the truck and its menu."""
    truck = await db.get(FoodTruck, truck_id)
    if truck is None:
        raise HTTPException(status_code=404, detail="Food truck not found")

    orders_deleted = await _purge_orders(db, [truck_id])
    await db.commit()

    logger.warning(f"Admin {admin.email} cleared {orders_deleted} orders of truck {truck_id}")
    return {"success": True, "message": "Order history cleared", "orders_deleted": orders_deleted}


@router.delete("/api/merchants/{user_id}", summary="Delete a merchant")
async def delete_merchant(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    merchant = await db.get(User, user_id)
    if merchant is None:
        raise HTTPException(status_code=404, detail="Merchant not found")
    if merchant.role == UserRole.ADMIN:
        raise HTTPException(status_code=400, detail="Cannot delete an admin account")

    result = await db.execute(select(FoodTruck.id).where(FoodTruck.owner_id == user_id))
    truck_ids = list(result.scalars().all())
    orders_deleted = await _purge_trucks(db, truck_ids)
    await db.delete(merchant)
    await db.commit()

    logger.warning(
        f"Admin {admin.email} deleted merchant {merchant.email} "
        f"({len(truck_ids)} trucks, {orders_deleted} orders)"
    )
    return {
        "success": True,
        "message": "Merchant deleted",
        "trucks_deleted": len(truck_ids),
        "orders_deleted": orders_deleted,
    }
