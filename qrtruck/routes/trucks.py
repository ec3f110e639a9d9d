"""
Truck Endpoints

    - GET/POST /api/trucks: Browse and register trucks
    - GET/PATCH/DELETE /api/trucks/{id}: Storefront and owner edits
    - GET /api/trucks/check/{id}: Existence check
    - PATCH /api/trucks/{id}/status: Open, pause or close the shop
    - GET /api/trucks/{id}/qr.png: Printable QR code
    - GET /api/trucks/{id}/tax-audit: Merchant tax report
    - POST /api/trucks/{id}/tax-audit/export: Queue an Excel export
    - GET /api/trucks/{id}/stats: Live dashboard counters
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.security import get_current_user, get_owned_truck
from qrtruck.database import get_db
from qrtruck.models import FoodTruck, MenuItem, Order, User, UserRole
from qrtruck.schemas import (
    ErrorResponse,
    MenuItemResponse,
    ShopStatusUpdate,
    TruckCreate,
    TruckDetailResponse,
    TruckListItem,
    TruckResponse,
    TruckUpdate,
)
from qrtruck.services.pricing import get_tax_rate
from qrtruck.services.qr import decode_data_url, generate_truck_qr_data_url
from qrtruck.services.reports import build_tax_audit, build_truck_stats
from qrtruck.tasks import export_tax_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trucks", tags=["Trucks"])


async def _get_active_truck(db: AsyncSession, truck_id: str) -> FoodTruck:
    truck = await db.get(FoodTruck, truck_id)
    if truck is None or not truck.is_active:
        raise HTTPException(status_code=404, detail="Food truck not found")
    return truck


async def _ensure_qr_code(db: AsyncSession, truck: FoodTruck) -> FoodTruck:
    """Generate and store the QR code the first time it is needed."""
    if not truck.qr_code_url:
        truck.qr_code_url = generate_truck_qr_data_url(truck.id)
        await db.commit()
        await db.refresh(truck)
        logger.info(f"QR code generated for truck {truck.id}")
    return truck


@router.get("", response_model=list[TruckListItem], summary="List active trucks")
async def list_trucks(db: AsyncSession = Depends(get_db)) -> list[TruckListItem]:
    menu_counts = (
        select(MenuItem.truck_id, func.count(MenuItem.id).label("n"))
        .group_by(MenuItem.truck_id)
        .subquery()
    )
    order_counts = (
        select(Order.truck_id, func.count(Order.id).label("n"))
        .group_by(Order.truck_id)
        .subquery()
    )
    result = await db.execute(
        select(
            FoodTruck,
            func.coalesce(menu_counts.c.n, 0),
            func.coalesce(order_counts.c.n, 0),
        )
        .outerjoin(menu_counts, menu_counts.c.truck_id == FoodTruck.id)
        .outerjoin(order_counts, order_counts.c.truck_id == FoodTruck.id)
        .where(FoodTruck.is_active.is_(True))
        .order_by(FoodTruck.created_at.desc())
    )

    trucks = []
    for truck, menu_item_count, order_count in result.all():
        item = TruckListItem.model_validate(truck)
        item.menu_item_count = menu_item_count
        item.order_count = order_count
        trucks.append(item)
    return trucks


@router.post(
    "",
    response_model=TruckResponse,
    status_code=201,
    responses={403: {"model": ErrorResponse}},
    summary="Register a truck",
)
async def create_truck(
    data: TruckCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TruckResponse:
    if user.role not in (UserRole.TRUCK_OWNER, UserRole.ADMIN):
        raise HTTPException(status_code=403, detail="Only truck owners can register trucks")

    truck = FoodTruck(
        owner_id=user.id,
        name=data.name,
        description=data.description,
        address=data.address,
        province=data.province,
        tax_rate=float(get_tax_rate(data.province)),
        logo_url=data.logo_url,
        banner_url=data.banner_url,
    )
    db.add(truck)
    await db.commit()
    await db.refresh(truck)
    await _ensure_qr_code(db, truck)

    logger.info(f"Truck registered: {truck.name} ({truck.id}) by {user.email}")
    return TruckResponse.model_validate(truck)


@router.get("/check/{truck_id}", summary="Check a truck exists")
async def check_truck(
    truck_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await db.get(FoodTruck, truck_id)
    if truck is None:
        return JSONResponse(status_code=404, content={"exists": False, "message": "Food truck not found"})
    return {"exists": True, "id": truck.id, "name": truck.name, "is_active": truck.is_active}


@router.get(
    "/{truck_id}",
    response_model=TruckDetailResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Truck storefront",
)
async def get_truck(
    truck_id: str,
    db: AsyncSession = Depends(get_db),
) -> TruckDetailResponse:
    """Truck with its available menu, in display order."""
    truck = await _ensure_qr_code(db, await _get_active_truck(db, truck_id))

    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.truck_id == truck.id, MenuItem.is_available.is_(True))
        .order_by(MenuItem.sort_order, MenuItem.created_at)
    )
    detail = TruckDetailResponse.model_validate(truck)
    detail.menu_items = [MenuItemResponse.model_validate(m) for m in result.scalars().all()]
    return detail


@router.patch("/{truck_id}", response_model=TruckResponse)
async def update_truck(
    truck_id: str,
    data: TruckUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TruckResponse:
    truck = await get_owned_truck(db, truck_id, user)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in ("name", "address", "province"):
            continue
        setattr(truck, field, value)
    if changes.get("province") is not None:
        truck.tax_rate = float(get_tax_rate(truck.province))

    await db.commit()
    await db.refresh(truck)
    logger.info(f"Truck {truck.id} updated: {sorted(changes)}")
    return TruckResponse.model_validate(truck)


@router.delete("/{truck_id}")
async def deactivate_truck(
    truck_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await get_owned_truck(db, truck_id, user)
    truck.is_active = False
    await db.commit()
    logger.info(f"Truck {truck.id} deactivated by {user.email}")
    return {"success": True, "message": "Food truck deactivated"}


@router.patch("/{truck_id}/status", response_model=TruckResponse)
async def update_shop_status(
    truck_id: str,
    data: ShopStatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TruckResponse:
    truck = await db.get(FoodTruck, truck_id)
    if truck is None:
        raise HTTPException(status_code=404, detail="Food truck not found")
    if truck.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Not the owner of this food truck")

    truck.shop_status = data.shop_status
    await db.commit()
    await db.refresh(truck)
    logger.info(f"Truck {truck.id} is now {truck.shop_status.value}")
    return TruckResponse.model_validate(truck)


@router.get(
    "/{truck_id}/qr.png",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
async def get_truck_qr(
    truck_id: str,
    db: AsyncSession = Depends(get_db),
) -> Response:
    truck = await _ensure_qr_code(db, await _get_active_truck(db, truck_id))
    return Response(content=decode_data_url(truck.qr_code_url), media_type="image/png")


@router.get("/{truck_id}/tax-audit", summary="Tax audit report")
async def get_tax_audit(
    truck_id: str,
    period: str = Query("month"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await get_owned_truck(db, truck_id, user)
    try:
        return await build_tax_audit(db, truck, period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{truck_id}/tax-audit/export", status_code=202, summary="Export tax audit to Excel")
async def export_tax_audit(
    truck_id: str,
    period: str = Query("month"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await get_owned_truck(db, truck_id, user)
    try:
        audit = await build_tax_audit(db, truck, period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        task = export_tax_report.delay(audit)
    except Exception as e:
        logger.exception(f"Could not queue tax export for truck {truck.id}: {e}")
        raise HTTPException(status_code=503, detail="Export queue unavailable")

    logger.info(f"Tax export queued for truck {truck.id} ({period}) - task {task.id}")
    return {"success": True, "task_id": task.id, "period": period}


@router.get("/{truck_id}/stats", summary="Live dashboard counters")
async def get_truck_stats(
    truck_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    truck = await get_owned_truck(db, truck_id, user)
    return await build_truck_stats(db, truck.id)
