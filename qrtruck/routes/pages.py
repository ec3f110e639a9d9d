"""
Server-rendered customer pages

    - GET /t/{truck_id}: Menu page the truck's QR code points to
    - GET /order/{order_id}: Order tracking page with the pickup code
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.database import get_db
from qrtruck.models import FoodTruck, MenuItem, Order, ShopStatus
from qrtruck.services.pricing import get_tax_label

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

router = APIRouter(tags=["Pages"])


@router.get("/t/{truck_id}", response_class=HTMLResponse)
async def truck_menu_page(
    request: Request,
    truck_id: str,
    db: AsyncSession = Depends(get_db),
) -> HTMLResponse:
    truck = await db.get(FoodTruck, truck_id)
    if truck is None or not truck.is_active:
        return templates.TemplateResponse(
            request, "not_found.html", {"message": "This food truck could not be found."}, status_code=404
        )

    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.truck_id == truck.id, MenuItem.is_available.is_(True))
        .order_by(MenuItem.sort_order, MenuItem.created_at)
    )
    categories: dict[str, list[MenuItem]] = {}
    for item in result.scalars().all():
        categories.setdefault(item.category, []).append(item)

    return templates.TemplateResponse(
        request,
        "truck_menu.html",
        {
            "truck": truck,
            "categories": categories,
            "is_open": truck.shop_status == ShopStatus.OPEN,
            "tax_label": get_tax_label(truck.province),
        },
    )


@router.get("/order/{order_id}", response_class=HTMLResponse)
async def order_page(
    request: Request,
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> HTMLResponse:
    order = await db.get(Order, order_id)
    if order is None:
        return templates.TemplateResponse(
            request, "not_found.html", {"message": "This order could not be found."}, status_code=404
        )

    truck = await db.get(FoodTruck, order.truck_id)
    return templates.TemplateResponse(
        request,
        "order.html",
        {
            "order": order,
            "truck": truck,
            "tax_label": get_tax_label(truck.province) if truck else "Tax",
        },
    )
