"""
Menu Endpoints

    - GET /api/menu?truck_id=: All items of a truck
    - POST /api/menu: Create one item, or a batch with ``items``
    - PUT/DELETE /api/menu/{id}: Owner edits
    - POST /api/parse-menu-text: Turn pasted menu text into items
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrtruck.core.config import get_settings
from qrtruck.core.security import get_current_user, get_owned_truck
from qrtruck.database import get_db
from qrtruck.models import MenuItem, User
from qrtruck.schemas import (
    ErrorResponse,
    MenuBatchCreate,
    MenuItemCreate,
    MenuItemFields,
    MenuItemResponse,
    MenuItemUpdate,
    ParseMenuTextRequest,
    ParseMenuTextResponse,
)
from qrtruck.services.menu_parser import MenuParseError, get_menu_parser

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Menu"])


async def _next_sort_order(db: AsyncSession, truck_id: str) -> int:
    result = await db.execute(
        select(func.max(MenuItem.sort_order)).where(MenuItem.truck_id == truck_id)
    )
    current = result.scalar()
    return 0 if current is None else current + 1


async def _get_owned_item(db: AsyncSession, item_id: str, user: User) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    await get_owned_truck(db, item.truck_id, user)
    return item


@router.get("/api/menu", response_model=list[MenuItemResponse])
async def list_menu_items(
    truck_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
) -> list[MenuItemResponse]:
    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.truck_id == truck_id)
        .order_by(MenuItem.sort_order, MenuItem.created_at)
    )
    return [MenuItemResponse.model_validate(m) for m in result.scalars().all()]


@router.post(
    "/api/menu",
    responses={400: {"model": ErrorResponse}},
    summary="Create menu item(s)",
)
async def create_menu_items(
    payload: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Single item: ``{truck_id, name, price, category, ...}``.

    Batch: ``{truck_id, items: [...]}``. Invalid entries are skipped; the
    request fails only when none is valid.
    """
    is_batch = isinstance(payload.get("items"), list)
    try:
        request = MenuBatchCreate.model_validate(payload) if is_batch else MenuItemCreate.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))

    truck = await get_owned_truck(db, request.truck_id, user)

    if is_batch:
        valid: list[MenuItemFields] = []
        for raw in request.items:
            try:
                valid.append(MenuItemFields.model_validate(raw))
            except ValidationError:
                logger.debug(f"Skipping invalid menu item: {raw}")
        if not valid:
            raise HTTPException(status_code=400, detail="No valid items to create")
    else:
        valid = [request]

    sort_order = await _next_sort_order(db, truck.id)
    created = []
    for fields in valid:
        item = MenuItem(
            truck_id=truck.id,
            name=fields.name,
            description=fields.description or "",
            price=fields.price,
            category=fields.category,
            image_url=fields.image_url,
            is_available=fields.is_available,
            sort_order=sort_order,
        )
        sort_order += 1
        db.add(item)
        created.append(item)

    await db.commit()
    for item in created:
        await db.refresh(item)

    logger.info(f"Created {len(created)} menu items for truck {truck.id}")

    if not is_batch:
        return {"success": True, "item": MenuItemResponse.model_validate(created[0]).model_dump()}
    return {
        "success": True,
        "count": len(created),
        "message": f"Created {len(created)} menu items",
        "items": [MenuItemResponse.model_validate(i).model_dump() for i in created],
    }


@router.put("/api/menu/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    item_id: str,
    data: MenuItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await _get_owned_item(db, item_id, user)

    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "price", "category", "is_available", "sort_order"):
            continue
        setattr(item, field, round(value, 2) if field == "price" else value)

    await db.commit()
    await db.refresh(item)
    return MenuItemResponse.model_validate(item)


@router.delete("/api/menu/{item_id}")
async def delete_menu_item(
    item_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    item = await _get_owned_item(db, item_id, user)
    await db.delete(item)
    await db.commit()
    logger.info(f"Menu item {item_id} deleted by {user.email}")
    return {"success": True}


@router.post(
    "/api/parse-menu-text",
    response_model=ParseMenuTextResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Parse pasted menu text",
)
async def parse_menu_text(
    data: ParseMenuTextRequest,
    user: User = Depends(get_current_user),
):
    parser = get_menu_parser()
    try:
        items = await parser.parse(data.menu_text)
    except MenuParseError as e:
        logger.error(f"Menu parsing failed ({e.kind.value}): {e}")
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict(debug=get_settings().debug),
        )

    return ParseMenuTextResponse(
        success=True,
        items=[item.to_dict() for item in items],
        message=f"Found {len(items)} items",
    )
