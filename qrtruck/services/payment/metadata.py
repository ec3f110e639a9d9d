"""
Payment Intent Metadata

Orders are not written until the payment succeeds, so everything needed to
create the order travels in the intent's metadata. The provider limits each
metadata value to 500 characters: scalar values are truncated and the item
list is split into ``items_0..n`` chunks (with ``item_count``) once its JSON
encoding grows past 450 characters.
"""

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

METADATA_VALUE_LIMIT = 500
ITEMS_CHUNK_LIMIT = 450
ITEM_NAME_LIMIT = 50


def _clip(value: Optional[str], limit: int) -> str:
    return (value or "")[:limit]


def _minimal_item(item: dict[str, Any]) -> dict[str, Any]:
    name = item.get("name") or ""
    return {
        "id": item["menu_item_id"],
        "qty": int(item["quantity"]),
        "price": f"{float(item['price']):.2f}",
        # Long names are looked up again when the order is created
        "name": name if len(name) <= ITEM_NAME_LIMIT else "",
    }


def pack_items(items: list[dict[str, Any]]) -> dict[str, str]:
    """Encode order items into one or more metadata fields."""
    minimal = [_minimal_item(item) for item in items]
    encoded = json.dumps(minimal, separators=(",", ":"))
    if len(encoded) <= ITEMS_CHUNK_LIMIT:
        return {"items": encoded}

    fields = {"item_count": str(len(minimal))}
    chunks: list[str] = []
    current = ""
    for item in minimal:
        piece = json.dumps(item, separators=(",", ":"))
        if current and len(current) + len(piece) + 1 > ITEMS_CHUNK_LIMIT:
            chunks.append(current)
            current = piece
        else:
            current = f"{current},{piece}" if current else piece
    if current:
        chunks.append(current)

    for index, chunk in enumerate(chunks):
        fields[f"items_{index}"] = chunk
    return fields


def unpack_items(metadata: dict[str, str]) -> list[dict[str, Any]]:
    """
    Rebuild the order item list from metadata.

    Returns items as ``{menu_item_id, name, price, quantity}``. Unreadable
    item data is logged and yields an empty list.
    """
    raw: list[dict[str, Any]] = []
    try:
        if metadata.get("items"):
            raw = json.loads(metadata["items"])
        elif metadata.get("item_count"):
            chunks = []
            index = 0
            while metadata.get(f"items_{index}"):
                chunks.append(metadata[f"items_{index}"])
                index += 1
            raw = json.loads("[" + ",".join(chunks) + "]")
    except json.JSONDecodeError as e:
        logger.error(f"Failed to decode order items from metadata: {e}")
        return []

    return [
        {
            "menu_item_id": item.get("id"),
            "name": item.get("name") or f"Item {item.get('id')}",
            "price": float(item.get("price", 0)),
            "quantity": int(item.get("qty") or item.get("quantity") or 1),
        }
        for item in raw
    ]


def pack_order_metadata(
    order_number: str,
    truck_id: str,
    truck_name: str,
    items: list[dict[str, Any]],
    breakdown: dict[str, float],
    customer: Optional[dict[str, Optional[str]]] = None,
) -> dict[str, str]:
    """Build the full metadata dict for a checkout payment intent."""
    customer = customer or {}
    metadata = {
        "order_number": order_number,
        "truck_id": truck_id,
        "truck_name": _clip(truck_name, 100),
        "subtotal": f"{breakdown['subtotal']:.2f}",
        "tax": f"{breakdown['tax']:.2f}",
        "platform_fee": f"{breakdown['platform_fee']:.2f}",
        "merchant_payout": f"{breakdown['merchant_payout']:.2f}",
        "customer_name": _clip(customer.get("name"), 100),
        "customer_email": _clip(customer.get("email"), 100),
        "customer_phone": _clip(customer.get("phone"), 20),
        "user_id": _clip(customer.get("user_id"), 100),
    }
    metadata.update(pack_items(items))
    return {key: value[:METADATA_VALUE_LIMIT] for key, value in metadata.items()}
