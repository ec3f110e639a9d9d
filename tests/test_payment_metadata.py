import json

from qrtruck.services.payment.metadata import (
    ITEMS_CHUNK_LIMIT,
    METADATA_VALUE_LIMIT,
    pack_items,
    pack_order_metadata,
    unpack_items,
)

BREAKDOWN = {"subtotal": 15.5, "tax": 2.02, "platform_fee": 0.72, "merchant_payout": 17.52}


def _items(count, name="Fish Taco"):
    return [
        {"menu_item_id": f"item{i:03d}", "name": name, "price": 6.5, "quantity": i % 3 + 1}
        for i in range(count)
    ]


def test_small_cart_uses_single_field():
    fields = pack_items(_items(2))
    assert set(fields) == {"items"}
    assert json.loads(fields["items"])[0] == {"id": "item000", "qty": 1, "price": "6.50", "name": "Fish Taco"}


def test_large_cart_is_chunked():
    items = _items(40)
    fields = pack_items(items)

    assert "items" not in fields
    assert fields["item_count"] == "40"
    chunks = [v for k, v in fields.items() if k.startswith("items_")]
    assert len(chunks) > 1
    assert all(len(c) <= ITEMS_CHUNK_LIMIT for c in chunks)

    restored = unpack_items(fields)
    assert [i["menu_item_id"] for i in restored] == [i["menu_item_id"] for i in items]
    assert [i["quantity"] for i in restored] == [i["quantity"] for i in items]


def test_long_names_are_dropped_and_placeholdered():
    fields = pack_items(_items(1, name="x" * 80))
    assert unpack_items(fields)[0]["name"] == "Item item000"


def test_unreadable_items_give_empty_list():
    assert unpack_items({"items": "[not json"}) == []
    assert unpack_items({}) == []


def test_order_metadata_fields():
    metadata = pack_order_metadata(
        order_number="ORD-ABC-1234",
        truck_id="t1",
        truck_name="Taco Loco",
        items=_items(2),
        breakdown=BREAKDOWN,
        customer={"name": "Pat", "email": None, "phone": "4165550100", "user_id": None},
    )

    assert metadata["order_number"] == "ORD-ABC-1234"
    assert metadata["subtotal"] == "15.50"
    assert metadata["tax"] == "2.02"
    assert metadata["customer_email"] == ""
    assert metadata["user_id"] == ""
    assert all(isinstance(v, str) and len(v) <= METADATA_VALUE_LIMIT for v in metadata.values())


def test_order_metadata_truncates_long_values():
    metadata = pack_order_metadata(
        order_number="ORD-1",
        truck_id="t1",
        truck_name="T" * 300,
        items=[],
        breakdown=BREAKDOWN,
        customer={"name": "N" * 300},
    )
    assert len(metadata["truck_name"]) == 100
    assert len(metadata["customer_name"]) == 100
