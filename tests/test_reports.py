from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from qrtruck.models import OrderStatus
from qrtruck.services import report_exporter
from qrtruck.services.report_exporter import ReportExporter
from qrtruck.services.reports import period_start, summarize_orders


def _order(number, subtotal, tax, fee, hour=12, day=1, items=None):
    return SimpleNamespace(
        order_number=number,
        created_at=datetime(2026, 3, day, hour, 30),
        status=OrderStatus.COMPLETED,
        subtotal=subtotal,
        tax=tax,
        platform_fee=fee,
        total=round(subtotal + tax + fee, 2),
        items=items or [{"name": "Taco", "price": subtotal, "quantity": 1}],
    )


def test_period_start():
    now = datetime(2026, 3, 31, 15, 0, tzinfo=timezone.utc)
    assert period_start("today", now) == datetime(2026, 3, 31, tzinfo=timezone.utc)
    assert period_start("week", now) == datetime(2026, 3, 24, tzinfo=timezone.utc)
    assert period_start("month", now) == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert period_start("year", now) == datetime(2025, 3, 28, tzinfo=timezone.utc)
    assert period_start("all", now) is None
    with pytest.raises(ValueError):
        period_start("decade", now)


def test_summarize_orders():
    orders = [
        _order("A", 10.0, 1.3, 0.5, hour=12, day=1),
        _order("B", 20.0, 2.6, 0.9, hour=12, day=1),
        _order("C", 5.0, 0.65, 0.3, hour=18, day=2),
    ]
    stats = summarize_orders(orders)

    assert stats["order_count"] == 3
    assert stats["total_revenue"] == 35.0
    assert stats["total_tax_collected"] == 4.55
    assert stats["total_platform_fees"] == 1.7
    assert stats["net_revenue"] == 33.3
    assert stats["average_order_value"] == 11.67
    assert stats["status_breakdown"] == {"COMPLETED": 3}
    assert [d["date"] for d in stats["daily_breakdown"]] == ["2026-03-01", "2026-03-02"]
    assert stats["peak_hours"][0] == {"hour": 12, "orders": 2, "revenue": 30.0}
    assert stats["best_selling_items"][0]["quantity"] == 3


def test_summarize_no_orders():
    stats = summarize_orders([])
    assert stats["order_count"] == 0
    assert stats["average_order_value"] == 0.0
    assert stats["daily_breakdown"] == []


def test_export_and_read_back(tmp_path, monkeypatch):
    monkeypatch.setattr(report_exporter, "DATA_DIR", tmp_path)
    orders = [_order("A", 10.0, 1.3, 0.5), _order("B", 20.0, 2.6, 0.9)]
    audit = {
        "truck_id": "t1",
        "truck_name": "Taco Loco",
        "province": "ON",
        "tax_label": "HST",
        "tax_rate": 0.13,
        "period": "all",
        "start_date": None,
        "end_date": "2026-03-31T00:00:00+00:00",
        "stats": summarize_orders(orders),
        "orders": [
            {
                "order_number": o.order_number,
                "created_at": o.created_at.isoformat(),
                "status": o.status.value,
                "subtotal": o.subtotal,
                "tax": o.tax,
                "platform_fee": o.platform_fee,
                "total": o.total,
                "stripe_payment_id": "pi_x",
            }
            for o in orders
        ],
    }

    result = ReportExporter.export_tax_report(audit)
    assert result["success"] is True
    assert result["file_path"] == str(tmp_path / "tax_audit_t1_all.xlsx")

    sheets = ReportExporter.read_report(tmp_path / "tax_audit_t1_all.xlsx")
    assert set(sheets) == {"Summary", "Orders", "Daily", "Items"}
    assert sheets["Summary"].iloc[0]["total_tax_collected"] == pytest.approx(3.9)
    assert list(sheets["Orders"]["order_number"]) == ["A", "B"]
    assert ReportExporter.list_reports() == [tmp_path / "tax_audit_t1_all.xlsx"]


def test_tax_audit_endpoint(client, paid_order, other_owner):
    truck = paid_order["truck"]
    url = f"/api/trucks/{truck['id']}/tax-audit"

    assert client.get(url, headers=other_owner["headers"]).status_code == 403
    assert client.get(url, params={"period": "decade"}, headers=truck["owner"]["headers"]).status_code == 400

    resp = client.get(url, params={"period": "today"}, headers=truck["owner"]["headers"])
    assert resp.status_code == 200
    audit = resp.json()
    assert audit["tax_label"] == "HST"
    assert audit["stats"]["order_count"] == 1
    assert audit["stats"]["total_tax_collected"] == paid_order["tax"]
    assert audit["orders"][0]["order_number"] == paid_order["order_number"]


def test_tax_export_is_queued(client, paid_order, monkeypatch):
    from qrtruck.routes import trucks

    queued = []

    def fake_delay(audit):
        queued.append(audit)
        return SimpleNamespace(id="task-123")

    monkeypatch.setattr(trucks.export_tax_report, "delay", fake_delay)

    truck = paid_order["truck"]
    resp = client.post(
        f"/api/trucks/{truck['id']}/tax-audit/export",
        params={"period": "all"},
        headers=truck["owner"]["headers"],
    )
    assert resp.status_code == 202
    assert resp.json() == {"success": True, "task_id": "task-123", "period": "all"}
    assert queued[0]["truck_id"] == truck["id"]


def test_tax_export_queue_down(client, truck, monkeypatch):
    from qrtruck.routes import trucks

    def broken_delay(audit):
        raise ConnectionError("redis down")

    monkeypatch.setattr(trucks.export_tax_report, "delay", broken_delay)

    resp = client.post(f"/api/trucks/{truck['id']}/tax-audit/export", headers=truck["owner"]["headers"])
    assert resp.status_code == 503
