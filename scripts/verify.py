"""
Tax Report Verification Script

Checks the integrity of exported tax-audit workbooks.
Run from project root: python scripts/verify.py [report.xlsx ...]
"""

import os
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from qrtruck.services.pricing import calculate_platform_fee, calculate_total, round2
from qrtruck.services.report_exporter import ReportExporter

REQUIRED_SHEETS = ["Summary", "Orders", "Daily", "Items"]


def _check_order_math(orders: pd.DataFrame) -> int:
    """Count orders whose fee or total disagree with the pricing rules."""
    bad = 0
    for row in orders.itertuples(index=False):
        fee = calculate_platform_fee(row.subtotal)
        total = calculate_total(row.subtotal, row.tax, row.platform_fee)
        if round2(row.platform_fee) != fee or round2(row.total) != total:
            bad += 1
            print(f"   ⚠️ {row.order_number}: fee {row.platform_fee} / total {row.total}")
    return bad


def verify_report(path: Path) -> bool:
    """Verify one exported workbook."""
    print("=" * 60)
    print("🔍 TAX REPORT VERIFICATION")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {path}")
    print("=" * 60)

    if not path.exists():
        print("\n❌ Report file not found!")
        return False

    try:
        sheets = ReportExporter.read_report(path)
        print("\n✅ File loaded successfully!")
    except (OSError, ValueError) as e:
        print(f"\n❌ Could not read report: {e}")
        return False

    missing = [name for name in REQUIRED_SHEETS if name not in sheets]
    if missing:
        print(f"\n⚠️ Missing sheets: {missing}")
        return False
    print("✅ All sheets present")

    summary = sheets["Summary"].iloc[0]
    orders = sheets["Orders"]
    ok = True

    missing_cols = [c for c in ReportExporter.ORDER_COLUMNS if c not in orders.columns]
    if missing_cols:
        print(f"\n⚠️ Missing order columns: {missing_cols}")
        return False

    print("\n📊 STATISTICS:")
    print(f"   Truck: {summary['truck_name']} ({summary['province']})")
    print(f"   Period: {summary['period']}")
    print(f"   Orders: {len(orders)}")

    duplicates = orders["order_number"].duplicated().sum()
    if duplicates > 0:
        print(f"\n⚠️ {duplicates} duplicate order numbers found!")
        ok = False
    else:
        print("✅ No duplicate order numbers")

    if int(summary["order_count"]) != len(orders):
        print(f"⚠️ Summary says {summary['order_count']} orders, sheet has {len(orders)}")
        ok = False

    for column, key in [
        ("subtotal", "total_revenue"),
        ("tax", "total_tax_collected"),
        ("platform_fee", "total_platform_fees"),
    ]:
        if round2(orders[column].sum()) != round2(summary[key]):
            print(f"⚠️ {key} mismatch: {summary[key]} vs {orders[column].sum():.2f}")
            ok = False

    bad = _check_order_math(orders)
    if bad:
        ok = False
    else:
        print("✅ Fees and totals consistent")

    print(f"\n💰 {summary['tax_label']} COLLECTED: ${float(summary['total_tax_collected']):.2f}")

    print("\n📋 RECENT ORDERS:")
    print("-" * 60)
    if len(orders) > 0:
        print(orders[["order_number", "subtotal", "tax", "total"]].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FOUND PROBLEMS")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    paths = [Path(p) for p in sys.argv[1:]] or ReportExporter.list_reports()
    if not paths:
        print("❌ No reports found. Export one first: POST /api/trucks/{id}/tax-audit/export")
        sys.exit(1)
    results = [verify_report(p) for p in paths]
    sys.exit(0 if all(results) else 1)
