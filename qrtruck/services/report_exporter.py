"""
Tax Report Exporter with Concurrency Control

Writes merchant tax-audit reports to Excel workbooks. Exports run in Celery
workers, so writes to the same workbook are serialized with a file lock.

Workbook layout:
    - Summary: one row of period totals
    - Orders: every paid order in the period
    - Daily: per-day revenue and tax
    - Items: best-selling items
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from qrtruck.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

DATA_DIR = Path(settings.data_directory)


class ReportExporter:
    """Lock-guarded Excel writer for tax-audit reports."""

    LOCK_TIMEOUT = settings.excel_lock_timeout

    SUMMARY_COLUMNS = [
        "truck_id",
        "truck_name",
        "province",
        "tax_label",
        "tax_rate",
        "period",
        "start_date",
        "end_date",
        "order_count",
        "total_revenue",
        "total_tax_collected",
        "total_platform_fees",
        "total_collected",
        "net_revenue",
        "average_order_value",
        "exported_at",
    ]

    ORDER_COLUMNS = [
        "order_number",
        "created_at",
        "status",
        "subtotal",
        "tax",
        "platform_fee",
        "total",
        "stripe_payment_id",
    ]

    DAILY_COLUMNS = ["date", "orders", "revenue", "tax"]
    ITEM_COLUMNS = ["name", "quantity", "revenue"]

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        if not DATA_DIR.exists():
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {DATA_DIR}")

    @classmethod
    def report_path(cls, truck_id: str, period: str) -> Path:
        return DATA_DIR / f"tax_audit_{truck_id}_{period}.xlsx"

    @classmethod
    def export_tax_report(cls, audit: dict[str, Any]) -> dict[str, Any]:
        """
        Write a tax audit (as built by ``build_tax_audit``) to a workbook.

        Returns:
            dict: success flag, message, file path and export time
        """
        cls._ensure_data_dir()

        truck_id = audit.get("truck_id", "unknown")
        period = audit.get("period", "all")
        file_path = cls.report_path(truck_id, period)
        lock_path = file_path.with_suffix(".xlsx.lock")

        result = {
            "success": False,
            "message": "",
            "truck_id": truck_id,
            "file_path": str(file_path),
            "exported_at": None,
        }

        try:
            lock = FileLock(str(lock_path), timeout=cls.LOCK_TIMEOUT)

            with lock:
                logger.debug(f"Lock acquired for tax report {file_path.name}")

                export_time = datetime.now(timezone.utc).isoformat()
                stats = audit.get("stats", {})
                summary_row = {
                    "truck_id": truck_id,
                    "truck_name": audit.get("truck_name"),
                    "province": audit.get("province"),
                    "tax_label": audit.get("tax_label"),
                    "tax_rate": audit.get("tax_rate"),
                    "period": period,
                    "start_date": audit.get("start_date"),
                    "end_date": audit.get("end_date"),
                    "order_count": stats.get("order_count", 0),
                    "total_revenue": stats.get("total_revenue", 0.0),
                    "total_tax_collected": stats.get("total_tax_collected", 0.0),
                    "total_platform_fees": stats.get("total_platform_fees", 0.0),
                    "total_collected": stats.get("total_collected", 0.0),
                    "net_revenue": stats.get("net_revenue", 0.0),
                    "average_order_value": stats.get("average_order_value", 0.0),
                    "exported_at": export_time,
                }

                sheets = {
                    "Summary": pd.DataFrame([summary_row], columns=cls.SUMMARY_COLUMNS),
                    "Orders": pd.DataFrame(audit.get("orders", []), columns=cls.ORDER_COLUMNS),
                    "Daily": pd.DataFrame(stats.get("daily_breakdown", []), columns=cls.DAILY_COLUMNS),
                    "Items": pd.DataFrame(stats.get("best_selling_items", []), columns=cls.ITEM_COLUMNS),
                }

                with pd.ExcelWriter(str(file_path), engine="openpyxl") as writer:
                    for sheet_name, df in sheets.items():
                        df.to_excel(writer, sheet_name=sheet_name, index=False)

                logger.info(
                    f"Tax report for truck {truck_id} ({period}) exported - "
                    f"{summary_row['order_count']} orders"
                )

                result["success"] = True
                result["message"] = f"Tax report exported to {file_path.name}"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for tax report {file_path.name}")

        except Timeout:
            result["message"] = f"Lock timeout ({cls.LOCK_TIMEOUT}s)"
            logger.error(f"Lock timeout for tax report {file_path.name}")

        return result

    @classmethod
    def read_report(cls, file_path: Path) -> dict[str, pd.DataFrame]:
        """Load every sheet of an exported workbook."""
        return pd.read_excel(file_path, sheet_name=None, engine="openpyxl")

    @classmethod
    def list_reports(cls) -> list[Path]:
        cls._ensure_data_dir()
        return sorted(DATA_DIR.glob("tax_audit_*.xlsx"))
