"""Celery tasks. The API enqueues these; a worker process runs them."""

import logging
import time
from datetime import datetime

from qrtruck.celery_worker import celery_app
from qrtruck.services.report_exporter import ReportExporter

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True,
)
def export_tax_report(self, audit: dict) -> dict:
    """
    Write one tax audit (the tax-audit endpoint payload) to
    ``tax_audit_<truck>_<period>.xlsx``. Filesystem errors are retried with
    backoff; the exporter's own result dict is returned with timing added.
    """
    truck_id = audit.get("truck_id", "unknown")
    started = time.perf_counter()

    result = ReportExporter.export_tax_report(audit)
    result["task_id"] = self.request.id
    result["processing_time_seconds"] = round(time.perf_counter() - started, 3)

    if result["success"]:
        logger.info(
            f"[{self.request.id}] tax report for truck {truck_id} written "
            f"in {result['processing_time_seconds']}s"
        )
    else:
        logger.warning(f"[{self.request.id}] tax report for truck {truck_id} failed: {result['message']}")
    return result


@celery_app.task
def health_check() -> dict:
    return {"status": "healthy", "worker": "celery", "timestamp": datetime.now().isoformat()}
