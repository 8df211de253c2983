from smtplib import SMTPException

from academy_office.application.services.receipt_service import send_payment_receipt
from academy_office.config import settings
from academy_office.infrastructure.db.session import SessionLocal
from academy_office.infrastructure.logging import get_logger
from academy_office.infrastructure.tasks.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(
    name="billing.send_payment_receipt",
    autoretry_for=(SMTPException, OSError),
    retry_backoff=True,
    max_retries=3,
)
def send_payment_receipt_task(invoice_id: int) -> bool:
    db = SessionLocal()
    try:
        return send_payment_receipt(db=db, invoice_id=invoice_id)
    finally:
        db.close()


def enqueue_payment_receipt(*, invoice_id: int) -> str | None:
    if not settings.receipts_enabled:
        return None
    try:
        task = send_payment_receipt_task.delay(invoice_id=invoice_id)
    except Exception as exc:
        # The payment is already committed; a lost receipt is only logged.
        logger.error("payment_receipt_enqueue_failed", invoice_id=invoice_id, error=str(exc))
        return None
    logger.info("payment_receipt_enqueued", invoice_id=invoice_id, task_id=str(task.id))
    return str(task.id)
