import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_order_confirmation_task(self, receipt: dict) -> None:
    """Log the order confirmation; no outbound channel is configured."""
    logger.info(
        "[notifications disabled] order %s confirmed: %s %s",
        receipt.get("order_id"),
        receipt.get("total_amount"),
        receipt.get("currency"),
    )


def notify_order_placed(receipt: dict) -> None:
    """Queue the confirmation; a broker failure never fails the checkout."""
    import celery_app  # noqa: F401  ensures the project Celery app is current

    try:
        send_order_confirmation_task.delay(receipt)
    except Exception as e:
        logger.warning("Could not queue order confirmation for %s: %s", receipt.get("order_id"), e)
