"""Celery application for storefront background work (order confirmations)."""
import os
import logging
from celery import Celery
from celery.signals import task_failure, task_retry, task_success

logger = logging.getLogger(__name__)

NOTIFICATIONS_QUEUE = os.environ.get("CELERY_NOTIFICATIONS_QUEUE", "notifications")

celery_app = Celery(
    "storefront",
    broker=os.environ.get("CELERY_BROKER_URL", "memory://"),
    backend=os.environ.get("CELERY_RESULT_BACKEND", "cache+memory://"),
    include=["storefront.tasks.notifications"],
)
celery_app.conf.update(
    task_always_eager=os.environ.get("CELERY_TASK_ALWAYS_EAGER", "0") == "1",
    task_eager_propagates=True,
    task_store_eager_result=False,
    task_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    task_routes={"storefront.tasks.notifications.*": {"queue": NOTIFICATIONS_QUEUE}},
)


@task_success.connect
def _log_success(sender=None, result=None, **kwargs):
    logger.debug("Task %s finished", getattr(sender, "name", ""))


@task_failure.connect
def _log_failure(sender=None, task_id=None, exception=None, **kwargs):
    logger.error("Task %s failed: %s", getattr(sender, "name", task_id), exception)


@task_retry.connect
def _log_retry(sender=None, request=None, reason=None, **kwargs):
    logger.warning("Task %s retrying: %s", getattr(sender, "name", ""), reason)
