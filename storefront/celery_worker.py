# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    RECONCILE_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly so the worker registers them
celery_app.conf.imports = (
    "storefront.tasks.reconcile",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "reconcile-pending-payments": {
        "task": "storefront.tasks.reconcile.reconcile_pending_payments_task",
        "schedule": RECONCILE_INTERVAL_SECONDS,
    },
}
celery_app.conf.timezone = "UTC"
