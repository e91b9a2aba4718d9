# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    RECONCILE_INTERVAL_SECONDS,
    COUPON_SWEEP_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks live outside this module; list them so the worker registers them
celery_app.conf.imports = (
    "storefront.tasks.reconcile",
    "storefront.tasks.coupons",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "reconcile-stale-carts": {
        "task": "storefront.tasks.reconcile.reconcile_stale_carts_task",
        "schedule": RECONCILE_INTERVAL_SECONDS,
    },
    "deactivate-expired-coupons": {
        "task": "storefront.tasks.coupons.deactivate_expired_coupons_task",
        "schedule": COUPON_SWEEP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
