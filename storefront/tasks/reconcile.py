# storefront/tasks/reconcile.py
from storefront.celery_worker import celery_app
from storefront.data.database import get_session_factory
from storefront.services.reconciliation_service import sweep_stale_carts
from storefront.utils.settings import STALE_CART_HOURS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.reconcile.reconcile_stale_carts_task")
def reconcile_stale_carts_task(stale_hours: int = STALE_CART_HOURS):
    logger.info(f"Reconcile stale carts task started (older than {stale_hours}h)")
    return sweep_stale_carts(get_session_factory(), stale_hours=stale_hours)
