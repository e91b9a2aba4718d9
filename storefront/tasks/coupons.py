# storefront/tasks/coupons.py
from storefront.celery_worker import celery_app
from storefront.data.database import get_session_factory
from storefront.repos.coupon_repo import CouponRepo
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.coupons.deactivate_expired_coupons_task")
def deactivate_expired_coupons_task():
    logger.info("Deactivate expired coupons task started")

    db = get_session_factory()()
    try:
        count = CouponRepo(db).deactivate_expired(utcnow())
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if count:
        logger.warning(f"Deactivated {count} expired coupons")
    return {"deactivated": count}
