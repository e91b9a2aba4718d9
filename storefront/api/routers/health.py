# storefront/api/routers/health.py
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import get_db, ping
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        database = "ok" if ping(db) else "error"
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "error"
    return {"status": "ok" if database == "ok" else "degraded", "database": database}
