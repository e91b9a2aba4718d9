# storefront/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from storefront.api.routers import carts, checkout, coupons, health, orders
from storefront.data.database import Base, init_db
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing database")
    init_db()
    logger.info(f"Tables ready: {sorted(Base.metadata.tables.keys())}")
    yield


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Storefront Service",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(coupons.router)
    app.include_router(checkout.router)
    app.include_router(orders.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
