# storefront/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from storefront.data.database import Base, engine
from storefront.api.routers import health, carts, orders, payment
from storefront.utils.logging import get_logger, setup_logging

# import all models before create_all so they are registered in Base.metadata
from storefront.data import models  # noqa: F401

logger = get_logger(__name__)


def init_db(bind=None) -> None:
    bind = bind or engine
    logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created")
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app(with_lifespan: bool = True) -> FastAPI:
    setup_logging()
    app = FastAPI(
        title="Storefront Order Service",
        version="1.0.0",
        lifespan=lifespan if with_lifespan else None,
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payment.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
