import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.corporate_orders.api.orders_router import orders_router
from src.corporate_orders.config.settings import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log application startup and shutdown."""
    logger.info("Starting corporate orders API (backend %s)", settings.api_base_url)
    yield
    logger.info("Corporate orders API shutdown complete")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development; restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
