# ridepay/main.py
"""
FastAPI application: booking, payment, payout and webhook endpoints.

Versioned routes live under /api/v1; /health and /metrics sit at the root.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .database import init_db
from .errors import register_error_handlers
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import callbacks as callbacks_v1
from .routes.v1 import cron as cron_v1
from .routes.v1 import health as health_v1
from .routes.v1 import payments as payments_v1
from .routes.v1 import payouts as payouts_v1

API_TITLE = "RidePay API"
API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("%s starting up (environment=%s)", API_TITLE, settings.environment)
    if settings.get_database_url().startswith("sqlite"):
        # Local development database; managed databases are migrated out of band.
        init_db()
    if settings.use_pawapay:
        logger.info("pawaPay is the exclusive payment provider")
    yield
    logger.info("%s shutting down", API_TITLE)


def create_app() -> FastAPI:
    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=app_lifespan)
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(payments_v1.router, prefix="/payments")
    api_v1.include_router(payouts_v1.router, prefix="/payouts")
    api_v1.include_router(callbacks_v1.router, prefix="/callbacks")
    api_v1.include_router(cron_v1.router, prefix="/cron")

    app.include_router(api_v1)
    app.include_router(health_v1.router)
    return app


app = create_app()
