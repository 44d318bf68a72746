import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.routes import router as api_router
from .core.config import get_settings
from .core.logging import RequestContextMiddleware, configure_logging
from .db.base import Base
from .db.session import engine
from .services.security_trader import schedule_trading_refresh, stop_trading_refresh

settings = get_settings()

configure_logging()
logger = logging.getLogger(__name__)


def _create_tables() -> None:
    """Create missing tables; the schema is small enough to need no migrations."""

    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    """FastAPI lifespan handler for startup/shutdown tasks."""

    _create_tables()
    logger.info("Starting", extra={"extra": settings.dict_for_logging()})

    started = False
    if (
        settings.auto_trade_enabled
        and "pytest" not in sys.modules
        and not os.getenv("PYTEST_CURRENT_TEST")
    ):
        schedule_trading_refresh()
        started = True
    yield
    if started:
        stop_trading_refresh()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=_lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


__all__ = ["app"]
