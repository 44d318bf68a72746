from fastapi import APIRouter, Depends

from ..core.config import Settings, get_settings
from . import analysis, expressions, trading

# ruff: noqa: B008  # FastAPI dependency injection pattern


router = APIRouter()


@router.get("/", tags=["system"])
def read_root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Root endpoint to verify that the API is running."""

    return {
        "message": f"{settings.app_name} is running",
        "environment": settings.environment,
    }


@router.get("/health", tags=["system"])
def health_check(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Basic health endpoint used by monitoring."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
    }


router.include_router(
    analysis.router,
    prefix="/api/analysis",
    tags=["analysis"],
)

router.include_router(
    expressions.router,
    prefix="/api/expressions",
    tags=["expressions"],
)

router.include_router(
    trading.router,
    prefix="/api/trading",
    tags=["trading"],
)


__all__ = ["router"]
