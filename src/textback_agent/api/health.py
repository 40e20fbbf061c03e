"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from textback_agent.core.retry import get_circuit_breaker_status
from textback_agent.db.session import get_db_context
from textback_agent.dependencies import SettingsDep

router = APIRouter(tags=["Health"])

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    checks: dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Database connectivity and circuit breaker state."""
    checks: dict[str, Any] = {
        "api": "ok",
        "database": await _check_database(),
        "circuit_breakers": get_circuit_breaker_status(),
    }
    status = "healthy" if checks["database"] == "ok" else "degraded"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=VERSION,
        environment=settings.environment,
        checks=checks,
    )


async def _check_database() -> str:
    try:
        async with get_db_context() as session:
            await session.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        return f"error: {type(e).__name__}"
