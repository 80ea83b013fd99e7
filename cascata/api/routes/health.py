"""
HEALTH CHECK
============
Banco + scheduler. Retorna 503 se o banco não responde.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.api.dependencies import get_db
from cascata.config import get_settings
from cascata.infrastructure.scheduler import get_scheduler_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    settings = get_settings()
    status = "healthy"
    checks = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Health check: banco indisponível: {e}", exc_info=True)
        checks["database"] = f"error: {str(e)}"
        status = "unhealthy"

    scheduler_status = get_scheduler_status()
    checks["scheduler"] = "running" if scheduler_status["running"] else "stopped"
    checks["timestamp"] = datetime.now(timezone.utc).isoformat()
    checks["environment"] = settings.environment

    if status == "unhealthy":
        raise HTTPException(status_code=503, detail={"status": status, "checks": checks})

    return {
        "status": status,
        "checks": checks,
        "jobs": scheduler_status["jobs"],
    }
