"""
ROTAS: DASHBOARD DE SLA
========================

Leitura para o gestor: métricas do período, painel em tempo real, ranking,
conversão por origem do lead e tendências.
Período padrão: últimos 30 dias.
"""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.api.dependencies import get_db
from cascata.infrastructure.services.cascade_metrics import (
    conversion_by_source,
    live_board,
    metrics_for,
    trends,
    user_ranking,
)

router = APIRouter(prefix="/sla-dashboard", tags=["SLA Dashboard"])


@router.get("/metrics")
async def get_metrics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await metrics_for(db, start_date, end_date)


@router.get("/active-assignments")
async def get_active_assignments(db: AsyncSession = Depends(get_db)):
    """Entradas ativas com tempo restante (EXPIRADO / CRITICO / ALERTA / OK)."""
    return await live_board(db)


@router.get("/user-ranking")
async def get_user_ranking(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await user_ranking(db, start_date, end_date)


@router.get("/conversion-by-source")
async def get_conversion_by_source(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await conversion_by_source(db, start_date, end_date)


@router.get("/trends")
async def get_trends(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    period: Literal["day", "week", "month"] = Query("day"),
    db: AsyncSession = Depends(get_db),
):
    """Série temporal de entradas (total, resolvidos, expirados, ativos)."""
    return await trends(db, start_date, end_date, period)
