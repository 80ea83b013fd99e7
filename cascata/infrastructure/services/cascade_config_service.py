"""Carrega a configuração ativa da cascata (banco → defaults)."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.config import get_settings
from cascata.domain.entities import CascadeConfig
from cascata.domain.services.assignment_policy import CascadePolicyConfig, DEFAULT_CASCADE_CONFIG

logger = logging.getLogger(__name__)


async def get_cascade_config(db: AsyncSession) -> CascadePolicyConfig:
    settings = get_settings()

    result = await db.execute(
        select(CascadeConfig)
        .where(CascadeConfig.active == True)
        .order_by(CascadeConfig.id.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()

    if row is None:
        logger.debug("Nenhuma configuração de cascata ativa, usando padrão")
        data = DEFAULT_CASCADE_CONFIG
    else:
        data = {
            "tiers": row.tiers or DEFAULT_CASCADE_CONFIG["tiers"],
            "user_order": row.user_order or [],
            "respect_availability": row.respect_availability,
        }

    return CascadePolicyConfig.from_dict(
        data,
        default_sla_hours=settings.cascade_default_sla_hours,
        timezone=settings.scheduler_timezone,
    )
