"""
CLIENTES E LEADS
================

Persistência mínima de cliente/lead que a cascata consome.
Todas as funções usam a sessão de quem chama (mesma transação).
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.domain.entities import Cliente, ClienteStatus, Lead, LeadStatus
from cascata.domain.exceptions import NotFoundError

logger = logging.getLogger(__name__)


async def get_cliente(db: AsyncSession, cliente_id: int) -> Cliente:
    result = await db.execute(select(Cliente).where(Cliente.id == cliente_id))
    cliente = result.scalar_one_or_none()

    if not cliente:
        raise NotFoundError("Cliente", cliente_id)

    return cliente


async def create_cliente(
    db: AsyncSession,
    full_name: str,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    department: Optional[str] = None,
) -> Cliente:
    cliente = Cliente(
        full_name=full_name,
        phone=phone,
        email=email,
        department=department,
        status=ClienteStatus.NEW.value,
    )
    db.add(cliente)
    await db.flush()
    return cliente


async def update_cliente_status(db: AsyncSession, cliente_id: int, status: ClienteStatus) -> None:
    await db.execute(
        update(Cliente)
        .where(Cliente.id == cliente_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    logger.info(f"👤 Cliente {cliente_id} → {status.value}")


async def assign_cliente(db: AsyncSession, cliente_id: int, user_id: int) -> None:
    """Cliente passa a ser do atendente que venceu a cascata."""
    await db.execute(
        update(Cliente)
        .where(Cliente.id == cliente_id)
        .values(assigned_to=user_id, status=ClienteStatus.IN_SERVICE.value)
        .execution_options(synchronize_session=False)
    )


async def get_lead(db: AsyncSession, lead_id: int) -> Lead:
    result = await db.execute(select(Lead).where(Lead.id == lead_id))
    lead = result.scalar_one_or_none()

    if not lead:
        raise NotFoundError("Lead", lead_id)

    return lead


async def link_lead_to_cliente(db: AsyncSession, lead: Lead, cliente_id: int) -> None:
    if lead.cliente_id is None:
        lead.cliente_id = cliente_id


async def update_lead_status(db: AsyncSession, lead_id: int, status: LeadStatus) -> None:
    await db.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
