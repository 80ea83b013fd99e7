"""
GATILHOS DE NEGÓCIO → CASCATA
==============================

Traduz eventos do CRM para finalize_duplicates:

- agendamento criado  → Resolvido
- lead convertido     → Resolvido (lead vira "convertido")
- cancelamento manual → Cancelado
- lead descartado     → Cancelado (lead vira "descartado")

Reenvio do mesmo evento é seguro: a segunda chamada não encontra entradas
ativas e vira no-op.
"""

import logging
from typing import Optional

from cascata.domain.entities import CascadeReason, LeadStatus
from cascata.domain.exceptions import NotFoundError
from cascata.infrastructure.services.cascade_controller import CascadeController, FinalizeResult
from cascata.infrastructure.services.cascade_store import translate_store_errors
from cascata.infrastructure.services.cliente_service import get_lead, update_lead_status

logger = logging.getLogger(__name__)


async def on_appointment_created(
    controller: CascadeController,
    cliente_id: int,
    user_id: int,
    dispatch: bool = True,
) -> FinalizeResult:
    logger.info(f"📅 Agendamento criado: cliente {cliente_id} por usuário {user_id}")
    return await controller.finalize_duplicates(cliente_id, user_id, CascadeReason.RESOLVED, dispatch=dispatch)


async def on_manual_cancel(
    controller: CascadeController,
    cliente_id: int,
    user_id: int,
    dispatch: bool = True,
) -> FinalizeResult:
    logger.info(f"🛑 Cancelamento manual: cliente {cliente_id} por usuário {user_id}")
    return await controller.finalize_duplicates(cliente_id, user_id, CascadeReason.CANCELLED, dispatch=dispatch)


async def on_lead_converted(
    controller: CascadeController,
    lead_id: int,
    user_id: int,
    dispatch: bool = True,
) -> FinalizeResult:
    """Marca o lead como convertido e resolve a cascata do cliente dele."""
    cliente_id = await _mark_lead(controller, lead_id, LeadStatus.CONVERTED)
    logger.info(f"🏆 Lead {lead_id} convertido por usuário {user_id} (cliente {cliente_id})")
    return await controller.finalize_duplicates(cliente_id, user_id, CascadeReason.RESOLVED, dispatch=dispatch)


async def on_lead_discarded(
    controller: CascadeController,
    lead_id: int,
    user_id: int,
    dispatch: bool = True,
) -> FinalizeResult:
    cliente_id = await _mark_lead(controller, lead_id, LeadStatus.DISCARDED)
    logger.info(f"🗑️ Lead {lead_id} descartado por usuário {user_id} (cliente {cliente_id})")
    return await controller.finalize_duplicates(cliente_id, user_id, CascadeReason.CANCELLED, dispatch=dispatch)


async def _mark_lead(controller: CascadeController, lead_id: int, status: LeadStatus) -> int:
    cliente_id: Optional[int] = None

    with translate_store_errors():
        async with controller.session_factory() as session:
            async with session.begin():
                lead = await get_lead(session, lead_id)
                cliente_id = lead.cliente_id
                if cliente_id is None:
                    raise NotFoundError("Cliente do lead", lead_id)
                await update_lead_status(session, lead_id, status)

    return cliente_id
