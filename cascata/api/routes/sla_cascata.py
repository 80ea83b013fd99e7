"""
ROTAS: SLA EM CASCATA
======================

Operações da cascata expostas para o CRM:
- iniciar / finalizar cascata
- eventos de negócio (agendamento, conversão, cancelamento)
- fila do atendente e snapshot
- processamento manual dos expirados (um tick do sweeper)

Avisos saem em background, depois da resposta.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from cascata.api.dependencies import get_controller
from cascata.api.schemas import (
    AppointmentEvent,
    AssignmentResponse,
    CancelEvent,
    CascadeEntryResponse,
    FinalizeRequest,
    FinalizeResponse,
    LeadEvent,
    LineageResponse,
    SnapshotResponse,
    StartCascadeRequest,
    StartCascadeResponse,
    SweepResponse,
)
from cascata.infrastructure.jobs.expiry_sweeper import ExpirySweeper
from cascata.infrastructure.services import cascade_triggers
from cascata.infrastructure.services.cascade_controller import CascadeController, FinalizeResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sla-cascata", tags=["SLA Cascata"])


def _finalize_response(result: FinalizeResult) -> FinalizeResponse:
    return FinalizeResponse(
        cliente_id=result.cliente_id,
        user_id=result.user_id,
        motivo=result.motivo,
        finalized=result.finalized,
        noop=result.noop,
        duplicates=len(result.duplicates),
    )


# ============================================
# INICIAR / FINALIZAR
# ============================================

@router.post("/iniciar", response_model=StartCascadeResponse)
async def start_cascade(
    payload: StartCascadeRequest,
    background_tasks: BackgroundTasks,
    controller: CascadeController = Depends(get_controller),
):
    """
    Abre a cascata do cliente e convoca o nível 1.

    Cascata já aberta não é erro: volta `already_active=true`.
    """
    result = await controller.start_cascade(payload.lead_id, payload.cliente_id, dispatch=False)
    background_tasks.add_task(controller.dispatch, result.notifications)

    return StartCascadeResponse(
        cliente_id=result.cliente_id,
        lead_id=result.lead_id,
        already_active=result.already_active,
        exhausted=result.exhausted,
        entries=[CascadeEntryResponse.model_validate(entry) for entry in result.entries],
    )


@router.post("/finalizar", response_model=FinalizeResponse)
async def finalize_cascade(
    payload: FinalizeRequest,
    background_tasks: BackgroundTasks,
    controller: CascadeController = Depends(get_controller),
):
    result = await controller.finalize_duplicates(
        payload.cliente_id, payload.user_id, payload.motivo, dispatch=False
    )
    background_tasks.add_task(controller.dispatch, result.notifications)
    return _finalize_response(result)


# ============================================
# EVENTOS DE NEGÓCIO
# ============================================

@router.post("/eventos/agendamento", response_model=FinalizeResponse)
async def appointment_created(
    payload: AppointmentEvent,
    background_tasks: BackgroundTasks,
    controller: CascadeController = Depends(get_controller),
):
    result = await cascade_triggers.on_appointment_created(
        controller, payload.cliente_id, payload.user_id, dispatch=False
    )
    background_tasks.add_task(controller.dispatch, result.notifications)
    return _finalize_response(result)


@router.post("/eventos/conversao", response_model=FinalizeResponse)
async def lead_converted(
    payload: LeadEvent,
    background_tasks: BackgroundTasks,
    controller: CascadeController = Depends(get_controller),
):
    result = await cascade_triggers.on_lead_converted(
        controller, payload.lead_id, payload.user_id, dispatch=False
    )
    background_tasks.add_task(controller.dispatch, result.notifications)
    return _finalize_response(result)


@router.post("/eventos/cancelamento", response_model=FinalizeResponse)
async def cancelled(
    payload: CancelEvent,
    background_tasks: BackgroundTasks,
    controller: CascadeController = Depends(get_controller),
):
    """Cancela pelo cliente ou, com lead_id, descarta o lead e cancela."""
    if payload.lead_id is not None:
        result = await cascade_triggers.on_lead_discarded(
            controller, payload.lead_id, payload.user_id, dispatch=False
        )
    elif payload.cliente_id is not None:
        result = await cascade_triggers.on_manual_cancel(
            controller, payload.cliente_id, payload.user_id, dispatch=False
        )
    else:
        raise HTTPException(status_code=422, detail="Informe cliente_id ou lead_id")

    background_tasks.add_task(controller.dispatch, result.notifications)
    return _finalize_response(result)


# ============================================
# CONSULTAS
# ============================================

@router.get("/usuarios/{user_id}/atendimentos", response_model=list[AssignmentResponse])
async def active_assignments(
    user_id: int,
    controller: CascadeController = Depends(get_controller),
):
    """Fila do atendente: o que vence primeiro vem primeiro."""
    views = await controller.active_assignments_for(user_id)
    return [AssignmentResponse.model_validate(view) for view in views]


@router.get("/snapshot", response_model=SnapshotResponse)
async def cascade_snapshot(
    cliente_id: Optional[int] = Query(None),
    controller: CascadeController = Depends(get_controller),
):
    snapshot = await controller.cascade_snapshot(cliente_id)

    return SnapshotResponse(
        cliente_id=snapshot.cliente_id,
        total_ativos=len(snapshot.active),
        entries=[AssignmentResponse.model_validate(view) for view in snapshot.entries],
        lineage=LineageResponse.model_validate(snapshot.lineage) if snapshot.lineage else None,
    )


# ============================================
# PROCESSAMENTO MANUAL
# ============================================

@router.post("/processar-expirados", response_model=SweepResponse)
async def process_expired(controller: CascadeController = Depends(get_controller)):
    """Roda um tick do sweeper agora (mesmo job do scheduler)."""
    logger.info("🔧 Processamento manual de expirados solicitado")
    stats = await ExpirySweeper(controller).run_once()
    return SweepResponse(**stats)
