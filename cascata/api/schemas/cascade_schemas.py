"""
SCHEMAS DA CASCATA
==================

Entrada e saída das rotas /sla-cascata.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================
# REQUESTS
# ============================================

class StartCascadeRequest(BaseModel):
    lead_id: int = Field(..., description="Lead que originou o atendimento")
    cliente_id: int = Field(..., description="Cliente dono da cascata")


class FinalizeRequest(BaseModel):
    cliente_id: int
    user_id: int = Field(..., description="Atendente que agiu")
    motivo: Literal["Resolvido", "Cancelado", "Duplicado"] = "Resolvido"


class AppointmentEvent(BaseModel):
    """Agendamento criado por um atendente."""

    cliente_id: int
    user_id: int


class LeadEvent(BaseModel):
    """Lead convertido ou descartado."""

    lead_id: int
    user_id: int


class CancelEvent(BaseModel):
    cliente_id: Optional[int] = None
    lead_id: Optional[int] = Field(None, description="Descarta o lead e cancela a cascata do cliente dele")
    user_id: int


# ============================================
# RESPONSES
# ============================================

class CascadeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cliente_id: int
    lead_id: Optional[int] = None
    user_id: int
    sequencia: int
    status: str
    sla_horas: int
    iniciado_em: datetime
    expira_em: datetime
    finalizado_em: Optional[datetime] = None
    motivo: Optional[str] = None


class AssignmentResponse(CascadeEntryResponse):
    """Entrada com os dados do cliente (fila do atendente)."""

    cliente_nome: Optional[str] = None
    cliente_phone: Optional[str] = None


class LineageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cliente_id: int
    lead_id: Optional[int] = None
    status: str
    sequencia_atual: int
    aberta_em: datetime
    encerrada_em: Optional[datetime] = None
    motivo: Optional[str] = None


class StartCascadeResponse(BaseModel):
    cliente_id: int
    lead_id: Optional[int] = None
    already_active: bool
    exhausted: bool
    entries: List[CascadeEntryResponse] = []


class FinalizeResponse(BaseModel):
    cliente_id: int
    user_id: int
    motivo: str
    finalized: int
    noop: bool
    duplicates: int


class SnapshotResponse(BaseModel):
    cliente_id: Optional[int] = None
    total_ativos: int
    entries: List[AssignmentResponse]
    lineage: Optional[LineageResponse] = None


class SweepResponse(BaseModel):
    pares: int
    avancados: int
    noop: int
    erros: int
