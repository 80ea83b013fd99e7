"""
MODELO: ENTRADA DA CASCATA (CASCADE ENTRY)
===========================================

Uma entrada = um atendente convocado para um cliente em um nível da cascata.

Regras:
- Criadas em lote (um lote por nível ativado), todas com o mesmo iniciado_em
- expira_em é fixado na criação e nunca muda
- Só status/finalizado_em/motivo mudam depois, e só de Ativo → Finalizado
- Nunca são apagadas: formam a trilha de auditoria
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base, TimestampMixin
from .enums import CascadeStatus


class CascadeEntry(Base, TimestampMixin):
    """Convocação de um atendente para um cliente, com prazo (SLA)."""

    __tablename__ = "cascata_entradas"
    __table_args__ = (
        Index("ix_cascata_entradas_cliente_status", "cliente_id", "status"),
        Index("ix_cascata_entradas_user_status", "user_id", "status"),
        Index("ix_cascata_entradas_status_expira", "status", "expira_em"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ==========================================
    # REFERÊNCIAS
    # ==========================================
    cliente_id: Mapped[int] = mapped_column(ForeignKey("clientes.id", ondelete="CASCADE"), index=True)
    lead_id: Mapped[Optional[int]] = mapped_column(ForeignKey("leads.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    # ==========================================
    # NÍVEL E PRAZO
    # ==========================================
    # Nível dentro da abertura atual da linhagem: reabrir volta para 1
    sequencia: Mapped[int] = mapped_column(Integer, nullable=False)
    sla_horas: Mapped[int] = mapped_column(Integer, nullable=False)
    iniciado_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expira_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # ==========================================
    # ESTADO
    # ==========================================
    status: Mapped[str] = mapped_column(String(20), default=CascadeStatus.ACTIVE.value, index=True)
    finalizado_em: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    motivo: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @validates("expira_em", "iniciado_em")
    def _validate_immutable(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"{key} não pode ser alterado depois de criado")
        return value

    @validates("status")
    def _validate_status(self, key, value):
        value = CascadeStatus(value).value
        if self.status == CascadeStatus.FINALIZED.value and value != self.status:
            raise ValueError("Entrada finalizada não pode voltar a ficar ativa")
        return value

    @property
    def is_active(self) -> bool:
        return self.status == CascadeStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<CascadeEntry {self.id}: cliente={self.cliente_id} user={self.user_id} "
            f"seq={self.sequencia} ({self.status}/{self.motivo})>"
        )
