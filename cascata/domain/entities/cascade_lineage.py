"""
MODELO: LINHAGEM DA CASCATA
============================

Uma linha por cliente. Garante que só existe UMA cascata aberta por cliente
e registra o nível atual. Também é o marcador visível de "sem atendimento"
quando todos os níveis se esgotam (sem inventar entrada fantasma).
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin
from .enums import LineageStatus


class CascadeLineage(Base, TimestampMixin):
    """Estado agregado da cascata de um cliente."""

    __tablename__ = "cascata_linhagens"

    cliente_id: Mapped[int] = mapped_column(
        ForeignKey("clientes.id", ondelete="CASCADE"), primary_key=True
    )
    lead_id: Mapped[Optional[int]] = mapped_column(ForeignKey("leads.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=LineageStatus.OPEN.value, index=True)
    sequencia_atual: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    aberta_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    encerrada_em: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    motivo: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.status == LineageStatus.OPEN.value

    def __repr__(self) -> str:
        return f"<CascadeLineage cliente={self.cliente_id} seq={self.sequencia_atual} ({self.status})>"
