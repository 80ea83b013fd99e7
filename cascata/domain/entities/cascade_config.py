"""
MODELO: CONFIGURAÇÃO DA CASCATA
================================

Níveis, prazos e ordem de usuários usados pela política de atribuição.

Estrutura de `tiers`:
[
    {"department": "atendimento", "roles": ["consultor", "corretor"], "sla_hours": 24},
    {"department": "gestao", "roles": ["gestor"], "sla_hours": 12},
]
"""

from typing import Optional
from sqlalchemy import String, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class CascadeConfig(Base, TimestampMixin):
    """Configuração ativa da cascata (só uma linha com active=True é usada)."""

    __tablename__ = "cascata_config"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), default="padrao")
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    tiers: Mapped[list] = mapped_column(JSON, default=list)

    # Ordem dos usuários (cascade_user_order). Vazia = todos, por id.
    user_order: Mapped[list] = mapped_column(JSON, default=list)

    respect_availability: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
