"""
MODELOS DO CRM USADOS PELA CASCATA
===================================

Tabelas de apoio que a cascata lê e atualiza:
- users: equipe (consultores, corretores, gestores)
- clientes: sujeito do atendimento
- leads: contato de entrada, ligado a um cliente
- notifications: painel de avisos de cada usuário
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, ForeignKey, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin
from .enums import LeadStatus, ClienteStatus, UserRole


# ============================================
# USER - Equipe de atendimento
# ============================================

class User(Base, TimestampMixin):
    """Consultor, corretor ou gestor que pode receber atendimentos."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.CONSULTANT.value)
    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    # ==========================================
    # DISPONIBILIDADE
    # ==========================================
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    on_vacation: Mapped[bool] = mapped_column(Boolean, default=False)

    # Ex: {"monday": {"open": "08:00", "close": "18:00", "enabled": true}, ...}
    working_hours: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


# ============================================
# CLIENTE - Sujeito do atendimento
# ============================================

class Cliente(Base, TimestampMixin):
    """Cliente em atendimento. Pode ter vários leads ao longo do tempo."""

    __tablename__ = "clientes"

    id: Mapped[int] = mapped_column(primary_key=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default=ClienteStatus.NEW.value, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    leads: Mapped[list["Lead"]] = relationship(back_populates="cliente")


# ============================================
# LEAD - Contato de entrada
# ============================================

class Lead(Base, TimestampMixin):
    """Lead que entrou em contato (formulário, webhook, WhatsApp)."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    source: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default=LeadStatus.NEW.value, index=True)
    cliente_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("clientes.id", ondelete="SET NULL"), nullable=True, index=True
    )

    cliente: Mapped[Optional["Cliente"]] = relationship(back_populates="leads")


# ============================================
# NOTIFICATION - Painel de avisos
# ============================================

class Notification(Base):
    """Aviso exibido no painel do usuário."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    read: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
