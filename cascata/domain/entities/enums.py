"""Enums - valores fixos que se repetem no sistema."""

from enum import Enum


class CascadeStatus(str, Enum):
    """Status de uma entrada da cascata. Só avança: Ativo → Finalizado."""
    ACTIVE = "Ativo"
    FINALIZED = "Finalizado"


class CascadeReason(str, Enum):
    """Motivo terminal de uma entrada (campo `motivo`)."""
    RESOLVED = "Resolvido"           # Um atendente agiu dentro do prazo
    DUPLICATE = "Duplicado"          # Finalizado porque outra entrada foi resolvida
    EXPIRED = "Expirado"             # Prazo estourou, nível escalado
    CANCELLED = "Cancelado"          # Cancelamento de negócio (lead inválido etc)
    NO_SERVICE = "SemAtendimento"    # Todos os níveis esgotados


class LineageStatus(str, Enum):
    """Estado da cascata de um cliente como um todo."""
    OPEN = "aberta"
    CLOSED = "finalizada"
    EXHAUSTED = "sem_atendimento"


class LeadStatus(str, Enum):
    """Status do lead no funil."""
    NEW = "novo"
    CONVERTED = "convertido"
    DISCARDED = "descartado"


class ClienteStatus(str, Enum):
    """Status do cliente refletido pela cascata."""
    NEW = "Novo"
    IN_SERVICE = "Em Atendimento"
    NO_SERVICE = "Sem Atendimento"


class UserRole(str, Enum):
    """Papel do usuário na equipe."""
    ADMIN = "admin"
    MANAGER = "gestor"
    CONSULTANT = "consultor"
    BROKER = "corretor"


class TimeStatus(str, Enum):
    """Situação do prazo de uma entrada ativa (painel em tempo real)."""
    EXPIRED = "EXPIRADO"
    CRITICAL = "CRITICO"
    WARNING = "ALERTA"
    OK = "OK"


class NotificationType(str, Enum):
    """Tipos de notificação emitidos pela cascata."""
    NEW_ASSIGNMENT = "novo_atendimento"
    CASCADE_WON = "cascata_finalizada"
    CASCADE_LOST = "cascata_perdida"
    NO_SERVICE = "sem_atendimento"
