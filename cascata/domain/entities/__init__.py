"""Entidades do domínio."""
from .base import Base, TimestampMixin
from .enums import (
    CascadeStatus,
    CascadeReason,
    LineageStatus,
    LeadStatus,
    ClienteStatus,
    UserRole,
    TimeStatus,
    NotificationType,
)
from .models import User, Cliente, Lead, Notification
from .cascade_entry import CascadeEntry
from .cascade_lineage import CascadeLineage
from .cascade_config import CascadeConfig

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Enums
    "CascadeStatus",
    "CascadeReason",
    "LineageStatus",
    "LeadStatus",
    "ClienteStatus",
    "UserRole",
    "TimeStatus",
    "NotificationType",
    # Models
    "User",
    "Cliente",
    "Lead",
    "Notification",
    # Cascata
    "CascadeEntry",
    "CascadeLineage",
    "CascadeConfig",
]
