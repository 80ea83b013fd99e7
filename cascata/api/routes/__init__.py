"""Rotas da API."""

from .sla_cascata import router as sla_cascata_router
from .sla_dashboard import router as sla_dashboard_router
from .health import router as health_router

__all__ = [
    "sla_cascata_router",
    "sla_dashboard_router",
    "health_router",
]
