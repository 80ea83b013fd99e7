"""
DEPENDENCIES (Dependências)
============================

Funções injetadas nas rotas. Autenticação fica fora deste serviço:
os ids de usuário chegam explícitos nas requisições.
"""

from cascata.infrastructure.database import get_db
from cascata.infrastructure.services.cascade_controller import CascadeController, get_cascade_controller


def get_controller() -> CascadeController:
    """
    Controller da cascata.

    Nos testes: app.dependency_overrides[get_controller] = lambda: controller
    """
    return get_cascade_controller()


__all__ = ["get_db", "get_controller"]
