"""Exceções da cascata de SLA.

"Cascata já ativa" e "níveis esgotados" NÃO são exceções: voltam como flags
(`already_active`, `exhausted`) nos resultados das operações.
"""


class CascataError(Exception):
    """Base para erros da cascata."""

    pass


class NotFoundError(CascataError):
    """Lead, cliente ou usuário inexistente."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} não encontrado")


class StoreUnavailableError(CascataError):
    """Falha transitória do banco. Quem chamou tenta de novo (o sweeper, no próximo ciclo)."""

    pass


class ConfigurationError(CascataError):
    """Configuração da cascata malformada."""

    pass
