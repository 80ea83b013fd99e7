"""
POLÍTICA DE ATRIBUIÇÃO DA CASCATA
==================================

Decide QUEM é convocado em cada nível da cascata.

- Nível 1: normalmente todos os consultores/corretores de plantão do
  departamento que recebe o lead
- Nível 2+: normalmente gestores / corretores seniores (pool mais amplo)
- Nível sem configuração ou sem ninguém elegível → tupla vazia
  (o controller trata como cascata esgotada, nunca fica parado)

Função PURA: mesma entrada (lista de agentes, config, horário) → mesma saída.
Não acessa banco nem envia nada.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cascata.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTES
# =============================================================================

WEEKDAY_MAP = {
    0: "monday",
    1: "tuesday",
    2: "wednesday",
    3: "thursday",
    4: "friday",
    5: "saturday",
    6: "sunday",
}

DEFAULT_CASCADE_CONFIG = {
    "tiers": [
        {"department": "atendimento", "roles": ["consultor", "corretor"], "sla_hours": None},
        {"department": "gestao", "roles": ["gestor"], "sla_hours": None},
    ],
    "user_order": [],
    "respect_availability": True,
}


# =============================================================================
# ESTRUTURAS
# =============================================================================

@dataclass(frozen=True)
class AgentProfile:
    """Foto de um usuário da equipe no momento da decisão."""

    id: int
    full_name: str
    role: str
    department: Optional[str] = None
    phone: Optional[str] = None
    active: bool = True
    available: bool = True
    on_vacation: bool = False
    working_hours: Optional[dict] = None


@dataclass(frozen=True)
class LeadContext:
    """Dados do lead relevantes para a política."""

    lead_id: Optional[int]
    cliente_id: int
    name: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class TierConfig:
    department: Optional[str]
    roles: Tuple[str, ...]
    sla_hours: Optional[int] = None


@dataclass(frozen=True)
class CascadePolicyConfig:
    tiers: Tuple[TierConfig, ...]
    user_order: Tuple[int, ...] = ()
    respect_availability: bool = True
    default_sla_hours: int = 24
    timezone: str = "America/Sao_Paulo"

    @classmethod
    def from_dict(
        cls,
        data: dict,
        default_sla_hours: int = 24,
        timezone: str = "America/Sao_Paulo",
    ) -> "CascadePolicyConfig":
        """Monta a config a partir do JSON salvo (ou do DEFAULT_CASCADE_CONFIG)."""
        merged = {**DEFAULT_CASCADE_CONFIG, **(data or {})}

        tiers = []
        for index, raw in enumerate(merged.get("tiers") or [], start=1):
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Nível {index} da cascata precisa ser um objeto")
            roles = raw.get("roles") or []
            if isinstance(roles, str):
                roles = [roles]
            sla_hours = raw.get("sla_hours")
            if sla_hours is not None and int(sla_hours) <= 0:
                raise ConfigurationError(f"Nível {index}: sla_hours deve ser positivo")
            tiers.append(TierConfig(
                department=raw.get("department"),
                roles=tuple(r.lower() for r in roles),
                sla_hours=int(sla_hours) if sla_hours is not None else None,
            ))

        return cls(
            tiers=tuple(tiers),
            user_order=tuple(int(u) for u in merged.get("user_order") or []),
            respect_availability=bool(merged.get("respect_availability", True)),
            default_sla_hours=default_sla_hours,
            timezone=timezone,
        )

    def tier(self, number: int) -> Optional[TierConfig]:
        if number < 1 or number > len(self.tiers):
            return None
        return self.tiers[number - 1]

    def sla_hours_for(self, number: int) -> int:
        tier = self.tier(number)
        if tier is None or tier.sla_hours is None:
            return self.default_sla_hours
        return tier.sla_hours


# =============================================================================
# DISPONIBILIDADE
# =============================================================================

def parse_time(time_str: str) -> Optional[time]:
    """Converte "HH:MM" para time. None se inválido."""
    if not time_str or not isinstance(time_str, str):
        return None

    try:
        parts = time_str.strip().split(":")
        if len(parts) >= 2:
            return time(int(parts[0]), int(parts[1]))
    except (ValueError, IndexError):
        pass

    return None


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Timezone inválido: {tz_name}, usando America/Sao_Paulo")
        return ZoneInfo("America/Sao_Paulo")


def is_within_working_hours(working_hours: Optional[dict], now: datetime, tz_name: str) -> bool:
    """
    Verifica o expediente do agente.

    Sem working_hours configurado = sempre de plantão.
    Horário malformado no dia = considera de plantão (na dúvida, permite).
    """
    if not working_hours:
        return True

    local = now.astimezone(_zone(tz_name)) if now.tzinfo else now
    day_config = working_hours.get(WEEKDAY_MAP[local.weekday()])

    if not day_config or not day_config.get("enabled", True):
        return False

    open_time = parse_time(day_config.get("open", ""))
    close_time = parse_time(day_config.get("close", ""))
    if not open_time or not close_time:
        return True

    return open_time <= local.time() <= close_time


def is_on_duty(agent: AgentProfile, now: datetime, tz_name: str) -> bool:
    if not agent.active or not agent.available or agent.on_vacation:
        return False
    return is_within_working_hours(agent.working_hours, now, tz_name)


# =============================================================================
# SELEÇÃO
# =============================================================================

def select_candidates(
    lead: LeadContext,
    tier: int,
    roster: Sequence[AgentProfile],
    config: CascadePolicyConfig,
    now: datetime,
) -> Tuple[int, ...]:
    """
    Retorna os ids convocados para o nível `tier`, em ordem.

    Ordem: posição em user_order (quando configurado) e depois id.
    Com user_order preenchido, só quem está na lista é elegível.
    """
    tier_config = config.tier(tier)
    if tier_config is None:
        return ()

    eligible = []
    seen = set()
    for agent in roster:
        if agent.id in seen:
            continue
        if tier_config.department and agent.department != tier_config.department:
            continue
        if tier_config.roles and (agent.role or "").lower() not in tier_config.roles:
            continue
        if config.user_order and agent.id not in config.user_order:
            continue
        if not agent.active:
            continue
        if config.respect_availability and not is_on_duty(agent, now, config.timezone):
            continue
        seen.add(agent.id)
        eligible.append(agent)

    if config.user_order:
        position = {user_id: index for index, user_id in enumerate(config.user_order)}
        eligible.sort(key=lambda a: (position[a.id], a.id))
    else:
        eligible.sort(key=lambda a: a.id)

    candidates = tuple(a.id for a in eligible)
    logger.debug(
        f"Política: lead {lead.lead_id} / cliente {lead.cliente_id}, nível {tier} → {candidates}"
    )
    return candidates
