"""
TESTES - POLÍTICA DE ATRIBUIÇÃO
================================

Função pura: mesma entrada, mesma saída. Sem banco.
"""

from datetime import datetime, timezone

import pytest

from cascata.domain.exceptions import ConfigurationError
from cascata.domain.services.assignment_policy import (
    AgentProfile,
    CascadePolicyConfig,
    LeadContext,
    is_within_working_hours,
    parse_time,
    select_candidates,
)

# Segunda-feira 10:00 em São Paulo
MONDAY_10H = datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)
# Segunda-feira 20:00 em São Paulo
MONDAY_20H = datetime(2024, 6, 3, 23, 0, tzinfo=timezone.utc)

LEAD = LeadContext(lead_id=10, cliente_id=20, name="Cliente")

CONFIG_TIERS = [
    {"department": "atendimento", "roles": ["Consultor", "corretor"], "sla_hours": 1},
    {"department": "gestao", "roles": ["gestor"]},
]

CONFIG = CascadePolicyConfig.from_dict({"tiers": CONFIG_TIERS})

ROSTER = [
    AgentProfile(id=3, full_name="Bruno", role="corretor", department="atendimento"),
    AgentProfile(id=1, full_name="Ana", role="consultor", department="atendimento"),
    AgentProfile(id=7, full_name="Marcos", role="gestor", department="gestao"),
    AgentProfile(id=5, full_name="Carla", role="consultor", department="atendimento", on_vacation=True),
    AgentProfile(id=6, full_name="Davi", role="consultor", department="atendimento", available=False),
    AgentProfile(id=8, full_name="Eva", role="consultor", department="atendimento", active=False),
    AgentProfile(id=9, full_name="Fábio", role="admin", department="atendimento"),
    AgentProfile(id=4, full_name="Gil", role="consultor", department="financeiro"),
]


# =============================================================================
# SELEÇÃO
# =============================================================================

def test_tier_one_selects_on_duty_agents_of_department_ordered_by_id():
    assert select_candidates(LEAD, 1, ROSTER, CONFIG, MONDAY_10H) == (1, 3)


def test_tier_two_selects_managers():
    assert select_candidates(LEAD, 2, ROSTER, CONFIG, MONDAY_10H) == (7,)


def test_unconfigured_tier_fails_closed():
    assert select_candidates(LEAD, 3, ROSTER, CONFIG, MONDAY_10H) == ()
    assert select_candidates(LEAD, 0, ROSTER, CONFIG, MONDAY_10H) == ()


def test_empty_roster_returns_empty_tuple():
    assert select_candidates(LEAD, 1, [], CONFIG, MONDAY_10H) == ()


def test_same_input_same_output():
    first = select_candidates(LEAD, 1, ROSTER, CONFIG, MONDAY_10H)
    second = select_candidates(LEAD, 1, list(reversed(ROSTER)), CONFIG, MONDAY_10H)
    assert first == second


def test_duplicate_profiles_are_removed():
    roster = ROSTER + [AgentProfile(id=1, full_name="Ana", role="consultor", department="atendimento")]
    assert select_candidates(LEAD, 1, roster, CONFIG, MONDAY_10H) == (1, 3)


def test_user_order_restricts_and_orders_candidates():
    config = CascadePolicyConfig.from_dict({"tiers": CONFIG_TIERS, "user_order": [3, 1]})
    assert select_candidates(LEAD, 1, ROSTER, config, MONDAY_10H) == (3, 1)

    only_ana = CascadePolicyConfig.from_dict({"tiers": CONFIG_TIERS, "user_order": [1, 7]})
    assert select_candidates(LEAD, 1, ROSTER, only_ana, MONDAY_10H) == (1,)


def test_availability_ignored_when_disabled():
    config = CascadePolicyConfig.from_dict({"tiers": CONFIG_TIERS, "respect_availability": False})
    # férias e indisponível entram; inativo nunca
    assert select_candidates(LEAD, 1, ROSTER, config, MONDAY_10H) == (1, 3, 5, 6)


def test_working_hours_filter_agents_outside_schedule():
    schedule = {"monday": {"open": "08:00", "close": "18:00", "enabled": True}}
    roster = [
        AgentProfile(id=1, full_name="Ana", role="consultor", department="atendimento", working_hours=schedule),
        AgentProfile(id=2, full_name="Bia", role="consultor", department="atendimento"),
    ]
    assert select_candidates(LEAD, 1, roster, CONFIG, MONDAY_10H) == (1, 2)
    assert select_candidates(LEAD, 1, roster, CONFIG, MONDAY_20H) == (2,)


# =============================================================================
# EXPEDIENTE
# =============================================================================

def test_no_working_hours_means_always_on_duty():
    assert is_within_working_hours(None, MONDAY_20H, "America/Sao_Paulo")
    assert is_within_working_hours({}, MONDAY_20H, "America/Sao_Paulo")


def test_day_missing_or_disabled_is_off_duty():
    assert not is_within_working_hours({"tuesday": {"open": "08:00", "close": "18:00"}}, MONDAY_10H, "America/Sao_Paulo")
    assert not is_within_working_hours(
        {"monday": {"open": "08:00", "close": "18:00", "enabled": False}}, MONDAY_10H, "America/Sao_Paulo"
    )


def test_malformed_hours_are_treated_as_on_duty():
    assert is_within_working_hours({"monday": {"open": "xx", "close": ""}}, MONDAY_10H, "America/Sao_Paulo")


def test_parse_time():
    assert parse_time("08:30").hour == 8
    assert parse_time("08:30").minute == 30
    assert parse_time("abc") is None
    assert parse_time(None) is None


# =============================================================================
# CONFIGURAÇÃO
# =============================================================================

def test_sla_hours_fall_back_to_default():
    config = CascadePolicyConfig.from_dict({"tiers": CONFIG_TIERS}, default_sla_hours=24)
    assert config.sla_hours_for(1) == 1
    assert config.sla_hours_for(2) == 24
    assert config.sla_hours_for(5) == 24


def test_roles_are_normalized_to_lowercase():
    assert CONFIG.tier(1).roles == ("consultor", "corretor")


def test_default_config_has_two_tiers():
    config = CascadePolicyConfig.from_dict({})
    assert len(config.tiers) == 2
    assert config.tier(2).roles == ("gestor",)


def test_invalid_tier_config_raises():
    with pytest.raises(ConfigurationError):
        CascadePolicyConfig.from_dict({"tiers": ["atendimento"]})

    with pytest.raises(ConfigurationError):
        CascadePolicyConfig.from_dict({"tiers": [{"department": "x", "roles": [], "sla_hours": 0}]})
