"""
MÉTRICAS DA CASCATA
===================

Leitura pura sobre cascata_entradas. Nada aqui escreve no banco nem mantém
contador próprio: todo número é derivado das linhas.

- metrics_for: tempos por motivo, escalonamentos, taxas, por atendente
- user_ranking: ranking de atendentes no período
- conversion_by_source: resolvidos e expirados por origem do lead
- trends: série por dia, semana ou mês
- live_board: painel em tempo real (EXPIRADO / CRITICO / ALERTA / OK)
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from statistics import mean, median
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.config import get_settings
from cascata.domain.entities import CascadeReason, CascadeStatus, TimeStatus, User
from cascata.domain.timeutils import as_utc, utcnow
from cascata.infrastructure.services.cascade_store import CascadeStore

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30


# ============================================
# HELPERS
# ============================================

def resolve_period(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Período padrão: últimos 30 dias."""
    now = as_utc(now) or utcnow()
    end = as_utc(end) or now
    start = as_utc(start) or end - timedelta(days=DEFAULT_PERIOD_DAYS)
    return start, end


def response_minutes(iniciado_em: datetime, finalizado_em: datetime) -> float:
    return (as_utc(finalizado_em) - as_utc(iniciado_em)).total_seconds() / 60


def percentage(part: int, total: int) -> float:
    if not total:
        return 0.0
    return round(part / total * 100, 2)


def time_status(
    expira_em: datetime,
    now: datetime,
    critical_hours: Optional[int] = None,
    warning_hours: Optional[int] = None,
) -> TimeStatus:
    """Classifica o prazo restante de uma entrada ativa."""
    settings = get_settings()
    critical = critical_hours if critical_hours is not None else settings.cascade_critical_hours
    warning = warning_hours if warning_hours is not None else settings.cascade_warning_hours

    remaining = as_utc(expira_em) - as_utc(now)

    if remaining <= timedelta(0):
        return TimeStatus.EXPIRED
    if remaining <= timedelta(hours=critical):
        return TimeStatus.CRITICAL
    if remaining <= timedelta(hours=warning):
        return TimeStatus.WARNING
    return TimeStatus.OK


async def _user_names(db: AsyncSession, user_ids) -> Dict[int, dict]:
    if not user_ids:
        return {}
    result = await db.execute(
        select(User.id, User.username, User.full_name, User.role).where(User.id.in_(list(user_ids)))
    )
    return {
        row.id: {"username": row.username, "full_name": row.full_name, "role": row.role}
        for row in result.all()
    }


# ============================================
# MÉTRICAS DO PERÍODO
# ============================================

async def metrics_for(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """
    Consolida as entradas iniciadas no período.

    Taxas são calculadas sobre as entradas já finalizadas.
    """
    start, end = resolve_period(start, end)
    store = CascadeStore(db)
    entries = await store.entries_started_between(start, end)

    by_status = Counter(e.status for e in entries)
    finalized = [e for e in entries if e.status == CascadeStatus.FINALIZED.value]
    by_motivo = Counter(e.motivo for e in finalized)

    minutes_by_motivo: Dict[str, List[float]] = defaultdict(list)
    for entry in finalized:
        if entry.finalizado_em is not None:
            minutes_by_motivo[entry.motivo].append(response_minutes(entry.iniciado_em, entry.finalizado_em))

    tempo_por_motivo = {
        motivo: {
            "quantidade": len(values),
            "media_minutos": round(mean(values), 1),
            "mediana_minutos": round(median(values), 1),
        }
        for motivo, values in sorted(minutes_by_motivo.items())
    }

    resolved = [e for e in finalized if e.motivo == CascadeReason.RESOLVED.value]
    per_agent = Counter(e.user_id for e in resolved)
    names = await _user_names(db, per_agent.keys())

    resolvidos_por_atendente = [
        {
            "user_id": user_id,
            "full_name": names.get(user_id, {}).get("full_name"),
            "resolvidos": count,
        }
        for user_id, count in sorted(per_agent.items(), key=lambda item: (-item[1], item[0]))
    ]

    return {
        "periodo": {"inicio": start, "fim": end},
        "total": len(entries),
        "ativos": by_status.get(CascadeStatus.ACTIVE.value, 0),
        "finalizados": len(finalized),
        "por_motivo": dict(by_motivo),
        "tempo_por_motivo": tempo_por_motivo,
        "escalonamentos": sum(1 for e in entries if e.sequencia > 1),
        "resolvidos_primeiro_nivel": sum(1 for e in resolved if e.sequencia == 1),
        "resolvidos_escalonados": sum(1 for e in resolved if e.sequencia > 1),
        "taxa_resolucao": percentage(len(resolved), len(finalized)),
        "taxa_expiracao": percentage(by_motivo.get(CascadeReason.EXPIRED.value, 0), len(finalized)),
        "resolvidos_por_atendente": resolvidos_por_atendente,
        "sem_atendimento": await store.exhausted_lineages_between(start, end),
    }


# ============================================
# RANKING DE ATENDENTES
# ============================================

async def user_ranking(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    start, end = resolve_period(start, end)
    entries = await CascadeStore(db).entries_started_between(start, end)

    stats: Dict[int, dict] = {}
    response_times: Dict[int, List[float]] = defaultdict(list)
    sequence_sum: Counter = Counter()

    for entry in entries:
        user = stats.setdefault(entry.user_id, {
            "user_id": entry.user_id,
            "total": 0,
            "resolvidos": 0,
            "duplicados": 0,
            "expirados": 0,
            "cancelados": 0,
            "ativos": 0,
        })
        user["total"] += 1
        sequence_sum[entry.user_id] += entry.sequencia

        if entry.status == CascadeStatus.ACTIVE.value:
            user["ativos"] += 1
        elif entry.motivo == CascadeReason.RESOLVED.value:
            user["resolvidos"] += 1
            if entry.finalizado_em is not None:
                response_times[entry.user_id].append(
                    response_minutes(entry.iniciado_em, entry.finalizado_em)
                )
        elif entry.motivo == CascadeReason.DUPLICATE.value:
            user["duplicados"] += 1
        elif entry.motivo == CascadeReason.EXPIRED.value:
            user["expirados"] += 1
        elif entry.motivo == CascadeReason.CANCELLED.value:
            user["cancelados"] += 1

    names = await _user_names(db, stats.keys())

    ranking = []
    for user_id, user in stats.items():
        times = response_times.get(user_id)
        user.update(names.get(user_id, {}))
        user["taxa_resolucao"] = percentage(user["resolvidos"], user["total"])
        user["media_sequencia"] = round(sequence_sum[user_id] / user["total"], 2)
        user["tempo_medio_minutos"] = round(mean(times), 1) if times else None
        ranking.append(user)

    ranking.sort(key=lambda u: (-u["resolvidos"], -u["taxa_resolucao"], u["user_id"]))

    return {
        "periodo": {"inicio": start, "fim": end},
        "ranking": ranking,
        "total_usuarios": len(ranking),
    }


# ============================================
# CONVERSÃO POR ORIGEM DO LEAD
# ============================================

UNKNOWN_SOURCE = "Não informado"


async def conversion_by_source(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """Entradas do período agrupadas pela origem do lead (site, portal, indicação...)."""
    start, end = resolve_period(start, end)
    rows = await CascadeStore(db).entries_with_source_between(start, end)

    by_source: Dict[str, dict] = {}
    for source, status, motivo, sequencia in rows:
        fonte = source or UNKNOWN_SOURCE
        stat = by_source.setdefault(fonte, {
            "fonte": fonte,
            "total": 0,
            "resolvidos": 0,
            "expirados": 0,
            "soma_sequencia": 0,
        })
        stat["total"] += 1
        stat["soma_sequencia"] += sequencia or 1

        if status != CascadeStatus.FINALIZED.value:
            continue
        if motivo == CascadeReason.RESOLVED.value:
            stat["resolvidos"] += 1
        elif motivo == CascadeReason.EXPIRED.value:
            stat["expirados"] += 1

    fontes = []
    for stat in by_source.values():
        soma = stat.pop("soma_sequencia")
        stat["taxa_conversao"] = percentage(stat["resolvidos"], stat["total"])
        stat["media_sequencia"] = round(soma / stat["total"], 2)
        fontes.append(stat)

    fontes.sort(key=lambda s: (-s["total"], s["fonte"]))

    return {
        "periodo": {"inicio": start, "fim": end},
        "fontes": fontes,
        "total": len(fontes),
    }


# ============================================
# TENDÊNCIAS (GRÁFICO DE LINHA)
# ============================================

TREND_PERIODS = ("day", "week", "month")


def trend_bucket(moment: datetime, period: str) -> str:
    """
    Chave do agrupamento, em UTC.

    day → 2024-06-03 | week → domingo que abre a semana | month → 2024-06
    """
    moment = as_utc(moment)
    if period == "day":
        return moment.date().isoformat()
    if period == "week":
        sunday = moment.date() - timedelta(days=(moment.weekday() + 1) % 7)
        return sunday.isoformat()
    if period == "month":
        return f"{moment.year}-{moment.month:02d}"
    raise ValueError(f"Período inválido: {period} (use {', '.join(TREND_PERIODS)})")


async def trends(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    period: str = "day",
) -> dict:
    if period not in TREND_PERIODS:
        raise ValueError(f"Período inválido: {period}")

    start, end = resolve_period(start, end)
    entries = await CascadeStore(db).entries_started_between(start, end)

    buckets: Dict[str, dict] = {}
    for entry in entries:
        key = trend_bucket(entry.iniciado_em, period)
        bucket = buckets.setdefault(key, {
            "periodo": key,
            "total": 0,
            "resolvidos": 0,
            "expirados": 0,
            "ativos": 0,
        })
        bucket["total"] += 1

        if entry.status == CascadeStatus.ACTIVE.value:
            bucket["ativos"] += 1
        elif entry.motivo == CascadeReason.RESOLVED.value:
            bucket["resolvidos"] += 1
        elif entry.motivo == CascadeReason.EXPIRED.value:
            bucket["expirados"] += 1

    return {
        "periodo": {"inicio": start, "fim": end},
        "agrupamento": period,
        "tendencias": [buckets[key] for key in sorted(buckets)],
    }


# ============================================
# PAINEL EM TEMPO REAL
# ============================================

async def live_board(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """Entradas ativas com horas restantes e resumo por situação do prazo."""
    now = as_utc(now) or utcnow()
    active = await CascadeStore(db).list_entries()

    atendimentos = []
    for view in active:
        remaining_hours = (view.expira_em - now).total_seconds() / 3600
        atendimentos.append({
            "id": view.id,
            "cliente_id": view.cliente_id,
            "cliente_nome": view.cliente_nome,
            "cliente_phone": view.cliente_phone,
            "lead_id": view.lead_id,
            "user_id": view.user_id,
            "sequencia": view.sequencia,
            "sla_horas": view.sla_horas,
            "iniciado_em": view.iniciado_em,
            "expira_em": view.expira_em,
            "horas_restantes": max(0.0, round(remaining_hours, 1)),
            "status_tempo": time_status(view.expira_em, now).value,
        })

    summary = Counter(a["status_tempo"] for a in atendimentos)
    return {
        "atendimentos": atendimentos,
        "resumo": {
            "total": len(atendimentos),
            "expirados": summary.get(TimeStatus.EXPIRED.value, 0),
            "criticos": summary.get(TimeStatus.CRITICAL.value, 0),
            "alertas": summary.get(TimeStatus.WARNING.value, 0),
            "ok": summary.get(TimeStatus.OK.value, 0),
        },
    }
