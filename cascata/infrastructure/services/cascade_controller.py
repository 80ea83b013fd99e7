"""
CASCADE CONTROLLER - SLA EM CASCATA
====================================

Orquestra a cascata de atendimento de um cliente:

1. start_cascade      → abre a linhagem e convoca o nível 1 (em paralelo)
2. advance_on_expiry  → (só o sweeper) expira o nível e convoca o próximo
3. finalize_duplicates → alguém agiu: finaliza TODAS as entradas ativas
4. active_assignments_for / cascade_snapshot → leitura

Cada operação de escrita roda em UMA transação. Avisos (painel/WhatsApp)
só saem depois do commit e nunca derrubam a transição.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cascata.domain.entities import (
    CascadeEntry,
    CascadeLineage,
    CascadeReason,
    CascadeStatus,
    ClienteStatus,
    LineageStatus,
    UserRole,
)
from cascata.domain.services.assignment_policy import (
    CascadePolicyConfig,
    LeadContext,
    select_candidates,
)
from cascata.domain.timeutils import utcnow
from cascata.infrastructure.services.agent_directory import list_on_duty_agents, list_users_by_role
from cascata.infrastructure.services.cascade_config_service import get_cascade_config
from cascata.infrastructure.services.cascade_store import (
    AssignmentView,
    CascadeStore,
    FinalizedRow,
    translate_store_errors,
)
from cascata.infrastructure.services.cliente_service import (
    assign_cliente,
    get_cliente,
    get_lead,
    link_lead_to_cliente,
    update_cliente_status,
)
from cascata.infrastructure.services.notification_service import (
    CascadeNotification,
    Notifier,
    build_lost_notice,
    build_new_assignment_notice,
    build_no_service_notice,
    build_won_notice,
    dispatch_notifications,
)

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[AsyncSession], Awaitable[CascadePolicyConfig]]


# =============================================================================
# RESULTADOS
# =============================================================================

@dataclass
class StartResult:
    cliente_id: int
    lead_id: Optional[int]
    already_active: bool = False
    exhausted: bool = False
    entries: List[CascadeEntry] = field(default_factory=list)
    notifications: List[CascadeNotification] = field(default_factory=list)


@dataclass
class AdvanceResult:
    cliente_id: int
    tier: int
    noop: bool = False
    expired: List[FinalizedRow] = field(default_factory=list)
    next_tier: Optional[int] = None
    exhausted: bool = False
    entries: List[CascadeEntry] = field(default_factory=list)
    notifications: List[CascadeNotification] = field(default_factory=list)


@dataclass
class FinalizeResult:
    cliente_id: int
    user_id: int
    motivo: str
    owner: List[FinalizedRow] = field(default_factory=list)
    duplicates: List[FinalizedRow] = field(default_factory=list)
    notifications: List[CascadeNotification] = field(default_factory=list)

    @property
    def finalized(self) -> int:
        return len(self.owner) + len(self.duplicates)

    @property
    def noop(self) -> bool:
        return self.finalized == 0


@dataclass
class CascadeSnapshot:
    cliente_id: Optional[int]
    entries: List[AssignmentView]
    lineage: Optional[CascadeLineage] = None

    @property
    def active(self) -> List[AssignmentView]:
        return [e for e in self.entries if e.status == CascadeStatus.ACTIVE.value]


# =============================================================================
# CONTROLLER
# =============================================================================

class CascadeController:
    """Operações da cascata. Sem estado próprio: tudo vive no banco."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        config_loader: ConfigLoader = get_cascade_config,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock
        self.config_loader = config_loader

    # -------------------------------------------------------------------------
    # START
    # -------------------------------------------------------------------------

    async def start_cascade(
        self,
        lead_id: Optional[int],
        cliente_id: int,
        dispatch: bool = True,
    ) -> StartResult:
        """
        Abre a cascata do cliente e convoca o nível 1.

        Já existe cascata aberta → already_active=True, nada é criado.
        Nível 1 sem ninguém elegível → exhausted=True (cliente "Sem Atendimento").
        """
        now = self.clock()
        result = StartResult(cliente_id=cliente_id, lead_id=lead_id)

        with translate_store_errors():
            async with self.session_factory() as session:
                async with session.begin():
                    cliente = await get_cliente(session, cliente_id)
                    lead = await get_lead(session, lead_id) if lead_id is not None else None
                    store = CascadeStore(session)

                    if not await store.open_lineage(cliente_id, lead_id, now):
                        logger.info(f"🔁 Cliente {cliente_id} já tem cascata aberta, nada a fazer")
                        result.already_active = True
                        return result

                    if lead is not None:
                        await link_lead_to_cliente(session, lead, cliente_id)

                    context = LeadContext(
                        lead_id=lead_id,
                        cliente_id=cliente_id,
                        name=lead.name if lead else cliente.full_name,
                        phone=lead.phone if lead else cliente.phone,
                        source=lead.source if lead else None,
                    )
                    config = await self.config_loader(session)
                    candidates = await self._candidates(session, config, context, 1, now)

                    if not candidates:
                        result.exhausted = True
                        result.notifications = await self._exhaust(
                            session, store, cliente_id, cliente.full_name, cliente.phone, 1, now
                        )
                    else:
                        sla_horas = config.sla_hours_for(1)
                        result.entries = await store.insert_batch(
                            cliente_id, lead_id, candidates, 1, sla_horas, now
                        )
                        result.notifications = [
                            build_new_assignment_notice(
                                user_id=entry.user_id,
                                cliente_id=cliente_id,
                                cliente_nome=cliente.full_name,
                                cliente_phone=cliente.phone,
                                sequencia=1,
                                sla_horas=sla_horas,
                                expira_em=entry.expira_em,
                                lead_id=lead_id,
                            )
                            for entry in result.entries
                        ]
                        logger.info(
                            f"🚀 Cascata iniciada: cliente {cliente_id}, lead {lead_id}, "
                            f"nível 1 → {len(candidates)} atendente(s), SLA {sla_horas}h",
                            extra={"cascata": {"cliente_id": cliente_id, "sequencia": 1, "usuarios": list(candidates)}},
                        )

        if dispatch:
            await self.dispatch(result.notifications)
        return result

    # -------------------------------------------------------------------------
    # ADVANCE (sweeper)
    # -------------------------------------------------------------------------

    async def advance_on_expiry(self, cliente_id: int, tier: int, dispatch: bool = True) -> AdvanceResult:
        """
        Expira o nível `tier` e convoca o próximo (ou esgota a cascata).

        Se outro processo já tratou o nível (finalize ou outro sweeper),
        o UPDATE não afeta linhas e a chamada vira no-op.
        """
        now = self.clock()
        result = AdvanceResult(cliente_id=cliente_id, tier=tier)

        with translate_store_errors():
            async with self.session_factory() as session:
                async with session.begin():
                    store = CascadeStore(session)
                    result.expired = await store.expire_tier(cliente_id, tier, now)

                    if not result.expired:
                        logger.info(f"⏭️ Cliente {cliente_id} nível {tier}: já tratado, no-op")
                        result.noop = True
                        return result

                    logger.info(
                        f"⏰ Cliente {cliente_id} nível {tier}: "
                        f"{len(result.expired)} entrada(s) expirada(s)"
                    )

                    if await store.has_active_entries(cliente_id):
                        logger.warning(
                            f"⚠️ Cliente {cliente_id} ainda tem entradas ativas de outro nível, "
                            f"próximo nível não será criado"
                        )
                        return result

                    next_tier = tier + 1
                    await store.advance_lineage(cliente_id, tier, next_tier)

                    lead_id = result.expired[0].lead_id
                    cliente = await get_cliente(session, cliente_id)
                    context = LeadContext(
                        lead_id=lead_id,
                        cliente_id=cliente_id,
                        name=cliente.full_name,
                        phone=cliente.phone,
                    )
                    config = await self.config_loader(session)
                    candidates = await self._candidates(session, config, context, next_tier, now)

                    if not candidates:
                        result.exhausted = True
                        result.notifications = await self._exhaust(
                            session, store, cliente_id, cliente.full_name, cliente.phone, tier, now
                        )
                    else:
                        sla_horas = config.sla_hours_for(next_tier)
                        result.next_tier = next_tier
                        result.entries = await store.insert_batch(
                            cliente_id, lead_id, candidates, next_tier, sla_horas, now
                        )
                        result.notifications = [
                            build_new_assignment_notice(
                                user_id=entry.user_id,
                                cliente_id=cliente_id,
                                cliente_nome=cliente.full_name,
                                cliente_phone=cliente.phone,
                                sequencia=next_tier,
                                sla_horas=sla_horas,
                                expira_em=entry.expira_em,
                                lead_id=lead_id,
                            )
                            for entry in result.entries
                        ]
                        logger.info(
                            f"⏫ Cliente {cliente_id} escalado para nível {next_tier}: "
                            f"{len(candidates)} atendente(s), SLA {sla_horas}h",
                            extra={"cascata": {"cliente_id": cliente_id, "sequencia": next_tier, "usuarios": list(candidates)}},
                        )

        if dispatch:
            await self.dispatch(result.notifications)
        return result

    # -------------------------------------------------------------------------
    # FINALIZE
    # -------------------------------------------------------------------------

    async def finalize_duplicates(
        self,
        cliente_id: int,
        user_id: int,
        motivo: Union[CascadeReason, str] = CascadeReason.RESOLVED,
        dispatch: bool = True,
    ) -> FinalizeResult:
        """
        Finaliza todas as entradas ativas do cliente num único passo.

        Entrada de `user_id` recebe `motivo`; as demais, Duplicado.
        Nada ativo (webhook repetido, corrida perdida) → no-op.
        """
        motivo = CascadeReason(motivo).value
        now = self.clock()
        result = FinalizeResult(cliente_id=cliente_id, user_id=user_id, motivo=motivo)

        with translate_store_errors():
            async with self.session_factory() as session:
                async with session.begin():
                    cliente = await get_cliente(session, cliente_id)
                    store = CascadeStore(session)

                    outcome = await store.finalize_active_for_cliente(cliente_id, user_id, motivo, now)
                    result.owner = outcome.owner
                    result.duplicates = outcome.duplicates

                    if result.noop:
                        logger.info(f"⏭️ Cliente {cliente_id}: nenhuma entrada ativa para finalizar")
                        return result

                    await store.close_lineage(cliente_id, LineageStatus.CLOSED, motivo, now)

                    # Resolvido sempre fica com quem agiu, mesmo que o nível dele já tenha expirado
                    if motivo == CascadeReason.RESOLVED.value:
                        await assign_cliente(session, cliente_id, user_id)
                        result.notifications.append(
                            build_won_notice(user_id, cliente_id, cliente.full_name)
                        )
                        losers = sorted({row.user_id for row in result.duplicates} - {user_id})
                        result.notifications.extend(
                            build_lost_notice(loser, cliente_id, cliente.full_name) for loser in losers
                        )

                    logger.info(
                        f"✅ Cliente {cliente_id} finalizado por usuário {user_id} ({motivo}): "
                        f"{len(result.owner)} própria(s), {len(result.duplicates)} duplicada(s)",
                        extra={"cascata": {"cliente_id": cliente_id, "user_id": user_id, "motivo": motivo}},
                    )

        if dispatch:
            await self.dispatch(result.notifications)
        return result

    # -------------------------------------------------------------------------
    # LEITURA
    # -------------------------------------------------------------------------

    async def active_assignments_for(self, user_id: int) -> List[AssignmentView]:
        """Fila do atendente, o que vence primeiro no topo."""
        with translate_store_errors():
            async with self.session_factory() as session:
                return await CascadeStore(session).list_active_for_user(user_id)

    async def cascade_snapshot(self, cliente_id: Optional[int] = None) -> CascadeSnapshot:
        with translate_store_errors():
            async with self.session_factory() as session:
                store = CascadeStore(session)
                if cliente_id is not None:
                    await get_cliente(session, cliente_id)
                    return CascadeSnapshot(
                        cliente_id=cliente_id,
                        entries=await store.list_entries(cliente_id),
                        lineage=await store.get_lineage(cliente_id),
                    )
                return CascadeSnapshot(cliente_id=None, entries=await store.list_entries())

    async def dispatch(self, notifications: Sequence[CascadeNotification]) -> int:
        return await dispatch_notifications(self.notifier, notifications)

    # -------------------------------------------------------------------------
    # INTERNOS
    # -------------------------------------------------------------------------

    async def _candidates(
        self,
        session: AsyncSession,
        config: CascadePolicyConfig,
        context: LeadContext,
        tier: int,
        now: datetime,
    ) -> Tuple[int, ...]:
        tier_config = config.tier(tier)
        if tier_config is None:
            return ()

        roster = await list_on_duty_agents(session, tier_config.department)
        return select_candidates(context, tier, roster, config, now)

    async def _exhaust(
        self,
        session: AsyncSession,
        store: CascadeStore,
        cliente_id: int,
        cliente_nome: str,
        cliente_phone: Optional[str],
        last_tier: int,
        now: datetime,
    ) -> List[CascadeNotification]:
        """Cascata esgotada: marca a linhagem e o cliente, avisa os gestores."""
        await store.close_lineage(cliente_id, LineageStatus.EXHAUSTED, CascadeReason.NO_SERVICE.value, now)
        await update_cliente_status(session, cliente_id, ClienteStatus.NO_SERVICE)

        managers = await list_users_by_role(session, UserRole.MANAGER.value)
        logger.warning(
            f"🚨 Cliente {cliente_id} sem atendimento após nível {last_tier} "
            f"({len(managers)} gestor(es) avisado(s))"
        )
        return [
            build_no_service_notice(manager_id, cliente_id, cliente_nome, cliente_phone, last_tier)
            for manager_id in managers
        ]


# =============================================================================
# INSTÂNCIA GLOBAL
# =============================================================================

_cascade_controller: Optional[CascadeController] = None


def get_cascade_controller() -> CascadeController:
    """Controller com a sessão e os canais de aviso da aplicação."""
    global _cascade_controller
    if _cascade_controller is None:
        from cascata.config import get_settings
        from cascata.infrastructure.database import async_session
        from cascata.infrastructure.services.notification_service import build_notifier

        _cascade_controller = CascadeController(async_session, build_notifier(async_session, get_settings()))
    return _cascade_controller
