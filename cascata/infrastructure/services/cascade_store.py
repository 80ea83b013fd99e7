"""
CASCADE STORE
=============

Única fonte de verdade da cascata. Toda mutação é um UPDATE condicional
(`WHERE status = 'Ativo'`) e quem recebe linhas afetadas é quem venceu.
Zero linhas = outro processo já tratou: sucesso sem efeito, não é erro.

Trabalha sempre na sessão/transação de quem chama.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.domain.entities import (
    CascadeEntry,
    CascadeLineage,
    CascadeReason,
    CascadeStatus,
    Cliente,
    Lead,
    LineageStatus,
)
from cascata.domain.exceptions import StoreUnavailableError
from cascata.domain.timeutils import as_utc

logger = logging.getLogger(__name__)

ACTIVE = CascadeStatus.ACTIVE.value
FINALIZED = CascadeStatus.FINALIZED.value


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Converte falha de conexão/lock do banco em StoreUnavailableError."""
    try:
        yield
    except OperationalError as e:
        raise StoreUnavailableError(f"Banco indisponível: {e.orig}") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise StoreUnavailableError(f"Conexão com o banco perdida: {e.orig}") from e
        raise


@dataclass(frozen=True)
class FinalizedRow:
    id: int
    user_id: int
    lead_id: Optional[int]
    sequencia: int


@dataclass
class FinalizeOutcome:
    """Resultado do finalize de um cliente: a entrada do autor e as irmãs."""

    owner: List[FinalizedRow] = field(default_factory=list)
    duplicates: List[FinalizedRow] = field(default_factory=list)

    @property
    def finalized(self) -> int:
        return len(self.owner) + len(self.duplicates)


@dataclass(frozen=True)
class AssignmentView:
    """Entrada da cascata com dados do cliente (fila e painel)."""

    id: int
    cliente_id: int
    lead_id: Optional[int]
    user_id: int
    sequencia: int
    status: str
    sla_horas: int
    iniciado_em: datetime
    expira_em: datetime
    finalizado_em: Optional[datetime]
    motivo: Optional[str]
    cliente_nome: Optional[str] = None
    cliente_phone: Optional[str] = None


class CascadeStore:
    """Acesso às tabelas cascata_entradas / cascata_linhagens."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # LINHAGEM (uma cascata aberta por cliente)
    # =========================================================================

    async def get_lineage(self, cliente_id: int) -> Optional[CascadeLineage]:
        result = await self.db.execute(
            select(CascadeLineage).where(CascadeLineage.cliente_id == cliente_id)
        )
        return result.scalar_one_or_none()

    async def open_lineage(self, cliente_id: int, lead_id: Optional[int], now: datetime) -> bool:
        """
        Abre a cascata do cliente. False se já existe uma aberta.
        Reabrir recomeça em sequencia_atual = 1.

        Reabre linhagem encerrada com UPDATE condicional; cria com INSERT
        protegido pela chave primária (cliente_id).
        """
        result = await self.db.execute(
            update(CascadeLineage)
            .where(CascadeLineage.cliente_id == cliente_id)
            .where(CascadeLineage.status != LineageStatus.OPEN.value)
            .values(
                status=LineageStatus.OPEN.value,
                lead_id=lead_id,
                sequencia_atual=1,
                aberta_em=now,
                encerrada_em=None,
                motivo=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return True

        if await self.get_lineage(cliente_id) is not None:
            return False

        # Dados legados: entradas ativas sem linhagem também contam como cascata aberta
        if await self.has_active_entries(cliente_id):
            return False

        try:
            async with self.db.begin_nested():
                self.db.add(CascadeLineage(
                    cliente_id=cliente_id,
                    lead_id=lead_id,
                    status=LineageStatus.OPEN.value,
                    sequencia_atual=1,
                    aberta_em=now,
                ))
        except IntegrityError:
            logger.info(f"🔁 Cliente {cliente_id}: linhagem criada em paralelo por outro processo")
            return False

        return True

    async def advance_lineage(self, cliente_id: int, from_tier: int, to_tier: int) -> bool:
        result = await self.db.execute(
            update(CascadeLineage)
            .where(CascadeLineage.cliente_id == cliente_id)
            .where(CascadeLineage.status == LineageStatus.OPEN.value)
            .where(CascadeLineage.sequencia_atual == from_tier)
            .values(sequencia_atual=to_tier)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def close_lineage(
        self,
        cliente_id: int,
        status: LineageStatus,
        motivo: str,
        now: datetime,
    ) -> bool:
        result = await self.db.execute(
            update(CascadeLineage)
            .where(CascadeLineage.cliente_id == cliente_id)
            .where(CascadeLineage.status == LineageStatus.OPEN.value)
            .values(status=status.value, motivo=motivo, encerrada_em=now)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    # =========================================================================
    # CRIAÇÃO
    # =========================================================================

    async def insert_batch(
        self,
        cliente_id: int,
        lead_id: Optional[int],
        user_ids: Sequence[int],
        sequencia: int,
        sla_horas: int,
        now: datetime,
    ) -> List[CascadeEntry]:
        """Um lote = um nível. Mesmo iniciado_em e expira_em para todos."""
        expira_em = now + timedelta(hours=sla_horas)
        entries = [
            CascadeEntry(
                cliente_id=cliente_id,
                lead_id=lead_id,
                user_id=user_id,
                sequencia=sequencia,
                status=ACTIVE,
                sla_horas=sla_horas,
                iniciado_em=now,
                expira_em=expira_em,
            )
            for user_id in user_ids
        ]
        self.db.add_all(entries)
        await self.db.flush()
        return entries

    # =========================================================================
    # FINALIZAÇÃO (compare-and-swap em status)
    # =========================================================================

    async def expire_tier(self, cliente_id: int, sequencia: int, now: datetime) -> List[FinalizedRow]:
        """Finaliza como Expirado as entradas ativas e vencidas do nível."""
        result = await self.db.execute(
            update(CascadeEntry)
            .where(CascadeEntry.cliente_id == cliente_id)
            .where(CascadeEntry.sequencia == sequencia)
            .where(CascadeEntry.status == ACTIVE)
            .where(CascadeEntry.expira_em <= now)
            .values(status=FINALIZED, finalizado_em=now, motivo=CascadeReason.EXPIRED.value)
            .returning(CascadeEntry.id, CascadeEntry.user_id, CascadeEntry.lead_id, CascadeEntry.sequencia)
            .execution_options(synchronize_session=False)
        )
        return [FinalizedRow(*row) for row in result.all()]

    async def finalize_active_for_cliente(
        self,
        cliente_id: int,
        user_id: int,
        motivo: str,
        now: datetime,
    ) -> FinalizeOutcome:
        """
        Finaliza TODAS as entradas ativas do cliente num único UPDATE.

        A(s) entrada(s) de `user_id` recebe(m) o motivo informado,
        as demais ficam como Duplicado.
        """
        result = await self.db.execute(
            update(CascadeEntry)
            .where(CascadeEntry.cliente_id == cliente_id)
            .where(CascadeEntry.status == ACTIVE)
            .values(
                status=FINALIZED,
                finalizado_em=now,
                motivo=case(
                    (CascadeEntry.user_id == user_id, motivo),
                    else_=CascadeReason.DUPLICATE.value,
                ),
            )
            .returning(
                CascadeEntry.id,
                CascadeEntry.user_id,
                CascadeEntry.lead_id,
                CascadeEntry.sequencia,
            )
            .execution_options(synchronize_session=False)
        )

        outcome = FinalizeOutcome()
        for row in sorted((FinalizedRow(*r) for r in result.all()), key=lambda r: r.id):
            if row.user_id == user_id:
                outcome.owner.append(row)
            else:
                outcome.duplicates.append(row)
        return outcome

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    async def has_active_entries(self, cliente_id: int) -> bool:
        result = await self.db.execute(
            select(CascadeEntry.id)
            .where(CascadeEntry.cliente_id == cliente_id)
            .where(CascadeEntry.status == ACTIVE)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    def _view_query(self):
        return (
            select(CascadeEntry, Cliente.full_name, Cliente.phone)
            .outerjoin(Cliente, Cliente.id == CascadeEntry.cliente_id)
        )

    @staticmethod
    def _to_view(entry: CascadeEntry, nome: Optional[str], phone: Optional[str]) -> AssignmentView:
        return AssignmentView(
            id=entry.id,
            cliente_id=entry.cliente_id,
            lead_id=entry.lead_id,
            user_id=entry.user_id,
            sequencia=entry.sequencia,
            status=entry.status,
            sla_horas=entry.sla_horas,
            iniciado_em=as_utc(entry.iniciado_em),
            expira_em=as_utc(entry.expira_em),
            finalizado_em=as_utc(entry.finalizado_em),
            motivo=entry.motivo,
            cliente_nome=nome,
            cliente_phone=phone,
        )

    async def list_active_for_user(self, user_id: int) -> List[AssignmentView]:
        """Fila do atendente: o que vence primeiro vem primeiro."""
        result = await self.db.execute(
            self._view_query()
            .where(CascadeEntry.user_id == user_id)
            .where(CascadeEntry.status == ACTIVE)
            .order_by(CascadeEntry.expira_em.asc(), CascadeEntry.id.asc())
        )
        return [self._to_view(*row) for row in result.all()]

    async def list_entries(self, cliente_id: Optional[int] = None) -> List[AssignmentView]:
        """
        Sem cliente: todas as entradas ativas do sistema.
        Com cliente: histórico completo do cliente.
        """
        query = self._view_query()

        if cliente_id is None:
            query = query.where(CascadeEntry.status == ACTIVE).order_by(
                CascadeEntry.expira_em.asc(), CascadeEntry.id.asc()
            )
        else:
            query = query.where(CascadeEntry.cliente_id == cliente_id).order_by(
                CascadeEntry.sequencia.asc(), CascadeEntry.id.asc()
            )

        result = await self.db.execute(query)
        return [self._to_view(*row) for row in result.all()]

    async def overdue_pairs(self, now: datetime, limit: Optional[int] = None) -> List[Tuple[int, int]]:
        """Pares distintos (cliente_id, sequencia) ativos e vencidos."""
        query = (
            select(CascadeEntry.cliente_id, CascadeEntry.sequencia)
            .where(CascadeEntry.status == ACTIVE)
            .where(CascadeEntry.expira_em < now)
            .distinct()
            .order_by(CascadeEntry.cliente_id, CascadeEntry.sequencia)
        )
        if limit:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return [(cliente_id, sequencia) for cliente_id, sequencia in result.all()]

    async def entries_started_between(self, start: datetime, end: datetime) -> List[CascadeEntry]:
        result = await self.db.execute(
            select(CascadeEntry)
            .where(and_(CascadeEntry.iniciado_em >= start, CascadeEntry.iniciado_em <= end))
            .order_by(CascadeEntry.id)
        )
        return list(result.scalars().all())

    async def entries_with_source_between(self, start: datetime, end: datetime) -> List[Tuple]:
        """(origem do lead, status, motivo, sequencia) das entradas iniciadas no período."""
        result = await self.db.execute(
            select(Lead.source, CascadeEntry.status, CascadeEntry.motivo, CascadeEntry.sequencia)
            .select_from(CascadeEntry)
            .outerjoin(Lead, Lead.id == CascadeEntry.lead_id)
            .where(and_(CascadeEntry.iniciado_em >= start, CascadeEntry.iniciado_em <= end))
            .order_by(CascadeEntry.id)
        )
        return [tuple(row) for row in result.all()]

    async def exhausted_lineages_between(self, start: datetime, end: datetime) -> int:
        result = await self.db.execute(
            select(CascadeLineage.cliente_id)
            .where(CascadeLineage.status == LineageStatus.EXHAUSTED.value)
            .where(CascadeLineage.encerrada_em >= start)
            .where(CascadeLineage.encerrada_em <= end)
        )
        return len(result.all())
