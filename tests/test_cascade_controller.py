"""
TESTES - CASCADE CONTROLLER
============================

Operações da cascata contra um SQLite de verdade:
start, advance, finalize, fila do atendente e snapshot.
"""

from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from cascata.domain.entities import Cliente, NotificationType
from cascata.domain.exceptions import NotFoundError, StoreUnavailableError
from cascata.infrastructure.services.cascade_store import translate_store_errors
from cascata.infrastructure.services.cliente_service import get_cliente


async def load_cliente(session_factory, cliente_id) -> Cliente:
    async with session_factory() as session:
        return await get_cliente(session, cliente_id)


# =============================================================================
# START
# =============================================================================

async def test_start_creates_tier_one_batch(controller, team, make_cliente, notifier, clock):
    cliente_id, lead_id = await make_cliente()
    started = clock.now

    result = await controller.start_cascade(lead_id, cliente_id)

    assert not result.already_active
    assert not result.exhausted
    assert sorted(e.user_id for e in result.entries) == sorted([team.ana, team.bruno])
    for entry in result.entries:
        assert entry.sequencia == 1
        assert entry.status == "Ativo"
        assert entry.sla_horas == 1
        assert entry.iniciado_em == started
        assert entry.expira_em == started + timedelta(hours=1)
        assert entry.lead_id == lead_id

    # Avisos saem depois do commit, um por convocado
    assert sorted(n.user_id for n in notifier.sent) == sorted([team.ana, team.bruno])
    assert all(n.type == NotificationType.NEW_ASSIGNMENT for n in notifier.sent)


async def test_start_twice_is_a_noop_with_already_active_flag(controller, team, make_cliente):
    cliente_id, lead_id = await make_cliente()

    await controller.start_cascade(lead_id, cliente_id)
    second = await controller.start_cascade(lead_id, cliente_id)

    assert second.already_active
    assert second.entries == []

    snapshot = await controller.cascade_snapshot(cliente_id)
    assert len(snapshot.entries) == 2


async def test_start_unknown_cliente_raises_not_found(controller, team):
    with pytest.raises(NotFoundError):
        await controller.start_cascade(None, 999)


async def test_start_unknown_lead_raises_not_found(controller, team, make_cliente):
    cliente_id, _ = await make_cliente()

    with pytest.raises(NotFoundError):
        await controller.start_cascade(999, cliente_id)

    # Nada ficou aberto
    snapshot = await controller.cascade_snapshot(cliente_id)
    assert snapshot.lineage is None


async def test_start_without_candidates_exhausts_immediately(controller, make_cliente, session_factory):
    cliente_id, lead_id = await make_cliente()

    result = await controller.start_cascade(lead_id, cliente_id)

    assert result.exhausted
    assert result.entries == []

    snapshot = await controller.cascade_snapshot(cliente_id)
    assert snapshot.entries == []
    assert snapshot.lineage.status == "sem_atendimento"
    assert (await load_cliente(session_factory, cliente_id)).status == "Sem Atendimento"


async def test_start_after_finalize_opens_a_new_cascade(controller, team, make_cliente):
    cliente_id, lead_id = await make_cliente()

    await controller.start_cascade(lead_id, cliente_id)
    await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")

    again = await controller.start_cascade(lead_id, cliente_id)

    assert not again.already_active
    assert len(again.entries) == 2

    # Nova abertura recomeça no nível 1; o histórico guarda as duas
    assert {e.sequencia for e in again.entries} == {1}
    snapshot = await controller.cascade_snapshot(cliente_id)
    assert [e.sequencia for e in snapshot.entries] == [1, 1, 1, 1]
    assert len(snapshot.active) == 2


async def test_notification_failure_does_not_roll_back_entries(controller, team, make_cliente, notifier):
    notifier.failing_users = {team.ana}
    cliente_id, lead_id = await make_cliente()

    result = await controller.start_cascade(lead_id, cliente_id)

    assert len(result.entries) == 2
    assert [n.user_id for n in notifier.sent] == [team.bruno]

    queue = await controller.active_assignments_for(team.ana)
    assert [a.cliente_id for a in queue] == [cliente_id]


# =============================================================================
# ADVANCE
# =============================================================================

async def test_advance_expires_tier_and_creates_next(controller, team, make_cliente, clock):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    clock.advance(hours=1, minutes=1)
    result = await controller.advance_on_expiry(cliente_id, 1)

    assert not result.noop
    assert len(result.expired) == 2
    assert result.next_tier == 2
    assert [e.user_id for e in result.entries] == [team.marcos]
    assert result.entries[0].sla_horas == 2
    assert result.entries[0].expira_em == clock.now + timedelta(hours=2)

    snapshot = await controller.cascade_snapshot(cliente_id)
    tier_one = [e for e in snapshot.entries if e.sequencia == 1]
    assert all(e.motivo == "Expirado" for e in tier_one)
    assert snapshot.lineage.sequencia_atual == 2


async def test_advance_before_deadline_is_a_noop(controller, team, make_cliente, clock):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    clock.advance(minutes=30)
    result = await controller.advance_on_expiry(cliente_id, 1)

    assert result.noop
    assert len((await controller.cascade_snapshot(cliente_id)).active) == 2


async def test_advance_past_last_tier_exhausts(controller, team, make_cliente, clock, notifier, session_factory):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    clock.advance(hours=1, minutes=1)
    await controller.advance_on_expiry(cliente_id, 1)
    clock.advance(hours=2, minutes=1)
    result = await controller.advance_on_expiry(cliente_id, 2)

    assert result.exhausted
    assert result.entries == []

    snapshot = await controller.cascade_snapshot(cliente_id)
    assert snapshot.active == []
    assert snapshot.lineage.status == "sem_atendimento"
    assert snapshot.lineage.motivo == "SemAtendimento"
    assert (await load_cliente(session_factory, cliente_id)).status == "Sem Atendimento"

    # Gestor é avisado da cascata esgotada
    no_service = [n for n in notifier.sent if n.type == NotificationType.NO_SERVICE]
    assert [n.user_id for n in no_service] == [team.marcos]


# =============================================================================
# FINALIZE
# =============================================================================

async def test_finalize_resolves_owner_and_tags_siblings(
    controller, team, make_cliente, clock, notifier, session_factory
):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)
    notifier.sent.clear()

    clock.advance(minutes=20)
    result = await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")

    assert [row.user_id for row in result.owner] == [team.ana]
    assert [row.user_id for row in result.duplicates] == [team.bruno]

    snapshot = await controller.cascade_snapshot(cliente_id)
    by_user = {e.user_id: e for e in snapshot.entries}
    assert by_user[team.ana].motivo == "Resolvido"
    assert by_user[team.bruno].motivo == "Duplicado"
    assert all(e.finalizado_em == clock.now for e in snapshot.entries)
    assert snapshot.lineage.status == "finalizada"

    cliente = await load_cliente(session_factory, cliente_id)
    assert cliente.assigned_to == team.ana
    assert cliente.status == "Em Atendimento"

    assert [n.type for n in notifier.for_user(team.ana)] == [NotificationType.CASCADE_WON]
    assert [n.type for n in notifier.for_user(team.bruno)] == [NotificationType.CASCADE_LOST]


async def test_finalize_twice_is_idempotent(controller, team, make_cliente):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    first = await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")
    second = await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")

    assert first.finalized == 2
    assert second.noop
    assert second.notifications == []


async def test_finalize_cancel_does_not_assign_cliente(controller, team, make_cliente, session_factory):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    await controller.finalize_duplicates(cliente_id, team.bruno, "Cancelado")

    snapshot = await controller.cascade_snapshot(cliente_id)
    by_user = {e.user_id: e for e in snapshot.entries}
    assert by_user[team.bruno].motivo == "Cancelado"
    assert by_user[team.ana].motivo == "Duplicado"
    assert (await load_cliente(session_factory, cliente_id)).assigned_to is None


async def test_finalize_by_user_outside_cascade_tags_everyone_duplicate(controller, team, make_cliente, session_factory):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    result = await controller.finalize_duplicates(cliente_id, team.marcos, "Resolvido")

    assert result.owner == []
    assert len(result.duplicates) == 2
    assert (await controller.cascade_snapshot(cliente_id)).active == []
    assert (await load_cliente(session_factory, cliente_id)).assigned_to == team.marcos


async def test_resolution_after_escalation_assigns_cliente_to_actor(
    controller, team, make_cliente, clock, notifier, session_factory
):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)
    clock.advance(hours=1, seconds=1)
    await controller.advance_on_expiry(cliente_id, 1)
    notifier.sent.clear()

    # Ana agenda depois que o nível dela já expirou e o gestor foi convocado
    result = await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")

    assert result.owner == []
    assert [row.user_id for row in result.duplicates] == [team.marcos]

    cliente = await load_cliente(session_factory, cliente_id)
    assert cliente.assigned_to == team.ana
    assert cliente.status == "Em Atendimento"

    assert [n.type for n in notifier.for_user(team.ana)] == [NotificationType.CASCADE_WON]
    assert [n.type for n in notifier.for_user(team.marcos)] == [NotificationType.CASCADE_LOST]


async def test_finalize_is_a_single_update(controller, team, make_cliente, engine):
    cliente_id, lead_id = await make_cliente()
    await controller.start_cascade(lead_id, cliente_id)

    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("UPDATE CASCATA_ENTRADAS"):
            statements.append(statement)

    event.listen(engine.sync_engine, "before_cursor_execute", record)
    try:
        result = await controller.finalize_duplicates(cliente_id, team.ana, "Resolvido")
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", record)

    assert len(statements) == 1
    assert [row.user_id for row in result.owner] == [team.ana]
    assert [row.user_id for row in result.duplicates] == [team.bruno]


async def test_finalize_rejects_unknown_reason(controller, team, make_cliente):
    cliente_id, lead_id = await make_cliente()

    with pytest.raises(ValueError):
        await controller.finalize_duplicates(cliente_id, team.ana, "Qualquer")


# =============================================================================
# LEITURA
# =============================================================================

async def test_work_queue_is_ordered_by_deadline(controller, team, make_cliente, clock):
    base = clock.now
    late_id, late_lead = await make_cliente("Cliente Tarde")
    early_id, early_lead = await make_cliente("Cliente Cedo")

    clock.now = base + timedelta(minutes=30)
    await controller.start_cascade(late_lead, late_id)
    clock.now = base
    await controller.start_cascade(early_lead, early_id)

    queue = await controller.active_assignments_for(team.ana)

    assert [a.cliente_id for a in queue] == [early_id, late_id]
    assert queue[0].cliente_nome == "Cliente Cedo"
    assert queue[0].expira_em < queue[1].expira_em


async def test_snapshot_without_cliente_lists_active_entries_system_wide(controller, team, make_cliente):
    first_id, first_lead = await make_cliente("A")
    second_id, second_lead = await make_cliente("B")
    await controller.start_cascade(first_lead, first_id)
    await controller.start_cascade(second_lead, second_id)
    await controller.finalize_duplicates(first_id, team.ana, "Resolvido")

    snapshot = await controller.cascade_snapshot()

    assert snapshot.cliente_id is None
    assert {e.cliente_id for e in snapshot.entries} == {second_id}
    assert len(snapshot.active) == 2


async def test_snapshot_unknown_cliente_raises_not_found(controller):
    with pytest.raises(NotFoundError):
        await controller.cascade_snapshot(12345)


def test_database_errors_become_store_unavailable():
    with pytest.raises(StoreUnavailableError):
        with translate_store_errors():
            raise OperationalError("UPDATE cascata_entradas", {}, Exception("database is locked"))
