"""
TESTES - NOTIFICAÇÕES
=====================

Canais (painel, WhatsApp), composição e despacho pós-commit.
"""

from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import select

from cascata.domain.entities import Notification, NotificationType
from cascata.infrastructure.services.notification_service import (
    CascadeNotification,
    CompositeNotifier,
    DatabaseNotifier,
    NotificationDeliveryError,
    WhatsAppNotifier,
    build_new_assignment_notice,
    dispatch_notifications,
    format_datetime_br,
    format_phone_display,
)
from cascata.infrastructure.services.zapi_service import ZAPIService


def make_notice(user_id: int = 1, cliente_id: int = 10) -> CascadeNotification:
    return CascadeNotification(
        type=NotificationType.NEW_ASSIGNMENT,
        user_id=user_id,
        cliente_id=cliente_id,
        title="📥 Novo atendimento",
        message="Novo lead",
    )


class ExplodingNotifier:
    def __init__(self):
        self.calls = 0

    async def notify(self, notification):
        self.calls += 1
        raise RuntimeError("fora do ar")


class CountingNotifier:
    def __init__(self):
        self.received = []

    async def notify(self, notification):
        self.received.append(notification)


# =============================================================================
# FORMATAÇÃO
# =============================================================================

def test_format_phone_display():
    assert format_phone_display("11987654321") == "(11) 98765-4321"
    assert format_phone_display("5511987654321") == "(11) 98765-4321"
    assert format_phone_display("123") == "123"
    assert format_phone_display(None) == "Não informado"


def test_format_datetime_br_uses_local_timezone():
    dt = datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)
    assert format_datetime_br(dt) == "03/06/2024 às 10:00"
    assert format_datetime_br(None) == ""


def test_escalated_notice_mentions_tier():
    notice = build_new_assignment_notice(
        user_id=7,
        cliente_id=3,
        cliente_nome="Maria",
        cliente_phone="11987654321",
        sequencia=2,
        sla_horas=2,
        expira_em=datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc),
    )

    assert notice.type == NotificationType.NEW_ASSIGNMENT
    assert "nível 2" in notice.title
    assert "Maria" in notice.message
    assert "(11) 98765-4321" in notice.message


# =============================================================================
# DESPACHO
# =============================================================================

async def test_dispatch_swallows_failures():
    delivered = await dispatch_notifications(ExplodingNotifier(), [make_notice(1), make_notice(2)])
    assert delivered == 0


async def test_dispatch_counts_deliveries():
    notifier = CountingNotifier()
    delivered = await dispatch_notifications(notifier, [make_notice(1), make_notice(2)])

    assert delivered == 2
    assert [n.user_id for n in notifier.received] == [1, 2]


async def test_dispatch_without_notifier_is_noop():
    assert await dispatch_notifications(None, [make_notice()]) == 0


async def test_composite_isolates_failing_channel():
    broken, working = ExplodingNotifier(), CountingNotifier()
    composite = CompositeNotifier([broken, working])

    await composite.notify(make_notice())

    assert broken.calls == 1
    assert len(working.received) == 1


async def test_composite_raises_when_every_channel_fails():
    composite = CompositeNotifier([ExplodingNotifier(), ExplodingNotifier()])

    with pytest.raises(NotificationDeliveryError):
        await composite.notify(make_notice())


# =============================================================================
# CANAIS
# =============================================================================

async def test_database_notifier_writes_row(session_factory, team):
    await DatabaseNotifier(session_factory).notify(make_notice(user_id=team.ana, cliente_id=42))

    async with session_factory() as session:
        rows = (await session.execute(select(Notification))).scalars().all()

    assert len(rows) == 1
    assert rows[0].user_id == team.ana
    assert rows[0].type == NotificationType.NEW_ASSIGNMENT.value
    assert rows[0].reference_type == "cliente"
    assert rows[0].reference_id == 42
    assert rows[0].read is False


async def test_whatsapp_notifier_sends_to_user_phone(session_factory, team):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"zaapId": "abc", "messageId": "xyz"})

    zapi = ZAPIService("inst", "tok", transport=httpx.MockTransport(handler))
    await WhatsAppNotifier(zapi, session_factory).notify(make_notice(user_id=team.ana))

    assert len(requests) == 1
    assert requests[0].url.path == "/instances/inst/token/tok/send-text"
    assert b'"phone":"5511987654321"' in requests[0].content.replace(b" ", b"")


async def test_whatsapp_notifier_skips_user_without_phone(session_factory, team):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    zapi = ZAPIService("inst", "tok", transport=httpx.MockTransport(handler))
    await WhatsAppNotifier(zapi, session_factory).notify(make_notice(user_id=team.carla))

    assert requests == []


async def test_whatsapp_notifier_raises_on_rejection(session_factory, team):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="instance disconnected")

    zapi = ZAPIService("inst", "tok", transport=httpx.MockTransport(handler))

    with pytest.raises(NotificationDeliveryError):
        await WhatsAppNotifier(zapi, session_factory).notify(make_notice(user_id=team.bruno))


def test_zapi_requires_credentials():
    with pytest.raises(ValueError):
        ZAPIService("", "tok")
