"""
NOTIFICATION SERVICE (PAINEL + WHATSAPP)
========================================

Avisos da cascata para a equipe. SEMPRE depois do commit da transição:
falha aqui é registrada no log e nunca desfaz nem bloqueia a cascata.

Canais:
1. Painel (tabela notifications)
2. WhatsApp (Z-API), quando configurado
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cascata.config import Settings
from cascata.domain.entities import Notification, NotificationType, User
from cascata.domain.exceptions import CascataError
from cascata.infrastructure.services.zapi_service import ZAPIService

logger = logging.getLogger(__name__)


class NotificationDeliveryError(CascataError):
    """Canal não conseguiu entregar o aviso."""

    pass


# =============================================================================
# EVENTO
# =============================================================================

@dataclass(frozen=True)
class CascadeNotification:
    """Aviso gerado por uma transição da cascata (emitido pós-commit)."""

    type: NotificationType
    user_id: int
    cliente_id: int
    title: str
    message: str
    lead_id: Optional[int] = None
    sequencia: Optional[int] = None


# =============================================================================
# FORMATAÇÃO
# =============================================================================

def format_phone_display(phone: Optional[str]) -> str:
    """Formata telefone para exibição amigável."""
    if not phone:
        return "Não informado"

    digits = "".join(filter(str.isdigit, phone))

    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    elif len(digits) == 13 and digits.startswith("55"):
        return f"({digits[2:4]}) {digits[4:9]}-{digits[9:]}"

    return phone


def format_datetime_br(dt: Optional[datetime], tz_name: str = "America/Sao_Paulo") -> str:
    """Formata datetime para o padrão brasileiro, no fuso local."""
    if not dt:
        return ""
    if dt.tzinfo is not None:
        dt = dt.astimezone(ZoneInfo(tz_name))
    return dt.strftime("%d/%m/%Y às %H:%M")


def build_new_assignment_notice(
    user_id: int,
    cliente_id: int,
    cliente_nome: str,
    cliente_phone: Optional[str],
    sequencia: int,
    sla_horas: int,
    expira_em: datetime,
    lead_id: Optional[int] = None,
) -> CascadeNotification:
    if sequencia == 1:
        title = "📥 Novo atendimento"
        header = "*NOVO LEAD PARA ATENDIMENTO*"
    else:
        title = f"⏫ Atendimento escalado (nível {sequencia})"
        header = f"*LEAD ESCALADO - NÍVEL {sequencia}*"

    message = (
        f"🔥 {header}\n\n"
        f"👤 *Cliente:* {cliente_nome}\n"
        f"📱 *Telefone:* {format_phone_display(cliente_phone)}\n"
        f"⏰ *Prazo:* {sla_horas}h (até {format_datetime_br(expira_em)})\n\n"
        f"💡 O primeiro que agendar fica com o cliente!"
    )
    return CascadeNotification(
        type=NotificationType.NEW_ASSIGNMENT,
        user_id=user_id,
        cliente_id=cliente_id,
        title=title,
        message=message,
        lead_id=lead_id,
        sequencia=sequencia,
    )


def build_won_notice(user_id: int, cliente_id: int, cliente_nome: str) -> CascadeNotification:
    return CascadeNotification(
        type=NotificationType.CASCADE_WON,
        user_id=user_id,
        cliente_id=cliente_id,
        title="🎉 Cliente é seu!",
        message=(
            f"🎉 *Parabéns!*\n\n"
            f"Você assumiu o cliente *{cliente_nome}*.\n"
            f"As outras convocações foram finalizadas automaticamente."
        ),
    )


def build_lost_notice(user_id: int, cliente_id: int, cliente_nome: str) -> CascadeNotification:
    return CascadeNotification(
        type=NotificationType.CASCADE_LOST,
        user_id=user_id,
        cliente_id=cliente_id,
        title="📋 Cliente atendido por outro consultor",
        message=(
            f"📋 O cliente *{cliente_nome}* já foi atendido por outro consultor.\n"
            f"Sua convocação foi finalizada."
        ),
    )


def build_no_service_notice(
    user_id: int,
    cliente_id: int,
    cliente_nome: str,
    cliente_phone: Optional[str],
    sequencia: int,
) -> CascadeNotification:
    return CascadeNotification(
        type=NotificationType.NO_SERVICE,
        user_id=user_id,
        cliente_id=cliente_id,
        title="🚨 Cliente sem atendimento",
        message=(
            f"🚨 *CASCATA ESGOTADA*\n\n"
            f"👤 *Cliente:* {cliente_nome}\n"
            f"📱 *Telefone:* {format_phone_display(cliente_phone)}\n"
            f"Ninguém assumiu até o nível {sequencia}. Atribua manualmente."
        ),
        sequencia=sequencia,
    )


# =============================================================================
# CANAIS
# =============================================================================

class Notifier(Protocol):
    async def notify(self, notification: CascadeNotification) -> None:
        ...


class DatabaseNotifier:
    """Grava o aviso no painel do usuário (sessão própria)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(self, notification: CascadeNotification) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(Notification(
                    user_id=notification.user_id,
                    type=notification.type.value,
                    title=notification.title,
                    message=notification.message,
                    reference_type="cliente",
                    reference_id=notification.cliente_id,
                    read=False,
                ))


class WhatsAppNotifier:
    """Envia o aviso pelo WhatsApp do usuário via Z-API."""

    def __init__(self, zapi: ZAPIService, session_factory: async_sessionmaker[AsyncSession]):
        self.zapi = zapi
        self.session_factory = session_factory

    async def notify(self, notification: CascadeNotification) -> None:
        async with self.session_factory() as session:
            result = await session.execute(select(User.phone).where(User.id == notification.user_id))
            phone = result.scalar_one_or_none()

        if not phone:
            logger.info(f"📵 Usuário {notification.user_id} sem telefone, WhatsApp ignorado")
            return

        response = await self.zapi.send_text(phone, notification.message)
        if response.get("success") is False:
            raise NotificationDeliveryError(
                f"Z-API recusou aviso para usuário {notification.user_id}: {response.get('error')}"
            )


class CompositeNotifier:
    """Envia para todos os canais. Um canal falhando não impede os outros."""

    def __init__(self, channels: Sequence[Notifier]):
        self.channels = list(channels)

    async def notify(self, notification: CascadeNotification) -> None:
        failures = []
        for channel in self.channels:
            try:
                await channel.notify(notification)
            except Exception as e:
                logger.warning(
                    f"⚠️ Canal {type(channel).__name__} falhou para usuário {notification.user_id}: {e}",
                    exc_info=True,
                )
                failures.append(e)

        if failures and len(failures) == len(self.channels):
            raise NotificationDeliveryError(
                f"Nenhum canal entregou o aviso para usuário {notification.user_id}"
            )


def build_notifier(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> Notifier:
    """Monta os canais conforme a configuração."""
    channels: List[Notifier] = [DatabaseNotifier(session_factory)]

    if settings.zapi_configured:
        zapi = ZAPIService(settings.zapi_instance_id, settings.zapi_token)
        channels.append(WhatsAppNotifier(zapi, session_factory))
        logger.info("📱 Notificações por WhatsApp (Z-API) habilitadas")

    return CompositeNotifier(channels)


# =============================================================================
# DESPACHO PÓS-COMMIT
# =============================================================================

async def dispatch_notifications(
    notifier: Optional[Notifier],
    notifications: Iterable[CascadeNotification],
) -> int:
    """
    Envia os avisos, um a um. Retorna quantos foram entregues.

    Best-effort: erro é logado e engolido, sem retry síncrono.
    """
    if notifier is None:
        return 0

    delivered = 0
    for notification in notifications:
        try:
            await notifier.notify(notification)
            delivered += 1
        except Exception as e:
            logger.error(
                f"❌ Falha ao notificar usuário {notification.user_id} "
                f"({notification.type.value}, cliente {notification.cliente_id}): {e}",
                exc_info=True,
            )

    return delivered
