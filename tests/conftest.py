"""
Fixtures compartilhadas.

Cada teste recebe um banco SQLite novo (arquivo em tmp_path) com as tabelas
criadas a partir dos modelos, um relógio controlável e um notificador que
só grava o que recebeu.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.domain.entities import CascadeConfig, Lead, User
from cascata.infrastructure.database import build_engine, build_session_factory, init_db
from cascata.infrastructure.services.cascade_controller import CascadeController
from cascata.infrastructure.services.cliente_service import create_cliente

# Segunda-feira, 10:00 em São Paulo
START = datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)

TEST_TIERS = [
    {"department": "atendimento", "roles": ["consultor", "corretor"], "sla_hours": 1},
    {"department": "gestao", "roles": ["gestor"], "sla_hours": 2},
]


class FakeClock:
    """Relógio fixo que só anda quando o teste manda."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.sent: List = []
        self.failing_users = set()

    async def notify(self, notification) -> None:
        if notification.user_id in self.failing_users:
            raise RuntimeError("canal fora do ar")
        self.sent.append(notification)

    def for_user(self, user_id: int) -> List:
        return [n for n in self.sent if n.user_id == user_id]


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cascata_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def controller(session_factory, notifier, clock) -> CascadeController:
    return CascadeController(session_factory, notifier=notifier, clock=clock)


@pytest.fixture
async def team(session_factory):
    """
    Equipe padrão + configuração da cascata (nível 1: 1h, nível 2: 2h).

    ana, bruno → atendimento (nível 1)
    marcos → gestao (nível 2)
    carla → atendimento, mas de férias
    """
    async with session_factory() as session:
        async with session.begin():
            ana = User(username="ana", full_name="Ana Souza", role="consultor",
                       department="atendimento", phone="11987654321")
            bruno = User(username="bruno", full_name="Bruno Lima", role="corretor",
                         department="atendimento", phone="11912345678")
            marcos = User(username="marcos", full_name="Marcos Prado", role="gestor",
                          department="gestao", phone="11955554444")
            carla = User(username="carla", full_name="Carla Dias", role="consultor",
                         department="atendimento", on_vacation=True)
            session.add_all([ana, bruno, marcos, carla])
            session.add(CascadeConfig(name="teste", active=True, tiers=TEST_TIERS, user_order=[]))

    return SimpleNamespace(ana=ana.id, bruno=bruno.id, marcos=marcos.id, carla=carla.id)


@pytest.fixture
def make_cliente(session_factory):
    """Cria cliente + lead ligados. Retorna (cliente_id, lead_id)."""

    async def _make(name: str = "Cliente Teste", phone: str = "11999990000"):
        async with session_factory() as session:
            async with session.begin():
                cliente = await create_cliente(session, name, phone=phone)
                lead = Lead(name=name, phone=phone, source="site", cliente_id=cliente.id)
                session.add(lead)
        return cliente.id, lead.id

    return _make
