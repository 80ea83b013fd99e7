"""
DIRETÓRIO DE ATENDENTES
=======================

Lê a equipe do banco e devolve fotos imutáveis (AgentProfile) para a
política de atribuição, que é pura.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cascata.domain.entities import User
from cascata.domain.services.assignment_policy import AgentProfile


def to_profile(user: User) -> AgentProfile:
    return AgentProfile(
        id=user.id,
        full_name=user.full_name,
        role=user.role,
        department=user.department,
        phone=user.phone,
        active=user.active,
        available=user.available,
        on_vacation=user.on_vacation,
        working_hours=user.working_hours,
    )


async def list_on_duty_agents(
    db: AsyncSession,
    department: Optional[str] = None,
) -> List[AgentProfile]:
    """
    Usuários ativos do departamento (todos, se department=None).

    Disponibilidade fina (férias, expediente) fica com a política.
    """
    query = select(User).where(User.active == True)

    if department:
        query = query.where(User.department == department)

    result = await db.execute(query.order_by(User.id))
    return [to_profile(user) for user in result.scalars().all()]


async def list_users_by_role(db: AsyncSession, role: str) -> List[int]:
    result = await db.execute(
        select(User.id)
        .where(User.active == True)
        .where(User.role == role)
        .order_by(User.id)
    )
    return list(result.scalars().all())
