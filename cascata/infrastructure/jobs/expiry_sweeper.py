"""
JOB DE EXPIRAÇÃO DA CASCATA (SWEEPER)
======================================

Varre entradas ativas com prazo vencido e escala cada par
(cliente_id, sequencia) chamando advance_on_expiry.

Pode rodar em vários processos ao mesmo tempo: quem perder a corrida
recebe no-op do UPDATE condicional. Sem lock distribuído.

RODA: a cada `sla_sweep_interval_seconds` (scheduler)
"""

import logging
from typing import Optional

from cascata.domain.exceptions import StoreUnavailableError
from cascata.infrastructure.services.cascade_controller import CascadeController, get_cascade_controller
from cascata.infrastructure.services.cascade_store import CascadeStore, translate_store_errors

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Um tick = uma varredura. Cada par roda na própria transação."""

    def __init__(self, controller: CascadeController, batch_size: Optional[int] = None):
        self.controller = controller
        self.batch_size = batch_size

    async def run_once(self) -> dict:
        stats = {"pares": 0, "avancados": 0, "noop": 0, "erros": 0}
        now = self.controller.clock()

        try:
            with translate_store_errors():
                async with self.controller.session_factory() as session:
                    pairs = await CascadeStore(session).overdue_pairs(now, limit=self.batch_size)
        except StoreUnavailableError as e:
            logger.error(f"❌ Sweeper: banco indisponível, tenta no próximo ciclo: {e}")
            stats["erros"] += 1
            return stats

        stats["pares"] = len(pairs)
        if not pairs:
            logger.debug("Sweeper: nenhuma entrada vencida")
            return stats

        logger.info("=" * 60)
        logger.info(f"⏰ SWEEPER: {len(pairs)} nível(is) vencido(s)")
        logger.info("=" * 60)

        for cliente_id, sequencia in pairs:
            try:
                result = await self.controller.advance_on_expiry(cliente_id, sequencia)
            except Exception as e:
                stats["erros"] += 1
                logger.error(
                    f"❌ Sweeper: erro ao escalar cliente {cliente_id} nível {sequencia}: {e}",
                    exc_info=True,
                )
                continue

            if result.noop:
                stats["noop"] += 1
            else:
                stats["avancados"] += 1

        logger.info(
            f"✅ SWEEPER FINALIZADO | Avançados: {stats['avancados']} | "
            f"No-op: {stats['noop']} | Erros: {stats['erros']}"
        )
        return stats


async def run_expiry_sweep() -> dict:
    """Função chamada pelo scheduler."""
    sweeper = ExpirySweeper(get_cascade_controller())
    return await sweeper.run_once()
