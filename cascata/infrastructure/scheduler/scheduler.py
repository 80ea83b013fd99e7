"""
SCHEDULER DO SWEEPER
====================

Um único job: o sweeper de expiração da cascata, a cada
`sla_sweep_interval_seconds`. Vários processos podem rodar o mesmo job;
dentro de um processo, nunca dois ticks ao mesmo tempo.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cascata.config import Settings, get_settings

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sla_cascata_sweep"

scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    global scheduler

    if scheduler is not None:
        return scheduler

    from cascata.infrastructure.jobs.expiry_sweeper import run_expiry_sweep

    settings = settings or get_settings()
    interval = settings.sla_sweep_interval_seconds

    scheduler = AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": interval,
        },
    )
    scheduler.add_job(
        run_expiry_sweep,
        trigger=IntervalTrigger(seconds=interval),
        id=SWEEP_JOB_ID,
        name="Sweeper SLA Cascata",
        replace_existing=True,
    )

    logger.info(f"📅 Sweeper da cascata agendado a cada {interval}s")
    return scheduler


def start_scheduler() -> None:
    if scheduler is None or scheduler.running:
        return
    scheduler.start()
    logger.info("🚀 Scheduler do sweeper iniciado")


def stop_scheduler() -> None:
    if scheduler is None or not scheduler.running:
        return
    scheduler.shutdown(wait=False)
    logger.info("🛑 Scheduler do sweeper parado")


def get_scheduler_status() -> dict:
    """Estado do sweeper para o /health."""
    if scheduler is None:
        return {"running": False, "jobs": []}

    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if getattr(job, "next_run_time", None) else None,
            }
            for job in scheduler.get_jobs()
        ],
    }
