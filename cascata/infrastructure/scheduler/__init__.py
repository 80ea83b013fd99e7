"""Agendamento do sweeper (APScheduler)."""

from .scheduler import (
    SWEEP_JOB_ID,
    create_scheduler,
    get_scheduler_status,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "SWEEP_JOB_ID",
    "create_scheduler",
    "get_scheduler_status",
    "start_scheduler",
    "stop_scheduler",
]
