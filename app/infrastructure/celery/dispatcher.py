# app/infrastructure/celery/dispatcher.py
import logging
from typing import Optional

from celery import Celery

from app.domain.models.job import Job, JobKind
from app.domain.ports.task_dispatcher import TaskDispatcher

logger = logging.getLogger(__name__)

TASK_NAMES = {
    JobKind.PROCESS_INVOICE: "tasks.process_invoice",
    JobKind.RENDER_INVOICE: "tasks.render_invoice",
}


class CeleryTaskDispatcher(TaskDispatcher):
    """Publica el id del job en la cola de Celery que le corresponde."""

    def __init__(self, app: Celery):
        self.app = app

    def dispatch(self, job: Job, countdown: Optional[float] = None) -> None:
        self.app.send_task(
            TASK_NAMES[job.kind],
            args=[job.id],
            queue=job.queue,
            priority=job.priority,
            countdown=countdown,
            soft_time_limit=job.timeout,
            time_limit=job.timeout + 30,
        )
        logger.info(f"[{job.invoice_id}] Tarea {TASK_NAMES[job.kind]} publicada para {job.id} (countdown={countdown}).")
