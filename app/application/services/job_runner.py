# app/application/services/job_runner.py
import logging
from typing import Callable, Dict, Optional

from app.application.services.job_queue import JobQueue
from app.domain.exceptions import InvalidStateTransitionError, InvoiceNotFoundError
from app.domain.models.job import Job, JobKind, JobState
from app.domain.ports.progress_sink import ProgressSink

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job, ProgressSink], None]

# Repetir el intento no cambia el resultado
NON_RETRYABLE_ERRORS = (InvalidStateTransitionError, InvoiceNotFoundError)


class JobProgressSink(ProgressSink):
    """Guarda el progreso en el registro del job; también sirve de heartbeat."""

    def __init__(self, queue: JobQueue, job: Job):
        self.queue = queue
        self.job = job

    def report(self, percentage: float) -> None:
        self.queue.report_progress(self.job.id, percentage)
        logger.info(f"[{self.job.invoice_id}] Progreso {self.job.id}: {percentage:.0f}%")


class JobRunner:
    """
    Ejecuta un job: lo activa, llama al handler de su tipo y lo marca como
    completado o fallido. Las excepciones del handler nunca salen de aquí;
    los reintentos los decide la cola.
    """

    def __init__(self, queue: JobQueue, handlers: Dict[JobKind, JobHandler], worker_id: str):
        self.queue = queue
        self.handlers = handlers
        self.worker_id = worker_id

    def run(self, job_id: str) -> Optional[JobState]:
        job = self.queue.activate(job_id, self.worker_id)
        if job is None:
            return None

        handler = self.handlers[job.kind]
        try:
            handler(job, JobProgressSink(self.queue, job))
        except NON_RETRYABLE_ERRORS as e:
            logger.error(f"[{job.invoice_id}] El job {job.id} no puede ejecutarse: {e}")
            self.queue.fail(job.id, str(e), retryable=False)
            return JobState.FAILED
        except Exception as e:
            logger.error(f"[{job.invoice_id}] Error en el job {job.id}: {e}", exc_info=True)
            delay = self.queue.fail(job.id, str(e))
            return JobState.WAITING if delay is not None else JobState.FAILED

        self.queue.complete(job.id)
        return JobState.COMPLETED
