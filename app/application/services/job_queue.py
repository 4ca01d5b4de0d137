# app/application/services/job_queue.py
"""
Cola de trabajos respaldada en la base de datos.

    waiting -> active -> completed
                      -> waiting  (falló y quedan intentos; espera el backoff)
                      -> failed   (sin intentos; queda para inspección manual)

El id del job se deriva del id de la factura, así que nunca hay dos jobs
en curso para la misma factura. Celery sólo transporta el id del job.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import config
from app.domain.exceptions import JobAlreadyQueuedError
from app.domain.models.job import (
    IN_FLIGHT_STATES,
    BackoffPolicy,
    Job,
    JobKind,
    JobState,
    QueuePolicy,
    job_id_for,
)
from app.domain.ports.job_store import JobStore
from app.domain.ports.task_dispatcher import TaskDispatcher
from app.domain.services.dates import utcnow

logger = logging.getLogger(__name__)

INVOICE_POLICY = QueuePolicy(
    queue=config.INVOICE_QUEUE,
    max_attempts=config.INVOICE_JOB_ATTEMPTS,
    backoff=BackoffPolicy(type="exponential", delay=config.INVOICE_JOB_BACKOFF_SECONDS),
    timeout=config.INVOICE_JOB_TIMEOUT,
    keep_completed=config.INVOICE_KEEP_COMPLETED,
    keep_failed=config.INVOICE_KEEP_FAILED,
    priority=0,
)

RENDER_POLICY = QueuePolicy(
    queue=config.RENDER_QUEUE,
    max_attempts=config.RENDER_JOB_ATTEMPTS,
    backoff=BackoffPolicy(type="fixed", delay=config.RENDER_JOB_BACKOFF_SECONDS),
    timeout=config.RENDER_JOB_TIMEOUT,
    keep_completed=config.RENDER_KEEP_COMPLETED,
    keep_failed=config.RENDER_KEEP_FAILED,
    priority=9,
)

DEFAULT_POLICIES = {
    JobKind.PROCESS_INVOICE: INVOICE_POLICY,
    JobKind.RENDER_INVOICE: RENDER_POLICY,
}


class JobQueue:
    def __init__(
        self,
        store: JobStore,
        dispatcher: TaskDispatcher,
        policies: Optional[Dict[JobKind, QueuePolicy]] = None,
        stalled_timeout: int = config.STALLED_JOB_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policies = policies or DEFAULT_POLICIES
        self.stalled_timeout = stalled_timeout
        self.clock = clock

    def policy_for(self, kind: JobKind) -> QueuePolicy:
        return self.policies[kind]

    def enqueue(self, kind: JobKind, invoice_id: int, payload: Optional[Dict[str, Any]] = None) -> Job:
        """
        Crea (o rearma) el job de la factura y lo entrega a los workers.
        Lanza JobAlreadyQueuedError si ya hay uno esperando o activo.
        """
        policy = self.policy_for(kind)
        job_id = job_id_for(kind, invoice_id)

        existing = self.store.get(job_id)
        if existing is not None and existing.state in IN_FLIGHT_STATES:
            raise JobAlreadyQueuedError(job_id, existing.state.value)

        now = self.clock()
        job = Job(
            id=job_id,
            queue=policy.queue,
            kind=kind,
            invoice_id=invoice_id,
            state=JobState.WAITING,
            attempts=0,
            max_attempts=policy.max_attempts,
            backoff=policy.backoff,
            timeout=policy.timeout,
            priority=policy.priority,
            payload=payload or {},
            available_at=now,
            created_at=now,
        )
        job = self.store.save(job)
        self.dispatcher.dispatch(job)
        logger.info(f"[{invoice_id}] Job {job_id} encolado en '{policy.queue}'.")
        return job

    def activate(self, job_id: str, worker_id: str) -> Optional[Job]:
        job = self.store.claim(job_id, worker_id, self.clock())
        if job is None:
            logger.warning(f"Job {job_id} no está disponible (tomado, en backoff o inexistente).")
            return None
        logger.info(f"[{job.invoice_id}] Job {job_id} activo, intento {job.attempts}/{job.max_attempts}.")
        return job

    def report_progress(self, job_id: str, progress: float) -> None:
        self.store.update_progress(job_id, max(0.0, min(100.0, float(progress))), self.clock())

    def complete(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        job.state = JobState.COMPLETED
        job.progress = 100.0
        job.finished_at = self.clock()
        job = self.store.save(job)
        logger.info(f"[{job.invoice_id}] Job {job_id} completado.")
        self.prune(job.queue)
        return job

    def fail(self, job_id: str, error: str, retryable: bool = True) -> Optional[float]:
        """
        Registra el fallo del intento actual. Si quedan intentos (y el error
        admite reintento), vuelve a `waiting`, redespacha con el backoff y
        retorna la espera en segundos. Si no, el job queda en `failed` y
        retorna None.
        """
        job = self.store.get(job_id)
        now = self.clock()
        job.last_error = error
        job.worker_id = None

        if retryable and job.attempts < job.max_attempts:
            delay = job.backoff.delay_for(job.attempts)
            job.state = JobState.WAITING
            job.available_at = now + timedelta(seconds=delay)
            job = self.store.save(job)
            logger.warning(
                f"[{job.invoice_id}] Job {job_id} falló (intento {job.attempts}/{job.max_attempts}): "
                f"{error}. Reintento en {delay}s."
            )
            self.dispatcher.dispatch(job, countdown=delay)
            return delay

        job.state = JobState.FAILED
        job.finished_at = now
        job = self.store.save(job)
        logger.error(f"[{job.invoice_id}] Job {job_id} falló definitivamente tras {job.attempts} intentos: {error}")
        self.prune(job.queue)
        return None

    def requeue_stalled(self) -> List[str]:
        """Jobs activos sin heartbeat: se cuentan como intento fallido."""
        cutoff = self.clock() - timedelta(seconds=self.stalled_timeout)
        requeued = []
        for job in self.store.find_stalled(cutoff):
            logger.warning(f"[{job.invoice_id}] Job {job.id} estancado (worker {job.worker_id}).")
            if self.fail(job.id, "Job estancado: el worker dejó de reportar") is not None:
                requeued.append(job.id)

        # Jobs en espera cuyo mensaje nunca llegó al broker
        for job in self.store.find_by_state(JobState.WAITING):
            if job.available_at is not None and job.available_at < cutoff:
                logger.warning(f"[{job.invoice_id}] Job {job.id} en espera desde {job.available_at}; se redespacha.")
                self.dispatcher.dispatch(job)
                requeued.append(job.id)
        return requeued

    def retry_failed(self, limit: int = 10) -> List[str]:
        """Rearma hasta `limit` jobs fallidos con el contador de intentos en cero."""
        retried = []
        for job in self.store.find_by_state(JobState.FAILED, limit=limit):
            job.state = JobState.WAITING
            job.attempts = 0
            job.progress = 0.0
            job.last_error = None
            job.finished_at = None
            job.available_at = self.clock()
            if job.kind == JobKind.PROCESS_INVOICE:
                job.payload = {**job.payload, "retry": True}
            job = self.store.save(job)
            self.dispatcher.dispatch(job)
            retried.append(job.id)
        if retried:
            logger.info(f"Reintentando {len(retried)} jobs fallidos: {', '.join(retried)}")
        return retried

    def failed_jobs(self, queue: Optional[str] = None, limit: int = 100) -> List[Job]:
        return self.store.find_by_state(JobState.FAILED, queue=queue, limit=limit)

    def prune(self, queue: str) -> int:
        """Conserva sólo los últimos N completados y fallidos de la cola."""
        policy = next((p for p in self.policies.values() if p.queue == queue), None)
        if policy is None:
            return 0
        removed = 0
        for state, keep in ((JobState.COMPLETED, policy.keep_completed), (JobState.FAILED, policy.keep_failed)):
            extra = self.store.find_by_state(state, queue=queue)[keep:]
            if extra:
                removed += self.store.delete([job.id for job in extra])
        return removed

    def clean_completed(self) -> int:
        ids = [job.id for job in self.store.find_by_state(JobState.COMPLETED)]
        removed = self.store.delete(ids) if ids else 0
        logger.info(f"{removed} jobs completados eliminados.")
        return removed

    def stats(self) -> Dict[str, Dict[str, int]]:
        stats = {}
        for policy in self.policies.values():
            counts = {state.value: 0 for state in JobState}
            counts.update(self.store.count_by_state(policy.queue))
            stats[policy.queue] = counts
        return stats

    def get(self, kind: JobKind, invoice_id: int) -> Optional[Job]:
        return self.store.get(job_id_for(kind, invoice_id))
