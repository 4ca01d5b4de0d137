# app/infrastructure/persistence/job_store_adapter.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.domain.models.job import BackoffPolicy, Job, JobKind, JobState
from app.domain.ports.job_store import JobStore
from .models import TrabajoCola


def to_domain(row: TrabajoCola) -> Job:
    return Job(
        id=row.id,
        queue=row.cola,
        kind=JobKind(row.tipo),
        invoice_id=row.factura_id,
        state=JobState(row.estado),
        attempts=row.intentos,
        max_attempts=row.max_intentos,
        backoff=BackoffPolicy(type=row.backoff_tipo, delay=row.backoff_delay),
        timeout=row.timeout,
        priority=row.prioridad,
        payload=row.payload or {},
        progress=row.progreso or 0.0,
        last_error=row.ultimo_error,
        worker_id=row.worker_id,
        available_at=row.disponible_desde,
        heartbeat_at=row.heartbeat_at,
        created_at=row.created_at,
        finished_at=row.finalizado_at,
    )


class SQLAlchemyJobStore(JobStore):
    def __init__(self, db: Session):
        self.db = db

    def get(self, job_id: str) -> Optional[Job]:
        row = self.db.get(TrabajoCola, job_id)
        return to_domain(row) if row else None

    def save(self, job: Job) -> Job:
        row = self.db.get(TrabajoCola, job.id) or TrabajoCola(id=job.id)
        row.cola = job.queue
        row.tipo = job.kind.value
        row.factura_id = job.invoice_id
        row.estado = job.state.value
        row.intentos = job.attempts
        row.max_intentos = job.max_attempts
        row.backoff_tipo = job.backoff.type
        row.backoff_delay = job.backoff.delay
        row.timeout = job.timeout
        row.prioridad = job.priority
        row.payload = dict(job.payload)
        row.progreso = job.progress
        row.ultimo_error = job.last_error
        row.worker_id = job.worker_id
        row.disponible_desde = job.available_at
        row.heartbeat_at = job.heartbeat_at
        row.created_at = job.created_at
        row.finalizado_at = job.finished_at
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return to_domain(row)

    def claim(self, job_id: str, worker_id: str, now: datetime) -> Optional[Job]:
        # UPDATE condicional: sólo un worker puede ganar el job, y no antes
        # de que venza su backoff
        result = self.db.execute(
            update(TrabajoCola)
            .where(
                TrabajoCola.id == job_id,
                TrabajoCola.estado == JobState.WAITING.value,
                or_(TrabajoCola.disponible_desde.is_(None), TrabajoCola.disponible_desde <= now),
            )
            .values(
                estado=JobState.ACTIVE.value,
                intentos=TrabajoCola.intentos + 1,
                worker_id=worker_id,
                heartbeat_at=now,
                progreso=0.0,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            return None
        self.db.expire_all()
        return self.get(job_id)

    def update_progress(self, job_id: str, progress: float, now: datetime) -> None:
        row = self.db.get(TrabajoCola, job_id)
        if row is None:
            return
        row.progreso = max(row.progreso or 0.0, progress)
        row.heartbeat_at = now
        self.db.commit()

    def find_stalled(self, heartbeat_before: datetime) -> List[Job]:
        rows = self.db.execute(
            select(TrabajoCola).where(
                TrabajoCola.estado == JobState.ACTIVE.value,
                TrabajoCola.heartbeat_at < heartbeat_before,
            )
        ).scalars().all()
        return [to_domain(r) for r in rows]

    def find_by_state(self, state: JobState, queue: Optional[str] = None, limit: Optional[int] = None) -> List[Job]:
        query = select(TrabajoCola).where(TrabajoCola.estado == state.value)
        if queue is not None:
            query = query.where(TrabajoCola.cola == queue)
        query = query.order_by(TrabajoCola.finalizado_at.desc(), TrabajoCola.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return [to_domain(r) for r in self.db.execute(query).scalars().all()]

    def count_by_state(self, queue: Optional[str] = None) -> Dict[str, int]:
        query = select(TrabajoCola.estado, func.count(TrabajoCola.id)).group_by(TrabajoCola.estado)
        if queue is not None:
            query = query.where(TrabajoCola.cola == queue)
        return {estado: count for estado, count in self.db.execute(query).all()}

    def delete(self, job_ids: List[str]) -> int:
        result = self.db.execute(
            delete(TrabajoCola).where(TrabajoCola.id.in_(job_ids)).execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0
