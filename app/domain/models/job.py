# app/domain/models/job.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


IN_FLIGHT_STATES = (JobState.WAITING, JobState.ACTIVE)


class JobKind(str, Enum):
    PROCESS_INVOICE = "generar-factura"
    RENDER_INVOICE = "generar-kude"


class BackoffPolicy(BaseModel):
    """
    `exponential`: delay * 2^(intento-1)  ->  1s, 2s, 4s...
    `fixed`: siempre `delay`.
    """
    type: str = "exponential"
    delay: float = 1.0

    model_config = ConfigDict(frozen=True)

    def delay_for(self, attempts_made: int) -> float:
        if attempts_made < 1:
            return 0.0
        if self.type == "fixed":
            return self.delay
        return self.delay * (2 ** (attempts_made - 1))


class Job(BaseModel):
    id: str
    queue: str
    kind: JobKind
    invoice_id: int
    state: JobState = JobState.WAITING
    attempts: int = 0
    max_attempts: int = 3
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    timeout: int = 300
    priority: int = 0
    payload: Dict[str, Any] = Field(default_factory=dict)
    progress: float = 0.0
    last_error: Optional[str] = None
    worker_id: Optional[str] = None
    available_at: Optional[datetime] = None
    heartbeat_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


def job_id_for(kind: JobKind, invoice_id: int) -> str:
    """El id del job se deriva del id de la factura: un job en curso por factura."""
    prefix = "factura" if kind == JobKind.PROCESS_INVOICE else "kude"
    return f"{prefix}-{invoice_id}"


class QueuePolicy(BaseModel):
    """Reglas de una cola: intentos, backoff, timeout y retención."""
    queue: str
    max_attempts: int
    backoff: BackoffPolicy
    timeout: int
    keep_completed: int
    keep_failed: int
    priority: int = 0

    model_config = ConfigDict(frozen=True)
