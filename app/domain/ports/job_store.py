# app/domain/ports/job_store.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from app.domain.models.job import Job, JobState


class JobStore(ABC):
    """
    Registro durable de jobs. Las reglas de la cola (reintentos, backoff,
    deduplicación) viven en JobQueue; aquí sólo está el almacenamiento.
    """

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    def save(self, job: Job) -> Job:
        """Inserta o reemplaza el job completo."""
        pass

    @abstractmethod
    def claim(self, job_id: str, worker_id: str, now: datetime) -> Optional[Job]:
        """
        Pasa el job de `waiting` a `active` sólo si sigue en `waiting` y su
        `available_at` ya llegó. Retorna None si otro worker lo tomó primero
        o si todavía está en backoff.
        """
        pass

    @abstractmethod
    def update_progress(self, job_id: str, progress: float, now: datetime) -> None:
        """Guarda el progreso (nunca lo disminuye) y renueva el heartbeat."""
        pass

    @abstractmethod
    def find_stalled(self, heartbeat_before: datetime) -> List[Job]:
        pass

    @abstractmethod
    def find_by_state(self, state: JobState, queue: Optional[str] = None, limit: Optional[int] = None) -> List[Job]:
        """Ordenados del más reciente al más antiguo."""
        pass

    @abstractmethod
    def count_by_state(self, queue: Optional[str] = None) -> Dict[str, int]:
        pass

    @abstractmethod
    def delete(self, job_ids: List[str]) -> int:
        pass
