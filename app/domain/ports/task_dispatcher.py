# app/domain/ports/task_dispatcher.py
from abc import ABC, abstractmethod
from typing import Optional

from app.domain.models.job import Job


class TaskDispatcher(ABC):
    """Entrega un job a la flota de workers (Celery en producción)."""

    @abstractmethod
    def dispatch(self, job: Job, countdown: Optional[float] = None) -> None:
        pass
