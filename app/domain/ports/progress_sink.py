# app/domain/ports/progress_sink.py
from abc import ABC, abstractmethod


class ProgressSink(ABC):
    """Reporte de avance del job. Sólo informativo."""

    @abstractmethod
    def report(self, percentage: float) -> None:
        pass


class NullProgressSink(ProgressSink):
    def report(self, percentage: float) -> None:
        pass
