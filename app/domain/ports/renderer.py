# app/domain/ports/renderer.py
from abc import ABC, abstractmethod

from app.domain.models.invoice import Invoice


class Renderer(ABC):
    """Genera la representación imprimible (KUDE) a partir del XML firmado."""

    @abstractmethod
    def render(self, invoice: Invoice, document: bytes) -> bytes:
        pass
