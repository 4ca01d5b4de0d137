# app/domain/ports/document_stamper.py
from abc import ABC, abstractmethod

from app.domain.models.issuer import Issuer


class DocumentStamper(ABC):
    """Inserta el código QR de verificación en el XML firmado."""

    @abstractmethod
    def stamp(self, signed_xml: str, issuer: Issuer) -> str:
        pass
