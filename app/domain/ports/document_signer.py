# app/domain/ports/document_signer.py
from abc import ABC, abstractmethod

from app.domain.ports.credential_vault import UnlockedCredential


class DocumentSigner(ABC):
    """Firma el XML con el certificado de la empresa."""

    @abstractmethod
    def sign(self, xml: str, credential: UnlockedCredential) -> str:
        pass
