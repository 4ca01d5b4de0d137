# app/domain/ports/submission_client.py
from abc import ABC, abstractmethod

from app.domain.models.invoice import RemoteResponse


class SubmissionClient(ABC):
    """Cliente del web service de recepción de SIFEN."""

    @abstractmethod
    def submit(self, tracking_id: str, document: bytes, mode: str, certificate_path: str) -> RemoteResponse:
        """
        Envía el documento y decodifica la respuesta.
        Cualquier falla de transporte se lanza como SubmissionTransportError.
        """
        pass
