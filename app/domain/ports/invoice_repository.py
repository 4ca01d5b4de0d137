# app/domain/ports/invoice_repository.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.domain.models.invoice import ControlIdentifiers, Invoice, InvoiceState, SubmissionOutcome


class InvoiceRepository(ABC):
    """
    Contrato de persistencia de las facturas. Cada método que modifica
    datos confirma su propia transacción: identificadores, ruta del
    artefacto y resultado final quedan durables por separado.
    """

    @abstractmethod
    def create(
        self,
        issuer_id: int,
        issuer_ruc: str,
        fingerprint: str,
        correlative: str,
        payload: Dict[str, Any],
        client: Dict[str, Any],
        total: float,
    ) -> Invoice:
        """
        Crea la factura en estado `queued`.
        Lanza DuplicateInvoiceError si el hash ya existe.
        """
        pass

    @abstractmethod
    def get(self, invoice_id: int) -> Optional[Invoice]:
        pass

    @abstractmethod
    def find_by_fingerprint(self, fingerprint: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    def list(self, state: Optional[InvoiceState] = None, page: int = 1, limit: int = 20) -> Tuple[List[Invoice], int]:
        """Retorna (facturas, total) ordenadas de la más reciente a la más antigua."""
        pass

    @abstractmethod
    def mark_state(self, invoice_id: int, state: InvoiceState, message: Optional[str] = None) -> Invoice:
        pass

    @abstractmethod
    def save_identifiers(self, invoice_id: int, identifiers: ControlIdentifiers) -> Invoice:
        pass

    @abstractmethod
    def record_artifact(self, invoice_id: int, artifact_path: str) -> Invoice:
        """Sólo se llama después de que el archivo quedó escrito."""
        pass

    @abstractmethod
    def record_outcome(self, invoice_id: int, outcome: SubmissionOutcome, submitted_at: datetime) -> Invoice:
        """Estado final, código, mensaje y fechas en una sola transacción."""
        pass

    @abstractmethod
    def record_rendering(self, invoice_id: int, rendering_path: str) -> Invoice:
        pass
