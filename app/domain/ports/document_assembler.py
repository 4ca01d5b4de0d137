# app/domain/ports/document_assembler.py
from abc import ABC, abstractmethod
from typing import Any, Dict

from app.domain.models.invoice import ControlIdentifiers
from app.domain.models.issuer import Issuer


class DocumentAssembler(ABC):
    """Genera el XML del Documento Electrónico (sin firmar)."""

    @abstractmethod
    def assemble(self, merged: Dict[str, Any], issuer: Issuer, identifiers: ControlIdentifiers) -> str:
        pass
