# app/domain/ports/issuer_repository.py
from abc import ABC, abstractmethod
from typing import Optional

from app.domain.models.issuer import Issuer


class IssuerRepository(ABC):
    """Lectura de empresas emisoras."""

    @abstractmethod
    def get(self, issuer_id: int) -> Optional[Issuer]:
        pass

    @abstractmethod
    def find_by_ruc(self, ruc: str) -> Optional[Issuer]:
        """Acepta el RUC con o sin guión antes del dígito verificador."""
        pass
