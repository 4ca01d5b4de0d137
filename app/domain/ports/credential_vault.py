# app/domain/ports/credential_vault.py
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass

from app.domain.models.issuer import Issuer


@dataclass
class UnlockedCredential:
    """Certificado y contraseña en claro. Sólo vive dentro de `unlock`."""
    path: str
    pkcs12: bytes
    password: str


class CredentialVault(ABC):

    @abstractmethod
    def certificate_path(self, issuer: Issuer) -> str:
        pass

    @abstractmethod
    def has_valid_credential(self, issuer: Issuer) -> bool:
        """Certificado marcado como activo y archivo presente."""
        pass

    @abstractmethod
    def unlock(self, issuer: Issuer) -> AbstractContextManager:
        """
        Context manager que entrega un UnlockedCredential y descarta el
        material descifrado al salir.
        """
        pass
