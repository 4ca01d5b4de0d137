# app/domain/ports/artifact_store.py
from abc import ABC, abstractmethod
from typing import BinaryIO


class ArtifactStore(ABC):
    """
    Almacenamiento durable de los documentos firmados.
    Las rutas son relativas a la raíz del almacenamiento (AAAA/MM/nombre).
    """

    @abstractmethod
    def save(self, relative_path: str, content: bytes) -> str:
        """
        Escritura atómica: el archivo aparece completo o no aparece.
        Lanza ArtifactStorageError si falla.
        """
        pass

    @abstractmethod
    def read(self, relative_path: str) -> bytes:
        """Lanza ArtifactNotFoundError si no existe."""
        pass

    @abstractmethod
    def open(self, relative_path: str) -> BinaryIO:
        pass

    @abstractmethod
    def exists(self, relative_path: str) -> bool:
        pass
