# app/infrastructure/storage/filesystem_artifact_store.py
import logging
import os
import tempfile
from typing import BinaryIO

import config
from app.domain.exceptions import ArtifactNotFoundError, ArtifactStorageError
from app.domain.ports.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)


class FilesystemArtifactStore(ArtifactStore):
    """
    Guarda los documentos bajo `base_dir`. La escritura va a un archivo
    temporal en la misma carpeta y luego os.replace, que es atómico.
    """

    def __init__(self, base_dir: str = config.ARTIFACTS_DIR):
        self.base_dir = os.path.abspath(base_dir)

    def _resolve(self, relative_path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.base_dir, relative_path))
        if os.path.commonpath([self.base_dir, full_path]) != self.base_dir:
            raise ArtifactStorageError(f"Ruta fuera del almacenamiento: {relative_path}")
        return full_path

    def save(self, relative_path: str, content: bytes) -> str:
        full_path = self._resolve(relative_path)
        folder = os.path.dirname(full_path)
        tmp_path = None
        try:
            os.makedirs(folder, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=folder, prefix=".tmp-", suffix=os.path.splitext(full_path)[1])
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, full_path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise ArtifactStorageError(f"No se pudo guardar {relative_path}: {e}") from e
        logger.info(f"Archivo guardado: {full_path} ({len(content)} bytes)")
        return relative_path

    def read(self, relative_path: str) -> bytes:
        with self.open(relative_path) as f:
            return f.read()

    def open(self, relative_path: str) -> BinaryIO:
        full_path = self._resolve(relative_path)
        if not os.path.isfile(full_path):
            raise ArtifactNotFoundError(f"Archivo no encontrado: {relative_path}")
        return open(full_path, "rb")

    def exists(self, relative_path: str) -> bool:
        try:
            return os.path.isfile(self._resolve(relative_path))
        except ArtifactStorageError:
            return False
