import os

import pytest

from app.domain.exceptions import ArtifactNotFoundError, ArtifactStorageError
from app.infrastructure.storage.filesystem_artifact_store import FilesystemArtifactStore


@pytest.fixture
def store(tmp_path):
    return FilesystemArtifactStore(str(tmp_path))


class TestFilesystemArtifactStore:
    def test_save_creates_folders_and_reads_back(self, store, tmp_path):
        path = store.save("2026/02/factura.xml", b"<rDE/>")

        assert path == "2026/02/factura.xml"
        assert (tmp_path / "2026" / "02" / "factura.xml").read_bytes() == b"<rDE/>"
        assert store.read(path) == b"<rDE/>"
        assert store.exists(path)

    def test_no_temporary_files_are_left(self, store, tmp_path):
        store.save("2026/02/factura.xml", b"uno")
        store.save("2026/02/factura.xml", b"dos")

        assert os.listdir(tmp_path / "2026" / "02") == ["factura.xml"]
        assert store.read("2026/02/factura.xml") == b"dos"

    def test_open_returns_stream(self, store):
        store.save("a.pdf", b"%PDF-1.4")
        with store.open("a.pdf") as stream:
            assert stream.read() == b"%PDF-1.4"

    def test_missing_file(self, store):
        assert not store.exists("2026/02/nada.xml")
        with pytest.raises(ArtifactNotFoundError):
            store.read("2026/02/nada.xml")

    @pytest.mark.parametrize("path", ["../fuera.xml", "2026/../../fuera.xml", "/etc/passwd"])
    def test_paths_outside_base_are_rejected(self, store, path):
        with pytest.raises(ArtifactStorageError):
            store.save(path, b"x")
        assert not store.exists(path)

    def test_write_failure_is_reported(self, store, tmp_path):
        (tmp_path / "bloqueado").write_bytes(b"archivo, no carpeta")
        with pytest.raises(ArtifactStorageError):
            store.save("bloqueado/factura.xml", b"x")
