"""Test doubles for the collaborators that talk to the outside world."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from app.domain.exceptions import ArtifactStorageError
from app.domain.models.invoice import ControlIdentifiers, RemoteResponse
from app.domain.models.issuer import Issuer
from app.domain.models.job import Job
from app.domain.ports.credential_vault import CredentialVault, UnlockedCredential
from app.domain.ports.document_assembler import DocumentAssembler
from app.domain.ports.document_signer import DocumentSigner
from app.domain.ports.document_stamper import DocumentStamper
from app.domain.ports.progress_sink import ProgressSink
from app.domain.ports.submission_client import SubmissionClient
from app.domain.ports.task_dispatcher import TaskDispatcher
from app.infrastructure.storage.filesystem_artifact_store import FilesystemArtifactStore


class Clock:
    def __init__(self, now=datetime(2026, 2, 24, 12, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingDispatcher(TaskDispatcher):
    def __init__(self):
        self.dispatched: List[Tuple[str, Optional[float]]] = []

    def dispatch(self, job: Job, countdown: Optional[float] = None) -> None:
        self.dispatched.append((job.id, countdown))

    @property
    def job_ids(self) -> List[str]:
        return [job_id for job_id, _ in self.dispatched]


class FakeVault(CredentialVault):
    def __init__(self, valid: bool = True):
        self.valid = valid
        self.unlocked = 0
        self.active = False

    def certificate_path(self, issuer: Issuer) -> str:
        return f"/certificados/{issuer.ruc}/certificado.p12"

    def has_valid_credential(self, issuer: Issuer) -> bool:
        return self.valid

    @contextmanager
    def unlock(self, issuer: Issuer):
        self.unlocked += 1
        self.active = True
        try:
            yield UnlockedCredential(path=self.certificate_path(issuer), pkcs12=b"p12", password="secreto")
        finally:
            self.active = False


class FakeAssembler(DocumentAssembler):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls = 0

    def assemble(self, merged, issuer: Issuer, identifiers: ControlIdentifiers) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return (
            '<rDE xmlns="http://ekuatia.set.gov.py/sifen/xsd">'
            f'<DE Id="{identifiers.control_id}"><dNumDoc>{merged["numero"]}</dNumDoc></DE>'
            "</rDE>"
        )


class FakeSigner(DocumentSigner):
    def __init__(self, vault: Optional[FakeVault] = None):
        self.vault = vault
        self.saw_unlocked_credential = None

    def sign(self, xml: str, credential: UnlockedCredential) -> str:
        if self.vault is not None:
            self.saw_unlocked_credential = self.vault.active
        return xml.replace("</rDE>", "<Signature>firma</Signature></rDE>")


class FakeStamper(DocumentStamper):
    def stamp(self, signed_xml: str, issuer: Issuer) -> str:
        return signed_xml.replace("</rDE>", "<gCamFuFD><dCarQR>qr</dCarQR></gCamFuFD></rDE>")


class FakeSubmissionClient(SubmissionClient):
    def __init__(self, response: Optional[RemoteResponse] = None, error: Optional[Exception] = None):
        self.response = response or RemoteResponse(result_code="0000", result_message="Aprobado")
        self.error = error
        self.calls: List[Tuple[str, bytes, str]] = []

    def submit(self, tracking_id: str, document: bytes, mode: str, certificate_path: str) -> RemoteResponse:
        self.calls.append((tracking_id, document, mode))
        if self.error is not None:
            raise self.error
        return self.response


class RecordingProgress(ProgressSink):
    def __init__(self):
        self.values: List[float] = []

    def report(self, percentage: float) -> None:
        self.values.append(percentage)


class ReadOnlyArtifactStore(FilesystemArtifactStore):
    """Disco lleno o sin permisos: toda escritura falla."""

    def __init__(self, base_dir: str):
        super().__init__(base_dir)
        self.attempted: List[str] = []

    def save(self, relative_path: str, content: bytes) -> str:
        self.attempted.append(relative_path)
        raise ArtifactStorageError(f"No se pudo guardar {relative_path}: [Errno 28] No space left on device")
