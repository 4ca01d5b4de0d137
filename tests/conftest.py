import pytest
from sqlalchemy.orm import sessionmaker

from app.application.services.job_queue import JobQueue
from app.application.services.job_runner import JobRunner
from app.application.use_cases.process_invoice import ProcessInvoiceUseCase
from app.application.use_cases.retry_invoice import RetryInvoiceUseCase
from app.application.use_cases.submit_invoice import SubmitInvoiceUseCase
from app.domain.models.job import JobKind
from app.infrastructure.persistence.database import Base, build_engine, init_db
from app.infrastructure.persistence.invoice_repository_adapter import SQLAlchemyInvoiceRepository
from app.infrastructure.persistence.issuer_repository_adapter import SQLAlchemyIssuerRepository
from app.infrastructure.persistence.job_store_adapter import SQLAlchemyJobStore
from app.infrastructure.persistence.models import Empresa
from app.infrastructure.persistence.operation_log_adapter import SQLAlchemyOperationLog
from app.infrastructure.storage.filesystem_artifact_store import FilesystemArtifactStore
from tests.factories import ISSUER_CSC, ISSUER_RUC, POLICIES, PROCESSED_AT, RESULT_CODES
from tests.fakes import (
    Clock,
    FakeAssembler,
    FakeSigner,
    FakeStamper,
    FakeSubmissionClient,
    FakeVault,
    RecordingDispatcher,
)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def issuer_row(db_session):
    empresa = Empresa(
        ruc=ISSUER_RUC,
        nombre_fantasia="Comercial Ejemplo",
        razon_social="Comercial Ejemplo S.A.",
        codigo_establecimiento="001",
        codigo_punto_emision="001",
        numero_timbrado="12345678",
        fecha_timbrado="2025-01-01",
        id_csc="0001",
        csc=ISSUER_CSC,
        modo="test",
        certificado_nombre_archivo="certificado.p12",
        certificado_activo=True,
        direccion="Av. España 1234",
        activo=True,
    )
    db_session.add(empresa)
    db_session.commit()
    db_session.refresh(empresa)
    return empresa


@pytest.fixture
def artifact_store(tmp_path):
    return FilesystemArtifactStore(str(tmp_path / "de_output"))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def job_queue(db_session, dispatcher, clock):
    return JobQueue(SQLAlchemyJobStore(db_session), dispatcher, policies=POLICIES, clock=clock)


class Pipeline:
    """Arma los casos de uso sobre la base en memoria, como lo hace el worker."""

    def __init__(self, db_session, artifact_store, dispatcher, job_queue, clock):
        self.db = db_session
        self.clock = clock
        self.artifact_store = artifact_store
        self.dispatcher = dispatcher
        self.job_queue = job_queue
        self.invoices = SQLAlchemyInvoiceRepository(db_session)
        self.issuers = SQLAlchemyIssuerRepository(db_session)
        self.logs = SQLAlchemyOperationLog(db_session)
        self.vault = FakeVault()
        self.assembler = FakeAssembler()
        self.signer = FakeSigner(self.vault)
        self.stamper = FakeStamper()
        self.client = FakeSubmissionClient()

    def submit_use_case(self):
        return SubmitInvoiceUseCase(self.invoices, self.issuers, self.logs, self.job_queue, self.vault)

    def retry_use_case(self):
        return RetryInvoiceUseCase(self.invoices, self.logs, self.job_queue)

    def process_use_case(self):
        return ProcessInvoiceUseCase(
            invoice_repo=self.invoices,
            issuer_repo=self.issuers,
            operation_log=self.logs,
            vault=self.vault,
            assembler=self.assembler,
            signer=self.signer,
            stamper=self.stamper,
            artifact_store=self.artifact_store,
            submission_client=self.client,
            job_queue=self.job_queue,
            result_table=RESULT_CODES,
            clock=lambda: PROCESSED_AT,
        )

    def run_job(self, job_id):
        """Ejecuta el job cuando vence su espera, como lo haría el countdown del broker."""
        job = self.job_queue.store.get(job_id)
        if job is not None and job.available_at is not None and job.available_at > self.clock.now:
            self.clock.now = job.available_at
        use_case = self.process_use_case()

        def process(job, progress):
            use_case.execute(
                job.invoice_id,
                progress,
                retry=bool(job.payload.get("retry")),
                resume=job.attempts > 1,
            )

        runner = JobRunner(self.job_queue, {JobKind.PROCESS_INVOICE: process}, "test-worker")
        return runner.run(job_id)


@pytest.fixture
def pipeline(db_session, issuer_row, artifact_store, dispatcher, job_queue, clock):
    return Pipeline(db_session, artifact_store, dispatcher, job_queue, clock)
