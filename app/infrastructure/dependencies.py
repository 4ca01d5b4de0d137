# app/infrastructure/dependencies.py
"""
Construcción explícita de los colaboradores. La API los obtiene vía
Depends (y los tests los reemplazan con dependency_overrides); el worker
llama a las mismas funciones con su propia sesión.
"""
from typing import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.application.services.job_queue import JobQueue
from app.application.use_cases.process_invoice import ProcessInvoiceUseCase
from app.application.use_cases.query_invoice import QueryInvoiceUseCase
from app.application.use_cases.render_invoice import RenderInvoiceUseCase
from app.application.use_cases.retry_invoice import RetryInvoiceUseCase
from app.application.use_cases.submit_invoice import SubmitInvoiceUseCase
from app.domain.ports.artifact_store import ArtifactStore
from app.domain.ports.credential_vault import CredentialVault
from app.domain.ports.task_dispatcher import TaskDispatcher
from app.infrastructure.celery.celery_app import celery_app
from app.infrastructure.celery.dispatcher import CeleryTaskDispatcher
from app.infrastructure.external.credential_vault import FileCredentialVault
from app.infrastructure.external.kude_renderer import KudeRenderer
from app.infrastructure.external.qr_stamper import QrStamper
from app.infrastructure.external.sifen_client import SifenClient
from app.infrastructure.external.xml_document_adapter import XmlDocumentAdapter
from app.infrastructure.external.xml_signer import XmlSigner
from app.infrastructure.persistence.database import SessionLocal
from app.infrastructure.persistence.invoice_repository_adapter import SQLAlchemyInvoiceRepository
from app.infrastructure.persistence.issuer_repository_adapter import SQLAlchemyIssuerRepository
from app.infrastructure.persistence.job_store_adapter import SQLAlchemyJobStore
from app.infrastructure.persistence.operation_log_adapter import SQLAlchemyOperationLog
from app.infrastructure.storage.filesystem_artifact_store import FilesystemArtifactStore


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_dispatcher() -> TaskDispatcher:
    return CeleryTaskDispatcher(celery_app)


def get_artifact_store() -> ArtifactStore:
    return FilesystemArtifactStore()


def get_vault() -> CredentialVault:
    return FileCredentialVault()


def build_job_queue(db: Session, dispatcher: TaskDispatcher) -> JobQueue:
    return JobQueue(SQLAlchemyJobStore(db), dispatcher)


def build_process_use_case(
    db: Session,
    job_queue: JobQueue,
    artifact_store: ArtifactStore,
    vault: CredentialVault,
) -> ProcessInvoiceUseCase:
    return ProcessInvoiceUseCase(
        invoice_repo=SQLAlchemyInvoiceRepository(db),
        issuer_repo=SQLAlchemyIssuerRepository(db),
        operation_log=SQLAlchemyOperationLog(db),
        vault=vault,
        assembler=XmlDocumentAdapter(),
        signer=XmlSigner(),
        stamper=QrStamper(),
        artifact_store=artifact_store,
        submission_client=SifenClient(),
        job_queue=job_queue,
    )


def build_render_use_case(db: Session, artifact_store: ArtifactStore) -> RenderInvoiceUseCase:
    return RenderInvoiceUseCase(
        invoice_repo=SQLAlchemyInvoiceRepository(db),
        artifact_store=artifact_store,
        renderer=KudeRenderer(),
        operation_log=SQLAlchemyOperationLog(db),
    )


def get_job_queue(
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
) -> JobQueue:
    return build_job_queue(db, dispatcher)


def get_submit_use_case(
    db: Session = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
    vault: CredentialVault = Depends(get_vault),
) -> SubmitInvoiceUseCase:
    return SubmitInvoiceUseCase(
        invoice_repo=SQLAlchemyInvoiceRepository(db),
        issuer_repo=SQLAlchemyIssuerRepository(db),
        operation_log=SQLAlchemyOperationLog(db),
        job_queue=job_queue,
        vault=vault,
    )


def get_retry_use_case(
    db: Session = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
) -> RetryInvoiceUseCase:
    return RetryInvoiceUseCase(SQLAlchemyInvoiceRepository(db), SQLAlchemyOperationLog(db), job_queue)


def get_query_use_case(
    db: Session = Depends(get_db),
    job_queue: JobQueue = Depends(get_job_queue),
    artifact_store: ArtifactStore = Depends(get_artifact_store),
) -> QueryInvoiceUseCase:
    return QueryInvoiceUseCase(
        invoice_repo=SQLAlchemyInvoiceRepository(db),
        artifact_store=artifact_store,
        operation_log=SQLAlchemyOperationLog(db),
        job_queue=job_queue,
    )
