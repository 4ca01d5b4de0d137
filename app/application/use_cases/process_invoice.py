# app/application/use_cases/process_invoice.py
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Tuple

from app.application.services.job_queue import JobQueue
from app.domain.exceptions import (
    ArtifactStorageError,
    InvoiceNotFoundError,
    ProcessingError,
    SubmissionTransportError,
)
from app.domain.models.invoice import Invoice, InvoiceState
from app.domain.models.issuer import Issuer
from app.domain.models.job import JobKind
from app.domain.models.lifecycle import ensure_transition
from app.domain.models.operation_log import LogLevel, OperationKind
from app.domain.ports.artifact_store import ArtifactStore
from app.domain.ports.credential_vault import CredentialVault
from app.domain.ports.document_assembler import DocumentAssembler
from app.domain.ports.document_signer import DocumentSigner
from app.domain.ports.document_stamper import DocumentStamper
from app.domain.ports.invoice_repository import InvoiceRepository
from app.domain.ports.issuer_repository import IssuerRepository
from app.domain.ports.operation_log import OperationLog
from app.domain.ports.progress_sink import NullProgressSink, ProgressSink
from app.domain.ports.submission_client import SubmissionClient
from app.domain.services.dates import normalize_dates, utcnow
from app.domain.services.identifiers import derive_identifiers
from app.domain.services.payload import artifact_relative_path, merge_with_issuer
from app.domain.services.result_interpreter import ResultCodeTable, interpret_response, transport_failure_outcome

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (SubmissionTransportError, OSError)  # ConnectionError y TimeoutError heredan de OSError

_OUTCOME_LEVELS = {
    InvoiceState.ACCEPTED: LogLevel.SUCCESS,
    InvoiceState.SUBMITTED: LogLevel.SUCCESS,
    InvoiceState.PROCESSING: LogLevel.WARNING,
    InvoiceState.REJECTED: LogLevel.ERROR,
    InvoiceState.ERROR: LogLevel.ERROR,
}


@contextmanager
def stage(name: str):
    """Convierte cualquier fallo de la etapa en ProcessingError."""
    try:
        yield
    except ProcessingError:
        raise
    except Exception as e:
        raise ProcessingError(name, str(e)) from e


class ProcessInvoiceUseCase:
    """
    Orquesta el pipeline de una factura:

        empresa -> datos -> CDC -> XML -> firma -> QR -> disco -> SIFEN -> resultado -> KUDE

    El XML queda escrito en disco (y su ruta en la base) antes de cualquier
    llamada de red. Si SIFEN no responde, la factura queda en `error` pero
    con el artefacto disponible para reenviarlo.
    """

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        issuer_repo: IssuerRepository,
        operation_log: OperationLog,
        vault: CredentialVault,
        assembler: DocumentAssembler,
        signer: DocumentSigner,
        stamper: DocumentStamper,
        artifact_store: ArtifactStore,
        submission_client: SubmissionClient,
        job_queue: Optional[JobQueue] = None,
        result_table: Optional[ResultCodeTable] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.invoice_repo = invoice_repo
        self.issuer_repo = issuer_repo
        self.operation_log = operation_log
        self.vault = vault
        self.assembler = assembler
        self.signer = signer
        self.stamper = stamper
        self.artifact_store = artifact_store
        self.submission_client = submission_client
        self.job_queue = job_queue
        self.result_table = result_table or ResultCodeTable.from_config()
        self.clock = clock

    def execute(
        self,
        invoice_id: int,
        progress: ProgressSink = NullProgressSink(),
        retry: bool = False,
        resume: bool = False,
    ) -> Invoice:
        """
        `retry`: reintento explícito pedido por el usuario.
        `resume`: reintento automático de la cola para el mismo job.
        Ambos permiten salir del estado `error`.
        """
        invoice = self.invoice_repo.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Factura {invoice_id} no encontrada")

        previous = invoice.state
        ensure_transition(previous, InvoiceState.PROCESSING, retry=retry or resume)
        invoice = self.invoice_repo.mark_state(invoice_id, InvoiceState.PROCESSING)
        self.operation_log.append(
            invoice_id, OperationKind.STATE_UPDATE, "Procesamiento iniciado por el worker",
            previous_state=previous.value, next_state=InvoiceState.PROCESSING.value,
        )
        logger.info(f"[{invoice_id}] Procesando factura {invoice.correlative} (estado previo: {previous.value}).")
        progress.report(5)

        try:
            # El reenvío no repite las etapas 1 a 7: de la empresa sólo hacen
            # falta el modo y la ruta del certificado
            resending = bool(invoice.artifact_path) and self.artifact_store.exists(invoice.artifact_path)
            issuer = self._load_issuer(invoice, validate=not resending)
            progress.report(10)

            if resending:
                logger.info(f"[{invoice_id}] El XML ya existe en {invoice.artifact_path}; se reenvía sin regenerarlo.")
                with stage("artifact"):
                    document = self.artifact_store.read(invoice.artifact_path)
                progress.report(75)
            else:
                invoice, document = self._build_artifact(invoice, issuer, progress)
        except ProcessingError as e:
            logger.error(f"[{invoice_id}] Falló la etapa '{e.stage}': {e}")
            self.invoice_repo.mark_state(invoice_id, InvoiceState.ERROR, message=str(e))
            self.operation_log.append(
                invoice_id, OperationKind.ERROR, f"Error en la etapa {e.stage}: {e}",
                level=LogLevel.ERROR,
                previous_state=InvoiceState.PROCESSING.value, next_state=InvoiceState.ERROR.value,
                detail={"stage": e.stage},
            )
            raise

        invoice = self._submit(invoice, issuer, document, progress, retry=retry)
        self._enqueue_rendering(invoice)
        progress.report(100)
        return invoice

    def _load_issuer(self, invoice: Invoice, validate: bool = True) -> Issuer:
        with stage("issuer"):
            issuer = self.issuer_repo.get(invoice.issuer_id)
            if issuer is None:
                raise ValueError(f"Empresa {invoice.issuer_id} no encontrada")
            if not validate:
                return issuer
            if not issuer.active:
                raise ValueError(f'La empresa "{issuer.trade_name}" está inactiva')
            if not self.vault.has_valid_credential(issuer):
                raise ValueError("La empresa no tiene un certificado digital válido cargado")
        return issuer

    def _build_artifact(self, invoice: Invoice, issuer: Issuer, progress: ProgressSink) -> Tuple[Invoice, bytes]:
        invoice_id = invoice.id

        with stage("merge"):
            merged = merge_with_issuer(normalize_dates(invoice.payload), issuer)
        progress.report(15)

        with stage("identifiers"):
            identifiers = invoice.identifiers
            if identifiers is None:
                identifiers = derive_identifiers(merged)
                invoice = self.invoice_repo.save_identifiers(invoice_id, identifiers)
                logger.info(f"[{invoice_id}] CDC generado: {identifiers.control_id}")
            else:
                logger.info(f"[{invoice_id}] Reutilizando CDC {identifiers.control_id}")
        progress.report(20)

        with stage("assemble"):
            xml = self.assembler.assemble(merged, issuer, identifiers)
        self.operation_log.append(invoice_id, OperationKind.DOCUMENT_GENERATED, "XML generado", detail={"cdc": identifiers.control_id})
        progress.report(35)

        with stage("sign"):
            with self.vault.unlock(issuer) as credential:
                signed = self.signer.sign(xml, credential)
        self.operation_log.append(invoice_id, OperationKind.DOCUMENT_SIGNED, "XML firmado digitalmente")
        progress.report(50)

        with stage("stamp"):
            stamped = self.stamper.stamp(signed, issuer)
        progress.report(60)

        with stage("persist"):
            relative_path = artifact_relative_path(merged, self.clock())
            self._ensure_path_is_free(invoice, relative_path, identifiers.control_id)
            self.artifact_store.save(relative_path, stamped.encode("utf-8"))
            invoice = self.invoice_repo.record_artifact(invoice_id, relative_path)
        self.operation_log.append(
            invoice_id, OperationKind.ARTIFACT_STORED, f"XML guardado en {relative_path}",
            detail={"path": relative_path},
        )
        logger.info(f"[{invoice_id}] XML guardado en {relative_path}")
        progress.report(75)
        return invoice, stamped.encode("utf-8")

    def _ensure_path_is_free(self, invoice: Invoice, relative_path: str, control_id: str) -> None:
        """
        El nombre del archivo no incluye la fecha del documento: dos facturas
        con el mismo número caen en la misma ruta. Sólo se reescribe un
        archivo que ya sea de esta factura (mismo CDC).
        """
        if invoice.artifact_path == relative_path or not self.artifact_store.exists(relative_path):
            return
        if control_id.encode("utf-8") not in self.artifact_store.read(relative_path):
            raise ArtifactStorageError(f"{relative_path} ya contiene el documento de otra factura")

    def _submit(self, invoice: Invoice, issuer: Issuer, document: bytes, progress: ProgressSink, retry: bool) -> Invoice:
        invoice_id = invoice.id
        self.operation_log.append(
            invoice_id,
            OperationKind.RETRY if retry else OperationKind.SUBMITTED,
            f"Enviando a SIFEN ({issuer.mode})",
            level=LogLevel.WARNING if retry else LogLevel.SUCCESS,
        )
        progress.report(80)

        try:
            response = self.submission_client.submit(
                tracking_id=str(invoice_id),
                document=document,
                mode=issuer.mode,
                certificate_path=self.vault.certificate_path(issuer),
            )
            outcome = interpret_response(response, self.result_table)
            logger.info(f"[{invoice_id}] SIFEN respondió {response.result_code}: {response.result_message}")
            if response.control_id and invoice.control_id and response.control_id != invoice.control_id:
                logger.warning(f"[{invoice_id}] SIFEN devolvió el CDC {response.control_id}, se esperaba {invoice.control_id}")
        except TRANSPORT_ERRORS as e:
            outcome = transport_failure_outcome(f"Error de conexión con SIFEN: {e}")
            logger.warning(f"[{invoice_id}] No se pudo contactar a SIFEN: {e}. El XML queda en {invoice.artifact_path} para reenvío.")
        progress.report(90)

        ensure_transition(InvoiceState.PROCESSING, outcome.state)
        invoice = self.invoice_repo.record_outcome(invoice_id, outcome, submitted_at=self.clock())
        self.operation_log.append(
            invoice_id,
            OperationKind.RETRY_RESPONSE if retry else OperationKind.REMOTE_RESPONSE,
            outcome.result_message or f"Estado {outcome.state.value}",
            level=_OUTCOME_LEVELS[outcome.state],
            previous_state=InvoiceState.PROCESSING.value,
            next_state=outcome.state.value,
            detail={
                "codigo": outcome.result_code,
                "sin_conexion": outcome.transport_failed,
                "artefacto": invoice.artifact_path,
            },
        )
        logger.info(f"[{invoice_id}] Estado final: {outcome.state.value} ({outcome.result_code})")
        progress.report(95)
        return invoice

    def _enqueue_rendering(self, invoice: Invoice) -> None:
        if self.job_queue is None:
            return
        try:
            self.job_queue.enqueue(JobKind.RENDER_INVOICE, invoice.id)
        except Exception as e:
            logger.warning(f"[{invoice.id}] No se pudo encolar el KUDE: {e}")
