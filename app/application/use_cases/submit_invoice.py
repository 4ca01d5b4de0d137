# app/application/use_cases/submit_invoice.py
import logging
from typing import Optional

from app.application.services.job_queue import JobQueue
from app.domain.exceptions import DuplicateInvoiceError, InvoiceValidationError, IssuerNotFoundError
from app.domain.models.invoice import Invoice, InvoiceState, InvoiceSubmission
from app.domain.models.job import JobKind
from app.domain.models.operation_log import OperationKind
from app.domain.ports.credential_vault import CredentialVault
from app.domain.ports.invoice_repository import InvoiceRepository
from app.domain.ports.issuer_repository import IssuerRepository
from app.domain.ports.operation_log import OperationLog
from app.domain.services.dates import normalize_dates, normalize_datetime, utcnow
from app.domain.services.identifiers import compute_fingerprint
from app.domain.services.payload import correlative, format_number

logger = logging.getLogger(__name__)


class SubmitInvoiceUseCase:
    """
    Ingreso de facturas: valida, detecta duplicados, crea el registro en
    `queued` y encola el job. Nunca espera al pipeline.
    """

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        issuer_repo: IssuerRepository,
        operation_log: OperationLog,
        job_queue: JobQueue,
        vault: CredentialVault,
    ):
        self.invoice_repo = invoice_repo
        self.issuer_repo = issuer_repo
        self.operation_log = operation_log
        self.job_queue = job_queue
        self.vault = vault

    def execute(self, submission: InvoiceSubmission) -> Invoice:
        issuer = self.issuer_repo.find_by_ruc(submission.ruc)
        if issuer is None:
            raise IssuerNotFoundError(f"No se encontró una empresa con RUC {submission.ruc}")
        if not issuer.active:
            raise InvoiceValidationError(f'La empresa "{issuer.trade_name}" está inactiva')
        if not self.vault.has_valid_credential(issuer):
            raise InvoiceValidationError("La empresa no tiene un certificado digital válido cargado")

        payload = submission.model_dump(exclude_none=True)
        payload["ruc"] = issuer.ruc
        # Sin fecha se fija ahora, una sola vez, para que el hash no cambie
        payload["fecha"] = normalize_datetime(submission.fecha or utcnow())
        payload = normalize_dates(payload)

        fingerprint = compute_fingerprint(issuer.ruc, format_number(submission.numero), payload["fecha"])
        existing: Optional[Invoice] = self.invoice_repo.find_by_fingerprint(fingerprint)
        if existing is not None:
            raise DuplicateInvoiceError("Factura duplicada", existing=existing)

        invoice = self.invoice_repo.create(
            issuer_id=issuer.id,
            issuer_ruc=issuer.ruc,
            fingerprint=fingerprint,
            correlative=correlative(
                submission.establecimiento or issuer.establishment,
                submission.punto or issuer.emission_point,
                submission.numero,
            ),
            payload=payload,
            client=submission.cliente,
            total=submission.computed_total(),
        )
        self.operation_log.append(
            invoice.id,
            OperationKind.PROCESS_STARTED,
            "Factura recibida y encolada para su procesamiento",
            next_state=InvoiceState.QUEUED.value,
        )
        logger.info(f"[{invoice.id}] Factura {invoice.correlative} creada para {issuer.trade_name} (RUC {issuer.ruc}).")

        self.job_queue.enqueue(JobKind.PROCESS_INVOICE, invoice.id)
        return invoice
