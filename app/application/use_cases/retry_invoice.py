# app/application/use_cases/retry_invoice.py
import logging

from app.application.services.job_queue import JobQueue
from app.domain.exceptions import InvalidStateTransitionError, InvoiceNotFoundError
from app.domain.models.invoice import InvoiceState
from app.domain.models.job import Job, JobKind
from app.domain.models.operation_log import LogLevel, OperationKind
from app.domain.ports.invoice_repository import InvoiceRepository
from app.domain.ports.operation_log import OperationLog

logger = logging.getLogger(__name__)


class RetryInvoiceUseCase:
    """
    Reintento explícito de una factura en `error`. Si el XML ya está en
    disco el worker sólo lo reenvía; si no, corre el pipeline completo
    reutilizando el CDC guardado.
    """

    def __init__(self, invoice_repo: InvoiceRepository, operation_log: OperationLog, job_queue: JobQueue):
        self.invoice_repo = invoice_repo
        self.operation_log = operation_log
        self.job_queue = job_queue

    def execute(self, invoice_id: int) -> Job:
        invoice = self.invoice_repo.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Factura {invoice_id} no encontrada")
        if invoice.state != InvoiceState.ERROR:
            raise InvalidStateTransitionError(invoice.state.value, InvoiceState.PROCESSING.value)

        job = self.job_queue.enqueue(JobKind.PROCESS_INVOICE, invoice_id, payload={"retry": True})
        mode = "reenvío del XML existente" if invoice.artifact_path else "pipeline completo"
        self.operation_log.append(
            invoice_id, OperationKind.RETRY, f"Reintento solicitado ({mode})",
            level=LogLevel.WARNING, previous_state=invoice.state.value,
        )
        logger.info(f"[{invoice_id}] Reintento encolado: {mode}.")
        return job
