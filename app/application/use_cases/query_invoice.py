# app/application/use_cases/query_invoice.py
import os
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional, Tuple

from app.application.services.job_queue import JobQueue
from app.domain.exceptions import ArtifactNotFoundError, InvoiceNotFoundError
from app.domain.models.invoice import Invoice, InvoiceState, InvoiceStatus
from app.domain.models.job import JobKind
from app.domain.models.operation_log import LogLevel, OperationKind, OperationLogEntry
from app.domain.ports.artifact_store import ArtifactStore
from app.domain.ports.invoice_repository import InvoiceRepository
from app.domain.ports.operation_log import OperationLog


class QueryInvoiceUseCase:
    """Consultas de sólo lectura: estado, descargas, bitácora y cola."""

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        artifact_store: ArtifactStore,
        operation_log: OperationLog,
        job_queue: JobQueue,
    ):
        self.invoice_repo = invoice_repo
        self.artifact_store = artifact_store
        self.operation_log = operation_log
        self.job_queue = job_queue

    def _get(self, invoice_id: int) -> Invoice:
        invoice = self.invoice_repo.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Factura {invoice_id} no encontrada")
        return invoice

    def status(self, invoice_id: int) -> InvoiceStatus:
        invoice = self._get(invoice_id)
        job = self.job_queue.get(JobKind.PROCESS_INVOICE, invoice_id)
        return InvoiceStatus(
            id=invoice.id,
            correlative=invoice.correlative,
            state=invoice.state,
            control_id=invoice.control_id,
            result_code=invoice.result_code,
            result_message=invoice.result_message,
            artifact_available=bool(invoice.artifact_path) and self.artifact_store.exists(invoice.artifact_path),
            rendering_available=bool(invoice.rendering_path) and self.artifact_store.exists(invoice.rendering_path),
            created_at=invoice.created_at,
            submitted_at=invoice.submitted_at,
            job=None if job is None else {
                "id": job.id,
                "state": job.state.value,
                "attempts": job.attempts,
                "max_attempts": job.max_attempts,
                "progress": job.progress,
                "last_error": job.last_error,
            },
        )

    def artifact(self, invoice_id: int) -> Tuple[str, BinaryIO]:
        """(nombre de archivo, stream) del XML firmado."""
        invoice = self._get(invoice_id)
        if not invoice.artifact_path:
            raise ArtifactNotFoundError(f"La factura {invoice_id} no tiene XML generado")
        return os.path.basename(invoice.artifact_path), self.artifact_store.open(invoice.artifact_path)

    def rendering(self, invoice_id: int) -> Tuple[str, BinaryIO]:
        invoice = self._get(invoice_id)
        if not invoice.rendering_path:
            raise ArtifactNotFoundError(f"La factura {invoice_id} no tiene KUDE generado")
        return os.path.basename(invoice.rendering_path), self.artifact_store.open(invoice.rendering_path)

    def list(self, state: Optional[InvoiceState] = None, page: int = 1, limit: int = 20) -> Tuple[List[Invoice], int]:
        return self.invoice_repo.list(state=state, page=page, limit=limit)

    def logs(
        self,
        invoice_id: Optional[int] = None,
        kind: Optional[OperationKind] = None,
        level: Optional[LogLevel] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[OperationLogEntry], int]:
        if invoice_id is not None:
            self._get(invoice_id)
        return self.operation_log.list(
            invoice_id=invoice_id, kind=kind, level=level, since=since, until=until, page=page, limit=limit,
        )

    def purge_logs(self, older_than: datetime) -> int:
        return self.operation_log.purge(older_than)

    def queue_stats(self) -> Dict[str, Dict[str, int]]:
        return self.job_queue.stats()
