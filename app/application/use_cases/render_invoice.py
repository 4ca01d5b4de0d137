# app/application/use_cases/render_invoice.py
import logging
import os

from app.domain.exceptions import ArtifactNotFoundError, InvoiceNotFoundError
from app.domain.models.invoice import Invoice
from app.domain.models.operation_log import OperationKind
from app.domain.ports.artifact_store import ArtifactStore
from app.domain.ports.invoice_repository import InvoiceRepository
from app.domain.ports.operation_log import OperationLog
from app.domain.ports.renderer import Renderer

logger = logging.getLogger(__name__)


class RenderInvoiceUseCase:
    """Genera el KUDE (PDF) junto al XML. No toca el estado de la factura."""

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        artifact_store: ArtifactStore,
        renderer: Renderer,
        operation_log: OperationLog,
    ):
        self.invoice_repo = invoice_repo
        self.artifact_store = artifact_store
        self.renderer = renderer
        self.operation_log = operation_log

    def execute(self, invoice_id: int) -> Invoice:
        invoice = self.invoice_repo.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Factura {invoice_id} no encontrada")
        if not invoice.artifact_path:
            raise ArtifactNotFoundError(f"La factura {invoice_id} no tiene XML generado")

        document = self.artifact_store.read(invoice.artifact_path)
        pdf = self.renderer.render(invoice, document)

        rendering_path = os.path.splitext(invoice.artifact_path)[0] + ".pdf"
        self.artifact_store.save(rendering_path, pdf)
        invoice = self.invoice_repo.record_rendering(invoice_id, rendering_path)
        self.operation_log.append(invoice_id, OperationKind.RENDERED, f"KUDE generado en {rendering_path}")
        logger.info(f"[{invoice_id}] KUDE generado: {rendering_path}")
        return invoice
