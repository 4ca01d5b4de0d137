# app/infrastructure/persistence/invoice_repository_adapter.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.domain.exceptions import DuplicateInvoiceError, InvoiceNotFoundError
from app.domain.models.invoice import ControlIdentifiers, Invoice, InvoiceState, SubmissionOutcome
from app.domain.ports.invoice_repository import InvoiceRepository
from .models import Factura


def to_domain(row: Factura) -> Invoice:
    return Invoice(
        id=row.id,
        issuer_id=row.empresa_id,
        issuer_ruc=row.ruc_empresa,
        fingerprint=row.hash_factura,
        correlative=row.correlativo,
        state=InvoiceState(row.estado),
        payload=row.datos_factura or {},
        client=row.cliente or {},
        total=row.total or 0.0,
        control_id=row.cdc,
        security_code=row.codigo_seguridad,
        result_code=row.codigo_retorno,
        result_message=row.mensaje_retorno,
        digest_value=row.digest_value,
        remote_processed_at=row.fecha_proceso_sifen,
        artifact_path=row.xml_path,
        rendering_path=row.kude_path,
        submitted_at=row.fecha_envio,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLAlchemyInvoiceRepository(InvoiceRepository):
    def __init__(self, db: Session):
        self.db = db

    def _row(self, invoice_id: int) -> Factura:
        row = self.db.get(Factura, invoice_id)
        if row is None:
            raise InvoiceNotFoundError(f"Factura {invoice_id} no encontrada")
        return row

    def _commit(self, row: Factura) -> Invoice:
        self.db.commit()
        self.db.refresh(row)
        return to_domain(row)

    def create(
        self,
        issuer_id: int,
        issuer_ruc: str,
        fingerprint: str,
        correlative: str,
        payload: Dict[str, Any],
        client: Dict[str, Any],
        total: float,
    ) -> Invoice:
        row = Factura(
            empresa_id=issuer_id,
            ruc_empresa=issuer_ruc,
            hash_factura=fingerprint,
            correlativo=correlative,
            estado=InvoiceState.QUEUED.value,
            datos_factura=payload,
            cliente=client,
            total=total,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Otra petición con el mismo hash ganó la carrera
            self.db.rollback()
            raise DuplicateInvoiceError("Factura duplicada", existing=self.find_by_fingerprint(fingerprint)) from e
        return self._commit(row)

    def get(self, invoice_id: int) -> Optional[Invoice]:
        row = self.db.get(Factura, invoice_id)
        return to_domain(row) if row else None

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Invoice]:
        row = self.db.execute(select(Factura).where(Factura.hash_factura == fingerprint)).scalar_one_or_none()
        return to_domain(row) if row else None

    def list(self, state: Optional[InvoiceState] = None, page: int = 1, limit: int = 20) -> Tuple[List[Invoice], int]:
        query = select(Factura)
        count_query = select(func.count(Factura.id))
        if state is not None:
            query = query.where(Factura.estado == state.value)
            count_query = count_query.where(Factura.estado == state.value)
        total = self.db.execute(count_query).scalar_one()
        rows = self.db.execute(
            query.order_by(Factura.id.desc()).offset((max(page, 1) - 1) * limit).limit(limit)
        ).scalars().all()
        return [to_domain(r) for r in rows], total

    def mark_state(self, invoice_id: int, state: InvoiceState, message: Optional[str] = None) -> Invoice:
        row = self._row(invoice_id)
        row.estado = state.value
        if message is not None:
            row.mensaje_retorno = message
        return self._commit(row)

    def save_identifiers(self, invoice_id: int, identifiers: ControlIdentifiers) -> Invoice:
        row = self._row(invoice_id)
        row.cdc = identifiers.control_id
        row.codigo_seguridad = identifiers.security_code
        return self._commit(row)

    def record_artifact(self, invoice_id: int, artifact_path: str) -> Invoice:
        row = self._row(invoice_id)
        row.xml_path = artifact_path
        return self._commit(row)

    def record_outcome(self, invoice_id: int, outcome: SubmissionOutcome, submitted_at: datetime) -> Invoice:
        row = self._row(invoice_id)
        row.estado = outcome.state.value
        row.codigo_retorno = outcome.result_code
        row.mensaje_retorno = outcome.result_message
        row.digest_value = outcome.digest_value
        row.fecha_proceso_sifen = outcome.remote_processed_at
        row.fecha_envio = submitted_at
        return self._commit(row)

    def record_rendering(self, invoice_id: int, rendering_path: str) -> Invoice:
        row = self._row(invoice_id)
        row.kude_path = rendering_path
        return self._commit(row)
