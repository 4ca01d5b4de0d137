# app/infrastructure/persistence/operation_log_adapter.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.domain.models.operation_log import LogLevel, OperationKind, OperationLogEntry
from app.domain.ports.operation_log import OperationLog
from app.domain.services.dates import utcnow
from .models import LogOperacion


def to_domain(row: LogOperacion) -> OperationLogEntry:
    return OperationLogEntry(
        id=row.id,
        invoice_id=row.factura_id,
        kind=OperationKind(row.tipo_operacion),
        description=row.descripcion,
        level=LogLevel(row.nivel),
        previous_state=row.estado_anterior,
        next_state=row.estado_nuevo,
        detail=row.detalle or {},
        created_at=row.created_at,
    )


class SQLAlchemyOperationLog(OperationLog):
    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        invoice_id: int,
        kind: OperationKind,
        description: str,
        level: LogLevel = LogLevel.SUCCESS,
        previous_state: Optional[str] = None,
        next_state: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> OperationLogEntry:
        row = LogOperacion(
            factura_id=invoice_id,
            tipo_operacion=kind.value,
            descripcion=description,
            nivel=level.value,
            estado_anterior=previous_state,
            estado_nuevo=next_state,
            detalle=detail or {},
            created_at=utcnow(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return to_domain(row)

    def list(
        self,
        invoice_id: Optional[int] = None,
        kind: Optional[OperationKind] = None,
        level: Optional[LogLevel] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[OperationLogEntry], int]:
        filters = []
        if invoice_id is not None:
            filters.append(LogOperacion.factura_id == invoice_id)
        if kind is not None:
            filters.append(LogOperacion.tipo_operacion == kind.value)
        if level is not None:
            filters.append(LogOperacion.nivel == level.value)
        if since is not None:
            filters.append(LogOperacion.created_at >= since)
        if until is not None:
            filters.append(LogOperacion.created_at <= until)

        total = self.db.execute(select(func.count(LogOperacion.id)).where(*filters)).scalar_one()
        rows = self.db.execute(
            select(LogOperacion)
            .where(*filters)
            .order_by(LogOperacion.created_at.desc(), LogOperacion.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return [to_domain(r) for r in rows], total

    def purge(self, older_than: datetime) -> int:
        result = self.db.execute(delete(LogOperacion).where(LogOperacion.created_at < older_than))
        self.db.commit()
        return result.rowcount or 0
