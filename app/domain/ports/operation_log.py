# app/domain/ports/operation_log.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.domain.models.operation_log import LogLevel, OperationKind, OperationLogEntry


class OperationLog(ABC):
    """Bitácora de auditoría. Sólo se agrega; se borra únicamente con `purge`."""

    @abstractmethod
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
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def purge(self, older_than: datetime) -> int:
        """Borra las entradas anteriores a `older_than`. Retorna cuántas borró."""
        pass
