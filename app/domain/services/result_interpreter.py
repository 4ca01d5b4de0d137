# app/domain/services/result_interpreter.py
"""
Traduce el código de retorno de SIFEN a un estado de la factura.

La tabla de códigos no está fija en el código: se toma de
config.DEFAULT_RESULT_CODES o del JSON indicado en SIFEN_RESULT_CODES_FILE.
"""
import json
from typing import Dict, FrozenSet, Iterable, Optional

import config
from app.domain.models.invoice import InvoiceState, RemoteResponse, SubmissionOutcome


class ResultCodeTable:
    def __init__(
        self,
        accepted: Iterable[str] = (),
        pending: Iterable[str] = (),
        rejected: Iterable[str] = (),
        error: Iterable[str] = (),
    ):
        self.accepted: FrozenSet[str] = frozenset(str(c) for c in accepted)
        self.pending: FrozenSet[str] = frozenset(str(c) for c in pending)
        self.rejected: FrozenSet[str] = frozenset(str(c) for c in rejected)
        self.error: FrozenSet[str] = frozenset(str(c) for c in error)

    @classmethod
    def from_mapping(cls, data: Dict[str, Iterable[str]]) -> "ResultCodeTable":
        return cls(
            accepted=data.get("accepted", ()),
            pending=data.get("pending", ()),
            rejected=data.get("rejected", ()),
            error=data.get("error", ()),
        )

    @classmethod
    def from_file(cls, path: str) -> "ResultCodeTable":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_mapping(json.load(f))

    @classmethod
    def from_config(cls) -> "ResultCodeTable":
        if config.SIFEN_RESULT_CODES_FILE:
            return cls.from_file(config.SIFEN_RESULT_CODES_FILE)
        return cls.from_mapping(config.DEFAULT_RESULT_CODES)

    def state_for(self, code: Optional[str]) -> InvoiceState:
        """Función total: cualquier código (o ninguno) devuelve un estado."""
        if code is None:
            return InvoiceState.SUBMITTED
        code = str(code).strip()
        if code in self.accepted:
            return InvoiceState.ACCEPTED
        if code in self.pending:
            return InvoiceState.PROCESSING
        if code in self.rejected:
            return InvoiceState.REJECTED
        if code in self.error:
            return InvoiceState.ERROR
        return InvoiceState.SUBMITTED


def interpret_response(response: RemoteResponse, table: ResultCodeTable) -> SubmissionOutcome:
    state = table.state_for(response.result_code)
    message = response.result_message
    if not message:
        message = "Enviado a SIFEN" if state == InvoiceState.SUBMITTED else None
    return SubmissionOutcome(
        state=state,
        result_code=response.result_code,
        result_message=message,
        digest_value=response.digest_value,
        remote_processed_at=response.processed_at,
    )


def transport_failure_outcome(message: str) -> SubmissionOutcome:
    """Sin respuesta de SIFEN: error con el código reservado de "sin conexión"."""
    return SubmissionOutcome(
        state=InvoiceState.ERROR,
        result_code=config.NO_CONNECTION_CODE,
        result_message=message,
        transport_failed=True,
    )
