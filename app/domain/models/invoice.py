# app/domain/models/invoice.py
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class InvoiceState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ERROR = "error"


def numeric_code(value: Any, width: int) -> str:
    """Código numérico con ceros a la izquierda: 60 -> "0000060"."""
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise ValueError(f"debe ser numérico: {value!r}")
    significant = text.lstrip("0") or "0"
    if len(significant) > width:
        raise ValueError(f"admite hasta {width} dígitos: {value!r}")
    return significant.zfill(width)


class InvoiceSubmission(BaseModel):
    """
    Datos de entrada de una factura tal como llegan del ERP.
    Sólo se exigen los campos mínimos; el resto viaja como extra
    hasta el generador del documento.
    """
    ruc: str = Field(min_length=1)
    numero: str
    cliente: Dict[str, Any]
    items: List[Dict[str, Any]] = Field(min_length=1)
    fecha: Optional[str] = None
    establecimiento: Optional[str] = None
    punto: Optional[str] = None
    tipoDocumento: Optional[int] = None
    total: Optional[float] = None
    totalPago: Optional[float] = None

    model_config = ConfigDict(
        extra='allow'  # El resto de los campos SIFEN pasan tal cual
    )

    @field_validator("numero", mode="before")
    @classmethod
    def _normalize_number(cls, value: Any) -> str:
        return numeric_code(value, 7)

    @field_validator("establecimiento", "punto", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> Optional[str]:
        if value in (None, ""):
            return None
        return numeric_code(value, 3)

    def computed_total(self) -> float:
        if self.total is not None:
            return float(self.total)
        if self.totalPago is not None:
            return float(self.totalPago)
        total = 0.0
        for item in self.items:
            if item.get("precioTotal") is not None:
                total += float(item["precioTotal"])
            else:
                total += float(item.get("precioUnitario") or 0) * float(item.get("cantidad") or 0)
        return total


class ControlIdentifiers(BaseModel):
    """CDC (44 dígitos) y el código de seguridad con el que se construyó."""
    control_id: str
    security_code: str

    model_config = ConfigDict(frozen=True)


class Invoice(BaseModel):
    """
    Registro persistente de una factura. Lo crea el endpoint de ingreso en
    estado `queued`; sólo el worker cambia su estado.
    """
    id: int
    issuer_id: int
    issuer_ruc: str
    fingerprint: str
    correlative: str
    state: InvoiceState = InvoiceState.QUEUED
    payload: Dict[str, Any] = Field(default_factory=dict)
    client: Dict[str, Any] = Field(default_factory=dict)
    total: float = 0.0

    control_id: Optional[str] = None
    security_code: Optional[str] = None
    result_code: Optional[str] = None
    result_message: Optional[str] = None
    digest_value: Optional[str] = None
    remote_processed_at: Optional[str] = None
    artifact_path: Optional[str] = None
    rendering_path: Optional[str] = None

    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def identifiers(self) -> Optional[ControlIdentifiers]:
        if self.control_id and self.security_code:
            return ControlIdentifiers(control_id=self.control_id, security_code=self.security_code)
        return None


class RemoteResponse(BaseModel):
    """Respuesta de SIFEN ya decodificada, sin rastros del XML/SOAP."""
    result_code: Optional[str] = None
    result_message: Optional[str] = None
    result_status: Optional[str] = None
    control_id: Optional[str] = None
    digest_value: Optional[str] = None
    processed_at: Optional[str] = None


class SubmissionOutcome(BaseModel):
    """Estado final calculado a partir de la respuesta (o de su ausencia)."""
    state: InvoiceState
    result_code: Optional[str] = None
    result_message: Optional[str] = None
    digest_value: Optional[str] = None
    remote_processed_at: Optional[str] = None
    transport_failed: bool = False


class InvoiceStatus(BaseModel):
    id: int
    correlative: str
    state: InvoiceState
    control_id: Optional[str] = None
    result_code: Optional[str] = None
    result_message: Optional[str] = None
    artifact_available: bool = False
    rendering_available: bool = False
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    job: Optional[Dict[str, Any]] = None
