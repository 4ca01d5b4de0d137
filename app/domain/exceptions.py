# app/domain/exceptions.py
from typing import Any, Optional


class InvoiceError(Exception):
    """Base de todos los errores del dominio de facturación."""


class InvoiceValidationError(InvoiceError):
    """Datos de entrada incompletos, empresa inactiva o sin certificado."""


class IssuerNotFoundError(InvoiceError):
    pass


class InvoiceNotFoundError(InvoiceError):
    pass


class DuplicateInvoiceError(InvoiceError):
    """Ya existe una factura con el mismo hash. `existing` es el registro original."""

    def __init__(self, message: str, existing: Any = None):
        super().__init__(message)
        self.existing = existing


class InvalidStateTransitionError(InvoiceError):
    def __init__(self, current: Any, target: Any):
        super().__init__(f"Transición no permitida: {current} -> {target}")
        self.current = current
        self.target = target


class ProcessingError(InvoiceError):
    """Fallo en alguna etapa previa al envío (1 a 7). Sin artefacto nuevo."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


class ArtifactStorageError(InvoiceError):
    pass


class ArtifactNotFoundError(InvoiceError):
    pass


class SubmissionTransportError(InvoiceError):
    """No se obtuvo respuesta de SIFEN (conexión, timeout, HTTP)."""


class JobAlreadyQueuedError(InvoiceError):
    def __init__(self, job_id: str, state: Optional[str] = None):
        super().__init__(f"El job {job_id} ya está en curso ({state})")
        self.job_id = job_id
        self.state = state
