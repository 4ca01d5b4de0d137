# app/infrastructure/api/routers/invoices_router.py
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from app.application.services.job_queue import JobQueue
from app.application.use_cases.query_invoice import QueryInvoiceUseCase
from app.application.use_cases.retry_invoice import RetryInvoiceUseCase
from app.application.use_cases.submit_invoice import SubmitInvoiceUseCase
from app.domain.exceptions import (
    ArtifactNotFoundError,
    DuplicateInvoiceError,
    InvalidStateTransitionError,
    InvoiceError,
    InvoiceNotFoundError,
    InvoiceValidationError,
    IssuerNotFoundError,
    JobAlreadyQueuedError,
)
from app.domain.models.invoice import InvoiceState, InvoiceSubmission
from app.domain.models.operation_log import LogLevel, OperationKind
from app.infrastructure.dependencies import (
    get_job_queue,
    get_query_use_case,
    get_retry_use_case,
    get_submit_use_case,
)

router = APIRouter(prefix="/api/v1/facturas", tags=["Facturas"])


def _http_error(e: InvoiceError) -> HTTPException:
    if isinstance(e, InvoiceValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (IssuerNotFoundError, InvoiceNotFoundError, ArtifactNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DuplicateInvoiceError):
        existing = e.existing.model_dump(mode="json", exclude={"payload"}) if e.existing else None
        return HTTPException(status_code=409, detail={"message": str(e), "factura": existing})
    if isinstance(e, (JobAlreadyQueuedError, InvalidStateTransitionError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@router.post("/", status_code=202, summary="Recibir una factura para su procesamiento")
def submit_invoice(
    payload: Dict[str, Any] = Body(..., description="Datos de la factura con el RUC de la empresa."),
    use_case: SubmitInvoiceUseCase = Depends(get_submit_use_case),
):
    """
    Valida, registra la factura en estado `queued` y encola el job.
    La generación, firma y envío a SIFEN ocurren en segundo plano.
    """
    try:
        submission = InvoiceSubmission.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise HTTPException(
            status_code=400,
            detail=f"Datos de factura incompletos o inválidos. Se requiere: ruc, numero, cliente, items ({fields})",
        )
    try:
        invoice = use_case.execute(submission)
    except InvoiceError as e:
        raise _http_error(e)
    return {
        "status": invoice.state.value,
        "invoice_id": invoice.id,
        "correlative": invoice.correlative,
        "fingerprint": invoice.fingerprint,
    }


@router.get("/", summary="Listar facturas")
def list_invoices(
    estado: Optional[InvoiceState] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    use_case: QueryInvoiceUseCase = Depends(get_query_use_case),
):
    invoices, total = use_case.list(state=estado, page=page, limit=limit)
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "items": [inv.model_dump(mode="json", exclude={"payload"}) for inv in invoices],
    }


@router.get("/logs", summary="Bitácora de operaciones")
def list_logs(
    tipo: Optional[OperationKind] = None,
    nivel: Optional[LogLevel] = None,
    desde: Optional[datetime] = None,
    hasta: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    use_case: QueryInvoiceUseCase = Depends(get_query_use_case),
):
    entries, total = use_case.logs(kind=tipo, level=nivel, since=desde, until=hasta, page=page, limit=limit)
    return {"total": total, "page": page, "limit": limit, "items": [e.model_dump(mode="json") for e in entries]}


@router.delete("/logs", summary="Purgar la bitácora")
def purge_logs(
    antes_de: datetime = Query(..., description="Borra las entradas anteriores a esta fecha."),
    use_case: QueryInvoiceUseCase = Depends(get_query_use_case),
):
    return {"deleted": use_case.purge_logs(antes_de)}


@router.get("/cola/estadisticas", summary="Estadísticas de las colas")
def queue_stats(use_case: QueryInvoiceUseCase = Depends(get_query_use_case)):
    return use_case.queue_stats()


@router.post("/cola/reintentar-fallidos", summary="Rearmar jobs fallidos")
def retry_failed_jobs(limit: int = Query(10, ge=1, le=1000), job_queue: JobQueue = Depends(get_job_queue)):
    retried = job_queue.retry_failed(limit=limit)
    return {"retried": len(retried), "jobs": retried}


@router.delete("/cola/completados", summary="Eliminar jobs completados")
def clean_completed_jobs(job_queue: JobQueue = Depends(get_job_queue)):
    return {"deleted": job_queue.clean_completed()}


@router.get("/{invoice_id}", summary="Estado de una factura")
def get_status(invoice_id: int, use_case: QueryInvoiceUseCase = Depends(get_query_use_case)):
    try:
        return use_case.status(invoice_id).model_dump(mode="json")
    except InvoiceError as e:
        raise _http_error(e)


@router.get("/{invoice_id}/xml", summary="Descargar el XML firmado")
def download_xml(invoice_id: int, use_case: QueryInvoiceUseCase = Depends(get_query_use_case)):
    try:
        filename, stream = use_case.artifact(invoice_id)
    except InvoiceError as e:
        raise _http_error(e)
    return StreamingResponse(
        stream,
        media_type="application/xml",
        headers={"Content-Disposition": f'attachment; filename="{filename.encode("ascii", "ignore").decode()}"'},
    )


@router.get("/{invoice_id}/kude", summary="Descargar el KUDE (PDF)")
def download_kude(invoice_id: int, use_case: QueryInvoiceUseCase = Depends(get_query_use_case)):
    try:
        filename, stream = use_case.rendering(invoice_id)
    except InvoiceError as e:
        raise _http_error(e)
    return StreamingResponse(
        stream,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename.encode("ascii", "ignore").decode()}"'},
    )


@router.post("/{invoice_id}/reintentar", status_code=202, summary="Reintentar una factura con error")
def retry_invoice(invoice_id: int, use_case: RetryInvoiceUseCase = Depends(get_retry_use_case)):
    try:
        job = use_case.execute(invoice_id)
    except InvoiceError as e:
        raise _http_error(e)
    return {"status": "retry_queued", "invoice_id": invoice_id, "job_id": job.id}


@router.get("/{invoice_id}/logs", summary="Bitácora de una factura")
def invoice_logs(
    invoice_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    use_case: QueryInvoiceUseCase = Depends(get_query_use_case),
):
    try:
        entries, total = use_case.logs(invoice_id=invoice_id, page=page, limit=limit)
    except InvoiceError as e:
        raise _http_error(e)
    return {"total": total, "page": page, "limit": limit, "items": [e.model_dump(mode="json") for e in entries]}
