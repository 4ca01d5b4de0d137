# app/domain/services/dates.py
"""
Normalización de fechas provenientes del ERP.

ERPNext envía microsegundos (2026-02-24T15:12:58.715809); el hash de la
factura y el generador SIFEN trabajan con milisegundos o sin fracción.
Todas las funciones son puras: nunca modifican el objeto recibido.
"""
import copy
from datetime import date, datetime, timezone
from typing import Any, Dict, Union

from app.domain.exceptions import InvoiceValidationError

DATE_FIELDS = ("fecha", "fecha_nacimiento", "fecha_emision", "fecha_vencimiento", "created", "modified")

DateLike = Union[str, int, float, date, datetime]


def parse_datetime(value: DateLike) -> datetime:
    """Devuelve un datetime naive en UTC truncado a milisegundos."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # timestamp en milisegundos, como lo manda el ERP
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvoiceValidationError(f"Fecha inválida: {value}") from e
    else:
        raise InvoiceValidationError(f"Fecha inválida: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.replace(microsecond=(parsed.microsecond // 1000) * 1000)


def normalize_datetime(value: DateLike) -> str:
    """2026-02-24T15:12:58.715809 -> 2026-02-24T15:12:58.715Z"""
    parsed = parse_datetime(value)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S") + f".{parsed.microsecond // 1000:03d}Z"


def sifen_datetime(value: DateLike) -> str:
    """Formato SIFEN v150: sin milisegundos ni zona (2026-02-24T15:12:58)."""
    return parse_datetime(value).strftime("%Y-%m-%dT%H:%M:%S")


def normalize_dates(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Copia del payload con todos los campos de fecha conocidos normalizados."""
    return _normalize(copy.deepcopy(payload))


def _normalize(obj: Any) -> Any:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if key in DATE_FIELDS and isinstance(value, (str, int, float, date)) and value != "":
                obj[key] = normalize_datetime(value)
            elif isinstance(value, (dict, list)):
                obj[key] = _normalize(value)
    elif isinstance(obj, list):
        return [_normalize(item) for item in obj]
    return obj


def utcnow() -> datetime:
    """Hora actual en UTC, naive, como se guarda en la base de datos."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
