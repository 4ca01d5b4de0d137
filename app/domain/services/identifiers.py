# app/domain/services/identifiers.py
"""
Identificadores de la factura.

- Hash (fingerprint): sha256 de "ruc|numero|fecha_normalizada". Detecta duplicados.
- CDC: Código de Control del Documento, 44 dígitos con dígito verificador módulo 11.

    tipo(2) ruc(8) dv(1) est(3) pun(3) num(7) contribuyente(1) AAAAMMDD(8) emision(1) seguridad(9) DV(1)
"""
import hashlib
import secrets
from typing import Optional, Tuple

from app.domain.exceptions import InvoiceValidationError
from app.domain.models.invoice import ControlIdentifiers
from app.domain.services.dates import DateLike, normalize_datetime, parse_datetime

CONTROL_ID_LENGTH = 44
TAXPAYER_TYPE = "1"


def compute_fingerprint(issuer_ruc: str, document_number, issued_at: DateLike) -> str:
    ruc = "".join(c for c in str(issuer_ruc) if c.isdigit())
    chain = f"{ruc}|{document_number}|{normalize_datetime(issued_at)}"
    return hashlib.sha256(chain.encode("utf-8")).hexdigest()


def check_digit(digits: str) -> str:
    """
    Módulo 11: de derecha a izquierda, pesos 2..7 cíclicos.
    resto 0 -> 0, resto 1 -> 1, si no 11 - resto.
    """
    if not digits.isdigit():
        raise InvoiceValidationError(f"Cadena no numérica para DV: {digits!r}")
    total = 0
    weight = 2
    for digit in reversed(digits):
        total += int(digit) * weight
        weight = 2 if weight >= 7 else weight + 1
    remainder = total % 11
    if remainder == 0:
        return "0"
    if remainder == 1:
        return "1"
    return str(11 - remainder)


def split_ruc(ruc: str) -> Tuple[str, str]:
    """'80012345-1' -> ('80012345', '1'). Sin guión, el último dígito es el DV."""
    ruc = str(ruc).strip()
    if "-" in ruc:
        base, dv = ruc.split("-", 1)
    else:
        digits = "".join(c for c in ruc if c.isdigit())
        base, dv = digits[:-1], digits[-1:]
    base = "".join(c for c in base if c.isdigit())
    dv = "".join(c for c in dv if c.isdigit())
    if not base or len(base) > 8 or len(dv) != 1:
        raise InvoiceValidationError(f"RUC inválido: {ruc}")
    return base.zfill(8), dv


def generate_security_code() -> str:
    return f"{secrets.randbelow(10 ** 9):09d}"


def build_control_id(
    issuer_ruc: str,
    establishment: str,
    emission_point: str,
    document_number,
    issued_at: DateLike,
    security_code: str,
    document_type: int = 1,
    emission_type: int = 1,
) -> str:
    ruc_base, ruc_dv = split_ruc(issuer_ruc)
    security_code = str(security_code)
    if not security_code.isdigit() or len(security_code) > 9:
        raise InvoiceValidationError(f"Código de seguridad inválido: {security_code}")

    without_dv = "".join([
        f"{int(document_type):02d}",
        ruc_base,
        ruc_dv,
        _digits(establishment, 3),
        _digits(emission_point, 3),
        _digits(document_number, 7),
        TAXPAYER_TYPE,
        parse_datetime(issued_at).strftime("%Y%m%d"),
        str(int(emission_type))[:1],
        security_code.zfill(9),
    ])
    return without_dv + check_digit(without_dv)


def derive_identifiers(merged: dict, security_code: Optional[str] = None) -> ControlIdentifiers:
    """
    Calcula el CDC a partir del payload ya completado con la empresa.
    Sin código de seguridad se genera uno aleatorio; quien llama debe
    persistirlo para que los reintentos produzcan el mismo CDC.
    """
    code = security_code or merged.get("codigoSeguridadAleatorio") or generate_security_code()
    code = str(code).zfill(9)
    control_id = build_control_id(
        issuer_ruc=merged["ruc"],
        establishment=merged.get("establecimiento") or "001",
        emission_point=merged.get("punto") or "001",
        document_number=merged.get("numero") or "1",
        issued_at=merged["fecha"],
        security_code=code,
        document_type=merged.get("tipoDocumento") or 1,
        emission_type=merged.get("tipoEmision") or 1,
    )
    return ControlIdentifiers(control_id=control_id, security_code=code)


def is_valid_control_id(control_id: str) -> bool:
    if len(control_id) != CONTROL_ID_LENGTH or not control_id.isdigit():
        return False
    return check_digit(control_id[:-1]) == control_id[-1]


def _digits(value, width: int) -> str:
    text = "".join(c for c in str(value) if c.isdigit())
    if not text or len(text) > width:
        raise InvoiceValidationError(f"Valor inválido para {width} dígitos: {value}")
    return text.zfill(width)
