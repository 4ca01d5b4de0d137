# app/domain/services/payload.py
import copy
from datetime import datetime
from typing import Any, Dict

from app.domain.models.issuer import Issuer
from app.domain.services.dates import sifen_datetime

DOCUMENT_TYPES = {
    1: "Factura electrónica",
    4: "Autofactura electrónica",
    5: "Nota de crédito electrónica",
    6: "Nota de débito electrónica",
    7: "Nota de remisión electrónica",
}


def format_number(value) -> str:
    return str(value).strip().zfill(7)


def correlative(establishment: str, emission_point: str, number) -> str:
    """001-001-0000060"""
    return f"{str(establishment).zfill(3)}-{str(emission_point).zfill(3)}-{format_number(number)}"


def merge_with_issuer(payload: Dict[str, Any], issuer: Issuer) -> Dict[str, Any]:
    """
    Completa los datos de la factura con la configuración de la empresa.
    Los valores enviados por el cliente tienen prioridad, salvo el RUC,
    que siempre es el del emisor. Devuelve un dict nuevo.
    """
    merged = copy.deepcopy(payload)
    merged["ruc"] = issuer.ruc
    merged.setdefault("tipoDocumento", 1)
    merged.setdefault("tipoEmision", 1)
    merged.setdefault("tipoImpuesto", 1)
    merged.setdefault("moneda", "PYG")
    merged.setdefault("descuentoGlobal", 0)
    merged.setdefault("anticipoGlobal", 0)
    merged["establecimiento"] = str(merged.get("establecimiento") or issuer.establishment).zfill(3)
    merged["punto"] = str(merged.get("punto") or issuer.emission_point).zfill(3)
    merged["numero"] = format_number(merged.get("numero") or "1")
    merged["timbrado"] = str(merged.get("timbrado") or issuer.authorization_number)

    merged.setdefault("emisor", {
        "ruc": issuer.ruc,
        "razonSocial": issuer.legal_name or issuer.trade_name,
        "nombreFantasia": issuer.trade_name,
        "direccion": issuer.address or "N/A",
        "telefono": issuer.phone,
        "email": issuer.email,
    })
    merged.setdefault("usuario", {
        "documentoTipo": 1,
        "documentoNumero": "0",
        "nombre": "Sistema",
        "cargo": "Emisor",
    })
    merged.setdefault("condicion", {
        "tipo": 1,
        "entregas": [{
            "tipo": 1,
            "monto": str(merged.get("totalPago") or merged.get("total") or 0),
            "moneda": merged["moneda"],
            "cambio": 0,
        }],
    })
    merged["fechaSifen"] = sifen_datetime(merged["fecha"])
    return merged


def document_type_description(document_type) -> str:
    return DOCUMENT_TYPES.get(int(document_type or 1), DOCUMENT_TYPES[1])


def artifact_relative_path(merged: Dict[str, Any], processed_at: datetime, extension: str = "xml") -> str:
    """
    AAAA/MM/{tipoDocumento}_{timbrado}-{est}-{pun}-{numero}.xml

    Determinista para que las herramientas externas ubiquen el XML sin
    consultar la base de datos.
    """
    name = "{}_{}-{}-{}-{}".format(
        document_type_description(merged.get("tipoDocumento")),
        merged["timbrado"],
        merged["establecimiento"],
        merged["punto"],
        merged["numero"],
    )
    return f"{processed_at:%Y}/{processed_at:%m}/{name}.{extension}"
