# app/infrastructure/external/qr_stamper.py
import hashlib
from typing import Dict, Optional

from lxml import etree

import config
from app.domain.models.issuer import Issuer
from app.domain.ports.document_stamper import DocumentStamper
from app.infrastructure.external.xml_signer import find_local

SIFEN_NS = "http://ekuatia.set.gov.py/sifen/xsd"


def _text(root, name: str) -> Optional[str]:
    element = find_local(root, name)
    return element.text.strip() if element is not None and element.text else None


def qr_parameters(root, issuer: Issuer) -> str:
    """Cadena de parámetros del QR, en el orden que exige SIFEN."""
    de = find_local(root, "DE")
    receiver_ruc = _text(root, "dRucRec")
    params: Dict[str, str] = {
        "nVersion": "150",
        "Id": de.get("Id"),
        "dFeEmiDE": (_text(root, "dFeEmiDE") or "").encode("utf-8").hex(),
    }
    if receiver_ruc:
        params["dRucRec"] = receiver_ruc
    else:
        params["dNumIDRec"] = _text(root, "dNumIDRec") or "0"
    params["dTotGralOpe"] = _text(root, "dTotGralOpe") or "0"
    params["dTotIVA"] = _text(root, "dTotIVA") or "0"
    params["cItems"] = str(len(root.xpath("//*[local-name()='gCamItem']")))
    params["DigestValue"] = (_text(root, "DigestValue") or "").encode("utf-8").hex()
    params["IdCSC"] = issuer.csc_id
    return "&".join(f"{key}={value}" for key, value in params.items())


class QrStamper(DocumentStamper):
    """Agrega gCamFuFD/dCarQR con la URL de consulta y su hash (cHashQR)."""

    def stamp(self, signed_xml: str, issuer: Issuer) -> str:
        if not issuer.csc:
            raise ValueError("La empresa no tiene CSC configurado para el QR")

        root = etree.fromstring(signed_xml.encode("utf-8"))
        if find_local(root, "DigestValue") is None:
            raise ValueError("El XML debe estar firmado antes de generar el QR")

        params = qr_parameters(root, issuer)
        qr_hash = hashlib.sha256((params + issuer.csc).encode("utf-8")).hexdigest()
        base = config.QR_BASE_URLS.get(issuer.mode, config.QR_BASE_URLS["test"])

        existing = find_local(root, "gCamFuFD")
        if existing is not None:
            existing.getparent().remove(existing)
        group = etree.SubElement(root, f"{{{SIFEN_NS}}}gCamFuFD")
        etree.SubElement(group, f"{{{SIFEN_NS}}}dCarQR").text = f"{base}{params}&cHashQR={qr_hash}"
        return etree.tostring(root, encoding="unicode")
