# app/infrastructure/external/sifen_client.py
import logging
import os
from typing import Dict, Optional, Tuple

import requests
from lxml import etree

import config
from app.domain.exceptions import SubmissionTransportError
from app.domain.models.invoice import RemoteResponse
from app.domain.ports.submission_client import SubmissionClient

logger = logging.getLogger(__name__)

SOAP_NS = "http://www.w3.org/2003/05/soap-envelope"
SIFEN_NS = "http://ekuatia.set.gov.py/sifen/xsd"

# Nombres de los campos de respuesta. SIFEN usa los d*; algunos proxies
# devuelven la respuesta ya traducida (codigoRetorno, ...).
RESPONSE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "result_code": ("dCodRes", "codigoRetorno"),
    "result_message": ("dMsgRes", "mensajeRetorno"),
    "result_status": ("dEstRes", "estadoResultado"),
    "digest_value": ("dDigVal", "digestValue"),
    "processed_at": ("dFecProc", "fechaProceso"),
    "control_id": ("Id", "cdc"),
}


def build_envelope(tracking_id: str, document: bytes) -> bytes:
    """SOAP 1.2 rEnviDe con el rDE firmado dentro de xDE."""
    envelope = etree.Element(f"{{{SOAP_NS}}}Envelope", nsmap={"soap": SOAP_NS})
    etree.SubElement(envelope, f"{{{SOAP_NS}}}Header")
    body = etree.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    request = etree.SubElement(body, f"{{{SIFEN_NS}}}rEnviDe", nsmap={None: SIFEN_NS})
    etree.SubElement(request, f"{{{SIFEN_NS}}}dId").text = str(tracking_id)[:15]
    xde = etree.SubElement(request, f"{{{SIFEN_NS}}}xDE")
    xde.append(etree.fromstring(document))
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


def parse_response(content: bytes) -> RemoteResponse:
    """Decodifica la respuesta buscando cada campo por su nombre local."""
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as e:
        raise SubmissionTransportError(f"Respuesta de SIFEN no es XML válido: {e}") from e

    values: Dict[str, Optional[str]] = {}
    for field, names in RESPONSE_FIELDS.items():
        values[field] = None
        for name in names:
            found = root.xpath("//*[local-name()=$name]", name=name)
            if found and found[0].text and found[0].text.strip():
                values[field] = found[0].text.strip()
                break
    return RemoteResponse(**values)


class SifenClient(SubmissionClient):
    """
    Cliente del servicio síncrono de recepción (recibe.wsdl).
    Se construye explícitamente con la configuración; no hay cliente global.
    """

    def __init__(
        self,
        urls: Optional[Dict[str, str]] = None,
        timeout: int = config.SIFEN_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.urls = urls or config.SIFEN_URLS
        self.timeout = timeout
        self.session = session or requests.Session()

    def _client_cert(self, certificate_path: str) -> Optional[Tuple[str, str]]:
        """mTLS con el par PEM que se guarda junto al .p12, si existe."""
        folder = os.path.dirname(certificate_path)
        cert, key = os.path.join(folder, "cert.pem"), os.path.join(folder, "key.pem")
        if os.path.exists(cert) and os.path.exists(key):
            return cert, key
        return None

    def submit(self, tracking_id: str, document: bytes, mode: str, certificate_path: str) -> RemoteResponse:
        url = self.urls.get(mode) or self.urls["test"]
        headers = {
            "Content-Type": "application/soap+xml; charset=utf-8",
            "Accept": "application/soap+xml, text/xml, */*",
        }
        logger.info(f"[{tracking_id}] Enviando documento a SIFEN ({mode}): {url}")
        try:
            response = self.session.post(
                url,
                data=build_envelope(tracking_id, document),
                headers=headers,
                cert=self._client_cert(certificate_path),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"[{tracking_id}] Error de transporte con SIFEN: {e}")
            if getattr(e, "response", None) is not None:
                logger.error(f"[{tracking_id}] Detalle del error: {e.response.text[:500]}")
            raise SubmissionTransportError(str(e)) from e

        return parse_response(response.content)
