import pytest
import requests
from lxml import etree

from app.domain.exceptions import SubmissionTransportError
from app.infrastructure.external.sifen_client import SOAP_NS, SIFEN_NS, SifenClient, build_envelope, parse_response

URLS = {"test": "https://sifen-test.example/de/ws/sync/recibe.wsdl", "produccion": "https://sifen.example/de/ws/sync/recibe.wsdl"}

SIFEN_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<env:Envelope xmlns:env="http://www.w3.org/2003/05/soap-envelope">
  <env:Body>
    <ns2:rRetEnviDe xmlns:ns2="http://ekuatia.set.gov.py/sifen/xsd">
      <ns2:rProtDe>
        <ns2:Id>01800123451001001000006012026022419876543210</ns2:Id>
        <ns2:dFecProc>2026-02-24T15:31:02-03:00</ns2:dFecProc>
        <ns2:dDigVal>q1w2e3r4=</ns2:dDigVal>
        <ns2:dEstRes>Aprobado</ns2:dEstRes>
        <ns2:gResProc>
          <ns2:dCodRes>0260</ns2:dCodRes>
          <ns2:dMsgRes>Autorización del DE satisfactoria</ns2:dMsgRes>
        </ns2:gResProc>
      </ns2:rProtDe>
    </ns2:rRetEnviDe>
  </env:Body>
</env:Envelope>""".encode("utf-8")

SIGNED_DOCUMENT = b'<rDE xmlns="http://ekuatia.set.gov.py/sifen/xsd"><DE Id="123"/></rDE>'


def make_response(status_code, content):
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    response.url = URLS["test"]
    response.reason = "OK" if status_code < 400 else "Internal Server Error"
    return response


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


class TestParseResponse:
    def test_sifen_tags(self):
        response = parse_response(SIFEN_RESPONSE)

        assert response.result_code == "0260"
        assert response.result_message == "Autorización del DE satisfactoria"
        assert response.result_status == "Aprobado"
        assert response.digest_value == "q1w2e3r4="
        assert response.processed_at == "2026-02-24T15:31:02-03:00"
        assert response.control_id == "01800123451001001000006012026022419876543210"

    def test_translated_tags(self):
        response = parse_response(
            b"<respuesta><codigoRetorno>0000</codigoRetorno><mensajeRetorno>OK</mensajeRetorno></respuesta>"
        )
        assert response.result_code == "0000"
        assert response.result_message == "OK"
        assert response.digest_value is None

    def test_invalid_xml(self):
        with pytest.raises(SubmissionTransportError):
            parse_response(b"<html>Bad gateway")


class TestEnvelope:
    def test_document_goes_inside_xde(self):
        envelope = etree.fromstring(build_envelope("42", SIGNED_DOCUMENT))

        assert envelope.tag == f"{{{SOAP_NS}}}Envelope"
        assert envelope.findtext(f".//{{{SIFEN_NS}}}dId") == "42"
        xde = envelope.find(f".//{{{SIFEN_NS}}}xDE")
        assert xde[0].tag == f"{{{SIFEN_NS}}}rDE"


class TestSifenClient:
    def test_submit_posts_soap_and_parses(self, tmp_path):
        session = FakeSession(make_response(200, SIFEN_RESPONSE))
        client = SifenClient(urls=URLS, timeout=5, session=session)

        response = client.submit("42", SIGNED_DOCUMENT, "test", str(tmp_path / "certificado.p12"))

        assert response.result_code == "0260"
        url, kwargs = session.requests[0]
        assert url == URLS["test"]
        assert kwargs["headers"]["Content-Type"].startswith("application/soap+xml")
        assert kwargs["timeout"] == 5
        assert kwargs["cert"] is None

    def test_mode_selects_url(self, tmp_path):
        session = FakeSession(make_response(200, SIFEN_RESPONSE))
        SifenClient(urls=URLS, session=session).submit("42", SIGNED_DOCUMENT, "produccion", str(tmp_path / "c.p12"))
        assert session.requests[0][0] == URLS["produccion"]

    def test_client_certificate_next_to_p12(self, tmp_path):
        (tmp_path / "cert.pem").write_text("cert")
        (tmp_path / "key.pem").write_text("key")
        session = FakeSession(make_response(200, SIFEN_RESPONSE))

        SifenClient(urls=URLS, session=session).submit("42", SIGNED_DOCUMENT, "test", str(tmp_path / "certificado.p12"))

        assert session.requests[0][1]["cert"] == (str(tmp_path / "cert.pem"), str(tmp_path / "key.pem"))

    @pytest.mark.parametrize("error", [
        requests.exceptions.ConnectionError("Connection refused"),
        requests.exceptions.Timeout("read timeout"),
    ])
    def test_transport_errors(self, tmp_path, error):
        client = SifenClient(urls=URLS, session=FakeSession(error=error))
        with pytest.raises(SubmissionTransportError):
            client.submit("42", SIGNED_DOCUMENT, "test", str(tmp_path / "c.p12"))

    def test_http_error(self, tmp_path):
        client = SifenClient(urls=URLS, session=FakeSession(make_response(500, b"<error/>")))
        with pytest.raises(SubmissionTransportError):
            client.submit("42", SIGNED_DOCUMENT, "test", str(tmp_path / "c.p12"))
