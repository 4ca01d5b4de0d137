# app/infrastructure/external/xml_signer.py
"""
Firma XML-DSig envuelta (enveloped) del DE con RSA-SHA256, usando xmlsec.

La firma se agrega como hermana del DE dentro del rDE y referencia su Id.
"""
import xmlsec
from lxml import etree

from app.domain.ports.credential_vault import UnlockedCredential
from app.domain.ports.document_signer import DocumentSigner

DS_NS = "http://www.w3.org/2000/09/xmldsig#"


def find_local(root, name: str):
    found = root.xpath("//*[local-name()=$name]", name=name)
    return found[0] if found else None


def load_key(credential: UnlockedCredential) -> xmlsec.Key:
    """Clave privada y certificado desde el .p12 ya descifrado."""
    try:
        return xmlsec.Key.from_memory(credential.pkcs12, xmlsec.KeyFormat.PKCS12_PEM, credential.password or None)
    except xmlsec.Error as e:
        raise ValueError(f"No se pudo abrir el certificado {credential.path}: {e}") from e


class XmlSigner(DocumentSigner):

    def sign(self, xml: str, credential: UnlockedCredential) -> str:
        root = etree.fromstring(xml.encode("utf-8"))
        de = find_local(root, "DE")
        if de is None or not de.get("Id"):
            raise ValueError("El XML no contiene el nodo DE con atributo Id")

        signature = xmlsec.template.create(root, xmlsec.Transform.C14N, xmlsec.Transform.RSA_SHA256)
        de.addnext(signature)

        reference = xmlsec.template.add_reference(signature, xmlsec.Transform.SHA256, uri=f"#{de.get('Id')}")
        xmlsec.template.add_transform(reference, xmlsec.Transform.ENVELOPED)
        xmlsec.template.add_transform(reference, xmlsec.Transform.EXCL_C14N)
        key_info = xmlsec.template.ensure_key_info(signature)
        x509_data = xmlsec.template.add_x509_data(key_info)
        xmlsec.template.x509_data_add_certificate(x509_data)

        ctx = xmlsec.SignatureContext()
        ctx.key = load_key(credential)
        ctx.register_id(de, "Id")
        try:
            ctx.sign(signature)
        except xmlsec.Error as e:
            raise ValueError(f"No se pudo firmar el DE {de.get('Id')}: {e}") from e

        return etree.tostring(root, encoding="unicode")
