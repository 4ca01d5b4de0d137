# app/infrastructure/external/xml_document_adapter.py
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Tuple

from lxml import etree

from app.domain.models.invoice import ControlIdentifiers
from app.domain.models.issuer import Issuer
from app.domain.ports.document_assembler import DocumentAssembler
from app.domain.services.dates import sifen_datetime, utcnow
from app.domain.services.identifiers import split_ruc
from app.domain.services.payload import document_type_description

SIFEN_NS = "http://ekuatia.set.gov.py/sifen/xsd"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = "http://ekuatia.set.gov.py/sifen/xsd siRecepDE_v150.xsd"
FORMAT_VERSION = "150"

EMISSION_TYPES = {1: "Normal", 2: "Contingencia"}
TAX_TYPES = {1: "IVA", 2: "ISC", 3: "Renta", 4: "Ninguno", 5: "IVA - Renta"}
PAYMENT_CONDITIONS = {1: "Contado", 2: "Crédito"}
PAYMENT_TYPES = {1: "Efectivo", 2: "Cheque", 3: "Tarjeta de crédito", 4: "Tarjeta de débito", 5: "Transferencia"}

_UNIT = Decimal("1")
_CENT = Decimal("0.01")


def _amount(value: Decimal, currency: str) -> str:
    # Guaraníes sin decimales
    quantum = _UNIT if currency == "PYG" else _CENT
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def _sub(parent, tag: str, text: Any = None):
    element = etree.SubElement(parent, f"{{{SIFEN_NS}}}{tag}")
    if text is not None:
        element.text = str(text)
    return element


def item_totals(item: Dict[str, Any]) -> Tuple[Decimal, Decimal, Decimal, int]:
    """(total, base gravada, IVA, tasa) de un ítem con IVA incluido en el precio."""
    quantity = Decimal(str(item.get("cantidad") or 1))
    if item.get("precioTotal") is not None:
        total = Decimal(str(item["precioTotal"]))
    else:
        total = Decimal(str(item.get("precioUnitario") or 0)) * quantity
    rate = int(item.get("iva", 10))
    if rate == 0:
        return total, Decimal(0), Decimal(0), 0
    base = total / (Decimal(1) + Decimal(rate) / Decimal(100))
    return total, base, total - base, rate


class XmlDocumentAdapter(DocumentAssembler):
    """Arma el rDE (versión 150) con lxml a partir del payload completado."""

    def assemble(self, merged: Dict[str, Any], issuer: Issuer, identifiers: ControlIdentifiers) -> str:
        currency = merged.get("moneda", "PYG")
        document_type = int(merged.get("tipoDocumento") or 1)
        emission_type = int(merged.get("tipoEmision") or 1)
        ruc_base, ruc_dv = split_ruc(issuer.ruc)

        root = etree.Element(f"{{{SIFEN_NS}}}rDE", nsmap={None: SIFEN_NS, "xsi": XSI_NS})
        root.set(f"{{{XSI_NS}}}schemaLocation", SCHEMA_LOCATION)
        _sub(root, "dVerFor", FORMAT_VERSION)

        de = _sub(root, "DE")
        de.set("Id", identifiers.control_id)
        _sub(de, "dDVId", identifiers.control_id[-1])
        _sub(de, "dFecFirma", sifen_datetime(utcnow()))
        _sub(de, "dSisFact", 1)

        ope = _sub(de, "gOpeDE")
        _sub(ope, "iTipEmi", emission_type)
        _sub(ope, "dDesTipEmi", EMISSION_TYPES.get(emission_type, "Normal"))
        _sub(ope, "dCodSeg", identifiers.security_code)

        timb = _sub(de, "gTimb")
        _sub(timb, "iTiDE", document_type)
        _sub(timb, "dDesTiDE", document_type_description(document_type))
        _sub(timb, "dNumTim", merged["timbrado"])
        _sub(timb, "dEst", merged["establecimiento"])
        _sub(timb, "dPunExp", merged["punto"])
        _sub(timb, "dNumDoc", merged["numero"])
        if issuer.authorization_date:
            _sub(timb, "dFeIniT", issuer.authorization_date)

        general = _sub(de, "gDatGralOpe")
        _sub(general, "dFeEmiDE", merged["fechaSifen"])
        com = _sub(general, "gOpeCom")
        tax_type = int(merged.get("tipoImpuesto") or 1)
        _sub(com, "iTImp", tax_type)
        _sub(com, "dDesTImp", TAX_TYPES.get(tax_type, "IVA"))
        _sub(com, "cMoneOpe", currency)

        emitter = merged.get("emisor") or {}
        emis = _sub(general, "gEmis")
        _sub(emis, "dRucEm", ruc_base.lstrip("0") or "0")
        _sub(emis, "dDVEmi", ruc_dv)
        _sub(emis, "iTipCont", 2)
        _sub(emis, "dNomEmi", emitter.get("razonSocial") or issuer.legal_name)
        if emitter.get("nombreFantasia"):
            _sub(emis, "dNomFanEmi", emitter["nombreFantasia"])
        _sub(emis, "dDirEmi", emitter.get("direccion") or issuer.address or "N/A")
        if emitter.get("telefono"):
            _sub(emis, "dTelEmi", emitter["telefono"])
        if emitter.get("email"):
            _sub(emis, "dEmailE", emitter["email"])

        self._receiver(general, merged.get("cliente") or {})

        dtip = _sub(de, "gDtipDE")
        fe = _sub(dtip, "gCamFE")
        _sub(fe, "iIndPres", merged.get("tipoPresencia", 1))
        self._payment(dtip, merged, currency)
        totals = self._items(dtip, merged.get("items") or [], currency)
        self._totals(de, totals, currency)
        return etree.tostring(root, encoding="unicode")

    def _receiver(self, parent, client: Dict[str, Any]) -> None:
        rec = _sub(parent, "gDatRec")
        taxpayer = bool(client.get("contribuyente")) or bool(client.get("ruc"))
        _sub(rec, "iNatRec", 1 if taxpayer else 2)
        _sub(rec, "iTiOpe", client.get("tipoOperacion", 1 if taxpayer else 2))
        _sub(rec, "cPaisRec", client.get("pais", "PRY"))
        if taxpayer:
            base, dv = split_ruc(client["ruc"])
            _sub(rec, "iTiContRec", client.get("tipoContribuyente", 1))
            _sub(rec, "dRucRec", base.lstrip("0") or "0")
            _sub(rec, "dDVRec", dv)
        else:
            _sub(rec, "iTipIDRec", client.get("documentoTipo", 1))
            _sub(rec, "dNumIDRec", client.get("documentoNumero", "0"))
        _sub(rec, "dNomRec", client.get("razonSocial") or client.get("nombre") or "Sin Nombre")
        if client.get("direccion"):
            _sub(rec, "dDirRec", client["direccion"])
        if client.get("email"):
            _sub(rec, "dEmailRec", client["email"])

    def _payment(self, parent, merged: Dict[str, Any], currency: str) -> None:
        condition = merged.get("condicion") or {}
        cond_type = int(condition.get("tipo", 1))
        cond = _sub(parent, "gCamCond")
        _sub(cond, "iCondOpe", cond_type)
        _sub(cond, "dDCondOpe", PAYMENT_CONDITIONS.get(cond_type, "Contado"))
        for delivery in condition.get("entregas") or []:
            pay_type = int(delivery.get("tipo", 1))
            pa = _sub(cond, "gPaConEIni")
            _sub(pa, "iTiPago", pay_type)
            _sub(pa, "dDesTiPag", PAYMENT_TYPES.get(pay_type, "Efectivo"))
            _sub(pa, "dMonTiPag", _amount(Decimal(str(delivery.get("monto") or 0)), currency))
            _sub(pa, "cMoneTiPag", delivery.get("moneda", currency))

    def _items(self, parent, items: List[Dict[str, Any]], currency: str) -> Dict[str, Decimal]:
        totals = {"exento": Decimal(0), "gravada5": Decimal(0), "gravada10": Decimal(0),
                  "iva5": Decimal(0), "iva10": Decimal(0), "total": Decimal(0)}
        for index, item in enumerate(items, start=1):
            total, base, iva, rate = item_totals(item)
            quantity = Decimal(str(item.get("cantidad") or 1))
            unit_price = total / quantity if quantity else total

            node = _sub(parent, "gCamItem")
            _sub(node, "dCodInt", item.get("codigo") or str(index))
            _sub(node, "dDesProSer", item.get("descripcion") or "Item")
            _sub(node, "cUniMed", item.get("unidadMedida", 77))
            _sub(node, "dCantProSer", quantity)
            price = _sub(node, "gValorItem")
            _sub(price, "dPUniProSer", _amount(unit_price, currency))
            _sub(price, "dTotBruOpeItem", _amount(total, currency))
            vat = _sub(node, "gCamIVA")
            _sub(vat, "iAfecIVA", 3 if rate == 0 else 1)
            _sub(vat, "dTasaIVA", rate)
            _sub(vat, "dBasGravIVA", _amount(base, currency))
            _sub(vat, "dLiqIVAItem", _amount(iva, currency))

            totals["total"] += total
            if rate == 0:
                totals["exento"] += total
            elif rate == 5:
                totals["gravada5"] += base
                totals["iva5"] += iva
            else:
                totals["gravada10"] += base
                totals["iva10"] += iva
        return totals

    def _totals(self, de, totals: Dict[str, Decimal], currency: str) -> None:
        sub = _sub(de, "gTotSub")
        _sub(sub, "dSubExe", _amount(totals["exento"], currency))
        _sub(sub, "dTotOpe", _amount(totals["total"], currency))
        _sub(sub, "dTotGralOpe", _amount(totals["total"], currency))
        _sub(sub, "dIVA5", _amount(totals["iva5"], currency))
        _sub(sub, "dIVA10", _amount(totals["iva10"], currency))
        _sub(sub, "dTotIVA", _amount(totals["iva5"] + totals["iva10"], currency))
        _sub(sub, "dBaseGrav5", _amount(totals["gravada5"], currency))
        _sub(sub, "dBaseGrav10", _amount(totals["gravada10"], currency))
