# app/infrastructure/external/kude_renderer.py
import io
from typing import List, Optional

from lxml import etree
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.domain.models.invoice import Invoice
from app.domain.ports.renderer import Renderer


def _text(node, name: str, default: str = "") -> str:
    found = node.xpath(".//*[local-name()=$name]", name=name)
    return found[0].text.strip() if found and found[0].text else default


def _qr_drawing(url: str, size: float = 1.4 * inch) -> Drawing:
    widget = QrCodeWidget(url)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    return drawing


class KudeRenderer(Renderer):
    """KUDE: representación gráfica del DE firmado, en PDF."""

    def render(self, invoice: Invoice, document: bytes) -> bytes:
        root = etree.fromstring(document)
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"KUDE {invoice.correlative}")
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "KudeTitle",
            parent=styles["Heading1"],
            fontSize=16,
            textColor=colors.HexColor("#003366"),
            spaceAfter=12,
        )
        story: List = [
            Paragraph(_text(root, "dNomEmi", "Emisor"), title_style),
            Paragraph(f"RUC {_text(root, 'dRucEm')}-{_text(root, 'dDVEmi')} - {_text(root, 'dDirEmi')}", styles["Normal"]),
            Spacer(1, 0.2 * inch),
        ]

        details = [
            [_text(root, "dDesTiDE", "Factura electrónica"), invoice.correlative, "Timbrado:", _text(root, "dNumTim")],
            ["Fecha de emisión:", _text(root, "dFeEmiDE"), "Condición:", _text(root, "dDCondOpe", "Contado")],
            ["Cliente:", _text(root, "dNomRec"), "RUC/CI:", self._receiver_id(root)],
            ["Moneda:", _text(root, "cMoneOpe", "PYG"), "Estado SIFEN:", invoice.state.value],
        ]
        details_table = Table(details, colWidths=[1.4 * inch, 2.2 * inch, 1.2 * inch, 2 * inch])
        details_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("TEXTCOLOR", (0, 0), (0, -1), colors.grey),
            ("TEXTCOLOR", (2, 0), (2, -1), colors.grey),
            ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ]))
        story.extend([details_table, Spacer(1, 0.3 * inch)])

        rows = [["Código", "Descripción", "Cant.", "Precio", "IVA", "Total"]]
        for item in root.xpath("//*[local-name()='gCamItem']"):
            rows.append([
                _text(item, "dCodInt"),
                Paragraph(_text(item, "dDesProSer"), styles["BodyText"]),
                _text(item, "dCantProSer"),
                _text(item, "dPUniProSer"),
                f"{_text(item, 'dTasaIVA')}%",
                _text(item, "dTotBruOpeItem"),
            ])
        rows.append(["", "", "", "", "IVA total:", _text(root, "dTotIVA", "0")])
        rows.append(["", "", "", "", "TOTAL:", _text(root, "dTotGralOpe", "0")])
        items_table = Table(rows, colWidths=[0.8 * inch, 2.8 * inch, 0.6 * inch, 1 * inch, 0.8 * inch, 1 * inch])
        items_table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#003366")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("BACKGROUND", (0, -2), (-1, -1), colors.HexColor("#f0f0f0")),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ]))
        story.extend([items_table, Spacer(1, 0.3 * inch)])

        qr_url = _text(root, "dCarQR")
        footer = [
            Paragraph(f"CDC: {invoice.control_id or self._control_id(root) or '-'}", styles["Normal"]),
            Paragraph("Consulte la validez de esta factura electrónica con el código QR o en https://ekuatia.set.gov.py/consultas", styles["Normal"]),
        ]
        if qr_url:
            story.append(Table([[_qr_drawing(qr_url), footer]], colWidths=[1.6 * inch, 5.2 * inch]))
        else:
            story.extend(footer)

        doc.build(story)
        return buffer.getvalue()

    def _receiver_id(self, root) -> str:
        ruc = _text(root, "dRucRec")
        if ruc:
            return f"{ruc}-{_text(root, 'dDVRec')}"
        return _text(root, "dNumIDRec", "-")

    def _control_id(self, root) -> Optional[str]:
        de = root.xpath("//*[local-name()='DE']")
        return de[0].get("Id") if de else None
