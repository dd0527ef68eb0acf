"""Certificate rendering — fixed templates to one-page PDFs.

Rendering is stateless: the same template id and fields always produce
the same bytes (ReportLab's invariant mode pins timestamps and document
ids), so the artifact hash depends only on what the certificate says.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from xml.sax.saxutils import escape

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import (
    HRFlowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from vaxledger.errors import CertificateError

ISSUER_LINE = "Ministry of Health - Kingdom of Saudi Arabia"
BRAND_COLOR = colors.HexColor("#1B5E20")

REQUIRED_FIELDS = (
    "child_name",
    "child_id",
    "birth_date",
    "age_text",
    "issued_on",
    "completed_count",
    "total_required",
    "completion_rate",
)


@dataclass(frozen=True)
class CertificateTemplate:
    template_id: str
    title: str
    statement: str
    verifiable: bool


TEMPLATES: dict[str, CertificateTemplate] = {
    "progress": CertificateTemplate(
        template_id="progress",
        title="Current Vaccination Progress Certificate",
        statement="This certificate reflects the vaccination progress recorded to date.",
        verifiable=False,
    ),
    "school_readiness": CertificateTemplate(
        template_id="school_readiness",
        title="School Readiness Vaccination Certificate",
        statement=(
            "This is to certify that the child named below has completed all "
            "vaccinations required for school enrollment."
        ),
        verifiable=True,
    ),
    "completion": CertificateTemplate(
        template_id="completion",
        title="Complete Vaccination Certificate",
        statement=(
            "This is to certify that the child named below has completed the "
            "full national immunization schedule from birth to 18 years."
        ),
        verifiable=True,
    ),
}


def describe_age(months: int) -> str:
    """Age text with a life-stage band, e.g. '30 months (Toddler)'."""
    if months < 12:
        band = "Infant"
    elif months < 72:
        band = "Toddler"
    elif months < 216:
        band = "Child"
    else:
        band = "Teen"
    if months >= 24:
        return f"{months // 12} years ({band})"
    return f"{months} months ({band})"


@runtime_checkable
class CertificateRenderer(Protocol):
    def render(self, template_id: str, fields: dict[str, Any]) -> bytes:
        ...


class ReportLabRenderer:
    """Renders certificates as A4 PDFs with a QR code of the verification payload."""

    def __init__(self, qr_size_cm: float = 3.5) -> None:
        self._qr_size = qr_size_cm * cm

    def render(self, template_id: str, fields: dict[str, Any]) -> bytes:
        template = TEMPLATES.get(template_id)
        if template is None:
            raise CertificateError(f"Unknown certificate template: {template_id}")
        missing = [name for name in REQUIRED_FIELDS if fields.get(name) in (None, "")]
        if missing:
            raise CertificateError(
                f"Missing certificate fields: {', '.join(missing)}",
                details={"template_id": template_id, "missing": missing},
            )

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2 * cm,
            leftMargin=2 * cm,
            topMargin=2 * cm,
            bottomMargin=2 * cm,
            title=template.title,
            author=ISSUER_LINE,
            invariant=1,
        )
        try:
            doc.build(self._elements(template, fields))
        except Exception as e:
            raise CertificateError(f"Rendering {template_id} certificate failed: {e}")
        return buffer.getvalue()

    def _elements(self, template: CertificateTemplate, fields: dict[str, Any]) -> list[Any]:
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "CertificateTitle",
            parent=styles["Heading1"],
            fontSize=20,
            alignment=TA_CENTER,
            textColor=BRAND_COLOR,
            spaceAfter=6,
        )
        centered = ParagraphStyle(
            "Centered", parent=styles["Normal"], fontSize=11, alignment=TA_CENTER,
        )
        small = ParagraphStyle(
            "Small", parent=styles["Normal"], fontSize=8,
            alignment=TA_CENTER, textColor=colors.grey,
        )

        elements: list[Any] = [
            Paragraph(escape(template.title), title_style),
            Paragraph(escape(ISSUER_LINE), centered),
            Spacer(1, 12),
            HRFlowable(width="100%", thickness=1, color=BRAND_COLOR),
            Spacer(1, 16),
            Paragraph(escape(template.statement), centered),
            Spacer(1, 16),
        ]

        rows = [
            ["Child Name", str(fields["child_name"])],
            ["Child ID", str(fields["child_id"])],
            ["Date of Birth", str(fields["birth_date"])],
            ["Age", str(fields["age_text"])],
            [
                "Vaccinations",
                f"{fields['completed_count']} of {fields['total_required']} "
                f"({fields['completion_rate']}%)",
            ],
            ["Issued On", str(fields["issued_on"])],
        ]
        if fields.get("certificate_id"):
            rows.append(["Certificate ID", str(fields["certificate_id"])])

        table = Table(rows, colWidths=[5 * cm, 10 * cm])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("LINEBELOW", (0, 0), (-1, -2), 0.25, colors.lightgrey),
        ]))
        elements.append(table)

        outstanding = fields.get("missing_doses") or []
        if not template.verifiable and outstanding:
            elements.append(Spacer(1, 12))
            elements.append(Paragraph("<b>Outstanding doses</b>", styles["Normal"]))
            elements.append(Paragraph(escape(", ".join(outstanding)), styles["Normal"]))

        payload = fields.get("qr_payload")
        if payload:
            elements.append(Spacer(1, 20))
            elements.append(self._qr_drawing(str(payload)))

        elements.append(Spacer(1, 20))
        elements.append(HRFlowable(width="100%", thickness=0.5, color=colors.grey))
        footer = (
            "Verifiable record. The SHA-256 of this document is stored with the issuer."
            if template.verifiable else
            "Progress snapshot. Not an official certificate of completion."
        )
        elements.append(Paragraph(footer, small))
        return elements

    def _qr_drawing(self, payload: str) -> Drawing:
        widget = QrCodeWidget(payload)
        x1, y1, x2, y2 = widget.getBounds()
        width, height = x2 - x1, y2 - y1
        drawing = Drawing(
            self._qr_size,
            self._qr_size,
            transform=[self._qr_size / width, 0, 0, self._qr_size / height, 0, 0],
        )
        drawing.add(widget)
        return drawing
