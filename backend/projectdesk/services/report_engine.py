"""
Report Engine — renders the printable quote (Angebot) as PDF.

Layout (A4, reportlab canvas):
  - header bar with company name and address line
  - sender / customer block, quote number, date, validity
  - highlighted important note
  - line table: Pos, item/description, unit, qty, unit price, discount, line net
  - totals: net, VAT at the quote's rate, gross
  - payment terms, quote notes, terms reference
  - footer with company contact and page number

When a terms-and-conditions PDF is configured its pages are appended
page-for-page (PyMuPDF). Returns the PDF bytes; optionally also writes them.
"""
import io
import os
import logging
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from projectdesk.config import (
    COMPANY_ADDRESS_LINES,
    COMPANY_EMAIL,
    COMPANY_NAME,
    CURRENCY,
    DOWNLOAD_DIR,
    IMPORTANT_NOTE,
    PAYMENT_TERMS,
    TERMS_PDF_PATH,
    TERMS_REFERENCE,
)
from projectdesk.services.aggregation_engine import field, round_money, to_decimal
from projectdesk.services.quote_engine import compute_quote_totals, display_position, line_net, ordered_items

logger = logging.getLogger("projectdesk-report")

_THEME_RGB = (0.08, 0.16, 0.28)
_ACCENT_RGB = (0.58, 0.64, 0.72)
_NOTE_BG_RGB = (1.0, 0.95, 0.80)

# Column x positions in cm from the left page edge
_COLUMNS = (
    ("Pos", 1.5, "left"),
    ("Artikel / Beschreibung", 2.6, "left"),
    ("Einheit", 11.0, "left"),
    ("Menge", 13.0, "right"),
    ("Einzelpreis", 15.3, "right"),
    ("Rabatt", 17.0, "right"),
    ("Gesamt", 19.5, "right"),
)


class ReportError(Exception):
    pass


def _money(value: Any, currency: str = CURRENCY) -> str:
    """1234.5 -> '1.234,50 EUR' (German grouping)."""
    amount = round_money(value)
    text = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{text} {currency}"


def _number(value: Any) -> str:
    d = to_decimal(value).normalize()
    if d == d.to_integral():
        d = d.quantize(Decimal(1))
    return str(d).replace(".", ",")


def _format_date(value: Any) -> str:
    """date or ISO string -> 'dd.mm.yyyy'; unparseable text is shown as given."""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value.strip()[:10])
        except ValueError:
            return value
    return value.strftime("%d.%m.%Y")


# ── PDF helpers ───────────────────────────────────────────────────────────────

def _draw_header(c, page_w, page_h, company_name: str, address_lines: List[str]):
    from reportlab.lib.units import cm
    c.setFillColorRGB(*_THEME_RGB)
    c.rect(0, page_h - 2.6*cm, page_w, 2.6*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(1.5*cm, page_h - 1.4*cm, company_name)
    c.setFont("Helvetica", 8)
    c.drawString(1.5*cm, page_h - 2.0*cm, "  |  ".join(address_lines))
    c.setStrokeColorRGB(*_ACCENT_RGB)
    c.setLineWidth(2)
    c.line(0, page_h - 2.6*cm, page_w, page_h - 2.6*cm)
    c.setLineWidth(1)
    c.setStrokeColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int, company_name: str, email: str):
    from reportlab.lib.units import cm
    c.setStrokeColorRGB(0.7, 0.7, 0.7)
    c.line(1.5*cm, 1.2*cm, page_w - 1.5*cm, 1.2*cm)
    c.setFillColorRGB(0.5, 0.5, 0.5)
    c.setFont("Helvetica", 7)
    c.drawString(1.5*cm, 0.8*cm, f"{company_name}  |  {email}")
    c.drawRightString(page_w - 1.5*cm, 0.8*cm, f"Seite {page_num}")


def _draw_wrapped(
    c, text: str, x, y, width, font="Helvetica", size=9, leading=None, new_page=None, bottom=None,
) -> float:
    """
    Draw *text* wrapped to *width*; returns the y below the last line.

    With *new_page*, a line that would land below *bottom* (default 2 cm)
    goes on a fresh page instead; ``new_page()`` must start that page and
    return its top y.
    """
    from reportlab.lib.units import cm
    from reportlab.lib.utils import simpleSplit
    leading = leading or size * 1.3
    bottom = 2*cm if bottom is None else bottom
    c.setFont(font, size)
    for paragraph in (text or "").splitlines() or [""]:
        for line in simpleSplit(paragraph, font, size, width) or [""]:
            if new_page is not None and y < bottom:
                y = new_page()
                c.setFont(font, size)
            c.drawString(x, y, line)
            y -= leading
    return y


class ReportEngine:

    def __init__(
        self,
        company_name: str = COMPANY_NAME,
        address_lines: Optional[List[str]] = None,
        email: str = COMPANY_EMAIL,
        important_note: str = IMPORTANT_NOTE,
        payment_terms: str = PAYMENT_TERMS,
        terms_pdf_path: str = TERMS_PDF_PATH,
        currency: str = CURRENCY,
    ):
        self.company_name = company_name
        self.address_lines = list(COMPANY_ADDRESS_LINES if address_lines is None else address_lines)
        self.email = email
        self.important_note = important_note
        self.payment_terms = payment_terms
        self.terms_pdf_path = terms_pdf_path
        self.currency = currency

    def render_quote_pdf(
        self,
        project: Any,
        quote: Any,
        items: List[Any],
        out_path: Optional[str] = None,
        terms_pdf_path: Optional[str] = None,
    ) -> bytes:
        """
        Render the quote for *project* and return the PDF bytes.

        ``terms_pdf_path`` overrides the configured terms PDF; a missing or
        empty path skips the append. When ``out_path`` is given the bytes are
        also written there (relative names land in DOWNLOAD_DIR).
        """
        pdf = self._draw_quote(project, quote, items)
        terms = self.terms_pdf_path if terms_pdf_path is None else terms_pdf_path
        if terms:
            pdf = self._append_terms(pdf, terms)

        if out_path:
            path = out_path if os.path.isabs(out_path) else os.path.join(DOWNLOAD_DIR, out_path)
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "wb") as f:
                f.write(pdf)
            logger.info("Quote PDF written to %s", path, extra={"project_id": field(project, "id")})
        return pdf

    # ── Drawing ───────────────────────────────────────────────────────────────

    def _new_page(self, c, page_w, page_h) -> float:
        from reportlab.lib.units import cm
        _draw_header(c, page_w, page_h, self.company_name, self.address_lines)
        _draw_footer(c, page_w, c.getPageNumber(), self.company_name, self.email)
        return page_h - 3.6*cm

    def _continue_page(self, c, page_w, page_h) -> float:
        """Close the current page, open the next one and restore body text colour."""
        c.showPage()
        y = self._new_page(c, page_w, page_h)
        c.setFillColorRGB(0.1, 0.1, 0.1)
        return y

    def _draw_table_header(self, c, y) -> float:
        from reportlab.lib.units import cm
        c.setFillColorRGB(*_THEME_RGB)
        c.setFont("Helvetica-Bold", 8)
        for label, x, align in _COLUMNS:
            if align == "right":
                c.drawRightString(x*cm, y, label)
            else:
                c.drawString(x*cm, y, label)
        y -= 0.2*cm
        c.setStrokeColorRGB(*_ACCENT_RGB)
        c.line(1.5*cm, y, 19.5*cm, y)
        c.setStrokeColorRGB(0, 0, 0)
        return y - 0.45*cm

    def _draw_quote(self, project: Any, quote: Any, items: List[Any]) -> bytes:
        from reportlab.pdfgen import canvas as rl_canvas
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.units import cm

        buf = io.BytesIO()
        page_w, page_h = A4
        c = rl_canvas.Canvas(buf, pagesize=A4)
        c.setTitle(f"Angebot {field(quote, 'number') or field(project, 'code') or ''}".strip())
        rows = ordered_items(items)
        totals = compute_quote_totals(rows, field(quote, "tax_rate"))

        y = self._new_page(c, page_w, page_h)

        # Customer block (left) and quote meta (right)
        c.setFillColorRGB(0.4, 0.4, 0.4)
        c.setFont("Helvetica", 7)
        c.drawString(1.5*cm, y, f"{self.company_name} · {', '.join(self.address_lines)}")
        c.setFillColorRGB(0.1, 0.1, 0.1)
        cy = _draw_wrapped(c, field(project, "name") or "", 1.5*cm, y - 0.5*cm, 9*cm, "Helvetica-Bold", 10)
        cy = _draw_wrapped(c, field(project, "customer_address") or "", 1.5*cm, cy, 9*cm)
        for contact in (field(project, "customer_email"), field(project, "customer_phone")):
            if contact:
                cy = _draw_wrapped(c, contact, 1.5*cm, cy, 9*cm)

        meta = [
            ("Angebot Nr.", field(quote, "number") or field(project, "code") or ""),
            ("Projekt", field(project, "code") or ""),
            ("Datum", _format_date(field(quote, "date"))),
            ("Gültig bis", _format_date(field(quote, "valid_until"))),
        ]
        my = y - 0.5*cm
        for label, value in meta:
            c.setFont("Helvetica", 9)
            c.drawString(12.5*cm, my, label)
            c.setFont("Helvetica-Bold", 9)
            c.drawRightString(page_w - 1.5*cm, my, str(value))
            my -= 0.45*cm

        y = min(cy, my) - 0.8*cm
        c.setFont("Helvetica-Bold", 16)
        c.setFillColorRGB(*_THEME_RGB)
        c.drawString(1.5*cm, y, "ANGEBOT")
        y -= 0.9*cm

        # Important note
        if self.important_note:
            from reportlab.lib.utils import simpleSplit
            lines = simpleSplit(self.important_note, "Helvetica", 8.5, page_w - 4*cm)
            box_h = (len(lines) + 1) * 0.42*cm + 0.3*cm
            c.setFillColorRGB(*_NOTE_BG_RGB)
            c.setStrokeColorRGB(0.85, 0.6, 0.1)
            c.rect(1.5*cm, y - box_h + 0.45*cm, page_w - 3*cm, box_h, fill=1, stroke=1)
            c.setStrokeColorRGB(0, 0, 0)
            c.setFillColorRGB(0.55, 0.3, 0.0)
            c.setFont("Helvetica-Bold", 9)
            c.drawString(2*cm, y, "Wichtiger Hinweis")
            c.setFillColorRGB(0.2, 0.2, 0.2)
            y = _draw_wrapped(c, self.important_note, 2*cm, y - 0.45*cm, page_w - 4*cm, size=8.5, leading=0.42*cm)
            y -= 0.8*cm

        # Line table
        c.setFillColorRGB(0.1, 0.1, 0.1)
        y = self._draw_table_header(c, y)
        for index, item in enumerate(rows):
            from reportlab.lib.utils import simpleSplit
            name_lines = simpleSplit(field(item, "item") or "", "Helvetica-Bold", 8.5, 8.2*cm) or [""]
            desc_lines = simpleSplit(field(item, "description") or "", "Helvetica", 7.5, 8*cm)
            needed = 0.05*cm + len(name_lines) * 0.4*cm + len(desc_lines) * 0.35*cm
            if y - needed < 3*cm:
                c.showPage()
                y = self._draw_table_header(c, self._new_page(c, page_w, page_h))
            c.setFillColorRGB(0.1, 0.1, 0.1)
            c.setFont("Helvetica", 8.5)
            discount = to_decimal(field(item, "discount_pct"))
            c.drawString(1.5*cm, y, str(display_position(item, index)))
            c.setFont("Helvetica-Bold", 8.5)
            c.drawString(2.6*cm, y, name_lines[0])
            c.setFont("Helvetica", 8.5)
            c.drawString(11.0*cm, y, field(item, "unit") or "")
            c.drawRightString(13.0*cm, y, _number(field(item, "qty")))
            c.drawRightString(15.3*cm, y, _money(field(item, "unit_price_net"), self.currency))
            c.drawRightString(17.0*cm, y, f"{_number(discount)} %" if discount else "")
            c.drawRightString(19.5*cm, y, _money(line_net(item), self.currency))
            y -= 0.4*cm
            if len(name_lines) > 1:
                c.setFont("Helvetica-Bold", 8.5)
                for line in name_lines[1:]:
                    c.drawString(2.6*cm, y, line)
                    y -= 0.4*cm
            if desc_lines:
                c.setFillColorRGB(0.35, 0.35, 0.35)
                c.setFont("Helvetica", 7.5)
                for line in desc_lines:
                    c.drawString(2.6*cm, y, line)
                    y -= 0.35*cm
            y -= 0.1*cm

        # Totals
        if y < 6*cm:
            c.showPage()
            y = self._new_page(c, page_w, page_h)
        c.setStrokeColorRGB(*_ACCENT_RGB)
        c.line(11*cm, y, 19.5*cm, y)
        c.setStrokeColorRGB(0, 0, 0)
        y -= 0.55*cm
        total_rows = [
            ("Summe netto", totals.subtotal_net, "Helvetica"),
            (f"zzgl. MwSt. {_number(totals.tax_rate_pct)} %", totals.vat_amount, "Helvetica"),
            ("Gesamtsumme brutto", totals.gross_total, "Helvetica-Bold"),
        ]
        for label, value, font in total_rows:
            c.setFont(font, 10)
            c.setFillColorRGB(0.1, 0.1, 0.1)
            c.drawString(11*cm, y, label)
            c.drawRightString(19.5*cm, y, _money(value, self.currency))
            y -= 0.55*cm

        # Terms and notes
        y -= 0.6*cm
        sections = [
            ("Zahlungsbedingungen", self.payment_terms),
            ("Anmerkungen", field(quote, "notes") or ""),
            ("", TERMS_REFERENCE),
        ]
        for title, text in sections:
            if not text:
                continue
            if y < 4*cm:
                y = self._continue_page(c, page_w, page_h)
            c.setFillColorRGB(0.1, 0.1, 0.1)
            if title:
                c.setFont("Helvetica-Bold", 9)
                c.drawString(1.5*cm, y, title)
                y -= 0.45*cm
            y = _draw_wrapped(
                c, text, 1.5*cm, y, page_w - 3*cm,
                new_page=lambda: self._continue_page(c, page_w, page_h),
            ) - 0.3*cm

        c.save()
        logger.info(
            "Rendered quote with %d lines", len(rows),
            extra={"project_id": field(project, "id"), "quote_id": field(quote, "id")},
        )
        return buf.getvalue()

    def _append_terms(self, pdf: bytes, terms_path: str) -> bytes:
        """Append every page of *terms_path*; a missing file leaves the quote unchanged."""
        import fitz  # PyMuPDF

        if not os.path.isfile(terms_path):
            logger.warning("Terms PDF not found, skipping append: %s", terms_path)
            return pdf
        doc = fitz.open(stream=pdf, filetype="pdf")
        try:
            terms = fitz.open(terms_path)
        except Exception as e:
            doc.close()
            raise ReportError(f"Could not open terms PDF {terms_path}: {e}") from e
        try:
            doc.insert_pdf(terms)
            return doc.tobytes()
        finally:
            terms.close()
            doc.close()
