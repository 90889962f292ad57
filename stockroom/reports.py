"""
PDF reports for inventory, borrowed and defected items.

Layout is computed by the pure helpers ``scale_widths`` and ``paginate``;
rendering is a thin reportlab canvas pass over their output. Given the
same rows, the same pages come out: rows are sorted by item name before
anything is laid out.
"""
import io
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from . import models
from .borrowing import BorrowStatus, display_status
from .inventory import item_value

logger = logging.getLogger(__name__)

COMPANY = "Tiger's Mark Corporation"
MARGIN = 36
TITLE_HEIGHT = 44
HEADER_HEIGHT = 20
ROW_HEIGHT = 18
SIGNATURE_ROW_HEIGHT = 30
AGGREGATE_HEIGHT = 22
FOOTER_HEIGHT = 20
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZE = 8

HEADER_FILL = colors.HexColor("#F97316")
STRIPE_FILL = colors.HexColor("#F3F4F6")
AGGREGATE_FILL = colors.HexColor("#FED7AA")


class Column(NamedTuple):
    label: str
    weight: float
    align: str = "left"


class Signature(NamedTuple):
    """Cell holding raw signature image bytes, or None when there is none"""
    data: Optional[bytes]


def format_currency(value: float) -> str:
    return f"P{value or 0:,.2f}"


def scale_widths(weights: Sequence[float], table_width: float) -> List[float]:
    """Column widths proportional to ``weights`` filling ``table_width`` exactly"""
    total = sum(weights)
    if total <= 0:
        raise ValueError("column weights must add up to a positive number")
    return [table_width * weight / total for weight in weights]


def paginate(
    row_count: int,
    row_height: float,
    available_height: float,
    aggregate_height: float = 0,
) -> List[List[int]]:
    """
    Split row indexes into pages.

    ``available_height`` is the space between the header band and the
    footer on one page. A page takes rows until the next one would cross
    that limit. If the trailing aggregate row does not fit under the last
    page's rows, an extra page holding no rows is added for it.
    """
    if row_height <= 0 or row_height > available_height:
        raise ValueError("row height must fit on a page")
    per_page = int(available_height // row_height)
    pages = [
        list(range(start, min(start + per_page, row_count)))
        for start in range(0, row_count, per_page)
    ] or [[]]
    if aggregate_height:
        remaining = available_height - len(pages[-1]) * row_height
        if remaining < aggregate_height:
            pages.append([])
    return pages


def _fit(text: str, width: float, font: str = FONT, size: float = FONT_SIZE) -> str:
    """Trim text with an ellipsis until it fits the cell"""
    text = "" if text is None else str(text)
    limit = width - 6
    if stringWidth(text, font, size) <= limit:
        return text
    while text and stringWidth(text + "...", font, size) > limit:
        text = text[:-1]
    return text + "..." if text else ""


def _by_name(key: Callable) -> Callable:
    return lambda row: (key(row) or "").lower()


class _TableRenderer:
    """Draws one titled table across as many pages as it needs"""

    def __init__(self, title: str, columns: Sequence[Column], pagesize, row_height: float = ROW_HEIGHT,
                 generated_at: Optional[datetime] = None):
        self.title = title
        self.columns = columns
        self.page_width, self.page_height = pagesize
        self.pagesize = pagesize
        self.row_height = row_height
        self.generated_at = generated_at or datetime.now()
        self.table_width = self.page_width - 2 * MARGIN
        self.widths = scale_widths([c.weight for c in columns], self.table_width)
        self.table_top = self.page_height - MARGIN - TITLE_HEIGHT - HEADER_HEIGHT
        self.available = self.table_top - MARGIN - FOOTER_HEIGHT

    def _draw_header_band(self, pdf: canvas.Canvas) -> None:
        top = self.page_height - MARGIN
        pdf.setFillColor(colors.black)
        pdf.setFont(FONT_BOLD, 14)
        pdf.drawCentredString(self.page_width / 2, top - 16, f"{COMPANY} - {self.title}")
        pdf.setFont(FONT, 9)
        pdf.drawCentredString(
            self.page_width / 2, top - 30, f"Generated: {self.generated_at.strftime('%Y-%m-%d %H:%M')}"
        )

        y = top - TITLE_HEIGHT - HEADER_HEIGHT
        pdf.setFillColor(HEADER_FILL)
        pdf.rect(MARGIN, y, self.table_width, HEADER_HEIGHT, stroke=0, fill=1)
        pdf.setFillColor(colors.white)
        pdf.setFont(FONT_BOLD, FONT_SIZE)
        x = MARGIN
        for column, width in zip(self.columns, self.widths):
            self._draw_text(pdf, column.label, x, y, width, HEADER_HEIGHT, column.align, FONT_BOLD)
            x += width

    def _draw_footer(self, pdf: canvas.Canvas, page: int, pages: int) -> None:
        pdf.setFillColor(colors.grey)
        pdf.setFont(FONT, 8)
        pdf.drawString(MARGIN, MARGIN, f"{COMPANY} - {self.title}")
        pdf.drawRightString(self.page_width - MARGIN, MARGIN, f"Page {page} of {pages}")

    @staticmethod
    def _draw_text(pdf, text, x, y, width, height, align="left", font=FONT):
        text = _fit(text, width, font)
        baseline = y + (height - FONT_SIZE) / 2 + 1
        if align == "right":
            pdf.drawRightString(x + width - 3, baseline, text)
        elif align == "center":
            pdf.drawCentredString(x + width / 2, baseline, text)
        else:
            pdf.drawString(x + 3, baseline, text)

    def _draw_signature(self, pdf, cell: Signature, x, y, width, height) -> None:
        if cell.data:
            try:
                image = ImageReader(io.BytesIO(cell.data))
                pdf.drawImage(
                    image, x + 2, y + 2, width=width - 4, height=height - 4,
                    preserveAspectRatio=True, anchor="c", mask="auto",
                )
                return
            except Exception as e:
                logger.warning(f"Could not embed signature image: {e}")
        pdf.setFillColor(colors.black)
        self._draw_text(pdf, "N/A", x, y, width, height, "center")

    def _draw_row(self, pdf, values: Sequence, y: float, shaded: bool) -> None:
        if shaded:
            pdf.setFillColor(STRIPE_FILL)
            pdf.rect(MARGIN, y, self.table_width, self.row_height, stroke=0, fill=1)
        pdf.setFont(FONT, FONT_SIZE)
        x = MARGIN
        for column, width, value in zip(self.columns, self.widths, values):
            if isinstance(value, Signature):
                self._draw_signature(pdf, value, x, y, width, self.row_height)
            else:
                pdf.setFillColor(colors.black)
                self._draw_text(pdf, value, x, y, width, self.row_height, column.align)
            x += width

    def _draw_aggregate(self, pdf, summary: str, total: Optional[str], y: float) -> None:
        pdf.setFillColor(AGGREGATE_FILL)
        pdf.rect(MARGIN, y, self.table_width, AGGREGATE_HEIGHT, stroke=0, fill=1)
        pdf.setFillColor(colors.black)
        pdf.setFont(FONT_BOLD, FONT_SIZE + 1)
        baseline = y + (AGGREGATE_HEIGHT - FONT_SIZE) / 2
        pdf.drawString(MARGIN + 4, baseline, summary)
        if total:
            pdf.drawRightString(MARGIN + self.table_width - 4, baseline, total)

    def render(self, rows: List[Sequence], summary: str, total: Optional[str] = None) -> bytes:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.pagesize)
        pdf.setTitle(f"{COMPANY} - {self.title}")
        pages = paginate(len(rows), self.row_height, self.available, AGGREGATE_HEIGHT)
        for number, indexes in enumerate(pages, start=1):
            self._draw_header_band(pdf)
            y = self.table_top
            for index in indexes:
                y -= self.row_height
                self._draw_row(pdf, rows[index], y, shaded=index % 2 == 1)
            if number == len(pages):
                self._draw_aggregate(pdf, summary, total, y - AGGREGATE_HEIGHT)
            self._draw_footer(pdf, number, len(pages))
            pdf.showPage()
        pdf.save()
        return buffer.getvalue()


INVENTORY_COLUMNS = (
    Column("No.", 0.5, "center"),
    Column("Item Name", 3),
    Column("Category", 1.6),
    Column("Unit Price", 1.2, "right"),
    Column("Curr Qty", 0.9, "right"),
    Column("Total", 0.9, "right"),
    Column("Value", 1.4, "right"),
)

BORROWED_COLUMNS = (
    Column("No.", 0.4, "center"),
    Column("Item", 2.2),
    Column("Borrower", 1.6),
    Column("Department", 1.3),
    Column("Qty", 0.6, "right"),
    Column("Unit Price", 1.1, "right"),
    Column("Total", 1.2, "right"),
    Column("Borrowed", 1.0, "center"),
    Column("Return", 1.0, "center"),
    Column("Status", 0.9, "center"),
    Column("Signature", 1.3, "center"),
)

DEFECTED_COLUMNS = (
    Column("No.", 0.5, "center"),
    Column("Item Name", 3),
    Column("Category", 1.5),
    Column("Location", 1.5),
    Column("Qty", 0.7, "right"),
    Column("Unit Price", 1.2, "right"),
    Column("Value", 1.4, "right"),
)


def inventory_report(items: Iterable[models.InventoryItem], generated_at: Optional[datetime] = None) -> bytes:
    items = sorted(items, key=_by_name(lambda i: i.name))
    rows = [
        (
            str(n),
            item.name,
            item.category or "Uncategorized",
            format_currency(item.unit_price),
            str(item.quantity),
            str(item.total_items or item.quantity),
            format_currency(item_value(item)),
        )
        for n, item in enumerate(items, start=1)
    ]
    total_quantity = sum(item.quantity for item in items)
    total_value = sum(item_value(item) for item in items)
    renderer = _TableRenderer("Inventory Report", INVENTORY_COLUMNS, A4, generated_at=generated_at)
    return renderer.render(
        rows,
        f"TOTAL: {len(items)} Records | {total_quantity} Items",
        f"Total Value: {format_currency(total_value)}",
    )


def borrowed_report(
    records: Iterable[models.BorrowedItem],
    signatures: Optional[Dict[int, bytes]] = None,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """
    Borrowed items with each borrower's signature embedded.

    ``signatures`` maps borrow id to the downloaded image bytes; rows with
    no entry, or bytes that are not a readable image, show "N/A".
    """
    signatures = signatures or {}
    records = sorted(records, key=_by_name(lambda r: r.item_name))
    today = (generated_at or datetime.now()).date()
    rows = [
        (
            str(n),
            record.item_name,
            record.borrower_name,
            record.borrower_department or "N/A",
            str(record.quantity),
            format_currency(record.unit_price),
            format_currency((record.unit_price or 0) * record.quantity),
            record.borrow_date.isoformat() if record.borrow_date else "",
            record.return_date.isoformat() if record.return_date else "",
            display_status(record, today),
            Signature(signatures.get(record.id)),
        )
        for n, record in enumerate(records, start=1)
    ]
    quantity = sum(record.quantity for record in records)
    active = sum(1 for record in records if record.status == BorrowStatus.ACTIVE.value)
    returned = sum(1 for record in records if record.status == BorrowStatus.RETURNED.value)
    grand_total = sum((record.unit_price or 0) * record.quantity for record in records)
    renderer = _TableRenderer(
        "Borrowed Items Report", BORROWED_COLUMNS, landscape(A4),
        row_height=SIGNATURE_ROW_HEIGHT, generated_at=generated_at,
    )
    return renderer.render(
        rows,
        f"TOTAL: {len(records)} Records | {quantity} Items | Active: {active} | Returned: {returned}",
        f"Grand Total: {format_currency(grand_total)}",
    )


def defected_report(items: Iterable[models.InventoryItem], generated_at: Optional[datetime] = None) -> bytes:
    items = sorted(items, key=_by_name(lambda i: i.name))
    rows = [
        (
            str(n),
            item.name,
            item.category or "Uncategorized",
            item.location or "N/A",
            str(item.quantity),
            format_currency(item.unit_price),
            format_currency(item.quantity * (item.unit_price or 0)),
        )
        for n, item in enumerate(items, start=1)
    ]
    quantity = sum(item.quantity for item in items)
    value = sum(item.quantity * (item.unit_price or 0) for item in items)
    renderer = _TableRenderer("Defected Items Report", DEFECTED_COLUMNS, A4, generated_at=generated_at)
    return renderer.render(
        rows,
        f"TOTAL: {len(items)} Records | {quantity} Items",
        f"Total Value: {format_currency(value)}",
    )
