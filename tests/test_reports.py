from datetime import date, datetime
from types import SimpleNamespace

import pytest

from conftest import PNG_BYTES
from stockroom import reports


def inventory_row(name, quantity=10, unit_price=5.0, total_items=None, category="Masonry"):
    return SimpleNamespace(
        name=name, quantity=quantity, unit_price=unit_price, total_items=total_items or quantity,
        category=category, location="Warehouse", condition="Brand New",
    )


def borrow_row(id, item_name, status="Active"):
    return SimpleNamespace(
        id=id, item_name=item_name, borrower_name="Juan", borrower_department=None, quantity=2,
        unit_price=100.0, borrow_date=date(2026, 10, 1), return_date=date(2026, 12, 1), status=status,
    )


def test_format_currency():
    assert reports.format_currency(1234.5) == "P1,234.50"
    assert reports.format_currency(0) == "P0.00"
    assert reports.format_currency(None) == "P0.00"


def test_scale_widths_fill_table():
    widths = reports.scale_widths([1, 2, 1], 400)
    assert widths == [100, 200, 100]
    assert sum(reports.scale_widths([0.5, 3, 1.6, 1.2], 523.27)) == pytest.approx(523.27)


def test_scale_widths_rejects_empty_weights():
    with pytest.raises(ValueError):
        reports.scale_widths([0, 0], 100)


def test_paginate_splits_on_printable_height():
    pages = reports.paginate(row_count=25, row_height=18, available_height=180)
    assert [len(page) for page in pages] == [10, 10, 5]
    assert [index for page in pages for index in page] == list(range(25))


def test_paginate_moves_aggregate_to_fresh_page():
    # 10 rows fill the page exactly, so the total row needs another page
    pages = reports.paginate(row_count=10, row_height=18, available_height=180, aggregate_height=22)
    assert pages == [list(range(10)), []]

    pages = reports.paginate(row_count=8, row_height=18, available_height=180, aggregate_height=22)
    assert pages == [list(range(8))]


def test_paginate_empty_table_has_one_page():
    assert reports.paginate(0, 18, 180, 22) == [[]]


def test_paginate_rejects_rows_taller_than_page():
    with pytest.raises(ValueError):
        reports.paginate(3, 200, 180)


def test_inventory_report_is_pdf():
    content = reports.inventory_report(
        [inventory_row("Sand"), inventory_row("cement"), inventory_row("Bricks")],
        generated_at=datetime(2026, 10, 18, 9, 0),
    )
    assert content.startswith(b"%PDF")


def test_rows_sorted_by_item_name(monkeypatch):
    captured = {}

    def capture(self, rows, summary, total=None):
        captured["rows"] = rows
        captured["summary"] = summary
        captured["total"] = total
        return b"%PDF-stub"

    monkeypatch.setattr(reports._TableRenderer, "render", capture)
    reports.inventory_report([inventory_row("sand"), inventory_row("Cement"), inventory_row("bricks")])

    assert [row[1] for row in captured["rows"]] == ["bricks", "Cement", "sand"]
    assert [row[0] for row in captured["rows"]] == ["1", "2", "3"]
    assert captured["summary"] == "TOTAL: 3 Records | 30 Items"
    assert captured["total"] == "Total Value: P150.00"


def test_borrowed_report_aggregate(monkeypatch):
    captured = {}

    def capture(self, rows, summary, total=None):
        captured.update(rows=rows, summary=summary, total=total)
        return b"%PDF-stub"

    monkeypatch.setattr(reports._TableRenderer, "render", capture)
    reports.borrowed_report(
        [borrow_row(1, "Ladder"), borrow_row(2, "Drill", status="Returned")],
        {1: PNG_BYTES},
        generated_at=datetime(2026, 10, 18),
    )
    assert captured["summary"] == "TOTAL: 2 Records | 4 Items | Active: 1 | Returned: 1"
    assert captured["total"] == "Grand Total: P400.00"
    assert [row[1] for row in captured["rows"]] == ["Drill", "Ladder"]
    assert captured["rows"][0][-1] == reports.Signature(None)
    assert captured["rows"][1][-1] == reports.Signature(PNG_BYTES)


def test_borrowed_report_falls_back_for_bad_signatures():
    content = reports.borrowed_report(
        [borrow_row(1, "Ladder"), borrow_row(2, "Drill"), borrow_row(3, "Grinder")],
        {1: PNG_BYTES, 2: b"not an image"},
        generated_at=datetime(2026, 10, 18),
    )
    assert content.startswith(b"%PDF")


def test_long_reports_span_pages_with_header_on_each(monkeypatch):
    pages, headers = [], []
    show_page = reports.canvas.Canvas.showPage
    draw_header = reports._TableRenderer._draw_header_band

    def counting_show_page(self):
        pages.append(1)
        show_page(self)

    def counting_header(self, pdf):
        headers.append(1)
        draw_header(self, pdf)

    monkeypatch.setattr(reports.canvas.Canvas, "showPage", counting_show_page)
    monkeypatch.setattr(reports._TableRenderer, "_draw_header_band", counting_header)

    # 38 rows fit an A4 page
    rows = [inventory_row(f"Item {n:03d}") for n in range(120)]
    content = reports.inventory_report(rows, generated_at=datetime(2026, 10, 18))

    assert content.startswith(b"%PDF")
    assert len(pages) == 4
    assert len(headers) == 4


def test_defected_report_is_pdf():
    content = reports.defected_report([inventory_row("Cracked tiles", quantity=3)])
    assert content.startswith(b"%PDF")
