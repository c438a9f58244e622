# family_finance/services/exports.py
# ------------------------------------------------------------
# File builders for /api/export/*:
# - CSV    (csv module)
# - Excel  (openpyxl)
# - PDF    (reportlab platypus: header bar, summary cards, table,
#           footer with page number + print time)
# Builders return bytes/text only; the routes wrap them in responses.
# ------------------------------------------------------------
from __future__ import annotations

import csv
from datetime import datetime
from decimal import Decimal
from io import BytesIO, StringIO
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models import Transaction, TxnType

FONT_NAME = "Helvetica"
TXN_HEADERS = ["Date", "Description", "Category", "Wallet", "Type", "Amount"]
BUDGET_HEADERS = ["Category", "Budget", "Realization", "Remaining", "Usage %", "Status"]
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ----- Formatting helpers -----
def fmt_amt(currency: str, amount: float) -> str:
    return f"{currency} {amount:,.2f}"


def transaction_totals(rows: list[Transaction]) -> dict:
    """Income / expense / net over the rows, transfer legs excluded."""
    income = expense = Decimal(0)
    for t in rows:
        if t.transfer_group_id:
            continue
        if t.type == TxnType.INCOME:
            income += Decimal(t.amount)
        else:
            expense += Decimal(t.amount)
    return {"income": float(income), "expense": float(expense), "net": float(income - expense)}


def _txn_row(t: Transaction) -> list:
    return [
        t.date.isoformat(),
        t.description,
        t.category.name if t.category else "Uncategorized",
        t.wallet.name if t.wallet else "",
        t.type.value,
        float(t.amount),
    ]


def _page_decor(canvas, doc):
    """Footer with page number + generated timestamp; subtle header/footer lines."""
    canvas.saveState()

    y_top = doc.height + doc.topMargin + 2 * mm
    canvas.setStrokeColor(colors.HexColor("#e6e6e6"))
    canvas.setLineWidth(0.6)
    canvas.line(doc.leftMargin, y_top, doc.width + doc.leftMargin, y_top)
    canvas.line(doc.leftMargin, 15 * mm, doc.width + doc.leftMargin, 15 * mm)

    canvas.setFont(FONT_NAME, 8)
    canvas.setFillColor(colors.HexColor("#666666"))
    canvas.drawString(doc.leftMargin, 11 * mm, f"Page {canvas.getPageNumber()}")

    ts = f"Printed {datetime.now().strftime('%Y-%m-%d %H:%M')}"
    w = canvas.stringWidth(ts, FONT_NAME, 8)
    canvas.drawString(doc.width + doc.leftMargin - w, 11 * mm, ts)

    canvas.restoreState()


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="HeaderBar", fontName=FONT_NAME, fontSize=16,
                              textColor=colors.white, alignment=1))
    styles.add(ParagraphStyle(name="Muted", fontName=FONT_NAME, fontSize=8,
                              textColor=colors.HexColor("#666666")))
    styles.add(ParagraphStyle(name="TH", fontName="Helvetica-Bold", fontSize=9,
                              textColor=colors.white, alignment=1))
    normal = styles["Normal"]
    normal.fontName = FONT_NAME
    normal.fontSize = 9
    return styles


def _header_bar(title: str, width: float, styles) -> Table:
    tbl = Table([[Paragraph(title, styles["HeaderBar"])]], colWidths=[width])
    tbl.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#1f2937")),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))
    return tbl


def _cards(cards: list[tuple[str, str, str]], width: float, styles) -> Table:
    """One row of (title, value, hex color) summary cards."""
    normal = styles["Normal"]
    n = len(cards)

    def _mini_card(title, value, color):
        return Table(
            [[Paragraph(title, normal), Paragraph(f"<font color='{color}'><b>{value}</b></font>", normal)]],
            colWidths=[width / n * 0.45, width / n * 0.5],
            style=TableStyle([
                ("BOX", (0, 0), (-1, -1), 0.8, colors.HexColor("#d1d5db")),
                ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f3f4f6")),
                ("ALIGN", (1, 0), (1, 0), "RIGHT"),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]),
        )

    return Table([[_mini_card(*c) for c in cards]], colWidths=[width / n] * n)


def _data_table(data: list[list], col_widths: list[float], amount_cols: tuple[int, ...]) -> Table:
    tbl = Table(data, colWidths=col_widths, repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#374151")),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#d1d5db")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f9fafb")]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
    ]
    for col in amount_cols:
        style.append(("ALIGN", (col, 1), (col, -1), "RIGHT"))
    tbl.setStyle(TableStyle(style))
    return tbl


def _new_doc(buf: BytesIO, *, wide: bool = False) -> SimpleDocTemplate:
    return SimpleDocTemplate(
        buf, pagesize=landscape(A4) if wide else A4,
        leftMargin=15 * mm, rightMargin=15 * mm,
        topMargin=22 * mm, bottomMargin=20 * mm,
    )


# ----------------------------
# Transactions
# ----------------------------
def transactions_csv(rows: list[Transaction], meta: dict) -> str:
    totals = transaction_totals(rows)
    sio = StringIO()
    w = csv.writer(sio)
    w.writerow([f"Transaction Report - {meta['family']}"])
    w.writerow(["Period", meta["period"]])
    w.writerow(["Type", meta["type"]])
    w.writerow(["Total Income", f"{totals['income']:.2f}"])
    w.writerow(["Total Expense", f"{totals['expense']:.2f}"])
    w.writerow(["Net", f"{totals['net']:.2f}"])
    w.writerow([])
    w.writerow(TXN_HEADERS + ["Notes"])
    for t in rows:
        row = _txn_row(t)
        row[-1] = f"{row[-1]:.2f}"
        w.writerow(row + [t.notes or ""])
    return sio.getvalue()


def transactions_xlsx(rows: list[Transaction], meta: dict) -> BytesIO:
    totals = transaction_totals(rows)
    wb = Workbook()
    ws = wb.active
    ws.title = "Transactions"
    ws.append([f"Transaction Report - {meta['family']}"])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append(["Period", meta["period"]])
    ws.append(["Type", meta["type"]])
    ws.append(["Total Income", totals["income"]])
    ws.append(["Total Expense", totals["expense"]])
    ws.append(["Net", totals["net"]])
    ws.append([])

    ws.append(TXN_HEADERS + ["Notes"])
    header_row = ws.max_row
    for cell in ws[header_row]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill("solid", fgColor="1F2937")
        cell.alignment = Alignment(horizontal="center")
    for t in rows:
        ws.append(_txn_row(t) + [t.notes or ""])
        ws.cell(row=ws.max_row, column=6).number_format = "#,##0.00"
    for col, width in zip("ABCDEFG", (12, 40, 20, 16, 10, 16, 30)):
        ws.column_dimensions[col].width = width

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio


def transactions_pdf(rows: list[Transaction], meta: dict) -> BytesIO:
    """
    Multi-page PDF:
    - Header bar "Transaction Report"
    - Period / type / count
    - Cards: Income / Expense / Net
    - Table: Date | Description | Category | Wallet | Type | Amount
    """
    cur = meta.get("currency", "")
    totals = transaction_totals(rows)
    buf = BytesIO()
    doc = _new_doc(buf)
    styles = _styles()
    normal = styles["Normal"]

    story = [_header_bar("Transaction Report", doc.width, styles), Spacer(0, 6)]
    story.append(Paragraph(f"Family: {escape(meta['family'])}", normal))
    story.append(Paragraph(f"Period: {meta['period']}", normal))
    story.append(Paragraph(f"Type: {meta['type']}", normal))
    story.append(Paragraph(f"Total Transactions: {len(rows)}", normal))
    story.append(Spacer(0, 8))

    net_color = "#198754" if totals["net"] >= 0 else "#dc3545"
    story.append(_cards([
        ("Income", fmt_amt(cur, totals["income"]), "#198754"),
        ("Expense", fmt_amt(cur, totals["expense"]), "#dc3545"),
        ("Net", fmt_amt(cur, totals["net"]), net_color),
    ], doc.width, styles))
    story.append(Spacer(0, 12))

    data = [[Paragraph(h, styles["TH"]) for h in TXN_HEADERS]]
    for t in rows:
        date_s, desc, cat, wallet, ttype, amt = _txn_row(t)
        color = "#198754" if t.type == TxnType.INCOME else "#dc3545"
        data.append([
            date_s,
            Paragraph(escape(desc), styles["Muted"]),
            Paragraph(escape(cat), styles["Muted"]),
            Paragraph(escape(wallet), styles["Muted"]),
            ttype,
            Paragraph(f"<font color='{color}'><b>{fmt_amt(cur, amt)}</b></font>", normal),
        ])
    if not rows:
        data.append(["", Paragraph("No transactions in this period", styles["Muted"]), "", "", "", ""])
    w = doc.width
    story.append(_data_table(data, [w * 0.12, w * 0.32, w * 0.16, w * 0.13, w * 0.10, w * 0.17], (5,)))

    doc.build(story, onFirstPage=_page_decor, onLaterPages=_page_decor)
    buf.seek(0)
    return buf


# ----------------------------
# Budgets
# ----------------------------
def _budget_row(item: dict) -> list:
    return [
        item["category"]["name"],
        item["budget"],
        item["realization"],
        item["remaining"],
        item["actual_percentage"],
        item["status"],
    ]


def budgets_xlsx(status: dict, meta: dict) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Budgets"
    ws.append([f"Budget Report - {meta['family']}"])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append(["Period", meta["period"]])
    ws.append([])

    ws.append(BUDGET_HEADERS)
    header_row = ws.max_row
    for cell in ws[header_row]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill("solid", fgColor="1F2937")
    for item in status["items"]:
        ws.append(_budget_row(item))
        for col in (2, 3, 4):
            ws.cell(row=ws.max_row, column=col).number_format = "#,##0.00"

    t = status["totals"]
    ws.append(["TOTAL", t["budget"], t["realization"], t["remaining"], t["percentage"], ""])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)
    for col, width in zip("ABCDEF", (28, 16, 16, 16, 10, 12)):
        ws.column_dimensions[col].width = width

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio


_STATUS_COLORS = {"over": "#dc3545", "warning": "#d97706", "safe": "#198754", "no-budget": "#6b7280"}


def budgets_pdf(status: dict, meta: dict) -> BytesIO:
    cur = meta.get("currency", "")
    buf = BytesIO()
    doc = _new_doc(buf)
    styles = _styles()
    normal = styles["Normal"]
    t = status["totals"]

    story = [_header_bar("Budget Report", doc.width, styles), Spacer(0, 6)]
    story.append(Paragraph(f"Family: {escape(meta['family'])}", normal))
    story.append(Paragraph(f"Period: {meta['period']}", normal))
    story.append(Spacer(0, 8))
    story.append(_cards([
        ("Budget", fmt_amt(cur, t["budget"]), "#0d6efd"),
        ("Spent", fmt_amt(cur, t["realization"]), "#dc3545"),
        ("Remaining", fmt_amt(cur, t["remaining"]), "#198754" if t["remaining"] >= 0 else "#dc3545"),
    ], doc.width, styles))
    story.append(Spacer(0, 12))

    data = [[Paragraph(h, styles["TH"]) for h in BUDGET_HEADERS]]
    for item in status["items"]:
        name, budget, real, remaining, pct, st = _budget_row(item)
        data.append([
            Paragraph(escape(name), styles["Muted"]),
            fmt_amt(cur, budget),
            fmt_amt(cur, real),
            fmt_amt(cur, remaining),
            f"{pct:.1f}%",
            Paragraph(f"<font color='{_STATUS_COLORS.get(st, '#000000')}'><b>{st}</b></font>", normal),
        ])
    data.append([
        Paragraph("<b>TOTAL</b>", normal),
        fmt_amt(cur, t["budget"]),
        fmt_amt(cur, t["realization"]),
        fmt_amt(cur, t["remaining"]),
        f"{t['percentage']:.1f}%",
        "",
    ])
    w = doc.width
    story.append(_data_table(data, [w * 0.26, w * 0.17, w * 0.17, w * 0.17, w * 0.11, w * 0.12], (1, 2, 3, 4)))

    doc.build(story, onFirstPage=_page_decor, onLaterPages=_page_decor)
    buf.seek(0)
    return buf
