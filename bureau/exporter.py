from __future__ import annotations

import io
import logging
from datetime import date

import openpyxl
from openpyxl.styles import Font

log = logging.getLogger(__name__)

REPORT_COLUMNS = (
    ("Project", "project_name"),
    ("Client", "client_name"),
    ("Company", "company"),
    ("Event Date", "event_date"),
    ("Status", "status"),
    ("Speaker", "speaker_name"),
    ("Budget", "budget"),
    ("Travel Buyout", "travel_buyout"),
    ("Total To Collect", "total_to_collect"),
    ("Speaker Fee", "speaker_fee"),
    ("Speaker Payout", "speaker_payout"),
    ("Net Commission", "net_commission"),
    ("Payment Status", "payment_status"),
    ("Payment Date", "payment_date"),
    ("Speaker Payment Status", "speaker_payment_status"),
    ("Invoice #", "invoice_number"),
    ("PO #", "purchase_order_number"),
)


def report_filename(today: date | None = None) -> str:
    return f"financial-report-{(today or date.today()).isoformat()}.xlsx"


def build_finance_workbook(overview: dict) -> bytes:
    """Render the finance overview as an XLSX workbook: one row per project plus a summary sheet."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Financial Report"
    ws.append([label for label, _ in REPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in overview["projects"]:
        ws.append([row.get(key) for _, key in REPORT_COLUMNS])

    summary_ws = wb.create_sheet("Summary")
    summary_ws.append(["Metric", "Value"])
    for cell in summary_ws[1]:
        cell.font = Font(bold=True)
    for key, value in overview["summary"].items():
        summary_ws.append([key.replace("_", " ").title(), value])

    buf = io.BytesIO()
    wb.save(buf)
    log.info("Exported finance report with %d project row(s)", len(overview["projects"]))
    return buf.getvalue()
