"""Finance overview across engagements.

Projects carry payment tracking. Travel buyout is collected from the client on
top of the budget and passed straight through to the speaker.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bureau.models import Project
from bureau.schemas import PaymentInfoUpdate
from bureau.services import apply_updates
from bureau.utils import bump_version, iso, money, round_money

PAYMENT_INFO_FIELDS = (
    "payment_status", "payment_date", "speaker_payment_status", "speaker_payment_date",
    "travel_buyout", "invoice_number", "purchase_order_number",
)


def project_finance_row(proj: Project) -> dict[str, Any]:
    budget = money(proj.budget)
    speaker_fee = money(proj.speaker_fee)
    travel_buyout = money(proj.travel_buyout)
    stored_commission = money(proj.commission_amount)
    # Older rows have no stored commission; fall back to the spread
    net_commission = stored_commission if stored_commission > 0 else round_money(budget - speaker_fee)
    return {
        "id": proj.id,
        "project_name": proj.project_name,
        "client_name": proj.client_name,
        "client_email": proj.client_email,
        "company": proj.company,
        "event_name": proj.event_name or proj.project_name,
        "event_date": iso(proj.event_date),
        "status": proj.status,
        "speaker_name": proj.speaker_name,
        "budget": budget,
        "speaker_fee": speaker_fee,
        "commission_percentage": proj.commission_percentage or 20.0,
        "commission_amount": net_commission,
        "travel_buyout": travel_buyout,
        "total_to_collect": round_money(budget + travel_buyout),
        "speaker_payout": round_money(speaker_fee + travel_buyout),
        "net_commission": net_commission,
        "payment_status": proj.payment_status or "pending",
        "payment_date": iso(proj.payment_date),
        "invoice_number": proj.invoice_number,
        "purchase_order_number": proj.purchase_order_number,
        "payment_terms": proj.payment_terms,
        "speaker_payment_status": proj.speaker_payment_status or "pending",
        "speaker_payment_date": iso(proj.speaker_payment_date),
        "notes": proj.notes,
        "deal_id": proj.deal_id,
        "created_at": iso(proj.created_at),
    }


def _total(rows: list[dict], key: str, where=lambda r: True) -> float:
    return round_money(sum(r[key] for r in rows if where(r)))


def finance_overview(session: Session) -> dict[str, Any]:
    projects = session.execute(
        select(Project)
        .where(Project.status != "cancelled")
        .order_by(Project.event_date.desc().nulls_last(), Project.id.desc())
    ).scalars().all()
    rows = [project_finance_row(p) for p in projects]

    def paid(r):
        return r["payment_status"] == "paid"

    def speaker_paid(r):
        return r["speaker_payment_status"] == "paid"

    summary = {
        "total_to_collect": _total(rows, "total_to_collect"),
        "amount_collected": _total(rows, "total_to_collect", paid),
        "amount_pending": _total(rows, "total_to_collect", lambda r: not paid(r)),
        "total_speaker_payouts": _total(rows, "speaker_payout"),
        "speaker_payouts_paid": _total(rows, "speaker_payout", speaker_paid),
        "speaker_payouts_pending": _total(rows, "speaker_payout", lambda r: not speaker_paid(r)),
        "total_travel_buyouts": _total(rows, "travel_buyout"),
        "net_commission_realized": _total(rows, "net_commission", paid),
        "net_commission_projected": _total(rows, "net_commission"),
        "total_projects": len(rows),
        "projects_paid": sum(1 for r in rows if paid(r)),
        "projects_pending": sum(1 for r in rows if not paid(r)),
        "speakers_paid": sum(1 for r in rows if speaker_paid(r)),
        "speakers_pending": sum(1 for r in rows if not speaker_paid(r) and r["speaker_payout"] > 0),
    }
    return {"projects": rows, "summary": summary, "success": True}


def update_payment_info(proj: Project, body: PaymentInfoUpdate) -> None:
    """Coalescing update: omitted fields keep their stored value (caller must commit)."""
    apply_updates(proj, body.model_dump(), PAYMENT_INFO_FIELDS)
    bump_version(proj)
