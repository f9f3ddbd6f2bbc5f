"""Batch reconciliation of deal and project finances, plus the sync-status report.

Reconciliation runs three steps, each committed on its own:

1. link unlinked won deals to the project with the same client email and the
   nearest event date
2. re-derive aggregate financial fields on every project with linked deals
3. summarise won deals

A failure in step 2 leaves the links from step 1 in place.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bureau.models import Deal, Project
from bureau.utils import bump_version, money, round_money

log = logging.getLogger(__name__)

FALLBACK_COMMISSION_RATE = 20.0

SYNCED = "Synced"
OUT_OF_SYNC = "Out of Sync"
UNLINKED = "Unlinked"


def _date_distance(a: date | None, b: date | None) -> float:
    # Unknown dates sort after every real distance
    if a is None or b is None:
        return float("inf")
    return abs((a - b).days)


def link_unlinked_won_deals(session: Session) -> int:
    """Step 1: point each unlinked won deal at its nearest same-email project."""
    deals = session.execute(
        select(Deal).where(Deal.status == "won", Deal.project_id.is_(None), Deal.client_email.is_not(None))
    ).scalars().all()
    linked = 0
    for deal in deals:
        candidates = session.execute(
            select(Project).where(Project.client_email == deal.client_email).order_by(Project.id)
        ).scalars().all()
        if not candidates:
            continue
        nearest = min(candidates, key=lambda p: _date_distance(p.event_date, deal.event_date))
        deal.project_id = nearest.id
        bump_version(deal)
        linked += 1
    session.commit()
    log.info("Reconciliation linked %d won deal(s) to projects", linked)
    return linked


def derive_payment_status(statuses: list[str | None]) -> str:
    if "paid" in statuses:
        return "paid"
    if "partial" in statuses:
        return "partial"
    return "pending"


def recompute_project_aggregates(proj: Project, linked: list[Deal]) -> None:
    won = [d for d in linked if d.status == "won"]
    values = [d.deal_value for d in won if d.deal_value is not None]
    percentages = [d.commission_percentage for d in won if d.commission_percentage is not None]
    commissions = [d.commission_amount for d in won if d.commission_amount is not None]
    paid_dates = [d.payment_date for d in linked if d.payment_status == "paid" and d.payment_date is not None]

    proj.actual_revenue = round_money(sum(values)) if values else proj.budget
    proj.commission_percentage = (
        round_money(sum(percentages) / len(percentages)) if percentages else FALLBACK_COMMISSION_RATE
    )
    proj.commission_amount = (
        round_money(sum(commissions)) if commissions else round_money(money(proj.budget) * 0.2)
    )
    proj.payment_status = derive_payment_status([d.payment_status for d in linked])
    proj.payment_date = max(paid_dates) if paid_dates else None
    bump_version(proj)


def sync_project_finances(session: Session) -> int:
    """Step 2: refresh every project that has at least one linked deal."""
    linked_deals = session.execute(
        select(Deal).where(Deal.project_id.is_not(None)).order_by(Deal.id)
    ).scalars().all()
    by_project: dict[int, list[Deal]] = {}
    for deal in linked_deals:
        by_project.setdefault(deal.project_id, []).append(deal)

    projects = session.execute(
        select(Project).where(Project.id.in_(list(by_project)))
    ).scalars().all() if by_project else []
    for proj in projects:
        recompute_project_aggregates(proj, by_project[proj.id])
    session.commit()
    return len(projects)


def won_deal_summary(session: Session) -> dict[str, Any]:
    """Step 3: totals over won deals."""
    won = session.execute(select(Deal).where(Deal.status == "won")).scalars().all()
    return {
        "total_deals": len(won),
        "linked_projects": len({d.project_id for d in won if d.project_id is not None}),
        "total_value": round_money(sum(money(d.deal_value) for d in won)),
        "total_commission": round_money(sum(money(d.commission_amount) for d in won)),
    }


def reconcile(session: Session) -> dict[str, Any]:
    link_unlinked_won_deals(session)
    updated = sync_project_finances(session)
    summary = won_deal_summary(session)
    log.info("Reconciliation refreshed %d project(s)", updated)
    return {"success": True, "projectsUpdated": updated, "summary": summary}


# ---------------------------------------------------------------------------
# Sync-status report
# ---------------------------------------------------------------------------


def classify_sync(deal: Deal, proj: Project | None) -> str:
    """Only payment_status is compared; equal money fields are not implied."""
    if deal.project_id is None:
        return UNLINKED
    if proj is not None and deal.payment_status is not None and deal.payment_status == proj.payment_status:
        return SYNCED
    return OUT_OF_SYNC


def sync_status(session: Session) -> dict[str, Any]:
    deals = session.execute(
        select(Deal).where(Deal.status == "won").order_by(Deal.client_name, Deal.event_date)
    ).scalars().all()
    project_ids = {d.project_id for d in deals if d.project_id is not None}
    projects = {
        p.id: p for p in session.execute(
            select(Project).where(Project.id.in_(list(project_ids)))
        ).scalars().all()
    } if project_ids else {}

    rows = []
    for deal in deals:
        proj = projects.get(deal.project_id) if deal.project_id is not None else None
        rows.append({
            "deal_id": deal.id,
            "client_name": deal.client_name,
            "deal_value": deal.deal_value,
            "deal_payment_status": deal.payment_status,
            "project_id": deal.project_id,
            "project_name": proj.project_name if proj else None,
            "budget": proj.budget if proj else None,
            "commission_amount": proj.commission_amount if proj else None,
            "project_payment_status": proj.payment_status if proj else None,
            "sync_status": classify_sync(deal, proj),
        })

    summary = {
        "totalDeals": len(rows),
        "linked": sum(1 for r in rows if r["project_id"] is not None),
        "synced": sum(1 for r in rows if r["sync_status"] == SYNCED),
        "outOfSync": sum(1 for r in rows if r["sync_status"] == OUT_OF_SYNC),
        "unlinked": sum(1 for r in rows if r["sync_status"] == UNLINKED),
    }
    return {"status": rows, "summary": summary}
