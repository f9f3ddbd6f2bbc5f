"""Speaker-fee migration: recompute ``speaker_fee`` from budget and effective commission.

The effective commission for a project is resolved by priority:

1. the project's own ``commission_percentage``
2. the ``commission_percentage`` of the deal named by ``project.deal_id``
3. the caller-supplied default (``DEFAULT_COMMISSION_RATE``, 20% unless configured)

``speaker_fee = budget * (1 - effective / 100)``. Applying the migration is
idempotent because the fee is always derived from the budget, never from the
previously stored fee.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bureau import config
from bureau.models import Deal, Project
from bureau.utils import bump_version, money, round_money

log = logging.getLogger(__name__)

_FEE_TOLERANCE = 0.01


def effective_commission(
    project_pct: float | None, deal_pct: float | None, default: float | None = None,
) -> float:
    if project_pct is not None:
        return float(project_pct)
    if deal_pct is not None:
        return float(deal_pct)
    return float(config.DEFAULT_COMMISSION_RATE if default is None else default)


def speaker_fee_for(budget: float, commission_pct: float) -> float:
    return round_money(money(budget) * (1 - commission_pct / 100))


def linked_deal_commission(session: Session, proj: Project) -> float | None:
    if proj.deal_id is None:
        return None
    return session.execute(
        select(Deal.commission_percentage).where(Deal.id == proj.deal_id)
    ).scalar()


def _eligible_projects(session: Session, project_ids: list[int] | None = None) -> list[Project]:
    query = (
        select(Project)
        .where(Project.status != "cancelled", Project.budget > 0)
        .order_by(Project.id.desc())
    )
    if project_ids:
        query = query.where(Project.id.in_(project_ids))
    return list(session.execute(query).scalars().all())


def preview_speaker_fees(session: Session, default_rate: float | None = None) -> dict[str, Any]:
    """Dry run: per-project current vs. calculated fee plus aggregate totals."""
    rows = []
    for proj in _eligible_projects(session):
        deal_pct = linked_deal_commission(session, proj)
        effective = effective_commission(proj.commission_percentage, deal_pct, default_rate)
        budget = money(proj.budget)
        current = money(proj.speaker_fee)
        calculated = speaker_fee_for(budget, effective)
        rows.append({
            "id": proj.id,
            "project_name": proj.project_name,
            "speaker_name": proj.speaker_name or "No speaker assigned",
            "deal_id": proj.deal_id,
            "budget": budget,
            "current_speaker_fee": current,
            "project_commission": proj.commission_percentage,
            "deal_commission": deal_pct,
            "effective_commission": effective,
            "calculated_speaker_fee": calculated,
            "calculated_commission": round_money(budget * effective / 100),
            "needs_update": abs(current - calculated) > _FEE_TOLERANCE,
        })

    summary = {
        "total_projects": len(rows),
        "projects_with_deal": sum(1 for r in rows if r["deal_id"]),
        "projects_with_project_commission": sum(1 for r in rows if r["project_commission"] is not None),
        "projects_with_deal_commission": sum(
            1 for r in rows if r["project_commission"] is None and r["deal_commission"] is not None
        ),
        "projects_using_default": sum(
            1 for r in rows if r["project_commission"] is None and r["deal_commission"] is None
        ),
        "projects_needing_update": sum(1 for r in rows if r["needs_update"]),
        "total_current_speaker_fees": round_money(sum(r["current_speaker_fee"] for r in rows)),
        "total_calculated_speaker_fees": round_money(sum(r["calculated_speaker_fee"] for r in rows)),
        "total_commission": round_money(sum(r["calculated_commission"] for r in rows)),
    }
    for r in rows:
        del r["deal_id"]
    return {"preview": True, "projects": rows, "summary": summary}


def apply_speaker_fees(
    session: Session, project_ids: list[int] | None = None, default_rate: float | None = None,
) -> list[dict[str, Any]]:
    """Rewrite speaker_fee on every eligible project (caller must commit)."""
    updated = []
    for proj in _eligible_projects(session, project_ids):
        effective = effective_commission(
            proj.commission_percentage, linked_deal_commission(session, proj), default_rate,
        )
        proj.speaker_fee = speaker_fee_for(proj.budget, effective)
        bump_version(proj)
        budget = money(proj.budget)
        updated.append({
            "id": proj.id,
            "project_name": proj.project_name,
            "budget": budget,
            "new_speaker_fee": proj.speaker_fee,
            "new_commission": round_money(budget - proj.speaker_fee),
        })
    log.info("Speaker-fee migration rewrote %d project(s)", len(updated))
    return updated
