"""Best-effort financial sync between deals and projects.

A deal and its engagement project are meant to carry the same figures, but
the link between them is not always recorded. Counterparts are found with a
heuristic join::

    company = X.company AND client_name = X.client_name
        AND (event_date = X.event_date OR <title> = X.<title>)

plus the explicitly linked row when ``deal.project_id`` / ``project.deal_id``
is set. Every match is overwritten; there is no merge and no timestamp check.

The primary row is always committed before propagation starts. A failure while
pushing to the other side is logged and reported as a ``warning``; it never
undoes the primary update.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from bureau.fees import effective_commission, speaker_fee_for
from bureau.models import Deal, Project
from bureau.schemas import DealFinanceUpdate, ProjectFinanceUpdate
from bureau.services import apply_updates, deal_summary, get_entity, project_summary
from bureau.utils import bump_version, compute_commission, money, round_money

log = logging.getLogger(__name__)

DEAL_FINANCE_FIELDS = (
    "deal_value", "commission_percentage", "payment_status", "payment_date",
    "invoice_number", "contract_link", "invoice_link_1", "invoice_link_2",
    "contract_signed_date", "invoice_1_sent_date", "invoice_2_sent_date",
)

PROJECT_FINANCE_FIELDS = (
    "budget", "speaker_fee", "actual_revenue", "commission_percentage",
    "payment_status", "payment_date", "financial_notes",
)


class StaleVersionError(Exception):
    """The caller edited an out-of-date copy of the record."""


@dataclass
class SyncResult:
    record: dict[str, Any]
    updated: int | None
    warning: str | None = None


def check_version(obj, expected: int | None) -> None:
    if expected is not None and expected != obj.version:
        raise StaleVersionError(
            f"{type(obj).__name__} {obj.id} was modified (version {obj.version}, expected {expected})"
        )


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _heuristic_clause(model, company, client_name, event_date, title_column, title):
    legs = []
    if event_date is not None:
        legs.append(model.event_date == event_date)
    if title:
        legs.append(title_column == title)
    # NULL never equals anything in SQL; keep that instead of emitting IS NULL
    if company is None or client_name is None or not legs:
        return None
    return and_(model.company == company, model.client_name == client_name, or_(*legs))


def find_matching_projects(session: Session, deal: Deal, include_linked: bool = True) -> list[Project]:
    conditions = []
    clause = _heuristic_clause(
        Project, deal.company, deal.client_name, deal.event_date, Project.project_name, deal.event_title,
    )
    if clause is not None:
        conditions.append(clause)
    if include_linked and deal.project_id is not None:
        conditions.append(Project.id == deal.project_id)
    if not conditions:
        return []
    return list(session.execute(
        select(Project).where(or_(*conditions)).order_by(Project.id)
    ).scalars().all())


def find_matching_deals(
    session: Session, proj: Project, won_only: bool = True, include_linked: bool = True,
) -> list[Deal]:
    conditions = []
    clause = _heuristic_clause(
        Deal, proj.company, proj.client_name, proj.event_date, Deal.event_title, proj.project_name,
    )
    if clause is not None:
        conditions.append(clause)
    if include_linked and proj.deal_id is not None:
        conditions.append(Deal.id == proj.deal_id)
    if not conditions:
        return []
    query = select(Deal).where(or_(*conditions))
    if won_only:
        query = query.where(Deal.status == "won")
    return list(session.execute(query.order_by(Deal.id)).scalars().all())


# ---------------------------------------------------------------------------
# Deal -> Project
# ---------------------------------------------------------------------------


def apply_deal_finances(deal: Deal, body: DealFinanceUpdate) -> None:
    updates = body.model_dump()
    apply_updates(deal, updates, DEAL_FINANCE_FIELDS)
    if body.notes is not None:
        deal.financial_notes = body.notes
    commission = compute_commission(deal.deal_value, deal.commission_percentage, body.commission_amount)
    if commission is not None:
        deal.commission_amount = commission
    bump_version(deal)


def propagate_deal_to_projects(session: Session, deal: Deal) -> list[Project]:
    """Overwrite the financial fields of every project matching *deal* (caller must commit)."""
    projects = find_matching_projects(session, deal)
    for proj in projects:
        proj.budget = deal.deal_value
        proj.commission_percentage = deal.commission_percentage
        proj.commission_amount = deal.commission_amount
        if deal.commission_amount is not None:
            proj.speaker_fee = round_money(money(deal.deal_value) - deal.commission_amount)
        else:
            proj.speaker_fee = speaker_fee_for(deal.deal_value, effective_commission(None, deal.commission_percentage))
        proj.payment_status = deal.payment_status
        proj.payment_date = deal.payment_date
        proj.financial_notes = deal.financial_notes
        proj.contract_link = deal.contract_link
        proj.invoice_link_1 = deal.invoice_link_1
        proj.invoice_link_2 = deal.invoice_link_2
        bump_version(proj)
    return projects


def update_deal_finances(session: Session, deal: Deal, body: DealFinanceUpdate) -> SyncResult:
    """Commit the deal's new figures, then push them to matching projects."""
    check_version(deal, body.version)
    apply_deal_finances(deal, body)
    session.commit()
    record = deal_summary(deal)

    try:
        projects = propagate_deal_to_projects(session, deal)
        session.commit()
    except Exception as exc:
        session.rollback()
        # rows are expired after rollback; report from the snapshot only
        log.warning("Deal %s updated but project sync failed: %s", record["id"], exc)
        return SyncResult(record, None, "Deal updated but project sync failed")

    log.info("Updated %d related project(s) for deal %s", len(projects), deal.id)
    warning = None if projects else "Deal updated but no matching project was found"
    return SyncResult(record, len(projects), warning)


# ---------------------------------------------------------------------------
# Project -> Deal
# ---------------------------------------------------------------------------


def apply_project_finances(proj: Project, body: ProjectFinanceUpdate) -> None:
    apply_updates(proj, body.model_dump(), PROJECT_FINANCE_FIELDS)
    revenue = proj.actual_revenue or proj.budget
    commission = compute_commission(revenue, proj.commission_percentage, body.commission_amount)
    if commission is not None:
        proj.commission_amount = commission
    bump_version(proj)


def propagate_project_to_deals(session: Session, proj: Project) -> list[Deal]:
    """Overwrite the financial fields of every won deal matching *proj* (caller must commit)."""
    deals = find_matching_deals(session, proj, won_only=True)
    for deal in deals:
        deal.deal_value = proj.budget
        deal.commission_percentage = proj.commission_percentage
        deal.commission_amount = proj.commission_amount
        deal.payment_status = proj.payment_status
        deal.payment_date = proj.payment_date
        deal.financial_notes = proj.financial_notes
        bump_version(deal)
    return deals


def update_project_finances(session: Session, proj: Project, body: ProjectFinanceUpdate) -> SyncResult:
    """Commit the project's new figures, then push them to matching won deals."""
    check_version(proj, body.version)
    apply_project_finances(proj, body)
    session.commit()
    record = project_summary(proj)

    try:
        deals = propagate_project_to_deals(session, proj)
        session.commit()
    except Exception as exc:
        session.rollback()
        log.warning("Project %s updated but deal sync failed: %s", record["id"], exc)
        return SyncResult(record, None, "Project updated but deal sync failed")

    log.info("Updated %d related deal(s) for project %s", len(deals), proj.id)
    warning = None if deals else "Project updated but no matching won deal was found"
    return SyncResult(record, len(deals), warning)


# ---------------------------------------------------------------------------
# Explicit budget sync
# ---------------------------------------------------------------------------


def _set_project_budget(session: Session, proj: Project, budget: float) -> None:
    deal_pct = None
    if proj.deal_id is not None:
        linked = get_entity(session, Deal, proj.deal_id)
        deal_pct = linked.commission_percentage if linked else None
    proj.budget = budget
    proj.speaker_fee = speaker_fee_for(budget, effective_commission(proj.commission_percentage, deal_pct))
    bump_version(proj)


def sync_budget(
    session: Session, *, deal_id: int | None, project_id: int | None, new_budget: float,
) -> tuple[Deal | None, Project | None]:
    """Set a new budget on the named side(s) and push it across.

    Both ids may be given; the deal block then the project block run
    independently, so the second can overwrite what the first propagated.
    Returns the first updated deal and project (either may be None).
    """
    updated_deal: Deal | None = None
    updated_project: Project | None = None

    if deal_id is not None:
        updated_deal = get_entity(session, Deal, deal_id)
        if updated_deal is not None:
            updated_deal.deal_value = new_budget
            bump_version(updated_deal)
            session.commit()
            projects = find_matching_projects(session, updated_deal)
            for proj in projects:
                _set_project_budget(session, proj, new_budget)
            session.commit()
            updated_project = projects[0] if projects else None

    if project_id is not None:
        updated_project = get_entity(session, Project, project_id)
        if updated_project is not None:
            _set_project_budget(session, updated_project, new_budget)
            session.commit()
            deals = find_matching_deals(session, updated_project, won_only=False)
            for deal in deals:
                deal.deal_value = new_budget
                bump_version(deal)
            session.commit()
            updated_deal = deals[0] if deals else None

    return updated_deal, updated_project


def budget_mismatches(session: Session, company: str) -> dict[str, Any]:
    """Compare deal values with matching project budgets for one company."""
    deals = session.execute(
        select(Deal).where(Deal.company == company).order_by(Deal.event_date.desc())
    ).scalars().all()
    projects = session.execute(
        select(Project).where(Project.company == company).order_by(Project.event_date.desc())
    ).scalars().all()

    mismatches = []
    for deal in deals:
        match = next(
            (p for p in projects
             if p.client_name == deal.client_name
             and ((p.event_date is not None and p.event_date == deal.event_date)
                  or (p.project_name and p.project_name == deal.event_title))),
            None,
        )
        if match is not None and match.budget != deal.deal_value:
            mismatches.append({
                "dealId": deal.id,
                "projectId": match.id,
                "dealValue": deal.deal_value,
                "projectBudget": match.budget,
                "difference": round_money(abs(money(deal.deal_value) - money(match.budget))),
            })

    return {
        "company": company,
        "deals": len(deals),
        "projects": len(projects),
        "mismatches": len(mismatches),
        "details": {
            "deals": [deal_summary(d) for d in deals],
            "projects": [project_summary(p) for p in projects],
            "mismatches": mismatches,
        },
    }
