"""Shared business logic for the Bureau API: serialization and deal/project lifecycle."""
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bureau import config
from bureau.models import Deal, Project
from bureau.schemas import DealCreate, DealUpdate, ProjectCreate, ProjectUpdate
from bureau.utils import bump_version, compute_commission, json_parse, money, round_money

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

DEAL_FIELDS = (
    "id", "client_name", "client_email", "client_phone", "company", "event_title",
    "event_date", "event_location", "event_type", "attendee_count", "speaker_requested",
    "status", "priority", "source", "notes", "deal_value", "commission_percentage",
    "commission_amount", "payment_status", "payment_date", "invoice_number",
    "financial_notes", "contract_link", "invoice_link_1", "invoice_link_2",
    "contract_signed_date", "invoice_1_sent_date", "invoice_2_sent_date",
    "won_date", "lost_date", "project_id", "version", "created_at", "updated_at",
)

PROJECT_FIELDS = (
    "id", "project_name", "client_name", "client_email", "company", "event_name",
    "event_date", "status", "priority", "speaker_name", "notes", "budget", "speaker_fee",
    "actual_revenue", "commission_percentage", "commission_amount", "travel_buyout",
    "payment_status", "payment_date", "speaker_payment_status", "speaker_payment_date",
    "invoice_number", "purchase_order_number", "payment_terms", "financial_notes",
    "contract_link", "invoice_link_1", "invoice_link_2", "deal_id", "version",
    "created_at", "updated_at",
)

DEAL_UPDATABLE_FIELDS = (
    "client_name", "client_email", "client_phone", "company", "event_title", "event_date",
    "event_location", "event_type", "attendee_count", "speaker_requested", "status",
    "priority", "source", "notes", "deal_value",
)

PROJECT_UPDATABLE_FIELDS = (
    "project_name", "client_name", "client_email", "company", "event_name", "event_date",
    "status", "priority", "speaker_name", "notes",
)

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _row_dict(obj, fields: tuple[str, ...]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for field in fields:
        value = getattr(obj, field)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[field] = value
    return out


def deal_summary(deal: Deal) -> dict:
    return _row_dict(deal, DEAL_FIELDS)


def project_summary(proj: Project) -> dict:
    base = _row_dict(proj, PROJECT_FIELDS)
    base["stage_completion"] = json_parse(proj.stage_completion_json, {})
    return base


def deal_with_project(session: Session, deal: Deal) -> dict:
    base = deal_summary(deal)
    proj = get_entity(session, Project, deal.project_id) if deal.project_id else None
    base["project"] = None if proj is None else {
        "id": proj.id, "project_name": proj.project_name, "budget": proj.budget,
        "speaker_fee": proj.speaker_fee, "status": proj.status,
    }
    return base


def project_with_deal(session: Session, proj: Project) -> dict:
    base = project_summary(proj)
    deal = get_entity(session, Deal, proj.deal_id) if proj.deal_id else None
    base["deal"] = None if deal is None else {
        "id": deal.id, "deal_value": deal.deal_value,
        "commission_percentage": deal.commission_percentage,
        "commission_amount": deal.commission_amount,
        "payment_status": deal.payment_status,
    }
    return base


# ---------------------------------------------------------------------------
# Lookup and mutation helpers
# ---------------------------------------------------------------------------


def get_entity(session: Session, model, entity_id: int | None):
    """Fetch an ORM object by primary key, or None."""
    if entity_id is None:
        return None
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


def list_deals(session: Session, status: str | None = None) -> list[Deal]:
    query = select(Deal).order_by(Deal.created_at.desc(), Deal.id.desc())
    if status:
        query = query.where(Deal.status.in_([s.strip() for s in status.split(",")]))
    return list(session.execute(query).scalars().all())


def create_deal(session: Session, body: DealCreate) -> Deal:
    """Record an inbound booking request (caller must commit)."""
    deal = Deal(**body.model_dump(), status="new", payment_status="pending")
    session.add(deal)
    return deal


def update_deal(deal: Deal, body: DealUpdate) -> str | None:
    """Apply pipeline edits and stamp won/lost dates. Returns the previous status
    when the status changed, else None (caller must commit).

    Commission edits are stored here too; the amount is recomputed from the
    value and percentage unless a non-zero amount is supplied.
    """
    previous = deal.status
    apply_updates(deal, body.model_dump(), DEAL_UPDATABLE_FIELDS)
    if body.commission_percentage is not None:
        deal.commission_percentage = body.commission_percentage
    if any(v is not None for v in (body.deal_value, body.commission_percentage, body.commission_amount)):
        commission = compute_commission(deal.deal_value, deal.commission_percentage, body.commission_amount)
        if commission is not None:
            deal.commission_amount = commission
    bump_version(deal)
    if deal.status == previous:
        return None
    if deal.status == "won":
        deal.won_date = date.today()
    elif deal.status == "lost":
        deal.lost_date = date.today()
    return previous


def mark_deal_lost(deal: Deal) -> None:
    """Deals are never hard-deleted; deletion closes them as lost."""
    deal.status = "lost"
    deal.lost_date = date.today()
    bump_version(deal)


def create_project_from_deal(session: Session, deal: Deal, body: DealUpdate | None = None) -> Project:
    """Open an engagement for a freshly won deal and link both rows (caller must commit).

    The deal's stored commission is used, falling back to the default rate.
    Deal and project end up with the same percentage and amount; the speaker
    receives the remainder unless the won-deal form names a fee.
    """
    body = body or DealUpdate()
    deal_value = money(deal.deal_value)
    pct = deal.commission_percentage if deal.commission_percentage is not None else config.DEFAULT_COMMISSION_RATE
    amount = compute_commission(deal_value, pct, deal.commission_amount)
    speaker_fee = body.speaker_fee if body.speaker_fee is not None else round_money(deal_value - amount)

    description = (
        f"Event: {deal.event_title}\nLocation: {deal.event_location}\n"
        f"Attendees: {deal.attendee_count}\n\n{deal.notes}"
    )
    proj = Project(
        project_name=deal.event_title, client_name=deal.client_name,
        client_email=deal.client_email, company=deal.company,
        event_name=deal.event_title, event_date=deal.event_date,
        status="invoicing", priority=deal.priority,
        speaker_name=deal.speaker_requested or None, notes=description,
        budget=deal_value, speaker_fee=speaker_fee,
        commission_percentage=pct, commission_amount=amount,
        payment_status="pending", speaker_payment_status="pending",
        deal_id=deal.id,
    )
    session.add(proj)
    session.flush()
    deal.project_id = proj.id
    deal.commission_percentage = pct
    deal.commission_amount = amount
    bump_version(deal)
    log.info("Created project %s from won deal %s", proj.id, deal.id)
    return proj


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def list_projects(session: Session, status: str | None = None) -> list[Project]:
    query = select(Project).order_by(Project.id.desc())
    if status:
        query = query.where(Project.status.in_([s.strip() for s in status.split(",")]))
    return list(session.execute(query).scalars().all())


def create_project(session: Session, body: ProjectCreate) -> Project:
    data = body.model_dump()
    if data.get("payment_status") is None:
        data["payment_status"] = "pending"
    proj = Project(**data, stage_completion_json=json.dumps({}))
    session.add(proj)
    return proj


def update_project(proj: Project, body: ProjectUpdate) -> None:
    apply_updates(proj, body.model_dump(), PROJECT_UPDATABLE_FIELDS)
    bump_version(proj)


def delete_project(session: Session, proj: Project) -> int:
    """Hard-delete a project and unlink any deals that pointed at it.
    Returns the number of deals unlinked (caller must commit)."""
    result = session.execute(
        update(Deal).where(Deal.project_id == proj.id).values(project_id=None, version=Deal.version + 1)
    )
    session.delete(proj)
    return result.rowcount or 0
