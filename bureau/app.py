from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Generator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from bureau import config, fees, finances, reconcile, services, stages, sync
from bureau.auth import require_admin
from bureau.db import get_session, init_db
from bureau.exporter import build_finance_workbook, report_filename
from bureau.models import Deal, Project
from bureau.notifier import notify_deal_status_change
from bureau.schemas import (
    BudgetSyncRequest,
    DealCreate,
    DealFinanceUpdate,
    DealUpdate,
    PaymentInfoUpdate,
    ProjectCreate,
    ProjectFinanceUpdate,
    ProjectUpdate,
    SpeakerFeeMigrationRequest,
    StageTaskUpdate,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Bureau",
    version="0.1.0",
    description=(
        "Back office API for a speaker bureau: deals, engagement projects, and the "
        "best-effort financial sync between them. Admin routes require an admin session token."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Deals", "description": "Sales pipeline records. Inbound creation is public."},
        {"name": "Projects", "description": "Booked engagements and their stage checklists."},
        {"name": "Finances", "description": "Financial edits with cross-table sync, overview and export."},
        {"name": "Sync", "description": "Explicit budget sync, batch reconciliation and status reports."},
        {"name": "Admin", "description": "Maintenance tools such as the speaker-fee migration."},
    ],
)


# ---------------------------------------------------------------------------
# Error responses: every error body is {"error": ..., ["details": ...]}
# ---------------------------------------------------------------------------


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()]
    return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _get_or_404(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = services.get_entity(session, model, entity_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


def _db_failure(session: Session, action: str, exc: Exception) -> HTTPException:
    session.rollback()
    log.error("Failed to %s: %s", action, exc)
    return HTTPException(500, {"error": f"Failed to {action}", "details": str(exc)})


public = APIRouter()
admin = APIRouter(dependencies=[Depends(require_admin)])


@public.get("/", tags=["Admin"], summary="Service banner")
async def root():
    return {"name": "Bureau", "version": app.version}


# ---------------------------------------------------------------------------
# Routes: Deals
# ---------------------------------------------------------------------------


@public.post("/api/deals", status_code=201, tags=["Deals"], summary="Submit an inbound booking request")
async def create_deal(body: DealCreate, session: Session = Depends(db_session)):
    try:
        deal = services.create_deal(session, body)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "create deal", exc) from exc
    log.info("New inbound deal %s from %s", deal.id, deal.client_email)
    return services.deal_summary(deal)


@admin.get("/api/deals", tags=["Deals"], summary="List deals, newest first")
async def list_deals(
    status: str | None = Query(None, description="Comma-separated: new, qualified, proposal, negotiation, won, lost"),
    session: Session = Depends(db_session),
):
    return [services.deal_summary(d) for d in services.list_deals(session, status)]


@admin.get("/api/deals/{deal_id}", tags=["Deals"], summary="Get a deal")
async def get_deal(deal_id: int, session: Session = Depends(db_session)):
    return services.deal_summary(_get_or_404(session, Deal, deal_id, "Deal"))


@admin.put("/api/deals/{deal_id}", tags=["Deals"],
           summary="Edit a deal (partial); winning it opens an engagement project")
async def update_deal(deal_id: int, body: DealUpdate, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    try:
        old_status = services.update_deal(deal, body)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update deal", exc) from exc

    response: dict[str, Any] = {"success": True, "project": None}
    if old_status is not None and deal.status == "won" and deal.project_id is None:
        try:
            proj = services.create_project_from_deal(session, deal, body)
            session.commit()
            response["project"] = services.project_summary(proj)
        except SQLAlchemyError as exc:
            session.rollback()
            log.warning("Deal %s won but project creation failed: %s", deal.id, exc)
            response["warning"] = "Deal updated but project creation failed"

    response["deal"] = services.deal_summary(deal)
    if old_status is not None:
        try:
            await notify_deal_status_change(response["deal"], old_status)
        except Exception as exc:
            log.warning("Slack notification failed for deal %s: %s", deal.id, exc)
    return response


@admin.delete("/api/deals/{deal_id}", tags=["Deals"], summary="Close a deal as lost (deals are never hard-deleted)")
async def delete_deal(deal_id: int, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    try:
        services.mark_deal_lost(deal)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "close deal", exc) from exc
    return {"ok": True, "deal": services.deal_summary(deal)}


# ---------------------------------------------------------------------------
# Routes: Projects
# ---------------------------------------------------------------------------


@admin.get("/api/projects", tags=["Projects"], summary="List projects")
async def list_projects(
    status: str | None = Query(None, description="Comma-separated project statuses"),
    session: Session = Depends(db_session),
):
    return [services.project_summary(p) for p in services.list_projects(session, status)]


@admin.post("/api/projects", status_code=201, tags=["Projects"], summary="Create a project directly")
async def create_project(body: ProjectCreate, session: Session = Depends(db_session)):
    try:
        proj = services.create_project(session, body)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "create project", exc) from exc
    return services.project_summary(proj)


@admin.get("/api/projects/{project_id}", tags=["Projects"], summary="Get a project")
async def get_project(project_id: int, session: Session = Depends(db_session)):
    return services.project_summary(_get_or_404(session, Project, project_id, "Project"))


@admin.put("/api/projects/{project_id}", tags=["Projects"], summary="Edit non-financial project fields (partial)")
async def update_project(project_id: int, body: ProjectUpdate, session: Session = Depends(db_session)):
    proj = _get_or_404(session, Project, project_id, "Project")
    try:
        services.update_project(proj, body)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update project", exc) from exc
    return services.project_summary(proj)


@admin.delete("/api/projects/{project_id}", tags=["Projects"], summary="Hard-delete a project and unlink its deals")
async def delete_project(project_id: int, session: Session = Depends(db_session)):
    proj = _get_or_404(session, Project, project_id, "Project")
    try:
        unlinked = services.delete_project(session, proj)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "delete project", exc) from exc
    return {"ok": True, "dealsUnlinked": unlinked}


@admin.get("/api/projects/{project_id}/stage-completion", tags=["Projects"],
           summary="Get the per-stage task checklist")
async def get_stage_completion(project_id: int, session: Session = Depends(db_session)):
    proj = _get_or_404(session, Project, project_id, "Project")
    summary = services.project_summary(proj)
    return {"project": {k: summary[k] for k in ("id", "project_name", "client_name", "status", "stage_completion")}}


@admin.patch("/api/projects/{project_id}/stage-completion", tags=["Projects"],
             summary="Tick or untick a stage task; completes the stage when all required tasks are done")
async def update_stage_completion(project_id: int, body: StageTaskUpdate, session: Session = Depends(db_session)):
    if not body.stage or not body.task or body.completed is None:
        raise HTTPException(400, "Missing required fields: stage, task, completed")
    proj = _get_or_404(session, Project, project_id, "Project")
    try:
        completion, advanced_to = stages.set_task(proj, body.stage, body.task, body.completed)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update stage completion", exc) from exc
    return {
        "success": True,
        "message": f"Task {'completed' if body.completed else 'unmarked'}",
        "stage_completion": completion,
        "advanced_to": advanced_to,
    }


# ---------------------------------------------------------------------------
# Routes: Finances
# ---------------------------------------------------------------------------


@admin.get("/api/admin/finances", tags=["Finances"], summary="Financial overview of all active projects")
async def get_finances(session: Session = Depends(db_session)):
    return finances.finance_overview(session)


@admin.patch("/api/admin/finances", tags=["Finances"], summary="Update payment tracking on a project")
async def patch_finances(body: PaymentInfoUpdate, session: Session = Depends(db_session)):
    if not body.projectId:
        raise HTTPException(400, "Project ID required")
    proj = _get_or_404(session, Project, body.projectId, "Project")
    try:
        finances.update_payment_info(proj, body)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update payment info", exc) from exc
    return {"success": True, "project": finances.project_finance_row(proj)}


@admin.get("/api/admin/finances/export", tags=["Finances"], summary="Download the financial report as XLSX")
async def export_finances(session: Session = Depends(db_session)):
    content = build_finance_workbook(finances.finance_overview(session))
    return Response(
        content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{report_filename()}"'},
    )


@admin.get("/api/admin/finances/deals/{deal_id}", tags=["Finances"], summary="Deal with its linked project")
async def get_deal_finances(deal_id: int, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    return {"deal": services.deal_with_project(session, deal), "success": True}


@admin.put("/api/admin/finances/deals/{deal_id}", tags=["Finances"],
           summary="Update deal financials and push them to matching projects")
async def update_deal_finances(deal_id: int, body: DealFinanceUpdate, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    try:
        result = sync.update_deal_finances(session, deal, body)
    except sync.StaleVersionError as exc:
        raise HTTPException(409, str(exc)) from exc
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update deal", exc) from exc
    response: dict[str, Any] = {"deal": result.record, "success": True}
    if result.updated is not None:
        response["projectsUpdated"] = result.updated
    if result.warning:
        response["warning"] = result.warning
    return response


@admin.get("/api/admin/finances/projects/{project_id}", tags=["Finances"], summary="Project with its linked deal")
async def get_project_finances(project_id: int, session: Session = Depends(db_session)):
    proj = _get_or_404(session, Project, project_id, "Project")
    return {"project": services.project_with_deal(session, proj), "success": True}


@admin.put("/api/admin/finances/projects/{project_id}", tags=["Finances"],
           summary="Update project financials and push them to matching won deals")
async def update_project_finances(project_id: int, body: ProjectFinanceUpdate, session: Session = Depends(db_session)):
    proj = _get_or_404(session, Project, project_id, "Project")
    try:
        result = sync.update_project_finances(session, proj, body)
    except sync.StaleVersionError as exc:
        raise HTTPException(409, str(exc)) from exc
    except SQLAlchemyError as exc:
        raise _db_failure(session, "update project", exc) from exc
    response: dict[str, Any] = {"project": result.record, "success": True}
    if result.updated is not None:
        response["dealsUpdated"] = result.updated
    if result.warning:
        response["warning"] = result.warning
    return response


# ---------------------------------------------------------------------------
# Routes: Sync
# ---------------------------------------------------------------------------


@admin.post("/api/sync/budget", tags=["Sync"], summary="Set a budget on a deal and/or project and push it across")
async def sync_budget(body: BudgetSyncRequest, session: Session = Depends(db_session)):
    if not body.newBudget or body.newBudget <= 0 or (body.dealId is None and body.projectId is None):
        raise HTTPException(400, "Missing required fields: newBudget and either dealId or projectId")
    try:
        deal, proj = sync.sync_budget(
            session, deal_id=body.dealId, project_id=body.projectId, new_budget=body.newBudget,
        )
    except SQLAlchemyError as exc:
        raise _db_failure(session, "sync budget", exc) from exc
    if deal is None and proj is None:
        raise HTTPException(404, "Deal or project not found")
    log.info("Budget synced to %s from %s", body.newBudget, body.source or "unknown")
    return {
        "success": True,
        "message": "Budget synchronized successfully",
        "updatedDeal": services.deal_summary(deal) if deal else None,
        "updatedProject": services.project_summary(proj) if proj else None,
        "syncedFrom": body.source or "unknown",
    }


@admin.get("/api/sync/budget", tags=["Sync"], summary="Report deal/project budget mismatches for a company")
async def budget_sync_status(company: str | None = Query(None), session: Session = Depends(db_session)):
    if not company:
        raise HTTPException(400, "Company parameter required")
    return sync.budget_mismatches(session, company)


@admin.post("/api/admin/sync-finance", tags=["Sync"], summary="Link won deals and re-derive project finances")
async def run_reconciliation(session: Session = Depends(db_session)):
    try:
        return reconcile.reconcile(session)
    except SQLAlchemyError as exc:
        raise _db_failure(session, "sync finance data", exc) from exc


@admin.get("/api/admin/sync-finance", tags=["Sync"], summary="Per won deal sync status (payment status only)")
async def reconciliation_status(session: Session = Depends(db_session)):
    return reconcile.sync_status(session)


# ---------------------------------------------------------------------------
# Routes: Speaker-fee migration
# ---------------------------------------------------------------------------


@admin.get("/api/admin/migrate-speaker-fees", tags=["Admin"], summary="Preview recalculated speaker fees (dry run)")
async def preview_speaker_fees(
    defaultCommissionRate: float | None = Query(None, ge=0, le=100),
    session: Session = Depends(db_session),
):
    return fees.preview_speaker_fees(session, defaultCommissionRate)


@admin.post("/api/admin/migrate-speaker-fees", tags=["Admin"], summary="Recalculate and store speaker fees")
async def migrate_speaker_fees(body: SpeakerFeeMigrationRequest | None = None, session: Session = Depends(db_session)):
    body = body or SpeakerFeeMigrationRequest()
    try:
        updated = fees.apply_speaker_fees(session, body.projectIds, body.defaultCommissionRate)
        session.commit()
    except SQLAlchemyError as exc:
        raise _db_failure(session, "run migration", exc) from exc
    return {"success": True, "updated_count": len(updated), "projects": updated}


app.include_router(public)
app.include_router(admin)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("bureau.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
