"""Integration tests for the FastAPI endpoints.

Uses TestClient against an in-memory database to verify HTTP-level behavior:
auth guard, status codes, response shapes and the cross-table sync.
"""
from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bureau import config
from bureau.models import Base, Deal, Project

ADMIN_ROUTES = [
    ("get", "/api/deals"),
    ("get", "/api/deals/1"),
    ("put", "/api/deals/1"),
    ("delete", "/api/deals/1"),
    ("get", "/api/projects"),
    ("post", "/api/projects"),
    ("get", "/api/projects/1"),
    ("put", "/api/projects/1"),
    ("delete", "/api/projects/1"),
    ("get", "/api/projects/1/stage-completion"),
    ("patch", "/api/projects/1/stage-completion"),
    ("get", "/api/admin/finances"),
    ("patch", "/api/admin/finances"),
    ("get", "/api/admin/finances/export"),
    ("get", "/api/admin/finances/deals/1"),
    ("put", "/api/admin/finances/deals/1"),
    ("get", "/api/admin/finances/projects/1"),
    ("put", "/api/admin/finances/projects/1"),
    ("post", "/api/sync/budget"),
    ("get", "/api/sync/budget"),
    ("post", "/api/admin/sync-finance"),
    ("get", "/api/admin/sync-finance"),
    ("get", "/api/admin/migrate-speaker-fees"),
    ("post", "/api/admin/migrate-speaker-fees"),
]


def make_token(role: str = "admin", expires_in: timedelta = timedelta(hours=1)) -> str:
    claims = {"sub": "ops@bureau.example.com", "role": role, "exp": datetime.now(UTC) + expires_in}
    return jwt.encode(claims, config.ADMIN_JWT_SECRET, algorithm=config.ADMIN_JWT_ALGORITHM)


@pytest.fixture()
def test_db():
    """In-memory SQLite shared across connections via StaticPool."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine, TestSession


@pytest.fixture()
def client(test_db):
    """Unauthenticated TestClient using the in-memory database."""
    engine, TestSession = test_db
    from bureau.app import app, db_session

    def override_db_session():
        session = TestSession()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[db_session] = override_db_session
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c, TestSession
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(client):
    c, TestSession = client
    c.headers["Authorization"] = f"Bearer {make_token()}"
    return c, TestSession


@pytest.fixture()
def seeded_client(admin_client):
    """Admin client with a won deal and a heuristically matching project (not linked)."""
    c, TestSession = admin_client
    session = TestSession()
    deal = Deal(
        client_name="Ada Lovelace", client_email="ada@acme.example.com", company="Acme",
        event_title="AI Keynote", event_date=date(2026, 5, 1), status="won",
        deal_value=10000.0, commission_percentage=20.0, commission_amount=2000.0,
        payment_status="pending",
    )
    proj = Project(
        project_name="Acme Summit", client_name="Ada Lovelace", client_email="ada@acme.example.com",
        company="Acme", event_date=date(2026, 5, 1), status="invoicing",
        budget=10000.0, speaker_fee=8000.0, payment_status="pending",
    )
    session.add_all([deal, proj])
    session.commit()
    ids = deal.id, proj.id
    session.close()
    return c, TestSession, ids


class TestAuthGuard:
    @pytest.mark.parametrize("method,path", ADMIN_ROUTES)
    def test_admin_route_requires_token(self, client, method, path):
        c, _ = client
        resp = c.request(method.upper(), path)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required", "code": "NO_TOKEN"}

    def test_garbage_token_rejected(self, client):
        c, _ = client
        resp = c.get("/api/deals", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    def test_expired_token_rejected(self, client):
        c, _ = client
        token = make_token(expires_in=timedelta(hours=-1))
        resp = c.get("/api/deals", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    def test_non_admin_role_rejected(self, client):
        c, _ = client
        resp = c.get("/api/deals", headers={"Authorization": f"Bearer {make_token(role='viewer')}"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired token", "code": "INVALID_TOKEN"}

    def test_cookie_token_accepted(self, client):
        c, _ = client
        resp = c.get("/api/deals", headers={"Cookie": f"{config.ADMIN_COOKIE_NAME}={make_token()}"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_public_routes_need_no_token(self, client):
        c, _ = client
        assert c.get("/").status_code == 200
        resp = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com", "event_title": "Compilers Talk",
        })
        assert resp.status_code == 201


class TestDealEndpoints:
    def test_create_deal_defaults(self, client):
        c, _ = client
        resp = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com",
            "event_title": "Compilers Talk", "deal_value": 5000,
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "new"
        assert data["payment_status"] == "pending"
        assert data["version"] == 1

    def test_create_deal_invalid_email(self, client):
        c, _ = client
        resp = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "not-an-email", "event_title": "Talk",
        })
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"
        assert resp.json()["details"]

    def test_create_deal_missing_title(self, client):
        c, _ = client
        resp = c.post("/api/deals", json={"client_name": "Grace", "client_email": "grace@navy.example.com"})
        assert resp.status_code == 400

    def test_get_deal_404(self, admin_client):
        c, _ = admin_client
        resp = c.get("/api/deals/9999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Deal not found"}

    def test_non_numeric_id_is_400(self, admin_client):
        c, _ = admin_client
        assert c.get("/api/deals/abc").status_code == 400
        assert c.put("/api/admin/finances/deals/abc", json={}).status_code == 400

    def test_list_deals_status_filter(self, seeded_client):
        c, _, _ = seeded_client
        c.post("/api/deals", json={"client_name": "B", "client_email": "b@x.example.com", "event_title": "T"})
        assert len(c.get("/api/deals").json()) == 2
        won = c.get("/api/deals", params={"status": "won"}).json()
        assert [d["status"] for d in won] == ["won"]
        assert len(c.get("/api/deals", params={"status": "new,won"}).json()) == 2

    def test_winning_a_deal_creates_linked_project(self, admin_client):
        c, TestSession = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com", "company": "Navy",
            "event_title": "Compilers Talk", "deal_value": 10000,
        }).json()["id"]

        notify = AsyncMock(return_value=True)
        with patch("bureau.app.notify_deal_status_change", new=notify):
            resp = c.put(f"/api/deals/{deal_id}", json={"status": "won"})
        assert resp.status_code == 200
        data = resp.json()
        project = data["project"]
        assert project["status"] == "invoicing"
        assert project["budget"] == 10000
        assert project["commission_percentage"] == 20
        assert project["commission_amount"] == 2000
        assert project["speaker_fee"] == 8000
        assert project["deal_id"] == deal_id
        assert data["deal"]["project_id"] == project["id"]
        assert data["deal"]["won_date"] == date.today().isoformat()
        notify.assert_awaited_once()
        assert notify.await_args.args[1] == "new"

    def test_status_change_survives_slack_failure(self, admin_client):
        c, _ = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com", "event_title": "Talk",
        }).json()["id"]
        with patch("bureau.app.notify_deal_status_change", new=AsyncMock(side_effect=RuntimeError("slack down"))):
            resp = c.put(f"/api/deals/{deal_id}", json={"status": "qualified"})
        assert resp.status_code == 200
        assert resp.json()["deal"]["status"] == "qualified"
        assert resp.json()["project"] is None

    def test_edit_without_status_change_does_not_notify(self, admin_client):
        c, _ = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com", "event_title": "Talk",
        }).json()["id"]
        notify = AsyncMock(return_value=True)
        with patch("bureau.app.notify_deal_status_change", new=notify):
            resp = c.put(f"/api/deals/{deal_id}", json={"notes": "called back"})
        assert resp.json()["deal"]["notes"] == "called back"
        notify.assert_not_awaited()

    def test_invalid_status_is_400(self, admin_client):
        c, _ = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com", "event_title": "Talk",
        }).json()["id"]
        assert c.put(f"/api/deals/{deal_id}", json={"status": "maybe"}).status_code == 400

    def test_delete_deal_marks_lost(self, seeded_client):
        c, TestSession, (deal_id, _) = seeded_client
        resp = c.delete(f"/api/deals/{deal_id}")
        assert resp.status_code == 200
        assert resp.json()["deal"]["status"] == "lost"
        session = TestSession()
        assert session.get(Deal, deal_id) is not None
        session.close()


    def test_commission_edit_recomputes_amount(self, seeded_client):
        c, _, (deal_id, _) = seeded_client
        resp = c.put(f"/api/deals/{deal_id}", json={"commission_percentage": 15})
        assert resp.status_code == 200
        deal = resp.json()["deal"]
        assert deal["commission_percentage"] == 15
        assert deal["commission_amount"] == 1500

    def test_value_edit_keeps_commission_in_step(self, seeded_client):
        c, _, (deal_id, _) = seeded_client
        deal = c.put(f"/api/deals/{deal_id}", json={"deal_value": 12345.67}).json()["deal"]
        assert deal["commission_amount"] == round(12345.67 * 20 / 100, 2)

    def test_won_project_shares_deal_commission(self, admin_client):
        c, _ = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Grace", "client_email": "grace@navy.example.com",
            "event_title": "Compilers Talk", "deal_value": 10000,
        }).json()["id"]
        c.put(f"/api/deals/{deal_id}", json={"commission_percentage": 30})
        with patch("bureau.app.notify_deal_status_change", new=AsyncMock(return_value=True)):
            data = c.put(f"/api/deals/{deal_id}", json={"status": "won"}).json()
        deal, project = data["deal"], data["project"]
        assert deal["commission_percentage"] == project["commission_percentage"] == 30
        assert deal["commission_amount"] == project["commission_amount"] == 3000
        assert project["speaker_fee"] == 7000

    def test_pipeline_edit_invalidates_stale_finance_version(self, seeded_client):
        c, _, (deal_id, _) = seeded_client
        edited = c.put(f"/api/deals/{deal_id}", json={"deal_value": 99999}).json()["deal"]
        assert edited["version"] == 2
        stale = c.put(f"/api/admin/finances/deals/{deal_id}", json={"deal_value": 1, "version": 1})
        assert stale.status_code == 409
        assert c.get(f"/api/deals/{deal_id}").json()["deal_value"] == 99999

    def test_closing_a_deal_bumps_version(self, seeded_client):
        c, _, (deal_id, _) = seeded_client
        assert c.delete(f"/api/deals/{deal_id}").json()["deal"]["version"] == 2


class TestProjectEndpoints:
    def test_create_and_update_project(self, admin_client):
        c, _ = admin_client
        resp = c.post("/api/projects", json={"project_name": "Offsite", "budget": 4000})
        assert resp.status_code == 201
        proj = resp.json()
        assert proj["status"] == "invoicing"
        assert proj["payment_status"] == "pending"
        assert proj["stage_completion"] == {}

        resp = c.put(f"/api/projects/{proj['id']}", json={"speaker_name": "Dr. Hopper"})
        assert resp.status_code == 200
        assert resp.json()["speaker_name"] == "Dr. Hopper"
        assert resp.json()["budget"] == 4000

    def test_delete_project_unlinks_deals(self, seeded_client):
        c, TestSession, (deal_id, project_id) = seeded_client
        session = TestSession()
        session.get(Deal, deal_id).project_id = project_id
        session.commit()
        session.close()

        resp = c.delete(f"/api/projects/{project_id}")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "dealsUnlinked": 1}
        assert c.get(f"/api/projects/{project_id}").status_code == 404
        assert c.get(f"/api/deals/{deal_id}").json()["project_id"] is None

    def test_stage_completion_missing_fields(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        resp = c.patch(f"/api/projects/{project_id}/stage-completion", json={"stage": "invoicing"})
        assert resp.status_code == 400

    def test_stage_completion_advances_when_done(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        tasks = ["initial_invoice_sent", "final_invoice_sent", "kickoff_meeting_planned", "project_setup_complete"]
        for task in tasks[:-1]:
            resp = c.patch(f"/api/projects/{project_id}/stage-completion",
                           json={"stage": "invoicing", "task": task, "completed": True})
            assert resp.json()["advanced_to"] is None
        resp = c.patch(f"/api/projects/{project_id}/stage-completion",
                       json={"stage": "invoicing", "task": tasks[-1], "completed": True})
        assert resp.status_code == 200
        assert resp.json()["advanced_to"] == "logistics_planning"

        got = c.get(f"/api/projects/{project_id}/stage-completion").json()["project"]
        assert got["status"] == "logistics_planning"
        assert all(got["stage_completion"]["invoicing"][t] for t in tasks)


    def test_project_edits_bump_version(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        assert c.put(f"/api/projects/{project_id}", json={"notes": "green room booked"}).json()["version"] == 2
        c.patch(f"/api/projects/{project_id}/stage-completion",
                json={"stage": "invoicing", "task": "initial_invoice_sent", "completed": True})
        assert c.get(f"/api/projects/{project_id}").json()["version"] == 3


class TestFinanceSync:
    def test_deal_update_propagates_to_matching_project(self, seeded_client):
        c, _, (deal_id, project_id) = seeded_client
        resp = c.put(f"/api/admin/finances/deals/{deal_id}",
                     json={"deal_value": 12000, "commission_percentage": 25, "notes": "net 30"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["projectsUpdated"] == 1
        assert "warning" not in data
        assert data["deal"]["commission_amount"] == 3000
        assert data["deal"]["financial_notes"] == "net 30"

        proj = c.get(f"/api/projects/{project_id}").json()
        assert proj["budget"] == 12000
        assert proj["commission_amount"] == 3000
        assert proj["speaker_fee"] == 9000
        assert proj["financial_notes"] == "net 30"

    def test_deal_update_without_match_warns(self, admin_client):
        c, _ = admin_client
        deal_id = c.post("/api/deals", json={
            "client_name": "Solo", "client_email": "solo@x.example.com", "event_title": "Alone",
        }).json()["id"]
        resp = c.put(f"/api/admin/finances/deals/{deal_id}", json={"deal_value": 500})
        assert resp.status_code == 200
        assert resp.json()["projectsUpdated"] == 0
        assert resp.json()["warning"]

    def test_deal_update_404(self, admin_client):
        c, _ = admin_client
        assert c.put("/api/admin/finances/deals/9999", json={"deal_value": 1}).status_code == 404

    def test_propagation_failure_keeps_primary(self, seeded_client):
        c, _, (deal_id, project_id) = seeded_client
        with patch("bureau.sync.propagate_deal_to_projects", side_effect=RuntimeError("boom")):
            resp = c.put(f"/api/admin/finances/deals/{deal_id}", json={"deal_value": 15000})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["warning"] == "Deal updated but project sync failed"
        assert "projectsUpdated" not in data
        assert data["deal"]["deal_value"] == 15000
        assert c.get(f"/api/deals/{deal_id}").json()["deal_value"] == 15000
        assert c.get(f"/api/projects/{project_id}").json()["budget"] == 10000

    def test_stale_version_is_409(self, seeded_client):
        c, _, (deal_id, _) = seeded_client
        resp = c.put(f"/api/admin/finances/deals/{deal_id}", json={"deal_value": 1, "version": 7})
        assert resp.status_code == 409
        assert "error" in resp.json()
        ok = c.put(f"/api/admin/finances/deals/{deal_id}", json={"deal_value": 11000, "version": 1})
        assert ok.status_code == 200
        assert ok.json()["deal"]["version"] == 2

    def test_project_update_propagates_to_won_deals_only(self, seeded_client):
        c, TestSession, (deal_id, project_id) = seeded_client
        session = TestSession()
        open_deal = Deal(
            client_name="Ada Lovelace", client_email="ada@acme.example.com", company="Acme",
            event_title="Acme Summit", status="proposal", deal_value=1.0,
        )
        session.add(open_deal)
        session.commit()
        open_id = open_deal.id
        session.close()

        resp = c.put(f"/api/admin/finances/projects/{project_id}",
                     json={"budget": 20000, "commission_percentage": 10, "payment_status": "paid"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["dealsUpdated"] == 1
        assert data["project"]["commission_amount"] == 2000

        won = c.get(f"/api/deals/{deal_id}").json()
        assert won["deal_value"] == 20000
        assert won["payment_status"] == "paid"
        assert c.get(f"/api/deals/{open_id}").json()["deal_value"] == 1.0

    def test_finance_detail_views(self, seeded_client):
        c, _, (deal_id, project_id) = seeded_client
        deal = c.get(f"/api/admin/finances/deals/{deal_id}").json()["deal"]
        assert deal["project"] is None
        proj = c.get(f"/api/admin/finances/projects/{project_id}").json()["project"]
        assert proj["deal"] is None


    def test_project_propagation_failure_keeps_primary(self, seeded_client):
        c, _, (deal_id, project_id) = seeded_client
        with patch("bureau.sync.propagate_project_to_deals", side_effect=RuntimeError("boom")):
            resp = c.put(f"/api/admin/finances/projects/{project_id}", json={"budget": 18000})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["warning"] == "Project updated but deal sync failed"
        assert "dealsUpdated" not in data
        assert data["project"]["budget"] == 18000
        assert c.get(f"/api/projects/{project_id}").json()["budget"] == 18000
        assert c.get(f"/api/deals/{deal_id}").json()["deal_value"] == 10000


class TestBudgetSync:
    def test_requires_budget_and_an_id(self, admin_client):
        c, _ = admin_client
        assert c.post("/api/sync/budget", json={"dealId": 1}).status_code == 400
        assert c.post("/api/sync/budget", json={"newBudget": 100}).status_code == 400
        assert c.post("/api/sync/budget", json={"dealId": 1, "newBudget": -5}).status_code == 400

    def test_unknown_ids_404(self, admin_client):
        c, _ = admin_client
        resp = c.post("/api/sync/budget", json={"dealId": 999, "newBudget": 100})
        assert resp.status_code == 404

    @pytest.mark.parametrize("project_name,event_date", [
        ("Acme Summit", date(2026, 5, 1)),
        ("AI Keynote", date(2026, 6, 1)),
    ], ids=["same-date", "same-title"])
    def test_budget_sync_on_deal_42(self, admin_client, project_name, event_date):
        c, TestSession = admin_client
        session = TestSession()
        session.add_all([
            Deal(id=42, client_name="Ada Lovelace", client_email="ada@acme.example.com", company="Acme",
                 event_title="AI Keynote", event_date=date(2026, 5, 1), status="won", deal_value=25000.0),
            Project(project_name=project_name, client_name="Ada Lovelace", company="Acme",
                    event_date=event_date, budget=25000.0, commission_percentage=20.0),
        ])
        session.commit()
        session.close()

        resp = c.post("/api/sync/budget", json={"dealId": 42, "newBudget": 30000, "source": "deals"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["updatedDeal"]["deal_value"] == 30000
        assert data["updatedProject"]["budget"] == 30000
        assert data["updatedProject"]["speaker_fee"] == 24000
        assert data["syncedFrom"] == "deals"

    def test_synced_from_defaults_to_unknown(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        resp = c.post("/api/sync/budget", json={"projectId": project_id, "newBudget": 9000})
        assert resp.status_code == 200
        assert resp.json()["syncedFrom"] == "unknown"
        assert resp.json()["updatedDeal"]["deal_value"] == 9000

    def test_mismatch_report(self, seeded_client):
        c, _, _ = seeded_client
        assert c.get("/api/sync/budget").status_code == 400
        resp = c.get("/api/sync/budget", params={"company": "Acme"})
        assert resp.status_code == 200
        assert resp.json()["mismatches"] == 0


class TestFinanceOverview:
    def test_overview_and_payment_patch(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        assert c.patch("/api/admin/finances", json={"payment_status": "paid"}).status_code == 400

        resp = c.patch("/api/admin/finances", json={
            "projectId": project_id, "payment_status": "paid", "travel_buyout": 500,
        })
        assert resp.status_code == 200
        row = resp.json()["project"]
        assert row["total_to_collect"] == 10500
        assert row["speaker_payout"] == 8500

        overview = c.get("/api/admin/finances").json()
        assert overview["success"] is True
        assert overview["summary"]["total_projects"] == 1
        assert overview["summary"]["amount_collected"] == 10500
        assert overview["summary"]["net_commission_realized"] == 2000

    def test_bad_payment_status_is_400(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        resp = c.patch("/api/admin/finances", json={"projectId": project_id, "payment_status": "settled"})
        assert resp.status_code == 400

    def test_export_is_xlsx_attachment(self, seeded_client):
        c, _, _ = seeded_client
        resp = c.get("/api/admin/finances/export")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "financial-report-" in resp.headers["content-disposition"]
        assert resp.content[:2] == b"PK"


class TestReconciliationEndpoints:
    def test_run_and_report(self, seeded_client):
        c, TestSession, (deal_id, project_id) = seeded_client
        before = c.get("/api/admin/sync-finance").json()
        assert before["summary"] == {"totalDeals": 1, "linked": 0, "synced": 0, "outOfSync": 0, "unlinked": 1}

        resp = c.post("/api/admin/sync-finance")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["projectsUpdated"] == 1
        assert data["summary"]["linked_projects"] == 1

        after = c.get("/api/admin/sync-finance").json()
        assert after["status"][0]["project_id"] == project_id
        assert after["status"][0]["sync_status"] == "Synced"

    def test_failed_aggregation_keeps_links(self, seeded_client):
        c, _, (deal_id, project_id) = seeded_client
        failure = OperationalError("UPDATE projects", {}, Exception("disk I/O error"))
        with patch("bureau.reconcile.sync_project_finances", side_effect=failure):
            resp = c.post("/api/admin/sync-finance")
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Failed to sync finance data"
        assert "disk I/O error" in body["details"]
        assert c.get(f"/api/deals/{deal_id}").json()["project_id"] == project_id


class TestSpeakerFeeMigration:
    def test_preview_then_apply(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        c.put(f"/api/admin/finances/projects/{project_id}", json={"speaker_fee": 1})

        preview = c.get("/api/admin/migrate-speaker-fees").json()
        assert preview["preview"] is True
        assert preview["summary"]["projects_needing_update"] == 1
        assert preview["projects"][0]["calculated_speaker_fee"] == 8000

        resp = c.post("/api/admin/migrate-speaker-fees", json={})
        assert resp.status_code == 200
        assert resp.json()["updated_count"] == 1
        assert resp.json()["projects"][0]["new_speaker_fee"] == 8000

    def test_post_without_body(self, seeded_client):
        c, _, _ = seeded_client
        resp = c.post("/api/admin/migrate-speaker-fees")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_rate_out_of_range_is_400(self, seeded_client):
        c, _, (_, project_id) = seeded_client
        resp = c.post("/api/admin/migrate-speaker-fees", json={"defaultCommissionRate": 150})
        assert resp.status_code == 400
        assert c.get("/api/admin/migrate-speaker-fees", params={"defaultCommissionRate": -1}).status_code == 400
        assert c.get(f"/api/projects/{project_id}").json()["speaker_fee"] == 8000
