"""Pydantic request schemas for the Bureau API."""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, EmailStr, Field, StrictBool, field_validator

from bureau.models import (
    DEAL_STATUSES,
    PAYMENT_STATUSES,
    PRIORITIES,
    PROJECT_STATUSES,
    SPEAKER_PAYMENT_STATUSES,
)


def _check_choice(value: str | None, choices: tuple[str, ...], label: str) -> str | None:
    if value is not None and value not in choices:
        raise ValueError(f"{label} must be one of: {', '.join(choices)}")
    return value


class _PaymentStatusMixin(BaseModel):
    payment_status: str | None = None

    @field_validator("payment_status")
    @classmethod
    def payment_status_known(cls, v: str | None) -> str | None:
        return _check_choice(v, PAYMENT_STATUSES, "payment_status")


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class DealCreate(BaseModel):
    client_name: str
    client_email: EmailStr
    client_phone: str = ""
    company: str | None = None
    event_title: str
    event_date: date | None = None
    event_location: str = ""
    event_type: str = ""
    attendee_count: int = 0
    speaker_requested: str = ""
    deal_value: float = 0.0
    priority: str = "medium"
    source: str = "website"
    notes: str = ""

    @field_validator("priority")
    @classmethod
    def priority_known(cls, v: str) -> str:
        return _check_choice(v, PRIORITIES, "priority")


class DealUpdate(BaseModel):
    client_name: str | None = None
    client_email: EmailStr | None = None
    client_phone: str | None = None
    company: str | None = None
    event_title: str | None = None
    event_date: date | None = None
    event_location: str | None = None
    event_type: str | None = None
    attendee_count: int | None = None
    speaker_requested: str | None = None
    status: str | None = None
    priority: str | None = None
    source: str | None = None
    notes: str | None = None
    deal_value: float | None = None
    # Only read on a transition into "won"
    commission_percentage: float | None = None
    commission_amount: float | None = None
    speaker_fee: float | None = None

    @field_validator("status")
    @classmethod
    def status_known(cls, v: str | None) -> str | None:
        return _check_choice(v, DEAL_STATUSES, "status")

    @field_validator("priority")
    @classmethod
    def priority_known(cls, v: str | None) -> str | None:
        return _check_choice(v, PRIORITIES, "priority")


class DealFinanceUpdate(_PaymentStatusMixin):
    deal_value: float | None = None
    commission_percentage: float | None = None
    commission_amount: float | None = None
    payment_date: date | None = None
    invoice_number: str | None = None
    notes: str | None = None
    contract_link: str | None = None
    invoice_link_1: str | None = None
    invoice_link_2: str | None = None
    contract_signed_date: date | None = None
    invoice_1_sent_date: date | None = None
    invoice_2_sent_date: date | None = None
    version: int | None = None


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(_PaymentStatusMixin):
    project_name: str
    client_name: str | None = None
    client_email: str | None = None
    company: str | None = None
    event_name: str | None = None
    event_date: date | None = None
    status: str = "invoicing"
    priority: str = "medium"
    speaker_name: str | None = None
    notes: str = ""
    budget: float = 0.0
    speaker_fee: float | None = None
    commission_percentage: float | None = None
    commission_amount: float | None = None
    travel_buyout: float | None = None
    deal_id: int | None = None

    @field_validator("status")
    @classmethod
    def status_known(cls, v: str) -> str:
        return _check_choice(v, PROJECT_STATUSES, "status")


class ProjectUpdate(BaseModel):
    project_name: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    company: str | None = None
    event_name: str | None = None
    event_date: date | None = None
    status: str | None = None
    priority: str | None = None
    speaker_name: str | None = None
    notes: str | None = None

    @field_validator("status")
    @classmethod
    def status_known(cls, v: str | None) -> str | None:
        return _check_choice(v, PROJECT_STATUSES, "status")


class ProjectFinanceUpdate(_PaymentStatusMixin):
    budget: float | None = None
    speaker_fee: float | None = None
    actual_revenue: float | None = None
    commission_percentage: float | None = None
    commission_amount: float | None = None
    payment_date: date | None = None
    financial_notes: str | None = None
    version: int | None = None


class PaymentInfoUpdate(_PaymentStatusMixin):
    projectId: int | None = None
    payment_date: date | None = None
    speaker_payment_status: str | None = None
    speaker_payment_date: date | None = None
    travel_buyout: float | None = None
    invoice_number: str | None = None
    purchase_order_number: str | None = None

    @field_validator("speaker_payment_status")
    @classmethod
    def speaker_payment_status_known(cls, v: str | None) -> str | None:
        return _check_choice(v, SPEAKER_PAYMENT_STATUSES, "speaker_payment_status")


class StageTaskUpdate(BaseModel):
    stage: str | None = None
    task: str | None = None
    completed: StrictBool | None = None


# ---------------------------------------------------------------------------
# Sync / migration
# ---------------------------------------------------------------------------


class BudgetSyncRequest(BaseModel):
    dealId: int | None = None
    projectId: int | None = None
    newBudget: float | None = None
    source: str | None = None


class SpeakerFeeMigrationRequest(BaseModel):
    projectIds: list[int] | None = None
    defaultCommissionRate: float | None = Field(None, ge=0, le=100)
