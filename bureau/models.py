from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEAL_STATUSES = ("new", "qualified", "proposal", "negotiation", "won", "lost")
PRIORITIES = ("low", "medium", "high", "urgent")
PAYMENT_STATUSES = ("pending", "partial", "paid")
SPEAKER_PAYMENT_STATUSES = ("pending", "paid")
PROJECT_STAGES = ("invoicing", "logistics_planning", "pre_event", "event_week", "follow_up", "completed")
PROJECT_STATUSES = (*PROJECT_STAGES, "cancelled")


class Base(DeclarativeBase):
    pass


class Deal(Base):
    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_email: Mapped[str] = mapped_column(String(300), nullable=False)
    client_phone: Mapped[str] = mapped_column(String(50), default="")
    company: Mapped[str | None] = mapped_column(String(300), nullable=True)
    event_title: Mapped[str] = mapped_column(String(300), nullable=False)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    event_location: Mapped[str] = mapped_column(String(300), default="")
    event_type: Mapped[str] = mapped_column(String(50), default="")
    attendee_count: Mapped[int] = mapped_column(Integer, default=0)
    speaker_requested: Mapped[str] = mapped_column(String(200), default="")
    status: Mapped[str] = mapped_column(String(30), default="new")  # new | qualified | proposal | negotiation | won | lost
    priority: Mapped[str] = mapped_column(String(20), default="medium")
    source: Mapped[str] = mapped_column(String(100), default="")
    notes: Mapped[str] = mapped_column(Text, default="")

    # Financials
    deal_value: Mapped[float] = mapped_column(Float, default=0.0)
    commission_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    commission_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), default="pending")  # pending | partial | paid
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    financial_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    contract_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    invoice_link_1: Mapped[str | None] = mapped_column(String(500), nullable=True)
    invoice_link_2: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contract_signed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_1_sent_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_2_sent_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    won_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    lost_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Not a DB-level foreign key: project deletes unlink explicitly
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_name: Mapped[str] = mapped_column(String(300), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(300), nullable=True)
    company: Mapped[str | None] = mapped_column(String(300), nullable=True)
    event_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="invoicing")
    priority: Mapped[str] = mapped_column(String(20), default="medium")
    speaker_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")

    # Financials
    budget: Mapped[float] = mapped_column(Float, default=0.0)
    speaker_fee: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_revenue: Mapped[float | None] = mapped_column(Float, nullable=True)
    commission_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    commission_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    travel_buyout: Mapped[float | None] = mapped_column(Float, nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), default="pending")
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    speaker_payment_status: Mapped[str | None] = mapped_column(String(20), default="pending")
    speaker_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    purchase_order_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(200), nullable=True)
    financial_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    contract_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    invoice_link_1: Mapped[str | None] = mapped_column(String(500), nullable=True)
    invoice_link_2: Mapped[str | None] = mapped_column(String(500), nullable=True)

    stage_completion_json: Mapped[str] = mapped_column(Text, default="{}")
    deal_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
