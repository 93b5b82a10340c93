"""Persistence models for contact intake and CRM sync bookkeeping.

Three tables in the "website" schema:
- ContactSubmissionModel: one row per contact form submission, carries sync state
- SyncAttemptModel: append-only audit log of every CRM sync attempt
- FormAnalyticsModel: per-form, per-day counters
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.contact_hub.core.database import WebsiteBase


class ContactSubmissionModel(WebsiteBase):
    """A contact form submission and its CRM sync state.

    sync_status moves unsynced -> synced | sync_failed; hubspot_contact_id
    is filled on the first successful sync.
    """

    __tablename__ = "contact_submissions"
    __table_args__ = (
        Index("idx_contact_email", "email"),
        Index("idx_contact_sync_status", "sync_status"),
        Index("idx_contact_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    use_case: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sync_status: Mapped[str] = mapped_column(
        String(20), default="unsynced", server_default=text("'unsynced'")
    )
    hubspot_contact_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
    last_sync_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SyncAttemptModel(WebsiteBase):
    """Immutable record of one terminal sync outcome."""

    __tablename__ = "crm_sync_log"
    __table_args__ = (
        Index("idx_crm_sync_submission", "submission_id"),
        Index("idx_crm_sync_email", "email"),
        Index("idx_crm_sync_success", "success"),
        Index("idx_crm_sync_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("website.contact_submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_number: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class FormAnalyticsModel(WebsiteBase):
    """Daily submission and sync counters per form."""

    __tablename__ = "form_analytics"
    __table_args__ = (
        UniqueConstraint("form_name", "submission_date", name="uq_form_analytics_form_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_name: Mapped[str] = mapped_column(String(100), nullable=False)
    submission_date: Mapped[date] = mapped_column(
        Date, server_default=func.current_date(), nullable=False
    )
    total_submissions: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    successful_submissions: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0")
    )
    failed_submissions: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    crm_synced_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
