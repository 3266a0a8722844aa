# relief_app/models/case.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String,
    Text,
    DateTime,
    Integer,
    Float,
    Numeric,
    LargeBinary,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    func,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_app.db.base import Base, JSONType
from relief_app.models.enums import CaseStatus


class Case(Base):
    """
    A family's damage claim, tracked from draft through review to funding.

    Mutations go through CaseLifecycle; this class only carries shape and
    a couple of read helpers.
    """
    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Human-readable id: SLA-<year>-<6 digits>
    case_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_email: Mapped[str] = mapped_column(String(256), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CaseStatus.draft.value, index=True
    )

    family_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    # denormalised from family_data for village lookups
    village: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # ─────────── FUNDING ───────────
    total_needed: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_raised: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    donation_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    form_completion: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="family_dashboard")

    # ─────────── TIMESTAMPS ───────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_modified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    fully_funded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # optimistic concurrency counter, bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    uploaded_files: Mapped[List["CaseFile"]] = relationship(
        "CaseFile",
        back_populates="case",
        order_by="CaseFile.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    # ✅ at most ONE active assignment / decision
    assignment: Mapped[Optional["CaseAssignment"]] = relationship(
        "CaseAssignment",
        back_populates="case",
        cascade="all, delete-orphan",
        uselist=False,
    )
    decision: Mapped[Optional["CaseDecision"]] = relationship(
        "CaseDecision",
        back_populates="case",
        cascade="all, delete-orphan",
        uselist=False,
    )

    audit_log: Mapped[List["CaseAuditEntry"]] = relationship(
        "CaseAuditEntry",
        back_populates="case",
        order_by="CaseAuditEntry.seq",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("total_needed >= 0", name="ck_cases_total_needed_nonnegative"),
        CheckConstraint("total_raised >= 0", name="ck_cases_total_raised_nonnegative"),
        CheckConstraint(
            "donation_progress >= 0 AND donation_progress <= 100",
            name="ck_cases_donation_progress_range",
        ),
        Index("ix_cases_user_status", "user_id", "status"),
        Index("ix_cases_village_status", "village", "status"),
        Index("ix_cases_status_created", "status", "created_at"),
    )

    def audit_entries_for(self, action: str) -> List["CaseAuditEntry"]:
        return [e for e in self.audit_log if e.action == action]

    def latest_audit_entry(self) -> Optional["CaseAuditEntry"]:
        return self.audit_log[-1] if self.audit_log else None


class CaseFile(Base):
    __tablename__ = "case_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_pk: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    original_name: Mapped[str] = mapped_column(String(256), nullable=False)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    content: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    case = relationship("Case", back_populates="uploaded_files")


class CaseAssignment(Base):
    __tablename__ = "case_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_pk: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    checker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    case = relationship("Case", back_populates="assignment")


class CaseDecision(Base):
    __tablename__ = "case_decisions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_pk: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    checker_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False)

    # both required iff decision == approved
    final_damage_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)

    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    case = relationship("Case", back_populates="decision")

    __table_args__ = (
        CheckConstraint(
            "decision IN ('approved', 'rejected')", name="ck_case_decisions_decision"
        ),
        CheckConstraint(
            "decision <> 'approved' OR (final_damage_percentage IS NOT NULL AND estimated_cost > 0)",
            name="ck_case_decisions_approval_fields",
        ),
    )
