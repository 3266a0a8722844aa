# relief_app/models/audit_log.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Text, DateTime, Integer, ForeignKey, Index, UniqueConstraint, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from relief_app.db.base import Base, JSONType


class CaseAuditEntry(Base):
    """
    One entry per state-changing action on a case.
    - Append-only (never UPDATE); the ORM listener below and a DB trigger
      (migration 0001) both reject updates.
    - `seq` orders entries within a case; timestamps are monotonic along seq.
    - `details_json` holds the action-specific payload (see schemas.audit).
    """
    __tablename__ = "case_audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_pk: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    action: Mapped[str] = mapped_column(String(32), nullable=False)

    # None when the system performed the action (e.g. funding auto-transition)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    performed_by_role: Mapped[str] = mapped_column(String(16), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    details_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    case = relationship("Case", back_populates="audit_log")

    __table_args__ = (
        UniqueConstraint("case_pk", "seq", name="uq_case_audit_case_seq"),
        Index("ix_case_audit_action", "action"),
        Index("ix_case_audit_timestamp", "timestamp"),
    )


@event.listens_for(CaseAuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise RuntimeError("Case audit entries are append-only.")
