from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from relief_app.models.audit_log import CaseAuditEntry
from relief_app.models.case import Case
from relief_app.models.enums import AuditAction
from relief_app.schemas.audit import parse_audit_details


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; treat them as UTC
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def append_audit_entry(
    case: Case,
    *,
    action: AuditAction,
    performed_by: Optional[uuid.UUID],
    performed_by_role: str,
    details: Union[BaseModel, Dict[str, Any]],
    timestamp: datetime,
    notes: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> CaseAuditEntry:
    """
    Append-only audit insert on the case's in-memory log.

    - details are validated against the variant registered for `action`
    - timestamp never goes backwards relative to the previous entry
    - prior entries are never touched
    """
    raw = details.model_dump(mode="json") if isinstance(details, BaseModel) else dict(details)
    if raw.get("action", action.value) != action.value:
        raise ValueError(
            f"Audit details for {raw.get('action')} cannot be recorded as {action.value}."
        )
    raw["action"] = action.value
    payload = parse_audit_details(raw).model_dump(mode="json")

    last = case.latest_audit_entry()
    ts = as_utc(timestamp)
    if last is not None and as_utc(last.timestamp) > ts:
        ts = as_utc(last.timestamp)

    entry = CaseAuditEntry(
        id=uuid.uuid4(),
        seq=len(case.audit_log) + 1,
        action=action.value,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        timestamp=ts,
        details_json=payload,
        notes=notes or None,
        ip_address=ip_address,
    )
    case.audit_log.append(entry)
    return entry
