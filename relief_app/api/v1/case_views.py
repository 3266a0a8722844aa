# relief_app/api/v1/case_views.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import Request

from relief_app.models.audit_log import CaseAuditEntry
from relief_app.models.case import Case, CaseFile
from relief_app.schemas.audit import AuditEntryResponse, AuditLogResponse
from relief_app.schemas.cases import (
    AssignmentOut,
    CaseResponse,
    CaseTimestamps,
    DecisionOut,
    PublicCaseSummary,
    UploadedFileOut,
)
from relief_app.services.audit_service import as_utc


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return as_utc(dt).isoformat() if dt else None


def _money(v) -> Decimal:
    return Decimal(v if v is not None else 0)


def file_out(f: CaseFile) -> UploadedFileOut:
    # file bodies never leave the API
    return UploadedFileOut(
        id=str(f.id),
        name=f.name,
        originalName=f.original_name,
        type=f.content_type,
        size=f.size,
        category=f.category,
        description=f.description,
        uploadDateIso=_iso(f.uploaded_at),
        checksum=f.checksum,
        url=f.url,
    )


def case_out(case: Case) -> CaseResponse:
    a = case.assignment
    d = case.decision
    return CaseResponse(
        caseId=case.case_id,
        status=case.status,
        userId=str(case.user_id),
        familyData=dict(case.family_data or {}),
        uploadedFiles=[file_out(f) for f in case.uploaded_files],
        assignment=(
            AssignmentOut(
                checkerId=str(a.checker_id),
                assignedBy=str(a.assigned_by),
                assignedAtIso=_iso(a.assigned_at),
                notes=a.notes,
            )
            if a
            else None
        ),
        checkerDecision=(
            DecisionOut(
                checkerId=str(d.checker_id),
                decision=d.decision,
                comments=d.comments,
                finalDamagePercentage=d.final_damage_percentage,
                estimatedCost=d.estimated_cost,
                timestampIso=_iso(d.decided_at),
            )
            if d
            else None
        ),
        timestamps=CaseTimestamps(
            createdIso=_iso(case.created_at),
            lastModifiedIso=_iso(case.last_modified),
            submittedIso=_iso(case.submitted_at),
            reviewStartedIso=_iso(case.review_started_at),
            approvedIso=_iso(case.approved_at),
            fullyFundedIso=_iso(case.fully_funded_at),
        ),
        formCompletion=case.form_completion or 0,
        totalNeeded=_money(case.total_needed),
        totalRaised=_money(case.total_raised),
        donationProgress=case.donation_progress or 0,
    )


def public_case_out(case: Case) -> PublicCaseSummary:
    """Donor-facing view: no contact details, no files."""
    fd = case.family_data or {}
    d = case.decision
    return PublicCaseSummary(
        caseId=case.case_id,
        familyName=fd.get("familyName"),
        village=fd.get("village"),
        numberOfMembers=fd.get("numberOfMembers"),
        destructionPercentage=fd.get("destructionPercentage"),
        damageDescription=fd.get("damageDescription"),
        checkerComments=d.comments if d else None,
        finalDamagePercentage=d.final_damage_percentage if d else None,
        totalNeeded=_money(case.total_needed),
        totalRaised=_money(case.total_raised),
        donationProgress=case.donation_progress or 0,
        approvedAtIso=_iso(case.approved_at),
        fullyFundedAtIso=_iso(case.fully_funded_at),
        documentCount=len(case.uploaded_files),
    )


def audit_entry_out(e: CaseAuditEntry) -> AuditEntryResponse:
    return AuditEntryResponse(
        seq=e.seq,
        action=e.action,
        performedBy=str(e.performed_by) if e.performed_by else None,
        performedByRole=e.performed_by_role,
        timestampIso=_iso(e.timestamp),
        details=dict(e.details_json or {}),
        notes=e.notes,
    )


def audit_log_out(case: Case) -> AuditLogResponse:
    return AuditLogResponse(
        caseId=case.case_id,
        status=case.status,
        entries=[audit_entry_out(e) for e in case.audit_log],
    )
