# relief_app/api/v1/cases.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from relief_app.api.v1.case_views import audit_log_out, case_out, client_ip, public_case_out
from relief_app.core.auth_deps import get_current_principal, require_roles
from relief_app.core.errors import LifecycleError, to_http_exception
from relief_app.db.session import get_db
from relief_app.models.enums import UserRole
from relief_app.policies.rbac import Principal
from relief_app.schemas.audit import AuditLogResponse
from relief_app.schemas.cases import (
    CaseCreateRequest,
    CaseListResponse,
    CaseResponse,
    CaseUpdateRequest,
    DonationRequest,
    FileAddRequest,
    FundingSummary,
    PublicCaseListResponse,
)
from relief_app.services.case_service import CaseService

router = APIRouter(prefix="/cases")

family_only = require_roles(UserRole.FAMILY)


def get_case_service() -> CaseService:
    return CaseService()


def _public_resp(result: dict) -> PublicCaseListResponse:
    return PublicCaseListResponse(
        cases=[public_case_out(c) for c in result["cases"]],
        page=result["page"],
        limit=result["limit"],
        total=result["total"],
        pages=result["pages"],
        summary=FundingSummary(**result["summary"]),
    )


# ─────────────────────────────────────────────────────────────
# PUBLIC (donor-facing listings, no auth)
# ─────────────────────────────────────────────────────────────

@router.get("/approved", response_model=PublicCaseListResponse)
async def list_approved_cases(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    village: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: CaseService = Depends(get_case_service),
):
    return _public_resp(svc.list_approved(db, page=page, limit=limit, village=village))


@router.get("/fully-funded", response_model=PublicCaseListResponse)
async def list_fully_funded_cases(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    village: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: CaseService = Depends(get_case_service),
):
    return _public_resp(svc.list_fully_funded(db, page=page, limit=limit, village=village))


# ─────────────────────────────────────────────────────────────
# FAMILY
# ─────────────────────────────────────────────────────────────

@router.post("", response_model=CaseResponse, status_code=201)
async def create_case(
    req: CaseCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.create_case(db, principal, family_data=req.familyData, files=req.uploadedFiles)
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.get("/mine", response_model=CaseListResponse)
async def list_my_cases(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    cases, total = svc.list_my_cases(db, principal, limit=limit, offset=offset)
    return CaseListResponse(cases=[case_out(c) for c in cases], total=total, limit=limit, offset=offset)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.get_case_for_viewer(db, principal, case_id)
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.put("/{case_id}", response_model=CaseResponse)
async def update_case(
    case_id: str,
    req: CaseUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    """Full edit: family data is replaced, not merged."""
    try:
        case = svc.update_case(
            db, principal, case_id, family_data=req.familyData, files=req.uploadedFiles
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.post("/{case_id}/draft", response_model=CaseResponse)
async def save_draft(
    case_id: str,
    req: CaseUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    """Partial save: supplied fields are laid over the stored ones."""
    try:
        case = svc.update_case(
            db, principal, case_id, family_data=req.familyData, files=req.uploadedFiles, merge=True
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.post("/{case_id}/files", response_model=CaseResponse, status_code=201)
async def add_file(
    case_id: str,
    req: FileAddRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.add_file(db, principal, case_id, file=req.file)
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.delete("/{case_id}/files/{file_id}", response_model=CaseResponse)
async def remove_file(
    case_id: str,
    file_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.remove_file(db, principal, case_id, file_id=file_id)
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.post("/{case_id}/submit", response_model=CaseResponse)
async def submit_case(
    case_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.submit_case(db, principal, case_id, ip_address=client_ip(request))
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.delete("/{case_id}", status_code=204)
async def delete_case(
    case_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(family_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        svc.delete_draft(db, principal, case_id)
    except LifecycleError as e:
        raise to_http_exception(e)


# ─────────────────────────────────────────────────────────────
# DONATIONS / AUDIT
# ─────────────────────────────────────────────────────────────

@router.post("/{case_id}/donations", response_model=CaseResponse)
async def record_donation(
    case_id: str,
    req: DonationRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles(UserRole.DONOR, UserRole.ADMIN)),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.record_donation(db, principal, case_id, amount=req.amount, ip_address=client_ip(request))
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.get("/{case_id}/audit", response_model=AuditLogResponse)
async def get_audit_log(
    case_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.get_audit_log(db, principal, case_id)
    except LifecycleError as e:
        raise to_http_exception(e)
    return audit_log_out(case)
