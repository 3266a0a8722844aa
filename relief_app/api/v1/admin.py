# relief_app/api/v1/admin.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from relief_app.api.v1.auth import get_user_service
from relief_app.api.v1.case_views import case_out, client_ip
from relief_app.api.v1.cases import get_case_service
from relief_app.core.auth_deps import require_roles
from relief_app.core.errors import LifecycleError, to_http_exception
from relief_app.db.session import get_db
from relief_app.models.enums import UserRole
from relief_app.policies.rbac import Principal
from relief_app.schemas.cases import AssignRequest, CaseResponse, DecisionRequest
from relief_app.schemas.stats import OverviewStats
from relief_app.schemas.users import (
    CheckerCreateRequest,
    CheckerStatusRequest,
    UserListResponse,
    UserResponse,
)
from relief_app.services.case_service import CaseService
from relief_app.services.stats_service import StatsService
from relief_app.services.user_service import UserService

router = APIRouter(prefix="/admin")

admin_only = require_roles(UserRole.ADMIN)


# ─────────────────────────────────────────────────────────────
# CASE ASSIGNMENT / DECISION
# ─────────────────────────────────────────────────────────────

@router.post("/cases/{case_id}/assign", response_model=CaseResponse)
async def assign_case(
    case_id: str,
    req: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.assign_case(
            db, principal, case_id, checker_id=req.checkerId, notes=req.notes, ip_address=client_ip(request)
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.post("/cases/{case_id}/reassign", response_model=CaseResponse)
async def reassign_case(
    case_id: str,
    req: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.reassign_case(
            db, principal, case_id, checker_id=req.checkerId, notes=req.notes, ip_address=client_ip(request)
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


@router.post("/cases/{case_id}/decision", response_model=CaseResponse)
async def decide_case(
    case_id: str,
    req: DecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.decide_case(
            db,
            principal,
            case_id,
            decision=req.decision,
            comments=req.comments,
            final_damage_percentage=req.finalDamagePercentage,
            estimated_cost=req.estimatedCost,
            field_notes=req.fieldNotes,
            ip_address=client_ip(request),
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return case_out(case)


# ─────────────────────────────────────────────────────────────
# CHECKER ACCOUNTS
# ─────────────────────────────────────────────────────────────

@router.post("/checkers", response_model=UserResponse, status_code=201)
async def create_checker(
    req: CheckerCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    users: UserService = Depends(get_user_service),
):
    try:
        user = users.create_checker(
            db,
            principal,
            email=req.email,
            password=req.password,
            first_name=req.firstName,
            last_name=req.lastName,
            phone=req.phone,
        )
    except LifecycleError as e:
        raise to_http_exception(e)
    return UserResponse.from_user(user)


@router.get("/checkers", response_model=UserListResponse)
async def list_checkers(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    users: UserService = Depends(get_user_service),
):
    active = {"active": True, "inactive": False}.get(status or "all")
    return UserListResponse(users=[UserResponse.from_user(u) for u in users.list_checkers(db, active=active)])


@router.patch("/checkers/{checker_id}/status", response_model=UserResponse)
async def set_checker_status(
    checker_id: str,
    req: CheckerStatusRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
    users: UserService = Depends(get_user_service),
):
    """Inactive checkers keep their history but cannot be assigned new cases."""
    try:
        user = users.set_checker_active(db, principal, checker_id, req.isActive)
    except LifecycleError as e:
        raise to_http_exception(e)
    return UserResponse.from_user(user)


@router.get("/stats", response_model=OverviewStats)
async def overview_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_only),
):
    return StatsService().overview(db)
