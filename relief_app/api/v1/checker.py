# relief_app/api/v1/checker.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from relief_app.api.v1.case_views import case_out, client_ip
from relief_app.api.v1.cases import get_case_service
from relief_app.core.auth_deps import require_roles
from relief_app.core.errors import LifecycleError, to_http_exception
from relief_app.db.session import get_db
from relief_app.models.enums import UserRole
from relief_app.policies.rbac import Principal
from relief_app.schemas.cases import AssignToMeRequest, CaseListResponse, CaseResponse, DecisionRequest
from relief_app.schemas.stats import CheckerStats
from relief_app.services.case_service import CaseService
from relief_app.services.stats_service import StatsService

router = APIRouter(prefix="/checker")

checker_only = require_roles(UserRole.CHECKER)
reviewers = require_roles(UserRole.CHECKER, UserRole.ADMIN)


@router.get("/cases", response_model=CaseListResponse)
async def review_queue(
    status: Optional[str] = None,
    village: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(reviewers),
    svc: CaseService = Depends(get_case_service),
):
    """
    Cases assigned to me plus unassigned submitted ones.
    status: any case status, "pending" (submitted + under_review) or "all".
    """
    cases, total = svc.checker_queue(
        db, principal, status=status, village=village, limit=limit, offset=offset
    )
    return CaseListResponse(cases=[case_out(c) for c in cases], total=total, limit=limit, offset=offset)


@router.post("/cases/{case_id}/assign-to-me", response_model=CaseResponse)
async def assign_to_me(
    case_id: str,
    request: Request,
    req: Optional[AssignToMeRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(checker_only),
    svc: CaseService = Depends(get_case_service),
):
    try:
        case = svc.assign_case(
            db,
            principal,
            case_id,
            checker_id=principal.user_id,
            notes=req.notes if req else None,
            ip_address=client_ip(request),
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
    principal: Principal = Depends(checker_only),
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


@router.get("/stats", response_model=CheckerStats)
async def my_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(checker_only),
):
    return StatsService().checker_stats(db, principal.user_id)
