# relief_app/services/case_service.py
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from relief_app.core.config import Settings, get_settings
from relief_app.core.errors import AccessDeniedError, ConflictError, NotFoundError
from relief_app.models.case import Case, CaseAssignment
from relief_app.models.enums import CaseStatus, UserRole
from relief_app.models.user import User
from relief_app.policies.rbac import ACTION_VIEW_AUDIT, Principal, require_action
from relief_app.services.case_lifecycle import CaseLifecycle, compute_donation_progress
from relief_app.services.notification_service import (
    LoggingNotificationSender,
    NotificationSender,
    safe_notify,
)

logger = logging.getLogger(__name__)

PUBLIC_STATUSES = frozenset({CaseStatus.approved.value, CaseStatus.fully_funded.value})
PENDING_STATUSES = (CaseStatus.submitted.value, CaseStatus.under_review.value)


class CaseService:
    """
    Loads cases, runs a lifecycle operation on them and commits.

    The lifecycle decides; this class only persists. Notifications go out
    after a successful commit.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        notifier: Optional[NotificationSender] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        if notifier is None and self.settings.notifications_enabled:
            notifier = LoggingNotificationSender()
        self.notifier = notifier
        self.clock = clock

    def lifecycle(self, db: Session) -> CaseLifecycle:
        kwargs: Dict[str, Any] = {"checker_lookup": lambda checker_id: db.get(User, checker_id)}
        if self.clock is not None:
            kwargs["clock"] = self.clock
        return CaseLifecycle.from_settings(self.settings, **kwargs)

    # ---------------------------
    # PERSISTENCE
    # ---------------------------

    def _commit(self, db: Session, case: Optional[Case] = None) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Case could not be saved: conflicting case id.") from e
        except StaleDataError as e:
            db.rollback()
            raise ConflictError("Case was modified by another request; reload and retry.") from e
        if case is not None:
            db.refresh(case)

    # ---------------------------
    # READS
    # ---------------------------

    def get_case(self, db: Session, case_id: str, *, for_update: bool = False) -> Case:
        stmt = select(Case).where(Case.case_id == case_id)
        if for_update:
            stmt = stmt.with_for_update()
        case = db.execute(stmt).scalars().one_or_none()
        if case is None:
            raise NotFoundError("Case not found.")
        return case

    def get_case_for_viewer(self, db: Session, principal: Principal, case_id: str) -> Case:
        """
        family -> own cases only
        donor  -> approved / fully funded only
        checker, admin -> any
        """
        case = self.get_case(db, case_id)
        if principal.role == UserRole.FAMILY and str(case.user_id) != principal.user_id:
            raise AccessDeniedError("You can only view your own cases.")
        if principal.role == UserRole.DONOR and case.status not in PUBLIC_STATUSES:
            raise AccessDeniedError("Case is not open for donations.")
        return case

    def get_audit_log(self, db: Session, principal: Principal, case_id: str) -> Case:
        require_action(principal, ACTION_VIEW_AUDIT)
        return self.get_case_for_viewer(db, principal, case_id)

    def list_my_cases(
        self,
        db: Session,
        principal: Principal,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Case], int]:
        owner_id = uuid.UUID(principal.user_id)
        base = select(Case).where(Case.user_id == owner_id)
        total = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
        rows = (
            db.execute(base.order_by(Case.last_modified.desc()).limit(limit).offset(offset))
            .scalars()
            .all()
        )
        return list(rows), total

    def _public_list(
        self,
        db: Session,
        status: CaseStatus,
        order_col,
        *,
        page: int,
        limit: int,
        village: Optional[str],
    ) -> Dict[str, Any]:
        limit = min(limit, self.settings.public_page_size_max)
        conditions = [Case.status == status.value]
        if village and village != "all":
            conditions.append(Case.village == village)

        total = db.execute(select(func.count(Case.id)).where(*conditions)).scalar_one()
        rows = (
            db.execute(
                select(Case)
                .where(*conditions)
                .order_by(order_col.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            .scalars()
            .all()
        )

        needed, raised = db.execute(
            select(
                func.coalesce(func.sum(Case.total_needed), 0),
                func.coalesce(func.sum(Case.total_raised), 0),
            ).where(*conditions)
        ).one()
        people = sum(
            int((doc or {}).get("numberOfMembers") or 0)
            for doc in db.execute(select(Case.family_data).where(*conditions)).scalars()
        )
        needed, raised = Decimal(str(needed)), Decimal(str(raised))

        return {
            "cases": list(rows),
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
            "summary": {
                "totalFamilies": total,
                "totalPeopleAffected": people,
                "totalFundingNeeded": needed,
                "totalFundingRaised": raised,
                "overallProgress": compute_donation_progress(raised, needed),
            },
        }

    def list_approved(self, db: Session, *, page: int = 1, limit: int = 10, village: Optional[str] = None):
        return self._public_list(
            db, CaseStatus.approved, Case.approved_at, page=page, limit=limit, village=village
        )

    def list_fully_funded(self, db: Session, *, page: int = 1, limit: int = 10, village: Optional[str] = None):
        return self._public_list(
            db, CaseStatus.fully_funded, Case.fully_funded_at, page=page, limit=limit, village=village
        )

    def checker_queue(
        self,
        db: Session,
        principal: Principal,
        *,
        status: Optional[str] = None,
        village: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Case], int]:
        """
        Checkers see cases assigned to them plus unassigned submitted cases.
        Admins see every non-draft case.
        status="pending" means submitted or under_review.
        """
        stmt = select(Case).outerjoin(CaseAssignment, CaseAssignment.case_pk == Case.id)

        if principal.role == UserRole.ADMIN:
            stmt = stmt.where(Case.status != CaseStatus.draft.value)
        else:
            me = uuid.UUID(principal.user_id)
            stmt = stmt.where(
                or_(
                    CaseAssignment.checker_id == me,
                    and_(Case.status == CaseStatus.submitted.value, CaseAssignment.id.is_(None)),
                )
            )

        if status and status != "all":
            if status == "pending":
                stmt = stmt.where(Case.status.in_(PENDING_STATUSES))
            else:
                stmt = stmt.where(Case.status == status)
        if village and village != "all":
            stmt = stmt.where(Case.village == village)

        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = (
            db.execute(
                stmt.order_by(Case.submitted_at.asc(), Case.last_modified.desc())
                .limit(limit)
                .offset(offset)
            )
            .scalars()
            .all()
        )
        return list(rows), total

    # ---------------------------
    # FAMILY MUTATIONS
    # ---------------------------

    def create_case(
        self,
        db: Session,
        principal: Principal,
        *,
        family_data: Dict[str, Any],
        files: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Case:
        case = self.lifecycle(db).create_draft(principal, family_data, files)
        db.add(case)
        self._commit(db, case)
        return case

    def update_case(
        self,
        db: Session,
        principal: Principal,
        case_id: str,
        *,
        family_data: Optional[Dict[str, Any]] = None,
        files: Optional[Iterable[Dict[str, Any]]] = None,
        merge: bool = False,
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).update_draft(case, principal, family_data, files, merge=merge)
        self._commit(db, case)
        return case

    def add_file(self, db: Session, principal: Principal, case_id: str, *, file: Dict[str, Any]) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).add_file(case, principal, file)
        self._commit(db, case)
        return case

    def remove_file(self, db: Session, principal: Principal, case_id: str, *, file_id: str) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).remove_file(case, principal, file_id)
        self._commit(db, case)
        return case

    def submit_case(
        self, db: Session, principal: Principal, case_id: str, *, ip_address: Optional[str] = None
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).submit(case, principal, ip_address=ip_address)
        self._commit(db, case)
        safe_notify(self.notifier, "case_submitted", case)
        return case

    def delete_draft(self, db: Session, principal: Principal, case_id: str) -> None:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).delete_draft(case, principal)
        db.delete(case)
        self._commit(db)
        logger.info("case draft deleted", extra={"caseId": case_id, "actorId": principal.user_id})

    # ---------------------------
    # REVIEW MUTATIONS
    # ---------------------------

    def assign_case(
        self,
        db: Session,
        principal: Principal,
        case_id: str,
        *,
        checker_id: Any,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).assign(case, checker_id, principal, notes, ip_address=ip_address)
        self._commit(db, case)
        return case

    def reassign_case(
        self,
        db: Session,
        principal: Principal,
        case_id: str,
        *,
        checker_id: Any,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).reassign(case, checker_id, principal, notes, ip_address=ip_address)
        self._commit(db, case)
        return case

    def decide_case(
        self,
        db: Session,
        principal: Principal,
        case_id: str,
        *,
        decision: str,
        comments: str,
        final_damage_percentage: Optional[float] = None,
        estimated_cost: Any = None,
        field_notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).decide(
            case,
            principal,
            decision,
            comments,
            final_damage_percentage,
            estimated_cost,
            field_notes=field_notes,
            ip_address=ip_address,
        )
        self._commit(db, case)
        safe_notify(self.notifier, "case_decided", case)
        return case

    # ---------------------------
    # FUNDING
    # ---------------------------

    def record_donation(
        self,
        db: Session,
        principal: Principal,
        case_id: str,
        *,
        amount: Any,
        ip_address: Optional[str] = None,
    ) -> Case:
        case = self.get_case(db, case_id, for_update=True)
        self.lifecycle(db).record_donation(case, principal, amount, ip_address=ip_address)
        self._commit(db, case)
        return case

