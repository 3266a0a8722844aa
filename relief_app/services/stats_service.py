# relief_app/services/stats_service.py
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import case as sa_case
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from relief_app.models.case import Case, CaseAssignment, CaseDecision
from relief_app.models.enums import CaseStatus
from relief_app.schemas.stats import CheckerStats, OverviewStats, VillageStats
from relief_app.services.audit_service import as_utc

REVIEWED_STATUSES = (
    CaseStatus.submitted.value,
    CaseStatus.under_review.value,
    CaseStatus.approved.value,
    CaseStatus.rejected.value,
)


def _count_where(condition):
    return func.sum(sa_case((condition, 1), else_=0))


class StatsService:
    """Read-only dashboard aggregates."""

    def overview(self, db: Session) -> OverviewStats:
        by_status: Dict[str, int] = {s.value: 0 for s in CaseStatus}
        for status, n in db.execute(select(Case.status, func.count(Case.id)).group_by(Case.status)):
            by_status[status] = n

        needed, raised = db.execute(
            select(
                func.coalesce(func.sum(Case.total_needed), 0),
                func.coalesce(func.sum(Case.total_raised), 0),
            )
        ).one()

        village_rows = db.execute(
            select(
                Case.village,
                func.count(Case.id),
                _count_where(Case.status.in_((CaseStatus.submitted.value, CaseStatus.under_review.value))),
                _count_where(Case.status == CaseStatus.approved.value),
                _count_where(Case.status == CaseStatus.rejected.value),
            )
            .where(Case.status.in_(REVIEWED_STATUSES), Case.village.is_not(None))
            .group_by(Case.village)
            .order_by(func.count(Case.id).desc())
        ).all()

        villages: List[VillageStats] = [
            VillageStats(
                village=v,
                totalCases=total,
                pendingCases=int(pending or 0),
                approvedCases=int(approved or 0),
                rejectedCases=int(rejected or 0),
            )
            for v, total, pending, approved, rejected in village_rows
        ]

        return OverviewStats(
            byStatus=by_status,
            totalCases=sum(by_status.values()),
            totalFundingNeeded=Decimal(str(needed)),
            totalFundingRaised=Decimal(str(raised)),
            villages=villages,
        )

    def checker_stats(self, db: Session, checker_id: str) -> CheckerStats:
        me = uuid.UUID(checker_id)

        statuses = db.execute(
            select(Case.status)
            .join(CaseAssignment, CaseAssignment.case_pk == Case.id)
            .where(CaseAssignment.checker_id == me)
        ).scalars().all()

        available = db.execute(
            select(func.count(Case.id))
            .outerjoin(CaseAssignment, CaseAssignment.case_pk == Case.id)
            .where(Case.status == CaseStatus.submitted.value, CaseAssignment.id.is_(None))
        ).scalar_one()

        durations = db.execute(
            select(CaseAssignment.assigned_at, CaseDecision.decided_at)
            .join(CaseDecision, CaseDecision.case_pk == CaseAssignment.case_pk)
            .where(CaseAssignment.checker_id == me, CaseDecision.checker_id == me)
        ).all()
        hours = [
            (as_utc(decided) - as_utc(assigned)).total_seconds() / 3600.0
            for assigned, decided in durations
        ]
        avg: Optional[float] = round(sum(hours) / len(hours), 2) if hours else None

        return CheckerStats(
            totalAssigned=len(statuses),
            pending=sum(1 for s in statuses if s == CaseStatus.under_review.value),
            approved=sum(1 for s in statuses if s == CaseStatus.approved.value),
            rejected=sum(1 for s in statuses if s == CaseStatus.rejected.value),
            availableCases=available,
            avgReviewHours=avg,
        )
