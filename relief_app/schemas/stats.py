from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class VillageStats(BaseModel):
    village: str
    totalCases: int
    pendingCases: int
    approvedCases: int
    rejectedCases: int


class OverviewStats(BaseModel):
    byStatus: Dict[str, int] = Field(default_factory=dict)
    totalCases: int
    totalFundingNeeded: Decimal
    totalFundingRaised: Decimal
    villages: List[VillageStats] = Field(default_factory=list)


class CheckerStats(BaseModel):
    totalAssigned: int
    pending: int
    approved: int
    rejected: int
    availableCases: int
    avgReviewHours: Optional[float] = None
