from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from relief_app.models.enums import FileCategory


class UploadedFileIn(BaseModel):
    """
    Evidence attachment as sent by the family dashboard.
    `base64` carries the file body; checksum is derived when absent.
    """
    name: str = Field(..., min_length=1, max_length=256)
    originalName: str = Field(..., min_length=1, max_length=256)
    type: str = Field(..., min_length=1, max_length=128)
    size: int = Field(..., ge=0)
    category: FileCategory
    description: Optional[str] = None
    base64: Optional[str] = None
    checksum: Optional[str] = Field(default=None, max_length=64)
    url: Optional[str] = None

    @field_validator("description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


# Request bodies keep family data / files loosely typed: the lifecycle is
# the single validation boundary and reports every problem as ValidationError.

class CaseCreateRequest(BaseModel):
    familyData: Dict[str, Any]
    uploadedFiles: Optional[List[Dict[str, Any]]] = None


class CaseUpdateRequest(BaseModel):
    familyData: Optional[Dict[str, Any]] = None
    uploadedFiles: Optional[List[Dict[str, Any]]] = None


class FileAddRequest(BaseModel):
    file: Dict[str, Any]


class DecisionRequest(BaseModel):
    decision: str
    comments: str = ""
    finalDamagePercentage: Optional[float] = None
    estimatedCost: Optional[Decimal] = None
    fieldNotes: Optional[str] = None


class AssignRequest(BaseModel):
    checkerId: str = Field(..., min_length=1)
    notes: Optional[str] = None


class AssignToMeRequest(BaseModel):
    notes: Optional[str] = None


class DonationRequest(BaseModel):
    amount: Decimal


# ─────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────

class UploadedFileOut(BaseModel):
    id: str
    name: str
    originalName: str
    type: str
    size: int
    category: str
    description: Optional[str] = None
    uploadDateIso: Optional[str] = None
    checksum: Optional[str] = None
    url: Optional[str] = None


class AssignmentOut(BaseModel):
    checkerId: str
    assignedBy: str
    assignedAtIso: str
    notes: Optional[str] = None


class DecisionOut(BaseModel):
    checkerId: str
    decision: str
    comments: str
    finalDamagePercentage: Optional[float] = None
    estimatedCost: Optional[Decimal] = None
    timestampIso: str


class CaseTimestamps(BaseModel):
    createdIso: Optional[str] = None
    lastModifiedIso: Optional[str] = None
    submittedIso: Optional[str] = None
    reviewStartedIso: Optional[str] = None
    approvedIso: Optional[str] = None
    fullyFundedIso: Optional[str] = None


class CaseResponse(BaseModel):
    caseId: str
    status: str
    userId: str
    familyData: Dict[str, Any] = Field(default_factory=dict)
    uploadedFiles: List[UploadedFileOut] = Field(default_factory=list)
    assignment: Optional[AssignmentOut] = None
    checkerDecision: Optional[DecisionOut] = None
    timestamps: CaseTimestamps
    formCompletion: int
    totalNeeded: Decimal
    totalRaised: Decimal
    donationProgress: int


class CaseListResponse(BaseModel):
    cases: List[CaseResponse]
    total: int
    limit: int
    offset: int


class PublicCaseSummary(BaseModel):
    caseId: str
    familyName: Optional[str] = None
    village: Optional[str] = None
    numberOfMembers: Optional[int] = None
    destructionPercentage: Optional[float] = None
    damageDescription: Optional[str] = None
    checkerComments: Optional[str] = None
    finalDamagePercentage: Optional[float] = None
    totalNeeded: Decimal
    totalRaised: Decimal
    donationProgress: int
    approvedAtIso: Optional[str] = None
    fullyFundedAtIso: Optional[str] = None
    documentCount: int = 0


class FundingSummary(BaseModel):
    totalFamilies: int
    totalPeopleAffected: int
    totalFundingNeeded: Decimal
    totalFundingRaised: Decimal
    overallProgress: int


class PublicCaseListResponse(BaseModel):
    cases: List[PublicCaseSummary]
    page: int
    limit: int
    total: int
    pages: int
    summary: FundingSummary
