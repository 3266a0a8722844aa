from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


# ─────────────────────────────────────────────
# Per-action detail payloads (tagged by `action`)
# ─────────────────────────────────────────────

class SubmittedDetails(BaseModel):
    action: Literal["submitted"] = "submitted"
    formCompletion: int = Field(..., ge=0, le=100)
    fileCount: int = Field(default=0, ge=0)


class AssignedDetails(BaseModel):
    action: Literal["assigned"] = "assigned"
    assignedTo: str
    selfAssigned: bool = False


class ReassignedDetails(BaseModel):
    action: Literal["reassigned"] = "reassigned"
    previousChecker: Optional[str] = None
    assignedTo: str


class ApprovedDetails(BaseModel):
    action: Literal["approved"] = "approved"
    finalDamagePercentage: float = Field(..., ge=0, le=100)
    estimatedCost: Decimal = Field(..., gt=0)
    fieldNotes: str = ""
    selfAssigned: bool = False


class RejectedDetails(BaseModel):
    action: Literal["rejected"] = "rejected"
    fieldNotes: str = ""
    selfAssigned: bool = False


class DonatedDetails(BaseModel):
    action: Literal["donated"] = "donated"
    amount: Decimal = Field(..., gt=0)
    totalRaised: Decimal


class FullyFundedDetails(BaseModel):
    action: Literal["fully_funded"] = "fully_funded"
    totalNeeded: Decimal
    totalRaised: Decimal
    donationProgress: int = Field(..., ge=0, le=100)


AuditDetails = Annotated[
    Union[
        SubmittedDetails,
        AssignedDetails,
        ReassignedDetails,
        ApprovedDetails,
        RejectedDetails,
        DonatedDetails,
        FullyFundedDetails,
    ],
    Field(discriminator="action"),
]

audit_details_adapter: TypeAdapter = TypeAdapter(AuditDetails)


def parse_audit_details(raw: Dict[str, Any]):
    return audit_details_adapter.validate_python(raw)


# ─────────────────────────────────────────────
# API responses
# ─────────────────────────────────────────────

class AuditEntryResponse(BaseModel):
    seq: int
    action: str
    performedBy: Optional[str] = None
    performedByRole: str
    timestampIso: str
    details: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class AuditLogResponse(BaseModel):
    caseId: str
    status: str
    entries: List[AuditEntryResponse]
