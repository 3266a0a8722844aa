# relief_app/schemas/family.py
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class PropertyType(str, Enum):
    house = "house"
    apartment = "apartment"
    shop = "shop"
    other = "other"


class OwnershipStatus(str, Enum):
    owned = "owned"
    rented = "rented"
    inherited = "inherited"


class YesNo(str, Enum):
    yes = "yes"
    no = "no"


# Must all be present before a draft can be submitted
REQUIRED_SUBMISSION_FIELDS: Tuple[str, ...] = (
    "familyName",
    "headOfHousehold",
    "phoneNumber",
    "numberOfMembers",
    "village",
    "currentAddress",
    "originalAddress",
    "destructionDate",
    "destructionPercentage",
    "damageDescription",
)

# Must be present to open a draft at all
IDENTITY_FIELDS: Tuple[str, ...] = ("familyName", "headOfHousehold", "phoneNumber")

_COUNT_FIELDS = frozenset({"childrenCount", "elderlyCount", "specialNeedsCount"})


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


class FamilyData(BaseModel):
    """
    Claim details entered by the family.

    Every field is optional so a draft can be saved half-filled; range and
    enum constraints apply whenever a value is present. Blank strings are
    normalised to None so "missing" has a single meaning.
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    # Family information
    familyName: Optional[str] = Field(default=None, max_length=256)
    headOfHousehold: Optional[str] = Field(default=None, max_length=256)
    phoneNumber: Optional[str] = Field(default=None, max_length=64)
    alternatePhone: Optional[str] = Field(default=None, max_length=64)
    email: Optional[str] = Field(default=None, max_length=256)
    nationalId: Optional[str] = Field(default=None, max_length=64)
    numberOfMembers: Optional[int] = Field(default=None, ge=1)
    childrenCount: int = Field(default=0, ge=0)
    elderlyCount: int = Field(default=0, ge=0)
    specialNeedsCount: int = Field(default=0, ge=0)

    # Address
    village: Optional[str] = Field(default=None, max_length=128)
    currentAddress: Optional[str] = None
    originalAddress: Optional[str] = None
    propertyType: Optional[PropertyType] = None
    ownershipStatus: Optional[OwnershipStatus] = None
    propertyValue: Optional[float] = Field(default=None, ge=0)

    # Destruction details
    destructionDate: Optional[date] = None
    destructionCause: Optional[str] = None
    destructionPercentage: Optional[float] = Field(default=None, ge=0, le=100)
    damageDescription: Optional[str] = None
    previouslyReceivedAid: Optional[YesNo] = None
    aidDetails: Optional[str] = None

    # Supporting information
    witnessName: Optional[str] = None
    witnessPhone: Optional[str] = None
    emergencyContact: Optional[str] = None
    emergencyPhone: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str) and not v.strip():
            return 0 if info.field_name in _COUNT_FIELDS else None
        return v

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    def missing_fields(self, fields: Tuple[str, ...] = REQUIRED_SUBMISSION_FIELDS) -> List[str]:
        """Required fields holding None or a numeric 0 are missing."""
        return [f for f in fields if _is_empty(getattr(self, f))]

    def completion_percentage(self) -> int:
        filled = len(REQUIRED_SUBMISSION_FIELDS) - len(self.missing_fields())
        return round(filled * 100 / len(REQUIRED_SUBMISSION_FIELDS))

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
