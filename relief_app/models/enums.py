#relief_app/models/enums.py
from __future__ import annotations
from enum import Enum


class UserRole(str, Enum):
    FAMILY = "family"
    DONOR = "donor"
    CHECKER = "checker"
    ADMIN = "admin"


class CaseStatus(str, Enum):
    draft = "draft"
    submitted = "submitted"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"
    fully_funded = "fully_funded"


TERMINAL_STATUSES = frozenset({CaseStatus.rejected, CaseStatus.fully_funded})


class DecisionType(str, Enum):
    approved = "approved"
    rejected = "rejected"


class AuditAction(str, Enum):
    submitted = "submitted"
    assigned = "assigned"
    reassigned = "reassigned"
    approved = "approved"
    rejected = "rejected"
    donated = "donated"
    fully_funded = "fully_funded"


class FileCategory(str, Enum):
    property_damage = "property_damage"
    identification = "identification"
    ownership = "ownership"
    other = "other"


class CreationMethod(str, Enum):
    self_registration = "self_registration"
    admin_created = "admin_created"
    system_created = "system_created"


# Role recorded on audit entries not performed by an authenticated principal
SYSTEM_ROLE = "system"
