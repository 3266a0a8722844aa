from relief_app.schemas.family import FamilyData, REQUIRED_SUBMISSION_FIELDS, IDENTITY_FIELDS
from relief_app.schemas.audit import AuditDetails, parse_audit_details, AuditEntryResponse, AuditLogResponse
from relief_app.schemas.cases import UploadedFileIn, CaseResponse, PublicCaseSummary, FundingSummary
from relief_app.schemas.stats import OverviewStats, CheckerStats, VillageStats
