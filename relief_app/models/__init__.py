# Importing this package registers every mapped class on Base.metadata.
from relief_app.models.user import User
from relief_app.models.case import Case, CaseFile, CaseAssignment, CaseDecision
from relief_app.models.audit_log import CaseAuditEntry
