# relief_app/services/case_lifecycle.py
from __future__ import annotations

import base64
import binascii
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from relief_app.core.config import Settings
from relief_app.core.errors import (
    AccessDeniedError,
    IncompleteSubmissionError,
    InvalidStateError,
    MissingApprovalFieldsError,
    NotFoundError,
    ValidationError,
)
from relief_app.core.hashing import sha256_hex
from relief_app.models.audit_log import CaseAuditEntry
from relief_app.models.case import Case, CaseAssignment, CaseDecision, CaseFile
from relief_app.models.enums import (
    SYSTEM_ROLE,
    AuditAction,
    CaseStatus,
    DecisionType,
    UserRole,
)
from relief_app.models.user import User
from relief_app.policies.rbac import (
    ACTION_ASSIGN_CASE,
    ACTION_ASSIGN_SELF,
    ACTION_DECIDE_CASE,
    ACTION_MANAGE_DRAFT,
    ACTION_RECORD_DONATION,
    ACTION_SUBMIT_CASE,
    Principal,
    can,
    require_action,
)
from relief_app.schemas.audit import (
    ApprovedDetails,
    AssignedDetails,
    DonatedDetails,
    FullyFundedDetails,
    ReassignedDetails,
    RejectedDetails,
    SubmittedDetails,
)
from relief_app.schemas.cases import UploadedFileIn
from relief_app.schemas.family import IDENTITY_FIELDS, FamilyData
from relief_app.services.audit_service import append_audit_entry

logger = logging.getLogger(__name__)

CheckerLookup = Callable[[uuid.UUID], Optional[User]]
FamilyInput = Union[FamilyData, Dict[str, Any]]
FileInput = Union[UploadedFileIn, Dict[str, Any]]


def _now():
    return datetime.now(timezone.utc)


def generate_case_id(prefix: str = "SLA", now: Optional[datetime] = None) -> str:
    """
    SLA-<year>-<last six digits of epoch millis>.
    Collisions are left to the unique index on cases.case_id.
    """
    now = now or _now()
    millis = int(now.timestamp() * 1000)
    return f"{prefix}-{now.year}-{str(millis)[-6:]}"


def compute_donation_progress(total_raised: Any, total_needed: Any) -> int:
    """
    min(round(raised / needed * 100), 100), rounding halves up.
    0 whenever nothing is needed yet.
    """
    needed = Decimal(total_needed or 0)
    if needed <= 0:
        return 0
    raised = Decimal(total_raised or 0)
    pct = (raised * 100 / needed).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return min(int(pct), 100)


def _pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def _as_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field} must be a UUID.", errors=[{"field": field, "message": "invalid id"}]
        )


class CaseLifecycle:
    """
    Owns every mutation of a Case.

    Rules:
    - validate first, mutate second: a rejected call leaves the case untouched
    - status only moves along
        draft -> submitted -> under_review -> approved -> fully_funded
      with submitted/under_review -> approved|rejected on decision and
      under_review -> under_review on reassignment
    - each status change appends exactly one audit entry
    - submitted_at / review_started_at / approved_at / fully_funded_at are set once

    Works on in-memory ORM instances only; persistence is CaseService's job.
    """

    def __init__(
        self,
        *,
        checker_lookup: Optional[CheckerLookup] = None,
        clock: Callable[[], datetime] = _now,
        case_id_prefix: str = "SLA",
        comment_min_length: int = 10,
        comment_max_length: int = 1000,
    ):
        self._checker_lookup = checker_lookup
        self._clock = clock
        self.case_id_prefix = case_id_prefix
        self.comment_min_length = comment_min_length
        self.comment_max_length = comment_max_length

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "CaseLifecycle":
        return cls(
            case_id_prefix=settings.case_id_prefix,
            comment_min_length=settings.decision_comment_min_length,
            comment_max_length=settings.decision_comment_max_length,
            **kwargs,
        )

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _parse_family_data(self, raw: Optional[FamilyInput]) -> FamilyData:
        if raw is None:
            raise ValidationError("Family data is required.")
        if isinstance(raw, FamilyData):
            return raw
        try:
            return FamilyData.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError("Invalid family data.", errors=_pydantic_errors(e)) from e

    def _require_identity(self, data: FamilyData) -> None:
        missing = data.missing_fields(IDENTITY_FIELDS)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                errors=[{"field": f, "message": "required"} for f in missing],
            )

    def _build_file(self, raw: FileInput, now: datetime) -> CaseFile:
        try:
            f = raw if isinstance(raw, UploadedFileIn) else UploadedFileIn.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError("Invalid uploaded file.", errors=_pydantic_errors(e)) from e

        content = None
        if f.base64:
            body = f.base64.split(",", 1)[1] if f.base64.startswith("data:") else f.base64
            try:
                content = base64.b64decode(body, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationError(
                    "Uploaded file body is not valid base64.",
                    errors=[{"field": "base64", "message": "invalid base64"}],
                ) from e

        checksum = f.checksum or (sha256_hex(content) if content is not None else None)

        return CaseFile(
            id=uuid.uuid4(),
            name=f.name,
            original_name=f.originalName,
            content_type=f.type,
            size=f.size,
            category=f.category.value,
            description=f.description or None,
            uploaded_at=now,
            content=content,
            checksum=checksum,
            url=f.url,
        )

    def _build_files(self, raw_files: Iterable[FileInput], now: datetime) -> List[CaseFile]:
        return [self._build_file(raw, now) for raw in raw_files]

    def _require_status(self, case: Case, allowed: Iterable[CaseStatus], verb: str) -> None:
        allowed_values = {s.value for s in allowed}
        if case.status not in allowed_values:
            raise InvalidStateError(
                f"Cannot {verb} a case in status {case.status}.",
                current_status=case.status,
            )

    def _require_owner(self, case: Case, actor: Principal, action: str) -> None:
        require_action(actor, action)
        if str(case.user_id) != str(actor.user_id):
            raise AccessDeniedError("Only the owning family may change this case.")

    def _resolve_checker(self, checker_id: uuid.UUID) -> User:
        if self._checker_lookup is None:
            raise RuntimeError("CaseLifecycle was built without a checker lookup.")
        user = self._checker_lookup(checker_id)
        if user is None or not user.is_active or user.role != UserRole.CHECKER.value:
            raise NotFoundError("Checker not found or not active.")
        return user

    def _touch(self, case: Case, now: datetime) -> None:
        case.last_modified = now

    def _log_transition(self, case: Case, action: AuditAction, actor: Optional[Principal]) -> None:
        logger.info(
            "case transition",
            extra={
                "caseId": case.case_id,
                "action": action.value,
                "status": case.status,
                "actorId": actor.user_id if actor else None,
            },
        )

    # ─────────────────────────────────────────────
    # DERIVED FIELDS
    # ─────────────────────────────────────────────

    def calculate_form_completion(self, case: Case) -> int:
        data = self._parse_family_data(case.family_data or {})
        case.form_completion = data.completion_percentage()
        return case.form_completion

    def add_audit_log(
        self,
        case: Case,
        action: AuditAction,
        performed_by: Optional[Principal],
        details: Union[BaseModel, Dict[str, Any]],
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> CaseAuditEntry:
        return append_audit_entry(
            case,
            action=action,
            performed_by=_as_uuid(performed_by.user_id, "performedBy") if performed_by else None,
            performed_by_role=performed_by.role.value if performed_by else SYSTEM_ROLE,
            details=details,
            timestamp=self._clock(),
            notes=notes,
            ip_address=ip_address,
        )

    # ─────────────────────────────────────────────
    # FAMILY: DRAFTS
    # ─────────────────────────────────────────────

    def create_draft(
        self,
        owner: Principal,
        family_data: Optional[FamilyInput],
        files: Optional[Iterable[FileInput]] = None,
        *,
        source: str = "family_dashboard",
    ) -> Case:
        require_action(owner, ACTION_MANAGE_DRAFT)
        owner_id = _as_uuid(owner.user_id, "userId")

        data = self._parse_family_data(family_data)
        self._require_identity(data)

        now = self._clock()
        new_files = self._build_files(files or [], now)

        case = Case(
            id=uuid.uuid4(),
            case_id=generate_case_id(self.case_id_prefix, now),
            user_id=owner_id,
            user_email=(owner.email or "").lower(),
            status=CaseStatus.draft.value,
            family_data=data.to_document(),
            village=data.village,
            total_needed=Decimal("0"),
            total_raised=Decimal("0"),
            donation_progress=0,
            form_completion=data.completion_percentage(),
            source=source,
            created_at=now,
            last_modified=now,
        )
        for f in new_files:
            case.uploaded_files.append(f)

        logger.info("case draft created", extra={"caseId": case.case_id, "actorId": owner.user_id})
        return case

    def update_draft(
        self,
        case: Case,
        actor: Principal,
        family_data: Optional[FamilyInput] = None,
        files: Optional[Iterable[FileInput]] = None,
        *,
        merge: bool = False,
    ) -> Case:
        """
        merge=False replaces family data wholesale (full edit);
        merge=True overlays the supplied keys on the stored document (draft save).
        `files`, when given, replaces the attachment list.
        """
        self._require_owner(case, actor, ACTION_MANAGE_DRAFT)
        self._require_status(case, [CaseStatus.draft], "update")

        now = self._clock()
        data = None
        if family_data is not None:
            if merge:
                incoming = (
                    family_data.model_dump(mode="json", exclude_unset=True)
                    if isinstance(family_data, FamilyData)
                    else dict(family_data)
                )
                data = self._parse_family_data({**(case.family_data or {}), **incoming})
            else:
                data = self._parse_family_data(family_data)
            self._require_identity(data)

        new_files = self._build_files(files, now) if files is not None else None

        # apply
        if data is not None:
            case.family_data = data.to_document()
            case.village = data.village
        if new_files is not None:
            case.uploaded_files = new_files
            case.uploaded_files.reorder()
        self.calculate_form_completion(case)
        self._touch(case, now)
        return case

    def add_file(self, case: Case, actor: Principal, file: FileInput) -> CaseFile:
        self._require_owner(case, actor, ACTION_MANAGE_DRAFT)
        self._require_status(case, [CaseStatus.draft], "attach files to")

        now = self._clock()
        new_file = self._build_file(file, now)
        case.uploaded_files.append(new_file)
        self._touch(case, now)
        return new_file

    def remove_file(self, case: Case, actor: Principal, file_id: Any) -> Case:
        self._require_owner(case, actor, ACTION_MANAGE_DRAFT)
        self._require_status(case, [CaseStatus.draft], "remove files from")

        target = next((f for f in case.uploaded_files if str(f.id) == str(file_id)), None)
        if target is None:
            raise NotFoundError("File not found on this case.")

        case.uploaded_files.remove(target)
        self._touch(case, self._clock())
        return case

    def delete_draft(self, case: Case, actor: Principal) -> Case:
        """Guards only; CaseService removes the row."""
        self._require_owner(case, actor, ACTION_MANAGE_DRAFT)
        self._require_status(case, [CaseStatus.draft], "delete")
        return case

    # ─────────────────────────────────────────────
    # FAMILY: SUBMIT
    # ─────────────────────────────────────────────

    def submit(self, case: Case, actor: Principal, *, ip_address: Optional[str] = None) -> Case:
        self._require_owner(case, actor, ACTION_SUBMIT_CASE)
        self._require_status(case, [CaseStatus.draft], "submit")

        data = self._parse_family_data(case.family_data or {})
        missing = data.missing_fields()
        if missing:
            raise IncompleteSubmissionError(missing)

        now = self._clock()
        case.status = CaseStatus.submitted.value
        if case.submitted_at is None:
            case.submitted_at = now
        case.form_completion = data.completion_percentage()
        self._touch(case, now)

        self.add_audit_log(
            case,
            AuditAction.submitted,
            actor,
            SubmittedDetails(
                formCompletion=case.form_completion,
                fileCount=len(case.uploaded_files),
            ),
            ip_address=ip_address,
        )
        self._log_transition(case, AuditAction.submitted, actor)
        return case

    # ─────────────────────────────────────────────
    # CHECKER / ADMIN: ASSIGNMENT
    # ─────────────────────────────────────────────

    def assign(
        self,
        case: Case,
        checker_id: Any,
        assigned_by: Principal,
        notes: Optional[str] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> Case:
        """
        Admins assign any active checker; a checker may only take a case for
        themselves.
        """
        checker_uuid = _as_uuid(checker_id, "checkerId")
        actor_uuid = _as_uuid(assigned_by.user_id, "assignedBy")
        self_assigned = checker_uuid == actor_uuid

        if not can(assigned_by, ACTION_ASSIGN_CASE):
            require_action(assigned_by, ACTION_ASSIGN_SELF)
            if not self_assigned:
                raise AccessDeniedError("Checkers may only assign cases to themselves.")

        self._require_status(case, [CaseStatus.submitted], "assign")
        if case.assignment is not None:
            raise InvalidStateError("Case is already assigned to a checker.", current_status=case.status)

        self._resolve_checker(checker_uuid)

        now = self._clock()
        case.assignment = CaseAssignment(
            id=uuid.uuid4(),
            checker_id=checker_uuid,
            assigned_by=actor_uuid,
            assigned_at=now,
            notes=notes or None,
        )
        case.status = CaseStatus.under_review.value
        if case.review_started_at is None:
            case.review_started_at = now
        self._touch(case, now)

        self.add_audit_log(
            case,
            AuditAction.assigned,
            assigned_by,
            AssignedDetails(assignedTo=str(checker_uuid), selfAssigned=self_assigned),
            notes=notes,
            ip_address=ip_address,
        )
        self._log_transition(case, AuditAction.assigned, assigned_by)
        return case

    def reassign(
        self,
        case: Case,
        new_checker_id: Any,
        assigned_by: Principal,
        notes: Optional[str] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> Case:
        require_action(assigned_by, ACTION_ASSIGN_CASE)
        checker_uuid = _as_uuid(new_checker_id, "checkerId")
        actor_uuid = _as_uuid(assigned_by.user_id, "assignedBy")

        self._require_status(case, [CaseStatus.under_review], "reassign")

        current = case.assignment
        if current is not None and current.checker_id == checker_uuid:
            raise ValidationError("Case is already assigned to this checker.")

        self._resolve_checker(checker_uuid)

        now = self._clock()
        previous = str(current.checker_id) if current is not None else None
        if current is None:
            case.assignment = CaseAssignment(
                id=uuid.uuid4(),
                checker_id=checker_uuid,
                assigned_by=actor_uuid,
                assigned_at=now,
                notes=notes or None,
            )
        else:
            # overwrite in place: one assignment row per case
            current.checker_id = checker_uuid
            current.assigned_by = actor_uuid
            current.assigned_at = now
            current.notes = notes or None
        self._touch(case, now)

        self.add_audit_log(
            case,
            AuditAction.reassigned,
            assigned_by,
            ReassignedDetails(previousChecker=previous, assignedTo=str(checker_uuid)),
            notes=notes,
            ip_address=ip_address,
        )
        self._log_transition(case, AuditAction.reassigned, assigned_by)
        return case

    # ─────────────────────────────────────────────
    # CHECKER / ADMIN: DECISION
    # ─────────────────────────────────────────────

    def decide(
        self,
        case: Case,
        actor: Principal,
        decision: str,
        comments: str,
        final_damage_percentage: Optional[float] = None,
        estimated_cost: Any = None,
        *,
        field_notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Case:
        require_action(actor, ACTION_DECIDE_CASE)
        actor_uuid = _as_uuid(actor.user_id, "checkerId")

        # --- input ---
        try:
            verdict = DecisionType((decision or "").strip())
        except ValueError:
            raise ValidationError(
                "Decision must be approved or rejected.",
                errors=[{"field": "decision", "message": "invalid decision value"}],
            )

        text = (comments or "").strip()
        if not (self.comment_min_length <= len(text) <= self.comment_max_length):
            raise ValidationError(
                f"Comments must be between {self.comment_min_length} and "
                f"{self.comment_max_length} characters.",
                errors=[{"field": "comments", "message": "length out of range"}],
            )

        pct: Optional[float] = None
        cost: Optional[Decimal] = None
        if verdict == DecisionType.approved:
            missing = []
            if final_damage_percentage is None:
                missing.append("finalDamagePercentage")
            if estimated_cost is None:
                missing.append("estimatedCost")
            if missing:
                raise MissingApprovalFieldsError(missing)

            try:
                pct = float(final_damage_percentage)
            except (TypeError, ValueError):
                raise MissingApprovalFieldsError(
                    ["finalDamagePercentage"], "Final damage percentage must be a number."
                )
            if not 0 <= pct <= 100:
                raise MissingApprovalFieldsError(
                    ["finalDamagePercentage"], "Final damage percentage must be between 0 and 100."
                )

            try:
                cost = Decimal(str(estimated_cost))
            except InvalidOperation:
                raise MissingApprovalFieldsError(["estimatedCost"], "Estimated cost must be a number.")
            if not cost.is_finite() or cost <= 0:
                raise MissingApprovalFieldsError(
                    ["estimatedCost"], "Estimated cost must be greater than 0."
                )

        # --- state ---
        self._require_status(case, [CaseStatus.submitted, CaseStatus.under_review], "review")
        if (
            actor.role == UserRole.CHECKER
            and case.assignment is not None
            and case.assignment.checker_id != actor_uuid
        ):
            raise AccessDeniedError("This case is assigned to another checker.")

        # --- apply ---
        now = self._clock()
        self_assigned = False
        if case.assignment is None:
            case.assignment = CaseAssignment(
                id=uuid.uuid4(),
                checker_id=actor_uuid,
                assigned_by=actor_uuid,
                assigned_at=now,
                notes="Self-assigned during review",
            )
            self_assigned = True
        if case.review_started_at is None:
            case.review_started_at = now

        case.decision = CaseDecision(
            id=uuid.uuid4(),
            checker_id=actor_uuid,
            decision=verdict.value,
            comments=text,
            final_damage_percentage=pct,
            estimated_cost=cost,
            decided_at=now,
        )

        case.status = verdict.value
        if verdict == DecisionType.approved:
            case.total_needed = cost
            if case.approved_at is None:
                case.approved_at = now
            case.donation_progress = compute_donation_progress(case.total_raised, case.total_needed)
        self._touch(case, now)

        if verdict == DecisionType.approved:
            action = AuditAction.approved
            details: BaseModel = ApprovedDetails(
                finalDamagePercentage=pct,
                estimatedCost=cost,
                fieldNotes=field_notes or "",
                selfAssigned=self_assigned,
            )
        else:
            action = AuditAction.rejected
            details = RejectedDetails(fieldNotes=field_notes or "", selfAssigned=self_assigned)

        self.add_audit_log(case, action, actor, details, notes=text, ip_address=ip_address)
        self._log_transition(case, action, actor)
        return case

    # ─────────────────────────────────────────────
    # FUNDING
    # ─────────────────────────────────────────────

    def recompute_donation_progress(self, case: Case, actor: Optional[Principal] = None) -> Case:
        """
        Call after every total_raised change.
        approved -> fully_funded happens once; later calls with progress still
        at 100 change nothing.
        """
        if Decimal(case.total_needed or 0) <= 0:
            return case

        now = self._clock()
        progress = compute_donation_progress(case.total_raised, case.total_needed)
        if progress != case.donation_progress:
            case.donation_progress = progress
            self._touch(case, now)

        if progress >= 100 and case.status == CaseStatus.approved.value:
            case.status = CaseStatus.fully_funded.value
            if case.fully_funded_at is None:
                case.fully_funded_at = now
            self._touch(case, now)
            self.add_audit_log(
                case,
                AuditAction.fully_funded,
                actor,
                FullyFundedDetails(
                    totalNeeded=Decimal(case.total_needed),
                    totalRaised=Decimal(case.total_raised),
                    donationProgress=progress,
                ),
            )
            self._log_transition(case, AuditAction.fully_funded, actor)
        return case

    def record_donation(
        self,
        case: Case,
        donor: Principal,
        amount: Any,
        *,
        ip_address: Optional[str] = None,
    ) -> Case:
        """
        Donation-ledger entry point: bump total_raised on an approved case,
        log it, then recompute progress (which may close the case as funded).
        """
        require_action(donor, ACTION_RECORD_DONATION)
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(
                "Donation amount must be a number.",
                errors=[{"field": "amount", "message": "invalid number"}],
            )
        if not value.is_finite() or value <= 0:
            raise ValidationError(
                "Donation amount must be greater than 0.",
                errors=[{"field": "amount", "message": "must be positive"}],
            )

        self._require_status(case, [CaseStatus.approved], "donate to")

        case.total_raised = Decimal(case.total_raised or 0) + value
        self._touch(case, self._clock())
        self.add_audit_log(
            case,
            AuditAction.donated,
            donor,
            DonatedDetails(amount=value, totalRaised=case.total_raised),
            ip_address=ip_address,
        )
        return self.recompute_donation_progress(case, actor=donor)
