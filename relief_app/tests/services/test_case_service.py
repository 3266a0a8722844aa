from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from conftest import COMPLETE_FAMILY, IDENTITY_ONLY, FakeClock, principal_of
from relief_app.core.errors import AccessDeniedError, ConflictError, NotFoundError
from relief_app.models.audit_log import CaseAuditEntry
from relief_app.models.case import Case
from relief_app.models.enums import CaseStatus, UserRole
from relief_app.services.case_service import CaseService
from relief_app.services.notification_service import NotificationSender


class RecordingNotifier(NotificationSender):
    def __init__(self):
        self.events = []

    def case_submitted(self, case):
        self.events.append(("submitted", case.case_id))

    def case_decided(self, case):
        self.events.append(("decided", case.case_id, case.status))

    def account_created(self, user, created_by=None):
        self.events.append(("account", user.email))


class BrokenNotifier(NotificationSender):
    def case_submitted(self, case):
        raise ConnectionError("smtp down")

    def case_decided(self, case):
        raise ConnectionError("smtp down")


@pytest.fixture
def people(add_user):
    return {
        "family": principal_of(add_user(UserRole.FAMILY)),
        "other_family": principal_of(add_user(UserRole.FAMILY)),
        "checker": principal_of(add_user(UserRole.CHECKER)),
        "checker2": principal_of(add_user(UserRole.CHECKER)),
        "admin": principal_of(add_user(UserRole.ADMIN)),
        "donor": principal_of(add_user(UserRole.DONOR)),
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def svc(notifier):
    return CaseService(notifier=notifier, clock=FakeClock())


def submitted_case(db, svc, people, data=None):
    case = svc.create_case(db, people["family"], family_data=dict(data or COMPLETE_FAMILY))
    return svc.submit_case(db, people["family"], case.case_id)


def approved_case(db, svc, people, cost=5000):
    case = submitted_case(db, svc, people)
    svc.assign_case(db, people["admin"], case.case_id, checker_id=people["checker"].user_id)
    return svc.decide_case(
        db, people["checker"], case.case_id,
        decision="approved", comments="looks valid and complete",
        final_damage_percentage=80, estimated_cost=cost,
    )


# ─────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────

def test_full_flow_is_persisted(db, svc, people, notifier):
    case = approved_case(db, svc, people)
    svc.record_donation(db, people["donor"], case.case_id, amount=Decimal("5000"))

    db.expire_all()
    stored = db.execute(select(Case).where(Case.case_id == case.case_id)).scalar_one()

    assert stored.status == CaseStatus.fully_funded.value
    assert stored.total_needed == Decimal("5000.00")
    assert stored.total_raised == Decimal("5000.00")
    assert stored.donation_progress == 100
    assert stored.fully_funded_at is not None
    assert [e.action for e in stored.audit_log] == [
        "submitted", "assigned", "approved", "donated", "fully_funded",
    ]
    assert [e.seq for e in stored.audit_log] == [1, 2, 3, 4, 5]
    assert stored.version > 1

    assert ("submitted", case.case_id) in notifier.events
    assert ("decided", case.case_id, "approved") in notifier.events


def test_files_round_trip_through_the_database(db, svc, people):
    files = [
        {"name": "deed.pdf", "originalName": "deed.pdf", "type": "application/pdf",
         "size": 4, "category": "ownership", "base64": "cGRmIQ=="},
        {"name": "roof.jpg", "originalName": "roof.jpg", "type": "image/jpeg",
         "size": 10, "category": "property_damage", "url": "https://files.example.org/roof.jpg"},
    ]
    case = svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY), files=files)

    db.expire_all()
    stored = svc.get_case(db, case.case_id)
    assert [f.name for f in stored.uploaded_files] == ["deed.pdf", "roof.jpg"]
    assert stored.uploaded_files[0].content == b"pdf!"

    svc.remove_file(db, people["family"], case.case_id, file_id=str(stored.uploaded_files[0].id))
    db.expire_all()
    stored = svc.get_case(db, case.case_id)
    assert [(f.name, f.position) for f in stored.uploaded_files] == [("roof.jpg", 0)]


def test_notification_failure_does_not_roll_back(db, people):
    svc = CaseService(notifier=BrokenNotifier(), clock=FakeClock())
    case = submitted_case(db, svc, people)

    db.expire_all()
    assert svc.get_case(db, case.case_id).status == CaseStatus.submitted.value


def test_duplicate_case_id_is_a_conflict(db, people):
    fixed = datetime(2025, 6, 1, 8, 30, tzinfo=timezone.utc)
    svc = CaseService(clock=lambda: fixed)
    svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))

    with pytest.raises(ConflictError):
        svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))


def test_stale_version_is_a_conflict(db, svc, people):
    case = svc.create_case(db, people["family"], family_data=dict(COMPLETE_FAMILY))

    # someone else saved the row in the meantime
    db.execute(
        update(Case)
        .where(Case.id == case.id)
        .values(version=Case.version + 1)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConflictError):
        svc.submit_case(db, people["family"], case.case_id)

    db.expire_all()
    assert svc.get_case(db, case.case_id).status == CaseStatus.draft.value


def test_audit_entries_cannot_be_updated(db, svc, people):
    case = submitted_case(db, svc, people)
    entry = db.execute(select(CaseAuditEntry).where(CaseAuditEntry.case_pk == case.id)).scalar_one()

    entry.notes = "tampered"
    with pytest.raises(RuntimeError):
        db.commit()
    db.rollback()


def test_delete_draft_removes_row(db, svc, people):
    case = svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))
    svc.delete_draft(db, people["family"], case.case_id)

    with pytest.raises(NotFoundError):
        svc.get_case(db, case.case_id)


def test_unknown_case_is_not_found(db, svc):
    with pytest.raises(NotFoundError):
        svc.get_case(db, "SLA-2025-000000")


# ─────────────────────────────────────────────
# Visibility
# ─────────────────────────────────────────────

def test_family_sees_only_own_cases(db, svc, people):
    case = svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))
    svc.create_case(db, people["other_family"], family_data=dict(IDENTITY_ONLY))

    mine, total = svc.list_my_cases(db, people["family"])
    assert total == 1 and mine[0].case_id == case.case_id

    with pytest.raises(AccessDeniedError):
        svc.get_case_for_viewer(db, people["other_family"], case.case_id)


def test_donor_sees_only_public_cases(db, svc, people):
    draft = svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))
    with pytest.raises(AccessDeniedError):
        svc.get_case_for_viewer(db, people["donor"], draft.case_id)

    approved = approved_case(db, svc, people)
    assert svc.get_case_for_viewer(db, people["donor"], approved.case_id) is approved


def test_donor_cannot_read_audit_log(db, svc, people):
    case = approved_case(db, svc, people)
    with pytest.raises(AccessDeniedError):
        svc.get_audit_log(db, people["donor"], case.case_id)


# ─────────────────────────────────────────────
# Queues and listings
# ─────────────────────────────────────────────

def test_checker_queue_shows_own_and_unassigned(db, svc, people):
    unassigned = submitted_case(db, svc, people)
    mine = submitted_case(db, svc, people)
    theirs = submitted_case(db, svc, people)
    svc.create_case(db, people["family"], family_data=dict(IDENTITY_ONLY))  # draft: never queued

    svc.assign_case(db, people["checker"], mine.case_id, checker_id=people["checker"].user_id)
    svc.assign_case(db, people["admin"], theirs.case_id, checker_id=people["checker2"].user_id)

    cases, total = svc.checker_queue(db, people["checker"])
    assert total == 2
    assert {c.case_id for c in cases} == {unassigned.case_id, mine.case_id}

    pending, _ = svc.checker_queue(db, people["checker"], status="pending")
    assert {c.case_id for c in pending} == {unassigned.case_id, mine.case_id}

    reviewing, _ = svc.checker_queue(db, people["checker"], status="under_review")
    assert [c.case_id for c in reviewing] == [mine.case_id]

    everything, admin_total = svc.checker_queue(db, people["admin"])
    assert admin_total == 3


def test_checker_queue_village_filter(db, svc, people):
    submitted_case(db, svc, people)
    khiam = submitted_case(db, svc, people, dict(COMPLETE_FAMILY, village="Khiam"))

    cases, total = svc.checker_queue(db, people["checker"], village="Khiam")
    assert total == 1 and cases[0].case_id == khiam.case_id


def test_public_listings_and_summary(db, svc, people):
    a = approved_case(db, svc, people, cost=5000)
    approved_case(db, svc, people, cost=3000)
    funded = approved_case(db, svc, people, cost=1000)
    svc.record_donation(db, people["donor"], a.case_id, amount=1000)
    svc.record_donation(db, people["donor"], funded.case_id, amount=1000)

    result = svc.list_approved(db, page=1, limit=1)
    assert result["total"] == 2
    assert result["pages"] == 2
    assert len(result["cases"]) == 1
    summary = result["summary"]
    assert summary["totalFamilies"] == 2
    assert summary["totalPeopleAffected"] == 10
    assert summary["totalFundingNeeded"] == Decimal("8000")
    assert summary["totalFundingRaised"] == Decimal("1000")
    assert summary["overallProgress"] == 13

    funded_list = svc.list_fully_funded(db)
    assert [c.case_id for c in funded_list["cases"]] == [funded.case_id]
    assert funded_list["summary"]["overallProgress"] == 100
