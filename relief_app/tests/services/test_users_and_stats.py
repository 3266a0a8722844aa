from decimal import Decimal

import pytest

from conftest import COMPLETE_FAMILY, IDENTITY_ONLY, FakeClock, principal_of
from relief_app.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from relief_app.models.enums import CreationMethod, UserRole
from relief_app.services.case_service import CaseService
from relief_app.services.stats_service import StatsService
from relief_app.services.user_service import UserService


class RecordingNotifier:
    def __init__(self):
        self.accounts = []

    def account_created(self, user, created_by=None):
        self.accounts.append((user.email, created_by))


@pytest.fixture
def admin(add_user):
    return principal_of(add_user(UserRole.ADMIN))


# ─────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────

def test_admin_creates_checker(db, admin):
    notifier = RecordingNotifier()
    users = UserService(notifier=notifier)

    checker = users.create_checker(
        db, admin,
        email="  Rana@Example.org ", password="s3cret-pass",
        first_name="Rana", last_name="Khalil",
    )

    assert checker.email == "rana@example.org"
    assert checker.role == UserRole.CHECKER.value
    assert checker.creation_method == CreationMethod.admin_created.value
    assert str(checker.created_by) == admin.user_id
    assert checker.password_hash != "s3cret-pass"
    assert notifier.accounts == [("rana@example.org", admin.user_id)]
    assert [u.id for u in users.list_checkers(db)] == [checker.id]


def test_only_admin_creates_checkers(db, add_user):
    checker = principal_of(add_user(UserRole.CHECKER))
    with pytest.raises(AccessDeniedError):
        UserService().create_checker(
            db, checker, email="x@example.org", password="pw", first_name="X", last_name="Y"
        )


def test_duplicate_email_is_a_conflict(db, admin):
    users = UserService()
    users.create_checker(db, admin, email="dup@example.org", password="pw", first_name="A", last_name="B")
    with pytest.raises(ConflictError):
        users.create_checker(db, admin, email="DUP@example.org", password="pw", first_name="C", last_name="D")


def test_list_checkers_by_active_flag(db, add_user):
    active = add_user(UserRole.CHECKER)
    inactive = add_user(UserRole.CHECKER, active=False)
    add_user(UserRole.FAMILY)

    users = UserService()
    assert [u.id for u in users.list_checkers(db, active=True)] == [active.id]
    assert [u.id for u in users.list_checkers(db, active=False)] == [inactive.id]
    assert len(users.list_checkers(db)) == 2


def test_authenticate(db):
    users = UserService()
    user = users.create_user(
        db, email="family@example.org", password="right-password",
        first_name="Maya", last_name="Haddad", role=UserRole.FAMILY,
    )

    assert users.authenticate(db, "family@example.org", "wrong-password") is None
    assert users.authenticate(db, "nobody@example.org", "right-password") is None

    principal = users.authenticate(db, "FAMILY@example.org", "right-password")
    assert principal.user_id == str(user.id)
    assert principal.role == UserRole.FAMILY
    assert principal.display_name == "Maya Haddad"
    assert user.last_login_at is not None


def test_inactive_user_cannot_authenticate(db):
    users = UserService()
    user = users.create_user(
        db, email="gone@example.org", password="pw",
        first_name="G", last_name="One", role=UserRole.CHECKER,
    )
    user.is_active = False
    db.commit()

    assert users.authenticate(db, "gone@example.org", "pw") is None


def test_family_registers_and_is_announced(db):
    notifier = RecordingNotifier()
    users = UserService(notifier=notifier)

    user = users.register(
        db, email="Layla@Example.org", password="family-pass",
        first_name="Layla", last_name="Saad", role=UserRole.FAMILY,
    )

    assert user.role == UserRole.FAMILY.value
    assert user.creation_method == CreationMethod.self_registration.value
    assert user.created_by is None
    assert notifier.accounts == [("layla@example.org", None)]
    assert users.authenticate(db, "layla@example.org", "family-pass").role == UserRole.FAMILY


@pytest.mark.parametrize("role", [UserRole.CHECKER, UserRole.ADMIN])
def test_staff_roles_cannot_self_register(db, role):
    with pytest.raises(ValidationError):
        UserService().register(
            db, email="staff@example.org", password="pw-123456",
            first_name="S", last_name="T", role=role,
        )
    assert UserService().get_by_email(db, "staff@example.org") is None


def test_register_duplicate_email_is_a_conflict(db):
    users = UserService()
    users.register(db, email="d@example.org", password="pw-123456", first_name="A", last_name="B", role=UserRole.DONOR)
    with pytest.raises(ConflictError):
        users.register(db, email="D@example.org", password="pw-123456", first_name="C", last_name="D", role=UserRole.FAMILY)


def test_admin_deactivates_and_reactivates_checker(db, add_user, admin):
    checker_user = add_user(UserRole.CHECKER)
    users = UserService()

    users.set_checker_active(db, admin, str(checker_user.id), False)
    assert users.list_checkers(db, active=True) == []

    users.set_checker_active(db, admin, str(checker_user.id), True)
    assert [u.id for u in users.list_checkers(db, active=True)] == [checker_user.id]


def test_checker_status_guards(db, add_user, admin):
    checker = principal_of(add_user(UserRole.CHECKER))
    family_user = add_user(UserRole.FAMILY)
    users = UserService()

    with pytest.raises(AccessDeniedError):
        users.set_checker_active(db, checker, checker.user_id, False)
    with pytest.raises(NotFoundError):
        users.set_checker_active(db, admin, str(family_user.id), False)
    with pytest.raises(ValidationError):
        users.set_checker_active(db, admin, "not-a-uuid", False)


def test_deactivated_checker_cannot_be_assigned(db, add_user, admin):
    family = principal_of(add_user(UserRole.FAMILY))
    checker_user = add_user(UserRole.CHECKER)
    cases = CaseService(clock=FakeClock())
    case = cases.create_case(db, family, family_data=dict(COMPLETE_FAMILY))
    cases.submit_case(db, family, case.case_id)

    UserService().set_checker_active(db, admin, str(checker_user.id), False)

    with pytest.raises(NotFoundError):
        cases.assign_case(db, admin, case.case_id, checker_id=str(checker_user.id))
    assert cases.get_case(db, case.case_id).status == "submitted"


# ─────────────────────────────────────────────
# Dashboards
# ─────────────────────────────────────────────

def test_overview_counts_and_villages(db, add_user, admin):
    family = principal_of(add_user(UserRole.FAMILY))
    checker = principal_of(add_user(UserRole.CHECKER))
    donor = principal_of(add_user(UserRole.DONOR))
    cases = CaseService(clock=FakeClock())

    cases.create_case(db, family, family_data=dict(IDENTITY_ONLY))

    pending = cases.create_case(db, family, family_data=dict(COMPLETE_FAMILY))
    cases.submit_case(db, family, pending.case_id)

    approved = cases.create_case(db, family, family_data=dict(COMPLETE_FAMILY))
    cases.submit_case(db, family, approved.case_id)
    cases.decide_case(
        db, checker, approved.case_id, decision="approved", comments="verified on site",
        final_damage_percentage=70, estimated_cost=4000,
    )
    cases.record_donation(db, donor, approved.case_id, amount=1000)

    stats = StatsService().overview(db)

    assert stats.totalCases == 3
    assert stats.byStatus["draft"] == 1
    assert stats.byStatus["submitted"] == 1
    assert stats.byStatus["approved"] == 1
    assert stats.byStatus["fully_funded"] == 0
    assert stats.totalFundingNeeded == Decimal("4000")
    assert stats.totalFundingRaised == Decimal("1000")

    assert len(stats.villages) == 1
    village = stats.villages[0]
    assert village.village == "Bint Jbeil"
    assert (village.totalCases, village.pendingCases, village.approvedCases, village.rejectedCases) == (2, 1, 1, 0)


def test_checker_stats(db, add_user, admin):
    family = principal_of(add_user(UserRole.FAMILY))
    checker = principal_of(add_user(UserRole.CHECKER))
    cases = CaseService(clock=FakeClock())

    def submitted():
        case = cases.create_case(db, family, family_data=dict(COMPLETE_FAMILY))
        return cases.submit_case(db, family, case.case_id)

    reviewing = submitted()
    cases.assign_case(db, admin, reviewing.case_id, checker_id=checker.user_id)

    rejected = submitted()
    cases.assign_case(db, checker, rejected.case_id, checker_id=checker.user_id)
    cases.decide_case(
        db, checker, rejected.case_id, decision="rejected", comments="house was not damaged",
    )

    submitted()  # still open to anyone

    stats = StatsService().checker_stats(db, checker.user_id)

    assert stats.totalAssigned == 2
    assert stats.pending == 1
    assert stats.rejected == 1
    assert stats.approved == 0
    assert stats.availableCases == 1
    assert stats.avgReviewHours is not None and stats.avgReviewHours > 0
