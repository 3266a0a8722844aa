from decimal import Decimal

import pytest

from conftest import COMPLETE_FAMILY
from relief_app.core.errors import AccessDeniedError, InvalidStateError, ValidationError
from relief_app.models.enums import CaseStatus
from relief_app.services.case_lifecycle import compute_donation_progress


@pytest.fixture
def approved_case(lifecycle, family, admin, checker):
    case = lifecycle.create_draft(family, dict(COMPLETE_FAMILY))
    lifecycle.submit(case, family)
    lifecycle.assign(case, checker.user_id, admin)
    lifecycle.decide(
        case, checker, "approved", "looks valid and complete",
        final_damage_percentage=80, estimated_cost=5000,
    )
    return case


@pytest.mark.parametrize(
    "raised,needed,expected",
    [
        (0, 0, 0),
        (500, 0, 0),
        (0, 5000, 0),
        (2500, 5000, 50),
        (1, 3, 33),
        (2, 3, 67),
        (1, 200, 1),      # 0.5 rounds up
        (4999, 5000, 100),
        (5000, 5000, 100),
        (9000, 5000, 100),
    ],
)
def test_compute_donation_progress(raised, needed, expected):
    assert compute_donation_progress(Decimal(raised), Decimal(needed)) == expected


def test_ledger_reaching_target_marks_fully_funded_once(lifecycle, approved_case):
    case = approved_case
    case.total_raised = Decimal("5000")

    lifecycle.recompute_donation_progress(case)

    assert case.donation_progress == 100
    assert case.status == CaseStatus.fully_funded.value
    funded_at = case.fully_funded_at
    assert funded_at is not None

    lifecycle.recompute_donation_progress(case)
    lifecycle.recompute_donation_progress(case)

    assert case.fully_funded_at == funded_at
    assert len(case.audit_entries_for("fully_funded")) == 1


def test_partial_funding_keeps_case_approved(lifecycle, approved_case):
    case = approved_case
    case.total_raised = Decimal("1250")

    lifecycle.recompute_donation_progress(case)

    assert case.donation_progress == 25
    assert case.status == CaseStatus.approved.value
    assert case.fully_funded_at is None


def test_recompute_is_noop_without_target(lifecycle, family):
    case = lifecycle.create_draft(family, dict(COMPLETE_FAMILY))
    case.total_raised = Decimal("100")

    lifecycle.recompute_donation_progress(case)

    assert case.donation_progress == 0
    assert case.status == CaseStatus.draft.value


def test_record_donation_accumulates_and_funds(lifecycle, approved_case, donor):
    case = approved_case

    lifecycle.record_donation(case, donor, Decimal("2000"))
    assert case.total_raised == Decimal("2000")
    assert case.donation_progress == 40
    assert case.status == CaseStatus.approved.value

    lifecycle.record_donation(case, donor, "3000")
    assert case.total_raised == Decimal("5000")
    assert case.status == CaseStatus.fully_funded.value

    donated = case.audit_entries_for("donated")
    assert [e.details_json["amount"] for e in donated] == ["2000", "3000"]
    assert donated[-1].details_json["totalRaised"] == "5000"


def test_no_donations_once_fully_funded(lifecycle, approved_case, donor):
    lifecycle.record_donation(approved_case, donor, 5000)
    with pytest.raises(InvalidStateError):
        lifecycle.record_donation(approved_case, donor, 10)
    assert approved_case.total_raised == Decimal("5000")


@pytest.mark.parametrize("amount", [0, -5, "abc"])
def test_record_donation_rejects_bad_amounts(lifecycle, approved_case, donor, amount):
    with pytest.raises(ValidationError):
        lifecycle.record_donation(approved_case, donor, amount)
    assert approved_case.total_raised == Decimal("0")


def test_family_cannot_record_donation(lifecycle, approved_case, family):
    with pytest.raises(AccessDeniedError):
        lifecycle.record_donation(approved_case, family, 100)


def test_cannot_donate_to_unapproved_case(lifecycle, family, donor):
    case = lifecycle.create_draft(family, dict(COMPLETE_FAMILY))
    lifecycle.submit(case, family)
    with pytest.raises(InvalidStateError):
        lifecycle.record_donation(case, donor, 100)
