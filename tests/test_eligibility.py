from datetime import date, datetime
from types import SimpleNamespace

import pytest

from donorhub.services.eligibility import eligibility_summary, evaluate_eligibility, next_eligible_date
from donorhub.services.errors import InvalidInputError


def profile(**fields):
    defaults = dict(
        last_donation_date=None,
        is_deferred_temporary=False,
        deferral_end_date=None,
        deferral_reason=None,
        is_deferred_permanent=False,
    )
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def test_first_time_donor_is_eligible():
    result = evaluate_eligibility(profile(), as_of=date(2024, 6, 1))

    assert result.eligible
    assert result.reasons == []
    assert result.next_eligible_date is None


def test_permanent_deferral_always_wins():
    donor = profile(
        is_deferred_permanent=True,
        deferral_reason="Positive hepatitis B screening",
        is_deferred_temporary=True,
        deferral_end_date=date(2024, 7, 1),
        last_donation_date=date(2024, 5, 20),
    )

    result = evaluate_eligibility(donor, as_of=date(2024, 6, 1))

    assert not result.eligible
    assert result.next_eligible_date is None
    assert result.reasons == ["Positive hepatitis B screening"]
    assert result.permanent_deferrals[0].reason == "Positive hepatitis B screening"
    assert result.temporary_deferrals == []


def test_active_temporary_deferral_reports_end_date():
    donor = profile(is_deferred_temporary=True, deferral_end_date=date(2024, 6, 15), deferral_reason="Recent travel")

    result = evaluate_eligibility(donor, as_of=date(2024, 6, 1))

    assert not result.eligible
    assert result.next_eligible_date == date(2024, 6, 15)
    assert "2024-06-15" in result.reasons[0]


def test_expired_temporary_deferral_is_ignored():
    donor = profile(is_deferred_temporary=True, deferral_end_date=date(2024, 6, 1))

    assert evaluate_eligibility(donor, as_of=date(2024, 6, 1)).eligible


def test_deferral_is_checked_at_its_own_instant():
    donor = profile(is_deferred_temporary=True, deferral_end_date=date(2024, 6, 5), last_donation_date=date(2024, 4, 1))

    deferred = evaluate_eligibility(donor, as_of=date(2024, 6, 10), deferral_as_of=date(2024, 6, 1))
    cleared = evaluate_eligibility(donor, as_of=date(2024, 6, 10), deferral_as_of=date(2024, 6, 6))

    assert not deferred.eligible
    assert deferred.next_eligible_date == date(2024, 6, 5)
    assert cleared.eligible


def test_temporary_deferral_without_end_date_does_not_defer():
    donor = profile(is_deferred_temporary=True, deferral_end_date=None)

    assert evaluate_eligibility(donor, as_of=date(2024, 6, 1)).eligible


@pytest.mark.parametrize("days_since, eligible", [(55, False), (56, True), (90, True)])
def test_minimum_interval_boundary(days_since, eligible):
    last = date(2024, 1, 1)
    as_of = date.fromordinal(last.toordinal() + days_since)

    result = evaluate_eligibility(profile(last_donation_date=last), as_of=as_of)

    assert result.eligible is eligible


def test_interval_reports_next_eligible_date():
    result = evaluate_eligibility(profile(last_donation_date=date(2024, 1, 1)), as_of=date(2024, 2, 1))

    assert not result.eligible
    assert result.next_eligible_date == date(2024, 2, 26)
    assert result.reasons == ["Must wait 25 more days since last donation"]


def test_explicit_last_donation_overrides_profile():
    donor = profile(last_donation_date=date(2023, 1, 1))

    result = evaluate_eligibility(donor, last_donation_date="2024-05-20", as_of=datetime(2024, 6, 1, 10, 0))

    assert not result.eligible
    assert result.next_eligible_date == date(2024, 7, 15)


def test_custom_interval():
    result = evaluate_eligibility(profile(last_donation_date=date(2024, 1, 1)), as_of=date(2024, 2, 1),
                                  interval_days=28)

    assert result.eligible


def test_malformed_date_is_rejected():
    with pytest.raises(InvalidInputError) as exc:
        evaluate_eligibility(profile(last_donation_date="01/05/2024"), as_of=date(2024, 6, 1))

    assert exc.value.details["field"] == "last_donation_date"


def test_evaluation_is_repeatable():
    donor = profile(last_donation_date=date(2024, 5, 1))

    first = evaluate_eligibility(donor, as_of=date(2024, 6, 1))
    second = evaluate_eligibility(donor, as_of=date(2024, 6, 1))

    assert first == second
    assert donor.last_donation_date == date(2024, 5, 1)


def test_next_eligible_date():
    assert next_eligible_date(date(2024, 1, 1)) == date(2024, 2, 26)
    assert next_eligible_date("2024-01-01", interval_days=7) == date(2024, 1, 8)


def test_summary_messages():
    eligible = eligibility_summary(evaluate_eligibility(profile(), as_of=date(2024, 6, 1)))
    deferred = eligibility_summary(evaluate_eligibility(profile(is_deferred_permanent=True), as_of=date(2024, 6, 1)))
    waiting = eligibility_summary(
        evaluate_eligibility(profile(last_donation_date=date(2024, 5, 1)), as_of=date(2024, 6, 1))
    )

    assert eligible.status == "eligible"
    assert deferred.status == "permanently_deferred"
    assert waiting.status == "temporarily_deferred"
    assert waiting.next_eligible_date == date(2024, 6, 26)
