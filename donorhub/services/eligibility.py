# donorhub/services/eligibility.py
"""Donor eligibility rules.

Evaluation is a pure read of the donor profile: permanent deferral, then
an active temporary deferral, then the minimum interval since the last
whole-blood donation. The first rule that applies decides the verdict.
"""
from datetime import date, timedelta
from typing import List, Optional

from pydantic import BaseModel

from donorhub.config import settings
from donorhub.utils.clock import Clock
from donorhub.utils.dates import DateLike, parse_date, parse_datetime


class DeferralInfo(BaseModel):
    reason: str
    until: Optional[date] = None
    notes: Optional[str] = None


class EligibilityResult(BaseModel):
    eligible: bool
    reasons: List[str] = []
    next_eligible_date: Optional[date] = None
    temporary_deferrals: List[DeferralInfo] = []
    permanent_deferrals: List[DeferralInfo] = []


class EligibilitySummary(BaseModel):
    status: str  # eligible | temporarily_deferred | permanently_deferred
    message: str
    next_eligible_date: Optional[date] = None


def next_eligible_date(last_donation_date: DateLike, interval_days: int = None) -> date:
    """Earliest date a donor may give whole blood again."""
    interval = settings.DONATION_INTERVAL_DAYS if interval_days is None else interval_days
    return parse_date(last_donation_date, "last_donation_date") + timedelta(days=interval)


def evaluate_eligibility(
    profile,
    last_donation_date: Optional[DateLike] = None,
    as_of: Optional[DateLike] = None,
    interval_days: int = None,
    deferral_as_of: Optional[DateLike] = None,
) -> EligibilityResult:
    """Evaluate whether ``profile`` may donate on ``as_of`` (defaults to now).

    ``last_donation_date`` falls back to ``profile.last_donation_date``.
    Temporary deferrals are checked against ``deferral_as_of`` when given,
    so a booking made today honours a deferral that is active today.
    Raises InvalidInputError for malformed dates.
    """
    interval = settings.DONATION_INTERVAL_DAYS if interval_days is None else interval_days
    today = parse_datetime(as_of, "as_of").date() if as_of is not None else Clock().now().date()
    deferral_day = parse_datetime(deferral_as_of, "deferral_as_of").date() if deferral_as_of is not None else today
    if last_donation_date is None:
        last_donation_date = getattr(profile, "last_donation_date", None)
    last_donation = parse_date(last_donation_date, "last_donation_date")
    deferral_end = parse_date(getattr(profile, "deferral_end_date", None), "deferral_end_date")
    deferral_reason = getattr(profile, "deferral_reason", None)

    if getattr(profile, "is_deferred_permanent", False):
        reason = deferral_reason or "Permanently deferred from donating"
        return EligibilityResult(
            eligible=False,
            reasons=[reason],
            permanent_deferrals=[DeferralInfo(reason=reason)],
        )

    if getattr(profile, "is_deferred_temporary", False) and deferral_end and deferral_end > deferral_day:
        reason = deferral_reason or "Temporarily deferred from donating"
        return EligibilityResult(
            eligible=False,
            reasons=[f"{reason} (deferred until {deferral_end.isoformat()})"],
            next_eligible_date=deferral_end,
            temporary_deferrals=[DeferralInfo(reason=reason, until=deferral_end)],
        )

    if last_donation is not None:
        days_since = (today - last_donation).days
        if days_since < interval:
            until = last_donation + timedelta(days=interval)
            return EligibilityResult(
                eligible=False,
                reasons=[f"Must wait {interval - days_since} more days since last donation"],
                next_eligible_date=until,
                temporary_deferrals=[DeferralInfo(
                    reason="Minimum interval between donations not met",
                    until=until,
                    notes=f"Must wait {interval} days between whole blood donations",
                )],
            )

    return EligibilityResult(eligible=True)


def eligibility_summary(result: EligibilityResult) -> EligibilitySummary:
    if result.eligible:
        return EligibilitySummary(status="eligible", message="You are eligible to donate blood!")

    if result.permanent_deferrals:
        return EligibilitySummary(
            status="permanently_deferred",
            message=f"You are permanently deferred from donating: {result.permanent_deferrals[0].reason}",
        )

    return EligibilitySummary(
        status="temporarily_deferred",
        message=f"You are temporarily deferred: {result.reasons[0]}",
        next_eligible_date=result.next_eligible_date,
    )
