"""Lead-time validation with a daily cutoff.

Machines that travel on a heavy truck need notice: the start date must be at
least ``lead_days`` calendar days after today (local time), and one more day
once the local clock reaches ``cutoff_hour``. Both "today" and the start date
are compared as calendar days in the deployment time zone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from rentally.infra.settings import LeadTimePolicy
from rentally.infra.time import local_now


class LeadTimeError(Exception):
    """Raised when a start date is earlier than the lead-time rule allows."""

    def __init__(self, earliest_allowed_day: date, min_days: int) -> None:
        self.earliest_allowed_day = earliest_allowed_day
        self.min_days = min_days
        super().__init__(
            f"start date must be on or after {earliest_allowed_day.isoformat()}"
        )


@dataclass(frozen=True)
class LeadTimeCheck:
    ok: bool
    earliest_allowed_day: date
    min_days: int


def required_days_with_cutoff(local_hour: int, policy: LeadTimePolicy) -> int:
    """Minimum days of notice given the local hour of the request."""
    return policy.lead_days + (1 if local_hour >= policy.cutoff_hour else 0)


def check_lead_time(
    start_date: date,
    policy: LeadTimePolicy,
    *,
    now: datetime,
    tz_name: str,
) -> LeadTimeCheck:
    """Evaluate the lead-time rule for ``start_date`` at instant ``now``."""
    local = local_now(tz_name, now)
    min_days = required_days_with_cutoff(local.hour, policy)
    earliest = local.date() + timedelta(days=min_days)
    return LeadTimeCheck(
        ok=start_date >= earliest,
        earliest_allowed_day=earliest,
        min_days=min_days,
    )


def enforce_lead_time(
    start_date: date,
    policy: LeadTimePolicy | None,
    *,
    now: datetime,
    tz_name: str,
) -> None:
    """Raise ``LeadTimeError`` when a policy applies and is violated."""
    if policy is None:
        return
    result = check_lead_time(start_date, policy, now=now, tz_name=tz_name)
    if not result.ok:
        raise LeadTimeError(result.earliest_allowed_day, result.min_days)
