"""Tests for mapping gate rejections onto HTTP responses."""

import json
from datetime import date

import pytest

from rentally.api.errors import lock_timeout_response, rejection_response
from rentally.domain.lead_time import LeadTimeError
from rentally.domain.reservations import OverlapError, Rejected, RejectionKind


def _body(response):
    return json.loads(response.body)


def test_overlap_is_409():
    error = OverlapError(1, date(2026, 11, 10), date(2026, 11, 12))
    response = rejection_response(Rejected(RejectionKind.OVERLAP, error))

    assert response.status_code == 409
    assert _body(response)["error"] == "overlap"


def test_lead_time_is_422_with_earliest_day():
    error = LeadTimeError(date(2026, 11, 5), 2)
    response = rejection_response(Rejected(RejectionKind.LEAD_TIME, error))

    assert response.status_code == 422
    assert _body(response)["earliest_allowed_day"] == "2026-11-05"
    assert _body(response)["min_days"] == 2


def test_lead_time_kind_with_wrong_error_raises():
    error = OverlapError(1, date(2026, 11, 10), date(2026, 11, 12))

    with pytest.raises(TypeError, match="OverlapError"):
        rejection_response(Rejected(RejectionKind.LEAD_TIME, error))


def test_lock_timeout_sets_retry_after():
    response = lock_timeout_response()

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "2"
