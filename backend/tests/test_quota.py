"""
Tests for the daily question quota.
"""
from datetime import date, timedelta

import pytest

from apps.quota.models import UsageRecord
from apps.quota.tracker import QuotaTracker

TODAY = date(2026, 3, 1)
LIMIT = 7


@pytest.mark.django_db
class TestQuotaReserve:
    """Tests for reserving a question."""

    def test_first_question_of_the_day_creates_row(self):
        result = QuotaTracker().reserve("user-1", TODAY, LIMIT)

        assert result.allowed is True
        assert result.used == 1
        assert result.remaining == LIMIT - 1
        assert UsageRecord.objects.get(owner_user_id="user-1", date=TODAY).questions_used == 1

    def test_increments_existing_row(self):
        UsageRecord.objects.create(owner_user_id="user-1", date=TODAY, questions_used=3)

        result = QuotaTracker().reserve("user-1", TODAY, LIMIT)

        assert (result.allowed, result.used, result.remaining) == (True, 4, LIMIT - 4)

    def test_last_question_admitted_then_refused(self):
        """At limit-1 one more is allowed; the next is refused without increment."""
        UsageRecord.objects.create(owner_user_id="user-1", date=TODAY, questions_used=LIMIT - 1)
        tracker = QuotaTracker()

        last = tracker.reserve("user-1", TODAY, LIMIT)
        assert (last.allowed, last.used, last.remaining) == (True, LIMIT, 0)

        refused = tracker.reserve("user-1", TODAY, LIMIT)
        assert refused.allowed is False
        assert refused.remaining == 0
        assert UsageRecord.objects.get(owner_user_id="user-1", date=TODAY).questions_used == LIMIT

    def test_counters_are_per_user(self):
        UsageRecord.objects.create(owner_user_id="user-1", date=TODAY, questions_used=LIMIT)

        result = QuotaTracker().reserve("user-2", TODAY, LIMIT)

        assert result.allowed is True
        assert result.used == 1

    def test_counters_are_per_day(self):
        yesterday = TODAY - timedelta(days=1)
        UsageRecord.objects.create(owner_user_id="user-1", date=yesterday, questions_used=LIMIT)

        result = QuotaTracker().reserve("user-1", TODAY, LIMIT)

        assert result.allowed is True
        assert UsageRecord.objects.get(owner_user_id="user-1", date=yesterday).questions_used == LIMIT

    def test_zero_limit_refuses_without_row(self):
        result = QuotaTracker().reserve("user-1", TODAY, 0)

        assert result.allowed is False
        assert not UsageRecord.objects.exists()


@pytest.mark.django_db
class TestQuotaPeek:
    """Tests for reading counters without consuming."""

    def test_no_row(self):
        result = QuotaTracker().peek("user-1", TODAY, LIMIT)

        assert (result.used, result.remaining) == (0, LIMIT)

    def test_does_not_increment(self):
        UsageRecord.objects.create(owner_user_id="user-1", date=TODAY, questions_used=2)

        result = QuotaTracker().peek("user-1", TODAY, LIMIT)

        assert (result.used, result.remaining) == (2, LIMIT - 2)
        assert UsageRecord.objects.get(owner_user_id="user-1", date=TODAY).questions_used == 2
