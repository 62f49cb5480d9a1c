"""Tests for the overdue sweep scheduler."""

from datetime import datetime, timezone

import pytest

from backoffice.services.scheduler import lifespan, seconds_until


@pytest.mark.unit
class TestSecondsUntil:

    def test_later_today(self):
        now = datetime(2024, 1, 10, 0, 30, tzinfo=timezone.utc)
        assert seconds_until(1, now) == 30 * 60

    def test_already_past_runs_tomorrow(self):
        now = datetime(2024, 1, 10, 1, 0, tzinfo=timezone.utc)
        assert seconds_until(1, now) == 24 * 3600

    def test_crosses_month_end(self):
        now = datetime(2024, 1, 31, 23, 0, tzinfo=timezone.utc)
        assert seconds_until(1, now) == 2 * 3600


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lifespan_without_scheduler():
    """With the scheduler disabled the lifespan only manages shutdown."""
    async with lifespan(None):
        pass
