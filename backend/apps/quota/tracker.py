"""
Per-user, per-day question quota.

The counter is reserved with a single conditional UPDATE
(``questions_used < limit``), so two concurrent requests at the limit
cannot both be admitted.
"""
import logging
from dataclasses import dataclass
from datetime import date as date_type
from typing import Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from apps.rag.errors import StorageError
from .models import UsageRecord

logger = logging.getLogger(__name__)


@dataclass
class QuotaReservation:
    """Outcome of a quota check."""
    allowed: bool
    used: int
    remaining: int


class QuotaTracker:
    """Reserves questions against the daily limit in durable storage."""

    def __init__(self, using: str = 'default'):
        self.using = using

    def _increment_below(self, owner_id: str, day: date_type, daily_limit: int) -> Optional[int]:
        """Add one to an existing row under the ceiling; return the new count or None."""
        rows = UsageRecord.objects.using(self.using).filter(
            owner_user_id=owner_id,
            date=day,
            questions_used__lt=daily_limit,
        )
        if rows.update(questions_used=F('questions_used') + 1) == 0:
            return None
        return UsageRecord.objects.using(self.using).values_list(
            'questions_used', flat=True
        ).get(owner_user_id=owner_id, date=day)

    def _current(self, owner_id: str, day: date_type) -> Optional[int]:
        return UsageRecord.objects.using(self.using).filter(
            owner_user_id=owner_id, date=day
        ).values_list('questions_used', flat=True).first()

    def reserve(self, owner_id: str, day: date_type, daily_limit: int) -> QuotaReservation:
        """
        Consume one question for ``owner_id`` on ``day`` if the limit allows.

        The reservation is made before any retrieval or generation work, so
        a question that fails later still counts.

        Raises:
            StorageError: If the usage table cannot be read or written
        """
        try:
            with transaction.atomic(using=self.using):
                new_used = self._increment_below(owner_id, day, daily_limit)

                if new_used is None:
                    current = self._current(owner_id, day)
                    if current is not None or daily_limit <= 0:
                        used = current or 0
                        logger.info(f"Daily limit reached for user {owner_id}: {used}/{daily_limit}")
                        return QuotaReservation(allowed=False, used=used, remaining=0)

                    # First question of the day
                    try:
                        with transaction.atomic(using=self.using):
                            UsageRecord.objects.using(self.using).create(
                                owner_user_id=owner_id, date=day, questions_used=1
                            )
                        new_used = 1
                    except IntegrityError:
                        # A concurrent request created the row first
                        new_used = self._increment_below(owner_id, day, daily_limit)
                        if new_used is None:
                            return QuotaReservation(
                                allowed=False,
                                used=self._current(owner_id, day) or daily_limit,
                                remaining=0,
                            )
        except DatabaseError as e:
            logger.error(f"Usage update failed for user {owner_id}: {e}")
            raise StorageError("Failed to update question usage", detail=str(e))

        return QuotaReservation(
            allowed=True,
            used=new_used,
            remaining=max(0, daily_limit - new_used),
        )

    def peek(self, owner_id: str, day: date_type, daily_limit: int) -> QuotaReservation:
        """Read today's counters without consuming a question."""
        try:
            used = self._current(owner_id, day) or 0
        except DatabaseError as e:
            logger.error(f"Usage read failed for user {owner_id}: {e}")
            raise StorageError("Failed to read question usage", detail=str(e))

        return QuotaReservation(
            allowed=used < daily_limit,
            used=used,
            remaining=max(0, daily_limit - used),
        )
