"""
Daily question usage per user.
"""
from django.db import models


class UsageRecord(models.Model):
    """
    Questions asked by one user on one (server-local) calendar day.

    Rows are created on the first question of the day and only ever
    incremented.
    """
    owner_user_id = models.CharField(
        max_length=255,
        help_text="User ID (sub claim)"
    )
    date = models.DateField(
        help_text="Server-local calendar date"
    )
    questions_used = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'rag_usage'
        constraints = [
            models.UniqueConstraint(
                fields=['owner_user_id', 'date'],
                name='unique_usage_per_user_day'
            )
        ]

    def __str__(self):
        return f"{self.owner_user_id} {self.date}: {self.questions_used}"
