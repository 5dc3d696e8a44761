from django.db import models
from django.utils import timezone

from users.models import User
from utils._enum import XP_SOURCES


class XPEvent(models.Model):
    """Immutable ledger row; `User.xp` is always the sum of a user's events.
    e.g. source="QUESTION_ANSWER", content_id=<question uuid>.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="xp_events")
    amount = models.IntegerField()
    source = models.CharField(max_length=32, choices=XP_SOURCES)
    content_id = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"]),
            models.Index(fields=["user", "source", "content_id"]),
        ]

    def __str__(self):
        return f"XPEvent(user={self.user_id}, {self.source}:{self.content_id}, amount={self.amount})"
