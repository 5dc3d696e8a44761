from django.db import models
from django.utils import timezone

from users.models import User
from utils._enum import MOODS

AI_AUTHOR = "IA"


class ChatMessage(models.Model):
    # null author + author_name "IA" for assistant replies
    author = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="chat_messages")
    author_name = models.CharField(max_length=60)
    text = models.TextField()
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    hot_votes = models.IntegerField(default=0)
    cold_votes = models.IntegerField(default=0)

    class Meta:
        ordering = ["timestamp", "id"]

    @property
    def is_ai(self):
        return self.author_id is None and self.author_name == AI_AUTHOR

    @property
    def temperature(self):
        return self.hot_votes - self.cold_votes


class UserMessageVote(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="message_votes")
    message = models.ForeignKey(ChatMessage, on_delete=models.CASCADE, related_name="votes")
    hot_votes = models.IntegerField(default=0)
    cold_votes = models.IntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "message"], name="uq_message_vote"),
        ]


class UserMood(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="mood")
    mood = models.CharField(max_length=20, choices=MOODS)
    updated_at = models.DateTimeField(auto_now=True)
