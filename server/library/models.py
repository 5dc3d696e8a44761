import uuid

from django.db import models
from django.utils import timezone

from users.models import User
from utils._enum import CONTENT_TYPES, DIFFICULTY, TASK_KIND, TASK_STATUS


class VotableContent(models.Model):
    hot_votes = models.IntegerField(default=0)
    cold_votes = models.IntegerField(default=0)
    # [{id, author_id, author_pseudonym, text, timestamp, hot_votes, cold_votes}]
    comments = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        abstract = True

    @property
    def temperature(self):
        return self.hot_votes - self.cold_votes


class Source(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="sources")
    title = models.CharField(max_length=300)
    summary = models.TextField(blank=True, default="")
    topic = models.CharField(max_length=120, blank=True, default="")
    subtopic = models.CharField(max_length=120, blank=True, default="")
    original_filename = models.JSONField(default=list, blank=True)
    storage_paths = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["topic"]), models.Index(fields=["created_at"])]

    def __str__(self):
        return self.title

    @property
    def is_apostila(self):
        return self.title.startswith("(Apostila)")


class Summary(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="summaries")
    title = models.CharField(max_length=300)
    content = models.TextField()
    key_points = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["created_at"]


class Flashcard(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="flashcards")
    front = models.TextField()
    back = models.TextField()

    class Meta:
        ordering = ["created_at"]


class Question(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="questions")
    question_text = models.TextField()
    options = models.JSONField(default=list)
    correct_answer = models.TextField()
    explanation = models.TextField(blank=True, default="")
    hints = models.JSONField(default=list, blank=True)
    difficulty = models.CharField(max_length=10, choices=DIFFICULTY, default="Médio")

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return self.question_text[:80]


class MindMap(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="mind_maps")
    title = models.CharField(max_length=300)
    image_url = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        ordering = ["created_at"]


class AudioSummary(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="audio_summaries")
    title = models.CharField(max_length=300)
    audio_url = models.CharField(max_length=500, blank=True, default="")
    storage_path = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        ordering = ["created_at"]


class LinkFile(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="links_files")
    title = models.CharField(max_length=300)
    description = models.TextField(blank=True, default="")
    url = models.URLField(max_length=1000, blank=True, default="")
    file_path = models.CharField(max_length=500, blank=True, default="")
    file_name = models.CharField(max_length=300, blank=True, default="")
    is_anki_deck = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]


class UserContentInteraction(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="content_interactions")
    content_type = models.CharField(max_length=20, choices=CONTENT_TYPES)
    content_id = models.UUIDField()
    is_read = models.BooleanField(default=False)
    is_favorite = models.BooleanField(default=False)
    hot_votes = models.IntegerField(default=0)
    cold_votes = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "content_type", "content_id"],
                name="uq_interaction_user_content",
            )
        ]
        indexes = [models.Index(fields=["user", "content_type"])]


class ProcessingTask(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="processing_tasks")
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    kind = models.CharField(max_length=10, choices=TASK_KIND, default="generate")
    status = models.CharField(max_length=12, choices=TASK_STATUS, default="pending")
    message = models.TextField(blank=True, default="")
    result = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def finish(self, status, message="", result=None):
        self.status = status
        self.message = message
        if result is not None:
            self.result = result
        self.finished_at = timezone.now()
        self.save(update_fields=["status", "message", "result", "finished_at"])
