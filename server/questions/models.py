import uuid

from django.db import models
from django.utils import timezone

from library.models import Question, VotableContent
from users.models import User

ALL_QUESTIONS = "all_questions"
FAVORITES_NOTEBOOK = "favorites_notebook"
VIRTUAL_NOTEBOOKS = (ALL_QUESTIONS, FAVORITES_NOTEBOOK)


class QuestionNotebook(VotableContent):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="notebooks")
    name = models.CharField(max_length=200)
    # ordered question uuids (str)
    question_ids = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name


class UserNotebookInteraction(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="notebook_interactions")
    notebook = models.ForeignKey(QuestionNotebook, on_delete=models.CASCADE, related_name="interactions")
    is_read = models.BooleanField(default=False)
    is_favorite = models.BooleanField(default=False)
    hot_votes = models.IntegerField(default=0)
    cold_votes = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "notebook"], name="uq_notebook_interaction"),
        ]


class UserQuestionAnswer(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="question_answers")
    # notebook uuid, or one of VIRTUAL_NOTEBOOKS
    notebook_id = models.CharField(max_length=64)
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name="answers")
    attempts = models.JSONField(default=list)
    is_correct_first_try = models.BooleanField(default=False)
    xp_awarded = models.IntegerField(default=0)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "notebook_id", "question"],
                name="uq_answer_user_notebook_question",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "notebook_id"]),
            models.Index(fields=["question", "is_correct_first_try"]),
        ]
        ordering = ["timestamp"]

    @property
    def final_option(self):
        return self.attempts[-1] if self.attempts else None

    @property
    def is_correct(self):
        return bool(self.attempts) and self.attempts[-1] == self.question.correct_answer
