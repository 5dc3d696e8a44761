from rest_framework import serializers

from questions.models import QuestionNotebook, UserNotebookInteraction, UserQuestionAnswer


class NotebookInteractionSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserNotebookInteraction
        fields = ("is_read", "is_favorite", "hot_votes", "cold_votes")


class NotebookSerializer(serializers.ModelSerializer):
    author = serializers.CharField(source="user.pseudonym", read_only=True, default=None)
    question_count = serializers.SerializerMethodField()
    resolved_count = serializers.SerializerMethodField()
    temperature = serializers.IntegerField(read_only=True)
    interaction = serializers.SerializerMethodField()

    class Meta:
        model = QuestionNotebook
        fields = ("id", "name", "author", "question_ids", "question_count", "resolved_count",
                  "hot_votes", "cold_votes", "temperature", "comments", "created_at", "interaction")
        read_only_fields = ("hot_votes", "cold_votes", "comments", "created_at")

    def get_question_count(self, obj):
        return len(obj.question_ids or [])

    def get_resolved_count(self, obj):
        return getattr(obj, "resolved_count", 0)

    def get_interaction(self, obj):
        inter = (self.context.get("interactions") or {}).get(obj.pk)
        if inter is None:
            return {"is_read": False, "is_favorite": False, "hot_votes": 0, "cold_votes": 0}
        return NotebookInteractionSerializer(inter).data


class NotebookCreateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True, default="")
    question_count = serializers.IntegerField(required=False, min_value=1, max_value=500, default=40)
    prompt = serializers.CharField(required=False, allow_blank=True, default="")
    source_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    exclude_answered = serializers.BooleanField(required=False, default=False)
    prioritize_wrong_and_favorites = serializers.BooleanField(required=False, default=True)


class AnswerSerializer(serializers.ModelSerializer):
    question_id = serializers.UUIDField(source="question.pk", read_only=True)
    is_correct = serializers.BooleanField(read_only=True)

    class Meta:
        model = UserQuestionAnswer
        fields = ("id", "notebook_id", "question_id", "attempts", "is_correct", "is_correct_first_try",
                  "xp_awarded", "timestamp")
        read_only_fields = fields


class AnswerSubmitSerializer(serializers.Serializer):
    question_id = serializers.UUIDField()
    attempts = serializers.ListField(child=serializers.CharField(trim_whitespace=False), min_length=1, max_length=10)


class ClearAnswersSerializer(serializers.Serializer):
    question_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)


class NotebookQuestionSerializer(serializers.Serializer):
    """A question as shown inside a notebook, with the caller's saved answer."""
    id = serializers.UUIDField()
    source_id = serializers.UUIDField()
    source_title = serializers.CharField(source="source.title")
    question_text = serializers.CharField()
    options = serializers.SerializerMethodField()
    difficulty = serializers.CharField()
    hot_votes = serializers.IntegerField()
    cold_votes = serializers.IntegerField()
    answer = serializers.SerializerMethodField()
    revealed = serializers.SerializerMethodField()

    def get_options(self, obj):
        shuffled = self.context.get("shuffled_options") or {}
        return shuffled.get(str(obj.pk), obj.options)

    def _answer(self, obj):
        return (self.context.get("answers") or {}).get(str(obj.pk))

    def get_answer(self, obj):
        answer = self._answer(obj)
        return AnswerSerializer(answer).data if answer else None

    def get_revealed(self, obj):
        # correct answer, explanation and hints only once the question is finished
        if not self._answer(obj):
            return None
        return {
            "correct_answer": obj.correct_answer,
            "explanation": obj.explanation,
            "hints": list(obj.hints or []),
        }
