from rest_framework import serializers

from library.models import (
    AudioSummary,
    Flashcard,
    LinkFile,
    MindMap,
    ProcessingTask,
    Question,
    Source,
    Summary,
    UserContentInteraction,
)
from library.services import link_file_href


class InteractionSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserContentInteraction
        fields = ("is_read", "is_favorite", "hot_votes", "cold_votes")


EMPTY_INTERACTION = {"is_read": False, "is_favorite": False, "hot_votes": 0, "cold_votes": 0}


class InteractionMixin(serializers.Serializer):
    """Reads the caller's interaction from context["interactions"] ({str(id): obj})."""
    interaction = serializers.SerializerMethodField()
    temperature = serializers.IntegerField(read_only=True)

    def get_interaction(self, obj):
        inter = (self.context.get("interactions") or {}).get(str(obj.pk))
        return InteractionSerializer(inter).data if inter else dict(EMPTY_INTERACTION)


VOTABLE_FIELDS = ("hot_votes", "cold_votes", "temperature", "comments", "created_at", "interaction")
VOTABLE_READ_ONLY = ("hot_votes", "cold_votes", "comments", "created_at")


class SummarySerializer(InteractionMixin, serializers.ModelSerializer):
    class Meta:
        model = Summary
        fields = ("id", "source", "title", "content", "key_points") + VOTABLE_FIELDS
        read_only_fields = VOTABLE_READ_ONLY


class FlashcardSerializer(InteractionMixin, serializers.ModelSerializer):
    class Meta:
        model = Flashcard
        fields = ("id", "source", "front", "back") + VOTABLE_FIELDS
        read_only_fields = VOTABLE_READ_ONLY


class QuestionSerializer(InteractionMixin, serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = ("id", "source", "question_text", "options", "correct_answer", "explanation",
                  "hints", "difficulty") + VOTABLE_FIELDS
        read_only_fields = VOTABLE_READ_ONLY

    def validate(self, attrs):
        options = attrs.get("options", getattr(self.instance, "options", []))
        correct = attrs.get("correct_answer", getattr(self.instance, "correct_answer", None))
        if not isinstance(options, list) or len(options) < 2:
            raise serializers.ValidationError({"options": "Informe ao menos duas alternativas."})
        if correct not in options:
            raise serializers.ValidationError({"correct_answer": "A resposta correta precisa estar entre as alternativas."})
        return attrs


class MindMapSerializer(InteractionMixin, serializers.ModelSerializer):
    class Meta:
        model = MindMap
        fields = ("id", "source", "title", "image_url") + VOTABLE_FIELDS
        read_only_fields = VOTABLE_READ_ONLY


class AudioSummarySerializer(InteractionMixin, serializers.ModelSerializer):
    class Meta:
        model = AudioSummary
        fields = ("id", "source", "title", "audio_url") + VOTABLE_FIELDS
        read_only_fields = VOTABLE_READ_ONLY


class SourceSerializer(InteractionMixin, serializers.ModelSerializer):
    author = serializers.CharField(source="user.pseudonym", read_only=True, default=None)
    summaries = SummarySerializer(many=True, read_only=True)
    flashcards = FlashcardSerializer(many=True, read_only=True)
    questions = QuestionSerializer(many=True, read_only=True)
    mind_maps = MindMapSerializer(many=True, read_only=True)
    audio_summaries = AudioSummarySerializer(many=True, read_only=True)

    class Meta:
        model = Source
        fields = (
            "id", "author", "title", "summary", "topic", "subtopic", "original_filename",
            "summaries", "flashcards", "questions", "mind_maps", "audio_summaries",
        ) + VOTABLE_FIELDS
        read_only_fields = ("original_filename",) + VOTABLE_READ_ONLY


class SourceWriteSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=300)
    summary = serializers.CharField(required=False, allow_blank=True, default="")
    topic = serializers.CharField(required=False, allow_blank=True, default="")
    subtopic = serializers.CharField(required=False, allow_blank=True, default="")
    files = serializers.ListField(child=serializers.FileField(), required=False, default=list)
    generate = serializers.BooleanField(required=False, default=False)


class GeneratedContentSerializer(serializers.Serializer):
    summaries = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    flashcards = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    questions = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    mind_maps = serializers.ListField(child=serializers.DictField(), required=False, default=list)


class AudioUploadSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=300)
    file = serializers.FileField(required=False)
    audio_url = serializers.CharField(required=False, allow_blank=True, default="")


class ProcessingTaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProcessingTask
        fields = ("id", "source", "kind", "status", "message", "result", "created_at", "finished_at")
        read_only_fields = fields


class InteractionUpdateSerializer(serializers.Serializer):
    is_read = serializers.BooleanField(required=False)
    is_favorite = serializers.BooleanField(required=False)


class VoteSerializer(serializers.Serializer):
    vote_type = serializers.ChoiceField(choices=("hot", "cold"))
    increment = serializers.ChoiceField(choices=(1, -1), default=1)


class CommentSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=2000)


class CommentVoteSerializer(serializers.Serializer):
    vote_type = serializers.ChoiceField(choices=("hot", "cold"))


class LinkFileSerializer(InteractionMixin, serializers.ModelSerializer):
    author = serializers.CharField(source="user.pseudonym", read_only=True)
    href = serializers.SerializerMethodField()
    file = serializers.FileField(write_only=True, required=False)

    class Meta:
        model = LinkFile
        fields = ("id", "author", "title", "description", "url", "file", "file_name", "href",
                  "is_anki_deck") + VOTABLE_FIELDS
        read_only_fields = ("file_name",) + VOTABLE_READ_ONLY

    def get_href(self, obj):
        return link_file_href(obj)
