from rest_framework import serializers

from community.models import ChatMessage, UserMessageVote, UserMood
from library.references import parse_references


class ChatMessageSerializer(serializers.ModelSerializer):
    author_id = serializers.IntegerField(read_only=True)
    temperature = serializers.IntegerField(read_only=True)
    is_ai = serializers.BooleanField(read_only=True)
    segments = serializers.SerializerMethodField()
    my_vote = serializers.SerializerMethodField()

    class Meta:
        model = ChatMessage
        fields = ("id", "author_id", "author_name", "text", "segments", "timestamp",
                  "hot_votes", "cold_votes", "temperature", "is_ai", "my_vote")
        read_only_fields = fields

    def get_segments(self, obj):
        # chat only links summaries, flashcards and notebooks
        return parse_references(obj.text, resolve=self.context.get("resolve_references", True), allowed="#!?")

    def get_my_vote(self, obj):
        vote = (self.context.get("votes") or {}).get(obj.pk)
        if vote is None:
            return {"hot_votes": 0, "cold_votes": 0}
        return {"hot_votes": vote.hot_votes, "cold_votes": vote.cold_votes}


class ChatPostSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=4000)


class MoodSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserMood
        fields = ("mood", "updated_at")
        read_only_fields = ("updated_at",)


def votes_by_message(user, messages):
    qs = UserMessageVote.objects.filter(user=user, message__in=messages)
    return {v.message_id: v for v in qs}
