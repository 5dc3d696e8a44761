from rest_framework import serializers

from progress.models import XPEvent
from progress.services import PERIODS


class XPEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = XPEvent
        fields = ("id", "amount", "source", "content_id", "created_at")
        read_only_fields = fields


class LeaderboardQuerySerializer(serializers.Serializer):
    period = serializers.ChoiceField(choices=PERIODS, default="geral")
    limit = serializers.IntegerField(min_value=1, max_value=200, default=50)


class XPAdjustmentSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    amount = serializers.IntegerField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=64)

    def validate_amount(self, value):
        if value == 0:
            raise serializers.ValidationError("O valor não pode ser zero.")
        return value
