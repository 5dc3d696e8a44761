from rest_framework import serializers

from assistant.models import StudyPlan
from library.references import parse_references


class StudyPlanSerializer(serializers.ModelSerializer):
    segments = serializers.SerializerMethodField()

    class Meta:
        model = StudyPlan
        fields = ("id", "content", "segments", "created_at")
        read_only_fields = fields

    def get_segments(self, obj):
        return parse_references(obj.content)


class FindContentSerializer(serializers.Serializer):
    view_name = serializers.CharField()
    search_term = serializers.CharField(allow_blank=True)


class NavigateSerializer(serializers.Serializer):
    view_name = serializers.CharField()
    item_id = serializers.CharField(required=False, allow_blank=True)
    sub_item_id = serializers.CharField(required=False, allow_blank=True)
    term = serializers.CharField(required=False, allow_blank=True)


class QueryTableSerializer(serializers.Serializer):
    table_name = serializers.CharField()
    columns = serializers.CharField(required=False, default="*")
    filter_column = serializers.CharField(required=False, allow_blank=True)
    filter_value = serializers.CharField(required=False, allow_blank=True)
