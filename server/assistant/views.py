import json
import logging

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from assistant.models import StudyPlan
from assistant.serializers import (
    FindContentSerializer,
    NavigateSerializer,
    QueryTableSerializer,
    StudyPlanSerializer,
)
from assistant.services import tools
from assistant.services.gemini import AIServiceError
from assistant.services.study_plan import generate_study_plan

logger = logging.getLogger(__name__)


class StudyPlanViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    GET  /study-plans/       own plans, newest first
    POST /study-plans/       generate a new plan (502 when the AI fails)
    """
    serializer_class = StudyPlanSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return StudyPlan.objects.filter(user=self.request.user)

    @extend_schema(request=None, responses=StudyPlanSerializer)
    def create(self, request, *args, **kwargs):
        try:
            plan = generate_study_plan(request.user)
        except AIServiceError as e:
            logger.warning("study plan failed user=%s: %s", request.user.pk, e)
            return Response({"detail": str(e)}, status=status.HTTP_502_BAD_GATEWAY)
        request.user.refresh_from_db(fields=["xp"])
        data = StudyPlanSerializer(plan).data
        data["xp"] = request.user.xp
        return Response(data, status=status.HTTP_201_CREATED)


class FindContentView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=FindContentSerializer, responses=dict)
    def post(self, request):
        ser = FindContentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = tools.find_content(ser.validated_data["view_name"], ser.validated_data["search_term"])
        return Response({"results": json.loads(result)})


class NavigateView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=NavigateSerializer, responses=dict)
    def post(self, request):
        ser = NavigateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        d = ser.validated_data
        message, command = tools.navigate_to(
            request.user, d["view_name"], d.get("item_id") or None, d.get("sub_item_id") or None, d.get("term") or None,
        )
        code = status.HTTP_200_OK if command else status.HTTP_404_NOT_FOUND
        return Response({"message": message, "command": command}, status=code)


class QueryTableView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=QueryTableSerializer, responses=dict)
    def post(self, request):
        ser = QueryTableSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        d = ser.validated_data
        result = json.loads(tools.query_table(
            d["table_name"], d.get("columns") or "*", d.get("filter_column") or None, d.get("filter_value"),
        ))
        if isinstance(result, dict) and "error" in result:
            return Response({"detail": result["error"]}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"rows": result})
