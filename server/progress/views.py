import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from progress import services
from progress.models import XPEvent
from progress.profile import profile_overview
from progress.serializers import LeaderboardQuerySerializer, XPAdjustmentSerializer, XPEventSerializer
from users.models import User
from utils.permissions import IsAdminOrSuperAdmin

logger = logging.getLogger(__name__)


class LeaderboardView(APIView):
    """GET /leaderboard/?period=geral|diaria|periodo|hora&limit=50"""
    permission_classes = [IsAuthenticated]

    @extend_schema(parameters=[LeaderboardQuerySerializer], responses=dict)
    def get(self, request):
        ser = LeaderboardQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        board = services.leaderboard(ser.validated_data["period"], ser.validated_data["limit"])
        me = next((r for r in board["results"] if r["user"]["id"] == request.user.pk), None)
        board["me"] = me
        return Response(board)


class XPStatsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(services.xp_stats(request.user))


class XPEventPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200


class XPEventViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = XPEventSerializer
    pagination_class = XPEventPagination
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        qs = XPEvent.objects.filter(user=self.request.user)
        source = self.request.query_params.get("source")
        return qs.filter(source=source) if source else qs


class ProfileView(APIView):
    """GET /profile/ for the caller, /profile/<user_id>/ for anyone."""
    permission_classes = [IsAuthenticated]

    def get(self, request, user_id=None):
        user = request.user if user_id is None else get_object_or_404(User, pk=user_id, is_active=True)
        return Response(profile_overview(user))


class XPAdjustmentView(APIView):
    permission_classes = [IsAdminOrSuperAdmin]

    @extend_schema(request=XPAdjustmentSerializer, responses=XPEventSerializer)
    def post(self, request):
        ser = XPAdjustmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        target = get_object_or_404(User, pk=ser.validated_data["user_id"])
        event = services.grant_xp(
            target, ser.validated_data["amount"], "ADMIN_ADJUSTMENT", ser.validated_data.get("reason") or "",
        )
        logger.info("admin %s adjusted xp of user=%s by %+d", request.user.pk, target.pk, event.amount)
        data = XPEventSerializer(event).data
        data["xp"] = target.xp
        return Response(data, status=status.HTTP_201_CREATED)
