import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from library import services
from library.models import LinkFile, ProcessingTask, Source
from library.serializers import (
    AudioSummarySerializer,
    AudioUploadSerializer,
    CommentSerializer,
    CommentVoteSerializer,
    FlashcardSerializer,
    GeneratedContentSerializer,
    InteractionSerializer,
    InteractionUpdateSerializer,
    LinkFileSerializer,
    MindMapSerializer,
    ProcessingTaskSerializer,
    QuestionSerializer,
    SourceSerializer,
    SourceWriteSerializer,
    SummarySerializer,
    VoteSerializer,
)
from library.tasks import queue_processing
from utils.permissions import IsAdminOrSuperAdmin, IsOwnerOrAdmin

logger = logging.getLogger(__name__)


class EngagementActionsMixin:
    """interaction / vote / comments endpoints shared by every votable item."""
    content_type = None

    @extend_schema(request=InteractionUpdateSerializer, responses=InteractionSerializer)
    @action(detail=True, methods=["post"], permission_classes=[IsAuthenticated])
    def interaction(self, request, pk=None):
        ser = InteractionUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        inter = services.update_interaction(
            request.user,
            self.content_type,
            pk,
            is_read=ser.validated_data.get("is_read"),
            is_favorite=ser.validated_data.get("is_favorite"),
        )
        return Response(InteractionSerializer(inter).data)

    @extend_schema(request=VoteSerializer, responses=dict)
    @action(detail=True, methods=["post"], permission_classes=[IsAuthenticated])
    def vote(self, request, pk=None):
        ser = VoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = services.vote_content(
            request.user, self.content_type, pk,
            ser.validated_data["vote_type"], ser.validated_data["increment"],
        )
        return Response(result)

    @extend_schema(request=CommentSerializer, responses=dict)
    @action(detail=True, methods=["post"], permission_classes=[IsAuthenticated])
    def comments(self, request, pk=None):
        ser = CommentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        item = services.get_content(self.content_type, pk)
        comment = services.add_comment(request.user, item, ser.validated_data["text"])
        return Response(comment, status=status.HTTP_201_CREATED)

    @extend_schema(request=CommentVoteSerializer, responses=dict)
    @action(detail=True, methods=["post"], url_path=r"comments/(?P<comment_id>[^/.]+)/vote",
            permission_classes=[IsAuthenticated])
    def comment_vote(self, request, pk=None, comment_id=None):
        ser = CommentVoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        item = services.get_content(self.content_type, pk)
        return Response(services.vote_comment(item, comment_id, ser.validated_data["vote_type"]))


class ContentViewSet(EngagementActionsMixin, viewsets.ModelViewSet):
    """
    GET  /<content>/?q=&source=&favorites_only=1&sort=temp|time|az
    Writes are admin only.
    """
    permission_classes = [IsAdminOrSuperAdmin]

    def get_queryset(self):
        return self.serializer_class.Meta.model.objects.select_related("source")

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        if getattr(self, "action", None) == "retrieve" and "pk" in self.kwargs:
            ctx["interactions"] = services.interaction_map(self.request.user, self.content_type, [self.kwargs["pk"]])
        return ctx

    def list(self, request, *args, **kwargs):
        items, interactions = services.list_content(request.user, self.content_type, request.query_params)
        ser = self.get_serializer(items, many=True, context={"request": request, "interactions": interactions})
        return Response(ser.data)


class SummaryViewSet(ContentViewSet):
    serializer_class = SummarySerializer
    content_type = "summary"


class FlashcardViewSet(ContentViewSet):
    serializer_class = FlashcardSerializer
    content_type = "flashcard"


class QuestionViewSet(ContentViewSet):
    serializer_class = QuestionSerializer
    content_type = "question"


class MindMapViewSet(ContentViewSet):
    serializer_class = MindMapSerializer
    content_type = "mind_map"


class AudioSummaryViewSet(ContentViewSet):
    serializer_class = AudioSummarySerializer
    content_type = "audio_summary"

    def perform_destroy(self, instance):
        services.delete_audio_summary(instance)


class SourceViewSet(EngagementActionsMixin, viewsets.ModelViewSet):
    """
    Sources with nested content. Admins create (multipart, optional files),
    run the AI pipeline, append generated content and upload audio.
    """
    serializer_class = SourceSerializer
    permission_classes = [IsAdminOrSuperAdmin]
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    content_type = "source"

    def get_queryset(self):
        return Source.objects.select_related("user").prefetch_related(
            "summaries", "flashcards", "questions", "mind_maps", "audio_summaries",
        )

    def list(self, request, *args, **kwargs):
        items, interactions = services.list_content(
            request.user, "source", request.query_params, queryset=self.get_queryset(),
        )
        return Response(SourceSerializer(items, many=True, context={"request": request, "interactions": interactions}).data)

    @extend_schema(request=SourceWriteSerializer, responses=SourceSerializer)
    def create(self, request, *args, **kwargs):
        ser = SourceWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        source = services.create_source(request.user, ser.validated_data, ser.validated_data.get("files") or [])
        body = SourceSerializer(source, context={"request": request}).data
        if ser.validated_data.get("generate"):
            body["task"] = ProcessingTaskSerializer(queue_processing(source, request.user)).data
        return Response(body, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        services.delete_source(instance)

    @extend_schema(request=None, responses=ProcessingTaskSerializer)
    @action(detail=True, methods=["post"])
    def generate(self, request, pk=None):
        task = queue_processing(self.get_object(), request.user, kind="generate")
        return Response(ProcessingTaskSerializer(task).data, status=status.HTTP_202_ACCEPTED)

    @extend_schema(request=None, responses=ProcessingTaskSerializer)
    @action(detail=True, methods=["post"])
    def append(self, request, pk=None):
        task = queue_processing(self.get_object(), request.user, kind="append")
        return Response(ProcessingTaskSerializer(task).data, status=status.HTTP_202_ACCEPTED)

    @extend_schema(request=GeneratedContentSerializer, responses=dict)
    @action(detail=True, methods=["post"], url_path="content")
    def add_content(self, request, pk=None):
        source = self.get_object()
        ser = GeneratedContentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        created = services.add_generated_content(source, ser.validated_data)
        return Response({
            "summaries": SummarySerializer(created["summaries"], many=True).data,
            "flashcards": FlashcardSerializer(created["flashcards"], many=True).data,
            "questions": QuestionSerializer(created["questions"], many=True).data,
            "mind_maps": MindMapSerializer(created["mind_maps"], many=True).data,
        }, status=status.HTTP_201_CREATED)

    @extend_schema(request=AudioUploadSerializer, responses=AudioSummarySerializer)
    @action(detail=True, methods=["post"], url_path="audio")
    def upload_audio(self, request, pk=None):
        source = self.get_object()
        ser = AudioUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        audio = services.add_audio_summary(
            source, request.user, ser.validated_data["title"],
            upload=ser.validated_data.get("file"), audio_url=ser.validated_data.get("audio_url", ""),
        )
        return Response(AudioSummarySerializer(audio).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def tasks(self, request, pk=None):
        source = self.get_object()
        return Response(ProcessingTaskSerializer(source.processing_tasks.all(), many=True).data)


class ProcessingTaskViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ProcessingTaskSerializer
    permission_classes = [IsAdminOrSuperAdmin]
    queryset = ProcessingTask.objects.all()


class LinkFileViewSet(EngagementActionsMixin, viewsets.ModelViewSet):
    """
    Shared links and files. Anyone signed in may add one; only the owner or an
    admin may edit/delete. Opening an item marks it read.
    """
    serializer_class = LinkFileSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrAdmin]
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    content_type = "link_file"
    queryset = LinkFile.objects.select_related("user")

    def list(self, request, *args, **kwargs):
        items, interactions = services.list_content(request.user, "link_file", request.query_params)
        return Response(self.get_serializer(items, many=True, context={"request": request, "interactions": interactions}).data)

    def retrieve(self, request, *args, **kwargs):
        link = self.get_object()
        inter = services.update_interaction(request.user, "link_file", link.pk, is_read=True)
        ctx = {"request": request, "interactions": {str(link.pk): inter}}
        return Response(LinkFileSerializer(link, context=ctx).data)

    def create(self, request, *args, **kwargs):
        ser = self.get_serializer(data=request.data)
        ser.is_valid(raise_exception=True)
        link = services.create_link_file(
            request.user,
            title=ser.validated_data.get("title"),
            description=ser.validated_data.get("description", ""),
            url=ser.validated_data.get("url", ""),
            upload=ser.validated_data.get("file"),
            is_anki_deck=ser.validated_data.get("is_anki_deck", False),
        )
        return Response(LinkFileSerializer(link, context={"request": request}).data, status=status.HTTP_201_CREATED)

    def perform_update(self, serializer):
        serializer.validated_data.pop("file", None)
        serializer.save()

    def perform_destroy(self, instance):
        services.delete_link_file(instance)
