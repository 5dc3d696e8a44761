from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from community import services
from community.models import ChatMessage
from community.serializers import ChatMessageSerializer, ChatPostSerializer, MoodSerializer, votes_by_message
from library.serializers import VoteSerializer


class ChatMessageViewSet(mixins.ListModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    GET  /chat/?sort=time|temp&limit=
    POST /chat/            {"text": "..."}; "@ia" / "@ed" asks the assistant
    POST /chat/{id}/vote/  {"vote_type": "hot"|"cold", "increment": 1|-1}
    """
    serializer_class = ChatMessageSerializer
    permission_classes = [IsAuthenticated]
    queryset = ChatMessage.objects.all()

    def list(self, request, *args, **kwargs):
        sort = request.query_params.get("sort") or "time"
        try:
            limit = int(request.query_params.get("limit") or 0)
        except ValueError:
            limit = 0
        messages = services.list_messages("temp" if sort == "temp" else "time", limit or None)
        ctx = {"request": request, "votes": votes_by_message(request.user, messages)}
        return Response(ChatMessageSerializer(messages, many=True, context=ctx).data)

    @extend_schema(request=ChatPostSerializer, responses=dict)
    def create(self, request, *args, **kwargs):
        ser = ChatPostSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        message, ai_message = services.post_message(request.user, ser.validated_data["text"])
        return Response({
            "message": ChatMessageSerializer(message).data,
            "ai_message": ChatMessageSerializer(ai_message).data if ai_message else None,
        }, status=status.HTTP_201_CREATED)

    @extend_schema(request=VoteSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def vote(self, request, pk=None):
        message = self.get_object()
        ser = VoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(services.vote_message(
            request.user, message, ser.validated_data["vote_type"], ser.validated_data["increment"],
        ))


class MoodView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(services.mood_summary(request.user))

    @extend_schema(request=MoodSerializer, responses=dict)
    def post(self, request):
        ser = MoodSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        services.set_mood(request.user, ser.validated_data["mood"])
        return Response(services.mood_summary(request.user))


class CountdownView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(services.countdown())
