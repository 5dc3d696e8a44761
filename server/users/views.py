from drf_spectacular.utils import extend_schema
from rest_framework import filters, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenRefreshView

from users.models import User, AgentSettings
from users.serializers import (
    AgentSettingsSerializer,
    ChangePasswordSerializer,
    CustomTokenRefreshSerializer,
    LoginSerializer,
    RegisterSerializer,
    UserMeSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from utils.gencode import get_tokens_for_user
from utils.permissions import IsAdminOrSuperAdmin
import logging

logger = logging.getLogger(__name__)


class UserViewset(viewsets.ModelViewSet):
    queryset = User.objects.all().order_by("pseudonym")
    serializer_class = UserSerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ["username", "pseudonym", "email"]

    def get_permissions(self):
        if self.request.method in permissions.SAFE_METHODS:
            return [IsAuthenticated()]
        return [IsAdminOrSuperAdmin()]

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if not user.is_admin:
            qs = qs.filter(is_staff=False, is_superuser=False)
        return qs

    @action(detail=False, methods=["post"], url_path="me/change-password",
            permission_classes=[IsAuthenticated])
    def change_password(self, request):
        ser = ChangePasswordSerializer(data=request.data, context={"request": request})
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response({"message": "Senha alterada com sucesso."}, status=status.HTTP_200_OK)


@extend_schema(
    request=RegisterSerializer,
    responses={201: dict},
    description="Cria uma conta nova e já devolve o par de tokens JWT."
)
class RegisterView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("user registered id=%s pseudonym=%s", user.id, user.pseudonym)
        return Response({
            "message": "Conta criada.",
            "user": UserMeSerializer(user).data,
            "tokens": get_tokens_for_user(user),
        }, status=status.HTTP_201_CREATED)


@extend_schema(
    request=LoginSerializer,
    responses={200: dict},
    description="Login por usuário, pseudônimo ou e-mail. Invalida a sessão anterior."
)
class LoginView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data["user"]
        return Response({
            "message": "Login realizado.",
            "tokens": get_tokens_for_user(user),
        }, status=status.HTTP_200_OK)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=UserMeSerializer)
    def get(self, request):
        return Response(UserMeSerializer(request.user, context={"request": request}).data)

    @extend_schema(
        request=UserUpdateSerializer,
        responses=UserMeSerializer,
        description="Atualiza avatar, bio e nome do usuário atual.",
    )
    def patch(self, request):
        user = request.user
        ser = UserUpdateSerializer(user, data=request.data, partial=True, context={"request": request})
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(UserMeSerializer(user, context={"request": request}).data, status=status.HTTP_200_OK)


class AgentSettingsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=AgentSettingsSerializer)
    def get(self, request):
        return Response(AgentSettingsSerializer(AgentSettings.for_user(request.user)).data)

    @extend_schema(request=AgentSettingsSerializer, responses=AgentSettingsSerializer)
    def patch(self, request):
        obj = AgentSettings.for_user(request.user)
        ser = AgentSettingsSerializer(obj, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(ser.data)


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer
