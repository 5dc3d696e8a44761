from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db.models import Q
from rest_framework import serializers
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.serializers import TokenRefreshSerializer

from users.models import User, AgentSettings


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ('id', 'username', 'pseudonym', 'email', 'first_name', 'last_name', 'avatar', 'bio',
                  'xp', 'is_active', 'is_staff', 'is_superuser', 'last_login', 'last_active', 'date_joined')
        read_only_fields = ('xp', 'last_active', 'date_joined')


class UserBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "pseudonym", "avatar", "xp")


class AgentSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = AgentSettings
        fields = ("voice", "system_prompt", "updated_at")
        read_only_fields = ("updated_at",)


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ("username", "pseudonym", "email", "password", "avatar", "bio")

    def validate(self, attrs):
        username = (attrs.get("username") or "").strip()
        pseudonym = (attrs.get("pseudonym") or "").strip()
        email = (attrs.get("email") or "").strip()
        password = attrs.get("password") or ""

        if not pseudonym:
            raise serializers.ValidationError({"pseudonym": "Informe um pseudônimo."})
        if User.objects.filter(username__iexact=username).exists():
            raise serializers.ValidationError({"username": "Nome de usuário já existe."})
        if User.objects.filter(pseudonym__iexact=pseudonym).exists():
            raise serializers.ValidationError({"pseudonym": "Pseudônimo já está em uso."})
        if email and User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError({"email": "E-mail já cadastrado."})
        try:
            validate_password(password)
        except ValidationError as e:
            raise serializers.ValidationError({"password": list(e.messages)})

        attrs["username"] = username
        attrs["pseudonym"] = pseudonym
        return attrs

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data["username"],
            pseudonym=validated_data["pseudonym"],
            email=validated_data.get("email") or "",
            password=validated_data["password"],
            avatar=validated_data.get("avatar") or None,
            bio=validated_data.get("bio", ""),
        )


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        login = (data.get("username") or "").strip()
        password = data.get("password") or ""

        user = authenticate(username=login, password=password)

        # Fallback: pseudonym, e-mail or username with different casing
        if not user:
            user_obj = User.objects.filter(
                Q(username__iexact=login) | Q(pseudonym__iexact=login) | Q(email__iexact=login)
            ).first()
            if user_obj:
                user = authenticate(username=user_obj.username, password=password)

        if not user:
            raise serializers.ValidationError("Usuário ou senha incorretos.")
        if not user.is_active:
            raise serializers.ValidationError("Conta desativada.")

        data["user"] = user
        return data


class UserMeSerializer(serializers.ModelSerializer):
    is_admin = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "pseudonym",
            "email",
            "first_name",
            "last_name",
            "avatar",
            "bio",
            "xp",
            "stats",
            "achievements",
            "is_admin",
            "last_login",
            "last_active",
            "date_joined",
        )
        read_only_fields = fields


class UserUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("first_name", "last_name", "avatar", "bio")


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        user = self.context["request"].user
        if not user.check_password(attrs["current_password"]):
            raise serializers.ValidationError({"current_password": "Senha atual incorreta."})
        try:
            validate_password(attrs["new_password"], user)
        except ValidationError as e:
            raise serializers.ValidationError({"new_password": list(e.messages)})
        return attrs

    def save(self, **kwargs):
        user = self.context["request"].user
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    def validate(self, attrs):
        refresh = self.token_class(attrs['refresh'])
        jti = refresh.get('jti')

        try:
            user = User.objects.get(id=refresh.get('user_id'))
        except User.DoesNotExist:
            raise InvalidToken("Usuário não encontrado.")

        # Only the refresh token issued at the latest login is accepted
        if user.active_refresh_jti != jti:
            raise InvalidToken("Sessão inválida. Esta conta foi acessada em outro dispositivo.")

        return super().validate(attrs)
