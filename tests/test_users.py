import pytest

from users.models import AgentSettings, User


@pytest.mark.django_db
class TestRegisterAndLogin:
    def test_register_returns_tokens(self, api_client):
        res = api_client.post("/api/auth/register/", {
            "username": "carla", "pseudonym": "Carla", "email": "carla@example.com", "password": "senha-forte-123",
        }, format="json")
        assert res.status_code == 201
        assert res.data["user"]["pseudonym"] == "Carla"
        assert set(res.data["tokens"]) == {"access", "refresh"}

    def test_pseudonym_must_be_unique(self, api_client, user):
        res = api_client.post("/api/auth/register/", {
            "username": "outra", "pseudonym": "ana", "password": "senha-forte-123",
        }, format="json")
        assert res.status_code == 400
        assert "pseudonym" in res.data

    def test_weak_password(self, api_client):
        res = api_client.post("/api/auth/register/", {
            "username": "dani", "pseudonym": "Dani", "password": "123",
        }, format="json")
        assert res.status_code == 400

    @pytest.mark.parametrize("login", ["user1x", "ANA", "ana@example.com"])
    def test_login_by_username_pseudonym_or_email(self, api_client, make_user, login):
        make_user("Ana", username="user1x", email="ana@example.com")
        res = api_client.post("/api/auth/login/", {"username": login, "password": "senha-forte-123"}, format="json")
        assert res.status_code == 200
        assert "access" in res.data["tokens"]

    def test_wrong_password(self, api_client, user):
        res = api_client.post("/api/auth/login/", {"username": "Ana", "password": "errada"}, format="json")
        assert res.status_code == 400

    def test_new_login_invalidates_the_previous_session(self, api_client, user):
        creds = {"username": "Ana", "password": "senha-forte-123"}
        first = api_client.post("/api/auth/login/", creds, format="json").data["tokens"]
        second = api_client.post("/api/auth/login/", creds, format="json").data["tokens"]

        stale = api_client.post("/api/auth/token/refresh/", {"refresh": first["refresh"]}, format="json")
        assert stale.status_code == 401
        fresh = api_client.post("/api/auth/token/refresh/", {"refresh": second["refresh"]}, format="json")
        assert fresh.status_code == 200


@pytest.mark.django_db
class TestMe:
    def test_me_includes_stats_and_admin_flag(self, auth_client):
        res = auth_client.get("/api/auth/me/")
        assert res.status_code == 200
        assert res.data["is_admin"] is False
        assert res.data["stats"]["questions_answered"] == 0

    def test_update_profile(self, auth_client, user):
        res = auth_client.patch("/api/auth/me/", {"bio": "Rumo à aprovação"}, format="json")
        assert res.status_code == 200
        user.refresh_from_db()
        assert user.bio == "Rumo à aprovação"

    def test_configured_pseudonym_is_admin(self, settings, make_user):
        settings.ADMIN_PSEUDONYM = "Coordenação"
        assert make_user("Coordenação").is_admin
        assert not make_user("Aluno").is_admin

    def test_pseudonym_defaults_to_username(self, db):
        u = User.objects.create_user(username="semapelido", password="senha-forte-123")
        assert u.pseudonym == "semapelido"


@pytest.mark.django_db
class TestAgentSettings:
    def test_defaults(self, auth_client):
        res = auth_client.get("/api/auth/me/agent-settings/")
        assert res.data["voice"] == "Zephyr"

    def test_change_voice_and_prompt(self, auth_client, user):
        res = auth_client.patch("/api/auth/me/agent-settings/",
                                {"voice": "Kore", "system_prompt": "Fale devagar."}, format="json")
        assert res.status_code == 200
        settings = AgentSettings.objects.get(user=user)
        assert (settings.voice, settings.system_prompt) == ("Kore", "Fale devagar.")

    def test_unknown_voice(self, auth_client):
        res = auth_client.patch("/api/auth/me/agent-settings/", {"voice": "Robô"}, format="json")
        assert res.status_code == 400
