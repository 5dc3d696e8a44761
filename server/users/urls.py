from django.urls import path
from .views import AgentSettingsView, CustomTokenRefreshView, LoginView, MeView, RegisterView

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("login/", LoginView.as_view(), name="login"),
    path("token/refresh/", CustomTokenRefreshView.as_view(), name="token_refresh"),
    path("me/", MeView.as_view(), name="read-me"),
    path("me/agent-settings/", AgentSettingsView.as_view(), name="agent-settings"),
]
