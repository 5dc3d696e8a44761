from django.urls import path
from rest_framework.routers import DefaultRouter

from assistant.views import FindContentView, NavigateView, QueryTableView, StudyPlanViewSet
from community.views import ChatMessageViewSet, CountdownView, MoodView
from library.views import (
    AudioSummaryViewSet,
    FlashcardViewSet,
    LinkFileViewSet,
    MindMapViewSet,
    ProcessingTaskViewSet,
    QuestionViewSet,
    SourceViewSet,
    SummaryViewSet,
)
from progress.views import LeaderboardView, ProfileView, XPAdjustmentView, XPEventViewSet, XPStatsView
from questions.views import NotebookViewSet, QuestionStatsViewSet
from users.views import UserViewset

router = DefaultRouter()

# Users
router.register(r"users", UserViewset, basename="user")

# Library
router.register(r"sources", SourceViewSet, basename="source")
router.register(r"summaries", SummaryViewSet, basename="summary")
router.register(r"flashcards", FlashcardViewSet, basename="flashcard")
router.register(r"questions", QuestionViewSet, basename="question")
router.register(r"mind-maps", MindMapViewSet, basename="mind-map")
router.register(r"audio-summaries", AudioSummaryViewSet, basename="audio-summary")
router.register(r"links-files", LinkFileViewSet, basename="link-file")
router.register(r"processing-tasks", ProcessingTaskViewSet, basename="processing-task")

# Questions
router.register(r"notebooks", NotebookViewSet, basename="notebook")
router.register(r"question-stats", QuestionStatsViewSet, basename="question-stats")

# Progress
router.register(r"xp-events", XPEventViewSet, basename="xp-event")

# Community
router.register(r"chat", ChatMessageViewSet, basename="chat")

# Assistant
router.register(r"study-plans", StudyPlanViewSet, basename="study-plan")

urlpatterns = router.urls + [
    path("leaderboard/", LeaderboardView.as_view(), name="leaderboard"),
    path("xp-stats/", XPStatsView.as_view(), name="xp-stats"),
    path("xp-adjustments/", XPAdjustmentView.as_view(), name="xp-adjustment"),
    path("profile/", ProfileView.as_view(), name="profile"),
    path("profile/<int:user_id>/", ProfileView.as_view(), name="profile-detail"),
    path("moods/", MoodView.as_view(), name="moods"),
    path("countdown/", CountdownView.as_view(), name="countdown"),
    path("assistant/find-content/", FindContentView.as_view(), name="assistant-find-content"),
    path("assistant/navigate/", NavigateView.as_view(), name="assistant-navigate"),
    path("assistant/query-table/", QueryTableView.as_view(), name="assistant-query-table"),
]
