import itertools

import pytest
from rest_framework.test import APIClient

from library.models import AudioSummary, Flashcard, LinkFile, Question, Source, Summary
from questions.models import QuestionNotebook
from users.models import User

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _test_settings(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / "media"
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.GEMINI_API_KEY = ""


@pytest.fixture
def make_user(db):
    def _make(pseudonym=None, **extra):
        n = next(_seq)
        pseudonym = pseudonym or f"aluno{n}"
        return User.objects.create_user(
            username=extra.pop("username", f"user{n}"),
            pseudonym=pseudonym,
            password=extra.pop("password", "senha-forte-123"),
            **extra,
        )
    return _make


@pytest.fixture
def user(make_user):
    return make_user("Ana")


@pytest.fixture
def other_user(make_user):
    return make_user("Bruno")


@pytest.fixture
def admin_user(make_user):
    return make_user("Admin", is_staff=True)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client(user):
    client = APIClient()
    client.force_authenticate(user)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(admin_user)
    return client


@pytest.fixture
def make_source(db, admin_user):
    def _make(title="Português", topic="Gramática", user=None, **extra):
        return Source.objects.create(user=user or admin_user, title=title, topic=topic, **extra)
    return _make


@pytest.fixture
def source(make_source):
    return make_source()


@pytest.fixture
def make_question(db, source):
    def _make(text="Qual é a capital do Brasil?", options=None, correct="Brasília", src=None, **extra):
        options = options or ["Brasília", "Rio de Janeiro", "São Paulo", "Salvador"]
        return Question.objects.create(
            source=src or source,
            question_text=text,
            options=options,
            correct_answer=correct,
            explanation=extra.pop("explanation", "Brasília é a capital desde 1960."),
            hints=extra.pop("hints", ["Fica no Centro-Oeste.", "Foi planejada.", "Projeto de Lúcio Costa."]),
            **extra,
        )
    return _make


@pytest.fixture
def question(make_question):
    return make_question()


@pytest.fixture
def summary(db, source):
    return Summary.objects.create(source=source, title="Crase", content="Uso da crase antes de palavras femininas.")


@pytest.fixture
def flashcard(db, source):
    return Flashcard.objects.create(source=source, front="O que é crase?", back="Fusão da preposição a com o artigo a.")


@pytest.fixture
def audio_summary(db, source):
    return AudioSummary.objects.create(source=source, title="Crase em áudio", audio_url="https://cdn.example.com/crase.mp3")


@pytest.fixture
def notebook(db, user, make_question):
    questions = [make_question(text=f"Questão {i}") for i in range(3)]
    return QuestionNotebook.objects.create(user=user, name="Revisão", question_ids=[str(q.pk) for q in questions])


@pytest.fixture
def link_file(db, user):
    return LinkFile.objects.create(user=user, title="Edital", url="https://example.com/edital.pdf")
