import pytest
from django.core.files.storage import FileSystemStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.http import Http404
from rest_framework.exceptions import ValidationError

from library import services
from library.models import LinkFile, ProcessingTask, Question, Source, Summary, UserContentInteraction
from library.references import has_references, parse_references
from library.tasks import process_source
from progress.models import XPEvent


def _storage_down(self, name):
    raise OSError("bucket offline")


@pytest.mark.django_db
class TestReferences:
    def test_resolves_known_titles(self, summary, audio_summary):
        segments = parse_references("Revise #[crase] e ouça @[Crase em áudio].")
        assert segments[0] == {"type": "text", "text": "Revise "}
        assert segments[1] == {"type": "link", "view": "Resumos", "term": "crase", "id": str(summary.pk)}
        assert segments[3]["view"] == "Mídia"
        assert segments[3]["id"] == str(audio_summary.pk)
        assert segments[-1] == {"type": "text", "text": "."}

    def test_unknown_title_keeps_link_without_id(self):
        segments = parse_references("?[Caderno que não existe]")
        assert segments == [{"type": "link", "view": "Questões", "term": "Caderno que não existe", "id": None}]

    def test_disallowed_tags_stay_text(self):
        segments = parse_references("Ouça @[Aula 1]", resolve=False, allowed="#!?")
        assert segments == [{"type": "text", "text": "Ouça @[Aula 1]"}]

    def test_has_references(self):
        assert has_references("veja ![Frente]")
        assert not has_references("nada aqui")


@pytest.mark.django_db
class TestVotes:
    def test_hot_vote_pays_the_source_author(self, other_user, admin_user, summary):
        result = services.vote_content(other_user, "summary", summary.pk, "hot", 1)
        assert result["applied"] and result["hot_votes"] == 1 and result["user_hot_votes"] == 1
        admin_user.refresh_from_db()
        assert admin_user.xp == 1
        assert XPEvent.objects.get(user=admin_user).source == "CONTENT_VOTE_RECEIVED"

    def test_cold_vote_costs_the_author(self, other_user, admin_user, summary):
        services.vote_content(other_user, "summary", summary.pk, "cold", 1)
        admin_user.refresh_from_db()
        assert admin_user.xp == -1

    def test_removing_a_vote_that_was_never_cast_is_ignored(self, other_user, summary):
        result = services.vote_content(other_user, "summary", summary.pk, "hot", -1)
        assert result["applied"] is False
        assert result["hot_votes"] == 0

    def test_voting_own_content_gives_no_xp(self, admin_user, summary):
        services.vote_content(admin_user, "summary", summary.pk, "hot", 1)
        assert not XPEvent.objects.exists()

    def test_votes_accumulate(self, other_user, summary):
        for _ in range(3):
            services.vote_content(other_user, "summary", summary.pk, "hot", 1)
        services.vote_content(other_user, "summary", summary.pk, "hot", -1)
        summary.refresh_from_db()
        assert summary.hot_votes == 2

    def test_invalid_increment(self, other_user, summary):
        with pytest.raises(ValidationError):
            services.vote_content(other_user, "summary", summary.pk, "hot", 2)


@pytest.mark.django_db
class TestComments:
    def test_add_and_vote(self, user, summary):
        comment = services.add_comment(user, summary, "  Ótimo resumo  ")
        assert comment["id"].startswith("c_")
        assert comment["text"] == "Ótimo resumo"
        services.vote_comment(summary, comment["id"], "hot")
        summary.refresh_from_db()
        assert summary.comments[0]["hot_votes"] == 1

    def test_ids_stay_unique(self, user, summary, monkeypatch):
        monkeypatch.setattr(services, "new_comment_id", lambda: "c_1")
        first = services.add_comment(user, summary, "um")
        second = services.add_comment(user, summary, "dois")
        assert first["id"] != second["id"]

    def test_unknown_comment(self, summary):
        with pytest.raises(Http404):
            services.vote_comment(summary, "c_0", "hot")


@pytest.mark.django_db
class TestListContent:
    def test_search_sort_and_favorites(self, user, source):
        a = Summary.objects.create(source=source, title="Regência", content="...")
        b = Summary.objects.create(source=source, title="Crase", content="...", hot_votes=3)
        Summary.objects.create(source=source, title="Pontuação", content="...")
        services.update_interaction(user, "summary", a.pk, is_favorite=True)

        items, _ = services.list_content(user, "summary", {"sort": "az"})
        assert [i.title for i in items] == ["Crase", "Pontuação", "Regência"]

        items, _ = services.list_content(user, "summary", {})
        assert items[0] == b

        items, _ = services.list_content(user, "summary", {"favorites_only": "true"})
        assert items == [a]

        items, _ = services.list_content(user, "summary", {"q": "cra"})
        assert items == [b]

    def test_source_filter_by_title(self, user, make_source):
        other = make_source(title="Matemática")
        Summary.objects.create(source=other, title="Frações", content="...")
        items, _ = services.list_content(user, "summary", {"source": "matemática"})
        assert [i.title for i in items] == ["Frações"]


@pytest.mark.django_db
class TestGeneratedContent:
    def test_invalid_questions_are_dropped(self, source):
        created = services.add_generated_content(source, {
            "summaries": [{"title": "Crase", "content": "texto", "key_points": ["a", "a", "b"]}],
            "questions": [
                {"question_text": "2+2?", "options": ["3", "4"], "correct_answer": "4", "difficulty": "Fácil"},
                {"question_text": "Sem gabarito", "options": ["x", "y"], "correct_answer": "z"},
            ],
        })
        assert len(created["questions"]) == 1
        assert created["summaries"][0].key_points == ["a", "b"]
        assert Question.objects.get().difficulty == "Fácil"

    def test_processing_task_success(self, source, admin_user, monkeypatch):
        monkeypatch.setattr("library.tasks.source_text", lambda s: "texto da apostila")
        monkeypatch.setattr(
            "assistant.services.gemini.generate_study_content",
            lambda text, title="", existing_titles=None: {"flashcards": [{"front": "F", "back": "V"}]},
        )
        task = ProcessingTask.objects.create(source=source, created_by=admin_user)
        assert process_source(str(task.pk)) == "success"
        task.refresh_from_db()
        assert len(task.result["flashcards"]) == 1
        assert task.finished_at is not None

    def test_processing_task_ai_error(self, source, admin_user, monkeypatch):
        from assistant.services.gemini import AIServiceError

        def boom(*args, **kwargs):
            raise AIServiceError("GEMINI_API_KEY não configurada.")

        monkeypatch.setattr("library.tasks.source_text", lambda s: "texto")
        monkeypatch.setattr("assistant.services.gemini.generate_study_content", boom)
        task = ProcessingTask.objects.create(source=source, created_by=admin_user)
        assert process_source(str(task.pk)) == "error"
        task.refresh_from_db()
        assert "GEMINI_API_KEY" in task.message

    def test_malformed_ai_items_are_skipped(self, source):
        created = services.add_generated_content(source, {
            "summaries": ["apenas texto", {"title": "Crase", "content": "texto"}],
            "flashcards": "não é lista",
        })
        assert [s.title for s in created["summaries"]] == ["Crase"]
        assert created["flashcards"] == []

    def test_processing_task_with_unusable_payload(self, source, admin_user, monkeypatch):
        monkeypatch.setattr("library.tasks.source_text", lambda s: "texto")
        monkeypatch.setattr(
            "assistant.services.gemini.generate_study_content",
            lambda text, title="", existing_titles=None: {"summaries": ["apenas texto"]},
        )
        task = ProcessingTask.objects.create(source=source, created_by=admin_user)
        assert process_source(str(task.pk)) == "error"
        task.refresh_from_db()
        assert task.status == "error"
        assert task.finished_at is not None

    def test_processing_task_unexpected_failure(self, source, admin_user, monkeypatch):
        def broken(source, payload):
            raise KeyError("title")

        monkeypatch.setattr("library.tasks.source_text", lambda s: "texto")
        monkeypatch.setattr(
            "assistant.services.gemini.generate_study_content",
            lambda text, title="", existing_titles=None: {"flashcards": [{"front": "F", "back": "V"}]},
        )
        monkeypatch.setattr("library.tasks.add_generated_content", broken)
        task = ProcessingTask.objects.create(source=source, created_by=admin_user)
        assert process_source(str(task.pk)) == "error"
        task.refresh_from_db()
        assert task.message == "Erro inesperado ao processar a fonte."

    def test_processing_without_text(self, admin_user, make_source):
        src = make_source(title="Vazia")
        task = ProcessingTask.objects.create(source=src, created_by=admin_user)
        assert process_source(str(task.pk)) == "error"


@pytest.mark.django_db
class TestSourceStorage:
    def test_delete_aborts_when_storage_fails(self, source, monkeypatch):
        source.storage_paths = ["sources/1/apostila.pdf"]
        source.save()
        monkeypatch.setattr(FileSystemStorage, "delete", _storage_down)
        with pytest.raises(services.StorageError):
            services.delete_source(source)
        assert Source.objects.filter(pk=source.pk).exists()

    def test_link_file_delete_ignores_storage_failure(self, link_file, monkeypatch):
        link_file.file_path = "1/edital.pdf"
        link_file.save()
        monkeypatch.setattr(FileSystemStorage, "delete", _storage_down)
        services.delete_link_file(link_file)
        assert not LinkFile.objects.exists()


@pytest.mark.django_db
class TestLibraryAPI:
    def test_reading_is_open_writing_is_admin(self, auth_client, admin_client, source):
        assert auth_client.get("/api/summaries/").status_code == 200
        payload = {"source": str(source.pk), "title": "Novo", "content": "..."}
        assert auth_client.post("/api/summaries/", payload, format="json").status_code == 403
        assert admin_client.post("/api/summaries/", payload, format="json").status_code == 201

    def test_interaction_marks_read(self, auth_client, user, summary):
        res = auth_client.post(f"/api/summaries/{summary.pk}/interaction/", {"is_read": True}, format="json")
        assert res.status_code == 200
        assert UserContentInteraction.objects.get(user=user, content_id=summary.pk).is_read

    def test_vote_endpoint(self, auth_client, summary):
        res = auth_client.post(f"/api/summaries/{summary.pk}/vote/", {"vote_type": "hot"}, format="json")
        assert res.status_code == 200
        assert res.data["hot_votes"] == 1

    def test_comment_endpoint(self, auth_client, flashcard):
        res = auth_client.post(f"/api/flashcards/{flashcard.pk}/comments/", {"text": "Boa!"}, format="json")
        assert res.status_code == 201
        vote = auth_client.post(f"/api/flashcards/{flashcard.pk}/comments/{res.data['id']}/vote/",
                                {"vote_type": "cold"}, format="json")
        assert vote.data["cold_votes"] == 1

    def test_admin_creates_source_with_file(self, admin_client):
        upload = SimpleUploadedFile("apostila módulo 1.txt", b"conteudo", content_type="text/plain")
        res = admin_client.post("/api/sources/", {"title": "(Apostila) Módulo 1", "files": [upload]}, format="multipart")
        assert res.status_code == 201
        src = Source.objects.get(pk=res.data["id"])
        assert src.original_filename == ["apostila módulo 1.txt"]
        assert src.storage_paths[0].startswith("sources/")
        assert " " not in src.storage_paths[0]

    def test_student_cannot_create_source(self, auth_client):
        assert auth_client.post("/api/sources/", {"title": "X"}, format="json").status_code == 403

    def test_add_content_to_source(self, admin_client, source):
        res = admin_client.post(f"/api/sources/{source.pk}/content/", {
            "flashcards": [{"front": "Pergunta", "back": "Resposta"}],
        }, format="json")
        assert res.status_code == 201
        assert len(res.data["flashcards"]) == 1


@pytest.mark.django_db
class TestLinkFileAPI:
    def test_anyone_can_share_a_link(self, auth_client):
        res = auth_client.post("/api/links-files/", {"title": "Simulado", "url": "https://example.com/s"}, format="json")
        assert res.status_code == 201
        assert res.data["href"] == "https://example.com/s"

    def test_link_or_file_is_required(self, auth_client):
        assert auth_client.post("/api/links-files/", {"title": "Vazio"}, format="json").status_code == 400

    def test_only_owner_deletes(self, api_client, other_user, link_file):
        api_client.force_authenticate(other_user)
        assert api_client.delete(f"/api/links-files/{link_file.pk}/").status_code == 403

    def test_opening_marks_read(self, auth_client, user, link_file):
        res = auth_client.get(f"/api/links-files/{link_file.pk}/")
        assert res.status_code == 200
        assert res.data["interaction"]["is_read"] is True
