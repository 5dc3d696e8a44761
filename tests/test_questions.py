import random

import pytest
from rest_framework.exceptions import ValidationError

from library.models import UserContentInteraction
from progress.models import XPEvent
from questions import selection, services
from questions.models import ALL_QUESTIONS, FAVORITES_NOTEBOOK, QuestionNotebook, UserQuestionAnswer


@pytest.fixture
def no_ai(monkeypatch):
    monkeypatch.setattr("assistant.services.gemini.filter_items_by_prompt", lambda prompt, items: [])
    monkeypatch.setattr("assistant.services.gemini.generate_notebook_name", lambda texts: "Caderno IA")


class TestValidateAttempts:
    def test_first_try_hit(self, question):
        assert services.validate_attempts(question, ["Brasília"]) == (True, 0)

    def test_hit_after_two_misses(self, question):
        assert services.validate_attempts(question, ["Salvador", "São Paulo", "Brasília"]) == (True, 2)

    def test_three_misses_finish_the_question(self, question):
        assert services.validate_attempts(question, ["Salvador", "São Paulo", "Rio de Janeiro"]) == (False, 3)

    @pytest.mark.parametrize("attempts", [
        [],
        ["Salvador"],
        ["Salvador", "Salvador"],
        ["Brasília", "Salvador"],
        ["Recife"],
    ])
    def test_rejects_invalid_sequences(self, question, attempts):
        with pytest.raises(services.AnswerError):
            services.validate_attempts(question, attempts)


class TestRevealedHints:
    def test_one_hint_per_wrong_attempt(self, question):
        assert services.revealed_hints(question, ["Salvador"]) == ["Fica no Centro-Oeste."]

    def test_all_hints_after_the_answer(self, question):
        assert len(services.revealed_hints(question, ["Salvador", "Brasília"])) == 3


@pytest.mark.django_db
class TestAnswerQuestion:
    def test_xp_by_wrong_attempts(self, user, notebook):
        qids = notebook.question_ids
        results = [
            services.answer_question(user, str(notebook.pk), qids[0], ["Brasília"]),
            services.answer_question(user, str(notebook.pk), qids[1], ["Salvador", "Brasília"]),
            services.answer_question(user, str(notebook.pk), qids[2], ["Salvador", "São Paulo", "Brasília"]),
        ]
        assert [xp for _, _, xp in results] == [10, 5, 2]
        user.refresh_from_db()
        assert user.xp == 17
        stats = user.get_stats()
        assert stats["questions_answered"] == 3
        assert stats["correct_answers"] == 1
        assert stats["streak"] == 0
        assert stats["topic_performance"]["Gramática"] == {"correct": 1, "total": 3}

    def test_wrong_answer_gives_no_xp_and_breaks_streak(self, user, notebook):
        qid = notebook.question_ids[0]
        _, created, xp = services.answer_question(
            user, str(notebook.pk), qid, ["Salvador", "São Paulo", "Rio de Janeiro"],
        )
        assert created and xp == 0
        assert user.get_stats()["streak"] == 0

    def test_second_submission_returns_the_saved_answer(self, user, notebook):
        qid = notebook.question_ids[0]
        services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        answer, created, xp = services.answer_question(user, str(notebook.pk), qid, ["Salvador", "Brasília"])
        assert not created and xp == 0
        assert answer.attempts == ["Brasília"]

    def test_clearing_answers_cannot_farm_xp(self, user, notebook):
        qid = notebook.question_ids[0]
        services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        assert services.clear_answers(user, str(notebook.pk)) == 1
        _, created, xp = services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        assert created and xp == 0
        assert XPEvent.objects.filter(user=user, source="QUESTION_ANSWER").count() == 1

    def test_same_question_in_another_notebook_counts_once_for_stats(self, user, notebook):
        qid = notebook.question_ids[0]
        services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        services.answer_question(user, ALL_QUESTIONS, qid, ["Brasília"])
        assert user.get_stats()["questions_answered"] == 1
        assert UserQuestionAnswer.objects.filter(user=user).count() == 2

    def test_question_must_belong_to_the_notebook(self, user, notebook, make_question):
        stray = make_question(text="Fora do caderno")
        with pytest.raises(services.AnswerError):
            services.answer_question(user, str(notebook.pk), str(stray.pk), ["Brasília"])


@pytest.mark.django_db
class TestVirtualNotebooks:
    def test_all_questions_lists_every_question(self, user, notebook):
        _, ids = services.resolve_notebook(user, ALL_QUESTIONS)
        assert sorted(ids) == sorted(notebook.question_ids)

    def test_favorites_follow_the_users_stars(self, user, notebook):
        fav = notebook.question_ids[1]
        UserContentInteraction.objects.create(user=user, content_type="question", content_id=fav, is_favorite=True)
        _, ids = services.resolve_notebook(user, FAVORITES_NOTEBOOK)
        assert ids == [fav]

    def test_deleted_questions_are_dropped(self, user, notebook):
        from library.models import Question
        Question.objects.filter(pk=notebook.question_ids[0]).delete()
        _, ids = services.resolve_notebook(user, str(notebook.pk))
        assert ids == notebook.question_ids[1:]


@pytest.mark.django_db
class TestCreateNotebook:
    def test_wrong_answers_come_first(self, user, make_question, no_ai):
        questions = [make_question(text=f"Q{i}") for i in range(6)]
        UserQuestionAnswer.objects.create(
            user=user, notebook_id=ALL_QUESTIONS, question=questions[4],
            attempts=["Salvador", "Brasília"], is_correct_first_try=False,
        )
        nb = services.create_notebook(user, question_count=3, rng=random.Random(1))
        assert nb.question_ids[0] == str(questions[4].pk)
        assert len(nb.question_ids) == 3
        assert nb.name == "Caderno IA"

    def test_prompt_filter_narrows_the_pool(self, user, make_question, monkeypatch):
        keep = make_question(text="Crase antes de horas")
        make_question(text="Regência verbal")
        monkeypatch.setattr("assistant.services.gemini.filter_items_by_prompt", lambda prompt, items: [str(keep.pk)])
        nb = services.create_notebook(user, name="Crase", prompt="só crase")
        assert nb.question_ids == [str(keep.pk)]
        assert nb.name == "Crase"

    def test_ai_failure_keeps_pool_and_uses_fallback_name(self, user, question, monkeypatch):
        from assistant.services.gemini import AIServiceError

        def boom(*args, **kwargs):
            raise AIServiceError("sem chave")

        monkeypatch.setattr("assistant.services.gemini.filter_items_by_prompt", boom)
        monkeypatch.setattr("assistant.services.gemini.generate_notebook_name", boom)
        nb = services.create_notebook(user, prompt="qualquer")
        assert nb.question_ids == [str(question.pk)]
        assert nb.name.startswith("Caderno ")

    def test_empty_pool_is_rejected(self, user, question, no_ai):
        UserQuestionAnswer.objects.create(
            user=user, notebook_id=ALL_QUESTIONS, question=question, attempts=["Brasília"], is_correct_first_try=True,
        )
        with pytest.raises(ValidationError) as exc:
            services.create_notebook(user, exclude_answered=True, prioritize_wrong_and_favorites=False)
        assert "Nenhuma questão" in str(exc.value)


@pytest.mark.django_db
class TestSelection:
    def test_difficulty_thirds(self):
        rates = [0.0, 0.1, 0.2, 0.5, 0.6, 0.7, 0.9, 0.95, 1.0]
        thresholds = selection.difficulty_thresholds(rates)
        assert selection.classify(0.0, thresholds) == "easy"
        assert selection.classify(0.6, thresholds) == "medium"
        assert selection.classify(1.0, thresholds) == "hard"

    def test_small_notebooks_use_fixed_thresholds(self):
        assert selection.difficulty_thresholds([0.2]) == selection.DEFAULT_THRESHOLDS

    def test_unanswered_questions_have_neutral_error_rate(self, question):
        assert selection.error_rates([question.pk]) == {str(question.pk): 0.5}

    def test_random_sort_is_reproducible_with_seed(self, user, make_question):
        questions = [make_question(text=f"Q{i}") for i in range(8)]
        filters = selection.QuestionFilters(sort="random", seed="abc")
        first, seed = selection.select_questions(user, ALL_QUESTIONS, questions, filters)
        again, _ = selection.select_questions(user, ALL_QUESTIONS, questions, filters)
        assert seed == "abc"
        assert [q.pk for q in first] == [q.pk for q in again]

    def test_apostilas_first(self, user, make_source, make_question):
        regular = make_question(text="Normal")
        apostila = make_question(text="Da apostila", src=make_source(title="(Apostila) Módulo 1"))
        filters = selection.QuestionFilters.from_params({}, ALL_QUESTIONS)
        assert filters.prioritize_apostilas
        ordered, _ = selection.select_questions(user, ALL_QUESTIONS, [regular, apostila], filters)
        assert ordered[0] == apostila

    def test_apostilas_only_apply_to_all_questions(self, notebook):
        filters = selection.QuestionFilters.from_params({"prioritize_apostilas": "1"}, str(notebook.pk))
        assert not filters.prioritize_apostilas

    def test_difficulty_cut_points_come_from_the_whole_notebook(self, user, other_user, make_question):
        qs = [make_question(text=f"Q{i}") for i in range(6)]
        for i, q in enumerate(qs):
            UserQuestionAnswer.objects.create(user=other_user, notebook_id=ALL_QUESTIONS, question=q,
                                              attempts=["Brasília"], is_correct_first_try=i < 3)
        UserQuestionAnswer.objects.create(user=user, notebook_id=ALL_QUESTIONS, question=qs[3],
                                          attempts=["Salvador", "Brasília"], is_correct_first_try=False)

        # notebook rates are [0, 0, 0, 1, 1, 1]: easy <= 0.0 < medium <= 1.0
        filters = selection.QuestionFilters(wrong_only=True, difficulty="medium")
        picked, _ = selection.select_questions(user, ALL_QUESTIONS, qs, filters)
        assert picked == [qs[3]]

    def test_wrong_only_wins_over_unanswered(self):
        filters = selection.QuestionFilters.from_params({"wrong_only": "1", "unanswered": "1"}, ALL_QUESTIONS)
        assert filters.wrong_only and not filters.unanswered

    def test_next_unanswered_wraps_around(self, make_question):
        qs = [make_question(text=f"Q{i}") for i in range(3)]
        answered = {str(qs[2].pk)}
        assert selection.next_unanswered(qs, answered, current_id=qs[1].pk) == qs[0]

    def test_shuffled_options_keep_the_same_set(self, question):
        shuffled = selection.shuffled_options(question, "seed")
        assert sorted(shuffled) == sorted(question.options)
        assert shuffled == selection.shuffled_options(question, "seed")


@pytest.mark.django_db
class TestStats:
    def test_question_distribution(self, user, other_user, notebook):
        qid = notebook.question_ids[0]
        services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        services.answer_question(other_user, str(notebook.pk), qid, ["Salvador", "Brasília"])
        from library.models import Question
        stats = services.question_stats(Question.objects.get(pk=qid))
        assert stats["total"] == 2
        assert stats["correct"] == 1
        top = {d["option"]: d["percentage"] for d in stats["distribution"]}
        assert top["Brasília"] == 50.0 and top["Salvador"] == 50.0

    def test_notebook_stats_and_leaderboard(self, user, other_user, notebook):
        ids = notebook.question_ids
        services.answer_question(user, str(notebook.pk), ids[0], ["Brasília"])
        services.answer_question(user, str(notebook.pk), ids[1], ["Brasília"])
        services.answer_question(other_user, str(notebook.pk), ids[0], ["Brasília"])

        stats = services.notebook_stats(user, str(notebook.pk))
        assert stats["questions_answered"] == 2
        assert stats["progress"] == 66.7
        assert stats["accuracy"] == 100.0
        assert [(r["pseudonym"], r["rank"]) for r in stats["leaderboard"]] == [("Ana", 1), ("Bruno", 2)]


@pytest.mark.django_db
class TestNotebookPerformance:
    def test_names_and_order(self, user, notebook, make_question):
        qs = [make_question(text=f"P{i}") for i in range(3)]
        for q in qs:
            UserQuestionAnswer.objects.create(user=user, notebook_id=ALL_QUESTIONS, question=q,
                                              attempts=["Brasília"], is_correct_first_try=True)
        for q in qs[:2]:
            UserQuestionAnswer.objects.create(user=user, notebook_id=FAVORITES_NOTEBOOK, question=q,
                                              attempts=["Salvador", "Brasília"], is_correct_first_try=False)
        UserQuestionAnswer.objects.create(user=user, notebook_id="0f1e2d3c-4b5a-4978-8695-a4b3c2d1e0f9",
                                          question=qs[0], attempts=["Brasília"], is_correct_first_try=True)

        rows = services.notebook_performance(user)
        assert [r["name"] for r in rows] == ["Todas as Questões", "⭐ Questões Favoritas", "Caderno Desconhecido"]
        assert [r["total"] for r in rows] == [3, 2, 1]
        assert rows[0]["accuracy"] == 100.0
        assert rows[1]["accuracy"] == 0.0

    def test_real_notebook_keeps_its_name(self, user, notebook):
        services.answer_question(user, str(notebook.pk), notebook.question_ids[0], ["Brasília"])
        assert services.notebook_performance(user)[0]["name"] == "Revisão"


@pytest.mark.django_db
class TestCheckAttempt:
    def test_in_progress(self, question):
        result = services.check_attempt(question, ["Salvador"])
        assert result["finished"] is False
        assert result["correct_answer"] is None
        assert result["hints"] == ["Fica no Centro-Oeste."]

    def test_finished_reveals_answer(self, question):
        result = services.check_attempt(question, ["Brasília"])
        assert result["finished"] and result["correct"]
        assert result["correct_answer"] == "Brasília"


@pytest.mark.django_db
class TestNotebookAPI:
    def test_grid_has_virtual_notebooks(self, auth_client, notebook):
        res = auth_client.get("/api/notebooks/")
        assert res.status_code == 200
        assert res.data["virtual"][0]["id"] == ALL_QUESTIONS
        assert res.data["notebooks"][0]["name"] == "Revisão"

    def test_create_notebook(self, auth_client, question, no_ai):
        res = auth_client.post("/api/notebooks/", {"question_count": 5}, format="json")
        assert res.status_code == 201
        assert QuestionNotebook.objects.get(pk=res.data["id"]).question_ids == [str(question.pk)]

    def test_answer_endpoint(self, auth_client, notebook):
        qid = notebook.question_ids[0]
        res = auth_client.post(f"/api/notebooks/{notebook.pk}/answer/",
                               {"question_id": qid, "attempts": ["Brasília"]}, format="json")
        assert res.status_code == 201
        assert res.data["xp_gained"] == 10
        assert res.data["answer"]["is_correct"] is True

    def test_answer_on_virtual_notebook(self, auth_client, question):
        res = auth_client.post(f"/api/notebooks/{ALL_QUESTIONS}/answer/",
                               {"question_id": str(question.pk), "attempts": ["Brasília"]}, format="json")
        assert res.status_code == 201

    def test_invalid_attempts_are_400(self, auth_client, notebook):
        res = auth_client.post(f"/api/notebooks/{notebook.pk}/answer/",
                               {"question_id": notebook.question_ids[0], "attempts": ["Salvador"]}, format="json")
        assert res.status_code == 400

    def test_questions_endpoint_returns_seed(self, auth_client, notebook):
        res = auth_client.get(f"/api/notebooks/{notebook.pk}/questions/", {"sort": "random"})
        assert res.status_code == 200
        assert res.data["count"] == 3
        assert res.data["seed"]

    def test_next_skips_answered_and_wraps(self, auth_client, user, notebook):
        ids = notebook.question_ids
        services.answer_question(user, str(notebook.pk), ids[0], ["Brasília"])
        res = auth_client.get(f"/api/notebooks/{notebook.pk}/next/", {"after": ids[2]})
        assert res.status_code == 200
        assert str(res.data["question"]["id"]) == ids[1]

    def test_next_when_everything_is_answered(self, auth_client, user, notebook):
        for qid in notebook.question_ids:
            services.answer_question(user, str(notebook.pk), qid, ["Brasília"])
        res = auth_client.get(f"/api/notebooks/{notebook.pk}/next/")
        assert res.data["question"] is None
        assert res.data["detail"].startswith("Parabéns!")

    def test_questions_endpoint_filters_by_difficulty(self, auth_client, user, other_user, notebook):
        ids = notebook.question_ids
        for qid in ids[:2]:
            services.answer_question(other_user, str(notebook.pk), qid, ["Brasília"])
        services.answer_question(other_user, str(notebook.pk), ids[2], ["Salvador", "Rio de Janeiro", "São Paulo"])
        # rates [0, 0, 1] give cut points (0, 0): only the missed question is hard
        hard = auth_client.get(f"/api/notebooks/{notebook.pk}/questions/", {"difficulty": "hard"})
        assert [str(q["id"]) for q in hard.data["results"]] == [ids[2]]
        easy = auth_client.get(f"/api/notebooks/{notebook.pk}/questions/", {"difficulty": "easy"})
        assert easy.data["count"] == 2

    def test_only_owner_deletes(self, api_client, other_user, notebook):
        api_client.force_authenticate(other_user)
        assert api_client.delete(f"/api/notebooks/{notebook.pk}/").status_code == 403

    def test_owner_delete_drops_answers(self, auth_client, user, notebook):
        services.answer_question(user, str(notebook.pk), notebook.question_ids[0], ["Brasília"])
        assert auth_client.delete(f"/api/notebooks/{notebook.pk}/").status_code == 204
        assert not UserQuestionAnswer.objects.filter(notebook_id=str(notebook.pk)).exists()

    def test_vote_on_notebook_pays_the_author(self, api_client, user, other_user, notebook):
        api_client.force_authenticate(other_user)
        res = api_client.post(f"/api/notebooks/{notebook.pk}/vote/", {"vote_type": "hot", "increment": 1}, format="json")
        assert res.status_code == 200
        user.refresh_from_db()
        assert user.xp == 1

    def test_virtual_notebooks_cannot_be_voted(self, auth_client):
        res = auth_client.post(f"/api/notebooks/{ALL_QUESTIONS}/vote/", {"vote_type": "hot"}, format="json")
        assert res.status_code == 403

    def test_unknown_notebook_is_404(self, auth_client):
        assert auth_client.get("/api/notebooks/nao-existe/stats/").status_code == 404
