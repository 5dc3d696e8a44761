import logging
import random
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.http import Http404
from django.utils import timezone
from rest_framework import serializers

from assistant.services import gemini
from library.models import Question
from library.services import apply_vote, favorite_ids, validate_vote, vote_summary
from progress.achievements import check_achievements
from progress.services import grant_xp
from questions.models import (
    ALL_QUESTIONS,
    FAVORITES_NOTEBOOK,
    VIRTUAL_NOTEBOOKS,
    QuestionNotebook,
    UserNotebookInteraction,
    UserQuestionAnswer,
)
from users.models import User

logger = logging.getLogger(__name__)

MAX_WRONG_ATTEMPTS = 3
XP_BY_WRONG_ATTEMPTS = [10, 5, 2]
DEFAULT_QUESTION_COUNT = 40

NOTEBOOK_NAMES = {
    ALL_QUESTIONS: "Todas as Questões",
    FAVORITES_NOTEBOOK: "⭐ Questões Favoritas",
}
UNKNOWN_NOTEBOOK = "Caderno Desconhecido"


class AnswerError(serializers.ValidationError):
    pass


def _is_uuid(value):
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def get_notebook(notebook_id):
    if not _is_uuid(notebook_id):
        raise Http404("Caderno não encontrado.")
    try:
        return QuestionNotebook.objects.select_related("user").get(pk=notebook_id)
    except (QuestionNotebook.DoesNotExist, DjangoValidationError):
        raise Http404("Caderno não encontrado.")


def resolve_notebook(user, notebook_id):
    """
    (notebook or None, ordered question ids as str) for a notebook key.
    Ids of deleted questions are dropped.
    """
    if notebook_id == ALL_QUESTIONS:
        ids = [str(i) for i in Question.objects.order_by("created_at", "id").values_list("id", flat=True)]
        return None, ids

    if notebook_id == FAVORITES_NOTEBOOK:
        wanted = favorite_ids(user, "question")
        notebook = None
    else:
        notebook = get_notebook(notebook_id)
        wanted = [str(i) for i in notebook.question_ids or []]

    existing = {str(i) for i in Question.objects.filter(id__in=[i for i in wanted if _is_uuid(i)]).values_list("id", flat=True)}
    seen, ids = set(), []
    for qid in wanted:
        if qid in existing and qid not in seen:
            seen.add(qid)
            ids.append(qid)
    return notebook, ids


def notebook_questions(user, notebook_id):
    notebook, ids = resolve_notebook(user, notebook_id)
    by_id = {str(q.pk): q for q in Question.objects.filter(id__in=ids).select_related("source")}
    return notebook, [by_id[i] for i in ids if i in by_id]


def notebook_name(notebook_id, names=None):
    if notebook_id in NOTEBOOK_NAMES:
        return NOTEBOOK_NAMES[notebook_id]
    return (names or {}).get(notebook_id, UNKNOWN_NOTEBOOK)


# ---------- notebook creation ----------

def answered_question_ids(user, first_try_wrong=False):
    qs = UserQuestionAnswer.objects.filter(user=user)
    if first_try_wrong:
        qs = qs.filter(is_correct_first_try=False)
    return {str(q) for q in qs.values_list("question_id", flat=True)}


def _fallback_name():
    return f"Caderno {timezone.localtime().strftime('%d/%m/%Y %H:%M')}"


def create_notebook(user, name="", question_count=DEFAULT_QUESTION_COUNT, prompt="", source_ids=None,
                    exclude_answered=False, prioritize_wrong_and_favorites=True, rng=None):
    """
    Build a notebook from the question pool of the given sources (all by default).

    With prioritisation, questions the user got wrong on the first try and
    favourited questions come first; the remaining ones are shuffled after them.
    A prompt narrows the pool through Gemini; an empty AI answer keeps the pool.
    """
    rng = rng or random.Random()
    qs = Question.objects.order_by("created_at", "id")
    if source_ids:
        qs = qs.filter(source_id__in=source_ids)
    texts = {str(q["id"]): q["question_text"] for q in qs.values("id", "question_text")}
    pool = list(texts)
    answered = answered_question_ids(user)

    if prioritize_wrong_and_favorites:
        priority_set = answered_question_ids(user, first_try_wrong=True) | set(favorite_ids(user, "question"))
        priority = [q for q in pool if q in priority_set]
        rest = [q for q in pool if q not in priority_set and not (exclude_answered and q in answered)]
        rng.shuffle(rest)
        ordered = priority + rest
    else:
        ordered = [q for q in pool if not (exclude_answered and q in answered)]

    if not ordered:
        raise serializers.ValidationError({"detail": "Nenhuma questão disponível com os filtros aplicados."})

    prompt = (prompt or "").strip()
    if prompt:
        try:
            relevant = gemini.filter_items_by_prompt(prompt, [{"id": q, "text": texts[q]} for q in ordered])
        except gemini.AIServiceError as e:
            logger.warning("prompt filter failed, keeping the whole pool: %s", e)
            relevant = []
        if relevant:
            keep = set(relevant)
            ordered = [q for q in ordered if q in keep]

    if not prioritize_wrong_and_favorites:
        rng.shuffle(ordered)
    ordered = ordered[:max(1, int(question_count or DEFAULT_QUESTION_COUNT))]

    name = (name or "").strip()
    if not name:
        try:
            name = gemini.generate_notebook_name([texts[q] for q in ordered])
        except gemini.AIServiceError as e:
            logger.warning("notebook name generation failed: %s", e)
        name = name or _fallback_name()

    notebook = QuestionNotebook.objects.create(user=user, name=name, question_ids=ordered)
    logger.info("notebook created id=%s user=%s questions=%s", notebook.pk, user.pk, len(ordered))
    return notebook


# ---------- answering ----------

def validate_attempts(question, attempts):
    """Returns (is_correct, wrong_count) for a finished attempt sequence."""
    if not isinstance(attempts, list) or not attempts:
        raise AnswerError({"attempts": "Informe ao menos uma tentativa."})
    if any(not isinstance(a, str) for a in attempts):
        raise AnswerError({"attempts": "Tentativas inválidas."})
    if len(set(attempts)) != len(attempts):
        raise AnswerError({"attempts": "Alternativas repetidas."})
    if any(a not in question.options for a in attempts):
        raise AnswerError({"attempts": "Alternativa não pertence à questão."})
    if question.correct_answer in attempts[:-1]:
        raise AnswerError({"attempts": "Não há tentativas depois do acerto."})

    is_correct = attempts[-1] == question.correct_answer
    wrong_count = len(attempts) - (1 if is_correct else 0)
    if wrong_count > MAX_WRONG_ATTEMPTS:
        raise AnswerError({"attempts": "Máximo de 3 erros por questão."})
    if not is_correct and wrong_count < MAX_WRONG_ATTEMPTS:
        raise AnswerError({"attempts": "Resposta incompleta: continue até acertar ou errar 3 vezes."})
    return is_correct, wrong_count


def revealed_hints(question, attempts):
    if not attempts:
        return []
    if attempts[-1] == question.correct_answer:
        return list(question.hints or [])
    return list(question.hints or [])[:len(attempts)]


def _record_first_answer(user, question, is_correct_first_try):
    locked = User.objects.select_for_update().get(pk=user.pk)
    stats = locked.get_stats()
    stats["questions_answered"] += 1
    if is_correct_first_try:
        stats["correct_answers"] += 1
        stats["streak"] += 1
    else:
        stats["streak"] = 0

    topic = question.source.topic or "Geral"
    perf = dict(stats.get("topic_performance") or {})
    entry = dict(perf.get(topic) or {"correct": 0, "total": 0})
    entry["total"] += 1
    if is_correct_first_try:
        entry["correct"] += 1
    perf[topic] = entry
    stats["topic_performance"] = perf

    locked.stats = stats
    locked.save(update_fields=["stats"])
    user.stats = stats


def answer_question(user, notebook_id, question_id, attempts):
    """
    Save the user's final attempt sequence for a question in a notebook.

    Returns (answer, created, xp_gained). A question already answered in the
    same notebook is returned as is.
    """
    _, ids = resolve_notebook(user, notebook_id)
    if str(question_id) not in set(ids):
        raise AnswerError({"question_id": "A questão não pertence a este caderno."})
    question = Question.objects.select_related("source").get(pk=question_id)

    is_correct, wrong_count = validate_attempts(question, attempts)
    is_correct_first_try = is_correct and len(attempts) == 1

    with transaction.atomic():
        existing = UserQuestionAnswer.objects.filter(
            user=user, notebook_id=notebook_id, question=question
        ).select_related("question").first()
        if existing:
            return existing, False, 0

        first_ever = not UserQuestionAnswer.objects.filter(user=user, question=question).exists()
        answer = UserQuestionAnswer.objects.create(
            user=user,
            notebook_id=notebook_id,
            question=question,
            attempts=list(attempts),
            is_correct_first_try=is_correct_first_try,
        )

        xp_gained = 0
        if first_ever:
            _record_first_answer(user, question, is_correct_first_try)
            if is_correct:
                # idempotent: clearing answers and answering again earns nothing
                event = grant_xp(user, XP_BY_WRONG_ATTEMPTS[wrong_count], "QUESTION_ANSWER", question.pk, idempotent=True)
                xp_gained = event.amount if event else 0
        if xp_gained:
            answer.xp_awarded = xp_gained
            answer.save(update_fields=["xp_awarded"])

    if first_ever:
        check_achievements(user, ["QUESTIONS_CORRECT", "STREAK"])
    return answer, True, xp_gained


def clear_answers(user, notebook_id, question_ids=None):
    resolve_notebook(user, notebook_id)
    qs = UserQuestionAnswer.objects.filter(user=user, notebook_id=notebook_id)
    if question_ids:
        qs = qs.filter(question_id__in=[q for q in question_ids if _is_uuid(q)])
    deleted, _ = qs.delete()
    logger.info("answers cleared user=%s notebook=%s count=%s", user.pk, notebook_id, deleted)
    return deleted


# ---------- stats ----------

def _pct(part, whole):
    return round(part / whole * 100, 1) if whole else 0


def question_stats(question):
    """First-attempt distribution across every saved answer."""
    answers = list(UserQuestionAnswer.objects.filter(question=question).values_list("attempts", "is_correct_first_try"))
    total = len(answers)
    correct = sum(1 for _, ok in answers if ok)
    counts = {opt: 0 for opt in question.options}
    for attempts, _ in answers:
        if attempts and attempts[0] in counts:
            counts[attempts[0]] += 1

    distribution = [
        {"option": opt, "count": n, "percentage": _pct(n, total)}
        for opt, n in counts.items()
    ]
    if total:
        distribution.sort(key=lambda d: d["count"], reverse=True)
    return {
        "total": total,
        "correct": correct,
        "incorrect": total - correct,
        "distribution": distribution,
    }


def _ranked(rows, key):
    prev, rank = None, 0
    for idx, row in enumerate(rows, start=1):
        if row[key] != prev:
            prev, rank = row[key], idx
        row["rank"] = rank
    return rows


def notebook_stats(user, notebook_id):
    _, ids = resolve_notebook(user, notebook_id)
    answers = UserQuestionAnswer.objects.filter(notebook_id=notebook_id, question_id__in=ids)
    mine = answers.filter(user=user)

    total = len(ids)
    answered = mine.count()
    correct_first = mine.filter(is_correct_first_try=True).count()

    board = list(
        answers.filter(is_correct_first_try=True)
        .values("user", "user__pseudonym")
        .annotate(correct=Count("id"))
        .order_by("-correct", "user__pseudonym")
    )
    leaderboard = _ranked(
        [{"user_id": r["user"], "pseudonym": r["user__pseudonym"], "correct": r["correct"]} for r in board],
        "correct",
    )

    sources = {}
    for qid, sid, title in mine.values_list("question_id", "question__source_id", "question__source__title"):
        entry = sources.setdefault(str(sid), {"id": str(sid), "title": title, "count": 0, "question_ids": []})
        entry["count"] += 1
        entry["question_ids"].append(str(qid))

    return {
        "notebook_id": notebook_id,
        "total_questions": total,
        "questions_answered": answered,
        "correct_first_try": correct_first,
        "accuracy": _pct(correct_first, answered),
        "progress": _pct(answered, total),
        "leaderboard": leaderboard,
        "sources": sorted(sources.values(), key=lambda s: -s["count"]),
    }


def notebook_performance(user):
    rows = list(
        UserQuestionAnswer.objects.filter(user=user)
        .values("notebook_id")
        .annotate(total=Count("id"), correct=Count("id", filter=Q(is_correct_first_try=True)))
    )
    real_ids = [r["notebook_id"] for r in rows if r["notebook_id"] not in VIRTUAL_NOTEBOOKS and _is_uuid(r["notebook_id"])]
    names = {str(pk): name for pk, name in QuestionNotebook.objects.filter(id__in=real_ids).values_list("id", "name")}
    out = [
        {
            "notebook_id": r["notebook_id"],
            "name": notebook_name(r["notebook_id"], names),
            "total": r["total"],
            "correct": r["correct"],
            "accuracy": _pct(r["correct"], r["total"]),
        }
        for r in rows
    ]
    out.sort(key=lambda r: r["total"], reverse=True)
    return out


def notebook_grid(user, sort="temp"):
    """Real notebooks plus the virtual ones, with question and resolved counts."""
    resolved = dict(
        UserQuestionAnswer.objects.filter(user=user)
        .values("notebook_id")
        .annotate(c=Count("id"))
        .values_list("notebook_id", "c")
    )

    virtual = [{
        "id": ALL_QUESTIONS,
        "name": NOTEBOOK_NAMES[ALL_QUESTIONS],
        "question_count": Question.objects.count(),
        "resolved_count": resolved.get(ALL_QUESTIONS, 0),
        "virtual": True,
    }]
    favs = resolve_notebook(user, FAVORITES_NOTEBOOK)[1]
    if favs:
        virtual.append({
            "id": FAVORITES_NOTEBOOK,
            "name": NOTEBOOK_NAMES[FAVORITES_NOTEBOOK],
            "question_count": len(favs),
            "resolved_count": resolved.get(FAVORITES_NOTEBOOK, 0),
            "virtual": True,
        })

    notebooks = list(QuestionNotebook.objects.select_related("user"))
    if sort == "time":
        notebooks.sort(key=lambda n: n.created_at, reverse=True)
    elif sort == "user":
        notebooks.sort(key=lambda n: ((n.user.pseudonym if n.user else "").casefold(), n.name.casefold()))
    else:
        notebooks.sort(key=lambda n: (n.temperature, n.created_at), reverse=True)
    for nb in notebooks:
        nb.resolved_count = resolved.get(str(nb.pk), 0)
    return virtual, notebooks


# ---------- notebook engagement ----------

def update_notebook_interaction(user, notebook, is_read=None, is_favorite=None):
    inter, _ = UserNotebookInteraction.objects.get_or_create(user=user, notebook=notebook)
    fields = []
    if is_read is not None:
        inter.is_read = bool(is_read)
        fields.append("is_read")
    if is_favorite is not None:
        inter.is_favorite = bool(is_favorite)
        fields.append("is_favorite")
    if fields:
        inter.save(update_fields=fields + ["updated_at"])
    return inter


def vote_notebook(user, notebook, vote_type, increment):
    increment = validate_vote(vote_type, increment)
    with transaction.atomic():
        inter, _ = UserNotebookInteraction.objects.select_for_update().get_or_create(user=user, notebook=notebook)
        applied = apply_vote(
            voter=user,
            item=notebook,
            interaction=inter,
            vote_type=vote_type,
            increment=increment,
            author=notebook.user,
            xp_source="NOTEBOOK_VOTE_RECEIVED",
        )
    if applied and increment > 0:
        check_achievements(user, ["VOTES_GIVEN"])
    return vote_summary(notebook, inter, applied)


def check_attempt(question, attempts):
    """
    Grade an in-progress attempt sequence without saving it: correctness of
    the last choice, hints unlocked so far and, once finished, the answer.
    """
    if not isinstance(attempts, list) or not attempts:
        raise AnswerError({"attempts": "Informe ao menos uma tentativa."})
    if len(set(attempts)) != len(attempts) or any(a not in question.options for a in attempts):
        raise AnswerError({"attempts": "Tentativas inválidas."})
    if question.correct_answer in attempts[:-1]:
        raise AnswerError({"attempts": "Não há tentativas depois do acerto."})

    is_correct = attempts[-1] == question.correct_answer
    wrong_count = len(attempts) - (1 if is_correct else 0)
    if wrong_count > MAX_WRONG_ATTEMPTS:
        raise AnswerError({"attempts": "Máximo de 3 erros por questão."})
    finished = is_correct or wrong_count == MAX_WRONG_ATTEMPTS
    return {
        "correct": is_correct,
        "wrong_count": wrong_count,
        "finished": finished,
        "hints": revealed_hints(question, attempts),
        "correct_answer": question.correct_answer if finished else None,
        "explanation": question.explanation if finished else None,
    }
