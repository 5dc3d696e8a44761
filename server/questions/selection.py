"""
Filtering and ordering of the questions shown inside a notebook.

Difficulty is derived from the community error rate of each question
(1 - first-try hits / answers; unanswered questions count as 0.5). The
easy/medium/hard cut points are the 33rd and 66th percentiles of the
notebook's own rates, so every notebook splits into comparable thirds.
"""
import random
import uuid
from dataclasses import dataclass
from typing import Optional

from django.db.models import Count, Q

from questions.models import ALL_QUESTIONS, UserQuestionAnswer
from questions.services import answered_question_ids

DEFAULT_ERROR_RATE = 0.5
DEFAULT_THRESHOLDS = (0.33, 0.66)
SORTS = ("default", "temp", "date", "random")
DIFFICULTIES = ("easy", "medium", "hard")


def _flag(value, default=False):
    if value is None or value == "":
        return default
    return str(value).lower() in ("1", "true", "yes", "on")


@dataclass
class QuestionFilters:
    source: Optional[str] = None
    wrong_only: bool = False
    unanswered: bool = False
    difficulty: Optional[str] = None
    sort: str = "default"
    seed: Optional[str] = None
    prioritize_apostilas: bool = False
    shuffle_options: bool = False

    @classmethod
    def from_params(cls, params, notebook_id):
        is_all = notebook_id == ALL_QUESTIONS
        wrong_only = _flag(params.get("wrong_only"))
        difficulty = params.get("difficulty")
        sort = params.get("sort") or "default"
        return cls(
            source=(params.get("source") or None) if is_all else None,
            wrong_only=wrong_only,
            # the two answer filters are exclusive; wrong_only wins
            unanswered=is_all and not wrong_only and _flag(params.get("unanswered")),
            difficulty=difficulty if difficulty in DIFFICULTIES else None,
            sort=sort if sort in SORTS else "default",
            seed=params.get("seed") or None,
            prioritize_apostilas=is_all and _flag(params.get("prioritize_apostilas"), default=True),
            shuffle_options=_flag(params.get("shuffle_options")),
        )


def error_rates(question_ids):
    rows = (
        UserQuestionAnswer.objects.filter(question_id__in=list(question_ids))
        .values("question_id")
        .annotate(total=Count("id"), correct=Count("id", filter=Q(is_correct_first_try=True)))
    )
    rates = {str(qid): DEFAULT_ERROR_RATE for qid in question_ids}
    for r in rows:
        if r["total"]:
            rates[str(r["question_id"])] = 1 - r["correct"] / r["total"]
    return rates


def difficulty_thresholds(rates):
    values = sorted(rates)
    n = len(values)
    if n < 3:
        return DEFAULT_THRESHOLDS
    return values[int(n * 0.33)], values[int(n * 0.66)]


def classify(rate, thresholds):
    easy, medium = thresholds
    if rate <= easy:
        return "easy"
    if rate <= medium:
        return "medium"
    return "hard"


def _sorted(questions, sort, rng):
    questions = list(questions)
    if sort == "temp":
        return sorted(questions, key=lambda q: q.temperature, reverse=True)
    if sort == "date":
        return sorted(questions, key=lambda q: q.source.created_at, reverse=True)
    if sort == "random":
        rng.shuffle(questions)
    return questions


def _source_matches(question, source):
    try:
        return question.source_id == uuid.UUID(str(source))
    except ValueError:
        return question.source.title.lower() == source.lower()


def select_questions(user, notebook_id, questions, filters):
    """Apply `filters` to the notebook's ordered questions. Returns (questions, seed)."""
    if filters.difficulty:
        # cut points come from the whole notebook, not the filtered subset
        rates = error_rates([q.pk for q in questions])
        thresholds = difficulty_thresholds(rates.values())

    if filters.source:
        questions = [q for q in questions if _source_matches(q, filters.source)]

    if filters.wrong_only:
        wrong = answered_question_ids(user, first_try_wrong=True)
        questions = [q for q in questions if str(q.pk) in wrong]
    elif filters.unanswered:
        answered = answered_question_ids(user)
        questions = [q for q in questions if str(q.pk) not in answered]

    if filters.difficulty:
        questions = [q for q in questions if classify(rates[str(q.pk)], thresholds) == filters.difficulty]

    seed = filters.seed or uuid.uuid4().hex[:8]
    rng = random.Random(seed)
    if filters.prioritize_apostilas:
        apostilas = [q for q in questions if q.source.is_apostila]
        others = [q for q in questions if not q.source.is_apostila]
        questions = _sorted(apostilas, filters.sort, rng) + _sorted(others, filters.sort, rng)
    else:
        questions = _sorted(questions, filters.sort, rng)
    return questions, seed


def shuffled_options(question, seed):
    options = list(question.options)
    # Fisher-Yates, reproducible per (seed, question)
    random.Random(f"{seed}:{question.pk}").shuffle(options)
    return options


def next_unanswered(questions, answered_ids, current_id=None):
    """First unanswered question after `current_id`, wrapping around to the start."""
    ids = [str(q.pk) for q in questions]
    start = ids.index(str(current_id)) + 1 if current_id and str(current_id) in ids else 0
    for offset in range(len(ids)):
        idx = (start + offset) % len(ids)
        if ids[idx] != str(current_id) and ids[idx] not in answered_ids:
            return questions[idx]
    return None
