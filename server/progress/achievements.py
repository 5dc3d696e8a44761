import logging

from django.db import transaction
from django.db.models import Q, Sum

from community.models import ChatMessage
from library.models import Source, UserContentInteraction
from questions.models import UserNotebookInteraction
from users.models import User

logger = logging.getLogger(__name__)

# category -> tiers (metric threshold, title)
ACHIEVEMENTS = {
    "FLASHCARDS_FLIPPED": [
        (10, "Virador de Cartas"),
        (50, "Mestre dos Flashcards"),
        (200, "Memória de Elefante"),
    ],
    "QUESTIONS_CORRECT": [
        (10, "Primeiros Acertos"),
        (100, "Atirador de Elite"),
        (500, "Gabaritador"),
    ],
    "STREAK": [
        (5, "Em Chamas"),
        (15, "Imparável"),
        (30, "Lenda da Sequência"),
    ],
    "SUMMARIES_READ": [
        (5, "Leitor Atento"),
        (25, "Devorador de Resumos"),
        (100, "Biblioteca Viva"),
    ],
    "MIND_MAPS_READ": [
        (5, "Cartógrafo"),
        (20, "Arquiteto de Ideias"),
    ],
    "CONTENT_CREATED": [
        (1, "Colaborador"),
        (10, "Criador Prolífico"),
    ],
    "VOTES_GIVEN": [
        (10, "Crítico"),
        (100, "Termômetro da Turma"),
    ],
    "IA_INTERACTIONS": [
        (1, "Olá, Ed!"),
        (25, "Parceiro da IA"),
    ],
}


def _read_count(user, content_type):
    return UserContentInteraction.objects.filter(user=user, content_type=content_type, is_read=True).count()


def _votes_given(user):
    total = 0
    for model in (UserContentInteraction, UserNotebookInteraction):
        agg = model.objects.filter(user=user).aggregate(hot=Sum("hot_votes"), cold=Sum("cold_votes"))
        total += int(agg["hot"] or 0) + int(agg["cold"] or 0)
    return total


def _compute_metric(user, category: str) -> int:
    stats = user.get_stats()

    if category == "FLASHCARDS_FLIPPED":
        return _read_count(user, "flashcard")
    if category == "QUESTIONS_CORRECT":
        return int(stats.get("correct_answers") or 0)
    if category == "STREAK":
        return int(stats.get("streak") or 0)
    if category == "SUMMARIES_READ":
        return _read_count(user, "summary")
    if category == "MIND_MAPS_READ":
        return _read_count(user, "mind_map")
    if category == "CONTENT_CREATED":
        return Source.objects.filter(user=user).count()
    if category == "VOTES_GIVEN":
        return _votes_given(user)
    if category == "IA_INTERACTIONS":
        return ChatMessage.objects.filter(author=user).filter(
            Q(text__icontains="@ia") | Q(text__icontains="@ed")
        ).count()
    return 0


def earned_titles(user, categories=None):
    titles = set()
    for category, tiers in ACHIEVEMENTS.items():
        if categories and category not in categories:
            continue
        value = _compute_metric(user, category)
        titles.update(title for threshold, title in tiers if value >= threshold)
    return titles


@transaction.atomic
def check_achievements(user, categories=None):
    """
    Recompute the given categories (all by default) and add any newly
    reached titles to `user.achievements`. Titles are never removed.

    Returns the list of newly awarded titles.
    """
    current = set(
        User.objects.select_for_update().filter(pk=user.pk).values_list("achievements", flat=True).first() or []
    )
    new_titles = earned_titles(user, categories) - current
    if not new_titles:
        return []

    user.achievements = sorted(current | new_titles)
    user.save(update_fields=["achievements"])
    logger.info("achievements unlocked user=%s titles=%s", user.pk, sorted(new_titles))
    return sorted(new_titles)
