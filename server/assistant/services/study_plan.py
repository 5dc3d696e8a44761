import logging

from django.db import transaction

from assistant.models import StudyPlan
from assistant.services import gemini
from library.models import AudioSummary, Summary, UserContentInteraction
from progress.profile import topic_performance
from progress.services import grant_xp
from questions.models import QuestionNotebook
from questions.services import notebook_performance

logger = logging.getLogger(__name__)

FIRST_PLAN_XP = 100
NEXT_PLAN_XP = 15
TITLE_SAMPLE = 60


def build_plan_context(user):
    stats = user.get_stats()
    read_counts = {
        ctype: UserContentInteraction.objects.filter(user=user, content_type=ctype, is_read=True).count()
        for ctype in ("summary", "flashcard", "mind_map")
    }
    return {
        "aluno": user.pseudonym,
        "xp": user.xp,
        "questoes_respondidas": stats["questions_answered"],
        "acertos_de_primeira": stats["correct_answers"],
        "sequencia_atual": stats["streak"],
        "desempenho_por_topico": topic_performance(user),
        "desempenho_por_caderno": notebook_performance(user)[:10],
        "materiais_lidos": read_counts,
        "resumos_disponiveis": list(Summary.objects.values_list("title", flat=True)[:TITLE_SAMPLE]),
        "cadernos_disponiveis": list(QuestionNotebook.objects.values_list("name", flat=True)[:TITLE_SAMPLE]),
        "audios_disponiveis": list(AudioSummary.objects.values_list("title", flat=True)[:TITLE_SAMPLE]),
    }


def generate_study_plan(user):
    """
    Ask Gemini for a personalised plan, store it and grant XP
    (first plan 100, then 15). Raises AIServiceError on an unusable reply.
    """
    text = gemini.get_personalized_study_plan(build_plan_context(user))
    if not text or text.startswith("Desculpe"):
        raise gemini.AIServiceError("Não foi possível gerar o plano de estudos agora.")

    with transaction.atomic():
        first = not StudyPlan.objects.filter(user=user).exists()
        plan = StudyPlan.objects.create(user=user, content=text)
        grant_xp(user, FIRST_PLAN_XP if first else NEXT_PLAN_XP, "STUDY_PLAN_GENERATED", plan.pk)
    logger.info("study plan generated user=%s plan=%s first=%s", user.pk, plan.pk, first)
    return plan
