import json
import logging
import re

from django.conf import settings
from google import genai
from google.genai import types

log = logging.getLogger(__name__)

_client = None

COMMUNITY_SYS = (
    "Você é o Ed, assistente de estudos da comunidade Procap-G200. "
    "Responda em português do Brasil, de forma breve, amigável e objetiva. "
    "Ajude os alunos com dúvidas sobre o conteúdo da prova e motive a turma. "
    "Quando citar um resumo use #[Título], um flashcard ![Frente] e um caderno ?[Nome]."
)

CONTENT_SYS = (
    "Você é um especialista em preparar material de estudo para concursos. "
    "A partir do texto fornecido gere conteúdo fiel ao material, em português do Brasil, "
    "e responda SOMENTE com um objeto JSON válido."
)

CONTENT_SCHEMA_HINT = """{
  "summaries": [{"title": str, "content": str (markdown), "key_points": [str]}],
  "flashcards": [{"front": str, "back": str}],
  "questions": [{"question_text": str, "options": [str, 4 ou 5 itens], "correct_answer": str (igual a uma das options),
                 "explanation": str, "hints": [str, 2 a 3 itens], "difficulty": "Fácil" | "Médio" | "Difícil"}],
  "mind_maps": [{"title": str}]
}"""


class AIServiceError(Exception):
    """Gemini is not configured, failed, or returned something unusable."""


def get_client():
    global _client
    api_key = getattr(settings, "GEMINI_API_KEY", "")
    if not api_key:
        raise AIServiceError("GEMINI_API_KEY não configurada.")
    if _client is None:
        _client = genai.Client(api_key=api_key)
    return _client


def _generate(contents, system_instruction=None, json_mode=False):
    client = get_client()
    config = types.GenerateContentConfig(
        system_instruction=system_instruction,
        response_mime_type="application/json" if json_mode else None,
    )
    try:
        response = client.models.generate_content(
            model=settings.GEMINI_MODEL,
            contents=contents,
            config=config,
        )
    except Exception as e:
        log.error("Gemini API call failed: %s", e)
        raise AIServiceError(str(e)) from e
    return (response.text or "").strip()


def _parse_json(raw):
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", raw or "", flags=re.IGNORECASE).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.warning("Gemini did not return JSON: %.200s", raw)
        raise AIServiceError("Resposta da IA em formato inválido.") from e


def get_simple_chat_response(history, message, system_instruction=COMMUNITY_SYS):
    """history: [{"role": "user" | "model", "text": str}] oldest first."""
    contents = [
        types.Content(role=turn["role"], parts=[types.Part(text=turn["text"])])
        for turn in history
        if (turn.get("text") or "").strip()
    ]
    contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return _generate(contents, system_instruction)


def filter_items_by_prompt(prompt, items):
    """
    items: [{"id": str, "text": str}]. Returns the ids Gemini judged
    relevant to `prompt`, restricted to the ids that were offered.
    """
    if not items:
        return []
    listing = "\n".join(f'{item["id"]}: {item["text"][:300]}' for item in items)
    raw = _generate(
        f"Critério do aluno: {prompt}\n\nItens (id: texto):\n{listing}\n\n"
        'Responda com JSON {"ids": [...]} contendo apenas os ids dos itens relevantes ao critério.',
        json_mode=True,
    )
    data = _parse_json(raw)
    ids = data.get("ids", []) if isinstance(data, dict) else data
    offered = {str(item["id"]) for item in items}
    return [str(i) for i in ids if str(i) in offered]


def generate_notebook_name(question_texts):
    sample = "\n".join(f"- {t[:200]}" for t in question_texts[:15])
    name = _generate(
        "Crie um nome curto (até 6 palavras) para um caderno de questões com estas questões. "
        f"Responda apenas com o nome.\n{sample}"
    )
    return name.strip().strip('"').strip()[:200]


def get_personalized_study_plan(context):
    """context: dict with the student's stats and the available content titles."""
    prompt = (
        "Você é o Ed, tutor do Procap-G200. Monte um plano de estudos personalizado, em português, "
        "para o aluno abaixo. Use marcação markdown. Ao recomendar um material, use exatamente as tags: "
        "#[Título do resumo], ![Frente do flashcard], ?[Nome do caderno], @[Título do áudio], "
        "escolhendo apenas títulos da lista disponível.\n\n"
        f"DADOS DO ALUNO:\n{json.dumps(context, ensure_ascii=False, indent=2)}"
    )
    return _generate(prompt)


def generate_study_content(text, title="", existing_titles=None):
    existing = ""
    if existing_titles:
        existing = "\nJá existem estes resumos, gere conteúdo NOVO e complementar:\n" + "\n".join(
            f"- {t}" for t in existing_titles
        )
    prompt = (
        f"Material: {title}\n{existing}\n\nFormato esperado:\n{CONTENT_SCHEMA_HINT}\n\n"
        f"TEXTO:\n{text[:200_000]}"
    )
    data = _parse_json(_generate(prompt, system_instruction=CONTENT_SYS, json_mode=True))
    if not isinstance(data, dict):
        raise AIServiceError("Resposta da IA em formato inválido.")
    return data
