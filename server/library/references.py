"""
Inline navigation tags used in study plans and chat messages.

    #[Título do resumo]      -> Resumos
    ![Frente do flashcard]   -> Flashcards
    ?[Nome do caderno]       -> Questões
    @[Título do áudio]       -> Mídia

`parse_references` turns a text into a list of segments:

    [{"type": "text", "text": "Revise "},
     {"type": "link", "view": "Resumos", "term": "Crase", "id": "<uuid>"}]
"""
import re

REFERENCE_RE = re.compile(r"([#!?@])\[([^\]]+)\]")

TAG_VIEWS = {
    "#": "Resumos",
    "!": "Flashcards",
    "?": "Questões",
    "@": "Mídia",
}


def _lookup(view, term):
    from library.models import AudioSummary, Flashcard, Summary
    from questions.models import QuestionNotebook

    lookups = {
        "Resumos": (Summary, "title"),
        "Flashcards": (Flashcard, "front"),
        "Questões": (QuestionNotebook, "name"),
        "Mídia": (AudioSummary, "title"),
    }
    model, field = lookups[view]
    obj = model.objects.filter(**{f"{field}__iexact": term}).values_list("id", flat=True).first()
    return str(obj) if obj else None


def parse_references(text, resolve=True, allowed=None):
    """
    Split `text` into text/link segments. `allowed` limits which tag
    characters are recognised (e.g. "#!?" for chat messages); other tags
    stay as plain text.
    """
    text = text or ""
    segments = []
    last = 0
    for match in REFERENCE_RE.finditer(text):
        tag, term = match.group(1), match.group(2).strip()
        if allowed is not None and tag not in allowed:
            continue
        if match.start() > last:
            segments.append({"type": "text", "text": text[last:match.start()]})
        view = TAG_VIEWS[tag]
        link = {"type": "link", "view": view, "term": term}
        if resolve:
            link["id"] = _lookup(view, term)
        segments.append(link)
        last = match.end()
    if last < len(text):
        segments.append({"type": "text", "text": text[last:]})
    return segments


def has_references(text):
    return bool(REFERENCE_RE.search(text or ""))
