import logging
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models import F, Q
from django.http import Http404
from django.utils import timezone
from rest_framework import serializers
from rest_framework.exceptions import APIException

from library.models import (
    AudioSummary,
    Flashcard,
    LinkFile,
    MindMap,
    Question,
    Source,
    Summary,
    UserContentInteraction,
)
from progress.achievements import check_achievements
from progress.services import grant_xp
from utils._enum import VOTE_TYPES
from utils.gencode import new_comment_id, storage_key

logger = logging.getLogger(__name__)

CONTENT_MODELS = {
    "summary": Summary,
    "flashcard": Flashcard,
    "question": Question,
    "mind_map": MindMap,
    "audio_summary": AudioSummary,
    "source": Source,
    "link_file": LinkFile,
}

DISPLAY_FIELDS = {
    "summary": "title",
    "flashcard": "front",
    "question": "question_text",
    "mind_map": "title",
    "audio_summary": "title",
    "source": "title",
    "link_file": "title",
}

SORTS = ("temp", "time", "az")


class StorageError(APIException):
    status_code = 503
    default_detail = "Falha ao remover arquivos do armazenamento. Nada foi apagado."
    default_code = "storage_error"


def display_text(obj, content_type):
    return getattr(obj, DISPLAY_FIELDS[content_type], "") or ""


def get_content(content_type, content_id):
    model = CONTENT_MODELS.get(content_type)
    if model is None:
        raise serializers.ValidationError({"content_type": "Tipo de conteúdo inválido."})
    try:
        return model.objects.get(pk=content_id)
    except (model.DoesNotExist, DjangoValidationError, ValueError):
        raise Http404("Conteúdo não encontrado.")


def content_author(obj):
    if isinstance(obj, (Source, LinkFile)):
        return obj.user
    source = getattr(obj, "source", None)
    return source.user if source is not None else None


# ---------- interactions ----------

def interaction_map(user, content_type, ids):
    if not user or not user.is_authenticated:
        return {}
    qs = UserContentInteraction.objects.filter(user=user, content_type=content_type, content_id__in=list(ids))
    return {str(i.content_id): i for i in qs}


def update_interaction(user, content_type, content_id, is_read=None, is_favorite=None):
    get_content(content_type, content_id)
    with transaction.atomic():
        inter, _ = UserContentInteraction.objects.select_for_update().get_or_create(
            user=user, content_type=content_type, content_id=content_id,
        )
        fields = []
        if is_read is not None:
            inter.is_read = bool(is_read)
            fields.append("is_read")
        if is_favorite is not None:
            inter.is_favorite = bool(is_favorite)
            fields.append("is_favorite")
        if fields:
            inter.save(update_fields=fields + ["updated_at"])

    if is_read or is_favorite:
        check_achievements(user)
    return inter


def favorite_ids(user, content_type):
    """Favourited ids (str) in favouriting order."""
    return [
        str(cid)
        for cid in UserContentInteraction.objects.filter(
            user=user, content_type=content_type, is_favorite=True
        ).order_by("updated_at", "id").values_list("content_id", flat=True)
    ]


# ---------- votes ----------

def validate_vote(vote_type, increment):
    if vote_type not in VOTE_TYPES:
        raise serializers.ValidationError({"vote_type": "Use 'hot' ou 'cold'."})
    try:
        increment = int(increment)
    except (TypeError, ValueError):
        increment = 0
    if increment not in (1, -1):
        raise serializers.ValidationError({"increment": "Use 1 ou -1."})
    return increment


def apply_vote(*, voter, item, interaction, vote_type, increment, author, xp_source):
    """
    Move the voter's counter and the item's counter by `increment`.
    Must run inside a transaction holding the interaction row lock.

    A removal (-1) is ignored when the voter has no vote of that type.
    The author, if any and not the voter, gets +-1 XP (hot +, cold -).
    """
    field = f"{vote_type}_votes"
    if increment < 0 and getattr(interaction, field) <= 0:
        return False

    type(interaction).objects.filter(pk=interaction.pk).update(**{field: F(field) + increment})
    type(item).objects.filter(pk=item.pk).update(**{field: F(field) + increment})
    interaction.refresh_from_db(fields=[field])
    item.refresh_from_db(fields=[field])

    if author is not None and author.pk != voter.pk:
        delta = increment if vote_type == "hot" else -increment
        grant_xp(author, delta, xp_source, item.pk)
    return True


def vote_summary(item, interaction, applied):
    return {
        "applied": applied,
        "hot_votes": item.hot_votes,
        "cold_votes": item.cold_votes,
        "user_hot_votes": interaction.hot_votes,
        "user_cold_votes": interaction.cold_votes,
    }


def vote_content(user, content_type, content_id, vote_type, increment):
    increment = validate_vote(vote_type, increment)
    item = get_content(content_type, content_id)
    with transaction.atomic():
        inter, _ = UserContentInteraction.objects.select_for_update().get_or_create(
            user=user, content_type=content_type, content_id=item.pk,
        )
        applied = apply_vote(
            voter=user,
            item=item,
            interaction=inter,
            vote_type=vote_type,
            increment=increment,
            author=content_author(item),
            xp_source="CONTENT_VOTE_RECEIVED",
        )
    if applied and increment > 0:
        check_achievements(user, ["VOTES_GIVEN"])
    return vote_summary(item, inter, applied)


# ---------- comments ----------

def add_comment(user, item, text):
    text = (text or "").strip()
    if not text:
        raise serializers.ValidationError({"text": "O comentário não pode ser vazio."})
    comment = {
        "id": new_comment_id(),
        "author_id": user.pk,
        "author_pseudonym": user.pseudonym,
        "text": text,
        "timestamp": timezone.now().isoformat(),
        "hot_votes": 0,
        "cold_votes": 0,
    }
    with transaction.atomic():
        locked = type(item).objects.select_for_update().get(pk=item.pk)
        comments = list(locked.comments or [])
        # ids are millisecond based; keep them unique within one item
        while any(c.get("id") == comment["id"] for c in comments):
            comment["id"] += "_"
        comments.append(comment)
        locked.comments = comments
        locked.save(update_fields=["comments"])
    item.comments = comments
    return comment


def vote_comment(item, comment_id, vote_type):
    if vote_type not in VOTE_TYPES:
        raise serializers.ValidationError({"vote_type": "Use 'hot' ou 'cold'."})
    field = f"{vote_type}_votes"
    with transaction.atomic():
        locked = type(item).objects.select_for_update().get(pk=item.pk)
        comments = list(locked.comments or [])
        for comment in comments:
            if comment.get("id") == comment_id:
                comment[field] = int(comment.get(field) or 0) + 1
                break
        else:
            raise Http404("Comentário não encontrado.")
        locked.comments = comments
        locked.save(update_fields=["comments"])
    item.comments = comments
    return comment


# ---------- content listing ----------

def _source_filter(value):
    try:
        return Q(source_id=uuid.UUID(str(value)))
    except ValueError:
        return Q(source__title__iexact=value)


def sort_items(items, sort, content_type):
    if sort == "time":
        return sorted(items, key=lambda i: i.created_at, reverse=True)
    if sort == "az":
        return sorted(items, key=lambda i: display_text(i, content_type).casefold())
    # temp: hottest first, newest breaks ties
    return sorted(items, key=lambda i: (i.temperature, i.created_at), reverse=True)


def list_content(user, content_type, params, queryset=None):
    """
    Content view controller: q / source / favorites_only / sort.
    Returns (items, interactions by id).
    """
    model = CONTENT_MODELS[content_type]
    qs = queryset if queryset is not None else model.objects.all()
    nested = content_type not in ("source", "link_file")
    if nested:
        qs = qs.select_related("source", "source__user")

    source = (params.get("source") or "").strip()
    if source and nested:
        qs = qs.filter(_source_filter(source))

    term = (params.get("q") or "").strip()
    if term:
        cond = Q(**{f"{DISPLAY_FIELDS[content_type]}__icontains": term})
        if nested:
            cond |= Q(source__title__icontains=term)
        qs = qs.filter(cond)

    items = list(qs)
    interactions = interaction_map(user, content_type, [i.pk for i in items])

    if str(params.get("favorites_only", "")).lower() in ("1", "true"):
        items = [i for i in items if getattr(interactions.get(str(i.pk)), "is_favorite", False)]

    sort = params.get("sort") or "temp"
    return sort_items(items, sort if sort in SORTS else "temp", content_type), interactions


# ---------- sources / admin pipeline ----------

def store_upload(prefix, owner_id, upload):
    return default_storage.save(storage_key(prefix, owner_id, upload.name), upload)


def create_source(user, data, files=()):
    paths, names = [], []
    for upload in files:
        paths.append(store_upload("sources", user.pk, upload))
        names.append(upload.name)

    source = Source.objects.create(
        user=user,
        title=data["title"],
        summary=data.get("summary", ""),
        topic=data.get("topic", ""),
        subtopic=data.get("subtopic", ""),
        original_filename=names,
        storage_paths=paths,
    )
    logger.info("source created id=%s files=%s", source.pk, len(paths))
    check_achievements(user, ["CONTENT_CREATED"])
    return source


def delete_source(source):
    """Storage first; any storage failure leaves the database untouched."""
    paths = list(source.storage_paths or [])
    paths += [a.storage_path for a in source.audio_summaries.all() if a.storage_path]
    for path in paths:
        try:
            default_storage.delete(path)
        except OSError as e:
            logger.error("storage delete failed source=%s path=%s: %s", source.pk, path, e)
            raise StorageError()
    source_id = source.pk
    source.delete()
    logger.info("source deleted id=%s files=%s", source_id, len(paths))


def _clean_str_list(values):
    out = []
    for v in values or []:
        v = str(v).strip()
        if v and v not in out:
            out.append(v)
    return out


def clean_question(raw):
    """Normalized question dict, or None when it cannot be answered."""
    text = str(raw.get("question_text") or "").strip()
    options = _clean_str_list(raw.get("options"))
    correct = str(raw.get("correct_answer") or "").strip()
    if not text or len(options) < 2 or correct not in options:
        return None
    difficulty = raw.get("difficulty")
    return {
        "question_text": text,
        "options": options,
        "correct_answer": correct,
        "explanation": str(raw.get("explanation") or "").strip(),
        "hints": _clean_str_list(raw.get("hints")),
        "difficulty": difficulty if difficulty in ("Fácil", "Médio", "Difícil") else "Médio",
    }


def _generated_items(payload, key):
    """Dict entries of `payload[key]`; anything else the model returned is skipped."""
    if not isinstance(payload, dict):
        return []
    items = payload.get(key) or []
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


@transaction.atomic
def add_generated_content(source, payload):
    """
    Insert structured study content under `source`.
    payload: {summaries, flashcards, questions, mind_maps} (all optional).
    Returns the created objects grouped the same way.
    """
    created = {"summaries": [], "flashcards": [], "questions": [], "mind_maps": []}

    for s in _generated_items(payload, "summaries"):
        title, content = str(s.get("title") or "").strip(), str(s.get("content") or "").strip()
        if title and content:
            created["summaries"].append(Summary.objects.create(
                source=source, title=title, content=content, key_points=_clean_str_list(s.get("key_points")),
            ))

    for f in _generated_items(payload, "flashcards"):
        front, back = str(f.get("front") or "").strip(), str(f.get("back") or "").strip()
        if front and back:
            created["flashcards"].append(Flashcard.objects.create(source=source, front=front, back=back))

    dropped = 0
    for q in _generated_items(payload, "questions"):
        cleaned = clean_question(q)
        if cleaned is None:
            dropped += 1
            continue
        created["questions"].append(Question.objects.create(source=source, **cleaned))
    if dropped:
        logger.warning("dropped %s invalid generated questions source=%s", dropped, source.pk)

    for m in _generated_items(payload, "mind_maps"):
        title = str(m.get("title") or "").strip()
        if title:
            created["mind_maps"].append(MindMap.objects.create(
                source=source, title=title, image_url=str(m.get("image_url") or ""),
            ))

    return created


def add_audio_summary(source, user, title, upload=None, audio_url=""):
    title = (title or "").strip()
    if not title:
        raise serializers.ValidationError({"title": "Informe um título."})
    path = ""
    if upload is not None:
        path = store_upload("audio", user.pk, upload)
        audio_url = default_storage.url(path)
    if not audio_url:
        raise serializers.ValidationError({"audio_url": "Envie um arquivo de áudio ou informe a URL."})
    return AudioSummary.objects.create(source=source, title=title, audio_url=audio_url, storage_path=path)


# ---------- links & files ----------

def create_link_file(user, title, description="", url="", upload=None, is_anki_deck=False):
    title = (title or "").strip()
    if not title:
        raise serializers.ValidationError({"title": "O título é obrigatório."})
    if not url and upload is None:
        raise serializers.ValidationError({"detail": "Informe um link ou envie um arquivo."})

    file_path, file_name = "", ""
    if upload is not None:
        file_path = store_upload("", user.pk, upload)
        file_name = upload.name
    return LinkFile.objects.create(
        user=user,
        title=title,
        description=description or "",
        url=url or "",
        file_path=file_path,
        file_name=file_name,
        is_anki_deck=bool(is_anki_deck),
    )


def delete_link_file(link):
    if link.file_path:
        try:
            default_storage.delete(link.file_path)
        except OSError as e:
            # the row goes anyway; an orphan file is acceptable
            logger.warning("storage delete failed link=%s path=%s: %s", link.pk, link.file_path, e)
    link.delete()


def link_file_href(link):
    if link.url:
        return link.url
    if link.file_path:
        return default_storage.url(link.file_path)
    return ""


def delete_audio_summary(audio):
    if audio.storage_path:
        try:
            default_storage.delete(audio.storage_path)
        except OSError as e:
            logger.error("storage delete failed audio=%s path=%s: %s", audio.pk, audio.storage_path, e)
            raise StorageError()
    audio.delete()
