import logging
from datetime import datetime

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import serializers

from assistant.services import gemini
from community.models import AI_AUTHOR, ChatMessage, UserMessageVote, UserMood
from library.services import apply_vote, validate_vote, vote_summary
from progress.achievements import check_achievements
from utils._enum import MOODS

logger = logging.getLogger(__name__)

CHAT_GROUP = "community.chat"
AI_TRIGGERS = ("@ia", "@ed")
CHAT_HISTORY_LIMIT = 30


def _emit(event_type, payload):
    layer = get_channel_layer()
    if not layer:
        return
    async_to_sync(layer.group_send)(CHAT_GROUP, {"type": event_type, "data": payload})


def broadcast_message(message, event_type="chat.message"):
    from community.serializers import ChatMessageSerializer
    _emit(event_type, ChatMessageSerializer(message).data)


def mentions_ai(text):
    lowered = (text or "").lower()
    return any(t in lowered for t in AI_TRIGGERS)


def ai_history(user):
    """The caller's own messages and the AI replies, oldest first, as Gemini turns."""
    qs = (
        ChatMessage.objects.filter(Q(author=user) | Q(author__isnull=True, author_name=AI_AUTHOR))
        .order_by("-timestamp", "-id")[:CHAT_HISTORY_LIMIT]
    )
    return [
        {"role": "model" if m.is_ai else "user", "text": m.text}
        for m in reversed(list(qs))
    ]


def post_message(user, text):
    """
    Store a chat message. Mentions of @ia / @ed get an AI reply stored as an
    "IA" message; AI failures are logged and leave only the user's message.
    Returns (message, ai_message or None).
    """
    text = (text or "").strip()
    if not text:
        raise serializers.ValidationError({"text": "A mensagem não pode ser vazia."})

    history = ai_history(user) if mentions_ai(text) else None
    message = ChatMessage.objects.create(author=user, author_name=user.pseudonym, text=text)
    broadcast_message(message)

    ai_message = None
    if history is not None:
        check_achievements(user, ["IA_INTERACTIONS"])
        try:
            reply = gemini.get_simple_chat_response(history, text)
        except gemini.AIServiceError as e:
            logger.error("community AI reply failed message=%s: %s", message.pk, e)
            reply = ""
        if reply:
            ai_message = ChatMessage.objects.create(author=None, author_name=AI_AUTHOR, text=reply)
            broadcast_message(ai_message)
    return message, ai_message


def list_messages(sort="time", limit=None):
    messages = list(ChatMessage.objects.select_related("author"))
    if sort == "temp":
        # hottest first; ties show the newest first
        messages.sort(key=lambda m: (m.temperature, m.timestamp), reverse=True)
    if limit:
        messages = messages[-limit:] if sort != "temp" else messages[:limit]
    return messages


def vote_message(user, message, vote_type, increment):
    increment = validate_vote(vote_type, increment)
    with transaction.atomic():
        vote, _ = UserMessageVote.objects.select_for_update().get_or_create(user=user, message=message)
        applied = apply_vote(
            voter=user,
            item=message,
            interaction=vote,
            vote_type=vote_type,
            increment=increment,
            author=message.author,
            xp_source="CHAT_VOTE_RECEIVED",
        )
    if applied:
        broadcast_message(message, "chat.updated")
    return vote_summary(message, vote, applied)


# ---------- moods ----------

MOOD_NAMES = [m for m, _ in MOODS]


def set_mood(user, mood):
    if mood not in MOOD_NAMES:
        raise serializers.ValidationError({"mood": "Humor inválido."})
    obj, _ = UserMood.objects.update_or_create(user=user, defaults={"mood": mood})
    return obj


def mood_summary(user=None):
    counts = dict(UserMood.objects.values("mood").annotate(c=Count("id")).values_list("mood", "c"))
    total = sum(counts.values())
    mine = None
    if user is not None and user.is_authenticated:
        mine = UserMood.objects.filter(user=user).values_list("mood", flat=True).first()
    return {
        "total": total,
        "my_mood": mine,
        "moods": [
            {
                "mood": name,
                "count": counts.get(name, 0),
                "percentage": round(counts.get(name, 0) / total * 100, 1) if total else 0,
            }
            for name in MOOD_NAMES
        ],
    }


# ---------- countdown ----------

def _setting_datetime(name):
    value = getattr(settings, name)
    dt = value if isinstance(value, datetime) else parse_datetime(value)
    if dt is None:
        raise ValueError(f"{name} is not an ISO datetime: {value!r}")
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


def countdown(now=None):
    now = now or timezone.now()
    start = _setting_datetime("PROCAP_START")
    exam = _setting_datetime("EXAM_TIME")

    span = (exam - start).total_seconds()
    elapsed = (now - start).total_seconds()
    progress = min(100.0, max(0.0, elapsed / span * 100)) if span > 0 else 100.0

    remaining = max(0, int((exam - now).total_seconds()))
    days_total, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    weeks, days = divmod(days_total, 7)
    return {
        "start": start.isoformat(),
        "exam": exam.isoformat(),
        "progress": round(progress, 2),
        "finished": remaining == 0,
        "remaining": {
            "weeks": weeks,
            "days": days,
            "hours": hours,
            "minutes": minutes,
            "seconds": seconds,
            "total_days": days_total,
        },
    }
