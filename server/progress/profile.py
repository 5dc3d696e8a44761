from progress.services import xp_stats
from questions.services import notebook_performance


def _pct(correct, total):
    return round(correct / total * 100, 1) if total else 0


def topic_performance(user, limit=8):
    perf = user.get_stats().get("topic_performance") or {}
    rows = [
        {
            "topic": topic,
            "correct": v.get("correct", 0),
            "total": v.get("total", 0),
            "accuracy": _pct(v.get("correct", 0), v.get("total", 0)),
        }
        for topic, v in perf.items()
    ]
    rows.sort(key=lambda r: r["total"], reverse=True)
    return rows[:limit]


def profile_overview(user):
    stats = user.get_stats()
    return {
        "user": {"id": user.pk, "pseudonym": user.pseudonym, "avatar": user.avatar or None},
        "xp": xp_stats(user),
        "stats": {
            "questions_answered": stats["questions_answered"],
            "correct_answers": stats["correct_answers"],
            "streak": stats["streak"],
            "accuracy": _pct(stats["correct_answers"], stats["questions_answered"]),
        },
        "topics": topic_performance(user),
        "notebooks": notebook_performance(user),
        "achievements": list(user.achievements or []),
    }
