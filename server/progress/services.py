import logging
from datetime import timedelta

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from progress.models import XPEvent
from users.models import User

logger = logging.getLogger(__name__)

LEADERBOARD_GROUP = "lb.all"
PERIODS = ("geral", "diaria", "periodo", "hora")


def _emit_leaderboard_changed(user_id: int):
    layer = get_channel_layer()
    if not layer:
        return
    async_to_sync(layer.group_send)(LEADERBOARD_GROUP, {"type": "lb.changed_all", "user_id": user_id})


def grant_xp(user, amount, source, content_id="", idempotent=False):
    """
    Log an XP event and move `user.xp` by the same amount.

    - amount 0 is never logged; negative amounts are allowed (cold votes).
    - idempotent=True: a second event for (user, source, content_id) is refused.

    Returns the created XPEvent, or None when nothing was written.
    """
    amount = int(amount or 0)
    if amount == 0:
        return None

    content_id = str(content_id or "")
    with transaction.atomic():
        # row lock serializes concurrent grants for the same user
        User.objects.select_for_update().filter(pk=user.pk).values_list("pk", flat=True).first()

        if idempotent and XPEvent.objects.filter(
            user_id=user.pk, source=source, content_id=content_id
        ).exists():
            logger.debug("xp already granted user=%s %s:%s", user.pk, source, content_id)
            return None

        event = XPEvent.objects.create(user_id=user.pk, amount=amount, source=source, content_id=content_id)
        User.objects.filter(pk=user.pk).update(xp=F("xp") + amount)

    user.refresh_from_db(fields=["xp"])
    logger.info("xp %+d user=%s source=%s content=%s total=%s", amount, user.pk, source, content_id, user.xp)
    user_id = user.pk
    # listeners refetch the board, so only tell them once the event is committed
    transaction.on_commit(lambda: _emit_leaderboard_changed(user_id))
    return event


def period_start(period, now=None):
    """Local start of a leaderboard window; None for the all-time board."""
    now = timezone.localtime(now or timezone.now())
    if period == "diaria":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "periodo":
        return now.replace(hour=0 if now.hour < 12 else 12, minute=0, second=0, microsecond=0)
    if period == "hora":
        return now - timedelta(hours=1)
    return None


def _with_ranks(rows):
    # competition ranking: 100, 90, 90, 80 -> 1, 2, 2, 4
    prev_xp, prev_rank = None, 0
    for idx, row in enumerate(rows, start=1):
        if row["xp"] != prev_xp:
            prev_rank, prev_xp = idx, row["xp"]
        row["rank"] = prev_rank
    return rows


def leaderboard(period="geral", limit=50, now=None):
    if period not in PERIODS:
        period = "geral"
    start = period_start(period, now)

    if start is None:
        rows = [
            {"user": {"id": u["id"], "pseudonym": u["pseudonym"], "avatar": u["avatar"]}, "xp": u["xp"]}
            for u in User.objects.filter(is_active=True)
            .order_by("-xp", "pseudonym")
            .values("id", "pseudonym", "avatar", "xp")
        ]
    else:
        totals = (
            XPEvent.objects.filter(created_at__gte=start)
            .values("user")
            .annotate(total=Sum("amount"))
            .filter(total__gt=0)
            .order_by("-total")
        )
        totals = list(totals)
        users = {
            u["id"]: u
            for u in User.objects.filter(id__in=[t["user"] for t in totals]).values("id", "pseudonym", "avatar")
        }
        rows = [
            {"user": users.get(t["user"], {"id": t["user"], "pseudonym": "?", "avatar": None}), "xp": t["total"]}
            for t in totals
        ]
        rows.sort(key=lambda r: (-r["xp"], r["user"]["pseudonym"]))

    return {"period": period, "since": start, "results": _with_ranks(rows)[:limit]}


def xp_since(user, start):
    agg = XPEvent.objects.filter(user=user, created_at__gte=start).aggregate(total=Sum("amount"))
    return int(agg["total"] or 0)


def xp_stats(user, now=None):
    return {
        "total": user.xp,
        "daily": xp_since(user, period_start("diaria", now)),
        "period": xp_since(user, period_start("periodo", now)),
        "hourly": xp_since(user, period_start("hora", now)),
    }


def ledger_total(user_id):
    agg = XPEvent.objects.filter(user_id=user_id).aggregate(total=Sum("amount"))
    return int(agg["total"] or 0)
