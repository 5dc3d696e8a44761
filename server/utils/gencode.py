import re
import time

from rest_framework_simplejwt.tokens import RefreshToken

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def get_tokens_for_user(user):
    # Single active session: only this refresh jti is accepted from now on.
    refresh = RefreshToken.for_user(user)
    user.active_refresh_jti = refresh.get("jti")
    user.save(update_fields=["active_refresh_jti"])
    return {
        "refresh": str(refresh),
        "access": str(refresh.access_token),
    }


def now_ms():
    return int(time.time() * 1000)


def new_comment_id():
    return f"c_{now_ms()}"


def safe_file_name(name):
    return _UNSAFE_CHARS.sub("_", name or "arquivo")


def storage_key(prefix, owner_id, file_name):
    """`<prefix>/<owner>/<ms>_<sanitized name>`; empty prefix drops the first segment."""
    key = f"{owner_id}/{now_ms()}_{safe_file_name(file_name)}"
    return f"{prefix}/{key}" if prefix else key
