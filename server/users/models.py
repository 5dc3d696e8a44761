from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


def default_stats():
    return {
        "questions_answered": 0,
        "correct_answers": 0,
        "streak": 0,
        "topic_performance": {},
    }


class User(AbstractUser):
    pseudonym = models.CharField(max_length=60, unique=True)
    avatar = models.URLField(blank=True, null=True)
    bio = models.TextField(blank=True)
    xp = models.IntegerField(default=0)
    stats = models.JSONField(default=default_stats, blank=True)
    achievements = models.JSONField(default=list, blank=True)
    last_active = models.DateTimeField(default=timezone.now)
    active_refresh_jti = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        unique=True
    )

    class Meta:
        indexes = [models.Index(fields=["-xp"])]

    def save(self, *args, **kwargs):
        if not self.pseudonym:
            self.pseudonym = self.username
        super().save(*args, **kwargs)

    @property
    def is_admin(self):
        if self.is_staff or self.is_superuser:
            return True
        admin_name = getattr(settings, "ADMIN_PSEUDONYM", "")
        return bool(admin_name) and self.pseudonym == admin_name

    def get_stats(self):
        stats = default_stats()
        stats.update(self.stats or {})
        return stats

    def __str__(self):
        return self.pseudonym or self.username


class AgentSettings(models.Model):
    VOICES = [
        ("Zephyr", "Zephyr"),
        ("Puck", "Puck"),
        ("Charon", "Charon"),
        ("Kore", "Kore"),
        ("Fenrir", "Fenrir"),
        ("Aoede", "Aoede"),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="agent_settings")
    voice = models.CharField(max_length=20, choices=VOICES, default="Zephyr")
    system_prompt = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def for_user(cls, user):
        obj, _ = cls.objects.get_or_create(user=user)
        return obj
