from django.core.management.base import BaseCommand
from django.db import transaction

from progress.services import ledger_total
from users.models import User


class Command(BaseCommand):
    help = "Realign User.xp with the sum of the user's XP ledger"

    def add_arguments(self, parser):
        parser.add_argument("--user", type=int, help="Only this user id")
        parser.add_argument("--dry-run", action="store_true", help="Report drift without writing")

    def handle(self, *args, **options):
        users = User.objects.all().order_by("pk")
        if options["user"]:
            users = users.filter(pk=options["user"])

        checked = fixed = 0
        for user in users.iterator(chunk_size=500):
            checked += 1
            total = ledger_total(user.pk)
            if total == user.xp:
                continue
            self.stdout.write(f"user={user.pk} ({user.pseudonym}): xp={user.xp} ledger={total}")
            if not options["dry_run"]:
                with transaction.atomic():
                    User.objects.filter(pk=user.pk).update(xp=total)
                fixed += 1

        self.stdout.write(self.style.SUCCESS(f"Checked {checked} users, fixed {fixed}."))
