# core/management/commands/ensure_test_users.py
from django.core.management.base import BaseCommand, CommandError

from core.models import Roles, UserRole
from core.services.credentials import DjangoCredentialStore

TEST_SET = [
    ("patient1", Roles.PATIENT),
    ("doctor1", Roles.DOCTOR),
    ("hospitaladmin1", Roles.HOSPITAL_ADMIN),
    ("sysadmin1", Roles.SYSTEM_ADMIN),
]

DEFAULT_PASSWORD = "Passw0rd!"


class Command(BaseCommand):
    help = "Ensure one demo user per role exists with a known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default=DEFAULT_PASSWORD)

    def handle(self, *args, **opts):
        store = DjangoCredentialStore()
        password = opts["password"]
        for username, role in TEST_SET:
            user = store.find_by_username(username)
            if user is None:
                result, user = store.create_user(
                    username=username,
                    email=f"{username}@healthlink.local",
                    full_name=f"Demo {role}",
                    password=password,
                )
                if not result.succeeded:
                    raise CommandError(f"{username}: {' '.join(result.errors)}")
            else:
                # force password, activation and lockout back to a usable state
                result = store.set_password(user, password)
                if not result.succeeded:
                    raise CommandError(f"{username}: {' '.join(result.errors)}")
                user.activate()
                user.access_failed_count = 0
                user.lockout_end = None
                user.save(update_fields=["is_active", "access_failed_count", "lockout_end", "updated_at"])
            if not UserRole.objects.filter(user=user, role=role).exists():
                store.add_role(user, role)
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
