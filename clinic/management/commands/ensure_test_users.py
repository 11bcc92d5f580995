# clinic/management/commands/ensure_test_users.py
from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password

from clinic.models import User, Branch

TEST_PASSWORD = "Clinic-Test-2024"

TEST_SET = [
    ("admin1", "admin"),
    ("doctor1", "doctor"),
    ("reception1", "reception"),
    ("nurse1", "nurse"),
    ("store1", "user"),
]


class Command(BaseCommand):
    help = f"Ensure one test user per role exists with password={TEST_PASSWORD} (idempotent)."

    def handle(self, *args, **opts):
        branch, _ = Branch.objects.get_or_create(name="Main Branch", defaults={"location": "Head office"})
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password(TEST_PASSWORD), "is_active": True,
                          "branch": None if role == "admin" else branch},
            )
            if not created:
                # reset password, role and activation
                u.password = make_password(TEST_PASSWORD)
                u.role = role
                u.is_active = True
                u.lock = False
                u.save(update_fields=["password", "role", "is_active", "lock"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
