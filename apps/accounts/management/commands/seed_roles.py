from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create one auth group per user role and optionally enrol users by their role field."

    def add_arguments(self, parser):
        parser.add_argument("--sync-users", action="store_true", help="Add every user to the group matching their role.")

    def handle(self, *args, **options):
        groups = {}
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            groups[role] = group
            action = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {action}"))

        if not options["sync_users"]:
            return

        enrolled = 0
        for user in get_user_model().objects.all():
            group = groups.get(user.role)
            if group and not user.groups.filter(pk=group.pk).exists():
                user.groups.add(group)
                enrolled += 1
        self.stdout.write(self.style.SUCCESS(f"Users enrolled: {enrolled}"))
