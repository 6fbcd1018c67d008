from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import TestCase

from apps.accounts.models import UserRole
from apps.common.permissions import has_capability, resolve_role

User = get_user_model()


class RoleResolutionTests(TestCase):
    def test_role_field_is_the_fallback(self):
        user = User.objects.create_user(username="driver", password="driver123", role="STAFF")
        self.assertEqual(resolve_role(user), UserRole.STAFF)
        self.assertTrue(has_capability(user, "orders.deliver"))
        self.assertFalse(has_capability(user, "orders.refund"))

    def test_group_membership_wins(self):
        user = User.objects.create_user(username="manager", password="manager123", role="STAFF")
        user.groups.add(Group.objects.create(name="ADMIN"))
        self.assertEqual(resolve_role(user), UserRole.ADMIN)
        self.assertTrue(has_capability(user, "waste.decide"))

    def test_seed_roles_syncs_users(self):
        user = User.objects.create_user(username="shopper", password="shopper123")
        call_command("seed_roles", "--sync-users", stdout=StringIO())
        self.assertEqual(Group.objects.filter(name__in=UserRole.values).count(), 3)
        self.assertTrue(user.groups.filter(name=UserRole.CUSTOMER).exists())
