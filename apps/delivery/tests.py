from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.common.exceptions import ZoneNotServiced
from apps.delivery.models import DeliveryZone
from apps.delivery.services import find_zone_for_suburb, quote_delivery, resolve_zone

User = get_user_model()


def create_inner_sydney(**overrides):
    data = {
        "name": "Inner Sydney",
        "suburbs": ["Newtown", "Marrickville", "Bondi Junction"],
        "delivery_fee": Decimal("12.95"),
        "free_delivery_threshold": Decimal("200.00"),
        "estimated_days": 1,
    }
    data.update(overrides)
    return DeliveryZone.objects.create(**data)


class DeliveryZoneResolverTests(TestCase):
    def setUp(self):
        self.zone = create_inner_sydney()

    def test_suburb_match_ignores_case_and_whitespace(self):
        self.assertEqual(find_zone_for_suburb("newtown"), self.zone)
        self.assertEqual(find_zone_for_suburb("  NEWTOWN "), self.zone)
        self.assertEqual(find_zone_for_suburb("bondi   junction"), self.zone)

    def test_partial_names_do_not_match(self):
        self.assertIsNone(find_zone_for_suburb("Bondi"))
        self.assertIsNone(find_zone_for_suburb("New"))
        self.assertIsNone(find_zone_for_suburb(""))

    def test_inactive_zone_is_ignored(self):
        self.zone.is_active = False
        self.zone.save()
        with self.assertRaises(ZoneNotServiced):
            resolve_zone("Newtown")

    def test_fee_waived_at_threshold(self):
        quote = quote_delivery("Newtown", Decimal("210.00"))
        self.assertEqual(quote.fee, Decimal("0.00"))
        self.assertTrue(quote.is_free)
        self.assertEqual(quote.estimated_days, 1)

        quote = quote_delivery("Newtown", Decimal("200.00"))
        self.assertTrue(quote.is_free)

    def test_fee_charged_below_threshold(self):
        quote = quote_delivery("Newtown", Decimal("150.00"))
        self.assertEqual(quote.fee, Decimal("12.95"))
        self.assertFalse(quote.is_free)
        self.assertEqual(quote.amount_to_free_delivery, Decimal("50.00"))

    def test_zone_without_threshold_always_charges(self):
        create_inner_sydney(name="Regional", suburbs=["Bowral"], delivery_fee=Decimal("25.00"), free_delivery_threshold=None)
        quote = quote_delivery("Bowral", Decimal("1000.00"))
        self.assertEqual(quote.fee, Decimal("25.00"))
        self.assertIsNone(quote.amount_to_free_delivery)

    def test_seed_command_loads_sydney_zones(self):
        DeliveryZone.objects.all().delete()
        call_command("seed_delivery_zones", verbosity=0)
        call_command("seed_delivery_zones", verbosity=0)
        self.assertEqual(DeliveryZone.objects.count(), 5)
        zone = resolve_zone("Newtown")
        self.assertEqual(zone.name, "Inner Sydney")
        self.assertEqual(zone.delivery_fee, Decimal("12.95"))
        self.assertEqual(zone.free_delivery_threshold, Decimal("200.00"))


class DeliveryApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        self.zone = create_inner_sydney()

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_validate_address(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/delivery/validate-address/", {"suburb": "Newtown", "postcode": "2042"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["delivers"])
        self.assertEqual(response.data["zone"]["name"], "Inner Sydney")

        response = self.client.post("/api/v1/delivery/validate-address/", {"suburb": "Katoomba"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["delivers"])

    def test_calculate_fee(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/delivery/calculate-fee/", {"suburb": "Newtown", "subtotal": "150.00"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["fee"], "12.95")
        self.assertEqual(response.data["amount_to_free_delivery"], "50.00")
        self.assertIn("50.00", response.data["message"])

    def test_calculate_fee_outside_zones(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/delivery/calculate-fee/", {"suburb": "Katoomba", "subtotal": "150.00"}, format="json")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["code"], "zone_not_serviced")

    def test_only_admin_manages_zones(self):
        payload = {"name": "Eastern", "suburbs": ["Maroubra"], "delivery_fee": "11.00", "estimated_days": 1}
        self.auth_as("customer", "customer123")
        self.assertEqual(self.client.post("/api/v1/delivery-zones/", payload, format="json").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/delivery-zones/", payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(find_zone_for_suburb("maroubra").name, "Eastern")

    def test_zone_rejects_bad_suburb_list(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/delivery-zones/",
            {"name": "Broken", "suburbs": "Maroubra", "delivery_fee": "11.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("suburbs", response.data["fields"])
