from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.common.exceptions import UnsupportedCurrency
from apps.currency.models import CurrencyRate
from apps.currency.services import convert, set_rate, snapshot_rate

User = get_user_model()


class CurrencySnapshotTests(TestCase):
    def test_base_currency_rate_is_one(self):
        self.assertEqual(snapshot_rate("AUD"), Decimal("1"))
        self.assertEqual(snapshot_rate(" aud "), Decimal("1"))

    def test_latest_rate_is_returned(self):
        set_rate(base_currency="AUD", target_currency="USD", rate="0.650000")
        self.assertEqual(snapshot_rate("USD"), Decimal("0.650000"))

        set_rate(base_currency="AUD", target_currency="USD", rate="0.670000")
        self.assertEqual(snapshot_rate("usd"), Decimal("0.670000"))
        self.assertEqual(CurrencyRate.objects.filter(target_currency="USD").count(), 1)

    def test_unknown_currency_is_rejected(self):
        with self.assertRaises(UnsupportedCurrency):
            snapshot_rate("EUR")

    @override_settings(BASE_CURRENCY="USD")
    def test_base_currency_is_configurable(self):
        self.assertEqual(snapshot_rate("USD"), Decimal("1"))
        with self.assertRaises(UnsupportedCurrency):
            snapshot_rate("AUD")

    def test_convert_rounds_to_cents(self):
        self.assertEqual(convert(Decimal("12.95"), Decimal("0.650000")), Decimal("8.42"))
        self.assertEqual(convert(Decimal("10.00"), Decimal("1")), Decimal("10.00"))

    def test_set_rate_rejects_non_positive(self):
        with self.assertRaises(ValueError):
            set_rate(base_currency="AUD", target_currency="USD", rate="0")


class CurrencyRateApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_admin_sets_rate_and_it_is_audited(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/currency-rates/", {"target_currency": "usd", "rate": "0.655000"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["base_currency"], "AUD")
        self.assertEqual(response.data["target_currency"], "USD")
        self.assertTrue(AuditLog.objects.filter(action="currency.rate.set").exists())

        listed = self.client.get("/api/v1/currency-rates/")
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(len(listed.data), 1)

    def test_staff_cannot_set_rate(self):
        self.auth_as("staff", "staff123")
        response = self.client.post("/api/v1/currency-rates/", {"target_currency": "USD", "rate": "0.65"}, format="json")
        self.assertEqual(response.status_code, 403)

        response = self.client.get("/api/v1/currency-rates/")
        self.assertEqual(response.status_code, 200)

    def test_same_pair_is_rejected(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/currency-rates/", {"target_currency": "AUD", "rate": "1"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("target_currency", response.data["fields"])
