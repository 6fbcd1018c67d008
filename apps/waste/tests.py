from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import AlreadyDecided, InsufficientStock, UnauthorizedActor
from apps.inventory.models import InventoryLog, MovementType
from apps.inventory.services import apply_movement
from apps.waste.models import WasteLog, WasteStatus
from apps.waste.services import decide_waste, submit_waste, waste_summary

User = get_user_model()


def create_product(sku, stock, price="24.50"):
    product = Product.objects.create(sku=sku, name=f"Product {sku}", price_aud=Decimal(price))
    apply_movement(product=product, movement_type=MovementType.ADDITION, quantity=stock, reason="Opening stock")
    return product


class WasteWorkflowTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.product = create_product("LAMB-010", "5")

    def waste_logs(self):
        return InventoryLog.objects.filter(product=self.product, movement_type=MovementType.WASTE)

    def test_submission_snapshots_cost_without_touching_stock(self):
        entry = submit_waste(product=self.product, quantity="2", reason="expired", notes="Past use-by", actor=self.staff)
        self.assertEqual(entry.status, WasteStatus.PENDING)
        self.assertEqual(entry.unit_cost, Decimal("24.50"))
        self.assertEqual(entry.total_cost, Decimal("49.00"))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("5.000"))
        self.assertFalse(self.waste_logs().exists())

    def test_approval_deducts_stock_once(self):
        entry = submit_waste(product=self.product, quantity="2", reason="damaged", actor=self.staff)
        entry = decide_waste(entry=entry, approve=True, actor=self.admin)
        self.assertEqual(entry.status, WasteStatus.APPROVED)
        self.assertEqual(entry.approved_by, self.admin)
        self.assertIsNone(entry.rejected_at)

        log = self.waste_logs().get()
        self.assertEqual(log.reference_id, str(entry.id))
        self.assertEqual(log.stock_after, Decimal("3.000"))

        with self.assertRaises(AlreadyDecided):
            decide_waste(entry=entry, approve=True, actor=self.admin)
        with self.assertRaises(AlreadyDecided):
            decide_waste(entry=entry, approve=False, actor=self.admin)
        self.assertEqual(self.waste_logs().count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("3.000"))

    def test_rejection_keeps_stock(self):
        entry = submit_waste(product=self.product, quantity="1", reason="quality", actor=self.staff)
        entry = decide_waste(entry=entry, approve=False, actor=self.admin, notes="Looks fine")
        self.assertEqual(entry.status, WasteStatus.REJECTED)
        self.assertEqual(entry.rejection_notes, "Looks fine")
        self.assertIsNone(entry.approved_at)
        self.assertFalse(self.waste_logs().exists())

    def test_approval_fails_when_stock_was_sold_meanwhile(self):
        entry = submit_waste(product=self.product, quantity="5", reason="expired", actor=self.staff)
        apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="3", reference_type="order")

        with self.assertRaises(InsufficientStock):
            decide_waste(entry=entry, approve=True, actor=self.admin)

        entry.refresh_from_db()
        self.assertEqual(entry.status, WasteStatus.PENDING)
        self.assertIsNone(entry.approved_by)
        self.assertFalse(self.waste_logs().exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("2.000"))

    def test_only_admin_decides(self):
        entry = submit_waste(product=self.product, quantity="1", reason="other", actor=self.staff)
        with self.assertRaises(UnauthorizedActor):
            decide_waste(entry=entry, approve=True, actor=self.staff)
        entry.refresh_from_db()
        self.assertEqual(entry.status, WasteStatus.PENDING)

    def test_summary_groups_by_state(self):
        first = submit_waste(product=self.product, quantity="1", reason="damaged", actor=self.staff)
        second = submit_waste(product=self.product, quantity="2", reason="expired", actor=self.staff)
        submit_waste(product=self.product, quantity="1.5", reason="expired", actor=self.staff)
        decide_waste(entry=first, approve=True, actor=self.admin)
        decide_waste(entry=second, approve=False, actor=self.admin)

        summary = waste_summary(WasteLog.objects.all())
        self.assertEqual(summary["all"]["count"], 3)
        self.assertEqual(summary["pending"]["count"], 1)
        self.assertEqual(summary["pending"]["total_quantity"], Decimal("1.500"))
        self.assertEqual(summary["approved"]["total_value"], Decimal("24.50"))
        self.assertEqual(summary["rejected"]["count"], 1)
        self.assertEqual(list(summary["approved_by_reason"]), ["damaged"])


class WasteApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.product = create_product("BEEF-020", "10", price="32.00")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_staff_submits_and_admin_approves(self):
        self.auth_as("staff", "staff123")
        created = self.client.post(
            "/api/v1/waste/",
            {"product": str(self.product.id), "quantity": "1.5", "reason": "damaged", "notes": "Torn packaging"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["status"], "pending")
        self.assertEqual(created.data["total_cost"], "48.00")

        forbidden = self.client.post(f"/api/v1/waste/{created.data['id']}/decide/", {"approved": True}, format="json")
        self.assertEqual(forbidden.status_code, 403)

        self.auth_as("admin", "admin123")
        approved = self.client.post(f"/api/v1/waste/{created.data['id']}/decide/", {"approved": True}, format="json")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["status"], "approved")
        self.assertTrue(AuditLog.objects.filter(action="waste.approve", entity_id=created.data["id"]).exists())

        again = self.client.post(f"/api/v1/waste/{created.data['id']}/decide/", {"approved": False}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_decided")

    def test_approval_conflict_is_reported(self):
        entry = submit_waste(product=self.product, quantity="8", reason="expired", actor=self.staff)
        apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="5")
        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/waste/{entry.id}/decide/", {"approved": True}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_stock")

    def test_list_filters_and_summary(self):
        submit_waste(product=self.product, quantity="1", reason="damaged", actor=self.staff)
        entry = submit_waste(product=self.product, quantity="2", reason="expired", actor=self.staff)
        decide_waste(entry=entry, approve=False, actor=self.admin)

        self.auth_as("staff", "staff123")
        pending = self.client.get("/api/v1/waste/?status=pending")
        self.assertEqual(pending.data["count"], 1)
        expired = self.client.get("/api/v1/waste/?reason=expired")
        self.assertEqual(expired.data["results"][0]["status"], "rejected")

        summary = self.client.get("/api/v1/waste/summary/")
        self.assertEqual(summary.status_code, 200)
        self.assertEqual(summary.data["all"]["count"], 2)
        self.assertEqual(summary.data["rejected"]["total_value"], "64.00")

    def test_malformed_filters_are_rejected(self):
        self.auth_as("staff", "staff123")
        response = self.client.get("/api/v1/waste/?product=abc")
        self.assertEqual(response.status_code, 400)
        self.assertIn("product", response.data["fields"])

        response = self.client.get("/api/v1/waste/?start_date=yesterday")
        self.assertEqual(response.status_code, 400)
        self.assertIn("start_date", response.data["fields"])
