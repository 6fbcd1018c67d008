from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.exceptions import ValidationError
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import InsufficientStock, StockConflict
from apps.inventory.models import InventoryLog, MovementType
from apps.inventory.services import adjust_to, apply_movement, latest_logged_stock, lock_products, set_min_stock
from apps.inventory.signals import stock_low, stock_out

User = get_user_model()


def create_product(sku, stock="0", price="20.00", **extra):
    product = Product.objects.create(sku=sku, name=f"Product {sku}", price_aud=Decimal(price), **extra)
    if Decimal(stock) > 0:
        apply_movement(product=product, movement_type=MovementType.ADDITION, quantity=stock, reason="Opening stock")
    return product


class InventoryLedgerTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.product = create_product("BEEF-001", stock="10")

    def test_addition_and_deduction_keep_cache_and_log_in_step(self):
        log = apply_movement(
            product=self.product,
            movement_type=MovementType.DEDUCTION,
            quantity=Decimal("4"),
            reason="Order",
            actor=self.user,
            reference_type="order",
            reference_id="ZM-1",
        )
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("6.000"))
        self.assertEqual(log.stock_before, Decimal("10.000"))
        self.assertEqual(log.stock_after, Decimal("6.000"))
        self.assertEqual(log.quantity, Decimal("4.000"))
        self.assertEqual(log.created_by, self.user)
        self.assertEqual(InventoryLog.objects.filter(product=self.product).count(), 2)

    def test_deduction_below_zero_is_rejected_without_side_effects(self):
        with self.assertRaises(InsufficientStock) as ctx:
            apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="11")
        self.assertEqual(ctx.exception.available, Decimal("10.000"))
        self.assertEqual(ctx.exception.requested, Decimal("11.000"))

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))
        self.assertEqual(InventoryLog.objects.filter(product=self.product).count(), 1)

    def test_non_positive_quantity_is_rejected(self):
        with self.assertRaises(ValueError):
            apply_movement(product=self.product, movement_type=MovementType.ADDITION, quantity="0")
        with self.assertRaises(ValueError):
            apply_movement(product=self.product, movement_type=MovementType.WASTE, quantity="-1")

    def test_adjust_to_derives_direction(self):
        down = adjust_to(product=self.product, target="7", reason="Stocktake")
        self.assertEqual(down.movement_type, MovementType.ADJUSTMENT)
        self.assertEqual(down.quantity, Decimal("3.000"))
        self.assertEqual(down.delta, Decimal("-3.000"))

        up = adjust_to(product=self.product, target="12.5", reason="Stocktake")
        self.assertEqual(up.stock_before, Decimal("7.000"))
        self.assertEqual(up.stock_after, Decimal("12.500"))

        with self.assertRaises(ValueError):
            adjust_to(product=self.product, target="12.5", reason="No change")
        with self.assertRaises(ValueError):
            adjust_to(product=self.product, target="-1", reason="Negative")

    def test_lost_compare_and_swap_raises_conflict(self):
        with mock.patch("django.db.models.query.QuerySet.update", return_value=0):
            with self.assertRaises(StockConflict):
                apply_movement(product=self.product, movement_type=MovementType.ADDITION, quantity="1")
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))
        self.assertEqual(InventoryLog.objects.filter(product=self.product).count(), 1)

    def test_log_rows_are_append_only(self):
        log = InventoryLog.objects.filter(product=self.product).first()
        log.reason = "changed"
        with self.assertRaises(ValidationError):
            log.save()
        with self.assertRaises(ValidationError):
            log.delete()

    def test_lock_products_returns_each_product_once(self):
        other = create_product("LAMB-001", stock="5")
        locked = lock_products([other.pk, self.product.pk, other.pk])
        self.assertEqual(set(locked), {self.product.pk, other.pk})

    def test_min_stock_is_stored_in_meta(self):
        previous = set_min_stock(product=self.product, min_stock=4)
        self.assertIsNone(previous)
        self.product.refresh_from_db()
        self.assertEqual(self.product.meta["min_stock"], 4)
        self.assertEqual(self.product.stock_status, "normal")
        with self.assertRaises(ValueError):
            set_min_stock(product=self.product, min_stock=-1)


class StockAlertSignalTests(TestCase):
    def setUp(self):
        self.product = create_product("PORK-001", stock="12")
        self.received = []
        stock_low.connect(self._on_low)
        stock_out.connect(self._on_out)
        self.addCleanup(stock_low.disconnect, self._on_low)
        self.addCleanup(stock_out.disconnect, self._on_out)

    def _on_low(self, sender, product, stock, **kwargs):
        self.received.append(("low", product.sku, stock))

    def _on_out(self, sender, product, stock, **kwargs):
        self.received.append(("out", product.sku, stock))

    def test_low_stock_fires_only_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="3")
            self.assertEqual(self.received, [])
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(self.received, [("low", "PORK-001", Decimal("9.000"))])

    def test_out_of_stock_fires_at_zero(self):
        with self.captureOnCommitCallbacks(execute=True):
            apply_movement(product=self.product, movement_type=MovementType.WASTE, quantity="12")
        self.assertEqual(self.received, [("out", "PORK-001", Decimal("0.000"))])

    def test_rejected_movement_sends_nothing(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(InsufficientStock):
                apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="50")
        self.assertEqual(callbacks, [])
        self.assertEqual(self.received, [])

    def test_additions_do_not_alert(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            apply_movement(product=self.product, movement_type=MovementType.ADDITION, quantity="1")
        self.assertEqual(callbacks, [])

    def test_custom_min_stock_threshold(self):
        set_min_stock(product=self.product, min_stock=2)
        with self.captureOnCommitCallbacks(execute=True):
            apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="5")
        self.assertEqual(self.received, [])


class CheckInventoryLedgerCommandTests(TestCase):
    def test_consistent_ledger_passes(self):
        product = create_product("VEAL-001", stock="8")
        apply_movement(product=product, movement_type=MovementType.DEDUCTION, quantity="2")
        out = StringIO()
        call_command("check_inventory_ledger", stdout=out)
        self.assertIn("consistent", out.getvalue())

    def test_drifted_cache_is_reported(self):
        product = create_product("VEAL-002", stock="8")
        Product.objects.filter(pk=product.pk).update(stock=Decimal("99"))
        with self.assertRaises(CommandError):
            call_command("check_inventory_ledger", stdout=StringIO(), stderr=StringIO())

    def test_movements_sharing_a_timestamp_are_not_a_mismatch(self):
        product = create_product("VEAL-003", stock="10")
        apply_movement(product=product, movement_type=MovementType.DEDUCTION, quantity="4")
        apply_movement(product=product, movement_type=MovementType.ADDITION, quantity="1")
        InventoryLog.objects.filter(product=product).update(created_at=timezone.now())

        self.assertEqual(latest_logged_stock(product), Decimal("7.000"))
        out = StringIO()
        call_command("check_inventory_ledger", stdout=out)
        self.assertIn("consistent", out.getvalue())


class InventoryApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.product = create_product("INV-001", stock="20")
        self.low = create_product("INV-002", stock="3")
        self.empty = create_product("INV-003")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_receive_stock_is_logged_and_audited(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/inventory/receive/",
            {"product": str(self.product.id), "quantity": "5.5", "supplier": "Hawkesbury Farms"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["stock_after"], "25.500")
        self.assertEqual(response.data["reason"], "Stock received from Hawkesbury Farms")
        self.assertTrue(AuditLog.objects.filter(action="inventory.receive", entity_id=response.data["id"]).exists())

    def test_adjust_stock(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/inventory/adjust/",
            {"product": str(self.product.id), "new_quantity": "18", "reason": "Stocktake", "notes": "two trays spoiled"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["movement_type"], "adjustment")
        self.assertEqual(response.data["quantity"], "2.000")

        response = self.client.post(
            "/api/v1/inventory/adjust/",
            {"product": str(self.product.id), "new_quantity": "18", "reason": "Stocktake"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_adjustment")

    def test_staff_can_view_but_not_change_stock(self):
        self.auth_as("staff", "staff123")
        self.assertEqual(self.client.get("/api/v1/inventory/stocks/").status_code, 200)
        response = self.client.post(
            "/api/v1/inventory/receive/",
            {"product": str(self.product.id), "quantity": "1"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_alert_feed_splits_low_and_out(self):
        self.auth_as("staff", "staff123")
        response = self.client.get("/api/v1/inventory/alerts/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["sku"] for row in response.data["low_stock"]], ["INV-002"])
        self.assertEqual([row["sku"] for row in response.data["out_of_stock"]], ["INV-003"])
        self.assertEqual(response.data["counts"], {"low_stock": 1, "out_of_stock": 1})

    def test_min_stock_update_moves_product_into_low_feed(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/inventory/products/{self.product.id}/min-stock/", {"min_stock": 25}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["stock_status"], "low")

        response = self.client.get("/api/v1/inventory/stocks/?status=low")
        self.assertEqual({row["sku"] for row in response.data["results"]}, {"INV-001", "INV-002"})

    def test_movement_history_filters(self):
        apply_movement(product=self.product, movement_type=MovementType.DEDUCTION, quantity="2", reference_type="order", reference_id="ZM-9")
        self.auth_as("staff", "staff123")
        response = self.client.get(f"/api/v1/inventory/movements/?product={self.product.id}&type=deduction")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["reference_id"], "ZM-9")

        report = self.client.get("/api/v1/inventory/report/?days=7")
        self.assertEqual(report.data["movements"]["addition"]["count"], 2)
        self.assertEqual(report.data["movements"]["deduction"]["total_quantity"], "2.000")

    def test_malformed_filters_are_rejected(self):
        self.auth_as("staff", "staff123")
        response = self.client.get("/api/v1/inventory/stocks/?product=abc")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid")
        self.assertIn("product", response.data["fields"])

        response = self.client.get("/api/v1/inventory/movements/?product=abc")
        self.assertEqual(response.status_code, 400)

        response = self.client.get(f"/api/v1/inventory/stocks/?product={self.product.id}")
        self.assertEqual(response.status_code, 200)
