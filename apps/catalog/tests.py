from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.catalog.models import Product, StockStatus
from apps.catalog.querysets import low_stock, out_of_stock
from apps.inventory.models import InventoryLog, MovementType
from apps.inventory.services import apply_movement

User = get_user_model()


def create_product(sku, stock=None, price="19.90", **kwargs):
    product = Product.objects.create(sku=sku, name=kwargs.pop("name", f"Product {sku}"), price_aud=Decimal(price), **kwargs)
    if stock is not None:
        apply_movement(product=product, movement_type=MovementType.ADDITION, quantity=stock, reason="Opening stock")
    return product


class ProductModelTests(TestCase):
    def test_current_price_prefers_lower_sale_price(self):
        product = create_product("BEEF-100", price="30.00", sale_price_aud=Decimal("24.00"))
        self.assertEqual(product.current_price, Decimal("24.00"))

        product.sale_price_aud = Decimal("35.00")
        self.assertEqual(product.current_price, Decimal("30.00"))

    def test_min_stock_comes_from_meta(self):
        product = create_product("BEEF-101", stock="4", meta={"min_stock": 3})
        self.assertEqual(product.min_stock, 3)
        self.assertEqual(product.stock_status, StockStatus.NORMAL)

        default = create_product("BEEF-102", stock="4")
        self.assertEqual(default.min_stock, 10)
        self.assertEqual(default.stock_status, StockStatus.LOW)

    def test_meta_keys_are_typed(self):
        product = Product(sku="BEEF-103", name="Brisket", price_aud=Decimal("18.00"), meta={"min_stock": "five"})
        with self.assertRaises(ValidationError):
            product.full_clean()

        product.meta = {"min_stock": -1}
        with self.assertRaises(ValidationError):
            product.full_clean()

        product.meta = {"min_stock": 5, "origin": "Hawkesbury"}
        product.full_clean()

    def test_stock_querysets_follow_thresholds(self):
        create_product("BEEF-104", stock="50")
        low = create_product("BEEF-105", stock="2")
        empty = create_product("BEEF-106")

        self.assertEqual(list(low_stock(Product.objects.all())), [low])
        self.assertEqual(list(out_of_stock(Product.objects.all())), [empty])


class ProductApiTests(APITestCase):
    def setUp(self):
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        self.ribeye = create_product("BEEF-200", stock="25", name="Scotch fillet")
        self.mince = create_product("BEEF-201", stock="5", name="Beef mince")
        self.ribs = create_product("PORK-200", name="Pork ribs")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_list_requires_authentication(self):
        response = self.client.get("/api/v1/products/")
        self.assertEqual(response.status_code, 401)

    def test_list_reports_stock_status(self):
        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/products/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 3)
        statuses = {row["sku"]: row["stock_status"] for row in response.data["results"]}
        self.assertEqual(statuses, {"BEEF-200": "normal", "BEEF-201": "low", "PORK-200": "out"})

    def test_filters(self):
        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/products/", {"stock_status": "low"})
        self.assertEqual([row["sku"] for row in response.data["results"]], ["BEEF-201"])

        response = self.client.get("/api/v1/products/", {"q": "mince"})
        self.assertEqual(response.data["count"], 1)

        self.ribs.is_active = False
        self.ribs.save()
        response = self.client.get("/api/v1/products/", {"active": "true"})
        self.assertEqual(response.data["count"], 2)

    def test_catalog_is_read_only(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/products/",
            {"sku": "NEW-1", "name": "New", "price_aud": "1.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 405)


class SeedProductsCommandTests(TestCase):
    def test_seed_is_idempotent_and_goes_through_the_ledger(self):
        call_command("seed_products", stdout=StringIO())
        call_command("seed_products", stdout=StringIO())

        product = Product.objects.get(sku="BEEF-SCOTCH")
        self.assertEqual(product.stock, Decimal("100.000"))
        self.assertEqual(InventoryLog.objects.filter(product=product).count(), 1)
        self.assertEqual(Product.objects.get(sku="SAUS-BOERE").current_price, Decimal("19.99"))
