from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.catalog.models import Product, ProductUnit
from apps.inventory.models import MovementType
from apps.inventory.services import apply_movement

OPENING_STOCK = Decimal("100")

PRODUCTS = [
    {"sku": "BEEF-SCOTCH", "name": "Scotch Fillet", "unit": ProductUnit.KG, "price_aud": Decimal("54.99")},
    {"sku": "BEEF-RUMP", "name": "Rump Steak", "unit": ProductUnit.KG, "price_aud": Decimal("32.99")},
    {"sku": "BEEF-MINCE", "name": "Premium Beef Mince", "unit": ProductUnit.KG, "price_aud": Decimal("16.99")},
    {"sku": "LAMB-CUTLET", "name": "Lamb Cutlets", "unit": ProductUnit.KG, "price_aud": Decimal("49.99")},
    {"sku": "LAMB-LEG", "name": "Lamb Leg Bone-In", "unit": ProductUnit.KG, "price_aud": Decimal("19.99")},
    {"sku": "PORK-BELLY", "name": "Pork Belly", "unit": ProductUnit.KG, "price_aud": Decimal("24.99")},
    {"sku": "POUL-THIGH", "name": "Chicken Thigh Fillets", "unit": ProductUnit.KG, "price_aud": Decimal("15.99")},
    {
        "sku": "SAUS-BOERE",
        "name": "Boerewors",
        "unit": ProductUnit.KG,
        "price_aud": Decimal("22.99"),
        "sale_price_aud": Decimal("19.99"),
    },
    {"sku": "DELI-BILTONG", "name": "Traditional Biltong 250g", "unit": ProductUnit.PACK, "price_aud": Decimal("18.50")},
    {"sku": "DELI-DROEWORS", "name": "Droewors 200g", "unit": ProductUnit.PACK, "price_aud": Decimal("14.50")},
]


class Command(BaseCommand):
    help = "Seed a starter meat catalog. New products receive opening stock through the inventory ledger."

    def add_arguments(self, parser):
        parser.add_argument("--stock", type=Decimal, default=OPENING_STOCK, help="Opening stock for new products.")

    @transaction.atomic
    def handle(self, *args, **options):
        opening = options["stock"]
        created_count = 0
        for data in PRODUCTS:
            defaults = {key: value for key, value in data.items() if key != "sku"}
            product, created = Product.objects.update_or_create(sku=data["sku"], defaults=defaults)
            if created:
                created_count += 1
                if opening > 0:
                    apply_movement(
                        product=product,
                        movement_type=MovementType.ADDITION,
                        quantity=opening,
                        reason="Opening stock",
                    )

        self.stdout.write(self.style.SUCCESS(f"Products seeded. created={created_count} total={len(PRODUCTS)}"))
