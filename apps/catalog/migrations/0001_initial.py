# Generated manually for the storefront product catalogue.

import uuid
from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(db_index=True, max_length=64, unique=True)),
                ("name", models.CharField(db_index=True, max_length=255)),
                (
                    "unit",
                    models.CharField(
                        choices=[("kg", "Kilogram"), ("piece", "Piece"), ("pack", "Pack")],
                        default="kg",
                        max_length=8,
                    ),
                ),
                ("price_aud", models.DecimalField(decimal_places=2, max_digits=12)),
                ("sale_price_aud", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("stock", models.DecimalField(decimal_places=3, default=Decimal("0"), editable=False, max_digits=12)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("stock__gte", 0)), name="product_stock_gte_zero"),
                    models.CheckConstraint(check=models.Q(("price_aud__gte", 0)), name="product_price_gte_zero"),
                ],
            },
        ),
    ]
