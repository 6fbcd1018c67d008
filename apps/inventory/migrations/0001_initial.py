# Generated manually for the append-only stock ledger.

import django.db.models.deletion
import uuid

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="InventoryLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("addition", "Addition"),
                            ("deduction", "Deduction"),
                            ("adjustment", "Adjustment"),
                            ("waste", "Waste"),
                        ],
                        max_length=20,
                    ),
                ),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=12)),
                ("stock_before", models.DecimalField(decimal_places=3, max_digits=12)),
                ("stock_after", models.DecimalField(decimal_places=3, max_digits=12)),
                ("reason", models.CharField(blank=True, max_length=255)),
                (
                    "reference_type",
                    models.CharField(
                        choices=[("order", "Order"), ("waste", "Waste entry"), ("manual", "Manual")],
                        default="manual",
                        max_length=32,
                    ),
                ),
                ("reference_id", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory_logs",
                        to="catalog.product",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product", "created_at"], name="inventory_log_product_idx"),
                    models.Index(fields=["reference_type", "reference_id"], name="inventory_log_reference_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("quantity__gt", 0)), name="inventory_log_quantity_gt_zero"),
                    models.CheckConstraint(check=models.Q(("stock_before__gte", 0)), name="inventory_log_stock_before_gte_zero"),
                    models.CheckConstraint(check=models.Q(("stock_after__gte", 0)), name="inventory_log_stock_after_gte_zero"),
                ],
            },
        ),
    ]
