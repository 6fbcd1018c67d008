# Generated manually for suburb-based delivery zones.

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DeliveryZone",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=120, unique=True)),
                ("suburbs", models.JSONField(blank=True, default=list)),
                ("delivery_fee", models.DecimalField(decimal_places=2, max_digits=12)),
                ("free_delivery_threshold", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("estimated_days", models.PositiveSmallIntegerField(default=1)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("delivery_fee__gte", 0)), name="delivery_zone_fee_gte_zero"),
                ],
            },
        ),
    ]
