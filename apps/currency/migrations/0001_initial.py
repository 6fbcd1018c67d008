# Generated manually for locked exchange rates.

import django.utils.timezone
import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CurrencyRate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("base_currency", models.CharField(max_length=3)),
                ("target_currency", models.CharField(max_length=3)),
                ("rate", models.DecimalField(decimal_places=6, max_digits=10)),
                ("fetched_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["base_currency", "target_currency"],
                "constraints": [
                    models.UniqueConstraint(fields=("base_currency", "target_currency"), name="unique_currency_rate_pair"),
                    models.CheckConstraint(check=models.Q(("rate__gt", 0)), name="currency_rate_gt_zero"),
                ],
            },
        ),
    ]
