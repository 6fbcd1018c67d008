import uuid
from datetime import timedelta

from django.db import models
from django.utils import timezone


class CurrencyRate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    base_currency = models.CharField(max_length=3)
    target_currency = models.CharField(max_length=3)
    rate = models.DecimalField(max_digits=10, decimal_places=6)
    fetched_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["base_currency", "target_currency"]
        constraints = [
            models.UniqueConstraint(fields=["base_currency", "target_currency"], name="unique_currency_rate_pair"),
            models.CheckConstraint(check=models.Q(rate__gt=0), name="currency_rate_gt_zero"),
        ]

    def is_stale(self, hours=24):
        return self.fetched_at + timedelta(hours=hours) < timezone.now()

    def __str__(self):
        return f"{self.base_currency}/{self.target_currency} {self.rate}"
