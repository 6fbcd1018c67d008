import uuid

from django.core.exceptions import ValidationError
from django.db import models


def normalize_suburb(value):
    return " ".join((value or "").split()).casefold()


class DeliveryZone(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120, unique=True)
    suburbs = models.JSONField(default=list, blank=True)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2)
    free_delivery_threshold = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    estimated_days = models.PositiveSmallIntegerField(default=1)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(check=models.Q(delivery_fee__gte=0), name="delivery_zone_fee_gte_zero"),
        ]

    def clean(self):
        if not isinstance(self.suburbs, list) or not all(isinstance(item, str) for item in self.suburbs):
            raise ValidationError({"suburbs": "suburbs must be a list of names"})

    def covers(self, suburb):
        target = normalize_suburb(suburb)
        return bool(target) and any(normalize_suburb(item) == target for item in self.suburbs or [])

    def __str__(self):
        return self.name
