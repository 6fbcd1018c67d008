import uuid

from django.core.exceptions import ValidationError
from django.db import models


class MovementType(models.TextChoices):
    ADDITION = "addition", "Addition"
    DEDUCTION = "deduction", "Deduction"
    ADJUSTMENT = "adjustment", "Adjustment"
    WASTE = "waste", "Waste"


class ReferenceType(models.TextChoices):
    ORDER = "order", "Order"
    WASTE = "waste", "Waste entry"
    MANUAL = "manual", "Manual"


class InventoryLog(models.Model):
    """One stock movement. Rows are append-only; Product.stock mirrors the latest stock_after."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="inventory_logs")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    stock_before = models.DecimalField(max_digits=12, decimal_places=3)
    stock_after = models.DecimalField(max_digits=12, decimal_places=3)
    reason = models.CharField(max_length=255, blank=True)
    reference_type = models.CharField(max_length=32, choices=ReferenceType.choices, default=ReferenceType.MANUAL)
    reference_id = models.CharField(max_length=64, blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="inventory_logs",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(check=models.Q(quantity__gt=0), name="inventory_log_quantity_gt_zero"),
            models.CheckConstraint(check=models.Q(stock_before__gte=0), name="inventory_log_stock_before_gte_zero"),
            models.CheckConstraint(check=models.Q(stock_after__gte=0), name="inventory_log_stock_after_gte_zero"),
        ]
        indexes = [
            models.Index(fields=["product", "created_at"], name="inventory_log_product_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="inventory_log_reference_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Inventory log entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Inventory log entries cannot be deleted.")

    @property
    def delta(self):
        return self.stock_after - self.stock_before

    def __str__(self):
        return f"{self.movement_type} {self.quantity} ({self.stock_before} -> {self.stock_after})"
