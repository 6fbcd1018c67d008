import uuid

from django.db import models


class WasteReason(models.TextChoices):
    DAMAGED = "damaged", "Damaged"
    EXPIRED = "expired", "Expired"
    QUALITY = "quality", "Quality issue"
    OTHER = "other", "Other"


class WasteStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class WasteLogQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(approved_at__isnull=True, rejected_at__isnull=True)

    def approved(self):
        return self.filter(approved_at__isnull=False)

    def rejected(self):
        return self.filter(rejected_at__isnull=False)

    def with_status(self, status):
        if status == WasteStatus.PENDING:
            return self.pending()
        if status == WasteStatus.APPROVED:
            return self.approved()
        if status == WasteStatus.REJECTED:
            return self.rejected()
        return self.none()


class WasteLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="waste_logs")
    logged_by = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="waste_logs")
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    reason = models.CharField(max_length=20, choices=WasteReason.choices)
    notes = models.TextField(blank=True)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2)
    total_cost = models.DecimalField(max_digits=12, decimal_places=2)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="approved_waste_logs",
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="rejected_waste_logs",
    )
    rejection_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = WasteLogQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(check=models.Q(quantity__gt=0), name="waste_log_quantity_gt_zero"),
            models.CheckConstraint(
                check=models.Q(approved_at__isnull=True) | models.Q(rejected_at__isnull=True),
                name="waste_log_single_decision",
            ),
        ]
        indexes = [
            models.Index(fields=["reason", "created_at"], name="waste_log_reason_idx"),
        ]

    @property
    def status(self):
        if self.approved_at is not None:
            return WasteStatus.APPROVED
        if self.rejected_at is not None:
            return WasteStatus.REJECTED
        return WasteStatus.PENDING

    def __str__(self):
        return f"{self.product} x {self.quantity} ({self.status})"
