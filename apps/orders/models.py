import secrets
import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

CENT = Decimal("0.01")


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    READY = "ready", "Ready"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class DeliveryMethod(models.TextChoices):
    DELIVERY = "delivery", "Delivery"
    PICKUP = "pickup", "Pickup"


class PaymentGateway(models.TextChoices):
    STRIPE = "stripe", "Stripe"
    PAYPAL = "paypal", "PayPal"
    AFTERPAY = "afterpay", "Afterpay"
    COD = "cod", "Cash on delivery"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PromotionType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed amount"


def generate_order_number():
    stamp = timezone.localdate().strftime("%Y%m%d")
    return f"{settings.ORDER_NUMBER_PREFIX}-{stamp}-{secrets.token_hex(2).upper()}"


class AppendOnlyModel(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{self._meta.verbose_name} entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{self._meta.verbose_name} entries cannot be deleted.")


class Promotion(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=40, unique=True)
    name = models.CharField(max_length=120)
    promotion_type = models.CharField(max_length=12, choices=PromotionType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    min_order = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    uses_count = models.PositiveIntegerField(default=0)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.CheckConstraint(check=models.Q(value__gt=0), name="promotion_value_gt_zero"),
        ]

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def is_usable(self, on_date=None):
        on_date = on_date or timezone.localdate()
        if not self.is_active:
            return False
        if self.max_uses is not None and self.uses_count >= self.max_uses:
            return False
        if self.start_date and self.start_date > on_date:
            return False
        if self.end_date and self.end_date < on_date:
            return False
        return True

    def calculate_discount(self, subtotal):
        subtotal = Decimal(subtotal)
        if subtotal < self.min_order:
            return Decimal("0.00")
        if self.promotion_type == PromotionType.PERCENTAGE:
            return (subtotal * self.value / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
        return min(self.value, subtotal)

    def __str__(self):
        return self.code


class OrderQuerySet(models.QuerySet):
    def with_open_issue(self):
        return self.filter(delivery_issue_reported_at__isnull=False, delivery_issue_resolved_at__isnull=True)

    def without_open_issue(self):
        return self.exclude(delivery_issue_reported_at__isnull=False, delivery_issue_resolved_at__isnull=True)


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=32, unique=True, default=generate_order_number, editable=False)
    customer = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="AUD")
    exchange_rate = models.DecimalField(max_digits=10, decimal_places=6, default=Decimal("1"))
    delivery_method = models.CharField(max_length=10, choices=DeliveryMethod.choices, default=DeliveryMethod.DELIVERY)
    delivery_address = models.TextField(blank=True)
    delivery_suburb = models.CharField(max_length=120, blank=True)
    delivery_postcode = models.CharField(max_length=10, blank=True)
    delivery_zone = models.ForeignKey(
        "delivery.DeliveryZone",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )
    delivery_zone_name = models.CharField(max_length=120, blank=True)
    estimated_days = models.PositiveSmallIntegerField(null=True, blank=True)
    scheduled_date = models.DateField(null=True, blank=True)
    scheduled_time_slot = models.CharField(max_length=40, blank=True)
    promotion_code = models.CharField(max_length=40, blank=True)
    notes = models.TextField(blank=True)
    delivery_instructions = models.TextField(blank=True)
    assigned_staff = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="assigned_orders",
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    delivery_issue = models.TextField(blank=True)
    delivery_issue_reported_at = models.DateTimeField(null=True, blank=True)
    delivery_issue_resolved_at = models.DateTimeField(null=True, blank=True)
    delivery_issue_resolution = models.TextField(blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(check=models.Q(subtotal__gte=0), name="order_subtotal_gte_zero"),
            models.CheckConstraint(check=models.Q(discount__gte=0), name="order_discount_gte_zero"),
            models.CheckConstraint(check=models.Q(total__gte=0), name="order_total_gte_zero"),
            models.CheckConstraint(check=models.Q(exchange_rate__gt=0), name="order_exchange_rate_gt_zero"),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["customer", "created_at"], name="order_customer_created_idx"),
            models.Index(fields=["assigned_staff", "status"], name="order_assigned_status_idx"),
        ]

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._locked_exchange_rate = instance.__dict__.get("exchange_rate")
        return instance

    def clean(self):
        if self.total != self.subtotal + self.delivery_fee - self.discount:
            raise ValidationError({"total": "total must equal subtotal + delivery_fee - discount"})

    def save(self, *args, **kwargs):
        locked_rate = getattr(self, "_locked_exchange_rate", None)
        if not self._state.adding and locked_rate is not None and self.exchange_rate != locked_rate:
            raise ValidationError({"exchange_rate": "The exchange rate is locked once the order is placed."})
        self.clean()
        super().save(*args, **kwargs)
        self._locked_exchange_rate = self.exchange_rate

    @property
    def has_open_issue(self):
        return self.delivery_issue_reported_at is not None and self.delivery_issue_resolved_at is None

    def __str__(self):
        return self.order_number


class OrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="order_items")
    product_name = models.CharField(max_length=255)
    product_sku = models.CharField(max_length=64)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        constraints = [
            models.CheckConstraint(check=models.Q(quantity__gt=0), name="order_item_quantity_gt_zero"),
            models.UniqueConstraint(fields=["order", "product"], name="unique_order_item_product"),
        ]


class OrderStatusHistory(AppendOnlyModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="status_history")
    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    notes = models.CharField(max_length=500, blank=True)
    changed_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="order_status_changes",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "order status history"
        verbose_name_plural = "order status history"
        indexes = [models.Index(fields=["order", "created_at"], name="order_history_order_idx")]


class OrderAssignmentLog(AppendOnlyModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="assignment_logs")
    previous_staff = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    new_staff = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="+")
    reason = models.CharField(max_length=255, blank=True)
    assigned_by = models.ForeignKey("accounts.User", null=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]


class DeliveryProof(AppendOnlyModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="proof")
    signature_data = models.TextField(blank=True)
    photo = models.FileField(upload_to="delivery-proofs/%Y/%m/", blank=True)
    recipient_name = models.CharField(max_length=120, blank=True)
    notes = models.TextField(blank=True)
    left_at_door = models.BooleanField(default=False)
    captured_by = models.ForeignKey("accounts.User", null=True, on_delete=models.SET_NULL, related_name="+")
    captured_at = models.DateTimeField(default=timezone.now)


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="payments")
    gateway = models.CharField(max_length=20, choices=PaymentGateway.choices)
    transaction_id = models.CharField(max_length=120, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=12, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    gateway_response = models.JSONField(default=dict, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status="completed"),
                name="unique_completed_payment_per_order",
            ),
            models.CheckConstraint(check=models.Q(amount__gte=0), name="payment_amount_gte_zero"),
        ]
        indexes = [models.Index(fields=["gateway", "status"], name="payment_gateway_status_idx")]

    def __str__(self):
        return f"{self.gateway} {self.amount} {self.currency} ({self.status})"
