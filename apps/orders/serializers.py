from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.catalog.models import Product
from apps.orders.models import (
    DeliveryMethod,
    DeliveryProof,
    Order,
    OrderAssignmentLog,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    Payment,
    PaymentGateway,
    Promotion,
)


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product", "product_sku", "product_name", "quantity", "unit_price", "total_price"]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    changed_by_username = serializers.CharField(source="changed_by.username", read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ["status", "notes", "changed_by", "changed_by_username", "created_at"]
        read_only_fields = fields


class OrderAssignmentLogSerializer(serializers.ModelSerializer):
    previous_staff_username = serializers.CharField(source="previous_staff.username", read_only=True, default=None)
    new_staff_username = serializers.CharField(source="new_staff.username", read_only=True)

    class Meta:
        model = OrderAssignmentLog
        fields = ["previous_staff", "previous_staff_username", "new_staff", "new_staff_username", "reason", "created_at"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "order",
            "order_number",
            "gateway",
            "transaction_id",
            "amount",
            "currency",
            "status",
            "refund_amount",
            "refund_reason",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class DeliveryProofSerializer(serializers.ModelSerializer):
    captured_by_username = serializers.CharField(source="captured_by.username", read_only=True, default=None)

    class Meta:
        model = DeliveryProof
        fields = [
            "recipient_name",
            "signature_data",
            "photo",
            "notes",
            "left_at_door",
            "captured_by",
            "captured_by_username",
            "captured_at",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    customer_username = serializers.CharField(source="customer.username", read_only=True)
    assigned_staff_username = serializers.CharField(source="assigned_staff.username", read_only=True, default=None)
    has_open_issue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "customer",
            "customer_username",
            "total",
            "currency",
            "delivery_method",
            "delivery_suburb",
            "delivery_zone_name",
            "scheduled_date",
            "scheduled_time_slot",
            "assigned_staff",
            "assigned_staff_username",
            "has_open_issue",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(OrderListSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    history = OrderStatusHistorySerializer(source="status_history", many=True, read_only=True)
    assignments = OrderAssignmentLogSerializer(source="assignment_logs", many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    proof = serializers.SerializerMethodField()
    zone = serializers.SerializerMethodField()
    issue = serializers.SerializerMethodField()

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            "subtotal",
            "delivery_fee",
            "discount",
            "exchange_rate",
            "promotion_code",
            "delivery_address",
            "delivery_postcode",
            "estimated_days",
            "zone",
            "notes",
            "delivery_instructions",
            "assigned_at",
            "issue",
            "delivered_at",
            "cancelled_at",
            "updated_at",
            "items",
            "history",
            "assignments",
            "payments",
            "proof",
        ]
        read_only_fields = fields

    def get_proof(self, order):
        try:
            proof = order.proof
        except DeliveryProof.DoesNotExist:
            return None
        return DeliveryProofSerializer(proof, context=self.context).data

    def get_zone(self, order):
        if not order.delivery_zone_name:
            return None
        return {
            "id": str(order.delivery_zone_id) if order.delivery_zone_id else None,
            "name": order.delivery_zone_name,
            "estimated_days": order.estimated_days,
        }

    def get_issue(self, order):
        if order.delivery_issue_reported_at is None:
            return None
        return {
            "description": order.delivery_issue,
            "reported_at": order.delivery_issue_reported_at,
            "resolved_at": order.delivery_issue_resolved_at,
            "resolution": order.delivery_issue_resolution,
            "is_open": order.has_open_issue,
        }


class CheckoutItemSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal("0.001"))


class CheckoutSerializer(serializers.Serializer):
    items = CheckoutItemSerializer(many=True, allow_empty=False)
    delivery_method = serializers.ChoiceField(choices=DeliveryMethod.choices, default=DeliveryMethod.DELIVERY)
    suburb = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    postcode = serializers.CharField(max_length=10, required=False, allow_blank=True, default="")
    address = serializers.CharField(required=False, allow_blank=True, default="")
    currency = serializers.CharField(max_length=3, required=False)
    promo_code = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    scheduled_date = serializers.DateField(required=False, allow_null=True, default=None)
    scheduled_time_slot = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    delivery_instructions = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["delivery_method"] == DeliveryMethod.DELIVERY and not attrs.get("suburb", "").strip():
            raise serializers.ValidationError({"suburb": "A suburb is required for delivery orders."})
        attrs["currency"] = attrs.get("currency") or settings.BASE_CURRENCY
        return attrs


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class AssignSerializer(serializers.Serializer):
    staff = serializers.PrimaryKeyRelatedField(queryset=get_user_model().objects.all())
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class ReportIssueSerializer(serializers.Serializer):
    issue = serializers.CharField(max_length=2000)


class ResolveIssueSerializer(serializers.Serializer):
    resolution = serializers.CharField(max_length=2000)


class DeliveryProofInputSerializer(serializers.Serializer):
    recipient_name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    signature_data = serializers.CharField(required=False, allow_blank=True, default="")
    photo = serializers.FileField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    left_at_door = serializers.BooleanField(required=False, default=False)


class PickupSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal("0.01"))


class StartPaymentSerializer(serializers.Serializer):
    gateway = serializers.ChoiceField(choices=PaymentGateway.choices)


class PaymentResultSerializer(serializers.Serializer):
    succeeded = serializers.BooleanField()
    transaction_id = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    gateway_response = serializers.JSONField(required=False, default=dict)


class PromotionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Promotion
        fields = [
            "id",
            "code",
            "name",
            "promotion_type",
            "value",
            "min_order",
            "max_uses",
            "uses_count",
            "start_date",
            "end_date",
            "is_active",
        ]
        read_only_fields = ["id", "uses_count"]

    def validate(self, attrs):
        start = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "End date must be on or after the start date."})
        return attrs


class ValidatePromoSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=40)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
