from django.contrib import admin

from apps.orders.models import DeliveryProof, Order, OrderItem, OrderStatusHistory, Payment, Promotion


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "product_sku", "product_name", "quantity", "unit_price", "total_price")


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    can_delete = False
    readonly_fields = ("status", "notes", "changed_by", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "customer", "status", "delivery_method", "total", "currency", "assigned_staff", "created_at")
    list_filter = ("status", "delivery_method", "currency")
    search_fields = ("order_number", "customer__username", "delivery_suburb")
    inlines = [OrderItemInline, OrderStatusHistoryInline]
    # Status, money and stock only change through the order services.
    readonly_fields = (
        "order_number",
        "status",
        "subtotal",
        "delivery_fee",
        "discount",
        "total",
        "currency",
        "exchange_rate",
        "assigned_staff",
        "assigned_at",
        "delivered_at",
        "cancelled_at",
        "version",
    )


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("order", "gateway", "amount", "currency", "status", "created_at")
    list_filter = ("gateway", "status")
    search_fields = ("order__order_number", "transaction_id")


@admin.register(DeliveryProof)
class DeliveryProofAdmin(admin.ModelAdmin):
    list_display = ("order", "recipient_name", "left_at_door", "captured_by", "captured_at")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "promotion_type", "value", "uses_count", "max_uses", "is_active")
    list_filter = ("promotion_type", "is_active")
    search_fields = ("code", "name")
