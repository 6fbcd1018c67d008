from django.contrib.auth import get_user_model
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.params import date_param, pk_param
from apps.common.permissions import RolePermission, has_capability, resolve_role
from apps.orders.models import DeliveryMethod, Order, OrderStatus, Payment, Promotion
from apps.orders.serializers import (
    AssignSerializer,
    CancelSerializer,
    CheckoutSerializer,
    DeliveryProofInputSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentResultSerializer,
    PaymentSerializer,
    PickupSerializer,
    PromotionSerializer,
    RefundSerializer,
    ReportIssueSerializer,
    ResolveIssueSerializer,
    StartPaymentSerializer,
    TransitionSerializer,
    ValidatePromoSerializer,
)
from apps.orders.services import (
    assign_order,
    cancel_order,
    create_order,
    find_promotion,
    mark_picked_up,
    record_delivery_proof,
    record_payment_result,
    refund_order,
    report_delivery_issue,
    resolve_delivery_issue,
    start_payment,
    transition_order,
)
from apps.orders.transitions import allowed_targets

TRUE_VALUES = {"1", "true", "yes"}


class OrderViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = (
        Order.objects.select_related("customer", "assigned_staff")
        .prefetch_related(
            "items",
            "status_history__changed_by",
            "assignment_logs__previous_staff",
            "assignment_logs__new_staff",
            "payments",
        )
        .order_by("-created_at")
    )
    serializer_class = OrderSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "create": ["orders.create"],
        "cancel": ["orders.cancel"],
        "transition": ["orders.process"],
        "assign": ["orders.assign"],
        "report_issue": ["orders.deliver"],
        "resolve_issue": ["orders.deliver"],
        "proof": ["orders.deliver"],
        "pickup": ["orders.deliver"],
        "deliveries": ["orders.deliver"],
        "pickups": ["orders.deliver"],
        "refund": ["orders.refund"],
        "pay": ["payments.create"],
    }

    def get_serializer_class(self):
        if self.action in {"list", "deliveries", "pickups"}:
            return OrderListSerializer
        return OrderSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        if has_capability(user, "orders.view"):
            pass
        elif has_capability(user, "orders.view.own"):
            queryset = queryset.filter(customer=user)
        else:
            return queryset.none()

        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("delivery_method"):
            queryset = queryset.filter(delivery_method=params["delivery_method"])
        if params.get("assigned_to") == "me":
            queryset = queryset.filter(assigned_staff=user)
        else:
            assigned_id = pk_param(params, "assigned_to", get_user_model())
            if assigned_id:
                queryset = queryset.filter(assigned_staff_id=assigned_id)
        if params.get("has_open_issue"):
            if params["has_open_issue"].strip().lower() in TRUE_VALUES:
                queryset = queryset.with_open_issue()
            else:
                queryset = queryset.without_open_issue()
        scheduled = date_param(params, "scheduled_date")
        if scheduled:
            queryset = queryset.filter(scheduled_date=scheduled)
        if params.get("q"):
            queryset = queryset.filter(order_number__icontains=params["q"].strip())
        return queryset

    def _respond(self, order, status_code=status.HTTP_200_OK):
        fresh = super().get_queryset().get(pk=order.pk)
        return Response(OrderSerializer(fresh, context=self.get_serializer_context()).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = create_order(
            customer=request.user,
            items=data["items"],
            delivery_method=data["delivery_method"],
            suburb=data["suburb"],
            postcode=data["postcode"],
            address=data["address"],
            currency=data["currency"],
            promo_code=data["promo_code"],
            scheduled_date=data["scheduled_date"],
            scheduled_time_slot=data["scheduled_time_slot"],
            notes=data["notes"],
            delivery_instructions=data["delivery_instructions"],
        )
        return self._respond(order, status.HTTP_201_CREATED)

    def retrieve(self, request, *args, **kwargs):
        order = self.get_object()
        data = self.get_serializer(order).data
        data["allowed_transitions"] = allowed_targets(order, resolve_role(request.user))
        return Response(data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        order = self.get_object()
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = cancel_order(order=order, actor=request.user, reason=serializer.validated_data["reason"])
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        order = self.get_object()
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = transition_order(
            order=order,
            target=serializer.validated_data["status"],
            actor=request.user,
            notes=serializer.validated_data["notes"],
        )
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        order = self.get_object()
        serializer = AssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = assign_order(
            order=order,
            staff=serializer.validated_data["staff"],
            actor=request.user,
            reason=serializer.validated_data["reason"],
        )
        return self._respond(order)

    @action(detail=True, methods=["post"], url_path="report-issue")
    def report_issue(self, request, pk=None):
        order = self.get_object()
        serializer = ReportIssueSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = report_delivery_issue(order=order, actor=request.user, issue=serializer.validated_data["issue"])
        return self._respond(order)

    @action(detail=True, methods=["post"], url_path="resolve-issue")
    def resolve_issue(self, request, pk=None):
        order = self.get_object()
        serializer = ResolveIssueSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = resolve_delivery_issue(
            order=order,
            actor=request.user,
            resolution=serializer.validated_data["resolution"],
        )
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def proof(self, request, pk=None):
        order = self.get_object()
        serializer = DeliveryProofInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record_delivery_proof(order=order, actor=request.user, **serializer.validated_data)
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def pickup(self, request, pk=None):
        order = self.get_object()
        serializer = PickupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = mark_picked_up(order=order, actor=request.user, notes=serializer.validated_data["notes"])
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        order = self.get_object()
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = refund_order(
            order=order,
            actor=request.user,
            reason=serializer.validated_data["reason"],
            amount=serializer.validated_data.get("amount"),
        )
        return self._respond(order)

    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):
        order = self.get_object()
        serializer = StartPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = start_payment(order=order, gateway=serializer.validated_data["gateway"], actor=request.user)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def deliveries(self, request):
        queryset = self.get_queryset().filter(
            delivery_method=DeliveryMethod.DELIVERY,
            status__in=[OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY],
        )
        return self._paginated(queryset)

    @action(detail=False, methods=["get"])
    def pickups(self, request):
        queryset = self.get_queryset().filter(delivery_method=DeliveryMethod.PICKUP, status=OrderStatus.READY)
        return self._paginated(queryset)

    def _paginated(self, queryset):
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)


class PaymentViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Payment.objects.select_related("order")
    serializer_class = PaymentSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "retrieve": ["payments.view"],
        "result": ["payments.report"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        if has_capability(self.request.user, "orders.view"):
            return queryset
        return queryset.filter(order__customer=self.request.user)

    @action(detail=True, methods=["post"])
    def result(self, request, pk=None):
        payment = self.get_object()
        serializer = PaymentResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = record_payment_result(payment=payment, actor=request.user, **serializer.validated_data)
        return Response(self.get_serializer(payment).data)


class PromotionViewSet(viewsets.ModelViewSet):
    queryset = Promotion.objects.all()
    serializer_class = PromotionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["promotions.manage"],
        "retrieve": ["promotions.manage"],
        "create": ["promotions.manage"],
        "update": ["promotions.manage"],
        "partial_update": ["promotions.manage"],
        "destroy": ["promotions.manage"],
    }

    def perform_create(self, serializer):
        promotion = serializer.save()
        record_audit(
            actor=self.request.user,
            action="promotion.create",
            entity_type="promotion",
            entity_id=promotion.id,
            payload={"code": promotion.code, "type": promotion.promotion_type, "value": str(promotion.value)},
        )

    def perform_update(self, serializer):
        promotion = serializer.save()
        record_audit(
            actor=self.request.user,
            action="promotion.update",
            entity_type="promotion",
            entity_id=promotion.id,
            payload={"code": promotion.code, "is_active": promotion.is_active},
        )

    def perform_destroy(self, instance):
        # Used codes stay on their orders; deactivate instead of deleting.
        instance.is_active = False
        instance.save(update_fields=["is_active"])
        record_audit(
            actor=self.request.user,
            action="promotion.deactivate",
            entity_type="promotion",
            entity_id=instance.id,
            payload={"code": instance.code},
        )


class ValidatePromoView(generics.GenericAPIView):
    serializer_class = ValidatePromoSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["orders.create"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        promotion, discount = find_promotion(serializer.validated_data["code"], serializer.validated_data["subtotal"])
        return Response(
            {
                "valid": True,
                "code": promotion.code,
                "name": promotion.name,
                "promotion_type": promotion.promotion_type,
                "value": str(promotion.value),
                "discount": str(discount),
                "detail": f"Promo code applied! You save ${discount}",
            }
        )
