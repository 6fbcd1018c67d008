from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import (
    InsufficientStock,
    InvalidOrderRequest,
    InvalidTransition,
    TransitionConflict,
    UnauthorizedActor,
    UnsupportedCurrency,
    ZoneNotServiced,
)
from apps.currency.services import set_rate
from apps.delivery.models import DeliveryZone
from apps.inventory.models import InventoryLog, MovementType, ReferenceType
from apps.inventory.services import apply_movement
from apps.orders.models import (
    DeliveryMethod,
    DeliveryProof,
    Order,
    OrderAssignmentLog,
    OrderStatus,
    Payment,
    PaymentStatus,
    Promotion,
)
from apps.orders.services import (
    _versioned_update,
    assign_order,
    cancel_order,
    create_order,
    mark_picked_up,
    record_delivery_proof,
    record_payment_result,
    refund_order,
    report_delivery_issue,
    resolve_delivery_issue,
    start_payment,
    transition_order,
)
from apps.orders.transitions import FORWARD_TRANSITIONS

User = get_user_model()


def create_product(sku, stock="10", price="25.00"):
    product = Product.objects.create(sku=sku, name=f"Product {sku}", price_aud=Decimal(price))
    apply_movement(product=product, movement_type=MovementType.ADDITION, quantity=stock, reason="Opening stock")
    return product


def create_zone():
    return DeliveryZone.objects.create(
        name="Inner Sydney",
        suburbs=["Newtown", "Marrickville", "Surry Hills"],
        delivery_fee=Decimal("12.95"),
        free_delivery_threshold=Decimal("200.00"),
        estimated_days=1,
    )


class OrderFixtureMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(username="staff", password="staff123", role="STAFF")
        self.driver = User.objects.create_user(username="driver", password="driver123", role="STAFF")
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        self.other = User.objects.create_user(username="other", password="other123", role="CUSTOMER")
        self.zone = create_zone()
        self.product = create_product("BEEF-001")

    def place(self, quantity="4", product=None, **kwargs):
        kwargs.setdefault("suburb", "Newtown")
        kwargs.setdefault("customer", self.customer)
        return create_order(items=[{"product": product or self.product, "quantity": quantity}], **kwargs)

    def walk(self, order, *targets):
        for target in targets:
            order = transition_order(order=order, target=target, actor=self.staff)
        return order

    def to_out_for_delivery(self, order):
        return self.walk(
            order,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.READY,
            OrderStatus.OUT_FOR_DELIVERY,
        )


class OrderCreationTests(OrderFixtureMixin, TestCase):
    def test_order_deducts_stock_and_cancel_restores_it(self):
        order = self.place("4")
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("6.000"))

        deduction = InventoryLog.objects.get(reference_id=order.order_number, movement_type=MovementType.DEDUCTION)
        self.assertEqual(deduction.reference_type, ReferenceType.ORDER)
        self.assertEqual(deduction.stock_before, Decimal("10.000"))
        self.assertEqual(deduction.stock_after, Decimal("6.000"))

        cancel_order(order=order, actor=self.customer, reason="Changed my mind")
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))

        restore = InventoryLog.objects.get(reference_id=order.order_number, movement_type=MovementType.ADDITION)
        self.assertEqual(restore.stock_before, Decimal("6.000"))
        self.assertEqual(restore.stock_after, Decimal("10.000"))

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)

    def test_totals_add_up_and_lines_snapshot_the_product(self):
        order = self.place("4")
        self.assertEqual(order.subtotal, Decimal("100.00"))
        self.assertEqual(order.delivery_fee, Decimal("12.95"))
        self.assertEqual(order.discount, Decimal("0.00"))
        self.assertEqual(order.total, Decimal("112.95"))
        self.assertEqual(order.total, order.subtotal + order.delivery_fee - order.discount)
        self.assertEqual(order.delivery_zone, self.zone)
        self.assertEqual(order.delivery_zone_name, "Inner Sydney")
        self.assertEqual(order.estimated_days, 1)
        self.assertTrue(order.order_number.startswith("ZM-"))

        item = order.items.get()
        self.assertEqual(item.product_sku, "BEEF-001")
        self.assertEqual(item.unit_price, Decimal("25.00"))
        self.assertEqual(item.total_price, Decimal("100.00"))

        self.assertEqual(list(order.status_history.values_list("status", flat=True)), [OrderStatus.PENDING])
        self.assertTrue(AuditLog.objects.for_entity("order", order.id).filter(action="order.create").exists())

    def test_sale_price_is_charged_when_lower(self):
        self.product.sale_price_aud = Decimal("20.00")
        self.product.save()
        order = self.place("2")
        self.assertEqual(order.items.get().unit_price, Decimal("20.00"))
        self.assertEqual(order.subtotal, Decimal("40.00"))

    def test_free_delivery_above_threshold(self):
        expensive = create_product("WAGYU-001", price="52.50")
        order = self.place("4", product=expensive, suburb="newtown")
        self.assertEqual(order.subtotal, Decimal("210.00"))
        self.assertEqual(order.delivery_fee, Decimal("0.00"))

        mid = create_product("LAMB-001", price="37.50")
        order = self.place("4", product=mid)
        self.assertEqual(order.subtotal, Decimal("150.00"))
        self.assertEqual(order.delivery_fee, Decimal("12.95"))

    def test_unserviced_suburb_creates_nothing(self):
        with self.assertRaises(ZoneNotServiced):
            self.place("2", suburb="Parramatta")
        self.assertFalse(Order.objects.exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))

    def test_pickup_orders_skip_zone_lookup(self):
        order = self.place("2", delivery_method=DeliveryMethod.PICKUP, suburb="")
        self.assertEqual(order.delivery_fee, Decimal("0.00"))
        self.assertIsNone(order.delivery_zone)
        self.assertEqual(order.total, Decimal("50.00"))

    def test_insufficient_stock_rolls_back_every_line(self):
        scarce = create_product("GOAT-001", stock="1")
        with self.assertRaises(InsufficientStock):
            create_order(
                customer=self.customer,
                suburb="Newtown",
                items=[
                    {"product": self.product, "quantity": "2"},
                    {"product": scarce, "quantity": "3"},
                ],
            )

        self.assertFalse(Order.objects.exists())
        self.product.refresh_from_db()
        scarce.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))
        self.assertEqual(scarce.stock, Decimal("1.000"))
        self.assertFalse(InventoryLog.objects.filter(movement_type=MovementType.DEDUCTION).exists())

    def test_duplicate_lines_are_merged(self):
        order = create_order(
            customer=self.customer,
            suburb="Newtown",
            items=[
                {"product": self.product, "quantity": "1.5"},
                {"product": str(self.product.id), "quantity": "2.5"},
            ],
        )
        item = order.items.get()
        self.assertEqual(item.quantity, Decimal("4.000"))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("6.000"))

    def test_rejects_bad_requests(self):
        with self.assertRaises(InvalidOrderRequest) as ctx:
            create_order(customer=self.customer, items=[], suburb="Newtown")
        self.assertEqual(ctx.exception.detail.code, "empty_order")

        with self.assertRaises(InvalidOrderRequest):
            self.place("0")

        self.product.is_active = False
        self.product.save()
        with self.assertRaises(InvalidOrderRequest):
            self.place("1")

    def test_foreign_currency_locks_rate(self):
        set_rate(base_currency="AUD", target_currency="USD", rate="0.65")
        order = self.place("4", currency="usd")
        self.assertEqual(order.currency, "USD")
        self.assertEqual(order.exchange_rate, Decimal("0.65"))
        self.assertEqual(order.subtotal, Decimal("65.00"))
        self.assertEqual(order.delivery_fee, Decimal("8.42"))
        self.assertEqual(order.total, Decimal("73.42"))

        set_rate(base_currency="AUD", target_currency="USD", rate="0.70")
        order.refresh_from_db()
        self.assertEqual(order.exchange_rate, Decimal("0.650000"))
        self.assertEqual(order.total, Decimal("73.42"))

    def test_exchange_rate_cannot_be_rewritten(self):
        order = Order.objects.get(pk=self.place("1").pk)
        order.exchange_rate = Decimal("2")
        with self.assertRaises(ValidationError):
            order.save()

    def test_unknown_currency_is_rejected(self):
        with self.assertRaises(UnsupportedCurrency):
            self.place("1", currency="EUR")
        self.assertFalse(Order.objects.exists())

    def test_total_must_balance(self):
        order = Order.objects.get(pk=self.place("1").pk)
        order.total = order.total + Decimal("1.00")
        with self.assertRaises(ValidationError):
            order.save()


class PromotionTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.promo = Promotion.objects.create(
            code="save10",
            name="Ten off",
            promotion_type="percentage",
            value=Decimal("10"),
            min_order=Decimal("50.00"),
            max_uses=1,
        )

    def test_code_is_stored_uppercase(self):
        self.assertEqual(self.promo.code, "SAVE10")

    def test_discount_applies_and_counts_usage(self):
        order = self.place("4", promo_code="save10")
        self.assertEqual(order.discount, Decimal("10.00"))
        self.assertEqual(order.total, Decimal("102.95"))
        self.assertEqual(order.promotion_code, "SAVE10")
        self.promo.refresh_from_db()
        self.assertEqual(self.promo.uses_count, 1)

        with self.assertRaises(InvalidOrderRequest) as ctx:
            self.place("4", promo_code="SAVE10")
        self.assertEqual(ctx.exception.detail.code, "invalid_promotion")

    def test_minimum_order_is_enforced(self):
        with self.assertRaises(InvalidOrderRequest) as ctx:
            self.place("1", promo_code="SAVE10")
        self.assertEqual(ctx.exception.detail.code, "invalid_promotion")
        self.promo.refresh_from_db()
        self.assertEqual(self.promo.uses_count, 0)

    def test_fixed_discount_never_exceeds_subtotal(self):
        fixed = Promotion(code="BIG", name="Big", promotion_type="fixed", value=Decimal("500"))
        self.assertEqual(fixed.calculate_discount(Decimal("40.00")), Decimal("40.00"))


class OrderLifecycleTests(OrderFixtureMixin, TestCase):
    def test_forward_walk_records_history(self):
        order = self.to_out_for_delivery(self.place("2"))
        statuses = list(order.status_history.values_list("status", flat=True))
        self.assertEqual(
            statuses,
            [
                OrderStatus.PENDING,
                OrderStatus.CONFIRMED,
                OrderStatus.PROCESSING,
                OrderStatus.READY,
                OrderStatus.OUT_FOR_DELIVERY,
            ],
        )
        table = FORWARD_TRANSITIONS[DeliveryMethod.DELIVERY]
        for current, following in zip(statuses, statuses[1:]):
            self.assertEqual(table[current], following)
        self.assertEqual(order.version, 4)

    def test_backward_transition_is_rejected(self):
        order = self.to_out_for_delivery(self.place("2"))
        with self.assertRaises(InvalidTransition):
            transition_order(order=order, target=OrderStatus.CONFIRMED, actor=self.staff)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.OUT_FOR_DELIVERY)

    def test_skipping_a_step_is_rejected(self):
        order = self.place("2")
        with self.assertRaises(InvalidTransition):
            transition_order(order=order, target=OrderStatus.READY, actor=self.staff)

    def test_customer_cannot_advance_orders(self):
        order = self.place("2")
        with self.assertRaises(UnauthorizedActor):
            transition_order(order=order, target=OrderStatus.CONFIRMED, actor=self.customer)

    def test_customer_cannot_cancel_once_ready(self):
        order = self.walk(self.place("2"), OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.READY)
        with self.assertRaises(UnauthorizedActor):
            cancel_order(order=order, actor=self.customer)

        order = cancel_order(order=order, actor=self.staff, reason="Customer called")
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))

    def test_customer_cannot_cancel_someone_elses_order(self):
        order = self.place("2")
        with self.assertRaises(UnauthorizedActor):
            cancel_order(order=order, actor=self.other)

    def test_terminal_orders_do_not_move(self):
        order = cancel_order(order=self.place("2"), actor=self.customer)
        with self.assertRaises(InvalidTransition):
            cancel_order(order=order, actor=self.staff)
        with self.assertRaises(InvalidTransition):
            transition_order(order=order, target=OrderStatus.CONFIRMED, actor=self.staff)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))

    def test_stale_write_raises_conflict(self):
        order = self.place("2")
        stale = Order.objects.get(pk=order.pk)
        transition_order(order=order, target=OrderStatus.CONFIRMED, actor=self.staff)

        with self.assertRaises(TransitionConflict):
            _versioned_update(stale, status=OrderStatus.CANCELLED)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)

    def test_pickup_goes_from_ready_to_delivered(self):
        order = self.place("2", delivery_method=DeliveryMethod.PICKUP, suburb="")
        order = self.walk(order, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.READY)
        with self.assertRaises(InvalidTransition):
            transition_order(order=order, target=OrderStatus.OUT_FOR_DELIVERY, actor=self.staff)

        order = mark_picked_up(order=order, actor=self.staff)
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(order.delivered_at)

    def test_delivery_orders_are_not_picked_up(self):
        order = self.walk(self.place("2"), OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.READY)
        with self.assertRaises(InvalidTransition):
            mark_picked_up(order=order, actor=self.staff)


class AssignmentTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self.walk(self.place("2"), OrderStatus.CONFIRMED)

    def test_assign_and_reassign_with_reason(self):
        order = assign_order(order=self.order, staff=self.staff, actor=self.admin)
        self.assertEqual(order.assigned_staff, self.staff)
        self.assertIsNotNone(order.assigned_at)

        with self.assertRaises(InvalidOrderRequest) as ctx:
            assign_order(order=order, staff=self.driver, actor=self.admin)
        self.assertEqual(ctx.exception.detail.code, "reason_required")

        order = assign_order(order=order, staff=self.driver, actor=self.admin, reason="Closer to route")
        self.assertEqual(order.assigned_staff, self.driver)

        logs = list(OrderAssignmentLog.objects.filter(order=order))
        self.assertEqual(len(logs), 2)
        self.assertIsNone(logs[0].previous_staff)
        self.assertEqual(logs[1].previous_staff, self.staff)
        self.assertEqual(logs[1].reason, "Closer to route")
        self.assertTrue(AuditLog.objects.filter(action="order.reassign", entity_id=str(order.id)).exists())

    def test_same_staff_is_a_no_op(self):
        order = assign_order(order=self.order, staff=self.staff, actor=self.admin)
        assign_order(order=order, staff=self.staff, actor=self.admin)
        self.assertEqual(OrderAssignmentLog.objects.filter(order=order).count(), 1)

    def test_only_admins_assign_to_staff(self):
        with self.assertRaises(UnauthorizedActor):
            assign_order(order=self.order, staff=self.driver, actor=self.staff)
        with self.assertRaises(InvalidOrderRequest) as ctx:
            assign_order(order=self.order, staff=self.customer, actor=self.admin)
        self.assertEqual(ctx.exception.detail.code, "invalid_assignee")

    def test_pending_orders_cannot_be_assigned(self):
        with self.assertRaises(InvalidTransition):
            assign_order(order=self.place("1"), staff=self.staff, actor=self.admin)

    def test_assignment_log_is_append_only(self):
        assign_order(order=self.order, staff=self.staff, actor=self.admin)
        log = OrderAssignmentLog.objects.get(order=self.order)
        log.reason = "edited"
        with self.assertRaises(ValidationError):
            log.save()
        with self.assertRaises(ValidationError):
            log.delete()


class DeliveryCompletionTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self.to_out_for_delivery(self.place("2"))

    def test_issue_report_and_resolution(self):
        order = report_delivery_issue(order=self.order, actor=self.driver, issue="Nobody home")
        self.assertTrue(order.has_open_issue)
        self.assertEqual(Order.objects.with_open_issue().count(), 1)

        with self.assertRaises(InvalidTransition):
            report_delivery_issue(order=order, actor=self.driver, issue="Still nobody")

        order = resolve_delivery_issue(order=order, actor=self.staff, resolution="Rescheduled for tomorrow")
        self.assertFalse(order.has_open_issue)
        self.assertEqual(order.delivery_issue_resolution, "Rescheduled for tomorrow")
        self.assertEqual(Order.objects.with_open_issue().count(), 0)

        with self.assertRaises(InvalidTransition):
            resolve_delivery_issue(order=order, actor=self.staff, resolution="Again")

    def test_customers_cannot_report_issues(self):
        with self.assertRaises(UnauthorizedActor):
            report_delivery_issue(order=self.order, actor=self.customer, issue="Late")

    def test_proof_completes_the_delivery_once(self):
        with self.assertRaises(InvalidOrderRequest):
            record_delivery_proof(order=self.order, actor=self.driver)

        proof = record_delivery_proof(
            order=self.order,
            actor=self.driver,
            recipient_name="J. Smith",
            signature_data="data:image/png;base64,AAAA",
        )
        self.assertEqual(proof.captured_by, self.driver)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(self.order.delivered_at)

        with self.assertRaises(InvalidTransition):
            record_delivery_proof(order=self.order, actor=self.driver, left_at_door=True)
        self.assertEqual(DeliveryProof.objects.filter(order=self.order).count(), 1)


class PaymentTests(OrderFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self.place("4")

    def test_successful_payment_confirms_order(self):
        payment = start_payment(order=self.order, gateway="stripe", actor=self.customer)
        self.assertEqual(payment.amount, self.order.total)
        self.assertEqual(payment.status, PaymentStatus.PENDING)

        payment = record_payment_result(payment=payment, succeeded=True, transaction_id="pi_123")
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.CONFIRMED)
        last = self.order.status_history.last()
        self.assertEqual(last.status, OrderStatus.CONFIRMED)
        self.assertIsNone(last.changed_by)

        with self.assertRaises(InvalidTransition):
            record_payment_result(payment=payment, succeeded=False)
        with self.assertRaises(InvalidOrderRequest) as ctx:
            start_payment(order=self.order, gateway="paypal", actor=self.customer)
        self.assertEqual(ctx.exception.detail.code, "already_paid")

    def test_failed_payment_leaves_order_pending(self):
        payment = start_payment(order=self.order, gateway="afterpay", actor=self.customer)
        payment = record_payment_result(payment=payment, succeeded=False, gateway_response={"error": "declined"})
        self.assertEqual(payment.status, PaymentStatus.FAILED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_only_staff_or_the_gateway_report_results(self):
        payment = start_payment(order=self.order, gateway="stripe", actor=self.customer)
        with self.assertRaises(UnauthorizedActor):
            record_payment_result(payment=payment, succeeded=True, actor=self.customer)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

        payment = record_payment_result(payment=payment, succeeded=True, actor=self.staff)
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.CONFIRMED)

    def test_success_after_cancel_is_refused(self):
        payment = start_payment(order=self.order, gateway="stripe", actor=self.customer)
        cancel_order(order=self.order, actor=self.customer, reason="Changed my mind")

        with self.assertRaises(InvalidTransition):
            record_payment_result(payment=payment, succeeded=True, transaction_id="pi_late")

        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertEqual(payment.transaction_id, "")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.CANCELLED)

        payment = record_payment_result(payment=payment, succeeded=False)
        self.assertEqual(payment.status, PaymentStatus.FAILED)

    def test_partial_refund_keeps_the_order(self):
        payment = start_payment(order=self.order, gateway="stripe", actor=self.customer)
        record_payment_result(payment=payment, succeeded=True)

        with self.assertRaises(UnauthorizedActor):
            refund_order(order=self.order, actor=self.staff, reason="Spoiled")

        order = refund_order(order=self.order, actor=self.admin, reason="One steak spoiled", amount="50.00")
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(payment.refund_amount, Decimal("50.00"))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("6.000"))

        with self.assertRaises(InvalidOrderRequest):
            refund_order(order=self.order, actor=self.admin, reason="Too much", amount="100.00")

    def test_full_refund_cancels_and_restocks(self):
        payment = start_payment(order=self.order, gateway="stripe", actor=self.customer)
        record_payment_result(payment=payment, succeeded=True)
        refund_order(order=self.order, actor=self.admin, reason="One steak spoiled", amount="50.00")

        order = refund_order(order=self.order, actor=self.admin, reason="Spoiled")
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)
        self.assertEqual(payment.refund_amount, payment.amount)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, Decimal("10.000"))

    def test_unpaid_orders_cannot_be_refunded(self):
        with self.assertRaises(InvalidOrderRequest) as ctx:
            refund_order(order=self.order, actor=self.admin, reason="Mistake")
        self.assertEqual(ctx.exception.detail.code, "not_paid")


class OrderApiTests(OrderFixtureMixin, APITestCase):
    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def checkout(self, **overrides):
        payload = {
            "items": [{"product": str(self.product.id), "quantity": "2"}],
            "delivery_method": "delivery",
            "suburb": "Newtown",
            "address": "1 King St",
            "postcode": "2042",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/orders/", payload, format="json")

    def test_checkout_returns_priced_order(self):
        self.auth_as("customer", "customer123")
        response = self.checkout()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["subtotal"], "50.00")
        self.assertEqual(response.data["delivery_fee"], "12.95")
        self.assertEqual(response.data["total"], "62.95")
        self.assertEqual(response.data["zone"]["name"], "Inner Sydney")
        self.assertEqual(len(response.data["items"]), 1)
        self.assertEqual(response.data["history"][0]["status"], "pending")

    def test_checkout_outside_zones(self):
        self.auth_as("customer", "customer123")
        response = self.checkout(suburb="Penrith")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["code"], "zone_not_serviced")
        self.assertFalse(Order.objects.exists())

    def test_checkout_requires_suburb_for_delivery(self):
        self.auth_as("customer", "customer123")
        response = self.checkout(suburb="")
        self.assertEqual(response.status_code, 400)
        self.assertIn("suburb", response.data["fields"])

    def test_checkout_with_too_little_stock(self):
        self.auth_as("customer", "customer123")
        response = self.checkout(items=[{"product": str(self.product.id), "quantity": "11"}])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_stock")

    def test_customers_only_see_their_orders(self):
        mine = self.place("1")
        theirs = self.place("1", customer=self.other)

        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["order_number"], mine.order_number)

        response = self.client.get(f"/api/v1/orders/{theirs.id}/")
        self.assertEqual(response.status_code, 404)

    def test_staff_see_allowed_transitions(self):
        order = self.place("1")
        self.auth_as("staff", "staff123")
        response = self.client.get(f"/api/v1/orders/{order.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["allowed_transitions"], ["confirmed", "cancelled"])

    def test_transition_endpoint(self):
        order = self.place("1")
        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, 403)

        self.auth_as("staff", "staff123")
        response = self.client.post(f"/api/v1/orders/{order.id}/transition/", {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "confirmed")

        response = self.client.post(f"/api/v1/orders/{order.id}/transition/", {"status": "pending"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_customer_cancel_after_ready_is_forbidden(self):
        order = self.walk(self.place("1"), OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.READY)
        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "unauthorized_actor")

    def test_assign_endpoint_is_admin_only(self):
        order = self.walk(self.place("1"), OrderStatus.CONFIRMED)
        self.auth_as("staff", "staff123")
        response = self.client.post(f"/api/v1/orders/{order.id}/assign/", {"staff": self.driver.id}, format="json")
        self.assertEqual(response.status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/orders/{order.id}/assign/", {"staff": self.driver.id}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["assigned_staff_username"], "driver")

        self.auth_as("driver", "driver123")
        response = self.client.get("/api/v1/orders/", {"assigned_to": "me"})
        self.assertEqual(response.data["count"], 1)

    def test_driver_completes_delivery_with_proof(self):
        order = self.to_out_for_delivery(self.place("1"))
        self.auth_as("driver", "driver123")
        response = self.client.get("/api/v1/orders/deliveries/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)

        response = self.client.post(
            f"/api/v1/orders/{order.id}/proof/",
            {"recipient_name": "Neighbour", "left_at_door": True},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "delivered")
        self.assertTrue(response.data["proof"]["left_at_door"])

    def test_pay_and_record_result(self):
        order = self.place("2")
        self.auth_as("customer", "customer123")
        response = self.client.post(f"/api/v1/orders/{order.id}/pay/", {"gateway": "stripe"}, format="json")
        self.assertEqual(response.status_code, 201)
        payment_id = response.data["id"]

        response = self.client.post(
            f"/api/v1/payments/{payment_id}/result/",
            {"succeeded": True, "transaction_id": "pi_self"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)

        self.auth_as("staff", "staff123")
        response = self.client.post(
            f"/api/v1/payments/{payment_id}/result/",
            {"succeeded": True, "transaction_id": "pi_42"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "completed")
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(Payment.objects.get(pk=payment_id).transaction_id, "pi_42")

        self.auth_as("customer", "customer123")
        response = self.client.get(f"/api/v1/payments/{payment_id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "completed")

    def test_malformed_filters_are_rejected(self):
        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/orders/", {"assigned_to": "abc"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("assigned_to", response.data["fields"])

        response = self.client.get("/api/v1/orders/", {"scheduled_date": "2026-02-30"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("scheduled_date", response.data["fields"])

    def test_validate_promo(self):
        Promotion.objects.create(code="WELCOME", name="Welcome", promotion_type="fixed", value=Decimal("15"))
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/checkout/validate-promo/",
            {"code": "welcome", "subtotal": "80.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["discount"], "15.00")

        response = self.client.post(
            "/api/v1/checkout/validate-promo/",
            {"code": "NOPE", "subtotal": "80.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_promotion")

    def test_promotions_are_admin_managed(self):
        self.auth_as("staff", "staff123")
        response = self.client.get("/api/v1/promotions/")
        self.assertEqual(response.status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/promotions/",
            {"code": "spring", "name": "Spring", "promotion_type": "percentage", "value": "5.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["code"], "SPRING")

        response = self.client.delete(f"/api/v1/promotions/{response.data['id']}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Promotion.objects.get(code="SPRING").is_active)
