import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.accounts.models import STAFF_ROLES, UserRole
from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.common.exceptions import InvalidOrderRequest, InvalidTransition, TransitionConflict, UnauthorizedActor
from apps.common.permissions import resolve_role
from apps.currency.services import convert, normalize_currency, snapshot_rate
from apps.delivery.services import quote_delivery
from apps.inventory.models import MovementType, ReferenceType
from apps.inventory.services import apply_movement, lock_products, to_quantity
from apps.orders.models import (
    CENT,
    DeliveryMethod,
    DeliveryProof,
    Order,
    OrderAssignmentLog,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    Payment,
    PaymentStatus,
    Promotion,
    generate_order_number,
)
from apps.orders.transitions import ASSIGNABLE_STATUSES, TERMINAL_STATUSES, check_transition

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
ORDER_NUMBER_ATTEMPTS = 5


def _role(actor):
    if actor is None:
        return None
    return resolve_role(actor)


def _user_or_none(actor):
    if actor is not None and getattr(actor, "is_authenticated", False):
        return actor
    return None


def _ensure_owner_or_staff(order, actor):
    role = _role(actor)
    if role == UserRole.CUSTOMER and order.customer_id != actor.pk:
        raise UnauthorizedActor("You can only act on your own orders.")
    return role


def _ensure_staff(actor):
    role = _role(actor)
    if role not in STAFF_ROLES:
        raise UnauthorizedActor()
    return role


def _lock_order(order):
    return Order.objects.select_for_update().get(pk=order.pk)


def _versioned_update(order, **fields):
    """Write ``fields`` only if nobody bumped the order's version since it was read."""
    fields["version"] = F("version") + 1
    fields["updated_at"] = timezone.now()
    updated = Order.objects.filter(pk=order.pk, version=order.version).update(**fields)
    if not updated:
        raise TransitionConflict()
    order.refresh_from_db()


def _apply_transition(order, target, *, actor, notes=""):
    previous = order.status
    now = timezone.now()
    fields = {"status": target}
    if target == OrderStatus.DELIVERED:
        fields["delivered_at"] = now
    if target == OrderStatus.CANCELLED:
        fields["cancelled_at"] = now

    _versioned_update(order, **fields)
    OrderStatusHistory.objects.create(order=order, status=target, notes=notes or "", changed_by=_user_or_none(actor))
    record_audit(
        actor=actor,
        action="order.transition",
        entity_type="order",
        entity_id=order.id,
        payload={"from": previous, "to": target, "notes": notes or ""},
    )
    logger.info("Order %s moved %s -> %s", order.order_number, previous, target)


def _restore_stock(order, *, actor, reason):
    items = list(order.items.all())
    lock_products([item.product_id for item in items])
    for item in sorted(items, key=lambda line: str(line.product_id)):
        apply_movement(
            product=item.product,
            movement_type=MovementType.ADDITION,
            quantity=item.quantity,
            reason=reason,
            actor=actor,
            reference_type=ReferenceType.ORDER,
            reference_id=order.order_number,
        )


def _merge_lines(items):
    merged = {}
    for item in items:
        product = item.get("product")
        try:
            product_id = Product._meta.pk.to_python(getattr(product, "pk", product))
        except ValidationError as exc:
            raise InvalidOrderRequest(f"Invalid product: {product}.") from exc
        if product_id is None:
            raise InvalidOrderRequest("Every item needs a product.")
        try:
            quantity = to_quantity(item.get("quantity"))
        except ValueError as exc:
            raise InvalidOrderRequest(str(exc)) from exc
        if quantity <= 0:
            raise InvalidOrderRequest("Item quantities must be greater than 0.")
        merged[product_id] = merged.get(product_id, Decimal("0")) + quantity
    return merged


def _unique_order_number():
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if not Order.objects.filter(order_number=number).exists():
            return number
    raise IntegrityError("Could not allocate a unique order number.")


def find_promotion(code, subtotal, *, lock=False):
    """Return (promotion, discount) for a usable code on an AUD subtotal, or raise InvalidOrderRequest."""
    code = (code or "").strip().upper()
    queryset = Promotion.objects.select_for_update() if lock else Promotion.objects.all()
    promotion = queryset.filter(code=code).first()
    if promotion is None or not promotion.is_usable():
        raise InvalidOrderRequest("Invalid or expired promo code.", code="invalid_promotion")
    if Decimal(subtotal) < promotion.min_order:
        raise InvalidOrderRequest(
            f"Minimum order of ${promotion.min_order} required for this code.",
            code="invalid_promotion",
        )
    return promotion, promotion.calculate_discount(subtotal)


def create_order(
    *,
    customer,
    items,
    delivery_method=DeliveryMethod.DELIVERY,
    suburb="",
    postcode="",
    address="",
    currency=None,
    promo_code="",
    scheduled_date=None,
    scheduled_time_slot="",
    notes="",
    delivery_instructions="",
):
    """Place an order: price lines, quote delivery, lock the exchange rate and deduct stock.

    Everything happens in one transaction; any failure leaves no order, no
    stock movement and no promotion usage behind.
    """
    if not items:
        raise InvalidOrderRequest("Your order has no items.", code="empty_order")
    if delivery_method not in DeliveryMethod.values:
        raise InvalidOrderRequest(f"Unknown delivery method: {delivery_method}.")
    if delivery_method == DeliveryMethod.DELIVERY and not (suburb or "").strip():
        raise InvalidOrderRequest("A delivery suburb is required.")

    quantities = _merge_lines(items)
    currency = normalize_currency(currency or settings.BASE_CURRENCY)

    with transaction.atomic():
        products = lock_products(quantities.keys())
        missing = [str(product_id) for product_id in quantities if product_id not in products]
        if missing:
            raise InvalidOrderRequest(f"Unknown products: {', '.join(missing)}.")
        inactive = [product.name for product in products.values() if not product.is_active]
        if inactive:
            raise InvalidOrderRequest(f"No longer available: {', '.join(inactive)}.")

        lines = []
        subtotal_aud = ZERO
        for product in products.values():
            quantity = quantities[product.pk]
            unit_price_aud = product.current_price
            line_total_aud = (unit_price_aud * quantity).quantize(CENT)
            subtotal_aud += line_total_aud
            lines.append((product, quantity, unit_price_aud, line_total_aud))

        quote = None
        fee_aud = ZERO
        if delivery_method == DeliveryMethod.DELIVERY:
            quote = quote_delivery(suburb, subtotal_aud)
            fee_aud = quote.fee

        rate = snapshot_rate(currency)

        promotion = None
        discount_aud = ZERO
        if promo_code:
            promotion, discount_aud = find_promotion(promo_code, subtotal_aud, lock=True)

        order_items = []
        subtotal = ZERO
        for product, quantity, unit_price_aud, line_total_aud in lines:
            line_total = convert(line_total_aud, rate)
            subtotal += line_total
            order_items.append(
                OrderItem(
                    product=product,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=quantity,
                    unit_price=convert(unit_price_aud, rate),
                    total_price=line_total,
                )
            )
        delivery_fee = convert(fee_aud, rate)
        discount = min(convert(discount_aud, rate), subtotal)

        order_number = _unique_order_number()
        for product, quantity, _, _ in lines:
            apply_movement(
                product=product,
                movement_type=MovementType.DEDUCTION,
                quantity=quantity,
                reason=f"Order {order_number}",
                actor=customer,
                reference_type=ReferenceType.ORDER,
                reference_id=order_number,
            )

        order = Order.objects.create(
            order_number=order_number,
            customer=customer,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount=discount,
            total=subtotal + delivery_fee - discount,
            currency=currency,
            exchange_rate=rate,
            delivery_method=delivery_method,
            delivery_address=address or "",
            delivery_suburb=(suburb or "").strip(),
            delivery_postcode=(postcode or "").strip(),
            delivery_zone=quote.zone if quote else None,
            delivery_zone_name=quote.zone.name if quote else "",
            estimated_days=quote.estimated_days if quote else None,
            scheduled_date=scheduled_date,
            scheduled_time_slot=scheduled_time_slot or "",
            promotion_code=promotion.code if promotion else "",
            notes=notes or "",
            delivery_instructions=delivery_instructions or "",
        )
        for item in order_items:
            item.order = order
        OrderItem.objects.bulk_create(order_items)

        if promotion is not None:
            Promotion.objects.filter(pk=promotion.pk).update(uses_count=F("uses_count") + 1)

        OrderStatusHistory.objects.create(
            order=order,
            status=OrderStatus.PENDING,
            notes="Order placed",
            changed_by=_user_or_none(customer),
        )
        record_audit(
            actor=customer,
            action="order.create",
            entity_type="order",
            entity_id=order.id,
            payload={
                "order_number": order.order_number,
                "total": str(order.total),
                "currency": order.currency,
                "exchange_rate": str(order.exchange_rate),
            },
        )

    logger.info(
        "Order %s placed by %s: %s %s (%s items)",
        order.order_number,
        customer,
        order.total,
        order.currency,
        len(order_items),
    )
    return order


def cancel_order(*, order, actor, reason=""):
    with transaction.atomic():
        locked = _lock_order(order)
        role = _ensure_owner_or_staff(locked, actor)
        check_transition(locked, OrderStatus.CANCELLED, role)
        _restore_stock(locked, actor=actor, reason=f"Order {locked.order_number} cancelled")
        _apply_transition(locked, OrderStatus.CANCELLED, actor=actor, notes=reason or "Order cancelled")
    logger.info("Order %s cancelled by %s", locked.order_number, actor)
    return locked


def transition_order(*, order, target, actor, notes=""):
    if target == OrderStatus.CANCELLED:
        return cancel_order(order=order, actor=actor, reason=notes)

    with transaction.atomic():
        locked = _lock_order(order)
        check_transition(locked, target, _role(actor))
        _apply_transition(locked, target, actor=actor, notes=notes)
    return locked


def assign_order(*, order, staff, actor, reason=""):
    if _role(actor) != UserRole.ADMIN:
        raise UnauthorizedActor("Only admins can assign orders.")
    if staff is None or not staff.is_active or resolve_role(staff) not in STAFF_ROLES:
        raise InvalidOrderRequest("Orders can only be assigned to staff members.", code="invalid_assignee")

    with transaction.atomic():
        locked = _lock_order(order)
        if locked.status not in ASSIGNABLE_STATUSES:
            raise InvalidTransition(f"Order {locked.order_number} cannot be assigned while {locked.status}.")

        previous = locked.assigned_staff
        if previous is not None and previous.pk == staff.pk:
            return locked
        if previous is not None and not (reason or "").strip():
            raise InvalidOrderRequest("A reason is required when reassigning an order.", code="reason_required")

        _versioned_update(locked, assigned_staff=staff, assigned_at=timezone.now())
        OrderAssignmentLog.objects.create(
            order=locked,
            previous_staff=previous,
            new_staff=staff,
            reason=reason or "",
            assigned_by=actor,
        )
        record_audit(
            actor=actor,
            action="order.reassign" if previous else "order.assign",
            entity_type="order",
            entity_id=locked.id,
            payload={
                "previous_staff": previous.username if previous else None,
                "new_staff": staff.username,
                "reason": reason or "",
            },
        )
    logger.info("Order %s assigned to %s", locked.order_number, staff)
    return locked


def report_delivery_issue(*, order, actor, issue):
    _ensure_staff(actor)
    issue = (issue or "").strip()
    if not issue:
        raise InvalidOrderRequest("Describe the delivery issue.")

    with transaction.atomic():
        locked = _lock_order(order)
        if locked.status != OrderStatus.OUT_FOR_DELIVERY:
            raise InvalidTransition("Issues can only be reported for orders out for delivery.")
        if locked.has_open_issue:
            raise InvalidTransition("This order already has an open delivery issue.")

        _versioned_update(
            locked,
            delivery_issue=issue,
            delivery_issue_reported_at=timezone.now(),
            delivery_issue_resolved_at=None,
            delivery_issue_resolution="",
        )
        record_audit(
            actor=actor,
            action="order.issue.report",
            entity_type="order",
            entity_id=locked.id,
            payload={"issue": issue},
        )
    logger.warning("Delivery issue on %s: %s", locked.order_number, issue)
    return locked


def resolve_delivery_issue(*, order, actor, resolution):
    _ensure_staff(actor)
    with transaction.atomic():
        locked = _lock_order(order)
        if not locked.has_open_issue:
            raise InvalidTransition("This order has no open delivery issue.")

        _versioned_update(
            locked,
            delivery_issue_resolved_at=timezone.now(),
            delivery_issue_resolution=(resolution or "").strip(),
        )
        record_audit(
            actor=actor,
            action="order.issue.resolve",
            entity_type="order",
            entity_id=locked.id,
            payload={"resolution": locked.delivery_issue_resolution},
        )
    return locked


def record_delivery_proof(
    *,
    order,
    actor,
    recipient_name="",
    signature_data="",
    photo=None,
    notes="",
    left_at_door=False,
):
    role = _ensure_staff(actor)
    if not (signature_data or photo or left_at_door):
        raise InvalidOrderRequest("Provide a signature, a photo or mark the order as left at the door.")

    with transaction.atomic():
        locked = _lock_order(order)
        if locked.delivery_method != DeliveryMethod.DELIVERY:
            raise InvalidTransition("Pickup orders are completed with a handover, not a delivery proof.")
        if DeliveryProof.objects.filter(order=locked).exists():
            raise InvalidTransition("Proof of delivery was already recorded for this order.")
        check_transition(locked, OrderStatus.DELIVERED, role)

        proof = DeliveryProof.objects.create(
            order=locked,
            recipient_name=recipient_name or "",
            signature_data=signature_data or "",
            photo=photo or "",
            notes=notes or "",
            left_at_door=bool(left_at_door),
            captured_by=actor,
        )
        _apply_transition(locked, OrderStatus.DELIVERED, actor=actor, notes="Delivered with proof of delivery")
    return proof


def mark_picked_up(*, order, actor, notes=""):
    role = _ensure_staff(actor)
    with transaction.atomic():
        locked = _lock_order(order)
        if locked.delivery_method != DeliveryMethod.PICKUP:
            raise InvalidTransition("Only pickup orders can be handed over in store.")
        check_transition(locked, OrderStatus.DELIVERED, role)
        _apply_transition(locked, OrderStatus.DELIVERED, actor=actor, notes=notes or "Picked up by customer")
    return locked


def start_payment(*, order, gateway, actor):
    _ensure_owner_or_staff(order, actor)
    with transaction.atomic():
        locked = _lock_order(order)
        if locked.status in TERMINAL_STATUSES:
            raise InvalidTransition(f"Order {locked.order_number} is {locked.status}.")
        if locked.payments.filter(status=PaymentStatus.COMPLETED).exists():
            raise InvalidOrderRequest("This order has already been paid.", code="already_paid")

        payment = Payment.objects.create(
            order=locked,
            gateway=gateway,
            amount=locked.total,
            currency=locked.currency,
        )
        record_audit(
            actor=actor,
            action="payment.start",
            entity_type="payment",
            entity_id=payment.id,
            payload={"order_number": locked.order_number, "gateway": gateway, "amount": str(payment.amount)},
        )
    return payment


def record_payment_result(*, payment, succeeded, actor=None, transaction_id="", gateway_response=None):
    """Store a gateway outcome. A successful payment confirms a pending order as a system transition.

    Only the gateway integration (``actor=None``) or staff may report results. A success
    that arrives after the order was cancelled is refused so the charge can be voided
    at the gateway instead of being booked against a cancelled order.
    """
    if actor is not None:
        _ensure_staff(actor)

    with transaction.atomic():
        locked_order = _lock_order(payment.order)
        locked = Payment.objects.select_for_update().get(pk=payment.pk)
        if locked.status != PaymentStatus.PENDING:
            raise InvalidTransition("A result was already recorded for this payment.")

        locked.transaction_id = transaction_id or ""
        locked.gateway_response = gateway_response or {}
        if succeeded:
            if locked_order.status == OrderStatus.CANCELLED:
                logger.warning(
                    "Payment %s succeeded for cancelled order %s (transaction %s); void it at the gateway",
                    locked.id,
                    locked_order.order_number,
                    transaction_id or "-",
                )
                raise InvalidTransition(f"Order {locked_order.order_number} is cancelled; the payment cannot be accepted.")
            locked.status = PaymentStatus.COMPLETED
        else:
            locked.status = PaymentStatus.FAILED
        locked.save(update_fields=["status", "transaction_id", "gateway_response", "updated_at"])

        record_audit(
            actor=actor,
            action="payment.result",
            entity_type="payment",
            entity_id=locked.id,
            payload={"status": locked.status, "transaction_id": locked.transaction_id},
        )
        if succeeded and locked_order.status == OrderStatus.PENDING:
            check_transition(locked_order, OrderStatus.CONFIRMED, None)
            _apply_transition(locked_order, OrderStatus.CONFIRMED, actor=None, notes="Payment received")

    logger.info("Payment %s for %s: %s", locked.id, locked_order.order_number, locked.status)
    return locked


def refund_order(*, order, actor, reason, amount=None):
    """Refund all or part of an order's completed payment.

    Partial refunds accumulate on the payment, which stays ``completed`` and
    leaves the order where it is. The refund that brings the total up to the
    amount paid marks the payment ``refunded``; if the order is not yet
    delivered it is then cancelled and its stock restored. Delivered orders
    keep their status.
    """
    if _role(actor) != UserRole.ADMIN:
        raise UnauthorizedActor("Only admins can refund orders.")
    reason = (reason or "").strip()
    if not reason:
        raise InvalidOrderRequest("A refund reason is required.")

    with transaction.atomic():
        locked = _lock_order(order)
        payment = locked.payments.select_for_update().filter(status=PaymentStatus.COMPLETED).first()
        if payment is None:
            raise InvalidOrderRequest("This order has no completed payment to refund.", code="not_paid")

        already_refunded = payment.refund_amount or ZERO
        remaining = payment.amount - already_refunded
        amount = remaining if amount is None else Decimal(amount).quantize(CENT)
        if amount <= 0 or amount > remaining:
            raise InvalidOrderRequest(f"Refund amount must be between 0.01 and {remaining}.")

        fully_refunded = already_refunded + amount == payment.amount
        if fully_refunded:
            payment.status = PaymentStatus.REFUNDED
        payment.refund_amount = already_refunded + amount
        payment.refund_reason = reason
        payment.refunded_at = timezone.now()
        payment.save(update_fields=["status", "refund_amount", "refund_reason", "refunded_at", "updated_at"])

        if fully_refunded and locked.status not in TERMINAL_STATUSES:
            _restore_stock(locked, actor=actor, reason=f"Order {locked.order_number} refunded")
            _apply_transition(locked, OrderStatus.CANCELLED, actor=actor, notes=f"Refunded: {reason}")

        record_audit(
            actor=actor,
            action="order.refund",
            entity_type="order",
            entity_id=locked.id,
            payload={
                "amount": str(amount),
                "currency": payment.currency,
                "reason": reason,
                "full": fully_refunded,
            },
        )
    logger.info("Order %s refunded %s %s", locked.order_number, amount, payment.currency)
    return locked
