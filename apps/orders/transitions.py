"""Order lifecycle rules.

Statuses only move forward along the adjacency table for the order's delivery
method, or sideways into ``cancelled``. ``delivered`` and ``cancelled`` are
terminal. A ``role`` of None means the system itself (payment callbacks).
"""

from apps.accounts.models import STAFF_ROLES, UserRole
from apps.common.exceptions import InvalidTransition, UnauthorizedActor
from apps.orders.models import DeliveryMethod, OrderStatus

_SHARED_STEPS = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.READY,
}

FORWARD_TRANSITIONS = {
    DeliveryMethod.DELIVERY: {
        **_SHARED_STEPS,
        OrderStatus.READY: OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
    },
    DeliveryMethod.PICKUP: {
        **_SHARED_STEPS,
        OrderStatus.READY: OrderStatus.DELIVERED,
    },
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
CUSTOMER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})
ASSIGNABLE_STATUSES = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY}
)


def next_status(order):
    return FORWARD_TRANSITIONS[order.delivery_method].get(order.status)


def allowed_targets(order, role):
    if order.status in TERMINAL_STATUSES:
        return []
    targets = []
    forward = next_status(order)
    if forward is not None and (role is None or role in STAFF_ROLES):
        targets.append(forward)
    if role is None or role in STAFF_ROLES or order.status in CUSTOMER_CANCELLABLE_STATUSES:
        targets.append(OrderStatus.CANCELLED)
    return targets


def check_transition(order, target, role):
    if order.status in TERMINAL_STATUSES:
        raise InvalidTransition(f"Order {order.order_number} is already {order.status}.")

    if target == OrderStatus.CANCELLED:
        if role is None or role in STAFF_ROLES:
            return
        if role == UserRole.CUSTOMER and order.status in CUSTOMER_CANCELLABLE_STATUSES:
            return
        raise UnauthorizedActor("This order can no longer be cancelled by the customer.")

    if next_status(order) != target:
        raise InvalidTransition(f"Cannot move order {order.order_number} from {order.status} to {target}.")

    if role is not None and role not in STAFF_ROLES:
        raise UnauthorizedActor()
