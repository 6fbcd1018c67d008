from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "catalog.view",
        "delivery.view",
        "delivery.manage",
        "currency.view",
        "currency.manage",
        "inventory.view",
        "inventory.manage",
        "waste.view",
        "waste.submit",
        "waste.decide",
        "orders.create",
        "orders.view",
        "orders.view.own",
        "orders.cancel",
        "orders.process",
        "orders.assign",
        "orders.deliver",
        "orders.refund",
        "payments.create",
        "payments.report",
        "payments.view",
        "promotions.manage",
    },
    UserRole.STAFF: {
        "catalog.view",
        "delivery.view",
        "currency.view",
        "inventory.view",
        "waste.view",
        "waste.submit",
        "orders.view",
        "orders.cancel",
        "orders.process",
        "orders.deliver",
        "payments.report",
        "payments.view",
    },
    UserRole.CUSTOMER: {
        "catalog.view",
        "delivery.view",
        "currency.view",
        "orders.create",
        "orders.view.own",
        "orders.cancel",
        "payments.create",
        "payments.view",
    },
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.STAFF, UserRole.CUSTOMER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.CUSTOMER)


def has_capability(user, capability):
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", request.method.lower())
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
