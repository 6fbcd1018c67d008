from dataclasses import dataclass
from decimal import Decimal

from apps.common.exceptions import ZoneNotServiced
from apps.delivery.models import DeliveryZone

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class DeliveryQuote:
    zone: DeliveryZone
    fee: Decimal
    is_free: bool
    estimated_days: int
    amount_to_free_delivery: Decimal | None = None


def find_zone_for_suburb(suburb):
    """Return the first active zone (by name) listing ``suburb``, or None."""
    for zone in DeliveryZone.objects.filter(is_active=True).order_by("name"):
        if zone.covers(suburb):
            return zone
    return None


def resolve_zone(suburb):
    zone = find_zone_for_suburb(suburb)
    if zone is None:
        raise ZoneNotServiced()
    return zone


def quote_for_zone(zone, subtotal):
    subtotal = Decimal(subtotal)
    threshold = zone.free_delivery_threshold
    if threshold is not None and subtotal >= threshold:
        return DeliveryQuote(zone=zone, fee=ZERO, is_free=True, estimated_days=zone.estimated_days)

    remaining = None
    if threshold is not None:
        remaining = (threshold - subtotal).quantize(Decimal("0.01"))
    return DeliveryQuote(
        zone=zone,
        fee=zone.delivery_fee,
        is_free=False,
        estimated_days=zone.estimated_days,
        amount_to_free_delivery=remaining,
    )


def quote_delivery(suburb, subtotal):
    return quote_for_zone(resolve_zone(suburb), subtotal)
