import logging
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone

from apps.common.exceptions import UnsupportedCurrency
from apps.currency.models import CurrencyRate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.000001")


def normalize_currency(code):
    return (code or "").strip().upper()


def snapshot_rate(currency):
    """Return the rate that turns one base-currency unit into ``currency``.

    The value is what an order stores as its locked exchange rate; later
    rate updates never reach orders that already hold one.
    """
    currency = normalize_currency(currency)
    base = normalize_currency(settings.BASE_CURRENCY)
    if currency == base:
        return Decimal("1")

    row = (
        CurrencyRate.objects.filter(base_currency=base, target_currency=currency)
        .order_by("-fetched_at")
        .first()
    )
    if row is None:
        raise UnsupportedCurrency(f"No exchange rate from {base} to {currency or 'an empty currency code'}.")
    return row.rate


def convert(amount, rate):
    return (Decimal(amount) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)


def set_rate(*, base_currency, target_currency, rate):
    base_currency = normalize_currency(base_currency)
    target_currency = normalize_currency(target_currency)
    rate = Decimal(rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    if rate <= 0:
        raise ValueError("Exchange rate must be greater than 0.")

    row, _ = CurrencyRate.objects.update_or_create(
        base_currency=base_currency,
        target_currency=target_currency,
        defaults={"rate": rate, "fetched_at": timezone.now()},
    )
    logger.info("Exchange rate %s/%s set to %s", base_currency, target_currency, rate)
    return row
