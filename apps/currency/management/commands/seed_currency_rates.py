from decimal import Decimal

from django.core.management.base import BaseCommand

from apps.currency.services import set_rate

DEFAULT_RATES = [
    ("AUD", "USD", Decimal("0.65")),
    ("USD", "AUD", Decimal("1.54")),
]


class Command(BaseCommand):
    help = "Seed the default AUD/USD exchange rates."

    def handle(self, *args, **options):
        for base, target, rate in DEFAULT_RATES:
            row = set_rate(base_currency=base, target_currency=target, rate=rate)
            self.stdout.write(self.style.SUCCESS(f"{row.base_currency}/{row.target_currency} = {row.rate}"))
