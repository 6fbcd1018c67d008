from django.core.management.base import BaseCommand, CommandError

from apps.inventory.services import ledger_mismatches


class Command(BaseCommand):
    help = "Verify that every product's cached stock equals its latest inventory log entry."

    def handle(self, *args, **options):
        mismatches = list(ledger_mismatches())
        for product, cached, logged in mismatches:
            self.stderr.write(f"{product.sku}: cached={cached} logged={logged}")

        if mismatches:
            raise CommandError(f"Inventory ledger mismatch for {len(mismatches)} product(s).")
        self.stdout.write(self.style.SUCCESS("Inventory ledger is consistent."))
