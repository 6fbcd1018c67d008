from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.delivery.models import DeliveryZone

ZONES = [
    {
        "name": "Sydney CBD",
        "suburbs": [
            "Sydney", "The Rocks", "Haymarket", "Pyrmont", "Ultimo",
            "Surry Hills", "Darlinghurst", "Potts Point", "Woolloomooloo", "Millers Point",
        ],
        "delivery_fee": Decimal("9.95"),
        "free_delivery_threshold": Decimal("150.00"),
        "estimated_days": 1,
    },
    {
        "name": "Inner Sydney",
        "suburbs": [
            "Newtown", "Marrickville", "Erskineville", "Alexandria", "Waterloo",
            "Redfern", "Paddington", "Bondi", "Bondi Junction", "Coogee",
            "Randwick", "Kensington", "Mascot", "Rosebery", "Zetland",
            "Glebe", "Camperdown", "Leichhardt", "Balmain", "Rozelle",
        ],
        "delivery_fee": Decimal("12.95"),
        "free_delivery_threshold": Decimal("200.00"),
        "estimated_days": 1,
    },
    {
        "name": "Northern Sydney",
        "suburbs": [
            "Chatswood", "North Sydney", "Lane Cove", "Artarmon", "Crows Nest",
            "Neutral Bay", "Mosman", "Manly", "Dee Why", "Brookvale",
            "Ryde", "Macquarie Park", "Epping", "Eastwood", "Hornsby",
            "Gordon", "Pymble", "Wahroonga",
        ],
        "delivery_fee": Decimal("14.95"),
        "free_delivery_threshold": Decimal("200.00"),
        "estimated_days": 2,
    },
    {
        "name": "Western Sydney",
        "suburbs": [
            "Parramatta", "Blacktown", "Penrith", "Liverpool", "Campbelltown",
            "Bankstown", "Auburn", "Strathfield", "Burwood", "Ashfield",
            "Homebush", "Olympic Park", "Granville", "Merrylands", "Fairfield", "Cabramatta",
        ],
        "delivery_fee": Decimal("16.95"),
        "free_delivery_threshold": Decimal("250.00"),
        "estimated_days": 2,
    },
    {
        "name": "Southern Sydney",
        "suburbs": [
            "Hurstville", "Kogarah", "Rockdale", "Brighton-Le-Sands", "Sans Souci",
            "Cronulla", "Miranda", "Sutherland", "Engadine", "Caringbah", "Gymea", "Kirrawee",
        ],
        "delivery_fee": Decimal("16.95"),
        "free_delivery_threshold": Decimal("250.00"),
        "estimated_days": 2,
    },
]


class Command(BaseCommand):
    help = "Seed the Sydney delivery zones."

    @transaction.atomic
    def handle(self, *args, **options):
        created_count = 0
        for data in ZONES:
            defaults = {key: value for key, value in data.items() if key != "name"}
            defaults["is_active"] = True
            _, created = DeliveryZone.objects.update_or_create(name=data["name"], defaults=defaults)
            if created:
                created_count += 1

        self.stdout.write(self.style.SUCCESS(f"Delivery zones seeded. created={created_count} total={len(ZONES)}"))
