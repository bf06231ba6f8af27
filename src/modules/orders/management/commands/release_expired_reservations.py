from __future__ import annotations

from django.core.management.base import BaseCommand

from modules.orders.reservations import InventoryReserver
from modules.products.repositories.django_repository import ProductDjangoRepository


class Command(BaseCommand):
    help = "Release stock held by expired checkout reservations."

    def handle(self, *args, **options):
        released = InventoryReserver(ProductDjangoRepository()).release_expired()
        self.stdout.write(
            self.style.SUCCESS(f"Released {released} expired reservation(s).")
        )
