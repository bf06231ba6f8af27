"""Celery tasks for the orders module."""

from __future__ import annotations

from celery import shared_task

from modules.orders.reservations import InventoryReserver
from modules.products.repositories.django_repository import ProductDjangoRepository


@shared_task(name="orders.release_expired_reservations")
def release_expired_reservations() -> int:
    """Return stock held by checkouts that never produced an order."""
    return InventoryReserver(ProductDjangoRepository()).release_expired()
