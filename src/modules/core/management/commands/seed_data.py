from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.dtos import CartLineDTO, CreateOrderDTO, DeliveryAddressDTO
from modules.orders.exceptions import CartValidationFailed
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus, ProductUnit
from modules.products.repositories.django_repository import ProductDjangoRepository

VENDORS = [
    ("green_acres", "Green Acres Farm"),
    ("river_valley", "River Valley Organics"),
    ("hill_orchard", "Hill Orchard Co-op"),
]

BUYERS = [
    ("asha", "Asha Menon", "Kochi", "Kerala", "682001"),
    ("rahul", "Rahul Verma", "Pune", "Maharashtra", "411001"),
    ("meera", "Meera Iyer", "Chennai", "Tamil Nadu", "600001"),
]

CATALOG = [
    ("green_acres", "GA-TOM", "Tomatoes", ProductUnit.KG, Decimal("40.00")),
    ("green_acres", "GA-SPN", "Spinach", ProductUnit.BUNCH, Decimal("25.00")),
    ("green_acres", "GA-ONI", "Red Onions", ProductUnit.KG, Decimal("35.00")),
    ("green_acres", "GA-EGG", "Free-range Eggs", ProductUnit.DOZEN, Decimal("96.00")),
    ("river_valley", "RV-CAR", "Carrots", ProductUnit.KG, Decimal("55.00")),
    ("river_valley", "RV-BRC", "Broccoli", ProductUnit.PIECE, Decimal("80.00")),
    ("river_valley", "RV-MLK", "A2 Milk", ProductUnit.LITRE, Decimal("72.00")),
    ("hill_orchard", "HO-APL", "Shimla Apples", ProductUnit.KG, Decimal("180.00")),
    ("hill_orchard", "HO-PLM", "Plums", ProductUnit.KG, Decimal("220.00")),
    ("hill_orchard", "HO-HNY", "Wild Honey", ProductUnit.G, Decimal("0.90")),
]


class Command(BaseCommand):
    help = "Seed database with demo vendors, buyers, produce and orders."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders", type=int, default=10, help="Number of orders to place."
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_admin()
        vendors = self._seed_vendors()
        buyers = self._seed_buyers()
        products = self._seed_products(vendors)
        orders_created = self._seed_orders(buyers, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created + len(vendors) + len(buyers)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_admin(self) -> int:
        User = get_user_model()
        if User.objects.filter(username="admin").exists():
            return 0
        User.objects.create_superuser("admin", password="admin123")
        return 1

    def _seed_vendors(self) -> dict:
        self.stdout.write("Creating vendors...")
        User = get_user_model()
        vendors = {}
        for username, farm_name in VENDORS:
            user, created = User.objects.get_or_create(
                username=username, defaults={"first_name": farm_name}
            )
            if created:
                user.set_password("vendor123")
                user.save()
            vendors[username] = (user, farm_name)
        self.stdout.write(self.style.SUCCESS("Creating vendors... Done!"))
        return vendors

    def _seed_buyers(self) -> list[tuple]:
        self.stdout.write("Creating buyers...")
        User = get_user_model()
        buyers = []
        for username, full_name, city, state, pincode in BUYERS:
            user, created = User.objects.get_or_create(
                username=username, defaults={"first_name": full_name}
            )
            if created:
                user.set_password("buyer123")
                user.save()
            address = DeliveryAddressDTO(
                full_name=full_name,
                phone="9876543210",
                address="12 Market Road",
                city=city,
                state=state,
                pincode=pincode,
            )
            buyers.append((user, address))
        self.stdout.write(self.style.SUCCESS("Creating buyers... Done!"))
        return buyers

    def _seed_products(self, vendors: dict) -> list[Product]:
        self.stdout.write("Creating produce...")
        products: list[Product] = []
        for vendor_key, sku, name, unit, price in CATALOG:
            vendor, farm_name = vendors[vendor_key]
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "vendor": vendor,
                    "vendor_name": farm_name,
                    "name": name,
                    "unit": unit,
                    "price": price,
                    "quantity": random.randint(20, 200),
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating produce... Done!"))
        return products

    def _seed_orders(self, buyers: list[tuple], products: list[Product], count: int) -> int:
        self.stdout.write("Placing orders...")
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )
        placed = 0
        for _ in range(count):
            buyer, address = random.choice(buyers)
            basket = random.sample(products, k=random.randint(1, 4))
            dto = CreateOrderDTO(
                buyer_id=buyer.id,
                items=[
                    CartLineDTO(product_id=product.id, quantity=random.randint(1, 3))
                    for product in basket
                ],
                delivery_address=address,
                payment_method=random.choice(["cod", "online"]),
            )
            try:
                service.create_order(dto)
            except CartValidationFailed as exc:
                self.stdout.write(self.style.WARNING(f"Skipped order: {exc}"))
                continue
            placed += 1

        self.stdout.write(self.style.SUCCESS("Placing orders... Done!"))
        return placed
