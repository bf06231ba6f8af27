"""Unit tests for the conditional stock primitives of the product repository."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.products.models import ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return ProductDjangoRepository()


class TestReserveStock:
    def test_reserves_within_available(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)

        assert repo.reserve_stock(product.id, 3) is True

        product.refresh_from_db()
        assert product.reserved_quantity == 3
        assert product.quantity == 5
        assert product.available_quantity == 2

    def test_exact_remaining_quantity_succeeds(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)
        repo.reserve_stock(product.id, 3)

        assert repo.reserve_stock(product.id, 2) is True

        product.refresh_from_db()
        assert product.available_quantity == 0

    def test_refuses_beyond_available(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)
        repo.reserve_stock(product.id, 4)

        assert repo.reserve_stock(product.id, 2) is False

        product.refresh_from_db()
        assert product.reserved_quantity == 4

    def test_refuses_inactive_product(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, status=ProductStatus.INACTIVE)
        assert repo.reserve_stock(product.id, 1) is False

    def test_refuses_soft_deleted_product(self, repo, make_product, vendor_a):
        product = make_product(vendor_a)
        repo.delete(str(product.id))
        assert repo.reserve_stock(product.id, 1) is False

    def test_unknown_product(self, repo):
        assert repo.reserve_stock(uuid4(), 1) is False


class TestReleaseAndCommit:
    def test_release_returns_reserved_units(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)
        repo.reserve_stock(product.id, 3)

        assert repo.release_stock(product.id, 3) is True

        product.refresh_from_db()
        assert product.reserved_quantity == 0
        assert product.quantity == 5

    def test_release_never_goes_below_zero(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)
        repo.reserve_stock(product.id, 1)

        assert repo.release_stock(product.id, 2) is False

        product.refresh_from_db()
        assert product.reserved_quantity == 1

    def test_commit_consumes_stock(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=5)
        repo.reserve_stock(product.id, 2)

        assert repo.commit_stock(product.id, 2) is True

        product.refresh_from_db()
        assert product.quantity == 3
        assert product.reserved_quantity == 0


class TestSnapshots:
    def test_snapshot_reflects_reservations(self, repo, make_product, vendor_a):
        product = make_product(vendor_a, quantity=10, price="12.50")
        repo.reserve_stock(product.id, 4)

        snapshot = repo.get_snapshot(product.id)

        assert snapshot.available_quantity == 6
        assert str(snapshot.unit_price) == "12.50"
        assert snapshot.vendor_id == vendor_a.id
        assert snapshot.active is True

    def test_snapshot_of_soft_deleted_product_is_inactive(self, repo, make_product, vendor_a):
        product = make_product(vendor_a)
        repo.delete(str(product.id))

        assert repo.get_snapshot(product.id).active is False

    def test_get_snapshots_skips_unknown_ids(self, repo, make_product, vendor_a):
        product = make_product(vendor_a)

        snapshots = repo.get_snapshots([product.id, uuid4()])

        assert list(snapshots) == [product.id]
