"""Unit tests for the Product model."""

from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from modules.products.models import Product

pytestmark = pytest.mark.unit


def test_sku_is_normalised(make_product, vendor_a):
    product = make_product(vendor_a)
    product.sku = "  ga-tom "
    product.save()
    product.refresh_from_db()
    assert product.sku == "GA-TOM"


def test_clean_rejects_non_positive_price(make_product, vendor_a):
    product = make_product(vendor_a)
    product.price = Decimal("0.00")
    with pytest.raises(ValidationError):
        product.clean()


def test_reserved_cannot_exceed_quantity_in_database(make_product, vendor_a):
    product = make_product(vendor_a, quantity=2)
    with pytest.raises(IntegrityError), transaction.atomic():
        Product.objects.filter(id=product.id).update(reserved_quantity=3)


def test_soft_deleted_product_is_not_sellable(make_product, vendor_a):
    product = make_product(vendor_a)
    product.delete()
    assert product.is_sellable is False
