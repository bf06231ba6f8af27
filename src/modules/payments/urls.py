"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import (
    PaymentCancelView,
    PaymentIntentView,
    PaymentStatusView,
    PaymentVerifyView,
)

urlpatterns = [
    path("payments/intents/", PaymentIntentView.as_view(), name="payment-intents"),
    path("payments/verify/", PaymentVerifyView.as_view(), name="payment-verify"),
    path(
        "payments/status/<uuid:order_id>/",
        PaymentStatusView.as_view(),
        name="payment-status",
    ),
    path(
        "payments/cancel/<uuid:order_id>/",
        PaymentCancelView.as_view(),
        name="payment-cancel",
    ),
]
