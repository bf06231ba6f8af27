from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.payments"
    label = "payments"

    def ready(self) -> None:
        from modules.payments.events import PaymentCompleted
        from modules.payments.handlers import payment_completed_handler
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(PaymentCompleted, payment_completed_handler)
