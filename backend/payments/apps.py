from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

    def ready(self):
        # Connect signal handlers decorated with @receiver.
        from . import signals  # noqa: F401
