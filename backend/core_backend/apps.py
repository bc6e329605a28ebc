from django.apps import AppConfig
import logging

logger = logging.getLogger(__name__)


class CoreBackendConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core_backend"

    def ready(self):
        """
        Validate engine configuration once the app registry is ready so a
        broken denomination ladder is reported at startup, not at checkout.
        """
        from outlets.config import engine_settings

        engine_settings.check_denominations()
