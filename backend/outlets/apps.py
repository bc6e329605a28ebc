from django.apps import AppConfig


class OutletsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "outlets"
    verbose_name = "Organizations & Outlets"

    def ready(self):
        from django.core.signals import setting_changed

        from .config import reload_engine_settings

        setting_changed.connect(reload_engine_settings, dispatch_uid="outlets_reload_engine_settings")
