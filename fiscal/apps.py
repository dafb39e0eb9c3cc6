from django.apps import AppConfig


class FiscalConfig(AppConfig):
    name = "fiscal"
    default_auto_field = "django.db.models.BigAutoField"

    servicos = None

    def ready(self):
        from fiscal.services.container import construir_servicos

        self.servicos = construir_servicos()
