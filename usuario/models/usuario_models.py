from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    # username/email padrões do Django
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="usuarios",
        null=True,
        blank=True,
        help_text="Empresa emissora à qual o usuário pertence.",
    )

    @property
    def tenant_id_fiscal(self) -> str | None:
        """
        RUC do tenant do usuário (chave de isolamento usada pelo módulo fiscal).
        """
        tenant = self.tenant
        return tenant.tenant_id if tenant else None
