import uuid

from django.db import models
from django.utils import timezone


class ComunicacaoBaixa(models.Model):
    """
    Comunicação de baixa (anulação) de boletas aceitas.
    Numeração RA-YYYYMMDD-n, correlativo diário por tenant.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.CharField(max_length=11)
    numero = models.CharField(max_length=24)

    data_geracao = models.DateTimeField(default=timezone.now)
    data_baixa = models.DateField()

    documentos = models.JSONField(default=list)
    motivo = models.CharField(max_length=250)

    xml_original = models.TextField()

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "comunicacao_baixa"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "numero"],
                name="uniq_baixa_tenant_numero",
            ),
        ]

    def __str__(self):
        return f"Baixa {self.numero} [{self.tenant_id}]"
