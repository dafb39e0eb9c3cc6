import uuid

from django.db import models


class SequenciaDocumento(models.Model):
    """
    Controla a numeração fiscal por (tenant, tipo de documento, série).

    Exemplo:
      - 20123456789, BOLETA, B001 -> B001-00000001, B001-00000002, ...
      - 20123456789, FATURA, F001 -> outra sequência
      - 20999999999, BOLETA, B001 -> sequência independente (outro tenant)

    numero_atual só avança via update condicional (ver ContadorSequencia).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.CharField(max_length=11)
    tipo = models.CharField(max_length=16)
    serie = models.CharField(max_length=16)

    numero_atual = models.PositiveIntegerField(
        default=0,
        help_text="Último número utilizado. Próximo será numero_atual + 1.",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "sequencia_documento"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "tipo", "serie"],
                name="uniq_sequencia_tenant_tipo_serie",
            ),
        ]

    def __str__(self):
        return f"{self.tenant_id} - {self.tipo} - Série {self.serie} ({self.numero_atual})"
