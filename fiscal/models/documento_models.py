import uuid

from django.db import models
from django.utils import timezone


class TipoDocumento(models.TextChoices):
    FATURA = "FATURA", "Fatura (01)"
    BOLETA = "BOLETA", "Boleta de venda (03)"
    NOTA_CREDITO = "NOTA_CREDITO", "Nota de crédito (07)"


class DocumentoStatus(models.TextChoices):
    PENDENTE = "PENDENTE", "Pendente"
    ENVIADO = "ENVIADO", "Enviado"
    ACEITO = "ACEITO", "Aceito"
    REJEITADO = "REJEITADO", "Rejeitado"


class DocumentoEletronico(models.Model):
    """
    Documento fiscal eletrônico (fatura, boleta ou nota de crédito).

    - Um registro por combinação (tenant_id, numero); numero já carrega a série.
    - Nunca é excluído: anulação gera um NOVO documento que o referencia.
    - Status só muda via DocumentoStateMachine.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Chave de isolamento (RUC do emissor). Não é FK para não acoplar o
    # documento ao ciclo de vida do cadastro do tenant.
    tenant_id = models.CharField(max_length=11)

    numero = models.CharField(max_length=20)  # ex: B001-00000001
    tipo = models.CharField(max_length=16, choices=TipoDocumento.choices)
    serie = models.CharField(max_length=4)
    sequencial = models.PositiveIntegerField()

    data_emissao = models.DateTimeField(default=timezone.now)

    # Snapshots congelados na geração
    emissor = models.JSONField(default=dict)
    receptor = models.JSONField(default=dict)
    itens = models.JSONField(default=list)

    subtotal = models.DecimalField(max_digits=14, decimal_places=2)
    imposto = models.DecimalField(max_digits=14, decimal_places=2)
    total = models.DecimalField(max_digits=14, decimal_places=2)
    moeda = models.CharField(max_length=3, default="PEN")

    status = models.CharField(
        max_length=16,
        choices=DocumentoStatus.choices,
        default=DocumentoStatus.PENDENTE,
    )

    # XML canônico (sem assinatura) e referência ao blob assinado
    xml_original = models.TextField()
    xml_assinado_key = models.CharField(max_length=255, blank=True, null=True)

    # Recibo (CDR) da autoridade tributária
    recibo_codigo = models.CharField(max_length=32, blank=True, null=True)
    recibo_mensagem = models.TextField(blank=True, null=True)
    recibo_recebido_em = models.DateTimeField(blank=True, null=True)
    recibo_key = models.CharField(max_length=255, blank=True, null=True)

    enviado_em = models.DateTimeField(blank=True, null=True)

    # Log de erros da última execução do reenvio esgotada
    log_erros = models.JSONField(default=list, blank=True)

    # Nota de crédito → documento anulado/corrigido
    documento_referencia = models.CharField(max_length=20, blank=True, null=True)
    motivo_referencia = models.CharField(max_length=250, blank=True, null=True)
    codigo_motivo_referencia = models.CharField(max_length=2, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "documento_eletronico"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "numero"],
                name="uniq_documento_tenant_numero",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "status"], name="idx_documento_tenant_status"),
            models.Index(fields=["tenant_id", "tipo"], name="idx_documento_tenant_tipo"),
            models.Index(fields=["tenant_id", "data_emissao"], name="idx_documento_tenant_data"),
        ]

    def __str__(self):
        return f"{self.tipo} {self.numero} [{self.tenant_id}] ({self.status})"


class DocumentoAuditoria(models.Model):
    """
    Trilha de auditoria dos eventos fiscais de um documento.

    Exemplos de tipo_evento:
      - GERADO
      - ASSINADO
      - ENVIADO
      - ACEITO / REJEITADO
      - PENDENTE_REENVIO
      - RECIBO_NAO_PROCESSADO
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tipo_evento = models.CharField(max_length=50)

    tenant_id = models.CharField(max_length=11)
    numero = models.CharField(max_length=20, blank=True, null=True)

    codigo_retorno = models.CharField(max_length=128, blank=True, null=True)
    mensagem_retorno = models.TextField(blank=True, null=True)
    dados = models.JSONField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "documento_auditoria"
        indexes = [
            models.Index(fields=["tenant_id", "numero"]),
            models.Index(fields=["tipo_evento"]),
        ]

    def __str__(self):
        return f"[{self.tipo_evento}] {self.tenant_id}/{self.numero} codigo={self.codigo_retorno}"
