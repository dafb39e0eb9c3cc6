import uuid

from django.db import models


class CertificadoDigital(models.Model):
    """
    Certificado digital (PKCS#12) da empresa emissora.

    Separado do Tenant para facilitar rotação de certificados. Acesso
    SEMPRE via RepositorioCertificados (fiscal.services.certificado_service).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.CharField(max_length=11, unique=True)

    pfx = models.BinaryField(
        help_text="Arquivo PFX/P12 do certificado.",
    )

    senha_cifrada = models.TextField(
        help_text="Senha do PFX cifrada com Fernet.",
    )

    valido_desde = models.DateTimeField()
    valido_ate = models.DateTimeField()

    titular_documento = models.CharField(
        max_length=20,
        help_text="Identificação do titular extraída do subject do certificado.",
    )

    numero_serie = models.CharField(max_length=100, blank=True)
    emissor = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "certificado_digital"
        verbose_name = "Certificado digital"
        verbose_name_plural = "Certificados digitais"

    def __str__(self):
        return f"Certificado {self.tenant_id} (expira em {self.valido_ate.date()})"
