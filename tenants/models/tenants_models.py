import uuid

from django.db import models

from commons.cifragem import cifrar, decifrar


class Tenant(models.Model):
    """
    Empresa emissora. O tenant_id é o próprio RUC (identificação fiscal,
    11 dígitos) e é a chave de isolamento de TODOS os dados fiscais.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.CharField(max_length=11, unique=True)  # RUC
    razao_social = models.CharField(max_length=150)
    nome_fantasia = models.CharField(max_length=150, blank=True, default="")

    # Endereço fiscal (snapshot usado no XML do emitente)
    logradouro = models.CharField(max_length=200, blank=True, default="")
    distrito = models.CharField(max_length=100, blank=True, default="")
    provincia = models.CharField(max_length=100, blank=True, default="")
    departamento = models.CharField(max_length=100, blank=True, default="")
    ubigeo = models.CharField(max_length=6, blank=True, default="")
    codigo_pais = models.CharField(max_length=2, default="PE")

    # Credenciais SOL da autoridade tributária
    usuario_autoridade = models.CharField(max_length=60, blank=True, default="")
    senha_autoridade_cifrada = models.TextField(blank=True, default="")

    ativo = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tenant"

    def __str__(self):
        return f"{self.tenant_id} - {self.razao_social}"

    def definir_senha_autoridade(self, senha: str) -> None:
        self.senha_autoridade_cifrada = cifrar(senha) if senha else ""

    def senha_autoridade(self) -> str:
        if not self.senha_autoridade_cifrada:
            return ""
        return decifrar(self.senha_autoridade_cifrada)

    @property
    def possui_credenciais(self) -> bool:
        return bool(self.usuario_autoridade and self.senha_autoridade_cifrada)

    def snapshot_emissor(self) -> dict:
        """
        Dados do emitente congelados no documento no momento da geração.
        """
        return {
            "ruc": self.tenant_id,
            "razao_social": self.razao_social,
            "nome_fantasia": self.nome_fantasia,
            "endereco": {
                "logradouro": self.logradouro,
                "distrito": self.distrito,
                "provincia": self.provincia,
                "departamento": self.departamento,
                "ubigeo": self.ubigeo,
                "codigo_pais": self.codigo_pais or "PE",
            },
        }
