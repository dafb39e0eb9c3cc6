# fiscal/serializers.py
from rest_framework import serializers

from fiscal.models import CertificadoDigital, ComunicacaoBaixa, DocumentoEletronico, TipoDocumento

# As regras fiscais (RUC/DNI, catálogos, casas decimais) são validadas na
# camada de domínio, que devolve o campo ofensor. Aqui só a forma do payload.


class TenantRefSerializer(serializers.Serializer):
    tenant_id = serializers.CharField(max_length=11)


class GerarDocumentoInputSerializer(TenantRefSerializer):
    tipo = serializers.ChoiceField(choices=[TipoDocumento.FATURA, TipoDocumento.BOLETA])
    serie = serializers.CharField(max_length=4, required=False)
    moeda = serializers.CharField(max_length=3, required=False)
    receptor = serializers.DictField()
    itens = serializers.ListField(child=serializers.DictField(), allow_empty=True)


class DocumentoRefSerializer(TenantRefSerializer):
    numero = serializers.CharField(max_length=20)


class ConsultarTicketInputSerializer(DocumentoRefSerializer):
    ticket = serializers.CharField(max_length=64)


class NotaCreditoInputSerializer(TenantRefSerializer):
    numero_referencia = serializers.CharField(max_length=20)
    motivo = serializers.CharField(max_length=250)
    codigo_motivo = serializers.CharField(max_length=2)
    itens = serializers.ListField(child=serializers.DictField(), required=False)


class ComunicacaoBaixaInputSerializer(TenantRefSerializer):
    numeros = serializers.ListField(child=serializers.CharField(max_length=20), allow_empty=True)
    motivo = serializers.CharField(max_length=100)
    data_baixa = serializers.DateField(required=False)


class CertificadoUploadSerializer(TenantRefSerializer):
    arquivo = serializers.FileField()
    senha = serializers.CharField(trim_whitespace=False)


class DocumentoOutputSerializer(serializers.ModelSerializer):
    class Meta:
        model = DocumentoEletronico
        fields = [
            "numero",
            "tipo",
            "serie",
            "sequencial",
            "data_emissao",
            "status",
            "receptor",
            "subtotal",
            "imposto",
            "total",
            "moeda",
            "documento_referencia",
            "recibo_codigo",
            "recibo_mensagem",
            "enviado_em",
        ]


class ResultadoEnvioOutputSerializer(serializers.Serializer):
    numero = serializers.CharField()
    status = serializers.CharField()
    total_tentativas = serializers.IntegerField()
    recibo_codigo = serializers.CharField(allow_null=True)
    recibo_mensagem = serializers.CharField(allow_null=True)
    ticket = serializers.CharField(allow_null=True)
    log_erros = serializers.ListField(child=serializers.DictField())


class ComunicacaoBaixaOutputSerializer(serializers.ModelSerializer):
    class Meta:
        model = ComunicacaoBaixa
        fields = ["numero", "data_geracao", "data_baixa", "documentos", "motivo"]


class CertificadoOutputSerializer(serializers.ModelSerializer):
    proximo_vencimento = serializers.BooleanField(read_only=True)

    class Meta:
        model = CertificadoDigital
        fields = [
            "tenant_id",
            "numero_serie",
            "emissor",
            "titular_documento",
            "valido_desde",
            "valido_ate",
            "proximo_vencimento",
        ]
