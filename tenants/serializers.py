# tenants/serializers.py
from rest_framework import serializers


class EnderecoFiscalSerializer(serializers.Serializer):
    logradouro = serializers.CharField(max_length=200)
    distrito = serializers.CharField(max_length=100, required=False, allow_blank=True)
    provincia = serializers.CharField(max_length=100, required=False, allow_blank=True)
    departamento = serializers.CharField(max_length=100, required=False, allow_blank=True)
    ubigeo = serializers.CharField(max_length=6, required=False, allow_blank=True)
    codigo_pais = serializers.CharField(max_length=2, required=False, default="PE")


class TenantCreateSerializer(serializers.Serializer):
    tenant_id = serializers.RegexField(
        r"^[0-9]{11}$",
        error_messages={"invalid": "tenant_id deve ser um RUC de 11 dígitos."},
    )
    razao_social = serializers.CharField(max_length=150)
    nome_fantasia = serializers.CharField(max_length=150, required=False, allow_blank=True)
    endereco = EnderecoFiscalSerializer()

    usuario_autoridade = serializers.CharField(max_length=60, required=False, allow_blank=True)
    senha_autoridade = serializers.CharField(
        max_length=128, required=False, allow_blank=True, write_only=True
    )

    admin_username = serializers.CharField(max_length=150)
    admin_password = serializers.CharField(min_length=8, write_only=True)
