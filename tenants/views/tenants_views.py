# tenants/views/tenants_views.py

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from rest_framework import status
from rest_framework.decorators import (
    api_view,
    permission_classes,
    authentication_classes,
)
from rest_framework.response import Response

from tenants.models import Tenant
from tenants.permissions import ProvisioningTokenPermission
from tenants.serializers import TenantCreateSerializer

logger = logging.getLogger("fiscal.tenants")


@api_view(["POST"])
@authentication_classes([])
@permission_classes([ProvisioningTokenPermission])
def criar_tenant(request):
    """
    Cria um novo tenant (empresa emissora) e o usuário ADMIN vinculado a ele.

    - Usa TenantCreateSerializer para validar input (400 em caso de erro).
    - Garante que o RUC (tenant_id) não esteja em uso.
    - Senha SOL da autoridade é cifrada antes de persistir.
    - Tudo em uma transação: falha no usuário desfaz o tenant.
    """
    ser = TenantCreateSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data

    if Tenant.objects.filter(tenant_id=data["tenant_id"]).exists():
        return Response(
            {
                "detail": "Já existe um tenant provisionado com este RUC.",
                "field": "tenant_id",
                "code": "tenant_already_exists",
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    endereco = data["endereco"]
    User = get_user_model()

    try:
        with transaction.atomic():
            tenant = Tenant(
                tenant_id=data["tenant_id"],
                razao_social=data["razao_social"],
                nome_fantasia=data.get("nome_fantasia") or "",
                logradouro=endereco["logradouro"],
                distrito=endereco.get("distrito") or "",
                provincia=endereco.get("provincia") or "",
                departamento=endereco.get("departamento") or "",
                ubigeo=endereco.get("ubigeo") or "",
                codigo_pais=endereco.get("codigo_pais") or "PE",
                usuario_autoridade=data.get("usuario_autoridade") or "",
                ativo=True,
            )
            tenant.definir_senha_autoridade(data.get("senha_autoridade") or "")
            tenant.save()

            admin_user = User.objects.create_user(
                username=data["admin_username"],
                password=data["admin_password"],
                tenant=tenant,
                is_staff=True,
            )
    except IntegrityError:
        logger.exception(
            "tenant_provisionamento_integridade",
            extra={"event": "tenant_criar", "tenant_id": data["tenant_id"]},
        )
        return Response(
            {
                "detail": "Não foi possível provisionar o tenant devido a um "
                          "conflito de dados (integridade).",
                "code": "integrity_error",
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    logger.info(
        "tenant_provisionado",
        extra={"event": "tenant_criar", "tenant_id": tenant.tenant_id, "outcome": "success"},
    )

    return Response(
        {
            "tenant_id": tenant.tenant_id,
            "razao_social": tenant.razao_social,
            "admin_user_id": admin_user.id,
            "admin_username": admin_user.username,
        },
        status=status.HTTP_201_CREATED,
    )
