# fiscal/views/certificado_views.py

import logging

from django.apps import apps
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.exceptions import FiscalError
from fiscal.serializers import CertificadoOutputSerializer, CertificadoUploadSerializer
from fiscal.views._erros import erro_http, erro_inesperado, tenant_do_usuario

logger = logging.getLogger("fiscal.api")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def carregar_certificado_view(request):
    """
    POST /api/v1/fiscal/certificados  (multipart: tenant_id, arquivo, senha)

    Substitui o certificado anterior do tenant, se houver.
    """
    event = "certificado_carregar"
    tenant_id = request.data.get("tenant_id")
    try:
        ser_in = CertificadoUploadSerializer(data=request.data)
        ser_in.is_valid(raise_exception=True)
        dados = ser_in.validated_data
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        certificados = apps.get_app_config("fiscal").servicos.certificados
        registro = certificados.carregar(tenant_id, dados["arquivo"].read(), dados["senha"])
        registro.proximo_vencimento = certificados.proximo_vencimento(tenant_id)

        logger.info(
            event,
            extra={
                "event": event,
                "tenant_id": tenant_id,
                "user_id": request.user.id,
                "numero_serie": registro.numero_serie,
                "outcome": "success",
            },
        )
        return Response(CertificadoOutputSerializer(registro).data, status=status.HTTP_201_CREATED)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)
