# fiscal/views/anulacao_views.py

import logging

from django.apps import apps
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.exceptions import FiscalError
from fiscal.serializers import (
    ComunicacaoBaixaInputSerializer,
    ComunicacaoBaixaOutputSerializer,
    DocumentoOutputSerializer,
    NotaCreditoInputSerializer,
)
from fiscal.views._erros import erro_http, erro_inesperado, tenant_do_usuario

logger = logging.getLogger("fiscal.api")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def nota_credito_view(request):
    """
    POST /api/v1/fiscal/documentos/nota-credito

    Anula (total ou parcialmente) uma FATURA aceita gerando uma nota de
    crédito que a referencia. A fatura original não é alterada.
    """
    event = "nota_credito_gerar"
    tenant_id = request.data.get("tenant_id")
    try:
        ser_in = NotaCreditoInputSerializer(data=request.data)
        ser_in.is_valid(raise_exception=True)
        dados = ser_in.validated_data
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        nota = apps.get_app_config("fiscal").servicos.anulacao.gerar_nota_credito(
            tenant_id,
            dados["numero_referencia"],
            dados["motivo"],
            dados["codigo_motivo"],
            itens=dados.get("itens"),
        )

        logger.info(
            event,
            extra={
                "event": event,
                "tenant_id": tenant_id,
                "user_id": request.user.id,
                "numero": nota.numero,
                "documento_referencia": nota.documento_referencia,
                "outcome": "success",
            },
        )
        return Response(DocumentoOutputSerializer(nota).data, status=status.HTTP_201_CREATED)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def comunicacao_baixa_view(request):
    """
    POST /api/v1/fiscal/documentos/comunicacao-baixa

    Comunicação de baixa para boletas aceitas (RA-YYYYMMDD-n).
    """
    event = "comunicacao_baixa_gerar"
    tenant_id = request.data.get("tenant_id")
    try:
        ser_in = ComunicacaoBaixaInputSerializer(data=request.data)
        ser_in.is_valid(raise_exception=True)
        dados = ser_in.validated_data
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        baixa = apps.get_app_config("fiscal").servicos.anulacao.gerar_comunicacao_baixa(
            tenant_id,
            dados["numeros"],
            dados["motivo"],
            data_baixa=dados.get("data_baixa"),
        )

        logger.info(
            event,
            extra={
                "event": event,
                "tenant_id": tenant_id,
                "user_id": request.user.id,
                "numero": baixa.numero,
                "outcome": "success",
            },
        )
        return Response(ComunicacaoBaixaOutputSerializer(baixa).data, status=status.HTTP_201_CREATED)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)
