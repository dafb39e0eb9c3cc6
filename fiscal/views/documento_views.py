# fiscal/views/documento_views.py

import logging
from dataclasses import asdict

from django.apps import apps
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException, ValidationError as DRFValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.exceptions import FiscalError
from fiscal.filters import DocumentoFilter
from fiscal.repositories import FiltrosDocumento
from fiscal.serializers import (
    ConsultarTicketInputSerializer,
    DocumentoOutputSerializer,
    DocumentoRefSerializer,
    GerarDocumentoInputSerializer,
    ResultadoEnvioOutputSerializer,
    TenantRefSerializer,
)
from fiscal.views._erros import erro_http, erro_inesperado, tenant_do_usuario

logger = logging.getLogger("fiscal.api")


def _servicos():
    return apps.get_app_config("fiscal").servicos


def _validar(serializer_class, data):
    ser_in = serializer_class(data=data)
    ser_in.is_valid(raise_exception=True)
    return ser_in.validated_data


def _log_sucesso(event, request, tenant_id, **extra):
    logger.info(
        event,
        extra={
            "event": event,
            "tenant_id": tenant_id,
            "user_id": getattr(request.user, "id", None),
            "outcome": "success",
            **extra,
        },
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def gerar_documento_view(request):
    """
    POST /api/v1/fiscal/documentos/gerar

    Valida o payload, reserva o número na série e grava o documento
    (status PENDENTE) com o XML canônico.
    """
    event = "documento_gerar"
    tenant_id = request.data.get("tenant_id")
    try:
        dados = _validar(GerarDocumentoInputSerializer, request.data)
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        payload = {
            chave: dados[chave]
            for chave in ("receptor", "itens", "serie", "moeda")
            if chave in dados
        }
        documento = _servicos().gerador.gerar(tenant_id, dados["tipo"], payload)

        _log_sucesso(event, request, tenant_id, numero=documento.numero)
        return Response(DocumentoOutputSerializer(documento).data, status=status.HTTP_201_CREATED)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def assinar_documento_view(request):
    """
    POST /api/v1/fiscal/documentos/assinar  {tenant_id, numero}
    """
    event = "documento_assinar"
    tenant_id = request.data.get("tenant_id")
    try:
        dados = _validar(DocumentoRefSerializer, request.data)
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        documento = _servicos().pipeline.assinar_documento(tenant_id, dados["numero"])

        _log_sucesso(event, request, tenant_id, numero=documento.numero)
        return Response(DocumentoOutputSerializer(documento).data, status=status.HTTP_200_OK)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def enviar_documento_view(request):
    """
    POST /api/v1/fiscal/documentos/enviar  {tenant_id, numero}

    Respostas:
      200 recibo interpretado (ACEITO / REJEITADO / ENVIADO com ticket)
      400 payload inválido, documento já aceito, estado terminal, tenant inativo
      404 tenant / documento
      502 erro de protocolo da autoridade
      503 reenvio esgotado (documento volta para PENDENTE)
    """
    event = "documento_enviar"
    tenant_id = request.data.get("tenant_id")
    try:
        dados = _validar(DocumentoRefSerializer, request.data)
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        resultado = _servicos().pipeline.enviar(tenant_id, dados["numero"])

        _log_sucesso(
            event,
            request,
            tenant_id,
            numero=resultado.numero,
            status=resultado.status,
            total_tentativas=resultado.total_tentativas,
        )
        return Response(
            ResultadoEnvioOutputSerializer(asdict(resultado)).data,
            status=status.HTTP_200_OK,
        )

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def reprocessar_pendentes_view(request):
    """
    POST /api/v1/fiscal/documentos/reprocessar  {tenant_id}
    """
    event = "documento_reprocessar"
    tenant_id = request.data.get("tenant_id")
    try:
        dados = _validar(TenantRefSerializer, request.data)
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        resultados = _servicos().pipeline.reprocessar_pendentes(tenant_id)

        _log_sucesso(event, request, tenant_id, total=len(resultados))
        return Response({"resultados": resultados}, status=status.HTTP_200_OK)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def consultar_ticket_view(request):
    """
    POST /api/v1/fiscal/documentos/consultar-ticket  {tenant_id, numero, ticket}
    """
    event = "documento_consultar_ticket"
    tenant_id = request.data.get("tenant_id")
    try:
        dados = _validar(ConsultarTicketInputSerializer, request.data)
        tenant_id = tenant_do_usuario(request, dados["tenant_id"], event=event)

        resultado = _servicos().pipeline.consultar_ticket(tenant_id, dados["numero"], dados["ticket"])

        _log_sucesso(event, request, tenant_id, numero=resultado.numero, status=resultado.status)
        return Response(
            ResultadoEnvioOutputSerializer(asdict(resultado)).data,
            status=status.HTTP_200_OK,
        )

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def status_documento_view(request, numero):
    """
    GET /api/v1/fiscal/documentos/<numero>/status?tenant_id=...

    {numero, status, recibo?: {codigo, mensagem, url_download?}, motivo_rejeicao?}
    """
    event = "documento_status"
    tenant_id = request.query_params.get("tenant_id")
    try:
        tenant_id = tenant_do_usuario(request, tenant_id, event=event)
        corpo = _servicos().pipeline.consultar_status(tenant_id, numero)
        return Response(corpo, status=status.HTTP_200_OK)

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def listar_documentos_view(request):
    """
    GET /api/v1/fiscal/documentos/?tenant_id=&tipo=&status=&data_inicio=&data_fim=&receptor=
    """
    event = "documento_listar"
    tenant_id = request.query_params.get("tenant_id")
    try:
        tenant_id = tenant_do_usuario(request, tenant_id, event=event)

        servicos = _servicos()
        filterset = DocumentoFilter(
            request.query_params,
            queryset=servicos.documentos.listar(tenant_id),
        )
        if not filterset.is_valid():
            raise DRFValidationError(detail=filterset.errors)

        filtros = FiltrosDocumento(**{
            campo: valor
            for campo, valor in filterset.form.cleaned_data.items()
            if valor not in (None, "")
        })
        documentos = servicos.documentos.listar(tenant_id, filtros)

        return Response(
            DocumentoOutputSerializer(documentos, many=True).data,
            status=status.HTTP_200_OK,
        )

    except FiscalError as exc:
        raise erro_http(exc, event=event, tenant_id=tenant_id, user=request.user)
    except APIException:
        raise
    except Exception:
        raise erro_inesperado(event=event, tenant_id=tenant_id, user=request.user)
