# fiscal/views/_erros.py
"""
Tradução das exceções de domínio fiscal em respostas DRF com corpo
{"code", "message"} e o status HTTP correspondente.
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound

from fiscal.exceptions import (
    AutoridadeProtocoloError,
    AutoridadeTechnicalError,
    CertificadoError,
    CertificadoInvalidoError,
    DadosInvalidosError,
    DocumentoNaoEncontradoError,
    FiscalError,
    ReenvioEsgotadoError,
    ReciboNaoProcessadoError,
    TenantNaoEncontradoError,
    ViolacaoPropriedadeError,
    XmlVazioOuInvalidoError,
)

logger = logging.getLogger("fiscal.api")


class ErroFiscalAPI(APIException):
    def __init__(self, status_code: int, detail: dict):
        self.status_code = status_code
        super().__init__(detail=detail)


# Ordem importa: subclasses antes das bases.
STATUS_POR_ERRO = (
    (DadosInvalidosError, status.HTTP_400_BAD_REQUEST),
    (XmlVazioOuInvalidoError, status.HTTP_400_BAD_REQUEST),
    (CertificadoInvalidoError, status.HTTP_400_BAD_REQUEST),
    (CertificadoError, status.HTTP_403_FORBIDDEN),
    (ViolacaoPropriedadeError, status.HTTP_403_FORBIDDEN),
    (DocumentoNaoEncontradoError, status.HTTP_404_NOT_FOUND),
    (TenantNaoEncontradoError, status.HTTP_404_NOT_FOUND),
    (ReenvioEsgotadoError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ReciboNaoProcessadoError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (AutoridadeProtocoloError, status.HTTP_502_BAD_GATEWAY),
)


def status_para(exc: FiscalError) -> int:
    if isinstance(exc, AutoridadeTechnicalError):
        return status.HTTP_504_GATEWAY_TIMEOUT if exc.timeout else status.HTTP_502_BAD_GATEWAY
    for classe, codigo in STATUS_POR_ERRO:
        if isinstance(exc, classe):
            return codigo
    # Estado / ciclo de vida (já aceito, inativo, transição inválida...)
    return status.HTTP_400_BAD_REQUEST


def erro_http(exc: FiscalError, *, event: str, tenant_id: str | None, user) -> APIException:
    http_status = status_para(exc)
    detail = exc.as_detail()
    if isinstance(exc, (ReenvioEsgotadoError, ReciboNaoProcessadoError)):
        detail["total_tentativas"] = exc.total_tentativas
        detail["log_erros"] = exc.log_erros

    log = logger.error if http_status >= 500 else logger.warning
    log(
        f"{event}_erro",
        extra={
            "event": event,
            "tenant_id": tenant_id,
            "user_id": getattr(user, "id", None),
            "code": exc.code,
            "detail": exc.mensagem,
            "http_status": http_status,
            "outcome": "failure",
        },
    )
    return ErroFiscalAPI(http_status, detail)


def erro_inesperado(*, event: str, tenant_id: str | None, user) -> APIException:
    logger.exception(
        f"{event}_erro_inesperado",
        extra={
            "event": event,
            "tenant_id": tenant_id,
            "user_id": getattr(user, "id", None),
            "outcome": "error",
        },
    )
    return ErroFiscalAPI(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"code": "FISCAL_5999", "message": "Erro inesperado no processamento fiscal."},
    )


def tenant_do_usuario(request, tenant_id: str | None, *, event: str) -> str:
    """
    O tenant_id informado precisa ser o do usuário autenticado. Divergência
    responde 404, igual a um tenant inexistente.
    """
    tenant_usuario = getattr(request.user, "tenant_id_fiscal", None)
    if not tenant_id or tenant_id != tenant_usuario:
        logger.warning(
            "tenant_divergente",
            extra={
                "event": event,
                "tenant_id": tenant_id,
                "tenant_usuario": tenant_usuario,
                "user_id": getattr(request.user, "id", None),
                "outcome": "not_found",
            },
        )
        raise NotFound(detail=TenantNaoEncontradoError().as_detail())
    return tenant_id
