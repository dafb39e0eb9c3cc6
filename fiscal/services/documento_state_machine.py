# fiscal/services/documento_state_machine.py

from __future__ import annotations

import logging
from typing import Iterable

from fiscal.exceptions import TransicaoInvalidaError
from fiscal.models import DocumentoEletronico, DocumentoStatus

logger = logging.getLogger("fiscal.documento")


# Ciclo de vida do documento eletrônico:
# - PENDENTE: gerado (ou reenvio esgotado, aguardando reprocessamento)
# - ENVIADO: transmitido / aguardando resposta (inclui ticket assíncrono)
# - ACEITO / REJEITADO: decisão da autoridade, terminais
TRANSICOES_VALIDAS: dict[str, set[str]] = {
    DocumentoStatus.PENDENTE: {
        DocumentoStatus.ENVIADO,
    },

    # Enviado:
    # - ACEITO / REJEITADO (recibo interpretado)
    # - PENDENTE (reenvio esgotado)
    DocumentoStatus.ENVIADO: {
        DocumentoStatus.ACEITO,
        DocumentoStatus.REJEITADO,
        DocumentoStatus.PENDENTE,
    },

    # Estados terminais: anulação gera NOVO documento
    DocumentoStatus.ACEITO: set(),
    DocumentoStatus.REJEITADO: set(),
}


class DocumentoStateMachine:
    """
    ÚNICO ponto autorizado a trocar o status de um DocumentoEletronico.

    A troca é um UPDATE condicional (WHERE status = <status lido>), então
    duas chamadas concorrentes não sobrescrevem uma à outra: a segunda
    encontra 0 linhas e falha com TransicaoInvalidaError.
    """

    @classmethod
    def mudar_status(
        cls,
        documento: DocumentoEletronico,
        novo_status: str,
        *,
        motivo: str | None = None,
        extra_context: dict | None = None,
    ) -> None:
        """
        - Valida se a transição é permitida (baseado no status atual).
        - É idempotente (se já estiver no status solicitado, não faz nada).
        """
        status_atual = documento.status

        if status_atual == novo_status:
            logger.debug(
                "documento_status_idempotente",
                extra={
                    "event": "documento_status_idempotente",
                    "tenant_id": documento.tenant_id,
                    "numero": documento.numero,
                    "status_atual": status_atual,
                },
            )
            return

        permitidos: Iterable[str] = TRANSICOES_VALIDAS.get(status_atual, set())
        if novo_status not in permitidos:
            raise TransicaoInvalidaError(status_atual, novo_status, documento.numero)

        atualizados = DocumentoEletronico.objects.filter(
            pk=documento.pk,
            tenant_id=documento.tenant_id,
            status=status_atual,
        ).update(status=novo_status)

        if atualizados != 1:
            status_banco = (
                DocumentoEletronico.objects.filter(pk=documento.pk)
                .values_list("status", flat=True)
                .first()
            )
            raise TransicaoInvalidaError(status_banco or status_atual, novo_status, documento.numero)

        documento.status = novo_status

        context = {
            "event": "documento_status_transicao",
            "tenant_id": documento.tenant_id,
            "numero": documento.numero,
            "status_anterior": status_atual,
            "status_novo": novo_status,
            "motivo": motivo,
        }
        if extra_context:
            context.update(extra_context)

        logger.info("documento_status_transicao", extra=context)

    # Atalhos para melhorar leitura nos services:

    @classmethod
    def para_enviado(cls, documento: DocumentoEletronico, **kwargs) -> None:
        cls.mudar_status(documento, DocumentoStatus.ENVIADO, **kwargs)

    @classmethod
    def para_aceito(cls, documento: DocumentoEletronico, **kwargs) -> None:
        cls.mudar_status(documento, DocumentoStatus.ACEITO, **kwargs)

    @classmethod
    def para_rejeitado(cls, documento: DocumentoEletronico, **kwargs) -> None:
        cls.mudar_status(documento, DocumentoStatus.REJEITADO, **kwargs)

    @classmethod
    def para_pendente(cls, documento: DocumentoEletronico, **kwargs) -> None:
        cls.mudar_status(documento, DocumentoStatus.PENDENTE, **kwargs)
