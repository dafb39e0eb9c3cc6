# fiscal/services/resposta_service.py
"""
Interpretação do recibo (CDR) da autoridade em status do documento.

Mapeamento código → status:
  "0"                  -> ACEITO
  1..999               -> ACEITO (com exceções)
  2000..2999           -> REJEITADO
  4000..4999           -> ACEITO (com observações)
  TICKET / PROCESSING  -> ENVIADO (processamento assíncrono)
  qualquer outro valor -> REJEITADO
"""

from __future__ import annotations

import logging
import re

from django.db import transaction

from fiscal.autoridade_clients import Recibo
from fiscal.models import DocumentoEletronico, DocumentoStatus
from fiscal.repositories import CATEGORIA_RECIBOS, RepositorioArquivos, RepositorioDocumentos

logger = logging.getLogger("fiscal.resposta")

CODIGOS_ASSINCRONOS = {"TICKET", "PROCESSING", "PROCESANDO"}
RE_CODIGO_NUMERICO = re.compile(r"[0-9]+")

EVENTO_POR_STATUS = {
    DocumentoStatus.ACEITO: "ACEITO",
    DocumentoStatus.REJEITADO: "REJEITADO",
    DocumentoStatus.ENVIADO: "AGUARDANDO_PROCESSAMENTO",
}


def determinar_status(codigo: str | None) -> str:
    codigo = (codigo or "").strip()

    if codigo.upper() in CODIGOS_ASSINCRONOS:
        return DocumentoStatus.ENVIADO
    if codigo == "0":
        return DocumentoStatus.ACEITO
    if not RE_CODIGO_NUMERICO.fullmatch(codigo):
        return DocumentoStatus.REJEITADO

    valor = int(codigo)
    if 1 <= valor <= 999:
        return DocumentoStatus.ACEITO
    if 2000 <= valor <= 2999:
        return DocumentoStatus.REJEITADO
    if 4000 <= valor <= 4999:
        return DocumentoStatus.ACEITO
    return DocumentoStatus.REJEITADO


class InterpretadorResposta:
    def __init__(self, *, documentos: RepositorioDocumentos, arquivos: RepositorioArquivos):
        self.documentos = documentos
        self.arquivos = arquivos

    def processar(self, tenant_id: str, numero: str, recibo: Recibo) -> DocumentoEletronico:
        with transaction.atomic():
            documento = self.documentos.obter(tenant_id, numero)

            recibo_key = None
            if recibo.xml and recibo.xml.strip():
                recibo_key = self.arquivos.salvar(
                    tenant_id,
                    RepositorioArquivos.chave(tenant_id, CATEGORIA_RECIBOS, f"R-{numero}.xml"),
                    recibo.xml,
                )

            self.documentos.anexar_recibo(
                tenant_id,
                documento,
                codigo=recibo.codigo,
                mensagem=recibo.mensagem,
                recebido_em=recibo.recebido_em,
                recibo_key=recibo_key,
            )

            novo_status = determinar_status(recibo.codigo)
            self.documentos.mudar_status(
                tenant_id,
                documento,
                novo_status,
                motivo=f"recibo_{recibo.codigo}",
                extra_context={"codigo_recibo": recibo.codigo},
            )

            self.documentos.auditar(
                tenant_id,
                EVENTO_POR_STATUS[novo_status],
                numero=numero,
                codigo=recibo.codigo,
                mensagem=recibo.mensagem,
                dados={"ticket": recibo.ticket} if recibo.ticket else None,
            )

        logger.info(
            "recibo_processado",
            extra={
                "event": "processar_recibo",
                "tenant_id": tenant_id,
                "numero": numero,
                "codigo": recibo.codigo,
                "status": novo_status,
                "outcome": "success",
            },
        )
        return documento
