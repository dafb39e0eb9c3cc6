# fiscal/repositories.py
"""
Persistência isolada por tenant.

Regras de isolamento:
  - Toda escrita recebe tenant_id explícito e confere que o registro-alvo
    pertence a ele ANTES de mutar; divergência → ViolacaoPropriedadeError
    (sempre logada), nunca um "re-escopo" silencioso.
  - Leituras usam a chave composta (tenant_id, numero): consultar o
    documento de outro tenant devolve DocumentoNaoEncontradoError, igual
    a um documento inexistente.
  - Arquivos (blobs) vivem sob o prefixo "{tenant_id}/"; toda operação
    valida o prefixo da chave.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from django.core.files.base import ContentFile
from django.core.files.storage import Storage, default_storage
from django.db.models import QuerySet

from fiscal.exceptions import DocumentoNaoEncontradoError, ViolacaoPropriedadeError
from fiscal.models import DocumentoAuditoria, DocumentoEletronico, DocumentoStatus
from fiscal.services.documento_state_machine import DocumentoStateMachine

logger = logging.getLogger("fiscal.repositorio")


def _violacao(*, tenant_id: str, dono: str | None, operacao: str, alvo: str | None) -> ViolacaoPropriedadeError:
    logger.warning(
        "violacao_propriedade",
        extra={
            "event": "violacao_propriedade",
            "tenant_id": tenant_id,
            "tenant_dono": dono,
            "operacao": operacao,
            "alvo": alvo,
            "outcome": "forbidden",
        },
    )
    return ViolacaoPropriedadeError()


# ---------------------------------------------------------------------------
# Documentos
# ---------------------------------------------------------------------------


@dataclass
class FiltrosDocumento:
    tipo: Optional[str] = None
    status: Optional[str] = None
    data_inicio: Optional[datetime] = None
    data_fim: Optional[datetime] = None
    receptor: Optional[str] = None


class RepositorioDocumentos:
    def _assert_dono(self, tenant_id: str, documento: DocumentoEletronico, operacao: str) -> None:
        if not tenant_id or documento.tenant_id != tenant_id:
            raise _violacao(
                tenant_id=tenant_id,
                dono=documento.tenant_id,
                operacao=operacao,
                alvo=documento.numero,
            )

    # -------------------------
    # Escritas
    # -------------------------
    def salvar(self, tenant_id: str, documento: DocumentoEletronico) -> DocumentoEletronico:
        self._assert_dono(tenant_id, documento, "salvar_documento")
        documento.save()
        return documento

    def registrar_assinatura(self, tenant_id: str, documento: DocumentoEletronico, chave: str) -> None:
        self._assert_dono(tenant_id, documento, "registrar_assinatura")
        DocumentoEletronico.objects.filter(pk=documento.pk, tenant_id=tenant_id).update(
            xml_assinado_key=chave,
        )
        documento.xml_assinado_key = chave

    def anexar_recibo(
        self,
        tenant_id: str,
        documento: DocumentoEletronico,
        *,
        codigo: str,
        mensagem: str,
        recebido_em: datetime,
        recibo_key: str | None,
    ) -> None:
        self._assert_dono(tenant_id, documento, "anexar_recibo")
        DocumentoEletronico.objects.filter(pk=documento.pk, tenant_id=tenant_id).update(
            recibo_codigo=codigo,
            recibo_mensagem=mensagem,
            recibo_recebido_em=recebido_em,
            recibo_key=recibo_key,
        )
        documento.recibo_codigo = codigo
        documento.recibo_mensagem = mensagem
        documento.recibo_recebido_em = recebido_em
        documento.recibo_key = recibo_key

    def registrar_envio(self, tenant_id: str, documento: DocumentoEletronico, enviado_em: datetime) -> None:
        self._assert_dono(tenant_id, documento, "registrar_envio")
        DocumentoEletronico.objects.filter(pk=documento.pk, tenant_id=tenant_id).update(
            enviado_em=enviado_em,
        )
        documento.enviado_em = enviado_em

    def registrar_log_erros(self, tenant_id: str, documento: DocumentoEletronico, log_erros: list) -> None:
        self._assert_dono(tenant_id, documento, "registrar_log_erros")
        DocumentoEletronico.objects.filter(pk=documento.pk, tenant_id=tenant_id).update(
            log_erros=log_erros,
        )
        documento.log_erros = log_erros

    def mudar_status(
        self,
        tenant_id: str,
        documento: DocumentoEletronico,
        novo_status: str,
        **kwargs,
    ) -> None:
        self._assert_dono(tenant_id, documento, "mudar_status")
        DocumentoStateMachine.mudar_status(documento, novo_status, **kwargs)

    def auditar(
        self,
        tenant_id: str,
        tipo_evento: str,
        *,
        numero: str | None = None,
        codigo: str | None = None,
        mensagem: str | None = None,
        dados: dict | None = None,
    ) -> DocumentoAuditoria:
        return DocumentoAuditoria.objects.create(
            tipo_evento=tipo_evento,
            tenant_id=tenant_id,
            numero=numero,
            codigo_retorno=codigo,
            mensagem_retorno=mensagem,
            dados=dados,
        )

    # -------------------------
    # Leituras
    # -------------------------
    def obter(self, tenant_id: str, numero: str) -> DocumentoEletronico:
        try:
            return DocumentoEletronico.objects.get(tenant_id=tenant_id, numero=numero)
        except DocumentoEletronico.DoesNotExist:
            raise DocumentoNaoEncontradoError(f"Documento {numero} não encontrado.")

    def listar(self, tenant_id: str, filtros: FiltrosDocumento | None = None) -> QuerySet:
        qs = DocumentoEletronico.objects.filter(tenant_id=tenant_id)
        filtros = filtros or FiltrosDocumento()
        if filtros.tipo:
            qs = qs.filter(tipo=filtros.tipo)
        if filtros.status:
            qs = qs.filter(status=filtros.status)
        if filtros.data_inicio:
            qs = qs.filter(data_emissao__gte=filtros.data_inicio)
        if filtros.data_fim:
            qs = qs.filter(data_emissao__lte=filtros.data_fim)
        if filtros.receptor:
            qs = qs.filter(receptor__numero_documento=filtros.receptor)
        return qs.order_by("-data_emissao", "-numero")

    def listar_pendentes(self, tenant_id: str) -> List[DocumentoEletronico]:
        return list(
            DocumentoEletronico.objects.filter(
                tenant_id=tenant_id,
                status=DocumentoStatus.PENDENTE,
            ).order_by("data_emissao", "numero")
        )


# ---------------------------------------------------------------------------
# Arquivos (XML, XML assinado, recibos)
# ---------------------------------------------------------------------------

CATEGORIA_XML = "xml"
CATEGORIA_ASSINADOS = "assinados"
CATEGORIA_RECIBOS = "recibos"
CATEGORIA_BAIXAS = "baixas"


class RepositorioArquivos:
    """
    Blobs fiscais sobre a Storage API do Django. Chaves no formato
    "{tenant_id}/{categoria}/{nome}".
    """

    def __init__(self, storage: Storage | None = None):
        self.storage = storage or default_storage

    @staticmethod
    def chave(tenant_id: str, categoria: str, nome: str) -> str:
        return f"{tenant_id}/{categoria}/{nome}"

    def _validar_chave(self, tenant_id: str, chave: str, operacao: str) -> str:
        normalizada = posixpath.normpath(chave or "")
        partes = normalizada.split("/")
        if (
            not tenant_id
            or chave.startswith("/")
            or ".." in chave.split("/")
            or len(partes) < 2
            or partes[0] != tenant_id
        ):
            raise _violacao(
                tenant_id=tenant_id,
                dono=partes[0] if partes else None,
                operacao=operacao,
                alvo=chave,
            )
        return normalizada

    def salvar(self, tenant_id: str, chave: str, conteudo: bytes | str) -> str:
        chave = self._validar_chave(tenant_id, chave, "salvar_arquivo")
        if isinstance(conteudo, str):
            conteudo = conteudo.encode("utf-8")
        if self.storage.exists(chave):
            self.storage.delete(chave)
        return self.storage.save(chave, ContentFile(conteudo))

    def ler(self, tenant_id: str, chave: str) -> bytes:
        chave = self._validar_chave(tenant_id, chave, "ler_arquivo")
        with self.storage.open(chave, "rb") as arquivo:
            return arquivo.read()

    def excluir(self, tenant_id: str, chave: str) -> None:
        chave = self._validar_chave(tenant_id, chave, "excluir_arquivo")
        self.storage.delete(chave)

    def listar(self, tenant_id: str, prefixo: str) -> List[str]:
        """
        Lista as chaves sob `prefixo` (ex: "20123456789/recibos").
        """
        prefixo = self._validar_chave(tenant_id, prefixo.rstrip("/"), "listar_arquivos")
        if not self.storage.exists(prefixo):
            return []
        _, arquivos = self.storage.listdir(prefixo)
        return sorted(f"{prefixo}/{nome}" for nome in arquivos)

    def url(self, tenant_id: str, chave: str) -> str:
        chave = self._validar_chave(tenant_id, chave, "url_arquivo")
        return self.storage.url(chave)

    def existe(self, tenant_id: str, chave: str) -> bool:
        chave = self._validar_chave(tenant_id, chave, "existe_arquivo")
        return self.storage.exists(chave)
