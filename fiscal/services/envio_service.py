# fiscal/services/envio_service.py
"""
Pipeline de envio: assinatura -> ZIP -> reenvio(client) -> interpretação.

Ciclo de vida resultante:
  PENDENTE --(enviar)--> ENVIADO --(recibo)--> ACEITO | REJEITADO
                           |
                           +--(reenvio esgotado)--> PENDENTE (reprocessar_pendentes)
                           |
                           +--(recibo não processado)--> PENDENTE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fiscal.autoridade_clients import AutoridadeClientProtocol, CredenciaisAutoridade
from fiscal.catalogos import TIPO_DOCUMENTO_CODIGO
from fiscal.compressao import compactar, nome_arquivo_xml
from fiscal.exceptions import (
    AutoridadeProtocoloError,
    CredenciaisAusentesError,
    DocumentoJaAceitoError,
    EstadoInvalidoParaEnvioError,
    FiscalError,
    ReciboNaoProcessadoError,
    ReenvioEsgotadoError,
)
from fiscal.models import DocumentoEletronico, DocumentoStatus
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.repositories import CATEGORIA_ASSINADOS, RepositorioArquivos, RepositorioDocumentos
from fiscal.services.assinatura_service import AssinadorDigital
from fiscal.services.certificado_service import RepositorioCertificadosProtocol
from fiscal.services.geracao_service import obter_tenant_ativo
from fiscal.services.reenvio_service import GerenciadorReenvio, RegistroErro
from fiscal.services.resposta_service import InterpretadorResposta
from tenants.models import Tenant

logger = logging.getLogger("fiscal.envio")


# ---------------------------------------------------------------------------
# DTO de saída
# ---------------------------------------------------------------------------


@dataclass
class ResultadoEnvio:
    numero: str
    status: str
    total_tentativas: int
    recibo_codigo: Optional[str] = None
    recibo_mensagem: Optional[str] = None
    ticket: Optional[str] = None
    log_erros: List[Dict[str, Any]] = field(default_factory=list)


def _credenciais(tenant: Tenant) -> CredenciaisAutoridade:
    if not tenant.possui_credenciais:
        raise CredenciaisAusentesError()
    return CredenciaisAutoridade(
        ruc=tenant.tenant_id,
        usuario=tenant.usuario_autoridade,
        senha=tenant.senha_autoridade(),
    )


class PipelineEnvio:
    def __init__(
        self,
        *,
        documentos: RepositorioDocumentos,
        arquivos: RepositorioArquivos,
        certificados: RepositorioCertificadosProtocol,
        assinador: AssinadorDigital,
        reenvio: GerenciadorReenvio,
        interpretador: InterpretadorResposta,
        autoridade_client: AutoridadeClientProtocol,
        relogio: Optional[Relogio] = None,
    ):
        self.documentos = documentos
        self.arquivos = arquivos
        self.certificados = certificados
        self.assinador = assinador
        self.reenvio = reenvio
        self.interpretador = interpretador
        self.autoridade_client = autoridade_client
        self.relogio = relogio or RelogioSistema()

    # -------------------------
    # Assinatura
    # -------------------------
    def assinar_documento(self, tenant_id: str, numero: str) -> DocumentoEletronico:
        obter_tenant_ativo(tenant_id)
        documento = self.documentos.obter(tenant_id, numero)

        if documento.status == DocumentoStatus.ACEITO:
            raise DocumentoJaAceitoError()
        if documento.status != DocumentoStatus.PENDENTE:
            raise EstadoInvalidoParaEnvioError(
                f"Documento {numero} em status {documento.status} não pode ser assinado."
            )

        xml_assinado = self.assinador.assinar(tenant_id, documento.xml_original)
        chave = self.arquivos.salvar(
            tenant_id,
            RepositorioArquivos.chave(tenant_id, CATEGORIA_ASSINADOS, f"{numero}.xml"),
            xml_assinado,
        )
        self.documentos.registrar_assinatura(tenant_id, documento, chave)
        self.documentos.auditar(tenant_id, "ASSINADO", numero=numero)

        if self.certificados.proximo_vencimento(tenant_id):
            logger.warning(
                "certificado_proximo_vencimento",
                extra={"event": "assinar_documento", "tenant_id": tenant_id, "numero": numero},
            )

        return documento

    # -------------------------
    # Envio
    # -------------------------
    def enviar(self, tenant_id: str, numero: str) -> ResultadoEnvio:
        tenant = obter_tenant_ativo(tenant_id)
        documento = self.documentos.obter(tenant_id, numero)

        if documento.status == DocumentoStatus.ACEITO:
            raise DocumentoJaAceitoError()
        if documento.status != DocumentoStatus.PENDENTE:
            raise EstadoInvalidoParaEnvioError(
                f"Documento {numero} em status {documento.status} não pode ser enviado."
            )

        credenciais = _credenciais(tenant)

        if not documento.xml_assinado_key:
            documento = self.assinar_documento(tenant_id, numero)

        xml_assinado = self.arquivos.ler(tenant_id, documento.xml_assinado_key)
        zip_bytes = compactar(
            nome_arquivo_xml(
                tenant_id,
                TIPO_DOCUMENTO_CODIGO[documento.tipo],
                documento.serie,
                documento.sequencial,
            ),
            xml_assinado,
        )

        self.documentos.mudar_status(tenant_id, documento, DocumentoStatus.ENVIADO, motivo="envio")
        self.documentos.registrar_envio(tenant_id, documento, self.relogio.agora())
        self.documentos.auditar(tenant_id, "ENVIADO", numero=numero)

        logger.info(
            "envio_iniciado",
            extra={"event": "enviar_documento", "tenant_id": tenant_id, "numero": numero},
        )

        resultado = self.reenvio.executar_com_reenvio(
            lambda: self.autoridade_client.enviar(tenant_id, credenciais, zip_bytes),
            tenant_id,
            numero,
        )

        if not resultado.sucesso:
            log_erros = [registro.as_dict() for registro in resultado.log_erros]
            if isinstance(resultado.ultimo_erro, AutoridadeProtocoloError):
                raise resultado.ultimo_erro
            raise ReenvioEsgotadoError(
                total_tentativas=resultado.total_tentativas,
                log_erros=log_erros,
            )

        recibo = resultado.resultado
        try:
            documento = self.interpretador.processar(tenant_id, numero, recibo)
        except Exception as exc:
            raise self._recibo_nao_processado(tenant_id, numero, recibo, resultado, exc) from exc

        logger.info(
            "envio_concluido",
            extra={
                "event": "enviar_documento",
                "tenant_id": tenant_id,
                "numero": numero,
                "status": documento.status,
                "total_tentativas": resultado.total_tentativas,
                "outcome": "success",
            },
        )

        return ResultadoEnvio(
            numero=numero,
            status=documento.status,
            total_tentativas=resultado.total_tentativas,
            recibo_codigo=recibo.codigo,
            recibo_mensagem=recibo.mensagem,
            ticket=recibo.ticket,
            log_erros=[registro.as_dict() for registro in resultado.log_erros],
        )

    def _recibo_nao_processado(self, tenant_id, numero, recibo, resultado, exc) -> ReciboNaoProcessadoError:
        """
        A autoridade já respondeu: o recibo bruto vai para o log de erros e o
        documento volta a PENDENTE para não ficar preso em ENVIADO.
        """
        log_erros = [registro.as_dict() for registro in resultado.log_erros]
        log_erros.append(
            RegistroErro(
                timestamp=self.relogio.agora().isoformat(),
                tentativa=resultado.total_tentativas,
                mensagem=f"recibo {recibo.codigo} ({recibo.mensagem}) não processado: {exc}",
                delay_ms=0,
                classificacao="RECIBO_NAO_PROCESSADO",
            ).as_dict()
        )

        documento = self.documentos.obter(tenant_id, numero)
        self.documentos.registrar_log_erros(tenant_id, documento, log_erros)
        if documento.status == DocumentoStatus.ENVIADO:
            self.documentos.mudar_status(
                tenant_id,
                documento,
                DocumentoStatus.PENDENTE,
                motivo="recibo_nao_processado",
                extra_context={"recibo_codigo": recibo.codigo},
            )
        self.documentos.auditar(
            tenant_id,
            "RECIBO_NAO_PROCESSADO",
            numero=numero,
            codigo=recibo.codigo,
            mensagem=str(exc),
            dados={"recibo_mensagem": recibo.mensagem, "ticket": recibo.ticket},
        )

        logger.error(
            "recibo_nao_processado",
            extra={
                "event": "enviar_documento",
                "tenant_id": tenant_id,
                "numero": numero,
                "recibo_codigo": recibo.codigo,
                "error_type": type(exc).__name__,
                "outcome": "pendente",
            },
        )

        return ReciboNaoProcessadoError(
            total_tentativas=resultado.total_tentativas,
            log_erros=log_erros,
        )

    def reprocessar_pendentes(self, tenant_id: str) -> List[Dict[str, Any]]:
        """
        Reenvia todos os documentos PENDENTE do tenant. Falha de um
        documento não interrompe os demais.
        """
        obter_tenant_ativo(tenant_id)
        resultados: List[Dict[str, Any]] = []

        for documento in self.documentos.listar_pendentes(tenant_id):
            try:
                envio = self.enviar(tenant_id, documento.numero)
            except FiscalError as exc:
                atual = self.documentos.obter(tenant_id, documento.numero)
                resultados.append({
                    "numero": documento.numero,
                    "sucesso": False,
                    "status": atual.status,
                    "erro": exc.as_detail(),
                })
                continue

            resultados.append({
                "numero": envio.numero,
                "sucesso": True,
                "status": envio.status,
                "total_tentativas": envio.total_tentativas,
            })

        logger.info(
            "reprocessamento_concluido",
            extra={
                "event": "reprocessar_pendentes",
                "tenant_id": tenant_id,
                "total": len(resultados),
                "sucessos": sum(1 for r in resultados if r["sucesso"]),
            },
        )
        return resultados

    # -------------------------
    # Consultas
    # -------------------------
    def consultar_ticket(self, tenant_id: str, numero: str, ticket: str) -> ResultadoEnvio:
        """
        Resultado de processamento assíncrono. Sem reenvio: falha técnica
        sobe direto para o chamador.
        """
        tenant = obter_tenant_ativo(tenant_id)
        documento = self.documentos.obter(tenant_id, numero)

        if documento.status == DocumentoStatus.ACEITO:
            raise DocumentoJaAceitoError()
        if documento.status != DocumentoStatus.ENVIADO:
            raise EstadoInvalidoParaEnvioError(
                f"Documento {numero} em status {documento.status} não aguarda ticket."
            )

        recibo = self.autoridade_client.consultar_ticket(tenant_id, _credenciais(tenant), ticket)
        documento = self.interpretador.processar(tenant_id, numero, recibo)

        return ResultadoEnvio(
            numero=numero,
            status=documento.status,
            total_tentativas=1,
            recibo_codigo=recibo.codigo,
            recibo_mensagem=recibo.mensagem,
            ticket=ticket,
        )

    def consultar_status(self, tenant_id: str, numero: str) -> Dict[str, Any]:
        documento = self.documentos.obter(tenant_id, numero)

        resposta: Dict[str, Any] = {"numero": documento.numero, "status": documento.status}

        if documento.recibo_codigo is not None:
            recibo: Dict[str, Any] = {
                "codigo": documento.recibo_codigo,
                "mensagem": documento.recibo_mensagem,
            }
            if documento.status == DocumentoStatus.ACEITO and documento.recibo_key:
                recibo["url_download"] = self.arquivos.url(tenant_id, documento.recibo_key)
            resposta["recibo"] = recibo

        if documento.status == DocumentoStatus.REJEITADO:
            resposta["motivo_rejeicao"] = documento.recibo_mensagem

        return resposta
