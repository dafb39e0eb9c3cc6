# fiscal/services/container.py
"""
Construção explícita dos services fiscais.

Um ServicosFiscais é montado uma única vez na inicialização do processo
(FiscalConfig.ready) e entregue às views; testes montam o seu com fakes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from django.conf import settings

from fiscal.autoridade_clients import AutoridadeClientProtocol
from fiscal.autoridade_factory import get_autoridade_client
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.repositories import RepositorioArquivos, RepositorioDocumentos
from fiscal.services.anulacao_service import ServicoAnulacao
from fiscal.services.assinatura_service import AssinadorDigital
from fiscal.services.certificado_service import (
    RepositorioCertificados,
    RepositorioCertificadosProtocol,
)
from fiscal.services.envio_service import PipelineEnvio
from fiscal.services.geracao_service import GeradorDocumento
from fiscal.services.numero_service import ContadorSequencia
from fiscal.services.reenvio_service import GerenciadorReenvio
from fiscal.services.resposta_service import InterpretadorResposta


@dataclass
class ServicosFiscais:
    relogio: Relogio
    documentos: RepositorioDocumentos
    arquivos: RepositorioArquivos
    contador: ContadorSequencia
    gerador: GeradorDocumento
    certificados: RepositorioCertificadosProtocol
    assinador: AssinadorDigital
    autoridade_client: AutoridadeClientProtocol
    reenvio: GerenciadorReenvio
    interpretador: InterpretadorResposta
    pipeline: PipelineEnvio
    anulacao: ServicoAnulacao


def construir_servicos(
    config: Optional[Mapping[str, Any]] = None,
    *,
    relogio: Optional[Relogio] = None,
    autoridade_client: Optional[AutoridadeClientProtocol] = None,
    certificados: Optional[RepositorioCertificadosProtocol] = None,
    arquivos: Optional[RepositorioArquivos] = None,
    dormir: Callable[[float], None] = time.sleep,
) -> ServicosFiscais:
    config = config if config is not None else settings.FISCAL
    relogio = relogio or RelogioSistema()

    documentos = RepositorioDocumentos()
    arquivos = arquivos or RepositorioArquivos()
    contador = ContadorSequencia()
    gerador = GeradorDocumento(
        contador=contador,
        documentos=documentos,
        arquivos=arquivos,
        relogio=relogio,
        series_padrao=config.get("SERIES_PADRAO"),
    )
    certificados = certificados or RepositorioCertificados(
        relogio=relogio,
        dias_alerta=config.get("DIAS_ALERTA_VENCIMENTO_CERTIFICADO", 30),
    )
    assinador = AssinadorDigital(certificados=certificados, relogio=relogio)
    autoridade_client = autoridade_client or get_autoridade_client(config, relogio=relogio)
    reenvio = GerenciadorReenvio(
        repositorio=documentos,
        max_tentativas=int(config.get("REENVIO_MAX_TENTATIVAS", 3)),
        delay_inicial_ms=int(config.get("REENVIO_DELAY_INICIAL_MS", 1000)),
        multiplicador=float(config.get("REENVIO_MULTIPLICADOR", 2)),
        interromper_nao_recuperavel=bool(config.get("REENVIO_INTERROMPER_NAO_RECUPERAVEL", False)),
        relogio=relogio,
        dormir=dormir,
    )
    interpretador = InterpretadorResposta(documentos=documentos, arquivos=arquivos)
    pipeline = PipelineEnvio(
        documentos=documentos,
        arquivos=arquivos,
        certificados=certificados,
        assinador=assinador,
        reenvio=reenvio,
        interpretador=interpretador,
        autoridade_client=autoridade_client,
        relogio=relogio,
    )
    anulacao = ServicoAnulacao(
        gerador=gerador,
        contador=contador,
        documentos=documentos,
        arquivos=arquivos,
        relogio=relogio,
    )

    return ServicosFiscais(
        relogio=relogio,
        documentos=documentos,
        arquivos=arquivos,
        contador=contador,
        gerador=gerador,
        certificados=certificados,
        assinador=assinador,
        autoridade_client=autoridade_client,
        reenvio=reenvio,
        interpretador=interpretador,
        pipeline=pipeline,
        anulacao=anulacao,
    )
