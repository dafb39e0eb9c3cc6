# fiscal/services/reenvio_service.py
"""
Reenvio com backoff exponencial para chamadas à autoridade tributária.

Algoritmo (max_tentativas = N, delay_inicial = D, multiplicador = M):
  - tentativa 1 roda imediatamente;
  - falha na tentativa i (1..N) registra delay D * M**(i-1) e dorme esse tempo;
  - falha na tentativa N+1 registra delay 0 e encerra;
  - total de tentativas no esgotamento = N + 1.

No esgotamento o documento volta para PENDENTE (aguardando reprocessamento)
e o log completo de erros é persistido no documento.

A classificação RECUPERAVEL / NAO_RECUPERAVEL é metadado de observabilidade:
por padrão o reenvio é incondicional até o limite. Com
interromper_nao_recuperavel=True, um erro etiquetado NAO_RECUPERAVEL encerra
o laço na hora (o documento ainda vai para PENDENTE).
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, List, Optional

from fiscal.exceptions import NAO_RECUPERAVEL, RECUPERAVEL
from fiscal.models import DocumentoStatus
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.repositories import RepositorioDocumentos

logger = logging.getLogger("fiscal.reenvio")

DESCONHECIDO = "DESCONHECIDO"


# ---------------------------------------------------------------------------
# Classificação de erros
# ---------------------------------------------------------------------------

# Só para exceções que atravessam a fronteira do client sem etiqueta
# (bibliotecas de terceiros). Comparação em minúsculas, por substring.
PADROES_NAO_RECUPERAVEIS = (
    "unauthorized",
    "401",
    "forbidden",
    "403",
    "not found",
    "404",
    "bad request",
    "400",
    "invalid",
    "inválid",
    "ya fue aceptado",
    "já foi aceito",
    "certificado vencido",
    "certificado expirado",
)

PADROES_RECUPERAVEIS = (
    "timeout",
    "timed out",
    "etimedout",
    "econnrefused",
    "econnreset",
    "enotfound",
    "connection refused",
    "connection reset",
    "network",
    "socket hang up",
    "service unavailable",
    "503",
    "504",
    "gateway timeout",
)


def classificar_erro(exc: BaseException) -> str:
    """
    1. etiqueta estruturada na origem (atributo `categoria` das
       AutoridadeError);
    2. tipos de transporte da stdlib;
    3. tabelas explícitas de padrões (negação tem precedência).
    """
    categoria = getattr(exc, "categoria", None)
    if categoria in (RECUPERAVEL, NAO_RECUPERAVEL):
        return categoria

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return RECUPERAVEL

    mensagem = str(exc).lower()
    if any(padrao in mensagem for padrao in PADROES_NAO_RECUPERAVEIS):
        return NAO_RECUPERAVEL
    if any(padrao in mensagem for padrao in PADROES_RECUPERAVEIS):
        return RECUPERAVEL
    return DESCONHECIDO


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass
class RegistroErro:
    timestamp: str
    tentativa: int
    mensagem: str
    delay_ms: int
    classificacao: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ResultadoReenvio:
    sucesso: bool
    total_tentativas: int
    resultado: Any = None
    log_erros: List[RegistroErro] = field(default_factory=list)
    ultimo_erro: Optional[BaseException] = None


# ---------------------------------------------------------------------------
# Gerenciador
# ---------------------------------------------------------------------------


class GerenciadorReenvio:
    def __init__(
        self,
        *,
        repositorio: RepositorioDocumentos,
        max_tentativas: int = 3,
        delay_inicial_ms: int = 1000,
        multiplicador: float = 2,
        interromper_nao_recuperavel: bool = False,
        relogio: Optional[Relogio] = None,
        dormir: Callable[[float], None] = time.sleep,
    ):
        if max_tentativas < 0:
            raise ValueError("max_tentativas não pode ser negativo.")
        self.repositorio = repositorio
        self.max_tentativas = max_tentativas
        self.delay_inicial_ms = delay_inicial_ms
        self.multiplicador = multiplicador
        self.interromper_nao_recuperavel = interromper_nao_recuperavel
        self.relogio = relogio or RelogioSistema()
        self.dormir = dormir

    def delay_para(self, tentativa: int) -> int:
        """
        Delay (ms) após a falha da tentativa `tentativa` (1-indexada).
        """
        if tentativa > self.max_tentativas:
            return 0
        return int(self.delay_inicial_ms * self.multiplicador ** (tentativa - 1))

    def executar_com_reenvio(
        self,
        operacao: Callable[[], Any],
        tenant_id: str,
        numero: Optional[str],
    ) -> ResultadoReenvio:
        log_erros: List[RegistroErro] = []
        total = self.max_tentativas + 1
        tentativa = 0

        while tentativa < total:
            tentativa += 1
            logger.info(
                "reenvio_tentativa",
                extra={
                    "event": "reenvio_tentativa",
                    "tenant_id": tenant_id,
                    "numero": numero,
                    "tentativa": tentativa,
                    "max_tentativas": total,
                },
            )

            try:
                resultado = operacao()
            except Exception as exc:
                classificacao = classificar_erro(exc)
                interromper = (
                    self.interromper_nao_recuperavel and classificacao == NAO_RECUPERAVEL
                )
                delay_ms = 0 if interromper else self.delay_para(tentativa)

                log_erros.append(
                    RegistroErro(
                        timestamp=self.relogio.agora().isoformat(),
                        tentativa=tentativa,
                        mensagem=str(exc),
                        delay_ms=delay_ms,
                        classificacao=classificacao,
                    )
                )

                logger.warning(
                    "reenvio_falha",
                    extra={
                        "event": "reenvio_falha",
                        "tenant_id": tenant_id,
                        "numero": numero,
                        "tentativa": tentativa,
                        "classificacao": classificacao,
                        "delay_ms": delay_ms,
                        "erro": str(exc),
                    },
                )

                if interromper:
                    return self._esgotado(tenant_id, numero, tentativa, log_erros, exc)
                if delay_ms > 0:
                    self.dormir(delay_ms / 1000)
                if tentativa == total:
                    return self._esgotado(tenant_id, numero, tentativa, log_erros, exc)
                continue

            if tentativa > 1:
                logger.info(
                    "reenvio_sucesso",
                    extra={
                        "event": "reenvio_sucesso",
                        "tenant_id": tenant_id,
                        "numero": numero,
                        "tentativa": tentativa,
                    },
                )
            return ResultadoReenvio(
                sucesso=True,
                total_tentativas=tentativa,
                resultado=resultado,
                log_erros=log_erros,
            )

        # max_tentativas + 1 >= 1: o laço sempre retorna antes.
        raise AssertionError("laço de reenvio terminou sem resultado")

    def _esgotado(
        self,
        tenant_id: str,
        numero: Optional[str],
        tentativas: int,
        log_erros: List[RegistroErro],
        ultimo_erro: BaseException,
    ) -> ResultadoReenvio:
        logger.error(
            "reenvio_esgotado",
            extra={
                "event": "reenvio_esgotado",
                "tenant_id": tenant_id,
                "numero": numero,
                "total_tentativas": tentativas,
                "outcome": "pendente",
            },
        )

        if numero is not None:
            documento = self.repositorio.obter(tenant_id, numero)
            self.repositorio.registrar_log_erros(
                tenant_id, documento, [registro.as_dict() for registro in log_erros]
            )
            self.repositorio.mudar_status(
                tenant_id,
                documento,
                DocumentoStatus.PENDENTE,
                motivo="reenvio_esgotado",
                extra_context={"total_tentativas": tentativas},
            )
            self.repositorio.auditar(
                tenant_id,
                "PENDENTE_REENVIO",
                numero=numero,
                mensagem=str(ultimo_erro),
                dados={"total_tentativas": tentativas},
            )

        return ResultadoReenvio(
            sucesso=False,
            total_tentativas=tentativas,
            log_erros=log_erros,
            ultimo_erro=ultimo_erro,
        )
