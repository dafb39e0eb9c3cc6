# fiscal/exceptions.py
"""
Taxonomia de erros do módulo fiscal.

Cada exceção carrega:
  - code: código estável (usado no corpo das respostas HTTP e nos logs)
  - mensagem: texto legível

As services levantam estas exceções; as views traduzem para respostas DRF
(ver fiscal/views/_erros.py).
"""

from __future__ import annotations

from typing import Any, Dict


class FiscalError(Exception):
    """
    Base de todos os erros de domínio fiscal.
    """

    code = "FISCAL_0000"
    mensagem_padrao = "Erro fiscal."

    def __init__(self, mensagem: str | None = None):
        self.mensagem = mensagem or self.mensagem_padrao
        super().__init__(self.mensagem)

    def as_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.mensagem}


# ---------------------------------------------------------------------------
# Entrada inválida (fatal, sem efeitos colaterais, sem reenvio)
# ---------------------------------------------------------------------------


class DadosInvalidosError(FiscalError):
    """
    Payload de geração inválido. `campo` nomeia o campo ofensor
    (ex.: "receptor.numero_documento", "itens[2].preco_unitario").
    """

    code = "FISCAL_1001"

    def __init__(self, campo: str, mensagem: str):
        self.campo = campo
        super().__init__(mensagem)

    def as_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.mensagem, "field": self.campo}


# ---------------------------------------------------------------------------
# Estado / ciclo de vida
# ---------------------------------------------------------------------------


class TenantInativoError(FiscalError):
    code = "FISCAL_2001"
    mensagem_padrao = "Empresa emissora inativa."


class DocumentoJaAceitoError(FiscalError):
    code = "FISCAL_2002"
    mensagem_padrao = "Documento já foi aceito pela autoridade tributária."


class EstadoInvalidoParaEnvioError(FiscalError):
    code = "FISCAL_2003"
    mensagem_padrao = "Documento não está em estado que permita envio."


class TransicaoInvalidaError(FiscalError):
    code = "FISCAL_2004"

    def __init__(self, status_atual: str, novo_status: str, numero: str | None = None):
        self.status_atual = status_atual
        self.novo_status = novo_status
        self.numero = numero
        super().__init__(
            f"Transição de {status_atual} para {novo_status} não é permitida"
            + (f" para o documento {numero}." if numero else ".")
        )


class CredenciaisAusentesError(FiscalError):
    code = "FISCAL_2005"
    mensagem_padrao = "Empresa sem credenciais da autoridade tributária configuradas."


class DocumentoNaoAnulavelError(FiscalError):
    code = "FISCAL_2006"
    mensagem_padrao = "Somente documentos aceitos pela autoridade podem ser anulados."


# ---------------------------------------------------------------------------
# Certificado / assinatura (um subtipo por causa)
# ---------------------------------------------------------------------------


class CertificadoError(FiscalError):
    code = "FISCAL_3000"
    mensagem_padrao = "Erro de certificado digital."


class XmlVazioOuInvalidoError(CertificadoError):
    code = "FISCAL_3001"
    mensagem_padrao = "XML vazio ou malformado; assinatura recusada."


class CertificadoNaoEncontradoError(CertificadoError):
    code = "FISCAL_3002"
    mensagem_padrao = "Empresa não possui certificado digital carregado."


class CertificadoExpiradoError(CertificadoError):
    code = "FISCAL_3003"
    mensagem_padrao = "Certificado digital fora do período de validade. Emissão bloqueada."


class CertificadoTitularDivergenteError(CertificadoError):
    code = "FISCAL_3004"
    mensagem_padrao = "Titular do certificado não corresponde ao RUC da empresa."


class CertificadoInvalidoError(CertificadoError):
    code = "FISCAL_3005"
    mensagem_padrao = "Arquivo de certificado ou senha inválidos."


# ---------------------------------------------------------------------------
# Isolamento multi-tenant
# ---------------------------------------------------------------------------


class ViolacaoPropriedadeError(FiscalError):
    """
    Tentativa de mutar registro/arquivo de outro tenant. Sempre logado.
    """

    code = "AUTH_1007"
    mensagem_padrao = "Operação não permitida para o tenant informado."


# ---------------------------------------------------------------------------
# Não encontrado
# ---------------------------------------------------------------------------


class DocumentoNaoEncontradoError(FiscalError):
    code = "FISCAL_4100"
    mensagem_padrao = "Documento não encontrado."


class TenantNaoEncontradoError(FiscalError):
    code = "FISCAL_4101"
    mensagem_padrao = "Empresa emissora não encontrada."


# ---------------------------------------------------------------------------
# Autoridade tributária
# ---------------------------------------------------------------------------

RECUPERAVEL = "RECUPERAVEL"
NAO_RECUPERAVEL = "NAO_RECUPERAVEL"


class AutoridadeError(FiscalError):
    """
    Base dos erros vindos da comunicação com a autoridade tributária.

    `categoria` é a etiqueta estruturada (RECUPERAVEL / NAO_RECUPERAVEL)
    definida na origem da falha.
    """

    code = "FISCAL_5000"
    categoria: str | None = None

    def __init__(
        self,
        mensagem: str,
        *,
        codigo: str | None = None,
        raw: Dict[str, Any] | None = None,
        categoria: str | None = None,
    ):
        super().__init__(mensagem)
        self.codigo = codigo
        self.raw: Dict[str, Any] = raw or {}
        if categoria is not None:
            self.categoria = categoria


class AutoridadeTechnicalError(AutoridadeError):
    """
    Falha técnica de transporte (timeout, conexão recusada, 503...).
    Absorvida pelo GerenciadorReenvio até o limite de tentativas.
    """

    code = "FISCAL_5002"
    categoria = RECUPERAVEL

    def __init__(self, mensagem: str, *, timeout: bool = False, **kwargs):
        super().__init__(mensagem, **kwargs)
        self.timeout = timeout


class AutoridadeProtocoloError(AutoridadeError):
    """
    Resposta fora do contrato (SOAP fault, applicationResponse ilegível,
    credenciais recusadas). Não deve ser tratada como falha transitória.
    """

    code = "FISCAL_5003"
    categoria = NAO_RECUPERAVEL


class ReenvioEsgotadoError(FiscalError):
    code = "FISCAL_5004"
    mensagem_padrao = (
        "Autoridade tributária indisponível após todas as tentativas; "
        "documento marcado como PENDENTE para reprocessamento."
    )

    def __init__(self, mensagem: str | None = None, *, total_tentativas: int = 0, log_erros=None):
        super().__init__(mensagem)
        self.total_tentativas = total_tentativas
        self.log_erros = list(log_erros or [])


class ReciboNaoProcessadoError(FiscalError):
    """
    A autoridade respondeu, mas o recibo não pôde ser registrado. O documento
    volta para PENDENTE com o código e a mensagem do recibo no log de erros.
    """

    code = "FISCAL_5005"
    mensagem_padrao = (
        "Recibo da autoridade não pôde ser processado; "
        "documento marcado como PENDENTE para reprocessamento."
    )

    def __init__(self, mensagem: str | None = None, *, total_tentativas: int = 0, log_erros=None):
        super().__init__(mensagem)
        self.total_tentativas = total_tentativas
        self.log_erros = list(log_erros or [])
