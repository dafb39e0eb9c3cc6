"""
Camada de client da autoridade tributária.

Este módulo define:

- Contrato (AutoridadeClientProtocol) usado pelo pipeline de envio.
- SunatSoapClient: client real (SOAP billService via zeep + requests).
- MockAutoridadeClient: respostas simuladas para desenvolvimento/teste.
- MockAutoridadeClientAlwaysFail: falha técnica em toda chamada (testes de reenvio).

Falhas saem daqui já etiquetadas:
  - AutoridadeTechnicalError (RECUPERAVEL): timeout, conexão, HTTP 5xx;
  - AutoridadeProtocoloError (NAO_RECUPERAVEL): SOAP fault, HTTP 4xx,
    applicationResponse ilegível.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import requests
import zeep
from lxml import etree
from zeep.exceptions import Fault, TransportError
from zeep.transports import Transport
from zeep.wsse.username import UsernameToken

from fiscal.compressao import compactar, nome_zip, primeira_entrada
from fiscal.exceptions import AutoridadeProtocoloError, AutoridadeTechnicalError
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.ubl.namespaces import CBC_NS, cbc

logger = logging.getLogger("fiscal.autoridade")


ENDPOINTS = {
    "producao": "https://e-factura.sunat.gob.pe/ol-ti-itcpfegem/billService",
    "homologacao": "https://e-beta.sunat.gob.pe/ol-ti-itcpfegem-beta/billService",
}


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass
class CredenciaisAutoridade:
    """
    Credenciais SOL do emissor. O usuário SOAP é "{ruc}{usuario}".
    """

    ruc: str
    usuario: str
    senha: str = field(repr=False)


@dataclass
class Recibo:
    """
    Constância de recebimento (CDR) devolvida pela autoridade.

    codigo:
      - "0", "1".."999", "4000".."4999": aceito (com ou sem observações)
      - "2000".."2999": rejeitado
      - "TICKET" / "PROCESSING": processamento assíncrono
    """

    codigo: str
    mensagem: str
    xml: str = ""
    recebido_em: Optional[datetime] = None
    ticket: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Contrato
# ---------------------------------------------------------------------------


class AutoridadeClientProtocol(Protocol):
    def enviar(
        self,
        tenant_id: str,
        credenciais: CredenciaisAutoridade,
        zip_bytes: bytes,
    ) -> Recibo:
        ...

    def consultar_ticket(
        self,
        tenant_id: str,
        credenciais: CredenciaisAutoridade,
        ticket: str,
    ) -> Recibo:
        ...


# ---------------------------------------------------------------------------
# Leitura do CDR
# ---------------------------------------------------------------------------


def interpretar_cdr(cdr_zip: bytes, *, recebido_em: datetime) -> Recibo:
    """
    O applicationResponse é um ZIP com o XML do CDR. Extrai
    cbc:ResponseCode e cbc:Description.
    """
    try:
        _nome, conteudo = primeira_entrada(cdr_zip)
        raiz = etree.fromstring(conteudo)
    except (ValueError, etree.XMLSyntaxError) as exc:
        raise AutoridadeProtocoloError(f"CDR ilegível: {exc}") from exc

    codigo = raiz.findtext(f".//{{{CBC_NS}}}ResponseCode")
    if codigo is None or not codigo.strip():
        raise AutoridadeProtocoloError("CDR sem cbc:ResponseCode.")

    mensagem = raiz.findtext(f".//{{{CBC_NS}}}Description") or ""

    return Recibo(
        codigo=codigo.strip(),
        mensagem=mensagem.strip(),
        xml=conteudo.decode("utf-8"),
        recebido_em=recebido_em,
    )


# ---------------------------------------------------------------------------
# Client real (SOAP)
# ---------------------------------------------------------------------------


class SunatSoapClient:
    """
    billService: sendBill (síncrono, devolve CDR) e getStatus (ticket).
    Autenticação WS-Security UsernameToken (PasswordText).
    """

    def __init__(
        self,
        *,
        ambiente: str = "homologacao",
        timeout: int = 60,
        relogio: Optional[Relogio] = None,
        session: Optional[requests.Session] = None,
    ):
        self.ambiente = ambiente
        self.endpoint = ENDPOINTS[ambiente]
        self.timeout = timeout
        self.relogio = relogio or RelogioSistema()
        self.session = session or requests.Session()
        self.session.verify = True

    def _client(self, credenciais: CredenciaisAutoridade) -> zeep.Client:
        transport = Transport(
            session=self.session,
            timeout=self.timeout,
            operation_timeout=self.timeout,
        )
        client = zeep.Client(
            wsdl=f"{self.endpoint}?wsdl",
            transport=transport,
            wsse=UsernameToken(f"{credenciais.ruc}{credenciais.usuario}", credenciais.senha),
        )
        return client

    def _chamar(self, tenant_id: str, operacao: str, chamada):
        try:
            return chamada()
        except Fault as exc:
            logger.warning(
                "autoridade_soap_fault",
                extra={
                    "event": operacao,
                    "tenant_id": tenant_id,
                    "fault_code": str(exc.code),
                    "outcome": "fault",
                },
            )
            raise AutoridadeProtocoloError(
                f"SOAP fault: {exc.message}",
                codigo=str(exc.code) if exc.code else None,
                raw={"fault": exc.message},
            ) from exc
        except TransportError as exc:
            raw = {"status_code": exc.status_code}
            if exc.status_code and exc.status_code >= 500:
                raise AutoridadeTechnicalError(
                    f"Autoridade indisponível (HTTP {exc.status_code}).",
                    codigo=str(exc.status_code),
                    raw=raw,
                ) from exc
            raise AutoridadeProtocoloError(
                f"Requisição recusada pela autoridade (HTTP {exc.status_code}).",
                codigo=str(exc.status_code),
                raw=raw,
            ) from exc
        except requests.Timeout as exc:
            raise AutoridadeTechnicalError(
                f"Timeout após {self.timeout}s na comunicação com a autoridade.",
                timeout=True,
            ) from exc
        except requests.RequestException as exc:
            raise AutoridadeTechnicalError(f"Falha de conexão com a autoridade: {exc}") from exc

    def enviar(self, tenant_id: str, credenciais: CredenciaisAutoridade, zip_bytes: bytes) -> Recibo:
        nome_xml, _conteudo = primeira_entrada(zip_bytes)
        nome = nome_zip(nome_xml)

        logger.info(
            "autoridade_send_bill",
            extra={"event": "autoridade_enviar", "tenant_id": tenant_id, "arquivo": nome},
        )

        resposta = self._chamar(
            tenant_id,
            "autoridade_enviar",
            lambda: self._client(credenciais).service.sendBill(fileName=nome, contentFile=zip_bytes),
        )

        cdr = resposta if isinstance(resposta, bytes) else getattr(resposta, "applicationResponse", None)
        if not cdr:
            raise AutoridadeProtocoloError("Autoridade não devolveu CDR na resposta.")

        return interpretar_cdr(cdr, recebido_em=self.relogio.agora())

    def consultar_ticket(self, tenant_id: str, credenciais: CredenciaisAutoridade, ticket: str) -> Recibo:
        resposta = self._chamar(
            tenant_id,
            "autoridade_consultar_ticket",
            lambda: self._client(credenciais).service.getStatus(ticket=ticket),
        )

        conteudo = getattr(resposta, "content", None) or getattr(resposta, "applicationResponse", None)
        if not conteudo:
            return Recibo(
                codigo="PROCESSING",
                mensagem="Ticket em processamento pela autoridade.",
                recebido_em=self.relogio.agora(),
                ticket=ticket,
            )

        recibo = interpretar_cdr(conteudo, recebido_em=self.relogio.agora())
        recibo.ticket = ticket
        return recibo


# ---------------------------------------------------------------------------
# Mocks
# ---------------------------------------------------------------------------


APPLICATION_RESPONSE_NS = "urn:oasis:names:specification:ubl:schema:xsd:ApplicationResponse-2"


def _cdr_mock(nome_xml: str, codigo: str, mensagem: str) -> str:
    raiz = etree.Element(
        etree.QName(APPLICATION_RESPONSE_NS, "ApplicationResponse"),
        nsmap={None: APPLICATION_RESPONSE_NS, "cbc": CBC_NS},
    )
    etree.SubElement(raiz, cbc("ID")).text = f"R-{nome_xml}"
    etree.SubElement(raiz, cbc("ResponseCode")).text = codigo
    etree.SubElement(raiz, cbc("Description")).text = mensagem
    return etree.tostring(raiz, xml_declaration=True, encoding="UTF-8").decode("utf-8")


class MockAutoridadeClient(AutoridadeClientProtocol):
    """
    Implementação mock: aceita tudo com código "0" (ou o código configurado).
    """

    def __init__(
        self,
        *,
        ambiente: str = "homologacao",
        codigo: str = "0",
        mensagem: str | None = None,
        relogio: Optional[Relogio] = None,
    ):
        self.ambiente = ambiente
        self.codigo = codigo
        self.mensagem = mensagem
        self.relogio = relogio or RelogioSistema()

    def enviar(self, tenant_id: str, credenciais: CredenciaisAutoridade, zip_bytes: bytes) -> Recibo:
        nome_xml, _conteudo = primeira_entrada(zip_bytes)
        mensagem = self.mensagem or f"O documento {nome_xml} foi aceito (mock)."
        cdr = _cdr_mock(nome_xml, self.codigo, mensagem)
        # Ida e volta pelo mesmo parser do client real.
        return interpretar_cdr(
            compactar(f"R-{nome_xml}", cdr),
            recebido_em=self.relogio.agora(),
        )

    def consultar_ticket(self, tenant_id: str, credenciais: CredenciaisAutoridade, ticket: str) -> Recibo:
        mensagem = self.mensagem or f"Ticket {ticket} processado (mock)."
        cdr = _cdr_mock(ticket, self.codigo, mensagem)
        recibo = interpretar_cdr(
            compactar(f"R-{ticket}.xml", cdr),
            recebido_em=self.relogio.agora(),
        )
        recibo.ticket = ticket
        return recibo


class MockAutoridadeClientAlwaysFail(MockAutoridadeClient):
    """
    Mock que SEMPRE falha tecnicamente. Usado para exercitar o reenvio
    e a volta do documento para PENDENTE.
    """

    def _raise_technical_error(self, tenant_id: str) -> None:
        raise AutoridadeTechnicalError(
            "Falha técnica simulada na comunicação com a autoridade (mock).",
            codigo="TECH_FAIL",
            raw={"tenant_id": tenant_id, "ambiente": self.ambiente},
        )

    def enviar(self, tenant_id: str, credenciais: CredenciaisAutoridade, zip_bytes: bytes) -> Recibo:
        self._raise_technical_error(tenant_id)

    def consultar_ticket(self, tenant_id: str, credenciais: CredenciaisAutoridade, ticket: str) -> Recibo:
        self._raise_technical_error(tenant_id)
