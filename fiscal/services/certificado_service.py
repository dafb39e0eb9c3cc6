# fiscal/services/certificado_service.py
"""
Repositório de certificados digitais (PKCS#12) por tenant.

Toda leitura/escrita de certificado passa por RepositorioCertificadosProtocol:
o AssinadorDigital e os testes usam o mesmo contrato, sem acesso a caches
ou campos internos.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from django.conf import settings

from commons.cifragem import cifrar, decifrar
from fiscal.exceptions import (
    CertificadoExpiradoError,
    CertificadoInvalidoError,
    CertificadoNaoEncontradoError,
    CertificadoTitularDivergenteError,
)
from fiscal.models import CertificadoDigital
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.validators import validar_ruc

logger = logging.getLogger("fiscal.certificado")

RE_RUC_EMBUTIDO = re.compile(r"(?<![0-9])([0-9]{11})(?![0-9])")


# ---------------------------------------------------------------------------
# DTO
# ---------------------------------------------------------------------------


@dataclass
class CertificadoCarregado:
    """
    Certificado pronto para assinatura (chave privada já decifrada).
    """

    tenant_id: str
    chave_privada: RSAPrivateKey
    certificado: x509.Certificate
    valido_desde: datetime
    valido_ate: datetime
    titular_documento: str
    numero_serie: str
    emissor: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extrair_titular(certificado: x509.Certificate) -> str:
    """
    Identificação do titular embutida no subject:
      1. atributo SERIAL_NUMBER (ex: "RUC20123456789" ou "20123456789");
      2. senão, sequência de 11 dígitos no CN.
    Devolve "" quando nada for encontrado.
    """
    subject = certificado.subject
    for oid in (NameOID.SERIAL_NUMBER, NameOID.COMMON_NAME):
        for atributo in subject.get_attributes_for_oid(oid):
            achado = RE_RUC_EMBUTIDO.search(str(atributo.value))
            if achado:
                return achado.group(1)
    return ""


def _abrir_pkcs12(pfx: bytes, senha: str):
    try:
        chave, certificado, _adicionais = pkcs12.load_key_and_certificates(
            pfx, senha.encode("utf-8") if senha else None
        )
    except (ValueError, TypeError) as exc:
        raise CertificadoInvalidoError(
            "Não foi possível abrir o certificado. Verifique arquivo e senha."
        ) from exc

    if chave is None or certificado is None:
        raise CertificadoInvalidoError(
            "O certificado não contém chave privada ou certificado válido."
        )
    if not isinstance(chave, RSAPrivateKey):
        raise CertificadoInvalidoError("Apenas certificados com chave RSA são suportados.")
    return chave, certificado


# ---------------------------------------------------------------------------
# Contrato
# ---------------------------------------------------------------------------


class RepositorioCertificadosProtocol(Protocol):
    def carregar(self, tenant_id: str, pfx: bytes, senha: str) -> CertificadoDigital:
        ...

    def obter(self, tenant_id: str) -> CertificadoCarregado:
        ...

    def proximo_vencimento(self, tenant_id: str) -> bool:
        ...

    def validar(self, tenant_id: str) -> List[str]:
        ...


# ---------------------------------------------------------------------------
# Implementação Django (tabela certificado_digital)
# ---------------------------------------------------------------------------


class RepositorioCertificados:
    def __init__(self, *, relogio: Optional[Relogio] = None, dias_alerta: Optional[int] = None):
        self.relogio = relogio or RelogioSistema()
        if dias_alerta is None:
            dias_alerta = settings.FISCAL.get("DIAS_ALERTA_VENCIMENTO_CERTIFICADO", 30)
        self.dias_alerta = dias_alerta

    def carregar(self, tenant_id: str, pfx: bytes, senha: str) -> CertificadoDigital:
        """
        Regras:
          - arquivo e senha obrigatórios;
          - tenant_id é um RUC de 11 dígitos;
          - PKCS#12 abre com a senha e contém chave RSA + certificado;
          - certificado dentro da validade;
          - titular do certificado == tenant_id.
        A senha é persistida cifrada (Fernet).
        """
        tenant_id = validar_ruc(tenant_id)
        if not pfx:
            raise CertificadoInvalidoError("Arquivo de certificado vazio.")
        if not senha:
            raise CertificadoInvalidoError("Senha do certificado é obrigatória.")

        _chave, certificado = _abrir_pkcs12(pfx, senha)

        agora = self.relogio.agora()
        if not (certificado.not_valid_before_utc <= agora <= certificado.not_valid_after_utc):
            raise CertificadoExpiradoError()

        titular = extrair_titular(certificado)
        if titular != tenant_id:
            logger.warning(
                "certificado_titular_divergente",
                extra={
                    "event": "certificado_carregar",
                    "tenant_id": tenant_id,
                    "titular": titular,
                    "outcome": "forbidden",
                },
            )
            raise CertificadoTitularDivergenteError()

        registro, criado = CertificadoDigital.objects.update_or_create(
            tenant_id=tenant_id,
            defaults={
                "pfx": pfx,
                "senha_cifrada": cifrar(senha),
                "valido_desde": certificado.not_valid_before_utc,
                "valido_ate": certificado.not_valid_after_utc,
                "titular_documento": titular,
                "numero_serie": format(certificado.serial_number, "x"),
                "emissor": certificado.issuer.rfc4514_string()[:255],
            },
        )

        logger.info(
            "certificado_carregado",
            extra={
                "event": "certificado_carregar",
                "tenant_id": tenant_id,
                "numero_serie": registro.numero_serie,
                "valido_ate": registro.valido_ate.isoformat(),
                "substituido": not criado,
                "outcome": "success",
            },
        )
        return registro

    def obter(self, tenant_id: str) -> CertificadoCarregado:
        try:
            registro = CertificadoDigital.objects.get(tenant_id=tenant_id)
        except CertificadoDigital.DoesNotExist:
            raise CertificadoNaoEncontradoError()

        chave, certificado = _abrir_pkcs12(bytes(registro.pfx), decifrar(registro.senha_cifrada))

        return CertificadoCarregado(
            tenant_id=registro.tenant_id,
            chave_privada=chave,
            certificado=certificado,
            valido_desde=certificado.not_valid_before_utc,
            valido_ate=certificado.not_valid_after_utc,
            titular_documento=extrair_titular(certificado),
            numero_serie=registro.numero_serie,
            emissor=registro.emissor,
        )

    def proximo_vencimento(self, tenant_id: str) -> bool:
        """
        True quando o certificado vence dentro da janela de alerta (30 dias).
        """
        try:
            valido_ate = CertificadoDigital.objects.values_list("valido_ate", flat=True).get(
                tenant_id=tenant_id
            )
        except CertificadoDigital.DoesNotExist:
            raise CertificadoNaoEncontradoError()
        return valido_ate - self.relogio.agora() <= timedelta(days=self.dias_alerta)

    def validar(self, tenant_id: str) -> List[str]:
        """
        Lista de problemas do certificado do tenant (vazia = apto a assinar).
        """
        problemas: List[str] = []
        try:
            carregado = self.obter(tenant_id)
        except (CertificadoNaoEncontradoError, CertificadoInvalidoError) as exc:
            return [exc.mensagem]

        agora = self.relogio.agora()
        if agora > carregado.valido_ate:
            problemas.append("Certificado expirado.")
        elif agora < carregado.valido_desde:
            problemas.append("Certificado ainda não está vigente.")
        elif self.proximo_vencimento(tenant_id):
            problemas.append(
                f"Certificado vence em menos de {self.dias_alerta} dias "
                f"({carregado.valido_ate.date().isoformat()})."
            )

        if carregado.titular_documento != tenant_id:
            problemas.append("Titular do certificado não corresponde ao RUC da empresa.")

        return problemas
