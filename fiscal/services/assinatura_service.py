# fiscal/services/assinatura_service.py
"""
Assinatura XMLDSig envelopada (RSA-SHA256) dos documentos UBL.

Fluxo:
  1. valida o XML (não vazio, bem formado, ainda não assinado);
  2. obtém o certificado do tenant pelo RepositorioCertificadosProtocol;
  3. confere validade (agora dentro da janela) e titularidade (titular == tenant);
  4. calcula o digest SHA-256 do documento canonicalizado (c14n), monta o
     SignedInfo, assina o SignedInfo canonicalizado e embute o certificado;
  5. insere o ds:Signature no ext:ExtensionContent reservado (ou no fim da
     raiz) diretamente no texto de entrada, preservando os demais bytes.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from typing import Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from lxml import etree

from fiscal.exceptions import (
    CertificadoExpiradoError,
    CertificadoTitularDivergenteError,
    XmlVazioOuInvalidoError,
)
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.services.certificado_service import RepositorioCertificadosProtocol
from fiscal.ubl.namespaces import DS_NS, EXT_NS, ds

logger = logging.getLogger("fiscal.assinatura")

ALG_C14N = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
ALG_RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
ALG_ENVELOPED = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
ALG_SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"


def _b64(dados: bytes) -> str:
    return base64.b64encode(dados).decode("ascii")


def _c14n(elemento) -> bytes:
    return etree.tostring(elemento, method="c14n", exclusive=False, with_comments=False)


def _nome_qualificado(elemento) -> str:
    local = etree.QName(elemento).localname
    return f"{elemento.prefix}:{local}" if elemento.prefix else local


def _tag_abertura(nome: str):
    return re.compile(rf"<{re.escape(nome)}(?:\s[^>]*?)?(/?)>")


def _inserir_assinatura(xml: str, raiz, destino, fragmento: str) -> str:
    """
    Insere o ds:Signature serializado no texto original, sem reserializar o
    documento: fora do elemento inserido, todos os bytes são os de entrada.
    """
    nome = _nome_qualificado(destino)
    if destino is raiz:
        fechamento = xml.rfind(f"</{nome}")
        if fechamento != -1:
            return xml[:fechamento] + fragmento + xml[fechamento:]
        abertura = next(_tag_abertura(nome).finditer(xml))
    else:
        # n-ésimo ExtensionContent do documento, na mesma ordem do texto
        indice = list(raiz.iter(f"{{{EXT_NS}}}ExtensionContent")).index(destino)
        abertura = list(_tag_abertura(nome).finditer(xml))[indice]

    if not abertura.group(1):
        return xml[:abertura.end()] + fragmento + xml[abertura.end():]

    # <x/> vira <x>...</x>
    tag = abertura.group(0)
    return (
        xml[:abertura.start()]
        + tag[:-2].rstrip() + ">"
        + fragmento
        + f"</{nome}>"
        + xml[abertura.end():]
    )


class AssinadorDigital:
    def __init__(
        self,
        *,
        certificados: RepositorioCertificadosProtocol,
        relogio: Optional[Relogio] = None,
    ):
        self.certificados = certificados
        self.relogio = relogio or RelogioSistema()

    def _parse(self, xml: str):
        if not xml or not xml.strip():
            raise XmlVazioOuInvalidoError("XML vazio; assinatura recusada.")
        try:
            raiz = etree.fromstring(xml.encode("utf-8"))
        except etree.XMLSyntaxError as exc:
            raise XmlVazioOuInvalidoError(f"XML malformado: {exc}") from exc
        if raiz.find(f".//{{{DS_NS}}}Signature") is not None:
            raise XmlVazioOuInvalidoError("Documento já possui assinatura.")
        return raiz

    def assinar(self, tenant_id: str, xml: str) -> str:
        raiz = self._parse(xml)

        certificado = self.certificados.obter(tenant_id)

        agora = self.relogio.agora()
        if not (certificado.valido_desde <= agora <= certificado.valido_ate):
            logger.warning(
                "assinatura_certificado_fora_validade",
                extra={
                    "event": "assinar",
                    "tenant_id": tenant_id,
                    "valido_ate": certificado.valido_ate.isoformat(),
                    "outcome": "blocked",
                },
            )
            raise CertificadoExpiradoError()

        if certificado.titular_documento != tenant_id:
            logger.warning(
                "assinatura_titular_divergente",
                extra={
                    "event": "assinar",
                    "tenant_id": tenant_id,
                    "titular": certificado.titular_documento,
                    "outcome": "forbidden",
                },
            )
            raise CertificadoTitularDivergenteError()

        # Digest do documento ainda sem o ds:Signature (equivale ao
        # transform enveloped-signature seguido de c14n).
        digest = hashlib.sha256(_c14n(raiz)).digest()

        assinatura = etree.Element(ds("Signature"), nsmap={"ds": DS_NS})
        assinatura.set("Id", f"SIGN-{tenant_id}")

        signed_info = etree.SubElement(assinatura, ds("SignedInfo"))
        etree.SubElement(signed_info, ds("CanonicalizationMethod"), Algorithm=ALG_C14N)
        etree.SubElement(signed_info, ds("SignatureMethod"), Algorithm=ALG_RSA_SHA256)
        referencia = etree.SubElement(signed_info, ds("Reference"), URI="")
        transforms = etree.SubElement(referencia, ds("Transforms"))
        etree.SubElement(transforms, ds("Transform"), Algorithm=ALG_ENVELOPED)
        etree.SubElement(transforms, ds("Transform"), Algorithm=ALG_C14N)
        etree.SubElement(referencia, ds("DigestMethod"), Algorithm=ALG_SHA256)
        etree.SubElement(referencia, ds("DigestValue")).text = _b64(digest)

        valor = etree.SubElement(assinatura, ds("SignatureValue"))

        key_info = etree.SubElement(assinatura, ds("KeyInfo"))
        x509_data = etree.SubElement(key_info, ds("X509Data"))
        etree.SubElement(x509_data, ds("X509SubjectName")).text = (
            certificado.certificado.subject.rfc4514_string()
        )
        etree.SubElement(x509_data, ds("X509Certificate")).text = _b64(
            certificado.certificado.public_bytes(serialization.Encoding.DER)
        )

        destino = raiz.find(f".//{{{EXT_NS}}}ExtensionContent")
        if destino is None or len(destino):
            destino = raiz
        destino.append(assinatura)

        # SignedInfo é canonicalizado já inserido na árvore (namespaces herdados).
        valor.text = _b64(
            certificado.chave_privada.sign(
                _c14n(signed_info),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        )

        assinado = _inserir_assinatura(
            xml, raiz, destino, etree.tostring(assinatura, encoding="unicode")
        )

        logger.info(
            "documento_assinado",
            extra={
                "event": "assinar",
                "tenant_id": tenant_id,
                "numero_serie_certificado": certificado.numero_serie,
                "outcome": "success",
            },
        )

        return assinado
