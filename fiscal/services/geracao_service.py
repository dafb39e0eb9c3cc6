# fiscal/services/geracao_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from django.db import transaction

from fiscal.exceptions import DadosInvalidosError, TenantInativoError, TenantNaoEncontradoError
from fiscal.models import DocumentoEletronico, DocumentoStatus, TipoDocumento
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.repositories import CATEGORIA_XML, RepositorioArquivos, RepositorioDocumentos
from fiscal.services.numero_service import ContadorSequencia, formatar_numero
from fiscal.ubl.builder import build_documento_xml
from fiscal.validators import (
    calcular_totais,
    validar_itens,
    validar_moeda,
    validar_receptor,
    validar_serie,
)
from tenants.models import Tenant

logger = logging.getLogger("fiscal.geracao")

SERIES_PADRAO = {
    TipoDocumento.FATURA: "F001",
    TipoDocumento.BOLETA: "B001",
    TipoDocumento.NOTA_CREDITO: "NC01",
}


def obter_tenant_ativo(tenant_id: str) -> Tenant:
    tenant = Tenant.objects.filter(tenant_id=tenant_id).first()
    if tenant is None:
        raise TenantNaoEncontradoError()
    if not tenant.ativo:
        raise TenantInativoError()
    return tenant


class GeradorDocumento:
    """
    Validação do payload -> numeração -> XML canônico -> persistência.

    Toda validação acontece ANTES de tocar no contador: payload inválido
    não consome número nem grava nada.
    """

    def __init__(
        self,
        *,
        contador: ContadorSequencia,
        documentos: RepositorioDocumentos,
        arquivos: RepositorioArquivos,
        relogio: Optional[Relogio] = None,
        series_padrao: Optional[Mapping[str, str]] = None,
    ):
        self.contador = contador
        self.documentos = documentos
        self.arquivos = arquivos
        self.relogio = relogio or RelogioSistema()
        self.series_padrao = dict(series_padrao or SERIES_PADRAO)

    def gerar(
        self,
        tenant_id: str,
        tipo: str,
        payload: Dict[str, Any],
        *,
        referencia: Optional[DocumentoEletronico] = None,
    ) -> DocumentoEletronico:
        if tipo not in TipoDocumento.values:
            raise DadosInvalidosError("tipo", f"Tipo de documento '{tipo}' não suportado.")
        if tipo == TipoDocumento.NOTA_CREDITO and referencia is None:
            raise DadosInvalidosError(
                "documento_referencia",
                "Nota de crédito exige documento de referência.",
            )
        if not isinstance(payload, dict):
            raise DadosInvalidosError("payload", "Corpo da requisição inválido.")

        tenant = obter_tenant_ativo(tenant_id)

        receptor = validar_receptor(tipo, payload.get("receptor"))
        itens = validar_itens(payload.get("itens"))
        moeda = validar_moeda(payload.get("moeda"))
        serie = validar_serie(payload.get("serie") or self.series_padrao.get(tipo))
        totais = calcular_totais(itens)

        with transaction.atomic():
            sequencial = self.contador.proximo(tenant_id, tipo, serie)
            numero = formatar_numero(serie, sequencial)

            documento = DocumentoEletronico(
                tenant_id=tenant_id,
                numero=numero,
                tipo=tipo,
                serie=serie,
                sequencial=sequencial,
                data_emissao=self.relogio.agora(),
                emissor=tenant.snapshot_emissor(),
                receptor=receptor,
                itens=itens,
                subtotal=totais["subtotal"],
                imposto=totais["imposto"],
                total=totais["total"],
                moeda=moeda,
                status=DocumentoStatus.PENDENTE,
            )
            if referencia is not None:
                documento.documento_referencia = referencia.numero
                documento.motivo_referencia = payload.get("motivo")
                documento.codigo_motivo_referencia = payload.get("codigo_motivo")

            documento.xml_original = build_documento_xml(documento, referencia=referencia)
            self.documentos.salvar(tenant_id, documento)

            self.arquivos.salvar(
                tenant_id,
                RepositorioArquivos.chave(tenant_id, CATEGORIA_XML, f"{numero}.xml"),
                documento.xml_original,
            )

            self.documentos.auditar(
                tenant_id,
                "GERADO",
                numero=numero,
                dados={"tipo": tipo, "total": str(documento.total)},
            )

        logger.info(
            "documento_gerado",
            extra={
                "event": "gerar_documento",
                "tenant_id": tenant_id,
                "numero": numero,
                "tipo": tipo,
                "total": str(documento.total),
                "outcome": "success",
            },
        )
        return documento
