# fiscal/services/anulacao_service.py
"""
Anulação de documentos aceitos. O documento original NUNCA é alterado:

- FATURA  -> nota de crédito (novo DocumentoEletronico, série NC01)
             referenciando a fatura;
- BOLETA  -> comunicação de baixa (ComunicacaoBaixa, RA-YYYYMMDD-n).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from django.db import transaction

from fiscal.catalogos import CATALOGO_09
from fiscal.exceptions import DadosInvalidosError, DocumentoNaoAnulavelError
from fiscal.models import ComunicacaoBaixa, DocumentoEletronico, DocumentoStatus, TipoDocumento
from fiscal.relogio import Relogio, RelogioSistema
from fiscal.repositories import CATEGORIA_BAIXAS, RepositorioArquivos, RepositorioDocumentos
from fiscal.services.geracao_service import GeradorDocumento, obter_tenant_ativo
from fiscal.services.numero_service import ContadorSequencia
from fiscal.ubl.builder import build_comunicacao_baixa_xml

logger = logging.getLogger("fiscal.anulacao")

SERIE_NOTA_CREDITO = "NC01"
TIPO_SEQUENCIA_BAIXA = "VOID"


def _validar_motivo(motivo: Any, limite: int = 250) -> str:
    valor = str(motivo or "").strip()
    if not valor:
        raise DadosInvalidosError("motivo", "Motivo da anulação é obrigatório.")
    if len(valor) > limite:
        raise DadosInvalidosError("motivo", f"Motivo excede {limite} caracteres.")
    return valor


def _assert_aceito(documento: DocumentoEletronico) -> None:
    if documento.status != DocumentoStatus.ACEITO:
        raise DocumentoNaoAnulavelError(
            f"Somente documentos aceitos podem ser anulados. "
            f"O documento {documento.numero} está em {documento.status}."
        )


class ServicoAnulacao:
    def __init__(
        self,
        *,
        gerador: GeradorDocumento,
        contador: ContadorSequencia,
        documentos: RepositorioDocumentos,
        arquivos: RepositorioArquivos,
        relogio: Optional[Relogio] = None,
    ):
        self.gerador = gerador
        self.contador = contador
        self.documentos = documentos
        self.arquivos = arquivos
        self.relogio = relogio or RelogioSistema()

    def gerar_nota_credito(
        self,
        tenant_id: str,
        numero_referencia: str,
        motivo: str,
        codigo_motivo: str,
        itens: Optional[List[Dict[str, Any]]] = None,
    ) -> DocumentoEletronico:
        motivo = _validar_motivo(motivo)
        codigo_motivo = str(codigo_motivo or "").strip()
        if codigo_motivo not in CATALOGO_09:
            raise DadosInvalidosError(
                "codigo_motivo",
                f"Código de motivo '{codigo_motivo}' fora do catálogo 09.",
            )

        original = self.documentos.obter(tenant_id, numero_referencia)
        if original.tipo != TipoDocumento.FATURA:
            raise DadosInvalidosError(
                "numero_referencia",
                f"O documento {numero_referencia} não é uma fatura. "
                "Use comunicação de baixa para boletas.",
            )
        _assert_aceito(original)

        nota = self.gerador.gerar(
            tenant_id,
            TipoDocumento.NOTA_CREDITO,
            {
                "serie": SERIE_NOTA_CREDITO,
                "receptor": original.receptor,
                "itens": itens if itens else original.itens,
                "moeda": original.moeda,
                "motivo": motivo,
                "codigo_motivo": codigo_motivo,
            },
            referencia=original,
        )

        logger.info(
            "nota_credito_gerada",
            extra={
                "event": "gerar_nota_credito",
                "tenant_id": tenant_id,
                "numero": nota.numero,
                "documento_referencia": original.numero,
                "codigo_motivo": codigo_motivo,
                "outcome": "success",
            },
        )
        return nota

    def gerar_comunicacao_baixa(
        self,
        tenant_id: str,
        numeros: List[str],
        motivo: str,
        data_baixa: Optional[date] = None,
    ) -> ComunicacaoBaixa:
        motivo = _validar_motivo(motivo, limite=100)
        if not isinstance(numeros, list) or not numeros:
            raise DadosInvalidosError("numeros", "Informe ao menos uma boleta.")
        if len(set(numeros)) != len(numeros):
            raise DadosInvalidosError("numeros", "Boletas repetidas na comunicação de baixa.")

        tenant = obter_tenant_ativo(tenant_id)

        for numero in numeros:
            documento = self.documentos.obter(tenant_id, numero)
            if documento.tipo != TipoDocumento.BOLETA:
                raise DadosInvalidosError(
                    "numeros",
                    f"O documento {numero} não é uma boleta. Use nota de crédito para faturas.",
                )
            _assert_aceito(documento)

        agora = self.relogio.agora()
        data_baixa = data_baixa or agora.date()
        serie = f"RA-{data_baixa.strftime('%Y%m%d')}"

        with transaction.atomic():
            correlativo = self.contador.proximo(tenant_id, TIPO_SEQUENCIA_BAIXA, serie)
            baixa = ComunicacaoBaixa(
                tenant_id=tenant_id,
                numero=f"{serie}-{correlativo}",
                data_geracao=agora,
                data_baixa=data_baixa,
                documentos=list(numeros),
                motivo=motivo,
            )
            baixa.xml_original = build_comunicacao_baixa_xml(baixa, tenant.snapshot_emissor())
            baixa.save()

            self.arquivos.salvar(
                tenant_id,
                RepositorioArquivos.chave(tenant_id, CATEGORIA_BAIXAS, f"{baixa.numero}.xml"),
                baixa.xml_original,
            )
            self.documentos.auditar(
                tenant_id,
                "BAIXA_GERADA",
                numero=baixa.numero,
                mensagem=motivo,
                dados={"documentos": list(numeros)},
            )

        logger.info(
            "comunicacao_baixa_gerada",
            extra={
                "event": "gerar_comunicacao_baixa",
                "tenant_id": tenant_id,
                "numero": baixa.numero,
                "quantidade": len(numeros),
                "outcome": "success",
            },
        )
        return baixa
