# fiscal/validators.py
"""
Validação do payload de geração de documento.

Todas as funções levantam DadosInvalidosError nomeando o campo ofensor
e NÃO tocam no banco: a validação completa roda antes da numeração.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List

from fiscal.catalogos import (
    AFETACOES_GRAVADAS,
    CATALOGO_06,
    CATALOGO_07,
    DOC_IDENTIDADE_DNI,
    DOC_IDENTIDADE_RUC,
    MOEDAS,
    TAXA_IGV_PERCENTUAL,
)
from fiscal.exceptions import DadosInvalidosError

DUAS_CASAS = Decimal("0.01")
TAXA_IGV = Decimal(TAXA_IGV_PERCENTUAL) / Decimal("100")

RE_RUC = re.compile(r"^[0-9]{11}$")
RE_DNI = re.compile(r"^[0-9]{8}$")
RE_DOC_GENERICO = re.compile(r"^[A-Za-z0-9]{1,15}$")
RE_SERIE = re.compile(r"^[A-Z0-9]{4}$")


def arredondar(valor: Decimal) -> Decimal:
    return valor.quantize(DUAS_CASAS, rounding=ROUND_HALF_UP)


def validar_ruc(valor: Any, campo: str = "tenant_id") -> str:
    texto = str(valor or "").strip()
    if not RE_RUC.match(texto):
        raise DadosInvalidosError(campo, "RUC deve conter exatamente 11 dígitos.")
    return texto


def _decimal(valor: Any, campo: str) -> Decimal:
    if valor is None or isinstance(valor, bool):
        raise DadosInvalidosError(campo, "Valor numérico obrigatório.")
    try:
        numero = Decimal(str(valor))
    except (InvalidOperation, ValueError):
        raise DadosInvalidosError(campo, "Valor numérico inválido.")
    if not numero.is_finite():
        raise DadosInvalidosError(campo, "Valor numérico inválido.")
    return numero


def validar_receptor(tipo: str, receptor: Any) -> Dict[str, str]:
    """
    BOLETA: DNI (8 dígitos) por padrão; demais tipos do catálogo 06 aceitos
    no formato próprio.
    FATURA / NOTA_CREDITO: RUC de 11 dígitos obrigatório.
    """
    if not isinstance(receptor, dict):
        raise DadosInvalidosError("receptor", "Dados do receptor são obrigatórios.")

    numero = str(receptor.get("numero_documento") or "").strip()
    tipo_doc = str(receptor.get("tipo_documento") or "").strip()
    nome = str(receptor.get("nome") or "").strip()

    if tipo in ("FATURA", "NOTA_CREDITO"):
        if tipo_doc and tipo_doc != DOC_IDENTIDADE_RUC:
            raise DadosInvalidosError(
                "receptor.tipo_documento",
                "Fatura e nota de crédito exigem receptor identificado por RUC.",
            )
        tipo_doc = DOC_IDENTIDADE_RUC
        if not RE_RUC.match(numero):
            raise DadosInvalidosError(
                "receptor.numero_documento",
                "RUC do receptor deve conter exatamente 11 dígitos.",
            )
    else:
        tipo_doc = tipo_doc or DOC_IDENTIDADE_DNI
        if tipo_doc not in CATALOGO_06:
            raise DadosInvalidosError(
                "receptor.tipo_documento",
                f"Tipo de documento de identidade '{tipo_doc}' fora do catálogo 06.",
            )
        if tipo_doc == DOC_IDENTIDADE_DNI and not RE_DNI.match(numero):
            raise DadosInvalidosError(
                "receptor.numero_documento",
                "DNI deve conter exatamente 8 dígitos.",
            )
        if tipo_doc == DOC_IDENTIDADE_RUC and not RE_RUC.match(numero):
            raise DadosInvalidosError(
                "receptor.numero_documento",
                "RUC do receptor deve conter exatamente 11 dígitos.",
            )
        if not RE_DOC_GENERICO.match(numero):
            raise DadosInvalidosError(
                "receptor.numero_documento",
                "Documento de identidade inválido.",
            )

    if not nome:
        raise DadosInvalidosError("receptor.nome", "Nome/razão social do receptor é obrigatório.")

    normalizado = {
        "tipo_documento": tipo_doc,
        "numero_documento": numero,
        "nome": nome,
    }
    if receptor.get("endereco"):
        normalizado["endereco"] = str(receptor["endereco"]).strip()
    return normalizado


def validar_itens(itens: Any) -> List[Dict[str, str]]:
    """
    Valida e normaliza os itens, preservando a ordem de entrada.

    total/imposto do item vêm do payload quando informados; senão:
      total = quantidade * preco_unitario
      imposto = total * 18% (afetações gravadas 10-17), 0 nas demais
    """
    if not isinstance(itens, list) or not itens:
        raise DadosInvalidosError("itens", "O documento deve ter ao menos um item.")

    normalizados = []
    for indice, item in enumerate(itens):
        prefixo = f"itens[{indice}]"
        if not isinstance(item, dict):
            raise DadosInvalidosError(prefixo, "Item inválido.")

        descricao = str(item.get("descricao") or "").strip()
        if not descricao:
            raise DadosInvalidosError(f"{prefixo}.descricao", "Descrição do item é obrigatória.")

        quantidade = _decimal(item.get("quantidade"), f"{prefixo}.quantidade")
        if quantidade <= 0:
            raise DadosInvalidosError(f"{prefixo}.quantidade", "Quantidade deve ser maior que zero.")

        preco = _decimal(item.get("preco_unitario"), f"{prefixo}.preco_unitario")
        if preco <= 0:
            raise DadosInvalidosError(
                f"{prefixo}.preco_unitario", "Preço unitário deve ser maior que zero."
            )
        if preco != preco.quantize(DUAS_CASAS):
            raise DadosInvalidosError(
                f"{prefixo}.preco_unitario", "Preço unitário aceita no máximo 2 casas decimais."
            )

        afetacao = str(item.get("codigo_afetacao") or "").strip()
        if afetacao not in CATALOGO_07:
            raise DadosInvalidosError(
                f"{prefixo}.codigo_afetacao",
                f"Código de afetação do IGV '{afetacao}' fora do catálogo 07.",
            )

        unidade = str(item.get("unidade") or "NIU").strip()

        if item.get("total") is not None:
            total = arredondar(_decimal(item["total"], f"{prefixo}.total"))
        else:
            total = arredondar(quantidade * preco)

        if item.get("imposto") is not None:
            imposto = arredondar(_decimal(item["imposto"], f"{prefixo}.imposto"))
        elif afetacao in AFETACOES_GRAVADAS:
            imposto = arredondar(total * TAXA_IGV)
        else:
            imposto = Decimal("0.00")

        if total < 0 or imposto < 0:
            raise DadosInvalidosError(f"{prefixo}.total", "Valores do item não podem ser negativos.")

        normalizados.append({
            "codigo": str(item.get("codigo") or "").strip(),
            "descricao": descricao,
            "quantidade": str(quantidade),
            "unidade": unidade,
            "preco_unitario": str(preco),
            "codigo_afetacao": afetacao,
            "total": str(total),
            "imposto": str(imposto),
        })

    return normalizados


def validar_moeda(moeda: Any) -> str:
    valor = str(moeda or "PEN").strip().upper()
    if valor not in MOEDAS:
        raise DadosInvalidosError("moeda", f"Moeda '{valor}' não suportada.")
    return valor


def validar_serie(serie: Any) -> str:
    valor = str(serie or "").strip().upper()
    if not RE_SERIE.match(valor):
        raise DadosInvalidosError("serie", "Série deve ter 4 caracteres alfanuméricos (ex: B001).")
    return valor


def calcular_totais(itens: List[Dict[str, str]]) -> Dict[str, Decimal]:
    """
    subtotal = soma dos totais, imposto = soma dos impostos,
    total = subtotal + imposto; todos com 2 casas.
    """
    subtotal = sum((Decimal(i["total"]) for i in itens), Decimal("0"))
    imposto = sum((Decimal(i["imposto"]) for i in itens), Decimal("0"))
    return {
        "subtotal": arredondar(subtotal),
        "imposto": arredondar(imposto),
        "total": arredondar(subtotal + imposto),
    }
