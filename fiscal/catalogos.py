# fiscal/catalogos.py
"""
Catálogos fechados da autoridade tributária usados na validação e no XML.
"""

# Catálogo 01: tipo de documento
TIPO_DOCUMENTO_CODIGO = {
    "FATURA": "01",
    "BOLETA": "03",
    "NOTA_CREDITO": "07",
}

# Catálogo 06: tipo de documento de identidade
DOC_IDENTIDADE_SEM_RUC = "0"
DOC_IDENTIDADE_DNI = "1"
DOC_IDENTIDADE_CARNE_ESTRANGEIRO = "4"
DOC_IDENTIDADE_RUC = "6"
DOC_IDENTIDADE_PASSAPORTE = "7"
DOC_IDENTIDADE_CEDULA_DIPLOMATICA = "A"

CATALOGO_06 = {
    DOC_IDENTIDADE_SEM_RUC: "Doc. tributário não domiciliado sem RUC",
    DOC_IDENTIDADE_DNI: "DNI",
    DOC_IDENTIDADE_CARNE_ESTRANGEIRO: "Carnê de estrangeiro",
    DOC_IDENTIDADE_RUC: "RUC",
    DOC_IDENTIDADE_PASSAPORTE: "Passaporte",
    DOC_IDENTIDADE_CEDULA_DIPLOMATICA: "Cédula diplomática de identidade",
}

# Catálogo 07: tipo de afetação do IGV
CATALOGO_07 = {
    "10": "Gravado - Operação onerosa",
    "11": "Gravado - Retirada por prêmio",
    "12": "Gravado - Retirada por doação",
    "13": "Gravado - Retirada",
    "14": "Gravado - Retirada por publicidade",
    "15": "Gravado - Bonificações",
    "16": "Gravado - Retirada por entrega a trabalhadores",
    "17": "Gravado - IVAP",
    "20": "Exonerado - Operação onerosa",
    "30": "Inafeto - Operação onerosa",
    "31": "Inafeto - Retirada por bonificação",
    "32": "Inafeto - Retirada",
    "33": "Inafeto - Retirada por amostras médicas",
    "34": "Inafeto - Retirada por convênio coletivo",
    "35": "Inafeto - Retirada por prêmio",
    "36": "Inafeto - Retirada por publicidade",
    "40": "Exportação",
}

AFETACOES_GRAVADAS = {"10", "11", "12", "13", "14", "15", "16", "17"}

# Catálogo 09: tipo de nota de crédito
CATALOGO_09 = {
    "01": "Anulação da operação",
    "02": "Anulação por erro no RUC",
    "03": "Correção por erro na descrição",
    "04": "Desconto global",
    "05": "Desconto por item",
    "06": "Devolução total",
    "07": "Devolução por item",
    "08": "Bonificação",
    "09": "Diminuição no valor",
    "10": "Outros conceitos",
    "11": "Ajustes de operações de exportação",
    "12": "Ajustes afetos ao IVAP",
    "13": "Correção do montante líquido pendente de pagamento",
}

# Tributo IGV (catálogo 05)
TRIBUTO_IGV = {"codigo": "1000", "nome": "IGV", "codigo_internacional": "VAT"}
TRIBUTO_EXONERADO = {"codigo": "9997", "nome": "EXO", "codigo_internacional": "VAT"}
TRIBUTO_INAFETO = {"codigo": "9998", "nome": "INA", "codigo_internacional": "FRE"}
TRIBUTO_EXPORTACAO = {"codigo": "9995", "nome": "EXP", "codigo_internacional": "FRE"}

TAXA_IGV_PERCENTUAL = "18.00"

MOEDAS = {"PEN", "USD"}


def tributo_para_afetacao(codigo_afetacao: str) -> dict:
    if codigo_afetacao in AFETACOES_GRAVADAS:
        return TRIBUTO_IGV
    if codigo_afetacao == "20":
        return TRIBUTO_EXONERADO
    if codigo_afetacao == "40":
        return TRIBUTO_EXPORTACAO
    return TRIBUTO_INAFETO
