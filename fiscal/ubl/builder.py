"""
Montagem do XML canônico UBL 2.1 dos documentos fiscais.

- Invoice-2 para FATURA e BOLETA, CreditNote-2 para NOTA_CREDITO.
- VoidedDocuments-1 para comunicação de baixa.
- Sempre com o bloco ext:UBLExtensions/.../ext:ExtensionContent vazio,
  reservado para a assinatura (ver AssinadorDigital).
"""

from collections import OrderedDict
from decimal import Decimal

from django.utils import timezone
from lxml import etree

from fiscal.catalogos import (
    DOC_IDENTIDADE_RUC,
    TAXA_IGV_PERCENTUAL,
    TIPO_DOCUMENTO_CODIGO,
    tributo_para_afetacao,
)

from .namespaces import (
    CREDIT_NOTE_NS,
    CUSTOMIZATION_ID,
    INVOICE_NS,
    UBL_VERSION,
    VOIDED_NS,
    cac,
    cbc,
    ext,
    namespace_map,
    sac,
)


def _valor(valor) -> str:
    return f"{Decimal(str(valor)).quantize(Decimal('0.01'))}"


def _montante(parent, tag, valor, moeda):
    el = etree.SubElement(parent, cbc(tag), currencyID=moeda)
    el.text = _valor(valor)
    return el


def _build_extensions(root):
    """Placeholder onde a assinatura será inserida."""
    extensions = etree.SubElement(root, ext("UBLExtensions"))
    extension = etree.SubElement(extensions, ext("UBLExtension"))
    etree.SubElement(extension, ext("ExtensionContent"))


def _build_signature_reference(root, emissor):
    assinatura = etree.SubElement(root, cac("Signature"))
    etree.SubElement(assinatura, cbc("ID")).text = emissor["ruc"]
    signatario = etree.SubElement(assinatura, cac("SignatoryParty"))
    ident = etree.SubElement(signatario, cac("PartyIdentification"))
    etree.SubElement(ident, cbc("ID")).text = emissor["ruc"]
    nome = etree.SubElement(signatario, cac("PartyName"))
    etree.SubElement(nome, cbc("Name")).text = emissor["razao_social"]
    anexo = etree.SubElement(assinatura, cac("DigitalSignatureAttachment"))
    referencia = etree.SubElement(anexo, cac("ExternalReference"))
    etree.SubElement(referencia, cbc("URI")).text = f"#SIGN-{emissor['ruc']}"


def _build_supplier(root, emissor):
    supplier = etree.SubElement(root, cac("AccountingSupplierParty"))
    party = etree.SubElement(supplier, cac("Party"))

    ident = etree.SubElement(party, cac("PartyIdentification"))
    etree.SubElement(ident, cbc("ID"), schemeID=DOC_IDENTIDADE_RUC).text = emissor["ruc"]

    if emissor.get("nome_fantasia"):
        nome = etree.SubElement(party, cac("PartyName"))
        etree.SubElement(nome, cbc("Name")).text = emissor["nome_fantasia"]

    legal = etree.SubElement(party, cac("PartyLegalEntity"))
    etree.SubElement(legal, cbc("RegistrationName")).text = emissor["razao_social"]

    endereco = emissor.get("endereco") or {}
    address = etree.SubElement(legal, cac("RegistrationAddress"))
    if endereco.get("ubigeo"):
        etree.SubElement(address, cbc("ID")).text = endereco["ubigeo"]
    etree.SubElement(address, cbc("AddressTypeCode")).text = "0000"
    if endereco.get("provincia"):
        etree.SubElement(address, cbc("CityName")).text = endereco["provincia"]
    if endereco.get("departamento"):
        etree.SubElement(address, cbc("CountrySubentity")).text = endereco["departamento"]
    if endereco.get("distrito"):
        etree.SubElement(address, cbc("District")).text = endereco["distrito"]
    linha = etree.SubElement(address, cac("AddressLine"))
    etree.SubElement(linha, cbc("Line")).text = endereco.get("logradouro") or "-"
    pais = etree.SubElement(address, cac("Country"))
    etree.SubElement(pais, cbc("IdentificationCode")).text = endereco.get("codigo_pais") or "PE"


def _build_customer(root, receptor):
    customer = etree.SubElement(root, cac("AccountingCustomerParty"))
    party = etree.SubElement(customer, cac("Party"))

    ident = etree.SubElement(party, cac("PartyIdentification"))
    etree.SubElement(
        ident,
        cbc("ID"),
        schemeID=receptor["tipo_documento"],
    ).text = receptor["numero_documento"]

    legal = etree.SubElement(party, cac("PartyLegalEntity"))
    etree.SubElement(legal, cbc("RegistrationName")).text = receptor["nome"]

    if receptor.get("endereco"):
        address = etree.SubElement(legal, cac("RegistrationAddress"))
        linha = etree.SubElement(address, cac("AddressLine"))
        etree.SubElement(linha, cbc("Line")).text = receptor["endereco"]


def _build_tax_total(root, itens, imposto, moeda):
    """
    TaxTotal do documento, com um TaxSubtotal por tributo
    (IGV / exonerado / inafeto / exportação), na ordem em que aparecem.
    """
    grupos = OrderedDict()
    for item in itens:
        tributo = tributo_para_afetacao(item["codigo_afetacao"])
        _, base, valor = grupos.get(tributo["codigo"], (tributo, Decimal("0"), Decimal("0")))
        grupos[tributo["codigo"]] = (
            tributo,
            base + Decimal(str(item["total"])),
            valor + Decimal(str(item["imposto"])),
        )

    tax_total = etree.SubElement(root, cac("TaxTotal"))
    _montante(tax_total, "TaxAmount", imposto, moeda)

    for tributo, base, valor in grupos.values():
        subtotal = etree.SubElement(tax_total, cac("TaxSubtotal"))
        _montante(subtotal, "TaxableAmount", base, moeda)
        _montante(subtotal, "TaxAmount", valor, moeda)
        categoria = etree.SubElement(subtotal, cac("TaxCategory"))
        _build_tax_scheme(categoria, tributo)


def _build_tax_scheme(parent, tributo):
    scheme = etree.SubElement(parent, cac("TaxScheme"))
    etree.SubElement(scheme, cbc("ID")).text = tributo["codigo"]
    etree.SubElement(scheme, cbc("Name")).text = tributo["nome"]
    etree.SubElement(scheme, cbc("TaxTypeCode")).text = tributo["codigo_internacional"]


def _build_monetary_total(root, subtotal, total, moeda):
    monetary = etree.SubElement(root, cac("LegalMonetaryTotal"))
    _montante(monetary, "LineExtensionAmount", subtotal, moeda)
    _montante(monetary, "TaxInclusiveAmount", total, moeda)
    _montante(monetary, "PayableAmount", total, moeda)


def _build_lines(root, itens, moeda, *, nota_credito: bool):
    line_tag = "CreditNoteLine" if nota_credito else "InvoiceLine"
    quantity_tag = "CreditedQuantity" if nota_credito else "InvoicedQuantity"

    for indice, item in enumerate(itens, start=1):
        linha = etree.SubElement(root, cac(line_tag))
        etree.SubElement(linha, cbc("ID")).text = str(indice)
        etree.SubElement(
            linha,
            cbc(quantity_tag),
            unitCode=item.get("unidade") or "NIU",
        ).text = str(item["quantidade"])
        _montante(linha, "LineExtensionAmount", item["total"], moeda)

        # Preço unitário com impostos (PriceTypeCode 01)
        quantidade = Decimal(str(item["quantidade"]))
        preco_com_imposto = (
            (Decimal(str(item["total"])) + Decimal(str(item["imposto"]))) / quantidade
        )
        pricing = etree.SubElement(linha, cac("PricingReference"))
        alternativa = etree.SubElement(pricing, cac("AlternativeConditionPrice"))
        _montante(alternativa, "PriceAmount", preco_com_imposto, moeda)
        etree.SubElement(alternativa, cbc("PriceTypeCode")).text = "01"

        tributo = tributo_para_afetacao(item["codigo_afetacao"])
        tax_total = etree.SubElement(linha, cac("TaxTotal"))
        _montante(tax_total, "TaxAmount", item["imposto"], moeda)
        subtotal = etree.SubElement(tax_total, cac("TaxSubtotal"))
        _montante(subtotal, "TaxableAmount", item["total"], moeda)
        _montante(subtotal, "TaxAmount", item["imposto"], moeda)
        categoria = etree.SubElement(subtotal, cac("TaxCategory"))
        percentual = TAXA_IGV_PERCENTUAL if tributo["nome"] == "IGV" else "0.00"
        etree.SubElement(categoria, cbc("Percent")).text = percentual
        etree.SubElement(categoria, cbc("TaxExemptionReasonCode")).text = item["codigo_afetacao"]
        _build_tax_scheme(categoria, tributo)

        produto = etree.SubElement(linha, cac("Item"))
        etree.SubElement(produto, cbc("Description")).text = item["descricao"]
        if item.get("codigo"):
            sellers = etree.SubElement(produto, cac("SellersItemIdentification"))
            etree.SubElement(sellers, cbc("ID")).text = item["codigo"]

        preco = etree.SubElement(linha, cac("Price"))
        _montante(preco, "PriceAmount", item["preco_unitario"], moeda)


def _serializar(root) -> str:
    return etree.tostring(
        root,
        encoding="UTF-8",
        xml_declaration=True,
    ).decode("utf-8")


def build_documento_xml(documento, *, referencia=None) -> str:
    """
    XML canônico de FATURA / BOLETA / NOTA_CREDITO.

    `documento` é um DocumentoEletronico (salvo ou não); para nota de crédito,
    `referencia` é o DocumentoEletronico anulado/corrigido.
    """
    nota_credito = documento.tipo == "NOTA_CREDITO"
    raiz_ns = CREDIT_NOTE_NS if nota_credito else INVOICE_NS
    root = etree.Element(
        etree.QName(raiz_ns, "CreditNote" if nota_credito else "Invoice"),
        nsmap=namespace_map(raiz_ns),
    )

    _build_extensions(root)

    emissao = timezone.localtime(documento.data_emissao)
    etree.SubElement(root, cbc("UBLVersionID")).text = UBL_VERSION
    etree.SubElement(root, cbc("CustomizationID")).text = CUSTOMIZATION_ID
    etree.SubElement(root, cbc("ID")).text = documento.numero
    etree.SubElement(root, cbc("IssueDate")).text = emissao.strftime("%Y-%m-%d")
    etree.SubElement(root, cbc("IssueTime")).text = emissao.strftime("%H:%M:%S")

    if not nota_credito:
        etree.SubElement(
            root,
            cbc("InvoiceTypeCode"),
            listID="0101",
        ).text = TIPO_DOCUMENTO_CODIGO[documento.tipo]

    etree.SubElement(root, cbc("DocumentCurrencyCode")).text = documento.moeda

    if nota_credito:
        if referencia is None:
            raise ValueError("Nota de crédito exige documento de referência.")
        discrepancia = etree.SubElement(root, cac("DiscrepancyResponse"))
        etree.SubElement(discrepancia, cbc("ReferenceID")).text = referencia.numero
        etree.SubElement(discrepancia, cbc("ResponseCode")).text = documento.codigo_motivo_referencia
        etree.SubElement(discrepancia, cbc("Description")).text = documento.motivo_referencia

        billing = etree.SubElement(root, cac("BillingReference"))
        doc_ref = etree.SubElement(billing, cac("InvoiceDocumentReference"))
        etree.SubElement(doc_ref, cbc("ID")).text = referencia.numero
        etree.SubElement(doc_ref, cbc("DocumentTypeCode")).text = TIPO_DOCUMENTO_CODIGO[referencia.tipo]

    _build_signature_reference(root, documento.emissor)
    _build_supplier(root, documento.emissor)
    _build_customer(root, documento.receptor)
    _build_tax_total(root, documento.itens, documento.imposto, documento.moeda)
    _build_monetary_total(root, documento.subtotal, documento.total, documento.moeda)
    _build_lines(root, documento.itens, documento.moeda, nota_credito=nota_credito)

    return _serializar(root)


def build_comunicacao_baixa_xml(baixa, emissor) -> str:
    """
    VoidedDocuments (comunicação de baixa) para uma lista de boletas.
    """
    root = etree.Element(
        etree.QName(VOIDED_NS, "VoidedDocuments"),
        nsmap=namespace_map(VOIDED_NS),
    )

    _build_extensions(root)

    geracao = timezone.localtime(baixa.data_geracao)
    etree.SubElement(root, cbc("UBLVersionID")).text = "2.0"
    etree.SubElement(root, cbc("CustomizationID")).text = "1.0"
    etree.SubElement(root, cbc("ID")).text = baixa.numero
    etree.SubElement(root, cbc("ReferenceDate")).text = baixa.data_baixa.strftime("%Y-%m-%d")
    etree.SubElement(root, cbc("IssueDate")).text = geracao.strftime("%Y-%m-%d")

    _build_signature_reference(root, emissor)

    supplier = etree.SubElement(root, cac("AccountingSupplierParty"))
    etree.SubElement(supplier, cbc("CustomerAssignedAccountID")).text = emissor["ruc"]
    etree.SubElement(supplier, cbc("AdditionalAccountID")).text = DOC_IDENTIDADE_RUC
    party = etree.SubElement(supplier, cac("Party"))
    legal = etree.SubElement(party, cac("PartyLegalEntity"))
    etree.SubElement(legal, cbc("RegistrationName")).text = emissor["razao_social"]

    for indice, numero in enumerate(baixa.documentos, start=1):
        serie, correlativo = numero.split("-", 1)
        linha = etree.SubElement(root, sac("VoidedDocumentsLine"))
        etree.SubElement(linha, cbc("LineID")).text = str(indice)
        etree.SubElement(linha, cbc("DocumentTypeCode")).text = TIPO_DOCUMENTO_CODIGO["BOLETA"]
        etree.SubElement(linha, sac("DocumentSerialID")).text = serie
        etree.SubElement(linha, sac("DocumentNumberID")).text = correlativo
        etree.SubElement(linha, sac("VoidReasonDescription")).text = baixa.motivo

    return _serializar(root)
