from datetime import date
from decimal import Decimal

import pytest
from lxml import etree

from commons.tests.helpers import RUC_A, RUC_B, payload_boleta
from fiscal.exceptions import DadosInvalidosError, DocumentoNaoAnulavelError, DocumentoNaoEncontradoError
from fiscal.models import ComunicacaoBaixa, DocumentoAuditoria, DocumentoStatus, SequenciaDocumento
from fiscal.ubl.namespaces import CAC_NS, CBC_NS, CREDIT_NOTE_NS, SAC_NS, VOIDED_NS

NS = {"cac": CAC_NS, "cbc": CBC_NS, "sac": SAC_NS}


@pytest.fixture
def fatura_aceita(servicos, certificado_a, fatura_a):
    servicos.pipeline.enviar(RUC_A, fatura_a.numero)
    fatura_a.refresh_from_db()
    assert fatura_a.status == DocumentoStatus.ACEITO
    return fatura_a


@pytest.fixture
def boletas_aceitas(servicos, certificado_a, tenant_a):
    boletas = []
    for _ in range(2):
        boleta = servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta())
        servicos.pipeline.enviar(RUC_A, boleta.numero)
        boletas.append(boleta)
    return boletas


# -------------------------------------------------------------------------
# Nota de crédito
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_nota_credito_referencia_fatura_e_nao_altera_original(servicos, fatura_aceita):
    nota = servicos.anulacao.gerar_nota_credito(RUC_A, fatura_aceita.numero, "Anulação da operação", "01")

    assert nota.numero == "NC01-00000001"
    assert nota.tipo == "NOTA_CREDITO"
    assert nota.status == DocumentoStatus.PENDENTE
    assert nota.documento_referencia == fatura_aceita.numero
    assert nota.codigo_motivo_referencia == "01"
    assert nota.total == fatura_aceita.total
    assert nota.receptor == fatura_aceita.receptor

    raiz = etree.fromstring(nota.xml_original.encode("utf-8"))
    assert raiz.tag == f"{{{CREDIT_NOTE_NS}}}CreditNote"
    assert raiz.findtext("cac:DiscrepancyResponse/cbc:ReferenceID", namespaces=NS) == fatura_aceita.numero
    assert raiz.findtext("cac:DiscrepancyResponse/cbc:ResponseCode", namespaces=NS) == "01"
    assert raiz.findtext(
        "cac:BillingReference/cac:InvoiceDocumentReference/cbc:DocumentTypeCode", namespaces=NS
    ) == "01"

    original = servicos.documentos.obter(RUC_A, fatura_aceita.numero)
    assert original.status == DocumentoStatus.ACEITO
    assert original.xml_original == fatura_aceita.xml_original


@pytest.mark.django_db
def test_nota_credito_parcial_com_itens_informados(servicos, fatura_aceita):
    itens = [{"descricao": "Devolução parcial", "quantidade": "1", "preco_unitario": "100.00",
              "codigo_afetacao": "10"}]

    nota = servicos.anulacao.gerar_nota_credito(RUC_A, fatura_aceita.numero, "Devolução", "07", itens=itens)

    assert nota.total == Decimal("118.00")


@pytest.mark.django_db
def test_nota_credito_segue_pipeline_de_envio(servicos, fatura_aceita):
    nota = servicos.anulacao.gerar_nota_credito(RUC_A, fatura_aceita.numero, "Anulação", "01")

    resultado = servicos.pipeline.enviar(RUC_A, nota.numero)

    assert resultado.status == DocumentoStatus.ACEITO


@pytest.mark.django_db
@pytest.mark.parametrize(
    "motivo, codigo, campo",
    [("", "01", "motivo"), ("x" * 251, "01", "motivo"), ("Anulação", "99", "codigo_motivo")],
)
def test_nota_credito_dados_invalidos(servicos, fatura_aceita, motivo, codigo, campo):
    with pytest.raises(DadosInvalidosError) as exc:
        servicos.anulacao.gerar_nota_credito(RUC_A, fatura_aceita.numero, motivo, codigo)

    assert exc.value.campo == campo


@pytest.mark.django_db
def test_nota_credito_exige_fatura_aceita(servicos, fatura_a, boleta_a):
    with pytest.raises(DocumentoNaoAnulavelError):
        servicos.anulacao.gerar_nota_credito(RUC_A, fatura_a.numero, "Anulação", "01")

    with pytest.raises(DadosInvalidosError) as exc:
        servicos.anulacao.gerar_nota_credito(RUC_A, boleta_a.numero, "Anulação", "01")
    assert exc.value.campo == "numero_referencia"


@pytest.mark.django_db
def test_nota_credito_de_fatura_de_outro_tenant(servicos, fatura_aceita, tenant_b):
    with pytest.raises(DocumentoNaoEncontradoError):
        servicos.anulacao.gerar_nota_credito(RUC_B, fatura_aceita.numero, "Anulação", "01")


# -------------------------------------------------------------------------
# Comunicação de baixa
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_comunicacao_baixa_de_boletas_aceitas(servicos, boletas_aceitas):
    numeros = [b.numero for b in boletas_aceitas]

    baixa = servicos.anulacao.gerar_comunicacao_baixa(RUC_A, numeros, "Erro de digitação")

    assert baixa.numero == "RA-20260310-1"
    assert baixa.data_baixa == date(2026, 3, 10)
    assert baixa.documentos == numeros

    raiz = etree.fromstring(baixa.xml_original.encode("utf-8"))
    assert raiz.tag == f"{{{VOIDED_NS}}}VoidedDocuments"
    linhas = raiz.findall("sac:VoidedDocumentsLine", NS)
    assert [linha.findtext("sac:DocumentNumberID", namespaces=NS) for linha in linhas] == [
        "00000001",
        "00000002",
    ]

    assert servicos.arquivos.existe(RUC_A, f"{RUC_A}/baixas/{baixa.numero}.xml")
    assert DocumentoAuditoria.objects.filter(tenant_id=RUC_A, tipo_evento="BAIXA_GERADA").count() == 1

    # boletas originais continuam ACEITO
    assert {servicos.documentos.obter(RUC_A, n).status for n in numeros} == {DocumentoStatus.ACEITO}


@pytest.mark.django_db
def test_comunicacao_baixa_numeracao_por_dia(servicos, boletas_aceitas):
    primeira = servicos.anulacao.gerar_comunicacao_baixa(RUC_A, [boletas_aceitas[0].numero], "Erro")
    segunda = servicos.anulacao.gerar_comunicacao_baixa(RUC_A, [boletas_aceitas[1].numero], "Erro")
    outro_dia = servicos.anulacao.gerar_comunicacao_baixa(
        RUC_A, [boletas_aceitas[1].numero], "Erro", data_baixa=date(2026, 3, 9)
    )

    assert [primeira.numero, segunda.numero, outro_dia.numero] == [
        "RA-20260310-1",
        "RA-20260310-2",
        "RA-20260309-1",
    ]
    contadores = SequenciaDocumento.objects.filter(tenant_id=RUC_A, tipo="VOID")
    assert sorted(contadores.values_list("serie", "numero_atual")) == [("RA-20260309", 1), ("RA-20260310", 2)]


@pytest.mark.django_db
def test_comunicacao_baixa_recusa_fatura_e_boleta_pendente(servicos, fatura_aceita, boleta_a):
    with pytest.raises(DadosInvalidosError):
        servicos.anulacao.gerar_comunicacao_baixa(RUC_A, [fatura_aceita.numero], "Erro")

    with pytest.raises(DocumentoNaoAnulavelError):
        servicos.anulacao.gerar_comunicacao_baixa(RUC_A, [boleta_a.numero], "Erro")

    assert not ComunicacaoBaixa.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize(
    "numeros, motivo, campo",
    [
        ([], "Erro", "numeros"),
        (["B001-00000001", "B001-00000001"], "Erro", "numeros"),
        (["B001-00000001"], "", "motivo"),
        (["B001-00000001"], "x" * 101, "motivo"),
    ],
)
def test_comunicacao_baixa_dados_invalidos(servicos, boletas_aceitas, numeros, motivo, campo):
    with pytest.raises(DadosInvalidosError) as exc:
        servicos.anulacao.gerar_comunicacao_baixa(RUC_A, numeros, motivo)

    assert exc.value.campo == campo
