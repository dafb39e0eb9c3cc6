import logging
from decimal import Decimal

import pytest
from lxml import etree

from commons.tests.helpers import RUC_A, payload_boleta, payload_fatura
from fiscal.exceptions import DadosInvalidosError, TenantInativoError, TenantNaoEncontradoError
from fiscal.models import DocumentoAuditoria, DocumentoEletronico, DocumentoStatus, SequenciaDocumento
from fiscal.repositories import RepositorioArquivos
from fiscal.ubl.namespaces import CBC_NS, INVOICE_NS
from fiscal.validators import validar_ruc


def _cbc(raiz, tag):
    return raiz.find(f"{{{CBC_NS}}}{tag}").text


@pytest.mark.django_db
def test_gerar_boleta_persiste_pendente_com_totais_e_xml(servicos, tenant_a, caplog):
    with caplog.at_level(logging.INFO, logger="fiscal.geracao"):
        documento = servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta())

    assert documento.numero == "B001-00000001"
    assert documento.status == DocumentoStatus.PENDENTE
    assert documento.serie == "B001"
    assert documento.sequencial == 1

    # 2 x 25.50 = 51.00; IGV 18% = 9.18
    assert documento.subtotal == Decimal("51.00")
    assert documento.imposto == Decimal("9.18")
    assert documento.total == Decimal("60.18")
    assert documento.moeda == "PEN"

    raiz = etree.fromstring(documento.xml_original.encode("utf-8"))
    assert raiz.tag == f"{{{INVOICE_NS}}}Invoice"
    assert _cbc(raiz, "ID") == "B001-00000001"
    assert _cbc(raiz, "InvoiceTypeCode") == "03"
    assert _cbc(raiz, "DocumentCurrencyCode") == "PEN"

    chave = RepositorioArquivos.chave(RUC_A, "xml", "B001-00000001.xml")
    assert servicos.arquivos.ler(RUC_A, chave).decode("utf-8") == documento.xml_original

    assert DocumentoAuditoria.objects.filter(
        tenant_id=RUC_A, numero="B001-00000001", tipo_evento="GERADO"
    ).exists()

    registro = next(r for r in caplog.records if getattr(r, "event", None) == "gerar_documento")
    assert registro.tenant_id == RUC_A
    assert registro.outcome == "success"


@pytest.mark.django_db
def test_fatura_soma_itens_gravados_e_exonerados(servicos, tenant_a):
    documento = servicos.gerador.gerar(RUC_A, "FATURA", payload_fatura())

    # 1000.00 (IGV 180.00) + 3 x 40.00 exonerado
    assert documento.numero == "F001-00000001"
    assert documento.subtotal == Decimal("1120.00")
    assert documento.imposto == Decimal("180.00")
    assert documento.total == Decimal("1300.00")
    assert [item["descricao"] for item in documento.itens] == ["Serviço de consultoria", "Livro técnico"]


@pytest.mark.django_db
def test_total_e_imposto_do_item_informados_prevalecem(servicos, tenant_a):
    payload = payload_boleta(itens=[
        {
            "descricao": "Pacote promocional",
            "quantidade": "3",
            "preco_unitario": "10.00",
            "codigo_afetacao": "10",
            "total": "27.00",
            "imposto": "4.86",
        },
    ])

    documento = servicos.gerador.gerar(RUC_A, "BOLETA", payload)

    assert documento.subtotal == Decimal("27.00")
    assert documento.imposto == Decimal("4.86")
    assert documento.total == Decimal("31.86")


@pytest.mark.django_db
def test_serie_informada_e_moeda_usd(servicos, tenant_a):
    documento = servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta(serie="b002", moeda="usd"))

    assert documento.numero == "B002-00000001"
    assert documento.moeda == "USD"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "tipo, payload, campo",
    [
        ("BOLETA", payload_boleta(itens=[]), "itens"),
        ("BOLETA", payload_boleta(receptor={"tipo_documento": "1", "numero_documento": "123", "nome": "X"}),
         "receptor.numero_documento"),
        ("FATURA", payload_fatura(receptor={"tipo_documento": "1", "numero_documento": "45678912", "nome": "X"}),
         "receptor.tipo_documento"),
        ("BOLETA", payload_boleta(receptor={"tipo_documento": "1", "numero_documento": "45678912", "nome": ""}),
         "receptor.nome"),
        ("BOLETA", payload_boleta(receptor={"tipo_documento": "1", "numero_documento": "٤٥٦٧٨٩١٢", "nome": "X"}),
         "receptor.numero_documento"),
        ("FATURA", payload_fatura(receptor={"tipo_documento": "6", "numero_documento": "٢٠٥٥٥٦٦٦٧٧٧", "nome": "X"}),
         "receptor.numero_documento"),
        ("BOLETA", payload_boleta(itens=[{"descricao": "A", "quantidade": "0", "preco_unitario": "1.00",
                                          "codigo_afetacao": "10"}]), "itens[0].quantidade"),
        ("BOLETA", payload_boleta(itens=[{"descricao": "A", "quantidade": "1", "preco_unitario": "1.005",
                                          "codigo_afetacao": "10"}]), "itens[0].preco_unitario"),
        ("BOLETA", payload_boleta(itens=[{"descricao": "A", "quantidade": "1", "preco_unitario": "abc",
                                          "codigo_afetacao": "10"}]), "itens[0].preco_unitario"),
        ("BOLETA", payload_boleta(itens=[{"descricao": "A", "quantidade": "1", "preco_unitario": "1.00",
                                          "codigo_afetacao": "99"}]), "itens[0].codigo_afetacao"),
        ("BOLETA", payload_boleta(moeda="EUR"), "moeda"),
        ("BOLETA", payload_boleta(serie="B-1"), "serie"),
        ("RECIBO", payload_boleta(), "tipo"),
    ],
)
def test_payload_invalido_nao_consome_numero_nem_grava(servicos, tenant_a, tipo, payload, campo):
    with pytest.raises(DadosInvalidosError) as exc:
        servicos.gerador.gerar(RUC_A, tipo, payload)

    assert exc.value.campo == campo
    assert exc.value.as_detail()["field"] == campo
    assert DocumentoEletronico.objects.count() == 0
    assert SequenciaDocumento.objects.count() == 0


@pytest.mark.django_db
def test_nota_credito_sem_referencia_e_recusada(servicos, tenant_a):
    with pytest.raises(DadosInvalidosError) as exc:
        servicos.gerador.gerar(RUC_A, "NOTA_CREDITO", payload_fatura())

    assert exc.value.campo == "documento_referencia"


@pytest.mark.django_db
def test_tenant_inexistente_ou_inativo(servicos, tenant_a):
    with pytest.raises(TenantNaoEncontradoError):
        servicos.gerador.gerar("20000000001", "BOLETA", payload_boleta())

    tenant_a.ativo = False
    tenant_a.save(update_fields=["ativo"])

    with pytest.raises(TenantInativoError):
        servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta())

    assert DocumentoEletronico.objects.count() == 0


@pytest.mark.django_db
def test_snapshot_do_emissor_congelado_no_documento(servicos, tenant_a):
    documento = servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta())

    tenant_a.razao_social = "Nova Razão SAC"
    tenant_a.save(update_fields=["razao_social"])

    documento.refresh_from_db()
    assert documento.emissor["ruc"] == RUC_A
    assert documento.emissor["razao_social"] == "Comercial Andina SAC"


@pytest.mark.django_db
def test_numeracao_continua_entre_geracoes(servicos, tenant_a):
    numeros = [servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta()).numero for _ in range(3)]

    assert numeros == ["B001-00000001", "B001-00000002", "B001-00000003"]


@pytest.mark.parametrize("valor", ["٢٠١٢٣٤٥٦٧٨٩", "2012345678", "201234567890", "2012345678a"])
def test_ruc_exige_onze_digitos_ascii(valor):
    with pytest.raises(DadosInvalidosError) as exc:
        validar_ruc(valor)

    assert exc.value.campo == "tenant_id"


def test_ruc_valido_e_normalizado():
    assert validar_ruc(f" {RUC_A} ") == RUC_A
