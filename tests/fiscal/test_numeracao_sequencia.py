import logging

import pytest

from commons.tests.helpers import RUC_A, RUC_B
from fiscal.models import SequenciaDocumento
from fiscal.services.numero_service import ContadorSequencia, formatar_numero


@pytest.mark.django_db
def test_primeira_chamada_comeca_em_um_e_avanca_sem_buracos():
    contador = ContadorSequencia()

    numeros = [contador.proximo(RUC_A, "BOLETA", "B001") for _ in range(3)]

    assert numeros == [1, 2, 3]
    assert [formatar_numero("B001", n) for n in numeros] == [
        "B001-00000001",
        "B001-00000002",
        "B001-00000003",
    ]
    assert SequenciaDocumento.objects.get(tenant_id=RUC_A, tipo="BOLETA", serie="B001").numero_atual == 3


@pytest.mark.django_db
def test_sequencias_independentes_por_tenant_tipo_e_serie():
    contador = ContadorSequencia()

    contador.proximo(RUC_A, "BOLETA", "B001")
    contador.proximo(RUC_A, "BOLETA", "B001")

    assert contador.proximo(RUC_A, "BOLETA", "B002") == 1
    assert contador.proximo(RUC_A, "FATURA", "B001") == 1
    assert contador.proximo(RUC_B, "BOLETA", "B001") == 1
    assert contador.proximo(RUC_A, "BOLETA", "B001") == 3


class ContadorComLeituraAtrasada(ContadorSequencia):
    """
    Simula outra chamada avançando a sequência entre a leitura e o update.
    """

    def __init__(self, avancos_concorrentes: int):
        super().__init__()
        self.avancos_concorrentes = avancos_concorrentes

    def _obter_ou_criar(self, tenant_id, tipo, serie):
        sequencia = super()._obter_ou_criar(tenant_id, tipo, serie)
        SequenciaDocumento.objects.filter(pk=sequencia.pk).update(
            numero_atual=sequencia.numero_atual + self.avancos_concorrentes
        )
        return sequencia


@pytest.mark.django_db
def test_leitura_atrasada_reles_e_nao_reutiliza_numero():
    ContadorSequencia().proximo(RUC_A, "BOLETA", "B001")  # numero_atual = 1

    contador = ContadorComLeituraAtrasada(avancos_concorrentes=2)
    numero = contador.proximo(RUC_A, "BOLETA", "B001")

    # outra chamada consumiu 2 e 3; esta recebe 4
    assert numero == 4
    assert SequenciaDocumento.objects.get(tenant_id=RUC_A, tipo="BOLETA", serie="B001").numero_atual == 4


@pytest.mark.django_db
def test_colisoes_excedidas_levanta_e_loga(caplog):
    contador = ContadorSequencia(max_colisoes=0)

    with caplog.at_level(logging.ERROR, logger="fiscal.numeracao"):
        with pytest.raises(RuntimeError):
            contador.proximo(RUC_A, "BOLETA", "B001")

    assert any(getattr(r, "event", None) == "sequencia_proximo" for r in caplog.records)


@pytest.mark.django_db
def test_falha_posterior_do_chamador_nao_devolve_numero():
    """
    Número reservado e depois "abandonado" deixa um buraco; a sequência
    nunca decrementa.
    """
    contador = ContadorSequencia()
    contador.proximo(RUC_A, "FATURA", "F001")
    contador.proximo(RUC_A, "FATURA", "F001")  # chamador falha depois daqui

    assert contador.proximo(RUC_A, "FATURA", "F001") == 3
