import logging

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from rest_framework.test import APIClient

from commons.tests.helpers import RUC_A, RUC_B, SENHA_PFX, gerar_pfx, payload_boleta, payload_fatura, recibo
from fiscal.exceptions import AutoridadeTechnicalError
from fiscal.models import DocumentoEletronico, DocumentoStatus


def _gerar(client, tenant_id=RUC_A, tipo="BOLETA", payload=None):
    body = {"tenant_id": tenant_id, "tipo": tipo, **(payload or payload_boleta())}
    return client.post(reverse("fiscal:documentos_gerar"), body, format="json")


# -------------------------------------------------------------------------
# Autenticação / isolamento
# -------------------------------------------------------------------------


@pytest.mark.django_db
@pytest.mark.parametrize(
    "rota, metodo",
    [
        ("fiscal:documentos_gerar", "post"),
        ("fiscal:documentos_enviar", "post"),
        ("fiscal:documentos_listar", "get"),
        ("fiscal:documentos_nota_credito", "post"),
        ("fiscal:certificados_carregar", "post"),
    ],
)
def test_endpoints_exigem_jwt(rota, metodo):
    resp = getattr(APIClient(), metodo)(reverse(rota), {}, format="json")

    assert resp.status_code == 401


@pytest.mark.django_db
def test_tenant_de_outro_usuario_responde_404(api_client_a, tenant_b, caplog):
    with caplog.at_level(logging.WARNING, logger="fiscal.api"):
        resp = _gerar(api_client_a, tenant_id=RUC_B)

    assert resp.status_code == 404
    assert resp.json()["code"] == "FISCAL_4101"
    assert DocumentoEletronico.objects.count() == 0

    registro = next(r for r in caplog.records if r.getMessage() == "tenant_divergente")
    assert registro.tenant_id == RUC_B
    assert registro.tenant_usuario == RUC_A


@pytest.mark.django_db
def test_status_de_documento_de_outro_tenant_e_404(api_client_a, api_client_b, servicos_api):
    numero = _gerar(api_client_a).json()["numero"]

    resp = api_client_b.get(
        reverse("fiscal:documentos_status", kwargs={"numero": numero}), {"tenant_id": RUC_B}
    )

    assert resp.status_code == 404
    assert resp.json()["code"] == "FISCAL_4100"


# -------------------------------------------------------------------------
# Geração
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_gerar_boleta_201(api_client_a):
    resp = _gerar(api_client_a)

    assert resp.status_code == 201
    body = resp.json()
    assert body["numero"] == "B001-00000001"
    assert body["status"] == DocumentoStatus.PENDENTE
    assert body["total"] == "60.18"


@pytest.mark.django_db
def test_gerar_payload_invalido_400_com_campo(api_client_a):
    resp = _gerar(api_client_a, tipo="FATURA", payload=payload_fatura(
        receptor={"tipo_documento": "6", "numero_documento": "123", "nome": "X"}
    ))

    assert resp.status_code == 400
    assert resp.json() == {
        "code": "FISCAL_1001",
        "message": "RUC do receptor deve conter exatamente 11 dígitos.",
        "field": "receptor.numero_documento",
    }


@pytest.mark.django_db
def test_gerar_nota_credito_direto_nao_e_permitido(api_client_a):
    resp = _gerar(api_client_a, tipo="NOTA_CREDITO")

    assert resp.status_code == 400
    assert "tipo" in resp.json()


# -------------------------------------------------------------------------
# Envio / status
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_enviar_200_e_status_com_url_do_recibo(api_client_a, certificado_a):
    numero = _gerar(api_client_a).json()["numero"]

    resp = api_client_a.post(
        reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json"
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == DocumentoStatus.ACEITO
    assert resp.json()["total_tentativas"] == 1

    status_resp = api_client_a.get(
        reverse("fiscal:documentos_status", kwargs={"numero": numero}), {"tenant_id": RUC_A}
    )
    assert status_resp.status_code == 200
    assert status_resp.json()["recibo"]["url_download"].endswith(f"R-{numero}.xml")


@pytest.mark.django_db
def test_enviar_reenvio_esgotado_503(api_client_a, certificado_a, autoridade):
    numero = _gerar(api_client_a).json()["numero"]
    autoridade.roteirizar(*[AutoridadeTechnicalError("connect ECONNREFUSED") for _ in range(4)])

    resp = api_client_a.post(
        reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json"
    )

    assert resp.status_code == 503
    body = resp.json()
    assert body["code"] == "FISCAL_5004"
    assert body["total_tentativas"] == 4
    assert len(body["log_erros"]) == 4
    assert DocumentoEletronico.objects.get(tenant_id=RUC_A, numero=numero).status == DocumentoStatus.PENDENTE


@pytest.mark.django_db
def test_enviar_recibo_nao_processado_500_volta_para_pendente(
    api_client_a, servicos, certificado_a, autoridade, monkeypatch
):
    numero = _gerar(api_client_a).json()["numero"]

    def falha(tenant_id, numero, recibo):
        raise OSError("disco cheio")

    monkeypatch.setattr(servicos.pipeline.interpretador, "processar", falha)

    resp = api_client_a.post(
        reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json"
    )

    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "FISCAL_5005"
    assert body["total_tentativas"] == 1
    assert body["log_erros"][-1]["classificacao"] == "RECIBO_NAO_PROCESSADO"
    assert DocumentoEletronico.objects.get(tenant_id=RUC_A, numero=numero).status == DocumentoStatus.PENDENTE


@pytest.mark.django_db
def test_enviar_documento_ja_aceito_400(api_client_a, certificado_a):
    numero = _gerar(api_client_a).json()["numero"]
    url = reverse("fiscal:documentos_enviar")
    api_client_a.post(url, {"tenant_id": RUC_A, "numero": numero}, format="json")

    resp = api_client_a.post(url, {"tenant_id": RUC_A, "numero": numero}, format="json")

    assert resp.status_code == 400
    assert resp.json()["code"] == "FISCAL_2002"


@pytest.mark.django_db
def test_enviar_sem_certificado_403(api_client_a):
    numero = _gerar(api_client_a).json()["numero"]

    resp = api_client_a.post(
        reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json"
    )

    assert resp.status_code == 403
    assert resp.json()["code"] == "FISCAL_3002"


@pytest.mark.django_db
def test_enviar_documento_inexistente_404(api_client_a):
    resp = api_client_a.post(
        reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": "B001-00000042"}, format="json"
    )

    assert resp.status_code == 404


@pytest.mark.django_db
def test_rejeicao_exposta_no_status(api_client_a, certificado_a, autoridade):
    numero = _gerar(api_client_a).json()["numero"]
    autoridade.roteirizar(recibo("2335", "El RUC del emisor no esta autorizado"))
    api_client_a.post(reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json")

    resp = api_client_a.get(reverse("fiscal:documentos_status", kwargs={"numero": numero}), {"tenant_id": RUC_A})

    assert resp.json()["status"] == DocumentoStatus.REJEITADO
    assert resp.json()["motivo_rejeicao"] == "El RUC del emisor no esta autorizado"


@pytest.mark.django_db
def test_reprocessar_pendentes_api(api_client_a, certificado_a, autoridade):
    numero = _gerar(api_client_a).json()["numero"]
    autoridade.roteirizar(*[AutoridadeTechnicalError("timeout", timeout=True) for _ in range(4)])
    api_client_a.post(reverse("fiscal:documentos_enviar"), {"tenant_id": RUC_A, "numero": numero}, format="json")

    resp = api_client_a.post(reverse("fiscal:documentos_reprocessar"), {"tenant_id": RUC_A}, format="json")

    assert resp.status_code == 200
    assert resp.json()["resultados"] == [
        {"numero": numero, "sucesso": True, "status": DocumentoStatus.ACEITO, "total_tentativas": 1}
    ]


# -------------------------------------------------------------------------
# Listagem
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_listar_com_filtros(api_client_a, api_client_b):
    _gerar(api_client_a)
    _gerar(api_client_a, tipo="FATURA", payload=payload_fatura())
    _gerar(api_client_b, tenant_id=RUC_B)
    url = reverse("fiscal:documentos_listar")

    todos = api_client_a.get(url, {"tenant_id": RUC_A})
    faturas = api_client_a.get(url, {"tenant_id": RUC_A, "tipo": "FATURA"})
    por_receptor = api_client_a.get(url, {"tenant_id": RUC_A, "receptor": "45678912"})

    assert {d["numero"] for d in todos.json()} == {"B001-00000001", "F001-00000001"}
    assert [d["numero"] for d in faturas.json()] == ["F001-00000001"]
    assert [d["numero"] for d in por_receptor.json()] == ["B001-00000001"]


@pytest.mark.django_db
def test_listar_filtro_invalido_400(api_client_a):
    resp = api_client_a.get(reverse("fiscal:documentos_listar"), {"tenant_id": RUC_A, "status": "PERDIDO"})

    assert resp.status_code == 400


# -------------------------------------------------------------------------
# Anulação
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_nota_credito_e_comunicacao_baixa_api(api_client_a, certificado_a):
    enviar = reverse("fiscal:documentos_enviar")
    fatura = _gerar(api_client_a, tipo="FATURA", payload=payload_fatura()).json()["numero"]
    boleta = _gerar(api_client_a).json()["numero"]
    for numero in (fatura, boleta):
        api_client_a.post(enviar, {"tenant_id": RUC_A, "numero": numero}, format="json")

    nota = api_client_a.post(
        reverse("fiscal:documentos_nota_credito"),
        {"tenant_id": RUC_A, "numero_referencia": fatura, "motivo": "Anulação", "codigo_motivo": "01"},
        format="json",
    )
    baixa = api_client_a.post(
        reverse("fiscal:documentos_comunicacao_baixa"),
        {"tenant_id": RUC_A, "numeros": [boleta], "motivo": "Erro de digitação"},
        format="json",
    )

    assert nota.status_code == 201
    assert nota.json()["documento_referencia"] == fatura
    assert nota.json()["tipo"] == "NOTA_CREDITO"
    assert baixa.status_code == 201
    assert baixa.json()["numero"] == "RA-20260310-1"


@pytest.mark.django_db
def test_nota_credito_de_fatura_nao_aceita_400(api_client_a):
    fatura = _gerar(api_client_a, tipo="FATURA", payload=payload_fatura()).json()["numero"]

    resp = api_client_a.post(
        reverse("fiscal:documentos_nota_credito"),
        {"tenant_id": RUC_A, "numero_referencia": fatura, "motivo": "Anulação", "codigo_motivo": "01"},
        format="json",
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "FISCAL_2006"


# -------------------------------------------------------------------------
# Certificado
# -------------------------------------------------------------------------


@pytest.mark.django_db
def test_upload_certificado_201(api_client_a):
    arquivo = SimpleUploadedFile("certificado.pfx", gerar_pfx(RUC_A), content_type="application/x-pkcs12")

    resp = api_client_a.post(
        reverse("fiscal:certificados_carregar"),
        {"tenant_id": RUC_A, "arquivo": arquivo, "senha": SENHA_PFX},
        format="multipart",
    )

    assert resp.status_code == 201
    assert resp.json()["titular_documento"] == RUC_A
    assert resp.json()["proximo_vencimento"] is False


@pytest.mark.django_db
def test_upload_certificado_senha_errada_400(api_client_a):
    arquivo = SimpleUploadedFile("certificado.pfx", gerar_pfx(RUC_A))

    resp = api_client_a.post(
        reverse("fiscal:certificados_carregar"),
        {"tenant_id": RUC_A, "arquivo": arquivo, "senha": "errada"},
        format="multipart",
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "FISCAL_3005"


@pytest.mark.django_db
def test_upload_certificado_de_outro_titular_403(api_client_a):
    arquivo = SimpleUploadedFile("certificado.pfx", gerar_pfx(RUC_A, titular=RUC_B))

    resp = api_client_a.post(
        reverse("fiscal:certificados_carregar"),
        {"tenant_id": RUC_A, "arquivo": arquivo, "senha": SENHA_PFX},
        format="multipart",
    )

    assert resp.status_code == 403
    assert resp.json()["code"] == "FISCAL_3004"
