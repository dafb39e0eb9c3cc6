# conftest.py (na raiz do projeto)

import pytest
from django.apps import apps
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.files.storage import FileSystemStorage

from commons.tests.helpers import (
    RUC_A,
    RUC_B,
    SENHA_PFX,
    AutoridadeFake,
    RelogioFixo,
    client_jwt,
    criar_tenant,
    gerar_pfx,
    payload_boleta,
    payload_fatura,
)
from fiscal.repositories import RepositorioArquivos
from fiscal.services.container import construir_servicos


@pytest.fixture(autouse=True)
def _media_isolada(settings, tmp_path):
    """
    Cada teste grava os blobs fiscais num diretório próprio.
    """
    settings.MEDIA_ROOT = str(tmp_path / "media")


# =============================================================================
# TENANTS / USUÁRIOS
# =============================================================================


@pytest.fixture
def tenant_a(db):
    return criar_tenant(RUC_A, "Comercial Andina SAC")


@pytest.fixture
def tenant_b(db):
    return criar_tenant(RUC_B, "Distribuidora Pacífico SAC")


@pytest.fixture
def usuario_a(tenant_a):
    return get_user_model().objects.create_user(
        username="admin-a", password="senha-forte-a", tenant=tenant_a
    )


@pytest.fixture
def usuario_b(tenant_b):
    return get_user_model().objects.create_user(
        username="admin-b", password="senha-forte-b", tenant=tenant_b
    )


@pytest.fixture
def api_client_a(usuario_a, servicos_api):
    return client_jwt(usuario_a)


@pytest.fixture
def api_client_b(usuario_b, servicos_api):
    return client_jwt(usuario_b)


# =============================================================================
# SERVICES FISCAIS
# =============================================================================


@pytest.fixture
def relogio():
    return RelogioFixo()


@pytest.fixture
def autoridade():
    return AutoridadeFake()


@pytest.fixture
def dormidas():
    """
    Delays (segundos) pedidos pelo reenvio; nada dorme de verdade.
    """
    return []


@pytest.fixture
def config_fiscal():
    return {
        **settings.FISCAL,
        "REENVIO_MAX_TENTATIVAS": 3,
        "REENVIO_DELAY_INICIAL_MS": 1000,
        "REENVIO_MULTIPLICADOR": 2,
        "REENVIO_INTERROMPER_NAO_RECUPERAVEL": False,
    }


@pytest.fixture
def servicos(db, config_fiscal, relogio, autoridade, dormidas):
    return construir_servicos(
        config_fiscal,
        relogio=relogio,
        autoridade_client=autoridade,
        arquivos=RepositorioArquivos(FileSystemStorage(location=settings.MEDIA_ROOT)),
        dormir=dormidas.append,
    )


@pytest.fixture
def servicos_api(servicos, monkeypatch):
    """
    Faz as views usarem o mesmo bundle dos testes.
    """
    monkeypatch.setattr(apps.get_app_config("fiscal"), "servicos", servicos)
    return servicos


@pytest.fixture
def certificado_a(servicos, tenant_a):
    return servicos.certificados.carregar(RUC_A, gerar_pfx(RUC_A), SENHA_PFX)


@pytest.fixture
def certificado_b(servicos, tenant_b):
    return servicos.certificados.carregar(RUC_B, gerar_pfx(RUC_B), SENHA_PFX)


# =============================================================================
# DOCUMENTOS
# =============================================================================


@pytest.fixture
def boleta_a(servicos, tenant_a):
    return servicos.gerador.gerar(RUC_A, "BOLETA", payload_boleta())


@pytest.fixture
def fatura_a(servicos, tenant_a):
    return servicos.gerador.gerar(RUC_A, "FATURA", payload_fatura())
