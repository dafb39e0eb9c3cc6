# commons/tests/helpers.py
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from fiscal.autoridade_clients import Recibo
from tenants.models import Tenant

RUC_A = "20123456789"
RUC_B = "20987654321"
SENHA_PFX = "senha-do-pfx"

AGORA = datetime(2026, 3, 10, 15, 30, tzinfo=dt_timezone.utc)


class RelogioFixo:
    def __init__(self, instante: datetime = AGORA):
        self.instante = instante

    def agora(self) -> datetime:
        return self.instante

    def avancar(self, **kwargs) -> None:
        self.instante = self.instante + timedelta(**kwargs)


class AutoridadeFake:
    """
    Client da autoridade com roteiro: cada chamada consome o próximo item de
    `respostas` (Recibo é devolvido, exceção é levantada). Sem roteiro, aceita.
    """

    def __init__(self, respostas: Optional[list] = None):
        self.respostas = list(respostas or [])
        self.chamadas: List[dict] = []

    def roteirizar(self, *respostas) -> None:
        self.respostas.extend(respostas)

    def _proxima(self, padrao: Recibo) -> Recibo:
        if not self.respostas:
            return padrao
        resposta = self.respostas.pop(0)
        if isinstance(resposta, BaseException):
            raise resposta
        return resposta

    def enviar(self, tenant_id, credenciais, zip_bytes):
        self.chamadas.append({
            "op": "enviar",
            "tenant_id": tenant_id,
            "credenciais": credenciais,
            "zip": zip_bytes,
        })
        return self._proxima(
            Recibo(codigo="0", mensagem="La Factura ha sido aceptada", xml="<cdr>0</cdr>", recebido_em=AGORA)
        )

    def consultar_ticket(self, tenant_id, credenciais, ticket):
        self.chamadas.append({"op": "consultar_ticket", "tenant_id": tenant_id, "ticket": ticket})
        return self._proxima(
            Recibo(codigo="0", mensagem="Aceito", xml="<cdr>0</cdr>", recebido_em=AGORA, ticket=ticket)
        )


def recibo(codigo: str, mensagem: str = "", **kwargs) -> Recibo:
    kwargs.setdefault("xml", f"<cdr>{codigo}</cdr>")
    kwargs.setdefault("recebido_em", AGORA)
    return Recibo(codigo=codigo, mensagem=mensagem, **kwargs)


# -------------------------------------------------------------------------
# Certificado PKCS#12 autoassinado
# -------------------------------------------------------------------------

_CHAVE_RSA = None


def chave_rsa():
    global _CHAVE_RSA
    if _CHAVE_RSA is None:
        _CHAVE_RSA = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return _CHAVE_RSA


def gerar_pfx(
    ruc: str,
    *,
    valido_desde: datetime = AGORA - timedelta(days=365),
    valido_ate: datetime = AGORA + timedelta(days=365),
    senha: str = SENHA_PFX,
    titular: Optional[str] = None,
) -> bytes:
    """
    PKCS#12 com chave RSA e certificado cujo SERIAL_NUMBER traz o RUC
    do titular (padrão: o próprio `ruc`).
    """
    chave = chave_rsa()
    nome = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "PE"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Empresa Teste SAC"),
        x509.NameAttribute(NameOID.SERIAL_NUMBER, f"RUC{titular or ruc}"),
        x509.NameAttribute(NameOID.COMMON_NAME, "Certificado de Teste"),
    ])
    certificado = (
        x509.CertificateBuilder()
        .subject_name(nome)
        .issuer_name(nome)
        .public_key(chave.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valido_desde)
        .not_valid_after(valido_ate)
        .sign(chave, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"teste",
        chave,
        certificado,
        None,
        serialization.BestAvailableEncryption(senha.encode("utf-8")),
    )


# -------------------------------------------------------------------------
# Tenants / clients
# -------------------------------------------------------------------------


def criar_tenant(ruc: str, razao_social: str, *, credenciais: bool = True, **extra) -> Tenant:
    tenant = Tenant(
        tenant_id=ruc,
        razao_social=razao_social,
        nome_fantasia=razao_social.split()[0],
        logradouro="Av. Arequipa 123",
        distrito="Miraflores",
        provincia="Lima",
        departamento="Lima",
        ubigeo="150122",
        **extra,
    )
    if credenciais:
        tenant.usuario_autoridade = "MODDATOS"
        tenant.definir_senha_autoridade("moddatos")
    tenant.save()
    return tenant


def client_jwt(user) -> APIClient:
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {RefreshToken.for_user(user).access_token}")
    return client


# -------------------------------------------------------------------------
# Payloads de geração
# -------------------------------------------------------------------------


def payload_boleta(**extra) -> dict:
    payload = {
        "receptor": {"tipo_documento": "1", "numero_documento": "45678912", "nome": "Ana Quispe"},
        "itens": [
            {
                "descricao": "Café orgânico 500g",
                "quantidade": "2",
                "preco_unitario": "25.50",
                "codigo_afetacao": "10",
            },
        ],
    }
    payload.update(extra)
    return payload


def payload_fatura(**extra) -> dict:
    payload = {
        "receptor": {"tipo_documento": "6", "numero_documento": "20555666777", "nome": "Cliente SAC"},
        "itens": [
            {
                "descricao": "Serviço de consultoria",
                "quantidade": "1",
                "preco_unitario": "1000.00",
                "codigo_afetacao": "10",
            },
            {
                "descricao": "Livro técnico",
                "quantidade": "3",
                "preco_unitario": "40.00",
                "codigo_afetacao": "20",
            },
        ],
    }
    payload.update(extra)
    return payload
