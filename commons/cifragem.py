# commons/cifragem.py
"""
Cifragem simétrica de segredos em repouso (senha do certificado,
senha SOL da autoridade tributária).

Usa Fernet (AES-128-CBC + HMAC-SHA256) da lib cryptography. A chave vem de
settings.FISCAL["CHAVE_CIFRAGEM"]; quando vazia, é derivada do SECRET_KEY
(suficiente para dev/teste, NÃO para produção).
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings


class CifragemError(Exception):
    """
    Segredo cifrado corrompido ou cifrado com outra chave.
    """

    def __init__(self, mensagem: str = "Não foi possível decifrar o segredo armazenado."):
        self.mensagem = mensagem
        super().__init__(mensagem)


def _chave_fernet() -> bytes:
    chave = (getattr(settings, "FISCAL", {}) or {}).get("CHAVE_CIFRAGEM")
    if chave:
        return chave.encode("utf-8")

    digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def cifrar(texto: str) -> str:
    return Fernet(_chave_fernet()).encrypt(texto.encode("utf-8")).decode("ascii")


def decifrar(token: str) -> str:
    try:
        return Fernet(_chave_fernet()).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError) as exc:
        raise CifragemError() from exc
