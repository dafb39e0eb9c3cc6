# fiscal/autoridade_factory.py
"""
Factory do client da autoridade tributária.

Isola a escolha do client (mock ou SOAP real) e do ambiente
(homologação/produção) em um único ponto, lido de settings.FISCAL.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Type

from django.conf import settings

from fiscal.autoridade_clients import (
    AutoridadeClientProtocol,
    MockAutoridadeClient,
    MockAutoridadeClientAlwaysFail,
    SunatSoapClient,
)
from fiscal.relogio import Relogio

CLIENT_CLASS_POR_NOME: dict[str, Type[AutoridadeClientProtocol]] = {
    "mock": MockAutoridadeClient,
    "mock_falha": MockAutoridadeClientAlwaysFail,
    "soap": SunatSoapClient,
}


def normalizar_ambiente(ambiente: str | None) -> str:
    """
    Aceita variações comuns e devolve "homologacao" ou "producao".
    """
    if not ambiente:
        return "homologacao"

    amb = ambiente.strip().lower()
    if amb in {"homolog", "homologacao", "homologação", "beta", "teste"}:
        return "homologacao"
    if amb in {"prod", "producao", "produção"}:
        return "producao"

    raise ValueError(f"Ambiente fiscal desconhecido: {ambiente!r}")


def get_autoridade_client(
    config: Optional[Mapping[str, Any]] = None,
    *,
    relogio: Optional[Relogio] = None,
) -> AutoridadeClientProtocol:
    config = config if config is not None else settings.FISCAL

    nome = (config.get("AUTORIDADE_CLIENT") or "mock").strip().lower()
    try:
        client_class = CLIENT_CLASS_POR_NOME[nome]
    except KeyError:
        raise ValueError(f"Client de autoridade desconhecido: {nome!r}")

    ambiente = normalizar_ambiente(config.get("AMBIENTE"))

    if client_class is SunatSoapClient:
        return SunatSoapClient(
            ambiente=ambiente,
            timeout=int(config.get("AUTORIDADE_TIMEOUT", 60)),
            relogio=relogio,
        )
    return client_class(ambiente=ambiente, relogio=relogio)
