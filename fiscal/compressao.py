# fiscal/compressao.py
"""
Empacotamento exigido pela autoridade: ZIP com uma única entrada XML.

Nome interno: {ruc}-{codigo_tipo}-{serie}-{sequencial 8 dígitos}.xml
    ex: 20123456789-03-B001-00000001.xml  (ZIP: mesmo nome com .zip)
"""

from __future__ import annotations

import io
import zipfile
from typing import Tuple


def nome_arquivo_xml(tenant_id: str, codigo_tipo: str, serie: str, sequencial: int) -> str:
    return f"{tenant_id}-{codigo_tipo}-{serie}-{sequencial:08d}.xml"


def compactar(nome_xml: str, conteudo: bytes | str) -> bytes:
    if isinstance(conteudo, str):
        conteudo = conteudo.encode("utf-8")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(nome_xml, conteudo)
    return buffer.getvalue()


def primeira_entrada(zip_bytes: bytes) -> Tuple[str, bytes]:
    """
    Nome e conteúdo da primeira entrada que não seja diretório.
    ValueError se o ZIP estiver vazio ou corrompido.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
            for info in zf.infolist():
                if not info.is_dir():
                    return info.filename, zf.read(info)
    except zipfile.BadZipFile as exc:
        raise ValueError(f"ZIP inválido: {exc}") from exc
    raise ValueError("ZIP sem arquivos.")


def nome_zip(nome_xml: str) -> str:
    if nome_xml.lower().endswith(".xml"):
        nome_xml = nome_xml[:-4]
    return f"{nome_xml}.zip"
