# fiscal/relogio.py
"""
Relógio injetável: services recebem um Relogio no construtor em vez de
chamar timezone.now() diretamente (validade de certificado, carimbos do
log de reenvio, data de recebimento do recibo).
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from django.utils import timezone


class Relogio(Protocol):
    def agora(self) -> datetime:
        ...


class RelogioSistema:
    def agora(self) -> datetime:
        return timezone.now()
