# fiscal/services/numero_service.py
from __future__ import annotations

import logging

from django.db import IntegrityError, transaction

from fiscal.models import SequenciaDocumento

logger = logging.getLogger("fiscal.numeracao")


def formatar_numero(serie: str, sequencial: int) -> str:
    """
    B001 + 1 -> "B001-00000001"
    """
    return f"{serie}-{sequencial:08d}"


class ContadorSequencia:
    """
    Numeração monotônica por (tenant_id, tipo, série).

    Regras:
      - Começa em 1 quando a sequência ainda não existe.
      - Estritamente crescente; nunca decrementa, mesmo se o chamador
        falhar depois (buracos são tolerados).
      - Avanço por compare-and-increment no banco:
            UPDATE ... SET numero_atual = n + 1 WHERE id = ? AND numero_atual = n
        Se outra chamada avançou antes (0 linhas afetadas), relê e tenta de novo.
      - Criação concorrente da linha absorvida com savepoint + IntegrityError.
    """

    def __init__(self, *, max_colisoes: int = 50):
        self.max_colisoes = max_colisoes

    def _obter_ou_criar(self, tenant_id: str, tipo: str, serie: str) -> SequenciaDocumento:
        try:
            return SequenciaDocumento.objects.get(tenant_id=tenant_id, tipo=tipo, serie=serie)
        except SequenciaDocumento.DoesNotExist:
            pass

        # savepoint interno: se outra chamada já criou a mesma chave,
        # o IntegrityError não "quebra" uma transação externa.
        try:
            with transaction.atomic():
                return SequenciaDocumento.objects.create(
                    tenant_id=tenant_id,
                    tipo=tipo,
                    serie=serie,
                    numero_atual=0,
                )
        except IntegrityError:
            return SequenciaDocumento.objects.get(tenant_id=tenant_id, tipo=tipo, serie=serie)

    def proximo(self, tenant_id: str, tipo: str, serie: str) -> int:
        sequencia = self._obter_ou_criar(tenant_id, tipo, serie)
        atual = sequencia.numero_atual

        for tentativa in range(1, self.max_colisoes + 1):
            atualizados = SequenciaDocumento.objects.filter(
                pk=sequencia.pk,
                numero_atual=atual,
            ).update(numero_atual=atual + 1)

            if atualizados == 1:
                logger.debug(
                    "sequencia_avancada",
                    extra={
                        "event": "sequencia_proximo",
                        "tenant_id": tenant_id,
                        "tipo": tipo,
                        "serie": serie,
                        "numero": atual + 1,
                        "colisoes": tentativa - 1,
                    },
                )
                return atual + 1

            # Outra chamada avançou primeiro: relê o valor corrente.
            atual = (
                SequenciaDocumento.objects.filter(pk=sequencia.pk)
                .values_list("numero_atual", flat=True)
                .get()
            )

        logger.error(
            "sequencia_colisoes_excedidas",
            extra={
                "event": "sequencia_proximo",
                "tenant_id": tenant_id,
                "tipo": tipo,
                "serie": serie,
                "colisoes": self.max_colisoes,
            },
        )
        raise RuntimeError(
            f"Não foi possível reservar número para {tenant_id}/{tipo}/{serie} "
            f"após {self.max_colisoes} colisões."
        )
