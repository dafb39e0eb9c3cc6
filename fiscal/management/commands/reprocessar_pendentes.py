from django.apps import apps
from django.core.management.base import BaseCommand, CommandError

from fiscal.exceptions import FiscalError
from fiscal.models import DocumentoEletronico, DocumentoStatus


class Command(BaseCommand):
    help = (
        "Reenvia à autoridade os documentos em PENDENTE (reenvio esgotado). "
        "Sem argumentos, percorre todos os tenants com pendências."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "tenant_ids",
            nargs="*",
            help="RUCs dos tenants a reprocessar.",
        )

    def handle(self, *args, **options):
        tenant_ids = options["tenant_ids"] or list(
            DocumentoEletronico.objects.filter(status=DocumentoStatus.PENDENTE)
            .values_list("tenant_id", flat=True)
            .distinct()
            .order_by("tenant_id")
        )

        if not tenant_ids:
            self.stdout.write("Nenhum documento pendente.")
            return

        pipeline = apps.get_app_config("fiscal").servicos.pipeline
        falhas = 0

        for tenant_id in tenant_ids:
            try:
                resultados = pipeline.reprocessar_pendentes(tenant_id)
            except FiscalError as exc:
                falhas += 1
                self.stderr.write(f"[{tenant_id}] {exc.code}: {exc.mensagem}")
                continue

            for resultado in resultados:
                if resultado["sucesso"]:
                    self.stdout.write(f"[{tenant_id}] {resultado['numero']} -> {resultado['status']}")
                else:
                    falhas += 1
                    erro = resultado["erro"]
                    self.stderr.write(
                        f"[{tenant_id}] {resultado['numero']} -> {resultado['status']} "
                        f"({erro['code']}: {erro['message']})"
                    )

        if falhas:
            raise CommandError(f"{falhas} falha(s) no reprocessamento.")
        self.stdout.write(self.style.SUCCESS("Reprocessamento concluído."))
