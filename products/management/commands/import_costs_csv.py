from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from pricing.errors import ConfigNotFound
from products.importers import import_costs_from_file


class Command(BaseCommand):
    help = 'Atualiza custos a partir de um CSV (colunas tipo;codigo;custo, decimais com vírgula)'

    def add_arguments(self, parser):
        parser.add_argument('csvfile', type=str, help='Caminho do arquivo CSV')

    def handle(self, *args, **options):
        csv_path = Path(options['csvfile'])
        if not csv_path.exists():
            raise CommandError(f"Arquivo não encontrado: {csv_path}")

        try:
            updated, unchanged, messages = import_costs_from_file(csv_path)
        except ConfigNotFound as exc:
            raise CommandError(exc.message)
        for m in messages:
            self.stdout.write(self.style.WARNING(m))
        self.stdout.write(self.style.SUCCESS(f"Importação concluída. Atualizados: {updated}, sem alteração: {unchanged}"))
