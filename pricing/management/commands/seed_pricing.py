from django.core.management.base import BaseCommand

from pricing.constants import DEFAULT_CATEGORY_MARKUPS, DEFAULT_GLOBAL_CONFIG
from pricing.models import CategoryMarkup, GlobalPricingConfig


class Command(BaseCommand):
	help = 'Provisiona a configuração global de markup e as categorias padrão.'

	def add_arguments(self, parser):
		parser.add_argument(
			'--force',
			action='store_true',
			help='Atualiza valores existentes com os padrões informados.',
		)

	def handle(self, *args, **options):
		force = options['force']

		config_exists = GlobalPricingConfig.objects.filter(pk=GlobalPricingConfig.SINGLETON_PK).exists()
		if not config_exists:
			GlobalPricingConfig.provision()
			self.stdout.write(self.style.SUCCESS('Criada: configuração global de markup'))
		elif force:
			config = GlobalPricingConfig.objects.get(pk=GlobalPricingConfig.SINGLETON_PK)
			for field, value in DEFAULT_GLOBAL_CONFIG.items():
				setattr(config, field, value)
			config.save()
			self.stdout.write(self.style.WARNING('Atualizada: configuração global de markup'))
		else:
			self.stdout.write('Existente (sem alterações): configuração global de markup')

		created = 0
		updated = 0
		for data in DEFAULT_CATEGORY_MARKUPS:
			values = {key: value for key, value in data.items() if key != 'category_name'}
			obj, created_flag = CategoryMarkup.objects.get_or_create(
				category_name=str(data['category_name']),
				defaults=values,
			)
			if created_flag:
				created += 1
				self.stdout.write(self.style.SUCCESS(f'Criada: {obj.category_name}'))
			elif force:
				for field, value in values.items():
					setattr(obj, field, value)
				obj.active = True
				obj.save()
				updated += 1
				self.stdout.write(self.style.WARNING(f'Atualizada: {obj.category_name}'))
			else:
				self.stdout.write(f'Existente (sem alterações): {obj.category_name}')

		summary = f'Categorias criadas: {created}; atualizadas: {updated}; total configurado: {CategoryMarkup.objects.count()}'
		self.stdout.write(self.style.SUCCESS(summary))
