from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import models

from .constants import DEFAULT_GLOBAL_CONFIG, EntityType
from .snapshots import CategorySnapshot, PricingConfigSnapshot

ZERO_DECIMAL = Decimal('0.00')


def _cache_timeout():
	return getattr(settings, 'PRICING_CONFIG_CACHE_SECONDS', 300)


class GlobalPricingConfig(models.Model):
	SINGLETON_PK = 1
	CACHE_KEY = 'pricing.global-config'

	default_markup = models.DecimalField(
		'Markup padrão global',
		max_digits=8,
		decimal_places=2,
		default=DEFAULT_GLOBAL_CONFIG['default_markup'],
		help_text='Multiplicador usado quando o item não possui categoria (ex.: 6.00 = custo x 6).',
	)
	min_markup = models.DecimalField(
		'Markup mínimo',
		max_digits=8,
		decimal_places=2,
		default=DEFAULT_GLOBAL_CONFIG['min_markup'],
	)
	max_markup = models.DecimalField(
		'Markup máximo',
		max_digits=8,
		decimal_places=2,
		default=DEFAULT_GLOBAL_CONFIG['max_markup'],
	)
	allow_zero_markup = models.BooleanField('Permitir markup zero', default=False)
	auto_apply_on_import = models.BooleanField(
		'Aplicar automaticamente na importação',
		default=True,
		help_text='Recalcula o preço de venda dos itens importados de notas fiscais.',
	)
	updated_at = models.DateTimeField('Atualizado em', auto_now=True)
	updated_by = models.ForeignKey(
		settings.AUTH_USER_MODEL,
		on_delete=models.SET_NULL,
		null=True,
		blank=True,
		related_name='pricing_config_updates',
		verbose_name='Atualizado por',
	)

	class Meta:
		verbose_name = 'Configuração de markup'
		verbose_name_plural = 'Configuração de markup'

	def __str__(self):
		return f'Markup global: {self.default_markup} (mín. {self.min_markup} / máx. {self.max_markup})'

	@classmethod
	def load(cls):
		"""Return the singleton, raising ``DoesNotExist`` when it was never provisioned."""
		cached = cache.get(cls.CACHE_KEY)
		if cached and getattr(cached, 'pk', None) and cls.objects.filter(pk=cached.pk).exists():
			return cached
		instance = cls.objects.get(pk=cls.SINGLETON_PK)
		cache.set(cls.CACHE_KEY, instance, _cache_timeout())
		return instance

	@classmethod
	def provision(cls, **overrides):
		values = dict(DEFAULT_GLOBAL_CONFIG)
		values.update(overrides)
		instance, _ = cls.objects.get_or_create(pk=cls.SINGLETON_PK, defaults=values)
		cache.set(cls.CACHE_KEY, instance, _cache_timeout())
		return instance

	@classmethod
	def clear_cache(cls):
		cache.delete(cls.CACHE_KEY)

	def clean(self):
		super().clean()
		errors = {}
		if self.default_markup is not None and self.default_markup <= ZERO_DECIMAL:
			errors['default_markup'] = 'O markup padrão precisa ser maior que zero.'
		if self.min_markup is not None and self.min_markup < ZERO_DECIMAL:
			errors['min_markup'] = 'O markup mínimo não pode ser negativo.'
		if (
			self.min_markup is not None
			and self.max_markup is not None
			and self.min_markup > self.max_markup
		):
			errors['max_markup'] = 'O markup máximo deve ser maior ou igual ao mínimo.'
		if errors:
			raise ValidationError(errors)

	def save(self, *args, **kwargs):
		self.pk = self.SINGLETON_PK
		super().save(*args, **kwargs)
		cache.set(self.CACHE_KEY, self, _cache_timeout())

	def delete(self, *args, **kwargs):
		raise ValidationError('A configuração global de markup não pode ser excluída.')

	def snapshot(self) -> PricingConfigSnapshot:
		return PricingConfigSnapshot(
			default_markup=self.default_markup,
			min_markup=self.min_markup,
			max_markup=self.max_markup,
			allow_zero_markup=self.allow_zero_markup,
			auto_apply_on_import=self.auto_apply_on_import,
		)


class CategoryMarkup(models.Model):
	category_name = models.CharField('Categoria', max_length=80, unique=True)
	default_markup = models.DecimalField('Markup padrão', max_digits=8, decimal_places=2)
	active = models.BooleanField('Ativa', default=True)
	description = models.CharField('Descrição', max_length=255, blank=True)
	created_at = models.DateTimeField('Criado em', auto_now_add=True)
	updated_at = models.DateTimeField('Atualizado em', auto_now=True)

	class Meta:
		verbose_name = 'Markup por categoria'
		verbose_name_plural = 'Markups por categoria'
		ordering = ('category_name',)

	def __str__(self):
		status = '' if self.active else ' (inativa)'
		return f'{self.category_name}: {self.default_markup}{status}'

	def clean(self):
		super().clean()
		if not (self.category_name or '').strip():
			raise ValidationError({'category_name': 'Informe o nome da categoria.'})
		if self.default_markup is not None and self.default_markup <= ZERO_DECIMAL:
			raise ValidationError({'default_markup': 'O markup padrão precisa ser maior que zero.'})

	def delete(self, *args, **kwargs):
		# Categories stay referenced by history and priced items.
		if self.active:
			self.active = False
			self.save(update_fields=['active', 'updated_at'])

	def snapshot(self) -> CategorySnapshot:
		return CategorySnapshot(
			category_name=self.category_name,
			default_markup=self.default_markup,
			active=self.active,
		)


class PriceHistoryEntry(models.Model):
	entity_type = models.CharField('Tipo', max_length=20, choices=EntityType.choices)
	entity_id = models.CharField('Identificador', max_length=64)
	old_cost_price = models.DecimalField('Custo anterior', max_digits=14, decimal_places=2, null=True, blank=True)
	new_cost_price = models.DecimalField('Custo novo', max_digits=14, decimal_places=2, null=True, blank=True)
	old_markup = models.DecimalField('Markup anterior', max_digits=8, decimal_places=2, null=True, blank=True)
	new_markup = models.DecimalField('Markup novo', max_digits=8, decimal_places=2, null=True, blank=True)
	old_sale_price = models.DecimalField('Preço anterior', max_digits=14, decimal_places=2, null=True, blank=True)
	new_sale_price = models.DecimalField('Preço novo', max_digits=14, decimal_places=2, null=True, blank=True)
	changed_by = models.ForeignKey(
		settings.AUTH_USER_MODEL,
		on_delete=models.SET_NULL,
		null=True,
		blank=True,
		related_name='price_history_entries',
		verbose_name='Alterado por',
	)
	reason = models.CharField('Motivo', max_length=255, blank=True)
	created_at = models.DateTimeField('Registrado em', auto_now_add=True, db_index=True)

	class Meta:
		verbose_name = 'Histórico de preço'
		verbose_name_plural = 'Históricos de preço'
		ordering = ('-created_at', '-pk')
		indexes = [
			models.Index(fields=['entity_type', 'entity_id', 'created_at'], name='pricing_history_entity_idx'),
		]

	def __str__(self):
		return f'{self.get_entity_type_display()} {self.entity_id}: {self.old_sale_price} -> {self.new_sale_price}'

	def save(self, *args, **kwargs):
		if self.pk is not None:
			raise ValidationError('O histórico de preços não pode ser alterado.')
		super().save(*args, **kwargs)

	def delete(self, *args, **kwargs):
		raise ValidationError('O histórico de preços não pode ser excluído.')
