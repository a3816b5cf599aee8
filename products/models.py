from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from pricing.calculator import calculate_margin, round_currency
from pricing.constants import EntityType, MarkupCategory, category_for_product_type

ZERO_DECIMAL = Decimal('0.00')

PRICING_FIELDS = ['cost_price', 'markup', 'markup_is_custom', 'sale_price', 'price_updated_at']


class ItemKind(models.TextChoices):
	MATERIA_PRIMA = 'MATERIA_PRIMA', 'Matéria-prima'
	PRINCIPIO_ATIVO = 'PRINCIPIO_ATIVO', 'Princípio ativo'
	HOMEOPATICO = 'HOMEOPATICO', 'Homeopático'
	EMBALAGEM = 'EMBALAGEM', 'Embalagem'
	REVENDA = 'REVENDA', 'Revenda'


class PricedItem(models.Model):
	"""Common pricing fields of everything the pharmacy sells or consumes.

	``sale_price`` is always derived from ``cost_price * markup`` on save.
	"""

	ENTITY_TYPE = ''

	name = models.CharField('Nome', max_length=200)
	code = models.CharField('Código', max_length=50, blank=True, db_index=True)
	cost_price = models.DecimalField('Preço de custo', max_digits=14, decimal_places=2, default=ZERO_DECIMAL)
	markup = models.DecimalField('Markup', max_digits=8, decimal_places=2, null=True, blank=True)
	markup_is_custom = models.BooleanField(
		'Markup personalizado',
		default=False,
		help_text='Marcado quando o markup foi definido manualmente e não deve seguir a categoria.',
	)
	sale_price = models.DecimalField('Preço de venda', max_digits=14, decimal_places=2, null=True, blank=True, editable=False)
	category_name = models.CharField('Categoria de markup', max_length=80, blank=True)
	price_updated_at = models.DateTimeField('Preço atualizado em', null=True, blank=True, editable=False)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		abstract = True
		ordering = ('name',)

	def __str__(self):
		return f'{self.name} ({self.code})' if self.code else self.name

	def default_category(self):
		return ''

	def refresh_sale_price(self):
		if self.markup in (None, '') or self.cost_price in (None, ''):
			self.sale_price = None
		else:
			# same two places the columns hold, so a reload reproduces the price
			self.cost_price = round_currency(self.cost_price)
			self.markup = round_currency(self.markup)
			self.sale_price = round_currency(self.cost_price * self.markup)
		return self.sale_price

	def apply_markup(self, markup, *, custom=True):
		self.markup = Decimal(markup)
		self.markup_is_custom = custom
		return self.refresh_sale_price()

	@property
	def margin_percent(self):
		return calculate_margin(self.sale_price, self.cost_price)

	def clean(self):
		super().clean()
		errors = {}
		if self.cost_price is not None and self.cost_price < ZERO_DECIMAL:
			errors['cost_price'] = 'O preço de custo não pode ser negativo.'
		if self.markup is not None and self.markup <= ZERO_DECIMAL:
			errors['markup'] = 'O markup precisa ser maior que zero.'
		if errors:
			raise ValidationError(errors)

	def save(self, *args, **kwargs):
		if not self.category_name:
			self.category_name = self.default_category()
		self.refresh_sale_price()
		update_fields = kwargs.get('update_fields')
		if update_fields is not None and 'sale_price' not in update_fields:
			kwargs['update_fields'] = list(update_fields) + ['sale_price']
		super().save(*args, **kwargs)


class Product(PricedItem):
	ENTITY_TYPE = EntityType.PRODUCT

	product_type = models.CharField('Tipo', max_length=20, choices=ItemKind.choices, default=ItemKind.REVENDA)
	gtin = models.CharField('GTIN/EAN', max_length=14, blank=True)
	unit = models.CharField('Unidade', max_length=10, default='UN')

	class Meta(PricedItem.Meta):
		verbose_name = 'Produto'
		verbose_name_plural = 'Produtos'

	def default_category(self):
		return category_for_product_type(self.product_type)


class Supply(PricedItem):
	ENTITY_TYPE = EntityType.SUPPLY

	supply_type = models.CharField('Tipo', max_length=20, choices=ItemKind.choices, default=ItemKind.MATERIA_PRIMA)
	unit = models.CharField('Unidade', max_length=10, default='G')

	class Meta(PricedItem.Meta):
		verbose_name = 'Insumo'
		verbose_name_plural = 'Insumos'

	def default_category(self):
		return category_for_product_type(self.supply_type)


class Packaging(PricedItem):
	ENTITY_TYPE = EntityType.PACKAGING

	capacity = models.CharField('Capacidade', max_length=40, blank=True)

	class Meta(PricedItem.Meta):
		verbose_name = 'Embalagem'
		verbose_name_plural = 'Embalagens'

	def default_category(self):
		return str(MarkupCategory.EMBALAGENS)


PRICED_MODELS = (Product, Supply, Packaging)
