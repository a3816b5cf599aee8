from decimal import Decimal

from django.db import models


class EntityType(models.TextChoices):
	PRODUCT = 'produto', 'Produto'
	SUPPLY = 'insumo', 'Insumo'
	PACKAGING = 'embalagem', 'Embalagem'


class MarkupCategory(models.TextChoices):
	ALOPATICOS = 'alopaticos', 'Alopáticos'
	HOMEOPATICOS = 'homeopaticos', 'Homeopáticos'
	EMBALAGENS = 'embalagens', 'Embalagens'
	REVENDA = 'revenda', 'Revenda'


DEFAULT_GLOBAL_CONFIG = {
	'default_markup': Decimal('6.00'),
	'min_markup': Decimal('1.00'),
	'max_markup': Decimal('20.00'),
	'allow_zero_markup': False,
	'auto_apply_on_import': True,
}

DEFAULT_CATEGORY_MARKUPS = [
	{
		'category_name': MarkupCategory.ALOPATICOS,
		'default_markup': Decimal('6.00'),
		'description': 'Matérias-primas e princípios ativos manipulados.',
	},
	{
		'category_name': MarkupCategory.HOMEOPATICOS,
		'default_markup': Decimal('5.00'),
		'description': 'Insumos e preparações homeopáticas.',
	},
	{
		'category_name': MarkupCategory.EMBALAGENS,
		'default_markup': Decimal('4.00'),
		'description': 'Frascos, potes, cápsulas vazias e demais embalagens.',
	},
	{
		'category_name': MarkupCategory.REVENDA,
		'default_markup': Decimal('2.00'),
		'description': 'Produtos industrializados para revenda.',
	},
]

_PRODUCT_TYPE_CATEGORIES = {
	'EMBALAGEM': MarkupCategory.EMBALAGENS,
	'EMBALAGENS': MarkupCategory.EMBALAGENS,
	'MATERIA_PRIMA': MarkupCategory.ALOPATICOS,
	'MATÉRIA_PRIMA': MarkupCategory.ALOPATICOS,
	'PRINCIPIO_ATIVO': MarkupCategory.ALOPATICOS,
	'PRINCÍPIO_ATIVO': MarkupCategory.ALOPATICOS,
	'HOMEOPATICO': MarkupCategory.HOMEOPATICOS,
	'HOMEOPÁTICO': MarkupCategory.HOMEOPATICOS,
}

# legacy spellings found in imported spreadsheets
_CATEGORY_ALIASES = {
	'medicamentos': MarkupCategory.REVENDA,
	'medicamento': MarkupCategory.REVENDA,
	'insumos': MarkupCategory.REVENDA,
	'cosméticos': MarkupCategory.REVENDA,
	'alopático': MarkupCategory.ALOPATICOS,
	'alopáticos': MarkupCategory.ALOPATICOS,
	'homeopático': MarkupCategory.HOMEOPATICOS,
	'homeopáticos': MarkupCategory.HOMEOPATICOS,
	'embalagem': MarkupCategory.EMBALAGENS,
}


def category_for_product_type(product_type) -> str:
	key = (product_type or '').strip().upper()
	return str(_PRODUCT_TYPE_CATEGORIES.get(key, MarkupCategory.REVENDA))


def normalize_category_name(name) -> str:
	"""Map free-text categories from imports onto a known category.

	Resolution itself always uses exact names; this is only meant for
	cleaning incoming data.
	"""
	value = (name or '').strip().lower()
	if value in _CATEGORY_ALIASES:
		return str(_CATEGORY_ALIASES[value])
	if value in MarkupCategory.values:
		return value
	return str(MarkupCategory.REVENDA)
