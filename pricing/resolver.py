from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import models

from .calculator import PriceCalculation, compute_sale_price, to_amount
from .errors import ConfigNotFound
from .snapshots import CategorySnapshot, PricingConfigSnapshot
from .store import DjangoPricingConfigStore, PricingConfigStore
from .validators import validate_markup

logger = logging.getLogger(__name__)


class MarkupSource(models.TextChoices):
	EXPLICIT = 'explicit', 'Informado'
	CUSTOM = 'custom', 'Personalizado'
	CATEGORY = 'category', 'Categoria'
	GLOBAL_FALLBACK = 'global_fallback', 'Padrão global'


@dataclass(slots=True, frozen=True)
class ResolvedMarkup:
	markup: Decimal
	source: str
	category_name: Optional[str] = None

	def as_dict(self):
		return {
			'markup': self.markup,
			'source': str(self.source),
			'category_name': self.category_name,
		}


def _pick_markup(entity, explicit_markup, config, category):
	if explicit_markup not in (None, ''):
		return to_amount(explicit_markup, 'markup'), MarkupSource.EXPLICIT

	if getattr(entity, 'markup_is_custom', False) and getattr(entity, 'markup', None) is not None:
		return to_amount(entity.markup, 'markup'), MarkupSource.CUSTOM

	# found-and-inactive behaves like not found
	if category is not None and category.active:
		return to_amount(category.default_markup, 'markup'), MarkupSource.CATEGORY

	if config is None:
		raise ConfigNotFound('Configuração de markup não encontrada para aplicar o markup padrão.')
	return to_amount(config.default_markup, 'markup'), MarkupSource.GLOBAL_FALLBACK


def resolve_effective_markup(
	entity,
	explicit_markup=None,
	*,
	config: Optional[PricingConfigSnapshot],
	category: Optional[CategorySnapshot] = None,
) -> ResolvedMarkup:
	"""Apply the markup precedence rules and validate the winner.

	Precedence: explicit value, the entity's own custom markup, the default
	of its active category, then the global fallback. ``category`` must be
	the record fetched for ``entity.category_name`` (or ``None`` when it
	does not exist). An out-of-bounds result raises ``MarkupViolation``;
	values are never clamped.
	"""
	if category is not None and category.category_name != getattr(entity, 'category_name', None):
		category = None
	markup, source = _pick_markup(entity, explicit_markup, config, category)
	validate_markup(markup, config).raise_for_violation()
	return ResolvedMarkup(
		markup=markup,
		source=source,
		category_name=category.category_name if source == MarkupSource.CATEGORY else None,
	)


class MarkupResolver:
	"""Fetches configuration/category through a store and resolves markups."""

	def __init__(self, store: PricingConfigStore | None = None):
		self.store = store or DjangoPricingConfigStore()

	def fetch(self, entity):
		config = self.store.get_global_config()
		category_name = getattr(entity, 'category_name', None)
		category = self.store.get_category_by_name(category_name) if category_name else None
		return config, category

	def resolve(self, entity, explicit_markup=None) -> ResolvedMarkup:
		config, category = self.fetch(entity)
		resolved = resolve_effective_markup(entity, explicit_markup, config=config, category=category)
		logger.debug(
			'pricing: markup %s resolvido para %r (origem=%s).',
			resolved.markup,
			entity,
			resolved.source,
		)
		return resolved

	def price(self, entity, explicit_markup=None) -> tuple[ResolvedMarkup, PriceCalculation]:
		resolved = self.resolve(entity, explicit_markup)
		calculation = compute_sale_price(getattr(entity, 'cost_price', None) or Decimal('0'), resolved.markup)
		return resolved, calculation
