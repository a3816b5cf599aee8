from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

from django.db import transaction
from django.db.models import Count, Max, Min, Q, Sum

from pricing.bulk import BulkMarkupApplier, BulkResult, EntityRef
from pricing.calculator import (
	PriceCalculation,
	compute_sale_price,
	round_currency,
	to_amount,
)
from pricing.errors import EntityNotFound, InvalidInput
from pricing.history import DjangoPriceHistoryRecorder, PriceChange, PriceHistoryRecorder
from pricing.resolver import MarkupResolver, MarkupSource, ResolvedMarkup, resolve_effective_markup
from pricing.store import DjangoPricingConfigStore, PricingConfigStore

from .models import PRICED_MODELS
from .repositories import get_entity_repositories, repository_for

logger = logging.getLogger(__name__)

IMPORT_REASON = 'Importação de custo'


@dataclass(slots=True)
class RepriceOutcome:
	entity: object
	resolved: Optional[ResolvedMarkup]
	calculation: Optional[PriceCalculation]
	changed: bool

	def as_dict(self):
		return {
			'entity_type': str(getattr(self.entity, 'ENTITY_TYPE', '')),
			'entity_id': str(self.entity.pk),
			'cost_price': self.entity.cost_price,
			'markup': self.entity.markup,
			'markup_is_custom': self.entity.markup_is_custom,
			'sale_price': self.entity.sale_price,
			'source': str(self.resolved.source) if self.resolved else None,
			'margin_percent': self.calculation.margin_percent if self.calculation else None,
			'changed': self.changed,
		}


def get_entity(entity_type, entity_id):
	repository = get_entity_repositories().get(str(entity_type))
	if repository is None:
		raise EntityNotFound(f'Tipo de entidade não suportado: {entity_type}.')
	return repository.get(entity_id)


def _persist_pricing(entity, *, cost_price, markup, custom, changed_by, reason, recorder):
	old_cost, old_markup, old_sale = entity.cost_price, entity.markup, entity.sale_price
	old_custom = entity.markup_is_custom

	entity.cost_price = cost_price
	entity.markup = markup
	entity.markup_is_custom = custom
	entity.refresh_sale_price()

	change = PriceChange(
		entity_type=str(entity.ENTITY_TYPE),
		entity_id=str(entity.pk),
		old_markup=old_markup,
		new_markup=entity.markup,
		old_sale_price=old_sale,
		new_sale_price=entity.sale_price,
		old_cost_price=old_cost,
		new_cost_price=entity.cost_price,
		changed_by=changed_by,
		reason=reason,
	)
	if change.is_noop and old_custom == custom:
		return False

	repository = repository_for(entity)
	with transaction.atomic():
		repository.save_pricing(entity)
		recorder.record(change)
	logger.info(
		'pricing: %s %s reprecificado (markup %s -> %s, preço %s -> %s).',
		change.entity_type,
		change.entity_id,
		old_markup,
		entity.markup,
		old_sale,
		entity.sale_price,
	)
	return True


def reprice_entity(
	entity,
	*,
	explicit_markup=None,
	cost_price=None,
	changed_by=None,
	reason='',
	store: PricingConfigStore | None = None,
	recorder: PriceHistoryRecorder | None = None,
) -> RepriceOutcome:
	"""Resolve, recompute and persist the price of one entity.

	Errors are raised to the caller. History is only written when the
	cost, markup or sale price actually changed.
	"""
	recorder = recorder or DjangoPriceHistoryRecorder()
	if cost_price in (None, ''):
		cost_price = entity.cost_price or Decimal('0')
	new_cost = to_amount(cost_price, 'custo')
	resolved = MarkupResolver(store).resolve(entity, explicit_markup)
	calculation = compute_sale_price(new_cost, resolved.markup)
	custom = resolved.source in (MarkupSource.EXPLICIT, MarkupSource.CUSTOM)
	changed = _persist_pricing(
		entity,
		cost_price=new_cost,
		markup=resolved.markup,
		custom=custom,
		changed_by=changed_by,
		reason=reason,
		recorder=recorder,
	)
	return RepriceOutcome(entity=entity, resolved=resolved, calculation=calculation, changed=changed)


def price_imported_entity(
	entity,
	cost_price,
	*,
	changed_by=None,
	reason=IMPORT_REASON,
	store: PricingConfigStore | None = None,
	recorder: PriceHistoryRecorder | None = None,
) -> RepriceOutcome:
	"""Store an imported cost, repricing only when auto-apply is enabled.

	With auto-apply disabled the entity keeps its current markup and the
	sale price simply follows the new cost.
	"""
	store = store or DjangoPricingConfigStore()
	config = store.get_global_config()
	if config.auto_apply_on_import:
		return reprice_entity(
			entity,
			cost_price=cost_price,
			changed_by=changed_by,
			reason=reason,
			store=store,
			recorder=recorder,
		)

	new_cost = to_amount(cost_price, 'custo')
	if new_cost < Decimal('0'):
		raise InvalidInput('O preço de custo não pode ser negativo.')
	changed = _persist_pricing(
		entity,
		cost_price=new_cost,
		markup=entity.markup,
		custom=entity.markup_is_custom,
		changed_by=changed_by,
		reason=reason,
		recorder=recorder or DjangoPriceHistoryRecorder(),
	)
	calculation = compute_sale_price(new_cost, entity.markup) if entity.markup else None
	return RepriceOutcome(entity=entity, resolved=None, calculation=calculation, changed=changed)


def calculate_for_category(cost_price, category_name, *, store: PricingConfigStore | None = None):
	"""Price a bare cost using the category default or the global fallback."""
	store = store or DjangoPricingConfigStore()
	config = store.get_global_config()
	category = store.get_category_by_name(category_name) if category_name else None
	item = SimpleNamespace(category_name=category_name, markup=None, markup_is_custom=False)
	resolved = resolve_effective_markup(item, config=config, category=category)
	return resolved, compute_sale_price(cost_price, resolved.markup)


def markup_statistics():
	total_items = 0
	custom_items = 0
	priced_items = 0
	markup_sum = Decimal('0')
	lowest = None
	highest = None
	by_type = {}

	for model in PRICED_MODELS:
		stats = model.objects.aggregate(
			total=Count('pk'),
			priced=Count('markup'),
			custom=Count('pk', filter=Q(markup_is_custom=True)),
			markup_sum=Sum('markup'),
			lowest=Min('markup'),
			highest=Max('markup'),
		)
		total_items += stats['total']
		custom_items += stats['custom']
		priced_items += stats['priced']
		markup_sum += stats['markup_sum'] or Decimal('0')
		if stats['lowest'] is not None:
			lowest = stats['lowest'] if lowest is None else min(lowest, stats['lowest'])
		if stats['highest'] is not None:
			highest = stats['highest'] if highest is None else max(highest, stats['highest'])
		by_type[str(model.ENTITY_TYPE)] = {
			'total_items': stats['total'],
			'custom_markups': stats['custom'],
		}

	return {
		'average_markup': round_currency(markup_sum / priced_items) if priced_items else None,
		'min_markup': lowest,
		'max_markup': highest,
		'total_items': total_items,
		'priced_items': priced_items,
		'custom_markups': custom_items,
		'by_entity_type': by_type,
	}


def build_bulk_applier(*, max_workers=None) -> BulkMarkupApplier:
	return BulkMarkupApplier(
		get_entity_repositories(),
		DjangoPricingConfigStore(),
		DjangoPriceHistoryRecorder(),
		max_workers=max_workers,
	)


def _as_ref(item):
	if isinstance(item, EntityRef):
		return item
	if isinstance(item, dict):
		return EntityRef(str(item.get('entity_type', '')), str(item.get('entity_id', '')))
	entity_type, entity_id = item
	return EntityRef(str(entity_type), str(entity_id))


def apply_markup_to_entities(items, markup, reason=None, *, changed_by=None, cancel_event=None, max_workers=None) -> BulkResult:
	refs = [_as_ref(item) for item in items]
	return build_bulk_applier(max_workers=max_workers).apply_to_many(
		refs,
		markup,
		reason,
		changed_by=changed_by,
		cancel_event=cancel_event,
	)
