from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from django.conf import settings
from django.db import DatabaseError

from .errors import PersistenceError
from .models import PriceHistoryEntry

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 1000


@dataclass(slots=True, frozen=True)
class PriceChange:
	entity_type: str
	entity_id: str
	old_markup: Optional[Decimal]
	new_markup: Optional[Decimal]
	old_sale_price: Optional[Decimal]
	new_sale_price: Optional[Decimal]
	old_cost_price: Optional[Decimal] = None
	new_cost_price: Optional[Decimal] = None
	changed_by: Any = None
	reason: str = ''

	@property
	def is_noop(self) -> bool:
		return (
			_same_amount(self.old_markup, self.new_markup)
			and _same_amount(self.old_sale_price, self.new_sale_price)
			and _same_amount(self.old_cost_price, self.new_cost_price)
		)


def _same_amount(old, new):
	if old is None or new is None:
		return old is None and new is None
	return Decimal(str(old)) == Decimal(str(new))


class PriceHistoryRecorder(ABC):
	"""Append-only audit writer for markup/price mutations."""

	@abstractmethod
	def record(self, change: PriceChange):
		...


class DjangoPriceHistoryRecorder(PriceHistoryRecorder):

	def record(self, change):
		user = change.changed_by
		if user is not None and not getattr(user, 'is_authenticated', False):
			user = None
		try:
			entry = PriceHistoryEntry.objects.create(
				entity_type=change.entity_type,
				entity_id=str(change.entity_id),
				old_cost_price=change.old_cost_price,
				new_cost_price=change.new_cost_price,
				old_markup=change.old_markup,
				new_markup=change.new_markup,
				old_sale_price=change.old_sale_price,
				new_sale_price=change.new_sale_price,
				changed_by=user,
				reason=(change.reason or '')[:255],
			)
		except DatabaseError as exc:
			logger.exception(
				'pricing: falha ao registrar histórico de %s %s.',
				change.entity_type,
				change.entity_id,
			)
			raise PersistenceError('Falha ao registrar o histórico de preços.', cause=exc)
		return entry


def _history_limit(limit):
	default = getattr(settings, 'PRICING_HISTORY_DEFAULT_LIMIT', 100)
	try:
		limit = int(limit) if limit not in (None, '') else default
	except (TypeError, ValueError):
		return default
	if 0 < limit <= MAX_HISTORY_LIMIT:
		return limit
	return default


def list_price_history(entity_type=None, entity_id=None, limit=None, *, queryset=None):
	"""Newest-first audit trail, optionally narrowed from an already filtered queryset."""
	qs = queryset if queryset is not None else PriceHistoryEntry.objects.all()
	qs = qs.select_related('changed_by')
	if entity_type:
		qs = qs.filter(entity_type=entity_type)
	if entity_id not in (None, ''):
		qs = qs.filter(entity_id=str(entity_id))
	return list(qs.order_by('-created_at', '-pk')[:_history_limit(limit)])
