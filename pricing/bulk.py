"""Apply one markup value across many priced entities.

The operation is best-effort and non-transactional: every entity is
handled on its own, failures are reported per item and entities that
already succeeded are never rolled back. Callers that need atomicity must
wrap the call in their own transaction boundary.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from django.conf import settings
from django.db import close_old_connections

from .calculator import compute_sale_price
from .errors import ErrorKind, PersistenceError, PricingError
from .history import PriceChange, PriceHistoryRecorder
from .resolver import MarkupResolver
from .store import PricingConfigStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EntityRef:
	entity_type: str
	entity_id: str

	def as_dict(self):
		return {'entity_type': self.entity_type, 'entity_id': self.entity_id}


@dataclass(slots=True, frozen=True)
class BulkFailure:
	ref: EntityRef
	error_kind: str
	message: str = ''

	def as_dict(self):
		return {
			**self.ref.as_dict(),
			'error_kind': str(self.error_kind),
			'message': self.message,
		}


@dataclass(slots=True)
class BulkResult:
	succeeded: List[EntityRef] = field(default_factory=list)
	failed: List[BulkFailure] = field(default_factory=list)
	skipped: List[EntityRef] = field(default_factory=list)
	cancelled: bool = False

	@property
	def summary(self):
		return {
			'succeeded': len(self.succeeded),
			'failed': len(self.failed),
			'skipped': len(self.skipped),
			'cancelled': self.cancelled,
		}

	def as_dict(self):
		return {
			'succeeded': [ref.as_dict() for ref in self.succeeded],
			'failed': [failure.as_dict() for failure in self.failed],
			'skipped': [ref.as_dict() for ref in self.skipped],
			'summary': self.summary,
		}


class EntityRepository(ABC):
	"""Record repository for one priced entity type (read/update by id)."""

	entity_type = ''

	@abstractmethod
	def get(self, entity_id):
		"""Return the entity or raise ``EntityNotFound``."""

	@abstractmethod
	def save_pricing(self, entity):
		"""Persist cost/markup/sale price of ``entity`` or raise ``PersistenceError``."""

	def atomic(self):
		return nullcontext()


def _default_max_workers():
	try:
		return max(1, int(getattr(settings, 'PRICING_BULK_MAX_WORKERS', 1)))
	except (TypeError, ValueError):
		return 1


class _ResultCollector:
	"""Thread-safe sink for per-item outcomes, reported back in input order."""

	def __init__(self):
		self._lock = threading.Lock()
		self._outcomes: Dict[int, tuple] = {}

	def add(self, index, outcome, payload):
		with self._lock:
			self._outcomes[index] = (outcome, payload)

	def build(self, cancelled) -> BulkResult:
		result = BulkResult(cancelled=cancelled)
		with self._lock:
			for index in sorted(self._outcomes):
				outcome, payload = self._outcomes[index]
				if outcome == 'ok':
					result.succeeded.append(payload)
				elif outcome == 'failed':
					result.failed.append(payload)
				else:
					result.skipped.append(payload)
		return result


class BulkMarkupApplier:

	def __init__(
		self,
		repositories: Mapping[str, EntityRepository],
		store: PricingConfigStore,
		recorder: PriceHistoryRecorder,
		*,
		max_workers: Optional[int] = None,
	):
		self.repositories = dict(repositories)
		self.store = store
		self.recorder = recorder
		self.resolver = MarkupResolver(store)
		self.max_workers = max_workers if max_workers is not None else _default_max_workers()

	def apply_to_many(
		self,
		entity_refs: Iterable[EntityRef],
		markup,
		reason: Optional[str] = None,
		*,
		changed_by=None,
		cancel_event: Optional[threading.Event] = None,
	) -> BulkResult:
		refs = list(entity_refs)
		# fatal when never provisioned; raises ConfigNotFound before touching any entity
		self.store.get_global_config()

		collector = _ResultCollector()
		cancel_event = cancel_event or threading.Event()
		logger.info(
			'pricing-bulk: aplicando markup %s em %s itens (workers=%s).',
			markup,
			len(refs),
			self.max_workers,
		)

		if self.max_workers <= 1 or len(refs) <= 1:
			for index, ref in enumerate(refs):
				self._process(index, ref, markup, reason, changed_by, cancel_event, collector)
		else:
			with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='pricing-bulk') as executor:
				futures = [
					executor.submit(self._process_in_thread, index, ref, markup, reason, changed_by, cancel_event, collector)
					for index, ref in enumerate(refs)
				]
				for future in futures:
					future.result()

		result = collector.build(cancelled=cancel_event.is_set())
		logger.info(
			'pricing-bulk: concluído (sucesso=%s, falhas=%s, ignorados=%s).',
			len(result.succeeded),
			len(result.failed),
			len(result.skipped),
		)
		return result

	def _process_in_thread(self, *args):
		close_old_connections()
		try:
			self._process(*args)
		finally:
			close_old_connections()

	def _process(self, index, ref, markup, reason, changed_by, cancel_event, collector):
		if cancel_event.is_set():
			collector.add(index, 'skipped', ref)
			return
		try:
			self._apply_one(ref, markup, reason, changed_by)
		except PricingError as exc:
			logger.info('pricing-bulk: %s %s falhou (%s): %s', ref.entity_type, ref.entity_id, exc.kind, exc.message)
			collector.add(index, 'failed', BulkFailure(ref, str(exc.kind), exc.message))
		except Exception as exc:
			logger.exception('pricing-bulk: erro inesperado em %s %s.', ref.entity_type, ref.entity_id)
			collector.add(index, 'failed', BulkFailure(ref, str(ErrorKind.PERSISTENCE_ERROR), str(exc)))
		else:
			collector.add(index, 'ok', ref)

	def _apply_one(self, ref, markup, reason, changed_by):
		repository = self.repositories.get(ref.entity_type)
		if repository is None:
			raise PersistenceError(f'Tipo de entidade não suportado: {ref.entity_type}.')

		with repository.atomic():
			entity = repository.get(ref.entity_id)
			resolved = self.resolver.resolve(entity, markup)
			cost_price = entity.cost_price if entity.cost_price is not None else Decimal('0')
			calculation = compute_sale_price(cost_price, resolved.markup)

			change = PriceChange(
				entity_type=ref.entity_type,
				entity_id=str(ref.entity_id),
				old_markup=entity.markup,
				new_markup=calculation.markup,
				old_sale_price=entity.sale_price,
				new_sale_price=calculation.sale_price,
				old_cost_price=cost_price,
				new_cost_price=cost_price,
				changed_by=changed_by,
				reason=reason or '',
			)
			if change.is_noop and entity.markup_is_custom:
				return False

			entity.markup = calculation.markup
			entity.markup_is_custom = True
			entity.sale_price = calculation.sale_price
			repository.save_pricing(entity)
			self.recorder.record(change)
		return True
