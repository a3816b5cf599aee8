from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from .calculator import to_decimal
from .errors import CategoryNotFound, ConfigNotFound, InvalidInput, PersistenceError
from .models import CategoryMarkup, GlobalPricingConfig
from .snapshots import CategorySnapshot, PricingConfigSnapshot

logger = logging.getLogger(__name__)

CONFIG_FIELDS = ('default_markup', 'min_markup', 'max_markup', 'allow_zero_markup', 'auto_apply_on_import')
CATEGORY_FIELDS = ('default_markup', 'active', 'description')
_DECIMAL_FIELDS = {'default_markup', 'min_markup', 'max_markup'}


class PricingConfigStore(ABC):
	"""Read/write access to the global configuration and category markups."""

	@abstractmethod
	def get_global_config(self) -> PricingConfigSnapshot:
		"""Return the current snapshot or raise ``ConfigNotFound``."""

	@abstractmethod
	def get_category_by_name(self, name: str) -> Optional[CategorySnapshot]:
		"""Exact, case-sensitive lookup. ``None`` means the category does not exist."""

	@abstractmethod
	def update_global_config(self, *, changed_by=None, **changes) -> PricingConfigSnapshot:
		...

	@abstractmethod
	def update_category(self, name: str, **changes) -> CategorySnapshot:
		...

	@abstractmethod
	def list_categories(self, active_only: bool = True) -> List[CategorySnapshot]:
		...

	@abstractmethod
	def create_category(self, name: str, default_markup, *, active: bool = True, description: str = '') -> CategorySnapshot:
		...


def _clean_changes(changes, allowed):
	unknown = set(changes) - set(allowed)
	if unknown:
		raise InvalidInput(f'Campos não suportados: {", ".join(sorted(unknown))}.')
	cleaned = {}
	for field, value in changes.items():
		if field in _DECIMAL_FIELDS:
			cleaned[field] = to_decimal(value, 'markup')
		elif field in ('active', 'allow_zero_markup', 'auto_apply_on_import'):
			cleaned[field] = bool(value)
		else:
			cleaned[field] = value
	return cleaned


def _validation_message(exc: ValidationError) -> str:
	if hasattr(exc, 'message_dict'):
		return ' '.join(msg for messages in exc.message_dict.values() for msg in messages)
	return ' '.join(exc.messages)


class DjangoPricingConfigStore(PricingConfigStore):

	def get_global_config(self) -> PricingConfigSnapshot:
		try:
			return GlobalPricingConfig.load().snapshot()
		except GlobalPricingConfig.DoesNotExist:
			logger.error('pricing: configuração global de markup não provisionada.')
			raise ConfigNotFound('Configuração de markup não encontrada. Execute "manage.py seed_pricing".')

	def get_category_by_name(self, name):
		if not name:
			return None
		category = CategoryMarkup.objects.filter(category_name=name).first()
		return category.snapshot() if category else None

	def update_global_config(self, *, changed_by=None, **changes):
		changes = _clean_changes(changes, CONFIG_FIELDS)
		try:
			config = GlobalPricingConfig.objects.get(pk=GlobalPricingConfig.SINGLETON_PK)
		except GlobalPricingConfig.DoesNotExist:
			raise ConfigNotFound('Configuração de markup não encontrada.')
		for field, value in changes.items():
			setattr(config, field, value)
		if changed_by is not None and getattr(changed_by, 'is_authenticated', False):
			config.updated_by = changed_by
		try:
			config.full_clean()
		except ValidationError as exc:
			raise InvalidInput(_validation_message(exc))
		try:
			config.save()
		except DatabaseError as exc:
			logger.exception('pricing: falha ao salvar configuração global.')
			raise PersistenceError('Falha ao salvar a configuração de markup.', cause=exc)
		logger.info('pricing: configuração global atualizada (%s).', ', '.join(sorted(changes)) or 'sem campos')
		return config.snapshot()

	def update_category(self, name, **changes):
		changes = _clean_changes(changes, CATEGORY_FIELDS)
		category = CategoryMarkup.objects.filter(category_name=name).first()
		if category is None:
			raise CategoryNotFound(f'Categoria {name} não encontrada.')
		for field, value in changes.items():
			setattr(category, field, value)
		try:
			category.full_clean()
		except ValidationError as exc:
			raise InvalidInput(_validation_message(exc))
		try:
			category.save()
		except DatabaseError as exc:
			logger.exception('pricing: falha ao salvar categoria %s.', name)
			raise PersistenceError('Falha ao salvar a categoria.', cause=exc)
		logger.info('pricing: categoria %s atualizada (%s).', name, ', '.join(sorted(changes)) or 'sem campos')
		return category.snapshot()

	def list_categories(self, active_only=True):
		qs = CategoryMarkup.objects.all()
		if active_only:
			qs = qs.filter(active=True)
		return [category.snapshot() for category in qs.order_by('category_name')]

	def create_category(self, name, default_markup, *, active=True, description=''):
		category = CategoryMarkup(
			category_name=(name or '').strip(),
			default_markup=to_decimal(default_markup, 'markup'),
			active=active,
			description=description or '',
		)
		try:
			category.full_clean()
		except ValidationError as exc:
			raise InvalidInput(_validation_message(exc))
		try:
			with transaction.atomic():
				category.save()
		except DatabaseError as exc:
			logger.exception('pricing: falha ao criar categoria %s.', name)
			raise PersistenceError('Falha ao criar a categoria.', cause=exc)
		logger.info('pricing: categoria %s criada (markup=%s).', category.category_name, category.default_markup)
		return category.snapshot()
