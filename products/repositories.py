import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from pricing.bulk import EntityRepository
from pricing.errors import EntityNotFound, PersistenceError

from .models import PRICED_MODELS, PRICING_FIELDS

logger = logging.getLogger(__name__)


class ModelEntityRepository(EntityRepository):
	"""Read/update priced items of one concrete model by primary key."""

	def __init__(self, model):
		self.model = model
		self.entity_type = str(model.ENTITY_TYPE)

	def get(self, entity_id):
		try:
			return self.model.objects.get(pk=entity_id)
		except (self.model.DoesNotExist, ValueError, TypeError, ValidationError):
			raise EntityNotFound(f'{self.model._meta.verbose_name} {entity_id} não encontrado(a).')
		except DatabaseError as exc:
			logger.exception('pricing: falha ao carregar %s %s.', self.entity_type, entity_id)
			raise PersistenceError(f'Falha ao carregar {self.entity_type} {entity_id}.', cause=exc)

	def save_pricing(self, entity):
		entity.price_updated_at = timezone.now()
		try:
			entity.save(update_fields=PRICING_FIELDS + ['updated_at'])
		except DatabaseError as exc:
			logger.exception('pricing: falha ao salvar preço de %s %s.', self.entity_type, entity.pk)
			raise PersistenceError(f'Falha ao salvar o preço de {self.entity_type} {entity.pk}.', cause=exc)
		return entity

	def atomic(self):
		return transaction.atomic()


def get_entity_repositories():
	return {str(model.ENTITY_TYPE): ModelEntityRepository(model) for model in PRICED_MODELS}


def repository_for(entity):
	entity_type = getattr(entity, 'ENTITY_TYPE', '')
	for model in PRICED_MODELS:
		if model.ENTITY_TYPE == entity_type:
			return ModelEntityRepository(model)
	raise PersistenceError(f'Tipo de entidade não suportado: {entity_type or type(entity).__name__}.')
