from django.db import models


class ErrorKind(models.TextChoices):
	INVALID_INPUT = 'InvalidInput', 'Entrada inválida'
	CONFIG_NOT_FOUND = 'ConfigNotFound', 'Configuração de markup não encontrada'
	NOT_FOUND = 'NotFound', 'Registro não encontrado'
	ZERO_NOT_ALLOWED = 'ZeroNotAllowed', 'Markup zero não permitido'
	BELOW_MINIMUM = 'BelowMinimum', 'Markup abaixo do mínimo'
	ABOVE_MAXIMUM = 'AboveMaximum', 'Markup acima do máximo'
	MISSING_CONFIG = 'MissingConfig', 'Configuração ausente'
	PERSISTENCE_ERROR = 'PersistenceError', 'Falha de persistência'


VIOLATION_KINDS = frozenset({
	ErrorKind.ZERO_NOT_ALLOWED,
	ErrorKind.BELOW_MINIMUM,
	ErrorKind.ABOVE_MAXIMUM,
	ErrorKind.MISSING_CONFIG,
})


class PricingError(Exception):
	"""Base class for every failure raised by the pricing engine."""

	kind = ErrorKind.INVALID_INPUT

	def __init__(self, message='', *, kind=None):
		if kind is not None:
			self.kind = kind
		self.message = message or ErrorKind(self.kind).label
		super().__init__(self.message)

	def as_dict(self):
		return {'error': self.message, 'error_kind': str(self.kind)}


class InvalidInput(PricingError):
	"""Raised when an arithmetic precondition is violated (caller bug)."""

	kind = ErrorKind.INVALID_INPUT


class ConfigNotFound(PricingError):
	"""Raised when the global pricing configuration was never provisioned."""

	kind = ErrorKind.CONFIG_NOT_FOUND


class CategoryNotFound(PricingError):
	kind = ErrorKind.NOT_FOUND


class MarkupViolation(PricingError):
	"""Raised when a resolved markup breaks the configured policy.

	``kind`` is one of the validator violation kinds.
	"""

	def __init__(self, message='', *, kind):
		super().__init__(message, kind=kind)


class PersistenceError(PricingError):
	"""Wraps failures coming from repositories or the history writer."""

	kind = ErrorKind.PERSISTENCE_ERROR

	def __init__(self, message='', *, cause=None):
		super().__init__(message)
		self.cause = cause


class EntityNotFound(PersistenceError):
	pass
