from dataclasses import dataclass
from typing import Optional

from .calculator import ZERO, to_amount
from .errors import ErrorKind, InvalidInput, MarkupViolation


@dataclass(slots=True, frozen=True)
class ValidationResult:
	violation: Optional[str] = None
	message: str = ''

	@property
	def is_valid(self) -> bool:
		return self.violation is None

	def raise_for_violation(self):
		if self.violation == ErrorKind.INVALID_INPUT:
			raise InvalidInput(self.message)
		if self.violation is not None:
			raise MarkupViolation(self.message, kind=self.violation)

	def as_dict(self):
		return {
			'valid': self.is_valid,
			'violation': self.violation,
			'message': self.message,
		}


VALID = ValidationResult()


def validate_markup(markup, config) -> ValidationResult:
	"""Check ``markup`` against a configuration snapshot.

	Checks run in a fixed order (configuration, zero policy, minimum,
	maximum) and only the first failure is reported. A value that is not a
	number comes back as an ``InvalidInput`` result.
	"""
	if config is None:
		return ValidationResult(ErrorKind.MISSING_CONFIG, 'Configuração de markup não encontrada.')

	try:
		markup = to_amount(markup, 'markup')
	except InvalidInput as exc:
		return ValidationResult(ErrorKind.INVALID_INPUT, exc.message)
	if markup == ZERO and not config.allow_zero_markup:
		return ValidationResult(ErrorKind.ZERO_NOT_ALLOWED, 'Markup zero não é permitido.')
	if markup < config.min_markup:
		return ValidationResult(
			ErrorKind.BELOW_MINIMUM,
			f'Markup deve ser pelo menos {config.min_markup:.2f}.',
		)
	if markup > config.max_markup:
		return ValidationResult(
			ErrorKind.ABOVE_MAXIMUM,
			f'Markup não pode exceder {config.max_markup:.2f}.',
		)
	return VALID
