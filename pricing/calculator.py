from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvalidInput

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
TWO_PLACES = Decimal('0.01')


@dataclass(slots=True, frozen=True)
class PriceCalculation:
	sale_price: Decimal
	margin_percent: Decimal
	markup: Decimal

	def as_dict(self):
		return {
			'sale_price': self.sale_price,
			'margin_percent': self.margin_percent,
			'markup': self.markup,
		}


def to_decimal(value, field='valor') -> Decimal:
	"""Coerce user/ORM input into a finite Decimal or raise InvalidInput."""
	if isinstance(value, bool) or value in (None, ''):
		raise InvalidInput(f'Informe um {field} numérico.')
	if isinstance(value, float):
		value = repr(value)
	try:
		number = Decimal(str(value).strip().replace(',', '.')) if isinstance(value, str) else Decimal(value)
	except (InvalidOperation, TypeError, ValueError):
		raise InvalidInput(f'{field.capitalize()} inválido: {value!r}.')
	if not number.is_finite():
		raise InvalidInput(f'{field.capitalize()} inválido: {value!r}.')
	return number


def round_currency(value: Decimal) -> Decimal:
	return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_amount(value, field='valor') -> Decimal:
	"""``to_decimal`` rounded to the two places the price columns store."""
	return round_currency(to_decimal(value, field))


def compute_sale_price(cost_price, markup) -> PriceCalculation:
	# operands are rounded first so the result matches what a reload computes
	cost_price = to_amount(cost_price, 'custo')
	markup = to_amount(markup, 'markup')
	if cost_price < ZERO:
		raise InvalidInput('O preço de custo não pode ser negativo.')
	if markup <= ZERO:
		raise InvalidInput('O markup precisa ser maior que zero.')

	sale_price = round_currency(cost_price * markup)
	if sale_price == ZERO:
		# only reachable when the cost itself is zero
		margin = ZERO.quantize(TWO_PLACES)
	else:
		margin = round_currency(((sale_price - cost_price) / sale_price) * HUNDRED)
	return PriceCalculation(sale_price=sale_price, margin_percent=margin, markup=markup)


def compute_markup_from_margin(margin_percent) -> Decimal:
	margin_percent = to_decimal(margin_percent, 'margem')
	if margin_percent >= HUNDRED:
		raise InvalidInput('Margem precisa ser inferior a 100%.')
	divisor = ONE - (margin_percent / HUNDRED)
	return round_currency(ONE / divisor)


def calculate_margin(price, cost):
	"""Margin over the sale price, or None when either side is missing."""
	if price in (None, ZERO) or cost in (None, ''):
		return None
	try:
		price = Decimal(price)
		margin = ((price - Decimal(cost)) / price) * HUNDRED
	except (InvalidOperation, TypeError, ZeroDivisionError):
		return None
	return round_currency(margin)
