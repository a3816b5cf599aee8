from dataclasses import dataclass
from decimal import Decimal


@dataclass(slots=True, frozen=True)
class PricingConfigSnapshot:
	"""Immutable copy of the global configuration used for one operation."""

	default_markup: Decimal
	min_markup: Decimal
	max_markup: Decimal
	allow_zero_markup: bool = False
	auto_apply_on_import: bool = True


@dataclass(slots=True, frozen=True)
class CategorySnapshot:
	category_name: str
	default_markup: Decimal
	active: bool = True
