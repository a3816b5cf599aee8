import io
import threading
from dataclasses import replace
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth.models import AnonymousUser, User
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings

from .bulk import BulkMarkupApplier, EntityRef, EntityRepository
from .calculator import (
	calculate_margin,
	compute_markup_from_margin,
	compute_sale_price,
	round_currency,
	to_amount,
	to_decimal,
)
from .constants import (
	DEFAULT_CATEGORY_MARKUPS,
	MarkupCategory,
	category_for_product_type,
	normalize_category_name,
)
from .errors import (
	CategoryNotFound,
	ConfigNotFound,
	EntityNotFound,
	ErrorKind,
	InvalidInput,
	MarkupViolation,
	PersistenceError,
)
from .history import (
	DjangoPriceHistoryRecorder,
	PriceChange,
	PriceHistoryRecorder,
	list_price_history,
)
from .models import CategoryMarkup, GlobalPricingConfig, PriceHistoryEntry
from .resolver import MarkupResolver, MarkupSource, resolve_effective_markup
from .snapshots import CategorySnapshot, PricingConfigSnapshot
from .store import DjangoPricingConfigStore, PricingConfigStore
from .validators import validate_markup

D = Decimal

CONFIG = PricingConfigSnapshot(default_markup=D('5.00'), min_markup=D('1.00'), max_markup=D('10.00'))


def make_item(pk, cost='10.00', markup=None, custom=False, category=''):
	return SimpleNamespace(
		pk=pk,
		cost_price=D(cost),
		markup=D(markup) if markup is not None else None,
		markup_is_custom=custom,
		sale_price=None,
		category_name=category,
	)


class FakeStore(PricingConfigStore):
	def __init__(self, config=CONFIG, categories=()):
		self.config = config
		self.categories = {c.category_name: c for c in categories}
		self.config_reads = 0

	def get_global_config(self):
		self.config_reads += 1
		if self.config is None:
			raise ConfigNotFound()
		return self.config

	def get_category_by_name(self, name):
		return self.categories.get(name)

	def update_global_config(self, *, changed_by=None, **changes):
		self.config = replace(self.config, **changes)
		return self.config

	def update_category(self, name, **changes):
		if name not in self.categories:
			raise CategoryNotFound()
		self.categories[name] = replace(self.categories[name], **changes)
		return self.categories[name]

	def list_categories(self, active_only=True):
		return [c for c in self.categories.values() if c.active or not active_only]

	def create_category(self, name, default_markup, *, active=True, description=''):
		self.categories[name] = CategorySnapshot(name, D(default_markup), active)
		return self.categories[name]


class FakeRepository(EntityRepository):
	def __init__(self, entity_type, items, fail_on_save=()):
		self.entity_type = entity_type
		self.items = {str(item.pk): item for item in items}
		self.fail_on_save = {str(pk) for pk in fail_on_save}
		self.saved = []
		self._lock = threading.Lock()

	def get(self, entity_id):
		try:
			return self.items[str(entity_id)]
		except KeyError:
			raise EntityNotFound(f'{entity_id} não encontrado.')

	def save_pricing(self, entity):
		if str(entity.pk) in self.fail_on_save:
			raise PersistenceError('banco indisponível')
		with self._lock:
			self.saved.append(str(entity.pk))


class FakeRecorder(PriceHistoryRecorder):
	def __init__(self, on_record=None):
		self.changes = []
		self.on_record = on_record
		self._lock = threading.Lock()

	def record(self, change):
		with self._lock:
			self.changes.append(change)
		if self.on_record:
			self.on_record(change)


class CalculatorTests(SimpleTestCase):
	def test_sale_price_and_margin(self):
		result = compute_sale_price(D('10.00'), D('6.0'))
		self.assertEqual(result.sale_price, D('60.00'))
		self.assertEqual(result.margin_percent, D('83.33'))

	def test_rounds_half_up_to_cents(self):
		self.assertEqual(compute_sale_price('0.10', '1.25').sale_price, D('0.13'))
		self.assertEqual(compute_sale_price('3.33', '3').sale_price, D('9.99'))

	def test_operands_are_rounded_to_cents_first(self):
		result = compute_sale_price('100.00', '6.005')
		self.assertEqual(result.markup, D('6.01'))
		self.assertEqual(result.sale_price, D('601.00'))
		self.assertEqual(compute_sale_price('1.234', '6').sale_price, D('7.38'))
		self.assertEqual(to_amount('1,235'), D('1.24'))

	def test_zero_cost_has_zero_margin(self):
		result = compute_sale_price('0', '6')
		self.assertEqual(result.sale_price, D('0.00'))
		self.assertEqual(result.margin_percent, D('0.00'))

	def test_rejects_negative_cost_and_non_positive_markup(self):
		with self.assertRaises(InvalidInput):
			compute_sale_price('-1', '2')
		with self.assertRaises(InvalidInput):
			compute_sale_price('10', '0')
		with self.assertRaises(InvalidInput):
			compute_sale_price('10', '-2')

	def test_markup_from_margin(self):
		self.assertEqual(compute_markup_from_margin('50'), D('2.00'))
		self.assertEqual(compute_markup_from_margin('0'), D('1.00'))
		self.assertEqual(compute_markup_from_margin('83.33'), D('6.00'))

	def test_margin_of_one_hundred_is_invalid(self):
		with self.assertRaises(InvalidInput) as ctx:
			compute_markup_from_margin(100)
		self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_INPUT)
		with self.assertRaises(InvalidInput):
			compute_markup_from_margin('120')

	def test_markup_margin_round_trip(self):
		for markup in ('1.50', '2.00', '3.50', '6.00'):
			margin = compute_sale_price('10.00', markup).margin_percent
			back = compute_markup_from_margin(margin)
			self.assertLessEqual(abs(back - D(markup)), D('0.01'), markup)

	def test_to_decimal_parsing(self):
		self.assertEqual(to_decimal('6,5'), D('6.5'))
		self.assertEqual(to_decimal(0.1), D('0.1'))
		for bad in (None, '', 'abc', True, float('nan'), 'Infinity'):
			with self.assertRaises(InvalidInput, msg=repr(bad)):
				to_decimal(bad)

	def test_calculate_margin_handles_missing_values(self):
		self.assertIsNone(calculate_margin(None, '1'))
		self.assertIsNone(calculate_margin(D('0'), '1'))
		self.assertEqual(calculate_margin(D('60.00'), D('10.00')), D('83.33'))


class ValidatorTests(SimpleTestCase):
	def test_valid_markup_within_bounds(self):
		for value in ('1', '6', '10'):
			self.assertTrue(validate_markup(value, CONFIG).is_valid, value)

	def test_zero_not_allowed(self):
		result = validate_markup(0, CONFIG)
		self.assertEqual(result.violation, ErrorKind.ZERO_NOT_ALLOWED)

	def test_zero_checked_before_minimum(self):
		config = replace(CONFIG, min_markup=D('2.00'))
		self.assertEqual(validate_markup('0', config).violation, ErrorKind.ZERO_NOT_ALLOWED)

	def test_zero_allowed_still_respects_minimum(self):
		config = replace(CONFIG, allow_zero_markup=True)
		self.assertEqual(validate_markup('0', config).violation, ErrorKind.BELOW_MINIMUM)
		config = replace(config, min_markup=D('0.00'))
		self.assertTrue(validate_markup('0', config).is_valid)

	def test_below_minimum_names_the_bound(self):
		result = validate_markup('0.5', CONFIG)
		self.assertEqual(result.violation, ErrorKind.BELOW_MINIMUM)
		self.assertEqual(result.message, 'Markup deve ser pelo menos 1.00.')

	def test_above_maximum(self):
		config = replace(CONFIG, max_markup=D('10'))
		result = validate_markup(12, config)
		self.assertEqual(result.violation, ErrorKind.ABOVE_MAXIMUM)
		self.assertIn('10.00', result.message)
		self.assertFalse(result.as_dict()['valid'])

	def test_missing_config(self):
		self.assertEqual(validate_markup('6', None).violation, ErrorKind.MISSING_CONFIG)

	def test_non_numeric_markup_is_a_typed_result(self):
		result = validate_markup('abc', CONFIG)
		self.assertEqual(result.violation, ErrorKind.INVALID_INPUT)
		self.assertFalse(result.is_valid)
		with self.assertRaises(InvalidInput):
			result.raise_for_violation()

	def test_markup_is_checked_at_two_places(self):
		self.assertTrue(validate_markup('10.004', CONFIG).is_valid)
		self.assertEqual(validate_markup('10.005', CONFIG).violation, ErrorKind.ABOVE_MAXIMUM)

	def test_raise_for_violation(self):
		with self.assertRaises(MarkupViolation) as ctx:
			validate_markup('50', CONFIG).raise_for_violation()
		self.assertEqual(ctx.exception.kind, ErrorKind.ABOVE_MAXIMUM)
		validate_markup('6', CONFIG).raise_for_violation()


class ResolverTests(SimpleTestCase):
	embalagens = CategorySnapshot('embalagens', D('4.0'), active=True)

	def test_category_default(self):
		item = make_item(1, category='embalagens')
		resolved = resolve_effective_markup(item, config=CONFIG, category=self.embalagens)
		self.assertEqual(resolved.markup, D('4.0'))
		self.assertEqual(resolved.source, MarkupSource.CATEGORY)
		self.assertEqual(resolved.category_name, 'embalagens')

	def test_inactive_category_falls_back_to_global(self):
		item = make_item(1, category='embalagens')
		inactive = replace(self.embalagens, active=False)
		resolved = resolve_effective_markup(item, config=CONFIG, category=inactive)
		self.assertEqual(resolved.markup, D('5.0'))
		self.assertEqual(resolved.source, MarkupSource.GLOBAL_FALLBACK)
		self.assertIsNone(resolved.category_name)

	def test_missing_category_falls_back_to_global(self):
		item = make_item(1, category='inexistente')
		resolved = resolve_effective_markup(item, config=CONFIG, category=None)
		self.assertEqual(resolved.source, MarkupSource.GLOBAL_FALLBACK)

	def test_category_of_another_name_is_ignored(self):
		item = make_item(1, category='Embalagens')
		resolved = resolve_effective_markup(item, config=CONFIG, category=self.embalagens)
		self.assertEqual(resolved.source, MarkupSource.GLOBAL_FALLBACK)

	def test_custom_markup_beats_category(self):
		item = make_item(1, markup='7.50', custom=True, category='embalagens')
		resolved = resolve_effective_markup(item, config=CONFIG, category=self.embalagens)
		self.assertEqual(resolved.markup, D('7.50'))
		self.assertEqual(resolved.source, MarkupSource.CUSTOM)

	def test_stored_markup_without_custom_flag_follows_category(self):
		item = make_item(1, markup='6.00', custom=False, category='embalagens')
		resolved = resolve_effective_markup(item, config=CONFIG, category=self.embalagens)
		self.assertEqual(resolved.source, MarkupSource.CATEGORY)

	def test_explicit_markup_wins(self):
		item = make_item(1, markup='7.50', custom=True, category='embalagens')
		resolved = resolve_effective_markup(item, '3', config=CONFIG, category=self.embalagens)
		self.assertEqual(resolved.markup, D('3'))
		self.assertEqual(resolved.source, MarkupSource.EXPLICIT)

	def test_explicit_markup_is_rounded_half_up(self):
		resolved = resolve_effective_markup(make_item(1), '6.005', config=CONFIG)
		self.assertEqual(resolved.markup, D('6.01'))

	def test_out_of_bounds_is_never_clamped(self):
		item = make_item(1)
		with self.assertRaises(MarkupViolation) as ctx:
			resolve_effective_markup(item, '12', config=CONFIG)
		self.assertEqual(ctx.exception.kind, ErrorKind.ABOVE_MAXIMUM)

	def test_custom_markup_is_revalidated(self):
		item = make_item(1, markup='0.50', custom=True)
		with self.assertRaises(MarkupViolation) as ctx:
			resolve_effective_markup(item, config=CONFIG)
		self.assertEqual(ctx.exception.kind, ErrorKind.BELOW_MINIMUM)

	def test_global_fallback_without_config(self):
		with self.assertRaises(ConfigNotFound):
			resolve_effective_markup(make_item(1), config=None)

	def test_explicit_without_config_is_missing_config(self):
		with self.assertRaises(MarkupViolation) as ctx:
			resolve_effective_markup(make_item(1), '6', config=None)
		self.assertEqual(ctx.exception.kind, ErrorKind.MISSING_CONFIG)

	def test_resolver_prices_through_store(self):
		resolver = MarkupResolver(FakeStore(categories=[self.embalagens]))
		resolved, calculation = resolver.price(make_item(1, cost='2.50', category='embalagens'))
		self.assertEqual(resolved.source, MarkupSource.CATEGORY)
		self.assertEqual(calculation.sale_price, D('10.00'))
		self.assertEqual(calculation.margin_percent, D('75.00'))


class ConstantsTests(SimpleTestCase):
	def test_category_for_product_type(self):
		self.assertEqual(category_for_product_type('EMBALAGEM'), 'embalagens')
		self.assertEqual(category_for_product_type('materia_prima'), 'alopaticos')
		self.assertEqual(category_for_product_type('PRINCÍPIO_ATIVO'), 'alopaticos')
		self.assertEqual(category_for_product_type('HOMEOPATICO'), 'homeopaticos')
		self.assertEqual(category_for_product_type(None), 'revenda')

	def test_normalize_category_name(self):
		self.assertEqual(normalize_category_name(' Homeopáticos '), 'homeopaticos')
		self.assertEqual(normalize_category_name('embalagens'), 'embalagens')
		self.assertEqual(normalize_category_name('medicamentos'), 'revenda')
		self.assertEqual(normalize_category_name('qualquer coisa'), 'revenda')


class GlobalPricingConfigModelTests(TestCase):
	def setUp(self):
		cache.clear()

	def test_load_never_creates(self):
		with self.assertRaises(GlobalPricingConfig.DoesNotExist):
			GlobalPricingConfig.load()
		self.assertFalse(GlobalPricingConfig.objects.exists())

	def test_provision_and_load(self):
		GlobalPricingConfig.provision(default_markup=D('5.00'))
		config = GlobalPricingConfig.load()
		self.assertEqual(config.pk, GlobalPricingConfig.SINGLETON_PK)
		self.assertEqual(config.default_markup, D('5.00'))
		self.assertEqual(config.max_markup, D('20.00'))

	def test_singleton(self):
		GlobalPricingConfig.provision()
		GlobalPricingConfig(default_markup=D('3.00'), min_markup=D('1.00'), max_markup=D('9.00')).save()
		self.assertEqual(GlobalPricingConfig.objects.count(), 1)
		self.assertEqual(GlobalPricingConfig.load().default_markup, D('3.00'))

	def test_cannot_delete(self):
		config = GlobalPricingConfig.provision()
		with self.assertRaises(ValidationError):
			config.delete()
		self.assertTrue(GlobalPricingConfig.objects.exists())

	def test_clean_checks_bounds(self):
		config = GlobalPricingConfig(default_markup=D('0'), min_markup=D('5'), max_markup=D('2'))
		with self.assertRaises(ValidationError) as ctx:
			config.full_clean()
		self.assertIn('default_markup', ctx.exception.message_dict)
		self.assertIn('max_markup', ctx.exception.message_dict)


class CategoryAndHistoryModelTests(TestCase):
	def test_category_delete_deactivates(self):
		category = CategoryMarkup.objects.create(category_name='revenda', default_markup=D('2.00'))
		category.delete()
		category.refresh_from_db()
		self.assertFalse(category.active)
		self.assertEqual(CategoryMarkup.objects.count(), 1)

	def test_category_requires_positive_markup(self):
		with self.assertRaises(ValidationError):
			CategoryMarkup(category_name='x', default_markup=D('0')).full_clean()

	def test_history_is_append_only(self):
		entry = PriceHistoryEntry.objects.create(
			entity_type='produto',
			entity_id='1',
			old_markup=D('5.00'),
			new_markup=D('6.00'),
		)
		entry.reason = 'editado'
		with self.assertRaises(ValidationError):
			entry.save()
		with self.assertRaises(ValidationError):
			entry.delete()
		entry.refresh_from_db()
		self.assertEqual(entry.reason, '')


class DjangoPricingConfigStoreTests(TestCase):
	def setUp(self):
		cache.clear()
		self.store = DjangoPricingConfigStore()
		self.user = User.objects.create_user('gerente', 'gerente@example.com', 'pw123456')

	def test_missing_config_is_fatal(self):
		with self.assertRaises(ConfigNotFound):
			self.store.get_global_config()
		with self.assertRaises(ConfigNotFound):
			self.store.update_global_config(default_markup='5')

	def test_partial_update_keeps_other_fields(self):
		GlobalPricingConfig.provision()
		snapshot = self.store.update_global_config(changed_by=self.user, max_markup='15')
		self.assertEqual(snapshot.max_markup, D('15'))
		self.assertEqual(snapshot.default_markup, D('6.00'))
		self.assertEqual(snapshot.min_markup, D('1.00'))
		self.assertEqual(self.store.get_global_config().max_markup, D('15.00'))
		self.assertEqual(GlobalPricingConfig.objects.get().updated_by, self.user)

	def test_invalid_update_is_rejected(self):
		GlobalPricingConfig.provision()
		with self.assertRaises(InvalidInput):
			self.store.update_global_config(min_markup='30')
		with self.assertRaises(InvalidInput):
			self.store.update_global_config(colour='blue')
		cache.clear()
		self.assertEqual(self.store.get_global_config().min_markup, D('1.00'))

	def test_category_lookup_is_exact(self):
		self.store.create_category('embalagens', '4.00')
		self.assertIsNotNone(self.store.get_category_by_name('embalagens'))
		self.assertIsNone(self.store.get_category_by_name('Embalagens'))
		self.assertIsNone(self.store.get_category_by_name(''))

	def test_category_crud(self):
		self.store.create_category('revenda', '2.00', description='Revenda')
		with self.assertRaises(InvalidInput):
			self.store.create_category('revenda', '3.00')
		with self.assertRaises(InvalidInput):
			self.store.create_category('nova', '0')
		updated = self.store.update_category('revenda', active=False)
		self.assertFalse(updated.active)
		self.assertEqual(self.store.list_categories(), [])
		self.assertEqual(len(self.store.list_categories(active_only=False)), 1)
		with self.assertRaises(CategoryNotFound):
			self.store.update_category('inexistente', active=True)


class PriceHistoryRecorderTests(TestCase):
	def _change(self, **overrides):
		values = dict(
			entity_type='insumo',
			entity_id='7',
			old_markup=D('5.00'),
			new_markup=D('6.00'),
			old_sale_price=D('50.00'),
			new_sale_price=D('60.00'),
			reason='x' * 300,
		)
		values.update(overrides)
		return PriceChange(**values)

	def test_records_entry(self):
		user = User.objects.create_user('op', 'op@example.com', 'pw123456')
		entry = DjangoPriceHistoryRecorder().record(self._change(changed_by=user))
		entry.refresh_from_db()
		self.assertEqual(entry.changed_by, user)
		self.assertEqual(entry.new_sale_price, D('60.00'))
		self.assertEqual(len(entry.reason), 255)

	def test_anonymous_user_is_not_stored(self):
		entry = DjangoPriceHistoryRecorder().record(self._change(changed_by=AnonymousUser()))
		self.assertIsNone(entry.changed_by)

	def test_database_error_is_wrapped(self):
		with patch('pricing.history.PriceHistoryEntry.objects.create', side_effect=DatabaseError('down')):
			with self.assertRaises(PersistenceError) as ctx:
				DjangoPriceHistoryRecorder().record(self._change())
		self.assertEqual(ctx.exception.kind, ErrorKind.PERSISTENCE_ERROR)

	@override_settings(PRICING_HISTORY_DEFAULT_LIMIT=2)
	def test_list_newest_first_with_limit(self):
		recorder = DjangoPriceHistoryRecorder()
		for markup in ('2.00', '3.00', '4.00'):
			recorder.record(self._change(new_markup=D(markup)))
		recorder.record(self._change(entity_id='8'))
		entries = list_price_history(entity_type='insumo', entity_id='7')
		self.assertEqual([e.new_markup for e in entries], [D('4.00'), D('3.00')])
		self.assertEqual(len(list_price_history(entity_id='7', limit=10)), 3)
		self.assertEqual(len(list_price_history(limit=5000)), 2)


class BulkMarkupApplierTests(SimpleTestCase):
	def _applier(self, items, store=None, recorder=None, fail_on_save=(), **kwargs):
		self.repository = FakeRepository('produto', items, fail_on_save=fail_on_save)
		self.recorder = recorder or FakeRecorder()
		self.store = store or FakeStore()
		return BulkMarkupApplier({'produto': self.repository}, self.store, self.recorder, **kwargs)

	def _refs(self, *ids, entity_type='produto'):
		return [EntityRef(entity_type, str(pk)) for pk in ids]

	def test_applies_markup_and_records_history(self):
		items = [make_item(1, cost='10.00', markup='5.00'), make_item(2, cost='2.50')]
		result = self._applier(items, max_workers=1).apply_to_many(self._refs(1, 2), '6', 'Reajuste')
		self.assertEqual(result.summary, {'succeeded': 2, 'failed': 0, 'skipped': 0, 'cancelled': False})
		self.assertEqual(items[0].sale_price, D('60.00'))
		self.assertEqual(items[1].sale_price, D('15.00'))
		self.assertTrue(all(item.markup_is_custom for item in items))
		self.assertEqual(len(self.recorder.changes), 2)
		first = self.recorder.changes[0]
		self.assertEqual((first.old_markup, first.new_markup), (D('5.00'), D('6')))
		self.assertEqual(first.reason, 'Reajuste')

	def test_partial_failure_is_contained(self):
		items = [make_item(1), make_item(2, cost='-1'), make_item(3), make_item(4)]
		result = self._applier(items, max_workers=1).apply_to_many(self._refs(1, 2, 3, 4), '6')
		self.assertEqual(len(result.succeeded), 3)
		self.assertEqual(len(result.failed), 1)
		failure = result.failed[0]
		self.assertEqual(failure.ref, EntityRef('produto', '2'))
		self.assertEqual(failure.error_kind, ErrorKind.INVALID_INPUT)
		for item in (items[0], items[2], items[3]):
			self.assertEqual(item.sale_price, D('60.00'))
		self.assertIsNone(items[1].sale_price)
		self.assertEqual(self.repository.saved, ['1', '3', '4'])

	def test_violation_fails_every_item_without_saving(self):
		result = self._applier([make_item(1), make_item(2)], max_workers=1).apply_to_many(self._refs(1, 2), '12')
		self.assertEqual(len(result.failed), 2)
		self.assertEqual({f.error_kind for f in result.failed}, {str(ErrorKind.ABOVE_MAXIMUM)})
		self.assertEqual(self.repository.saved, [])
		self.assertEqual(self.recorder.changes, [])

	def test_persistence_failures_are_reported(self):
		items = [make_item(1), make_item(2)]
		applier = self._applier(items, fail_on_save=[2], max_workers=1)
		refs = self._refs(1, 2, 99) + self._refs(5, entity_type='servico')
		result = applier.apply_to_many(refs, '6')
		self.assertEqual(result.succeeded, self._refs(1))
		self.assertEqual([f.ref.entity_id for f in result.failed], ['2', '99', '5'])
		self.assertEqual({f.error_kind for f in result.failed}, {str(ErrorKind.PERSISTENCE_ERROR)})
		self.assertEqual(len(self.recorder.changes), 1)

	def test_missing_config_aborts_before_any_item(self):
		applier = self._applier([make_item(1)], store=FakeStore(config=None))
		with self.assertRaises(ConfigNotFound):
			applier.apply_to_many(self._refs(1), '6')
		self.assertEqual(self.repository.saved, [])

	def test_each_item_uses_a_fresh_snapshot(self):
		class TighteningStore(FakeStore):
			def get_global_config(self):
				config = super().get_global_config()
				if self.config_reads > 1:
					return replace(config, max_markup=D('5.00'))
				return config

		applier = self._applier([make_item(1)], store=TighteningStore(), max_workers=1)
		result = applier.apply_to_many(self._refs(1), '6')
		self.assertEqual(result.failed[0].error_kind, ErrorKind.ABOVE_MAXIMUM)

	def test_cancel_before_start_skips_everything(self):
		cancel = threading.Event()
		cancel.set()
		result = self._applier([make_item(1), make_item(2)]).apply_to_many(self._refs(1, 2), '6', cancel_event=cancel)
		self.assertTrue(result.cancelled)
		self.assertEqual(result.skipped, self._refs(1, 2))
		self.assertEqual(self.repository.saved, [])

	def test_cancel_between_items(self):
		cancel = threading.Event()
		recorder = FakeRecorder(on_record=lambda change: cancel.set())
		items = [make_item(pk) for pk in range(1, 5)]
		result = self._applier(items, recorder=recorder, max_workers=1).apply_to_many(
			self._refs(1, 2, 3, 4), '6', cancel_event=cancel,
		)
		self.assertEqual(result.succeeded, self._refs(1))
		self.assertEqual(result.skipped, self._refs(2, 3, 4))
		self.assertTrue(result.cancelled)
		self.assertEqual(items[0].sale_price, D('60.00'))

	def test_concurrent_workers_lose_no_results(self):
		items = [make_item(pk, cost=f'{pk}.00') for pk in range(1, 61)]
		ids = list(range(1, 61))
		applier = self._applier(items, fail_on_save=[7, 42], max_workers=4)
		result = applier.apply_to_many(self._refs(*ids), '2')
		self.assertEqual(len(result.succeeded), 58)
		self.assertEqual([f.ref.entity_id for f in result.failed], ['7', '42'])
		self.assertEqual(result.succeeded, [ref for ref in self._refs(*ids) if ref.entity_id not in ('7', '42')])
		self.assertEqual(len(self.recorder.changes), 58)
		self.assertEqual(sorted(self.repository.saved, key=int), [str(pk) for pk in ids if pk not in (7, 42)])
		self.assertEqual(items[9].sale_price, D('20.00'))

	def test_reapplying_is_idempotent(self):
		items = [make_item(1, cost='3.33')]
		applier = self._applier(items, max_workers=1)
		applier.apply_to_many(self._refs(1), '3')
		first = items[0].sale_price
		applier.apply_to_many(self._refs(1), '3')
		self.assertEqual(items[0].sale_price, first)
		self.assertEqual(first, D('9.99'))

	def test_repeating_the_same_markup_records_history_once(self):
		items = [make_item(1, cost='10.00', markup='5.00')]
		applier = self._applier(items, max_workers=1)
		first = applier.apply_to_many(self._refs(1), '6')
		second = applier.apply_to_many(self._refs(1), '6.00')
		self.assertEqual(first.succeeded, self._refs(1))
		self.assertEqual(second.succeeded, self._refs(1))
		self.assertEqual(len(self.recorder.changes), 1)
		self.assertEqual(self.repository.saved, ['1'])

	def test_flagging_a_stored_markup_as_custom_is_saved(self):
		items = [make_item(1, cost='10.00', markup='6.00')]
		items[0].sale_price = D('60.00')
		self._applier(items, max_workers=1).apply_to_many(self._refs(1), '6')
		self.assertTrue(items[0].markup_is_custom)
		self.assertEqual(self.repository.saved, ['1'])

	def test_three_place_markup_keeps_price_consistent(self):
		items = [make_item(1, cost='100.00')]
		self._applier(items, max_workers=1).apply_to_many(self._refs(1), '6.005')
		self.assertEqual(items[0].markup, D('6.01'))
		self.assertEqual(items[0].sale_price, round_currency(items[0].cost_price * items[0].markup))

	@override_settings(PRICING_BULK_MAX_WORKERS=3)
	def test_workers_default_from_settings(self):
		self.assertEqual(self._applier([]).max_workers, 3)

	def test_result_as_dict(self):
		result = self._applier([make_item(1)], max_workers=1).apply_to_many(self._refs(1, 2), '6')
		payload = result.as_dict()
		self.assertEqual(payload['succeeded'], [{'entity_type': 'produto', 'entity_id': '1'}])
		self.assertEqual(payload['failed'][0]['error_kind'], 'PersistenceError')
		self.assertEqual(payload['summary']['failed'], 1)


class SeedPricingCommandTests(TestCase):
	def setUp(self):
		cache.clear()

	def test_seed_creates_config_and_categories(self):
		out = io.StringIO()
		call_command('seed_pricing', stdout=out)
		self.assertTrue(GlobalPricingConfig.objects.exists())
		self.assertEqual(CategoryMarkup.objects.count(), len(DEFAULT_CATEGORY_MARKUPS))
		self.assertEqual(
			CategoryMarkup.objects.get(category_name=MarkupCategory.EMBALAGENS).default_markup,
			D('4.00'),
		)
		self.assertIn('Categorias criadas: 4', out.getvalue())

	def test_seed_is_idempotent_and_force_resets(self):
		call_command('seed_pricing', stdout=io.StringIO())
		CategoryMarkup.objects.filter(category_name='revenda').update(default_markup=D('9.00'), active=False)
		call_command('seed_pricing', stdout=io.StringIO())
		revenda = CategoryMarkup.objects.get(category_name='revenda')
		self.assertEqual(revenda.default_markup, D('9.00'))

		call_command('seed_pricing', '--force', stdout=io.StringIO())
		revenda.refresh_from_db()
		self.assertEqual(revenda.default_markup, D('2.00'))
		self.assertTrue(revenda.active)
		self.assertEqual(CategoryMarkup.objects.count(), 4)
