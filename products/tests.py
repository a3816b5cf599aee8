import io
import tempfile
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase

from pricing.bulk import EntityRef
from pricing.errors import ConfigNotFound, EntityNotFound, ErrorKind, MarkupViolation, PersistenceError
from pricing.models import CategoryMarkup, GlobalPricingConfig, PriceHistoryEntry
from pricing.resolver import MarkupSource

from .importers import import_costs_from_file, parse_decimal
from .models import ItemKind, Packaging, Product, Supply
from .repositories import ModelEntityRepository, get_entity_repositories
from .services import (
	apply_markup_to_entities,
	calculate_for_category,
	get_entity,
	markup_statistics,
	price_imported_entity,
	reprice_entity,
)


class PricingFixtureMixin:
	def setUp(self):
		cache.clear()
		GlobalPricingConfig.provision(default_markup=Decimal('5.00'))
		CategoryMarkup.objects.create(category_name='embalagens', default_markup=Decimal('4.00'))
		CategoryMarkup.objects.create(category_name='alopaticos', default_markup=Decimal('6.00'))
		self.user = User.objects.create_user('farmaceutico', 'f@example.com', 'pw123456')


class PricedItemModelTests(TestCase):
	def test_sale_price_is_derived_on_save(self):
		product = Product.objects.create(name='Dipirona', code='DIP1', cost_price='10.00', markup='6.0')
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('60.00'))
		self.assertEqual(product.margin_percent, Decimal('83.33'))

		Product.objects.filter(pk=product.pk).update(sale_price=Decimal('1.00'))
		product.refresh_from_db()
		product.save()
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('60.00'))

	def test_update_fields_always_include_sale_price(self):
		product = Product.objects.create(name='Soro', cost_price='2.00', markup='2.0')
		product.cost_price = Decimal('3.00')
		product.save(update_fields=['cost_price'])
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('6.00'))

	def test_without_markup_there_is_no_sale_price(self):
		supply = Supply.objects.create(name='Lactose', cost_price='1.00')
		self.assertIsNone(supply.sale_price)
		self.assertIsNone(supply.margin_percent)

	def test_apply_markup_sets_flag(self):
		product = Product(name='Pomada', cost_price=Decimal('4.00'))
		self.assertEqual(product.apply_markup('2.5'), Decimal('10.00'))
		self.assertTrue(product.markup_is_custom)
		product.apply_markup('3', custom=False)
		self.assertFalse(product.markup_is_custom)

	def test_default_categories(self):
		self.assertEqual(Product.objects.create(name='A', product_type=ItemKind.EMBALAGEM).category_name, 'embalagens')
		self.assertEqual(Product.objects.create(name='B').category_name, 'revenda')
		self.assertEqual(Supply.objects.create(name='C').category_name, 'alopaticos')
		self.assertEqual(Supply.objects.create(name='D', supply_type=ItemKind.HOMEOPATICO).category_name, 'homeopaticos')
		self.assertEqual(Packaging.objects.create(name='Pote').category_name, 'embalagens')
		self.assertEqual(Packaging.objects.create(name='Outro', category_name='revenda').category_name, 'revenda')

	def test_clean_rejects_invalid_values(self):
		with self.assertRaises(ValidationError):
			Product(name='X', cost_price=Decimal('-1')).full_clean()
		with self.assertRaises(ValidationError):
			Product(name='X', cost_price=Decimal('1'), markup=Decimal('0')).full_clean()


class EntityRepositoryTests(TestCase):
	def test_get_and_save(self):
		product = Product.objects.create(name='Xarope', cost_price='5.00', markup='2.00')
		repository = ModelEntityRepository(Product)
		loaded = repository.get(str(product.pk))
		loaded.markup = Decimal('3.00')
		repository.save_pricing(loaded)
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('15.00'))
		self.assertIsNotNone(product.price_updated_at)

	def test_missing_or_malformed_ids(self):
		repository = ModelEntityRepository(Supply)
		for entity_id in ('999', 'abc', None):
			with self.assertRaises(EntityNotFound):
				repository.get(entity_id)

	def test_database_error_on_save(self):
		product = Product.objects.create(name='Xarope', cost_price='5.00', markup='2.00')
		with patch.object(Product, 'save', side_effect=DatabaseError('locked')):
			with self.assertRaises(PersistenceError):
				ModelEntityRepository(Product).save_pricing(product)

	def test_repositories_by_type(self):
		repositories = get_entity_repositories()
		self.assertEqual(set(repositories), {'produto', 'insumo', 'embalagem'})
		self.assertIs(repositories['embalagem'].model, Packaging)

	def test_get_entity_unknown_type(self):
		with self.assertRaises(EntityNotFound):
			get_entity('servico', 1)


class RepriceServiceTests(PricingFixtureMixin, TestCase):
	def test_reprice_uses_category_default(self):
		packaging = Packaging.objects.create(name='Frasco 100ml', cost_price='2.50')
		outcome = reprice_entity(packaging, changed_by=self.user, reason='Cadastro')
		self.assertTrue(outcome.changed)
		self.assertEqual(outcome.resolved.source, MarkupSource.CATEGORY)
		packaging.refresh_from_db()
		self.assertEqual(packaging.markup, Decimal('4.00'))
		self.assertEqual(packaging.sale_price, Decimal('10.00'))
		self.assertFalse(packaging.markup_is_custom)
		entry = PriceHistoryEntry.objects.get()
		self.assertEqual(entry.entity_type, 'embalagem')
		self.assertEqual(entry.entity_id, str(packaging.pk))
		self.assertEqual(entry.new_sale_price, Decimal('10.00'))
		self.assertEqual(entry.changed_by, self.user)

	def test_inactive_category_uses_global_default(self):
		CategoryMarkup.objects.get(category_name='embalagens').delete()
		packaging = Packaging.objects.create(name='Pote', cost_price='1.00')
		outcome = reprice_entity(packaging)
		self.assertEqual(outcome.resolved.source, MarkupSource.GLOBAL_FALLBACK)
		self.assertEqual(packaging.sale_price, Decimal('5.00'))

	def test_explicit_markup_marks_custom(self):
		product = Product.objects.create(name='Creme', cost_price='10.00', category_name='alopaticos')
		reprice_entity(product, explicit_markup='7.5')
		product.refresh_from_db()
		self.assertTrue(product.markup_is_custom)
		self.assertEqual(product.sale_price, Decimal('75.00'))

		outcome = reprice_entity(product, cost_price='20.00')
		self.assertEqual(outcome.resolved.source, MarkupSource.CUSTOM)
		self.assertEqual(product.sale_price, Decimal('150.00'))

	def test_unchanged_price_records_nothing(self):
		packaging = Packaging.objects.create(name='Pote', cost_price='1.00')
		reprice_entity(packaging)
		outcome = reprice_entity(packaging)
		self.assertFalse(outcome.changed)
		self.assertEqual(PriceHistoryEntry.objects.count(), 1)

	def test_three_place_values_are_stored_as_priced(self):
		product = Product.objects.create(name='Creme', cost_price='100.00', category_name='alopaticos')
		reprice_entity(product, explicit_markup='6.005')
		product.refresh_from_db()
		self.assertEqual(product.markup, Decimal('6.01'))
		self.assertEqual(product.sale_price, Decimal('601.00'))

		reprice_entity(product, cost_price='1.234', explicit_markup='6')
		product.refresh_from_db()
		self.assertEqual(product.cost_price, Decimal('1.23'))
		self.assertEqual(product.sale_price, Decimal('7.38'))
		self.assertEqual(PriceHistoryEntry.objects.latest('pk').new_sale_price, Decimal('7.38'))

	def test_violation_is_raised_and_nothing_saved(self):
		product = Product.objects.create(name='Creme', cost_price='10.00', markup='2.00')
		with self.assertRaises(MarkupViolation) as ctx:
			reprice_entity(product, explicit_markup='50')
		self.assertEqual(ctx.exception.kind, ErrorKind.ABOVE_MAXIMUM)
		product.refresh_from_db()
		self.assertEqual(product.markup, Decimal('2.00'))
		self.assertFalse(PriceHistoryEntry.objects.exists())

	def test_history_failure_rolls_back_entity(self):
		product = Product.objects.create(name='Creme', cost_price='10.00', markup='2.00')
		with patch('pricing.history.PriceHistoryEntry.objects.create', side_effect=DatabaseError('down')):
			with self.assertRaises(PersistenceError):
				reprice_entity(product, explicit_markup='3')
		product.refresh_from_db()
		self.assertEqual(product.markup, Decimal('2.00'))

	def test_missing_config(self):
		GlobalPricingConfig.objects.all().delete()
		cache.clear()
		with self.assertRaises(ConfigNotFound):
			reprice_entity(Product.objects.create(name='Creme', cost_price='1.00'))


class ImportPricingTests(PricingFixtureMixin, TestCase):
	def test_import_reprices_when_auto_apply_is_on(self):
		supply = Supply.objects.create(name='Ácido', code='AC1', cost_price='1.00', markup='2.00')
		outcome = price_imported_entity(supply, '3.00')
		self.assertEqual(outcome.resolved.source, MarkupSource.CATEGORY)
		self.assertEqual(supply.sale_price, Decimal('18.00'))

	def test_import_keeps_markup_when_auto_apply_is_off(self):
		GlobalPricingConfig.objects.filter(pk=1).update(auto_apply_on_import=False)
		cache.clear()
		supply = Supply.objects.create(name='Ácido', code='AC1', cost_price='1.00', markup='2.00')
		outcome = price_imported_entity(supply, '3.00')
		self.assertIsNone(outcome.resolved)
		supply.refresh_from_db()
		self.assertEqual(supply.markup, Decimal('2.00'))
		self.assertEqual(supply.sale_price, Decimal('6.00'))
		self.assertEqual(PriceHistoryEntry.objects.get().new_cost_price, Decimal('3.00'))

	def test_csv_import(self):
		Product.objects.create(name='Dipirona', code='DIP1', cost_price='1.00', product_type=ItemKind.EMBALAGEM)
		Supply.objects.create(name='Lactose', code='LAC', cost_price='1.00')
		content = 'sep=;\ntipo;codigo;custo\nproduto;DIP1;2,50\ninsumo;LAC;1.000,00\ninsumo;NAO;1,00\nservico;X;1,00\nproduto;DIP1;abc\n'
		updated, unchanged, messages = import_costs_from_file(io.StringIO(content))
		self.assertEqual((updated, unchanged), (2, 0))
		self.assertEqual(len(messages), 3)
		self.assertEqual(Product.objects.get(code='DIP1').sale_price, Decimal('10.00'))
		self.assertEqual(Supply.objects.get(code='LAC').sale_price, Decimal('6000.00'))

	def test_messages_use_file_line_numbers(self):
		Product.objects.create(name='Dipirona', code='DIP1', cost_price='1.00')
		with_sep = 'sep=;\ntipo;codigo;custo\nproduto;DIP1;2,50\nproduto;NAO;1,00\n'
		_, _, messages = import_costs_from_file(io.StringIO(with_sep))
		self.assertEqual(messages, ['Linha 4: produto NAO não encontrado.'])
		without_sep = 'tipo;codigo;custo\nproduto;NAO;1,00\n'
		_, _, messages = import_costs_from_file(io.StringIO(without_sep))
		self.assertEqual(messages, ['Linha 2: produto NAO não encontrado.'])

	def test_parse_decimal(self):
		self.assertEqual(parse_decimal('1.234,56'), Decimal('1234.56'))
		self.assertEqual(parse_decimal('2.5'), Decimal('2.5'))
		self.assertIsNone(parse_decimal(''))
		self.assertIsNone(parse_decimal('x'))


class CategoryPricingTests(PricingFixtureMixin, TestCase):
	def test_calculate_for_category(self):
		resolved, calculation = calculate_for_category('10.00', 'embalagens')
		self.assertEqual(resolved.source, MarkupSource.CATEGORY)
		self.assertEqual(calculation.sale_price, Decimal('40.00'))

		resolved, calculation = calculate_for_category('10.00', 'desconhecida')
		self.assertEqual(resolved.source, MarkupSource.GLOBAL_FALLBACK)
		self.assertEqual(calculation.sale_price, Decimal('50.00'))

	def test_markup_statistics(self):
		Product.objects.create(name='A', cost_price='1.00', markup='2.00', markup_is_custom=True)
		Supply.objects.create(name='B', cost_price='1.00', markup='6.00')
		Packaging.objects.create(name='C', cost_price='1.00', markup='4.00')
		Packaging.objects.create(name='D', cost_price='1.00')
		stats = markup_statistics()
		self.assertEqual(stats['total_items'], 4)
		self.assertEqual(stats['priced_items'], 3)
		self.assertEqual(stats['custom_markups'], 1)
		self.assertEqual(stats['average_markup'], Decimal('4.00'))
		self.assertEqual(stats['min_markup'], Decimal('2.00'))
		self.assertEqual(stats['max_markup'], Decimal('6.00'))
		self.assertEqual(stats['by_entity_type']['embalagem']['total_items'], 2)

	def test_statistics_when_empty(self):
		stats = markup_statistics()
		self.assertIsNone(stats['average_markup'])
		self.assertEqual(stats['total_items'], 0)


class BulkApplyIntegrationTests(PricingFixtureMixin, TestCase):
	def test_apply_to_many_entity_types(self):
		product = Product.objects.create(name='A', cost_price='10.00')
		supply = Supply.objects.create(name='B', cost_price='2.00')
		items = [
			{'entity_type': 'produto', 'entity_id': str(product.pk)},
			EntityRef('insumo', str(supply.pk)),
			('embalagem', '999'),
		]
		result = apply_markup_to_entities(items, '6', 'Reajuste anual', changed_by=self.user, max_workers=1)
		self.assertEqual(len(result.succeeded), 2)
		self.assertEqual(len(result.failed), 1)
		self.assertEqual(result.failed[0].error_kind, ErrorKind.PERSISTENCE_ERROR)
		product.refresh_from_db()
		supply.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('60.00'))
		self.assertEqual(supply.sale_price, Decimal('12.00'))
		self.assertTrue(product.markup_is_custom)
		self.assertEqual(PriceHistoryEntry.objects.filter(reason='Reajuste anual').count(), 2)

	def test_repeated_markup_writes_a_single_history_row(self):
		product = Product.objects.create(name='A', cost_price='10.00', markup='2.00')
		for _ in range(2):
			result = apply_markup_to_entities([('produto', product.pk)], '6', max_workers=1)
			self.assertEqual(len(result.succeeded), 1)
		outcome = reprice_entity(Product.objects.get(pk=product.pk), explicit_markup='6')
		self.assertFalse(outcome.changed)
		self.assertEqual(PriceHistoryEntry.objects.filter(entity_id=str(product.pk)).count(), 1)

	def test_three_place_markup_is_stored_as_priced(self):
		product = Product.objects.create(name='A', cost_price='100.00')
		apply_markup_to_entities([('produto', product.pk)], '6.005', max_workers=1)
		product.refresh_from_db()
		self.assertEqual(product.markup, Decimal('6.01'))
		self.assertEqual(product.sale_price, Decimal('601.00'))

	def test_failed_history_write_keeps_entity_untouched(self):
		product = Product.objects.create(name='A', cost_price='10.00', markup='2.00')
		with patch('pricing.history.PriceHistoryEntry.objects.create', side_effect=DatabaseError('down')):
			result = apply_markup_to_entities([('produto', product.pk)], '6', max_workers=1)
		self.assertEqual(result.failed[0].error_kind, ErrorKind.PERSISTENCE_ERROR)
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('20.00'))


class ImportCommandTests(PricingFixtureMixin, TestCase):
	def test_command_reports_progress(self):
		Product.objects.create(name='Dipirona', code='DIP1', cost_price='1.00')
		with tempfile.TemporaryDirectory() as tmp:
			path = Path(tmp) / 'custos.csv'
			path.write_text('tipo;codigo;custo\nproduto;DIP1;3,00\n', encoding='utf-8')
			out = io.StringIO()
			call_command('import_costs_csv', str(path), stdout=out)
		self.assertIn('Atualizados: 1', out.getvalue())
		self.assertEqual(Product.objects.get(code='DIP1').cost_price, Decimal('3.00'))
