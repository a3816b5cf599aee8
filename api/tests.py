from decimal import Decimal

from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from pricing.models import CategoryMarkup, GlobalPricingConfig, PriceHistoryEntry
from products.models import Packaging, Product


class PricingAPITestCase(APITestCase):
	def setUp(self):
		cache.clear()
		self.user = User.objects.create_user('tester', 'tester@example.com', 'pw123456')
		self.client.force_authenticate(self.user)
		GlobalPricingConfig.provision(default_markup=Decimal('5.00'), max_markup=Decimal('10.00'))
		CategoryMarkup.objects.create(category_name='embalagens', default_markup=Decimal('4.00'))


class CalculatorAPITests(PricingAPITestCase):
	def test_calculate(self):
		resp = self.client.post(reverse('api-pricing-calculate'), {'cost_price': '10.00', 'markup': '6.0'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		payload = resp.json()
		self.assertEqual(payload['sale_price'], '60.00')
		self.assertEqual(payload['margin_percent'], '83.33')

	def test_calculate_rejects_negative_cost(self):
		resp = self.client.post(reverse('api-pricing-calculate'), {'cost_price': '-1', 'markup': '2'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(resp.json()['error_kind'], 'InvalidInput')

	def test_calculate_requires_fields(self):
		resp = self.client.post(reverse('api-pricing-calculate'), {'cost_price': '10'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertIn('markup', resp.json())

	def test_markup_from_margin(self):
		url = reverse('api-pricing-markup-from-margin')
		resp = self.client.post(url, {'margin_percent': '50'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['markup'], '2.00')

		resp = self.client.post(url, {'margin_percent': '100'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(resp.json()['error_kind'], 'InvalidInput')

	def test_validate(self):
		url = reverse('api-pricing-validate')
		resp = self.client.post(url, {'markup': '0'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['violation'], 'ZeroNotAllowed')

		resp = self.client.post(url, {'markup': '12'}, format='json')
		payload = resp.json()
		self.assertFalse(payload['valid'])
		self.assertEqual(payload['violation'], 'AboveMaximum')
		self.assertIn('10.00', payload['message'])

		resp = self.client.post(url, {'markup': '6'}, format='json')
		self.assertTrue(resp.json()['valid'])

	def test_validate_without_config(self):
		GlobalPricingConfig.objects.all().delete()
		cache.clear()
		resp = self.client.post(reverse('api-pricing-validate'), {'markup': '6'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['violation'], 'MissingConfig')


class EntityPricingAPITests(PricingAPITestCase):
	def setUp(self):
		super().setUp()
		self.packaging = Packaging.objects.create(name='Frasco', cost_price='2.50')

	def test_resolve_by_category(self):
		url = reverse('api-pricing-resolve', args=['embalagem', self.packaging.pk])
		resp = self.client.get(url)
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		payload = resp.json()
		self.assertEqual(payload['source'], 'category')
		self.assertEqual(payload['markup'], '4.00')
		self.assertEqual(payload['sale_price'], '10.00')

	def test_resolve_explicit_out_of_bounds(self):
		url = reverse('api-pricing-resolve', args=['embalagem', self.packaging.pk])
		resp = self.client.get(url, {'explicit_markup': '12'})
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(resp.json()['error_kind'], 'AboveMaximum')

	def test_resolve_unknown_entity(self):
		resp = self.client.get(reverse('api-pricing-resolve', args=['embalagem', 9999]))
		self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
		resp = self.client.get(reverse('api-pricing-resolve', args=['servico', 1]))
		self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

	def test_resolve_without_config(self):
		GlobalPricingConfig.objects.all().delete()
		cache.clear()
		resp = self.client.get(reverse('api-pricing-resolve', args=['embalagem', self.packaging.pk]))
		self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
		self.assertEqual(resp.json()['error_kind'], 'ConfigNotFound')

	def test_reprice(self):
		url = reverse('api-pricing-reprice', args=['embalagem', self.packaging.pk])
		resp = self.client.post(url, {'explicit_markup': '3', 'reason': 'Ajuste'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		payload = resp.json()
		self.assertEqual(payload['sale_price'], '7.50')
		self.assertTrue(payload['markup_is_custom'])
		self.assertTrue(payload['changed'])
		entry = PriceHistoryEntry.objects.get()
		self.assertEqual(entry.changed_by, self.user)
		self.assertEqual(entry.reason, 'Ajuste')

	def test_bulk_apply(self):
		product = Product.objects.create(name='Dipirona', cost_price='10.00')
		items = [
			{'entity_type': 'produto', 'entity_id': str(product.pk)},
			{'entity_type': 'embalagem', 'entity_id': str(self.packaging.pk)},
			{'entity_type': 'produto', 'entity_id': '9999'},
		]
		resp = self.client.post(reverse('api-pricing-bulk-apply'), {'items': items, 'markup': '6'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		payload = resp.json()
		self.assertEqual(payload['summary']['succeeded'], 2)
		self.assertEqual(payload['summary']['failed'], 1)
		self.assertEqual(payload['failed'][0]['entity_id'], '9999')
		self.assertEqual(payload['failed'][0]['error_kind'], 'PersistenceError')
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('60.00'))
		self.assertEqual(PriceHistoryEntry.objects.filter(changed_by=self.user).count(), 2)

	def test_three_place_markup_matches_the_stored_price(self):
		product = Product.objects.create(name='Dipirona', cost_price='100.00')
		url = reverse('api-pricing-reprice', args=['produto', product.pk])
		resp = self.client.post(url, {'explicit_markup': '6.005'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		payload = resp.json()
		self.assertEqual((payload['markup'], payload['sale_price']), ('6.01', '601.00'))
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('601.00'))

		items = [{'entity_type': 'produto', 'entity_id': str(product.pk)}]
		for _ in range(2):
			resp = self.client.post(reverse('api-pricing-bulk-apply'), {'items': items, 'markup': '6.005'}, format='json')
			self.assertEqual(resp.json()['summary']['succeeded'], 1)
		product.refresh_from_db()
		self.assertEqual(product.sale_price, Decimal('601.00'))
		self.assertEqual(PriceHistoryEntry.objects.filter(entity_id=str(product.pk)).count(), 1)

	def test_bulk_apply_without_config(self):
		GlobalPricingConfig.objects.all().delete()
		cache.clear()
		items = [{'entity_type': 'embalagem', 'entity_id': str(self.packaging.pk)}]
		resp = self.client.post(reverse('api-pricing-bulk-apply'), {'items': items, 'markup': '6'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

	def test_bulk_apply_requires_items(self):
		resp = self.client.post(reverse('api-pricing-bulk-apply'), {'items': [], 'markup': '6'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

	def test_history_and_statistics(self):
		url = reverse('api-pricing-reprice', args=['embalagem', self.packaging.pk])
		self.client.post(url, {}, format='json')
		self.client.post(url, {'explicit_markup': '6'}, format='json')

		resp = self.client.get(reverse('api-pricing-history'), {'entity_type': 'embalagem', 'entity_id': self.packaging.pk})
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		entries = resp.json()
		self.assertEqual(len(entries), 2)
		self.assertEqual(entries[0]['new_sale_price'], '15.00')
		self.assertEqual(entries[0]['changed_by'], 'tester')

		resp = self.client.get(reverse('api-pricing-history'), {'limit': 1})
		self.assertEqual(len(resp.json()), 1)

		resp = self.client.get(reverse('api-pricing-statistics'))
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['custom_markups'], 1)
		self.assertEqual(resp.json()['average_markup'], '6.00')


class ConfigAndCategoryAPITests(PricingAPITestCase):
	def test_get_and_patch_config(self):
		url = reverse('api-pricing-config')
		resp = self.client.get(url)
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['default_markup'], '5.00')

		resp = self.client.patch(url, {'max_markup': '15'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['max_markup'], '15.00')
		self.assertEqual(resp.json()['default_markup'], '5.00')
		self.assertEqual(GlobalPricingConfig.objects.get().updated_by, self.user)

	def test_patch_config_invalid_bounds(self):
		resp = self.client.patch(reverse('api-pricing-config'), {'min_markup': '30'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(resp.json()['error_kind'], 'InvalidInput')

	def test_config_missing(self):
		GlobalPricingConfig.objects.all().delete()
		cache.clear()
		resp = self.client.get(reverse('api-pricing-config'))
		self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

	def test_category_crud(self):
		list_url = reverse('api-pricing-categories')
		resp = self.client.post(list_url, {'category_name': 'revenda', 'default_markup': '2.00'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
		self.assertEqual(resp.json()['default_markup'], '2.00')

		resp = self.client.post(list_url, {'category_name': 'revenda', 'default_markup': '3.00'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

		detail_url = reverse('api-pricing-category-detail', args=['revenda'])
		resp = self.client.patch(detail_url, {'default_markup': '2.50'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertEqual(resp.json()['default_markup'], '2.50')

		resp = self.client.delete(detail_url)
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		self.assertFalse(resp.json()['active'])
		self.assertTrue(CategoryMarkup.objects.filter(category_name='revenda').exists())

		names = [c['category_name'] for c in self.client.get(list_url).json()]
		self.assertEqual(names, ['embalagens'])
		names = [c['category_name'] for c in self.client.get(list_url, {'include_inactive': '1'}).json()]
		self.assertEqual(names, ['embalagens', 'revenda'])

	def test_unknown_category(self):
		resp = self.client.get(reverse('api-pricing-category-detail', args=['inexistente']))
		self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
		self.assertEqual(resp.json()['error_kind'], 'NotFound')


@override_settings(APP_INTEGRATION_TOKEN='segredo')
class PricingPermissionTests(PricingAPITestCase):
	def test_requires_authentication_or_app_token(self):
		self.client.force_authenticate(None)
		url = reverse('api-pricing-config')
		resp = self.client.get(url)
		self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

		resp = self.client.get(url, HTTP_X_APP_TOKEN='segredo')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)

		resp = self.client.get(url, HTTP_AUTHORIZATION='Bearer segredo')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)

		resp = self.client.get(url, HTTP_X_APP_TOKEN='errado')
		self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

	def test_token_login(self):
		self.client.force_authenticate(None)
		resp = self.client.post(reverse('api-token-auth'), {'username': 'tester', 'password': 'pw123456'}, format='json')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
		token = resp.json()['token']
		resp = self.client.get(reverse('api-pricing-statistics'), HTTP_AUTHORIZATION=f'Token {token}')
		self.assertEqual(resp.status_code, status.HTTP_200_OK)
