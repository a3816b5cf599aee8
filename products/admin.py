from django.contrib import admin, messages

from pricing.errors import PricingError

from .models import Packaging, Product, Supply
from .services import reprice_entity


@admin.action(description='Recalcular preço de venda pelo markup vigente')
def reprice_selected(modeladmin, request, queryset):
	repriced = 0
	for item in queryset:
		try:
			outcome = reprice_entity(item, changed_by=request.user, reason='Recálculo pelo admin')
		except PricingError as exc:
			messages.error(request, f'{item}: {exc.message}')
			continue
		if outcome.changed:
			repriced += 1
	messages.success(request, f'{repriced} item(ns) reprecificado(s).')


class PricedItemAdmin(admin.ModelAdmin):
	list_display = ('name', 'code', 'category_name', 'cost_price', 'markup', 'markup_is_custom', 'sale_price', 'price_updated_at')
	list_filter = ('category_name', 'markup_is_custom')
	search_fields = ('name', 'code')
	readonly_fields = ('sale_price', 'price_updated_at', 'created_at', 'updated_at')
	ordering = ('name',)
	actions = [reprice_selected]


@admin.register(Product)
class ProductAdmin(PricedItemAdmin):
	list_filter = ('product_type',) + PricedItemAdmin.list_filter
	search_fields = PricedItemAdmin.search_fields + ('gtin',)


@admin.register(Supply)
class SupplyAdmin(PricedItemAdmin):
	list_filter = ('supply_type',) + PricedItemAdmin.list_filter


@admin.register(Packaging)
class PackagingAdmin(PricedItemAdmin):
	pass
