from django.contrib import admin, messages

from .models import CategoryMarkup, GlobalPricingConfig, PriceHistoryEntry


@admin.register(GlobalPricingConfig)
class GlobalPricingConfigAdmin(admin.ModelAdmin):
	list_display = ('default_markup', 'min_markup', 'max_markup', 'allow_zero_markup', 'auto_apply_on_import', 'updated_at')
	readonly_fields = ('updated_at', 'updated_by')

	def has_add_permission(self, request):
		return not GlobalPricingConfig.objects.exists()

	def has_delete_permission(self, request, obj=None):
		return False

	def save_model(self, request, obj, form, change):
		obj.updated_by = request.user
		super().save_model(request, obj, form, change)


@admin.action(description='Desativar categorias selecionadas')
def deactivate_categories(modeladmin, request, queryset):
	updated = 0
	for category in queryset.filter(active=True):
		category.delete()
		updated += 1
	messages.success(request, f'{updated} categoria(s) desativada(s).')


@admin.register(CategoryMarkup)
class CategoryMarkupAdmin(admin.ModelAdmin):
	list_display = ('category_name', 'default_markup', 'active', 'updated_at')
	list_filter = ('active',)
	search_fields = ('category_name', 'description')
	readonly_fields = ('created_at', 'updated_at')
	ordering = ('category_name',)
	actions = [deactivate_categories]

	def has_delete_permission(self, request, obj=None):
		return False


@admin.register(PriceHistoryEntry)
class PriceHistoryEntryAdmin(admin.ModelAdmin):
	list_display = ('created_at', 'entity_type', 'entity_id', 'old_markup', 'new_markup', 'old_sale_price', 'new_sale_price', 'changed_by')
	list_filter = ('entity_type',)
	search_fields = ('entity_id', 'reason')
	ordering = ('-created_at',)

	def has_add_permission(self, request):
		return False

	def has_change_permission(self, request, obj=None):
		return False

	def has_delete_permission(self, request, obj=None):
		return False
