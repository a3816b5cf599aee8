# api/urls.py
from django.urls import path

from .views import (
	BulkApplyAPIView,
	CalculateAPIView,
	CategoryDetailAPIView,
	CategoryListAPIView,
	CustomAuthToken,
	MarkupFromMarginAPIView,
	MarkupStatisticsAPIView,
	PriceHistoryAPIView,
	PricingConfigAPIView,
	RepriceEntityAPIView,
	ResolveMarkupAPIView,
	ValidateMarkupAPIView,
)

urlpatterns = [
	path("pricing/calculate/", CalculateAPIView.as_view(), name="api-pricing-calculate"),
	path("pricing/markup-from-margin/", MarkupFromMarginAPIView.as_view(), name="api-pricing-markup-from-margin"),
	path("pricing/validate/", ValidateMarkupAPIView.as_view(), name="api-pricing-validate"),
	path("pricing/resolve/<str:entity_type>/<str:pk>/", ResolveMarkupAPIView.as_view(), name="api-pricing-resolve"),
	path("pricing/entities/<str:entity_type>/<str:pk>/reprice/", RepriceEntityAPIView.as_view(), name="api-pricing-reprice"),
	path("pricing/bulk-apply/", BulkApplyAPIView.as_view(), name="api-pricing-bulk-apply"),
	path("pricing/config/", PricingConfigAPIView.as_view(), name="api-pricing-config"),
	path("pricing/categories/", CategoryListAPIView.as_view(), name="api-pricing-categories"),
	path("pricing/categories/<str:name>/", CategoryDetailAPIView.as_view(), name="api-pricing-category-detail"),
	path("pricing/history/", PriceHistoryAPIView.as_view(), name="api-pricing-history"),
	path("pricing/statistics/", MarkupStatisticsAPIView.as_view(), name="api-pricing-statistics"),
	path("login/", CustomAuthToken.as_view(), name="api-login"),
]
