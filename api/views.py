import logging
from decimal import Decimal

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.views import ObtainAuthToken
from rest_framework.response import Response
from rest_framework.views import APIView

from pricing.calculator import compute_markup_from_margin, compute_sale_price
from pricing.errors import (
	CategoryNotFound,
	ConfigNotFound,
	EntityNotFound,
	PersistenceError,
	PricingError,
)
from pricing.history import list_price_history
from pricing.models import CategoryMarkup, PriceHistoryEntry
from pricing.resolver import MarkupResolver
from pricing.store import DjangoPricingConfigStore
from pricing.validators import validate_markup
from products.services import (
	apply_markup_to_entities,
	get_entity,
	markup_statistics,
	reprice_entity,
)

from .filters import PriceHistoryFilter
from .permissions import HasAppTokenOrAuthenticated
from .serializers import (
	BulkApplySerializer,
	CalculateSerializer,
	CategoryMarkupSerializer,
	CategoryUpdateSerializer,
	MarkupFromMarginSerializer,
	PriceHistoryEntrySerializer,
	PricingConfigSerializer,
	RepriceSerializer,
	ValidateMarkupSerializer,
)

logger = logging.getLogger("api.pricing")


def _error_response(exc: PricingError) -> Response:
	if isinstance(exc, (EntityNotFound, CategoryNotFound)):
		code = status.HTTP_404_NOT_FOUND
	elif isinstance(exc, ConfigNotFound):
		code = status.HTTP_503_SERVICE_UNAVAILABLE
	elif isinstance(exc, PersistenceError):
		code = status.HTTP_502_BAD_GATEWAY
	else:
		code = status.HTTP_400_BAD_REQUEST
	if code >= 500:
		logger.warning("api: %s (%s)", exc.message, exc.kind)
	return Response(exc.as_dict(), status=code)


def _plain(value):
	"""Render Decimals as fixed two-place strings so money never becomes a float."""
	if isinstance(value, Decimal):
		return f"{value:.2f}"
	if isinstance(value, dict):
		return {key: _plain(item) for key, item in value.items()}
	if isinstance(value, (list, tuple)):
		return [_plain(item) for item in value]
	return value


def _acting_user(request):
	user = getattr(request, "user", None)
	return user if user is not None and user.is_authenticated else None


def _snapshot_dict(snapshot):
	return {
		"default_markup": snapshot.default_markup,
		"min_markup": snapshot.min_markup,
		"max_markup": snapshot.max_markup,
		"allow_zero_markup": snapshot.allow_zero_markup,
		"auto_apply_on_import": snapshot.auto_apply_on_import,
	}


class CustomAuthToken(ObtainAuthToken):
	def post(self, request, *args, **kwargs):
		serializer = self.serializer_class(data=request.data, context={"request": request})
		serializer.is_valid(raise_exception=True)
		user = serializer.validated_data["user"]
		token, created = Token.objects.get_or_create(user=user)
		return Response({"token": token.key, "user_id": user.pk, "username": user.get_username()})


class PricingAPIView(APIView):
	permission_classes = [HasAppTokenOrAuthenticated]


class CalculateAPIView(PricingAPIView):
	def post(self, request):
		serializer = CalculateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data
		try:
			calculation = compute_sale_price(data["cost_price"], data["markup"])
		except PricingError as exc:
			return _error_response(exc)
		return Response(_plain({"cost_price": data["cost_price"], **calculation.as_dict()}))


class MarkupFromMarginAPIView(PricingAPIView):
	def post(self, request):
		serializer = MarkupFromMarginSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		margin = serializer.validated_data["margin_percent"]
		try:
			markup = compute_markup_from_margin(margin)
		except PricingError as exc:
			return _error_response(exc)
		return Response(_plain({"margin_percent": margin, "markup": markup}))


class ValidateMarkupAPIView(PricingAPIView):
	def post(self, request):
		serializer = ValidateMarkupSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		try:
			config = DjangoPricingConfigStore().get_global_config()
		except ConfigNotFound:
			config = None
		try:
			result = validate_markup(serializer.validated_data["markup"], config)
		except PricingError as exc:
			return _error_response(exc)
		return Response(result.as_dict())


class ResolveMarkupAPIView(PricingAPIView):
	def get(self, request, entity_type, pk):
		explicit_markup = request.query_params.get("explicit_markup") or None
		try:
			entity = get_entity(entity_type, pk)
			resolved, calculation = MarkupResolver().price(entity, explicit_markup)
		except PricingError as exc:
			return _error_response(exc)
		payload = {
			"entity_type": entity_type,
			"entity_id": str(entity.pk),
			**resolved.as_dict(),
			"cost_price": entity.cost_price,
			"sale_price": calculation.sale_price,
			"margin_percent": calculation.margin_percent,
		}
		return Response(_plain(payload))


class RepriceEntityAPIView(PricingAPIView):
	def post(self, request, entity_type, pk):
		serializer = RepriceSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data
		try:
			entity = get_entity(entity_type, pk)
			outcome = reprice_entity(
				entity,
				explicit_markup=data.get("explicit_markup"),
				cost_price=data.get("cost_price"),
				changed_by=_acting_user(request),
				reason=data.get("reason") or "Reprecificação via API",
			)
		except PricingError as exc:
			return _error_response(exc)
		return Response(_plain(outcome.as_dict()))


class BulkApplyAPIView(PricingAPIView):
	def post(self, request):
		serializer = BulkApplySerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data
		try:
			result = apply_markup_to_entities(
				data["items"],
				data["markup"],
				data.get("reason") or "Markup aplicado em lote",
				changed_by=_acting_user(request),
			)
		except PricingError as exc:
			return _error_response(exc)
		return Response(result.as_dict())


class PricingConfigAPIView(PricingAPIView):
	def get(self, request):
		try:
			snapshot = DjangoPricingConfigStore().get_global_config()
		except PricingError as exc:
			return _error_response(exc)
		return Response(_plain(_snapshot_dict(snapshot)))

	def patch(self, request):
		serializer = PricingConfigSerializer(data=request.data, partial=True)
		serializer.is_valid(raise_exception=True)
		try:
			snapshot = DjangoPricingConfigStore().update_global_config(
				changed_by=_acting_user(request),
				**serializer.validated_data,
			)
		except PricingError as exc:
			return _error_response(exc)
		return Response(_plain(_snapshot_dict(snapshot)))


class CategoryListAPIView(PricingAPIView):
	def get(self, request):
		qs = CategoryMarkup.objects.order_by("category_name")
		if request.query_params.get("include_inactive") not in ("1", "true", "True"):
			qs = qs.filter(active=True)
		return Response(CategoryMarkupSerializer(qs, many=True).data)

	def post(self, request):
		serializer = CategoryMarkupSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data
		try:
			snapshot = DjangoPricingConfigStore().create_category(
				data["category_name"],
				data["default_markup"],
				active=data.get("active", True),
				description=data.get("description", ""),
			)
		except PricingError as exc:
			return _error_response(exc)
		category = CategoryMarkup.objects.get(category_name=snapshot.category_name)
		return Response(CategoryMarkupSerializer(category).data, status=status.HTTP_201_CREATED)


class CategoryDetailAPIView(PricingAPIView):
	def _get_category(self, name):
		category = CategoryMarkup.objects.filter(category_name=name).first()
		if category is None:
			raise CategoryNotFound(f"Categoria {name} não encontrada.")
		return category

	def get(self, request, name):
		try:
			category = self._get_category(name)
		except PricingError as exc:
			return _error_response(exc)
		return Response(CategoryMarkupSerializer(category).data)

	def patch(self, request, name):
		serializer = CategoryUpdateSerializer(data=request.data, partial=True)
		serializer.is_valid(raise_exception=True)
		try:
			DjangoPricingConfigStore().update_category(name, **serializer.validated_data)
			category = self._get_category(name)
		except PricingError as exc:
			return _error_response(exc)
		return Response(CategoryMarkupSerializer(category).data)

	def delete(self, request, name):
		try:
			DjangoPricingConfigStore().update_category(name, active=False)
			category = self._get_category(name)
		except PricingError as exc:
			return _error_response(exc)
		return Response(CategoryMarkupSerializer(category).data)


class PriceHistoryAPIView(generics.ListAPIView):
	permission_classes = [HasAppTokenOrAuthenticated]
	serializer_class = PriceHistoryEntrySerializer
	filter_backends = [DjangoFilterBackend]
	filterset_class = PriceHistoryFilter
	pagination_class = None

	def get_queryset(self):
		return PriceHistoryEntry.objects.all()

	def list(self, request, *args, **kwargs):
		entries = list_price_history(
			entity_type=request.query_params.get("entity_type"),
			entity_id=request.query_params.get("entity_id"),
			limit=request.query_params.get("limit"),
			queryset=self.filter_queryset(self.get_queryset()),
		)
		return Response(self.get_serializer(entries, many=True).data)


class MarkupStatisticsAPIView(PricingAPIView):
	def get(self, request):
		return Response(_plain(markup_statistics()))
