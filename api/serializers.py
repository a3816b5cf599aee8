# api/serializers.py
from rest_framework import serializers

from pricing.models import CategoryMarkup, PriceHistoryEntry


def _decimal(**kwargs):
    return serializers.DecimalField(max_digits=None, decimal_places=None, **kwargs)


class CalculateSerializer(serializers.Serializer):
    cost_price = _decimal()
    markup = _decimal()


class MarkupFromMarginSerializer(serializers.Serializer):
    margin_percent = _decimal()


class ValidateMarkupSerializer(serializers.Serializer):
    markup = _decimal()


class RepriceSerializer(serializers.Serializer):
    explicit_markup = _decimal(required=False, allow_null=True)
    cost_price = _decimal(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class EntityRefSerializer(serializers.Serializer):
    entity_type = serializers.CharField(max_length=20)
    entity_id = serializers.CharField(max_length=64)


class BulkApplySerializer(serializers.Serializer):
    items = EntityRefSerializer(many=True, allow_empty=False)
    markup = _decimal()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class PricingConfigSerializer(serializers.Serializer):
    default_markup = _decimal(required=False)
    min_markup = _decimal(required=False)
    max_markup = _decimal(required=False)
    allow_zero_markup = serializers.BooleanField(required=False)
    auto_apply_on_import = serializers.BooleanField(required=False)


class CategoryMarkupSerializer(serializers.ModelSerializer):
    class Meta:
        model = CategoryMarkup
        fields = [
            "category_name",
            "default_markup",
            "active",
            "description",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]
        # uniqueness is checked by the config store
        extra_kwargs = {"category_name": {"validators": []}}


class CategoryUpdateSerializer(serializers.Serializer):
    default_markup = _decimal(required=False)
    active = serializers.BooleanField(required=False)
    description = serializers.CharField(required=False, allow_blank=True, max_length=255)


class PriceHistoryEntrySerializer(serializers.ModelSerializer):
    changed_by = serializers.SlugRelatedField(slug_field="username", read_only=True)

    class Meta:
        model = PriceHistoryEntry
        fields = [
            "id",
            "entity_type",
            "entity_id",
            "old_cost_price",
            "new_cost_price",
            "old_markup",
            "new_markup",
            "old_sale_price",
            "new_sale_price",
            "changed_by",
            "reason",
            "created_at",
        ]
        read_only_fields = fields
