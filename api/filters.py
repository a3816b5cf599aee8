import django_filters as filters

from pricing.models import PriceHistoryEntry


class PriceHistoryFilter(filters.FilterSet):
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    changed_by = filters.CharFilter(field_name="changed_by__username", lookup_expr="iexact")
    reason = filters.CharFilter(field_name="reason", lookup_expr="icontains")

    class Meta:
        model = PriceHistoryEntry
        fields = ["created_after", "created_before", "changed_by", "reason"]
