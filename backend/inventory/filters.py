import django_filters
from django.db.models import Q
from .models import StockItem


class StockItemFilter(django_filters.FilterSet):
    """Filters for the stock list"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    warehouse_code = django_filters.CharFilter(field_name='warehouse_code', lookup_expr='iexact')
    vendor_number = django_filters.CharFilter(field_name='vendor_number', lookup_expr='iexact')
    in_stock = django_filters.BooleanFilter(method='filter_in_stock', label='In Stock')
    low_stock = django_filters.NumberFilter(method='filter_low_stock', label='Low Stock Threshold')

    class Meta:
        model = StockItem
        fields = ['search', 'warehouse_code', 'vendor_number', 'in_stock', 'low_stock']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(Q(sku__icontains=value) | Q(product_name__icontains=value))

    def filter_in_stock(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(on_hand_quantity__gt=0)
        return queryset.filter(on_hand_quantity=0)

    def filter_low_stock(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(on_hand_quantity__lte=value)
