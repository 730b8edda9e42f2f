import django_filters
from django.db.models import Q
from .models import InboundShipment, OutboundShipment


class InboundShipmentFilter(django_filters.FilterSet):
    """Filters for the inbound shipment list"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    sku = django_filters.CharFilter(field_name='sku__sku', lookup_expr='iexact')
    warehouse_code = django_filters.CharFilter(field_name='warehouse_code', lookup_expr='iexact')
    vendor_number = django_filters.CharFilter(field_name='vendor_number', lookup_expr='iexact')
    tracking_number = django_filters.CharFilter(field_name='tracking_number', lookup_expr='iexact')
    arriving_from = django_filters.DateFilter(field_name='arriving_date', lookup_expr='gte')
    arriving_to = django_filters.DateFilter(field_name='arriving_date', lookup_expr='lte')

    class Meta:
        model = InboundShipment
        fields = ['search', 'sku', 'warehouse_code', 'vendor_number', 'tracking_number',
                  'arriving_from', 'arriving_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(box_label__icontains=value) |
            Q(sku__sku__icontains=value) |
            Q(tracking_number__icontains=value)
        )


class OutboundShipmentFilter(django_filters.FilterSet):
    """Filters for the outbound shipment list"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    order_id = django_filters.CharFilter(field_name='order_id', lookup_expr='iexact')
    sku = django_filters.CharFilter(field_name='sku__sku', lookup_expr='iexact')
    warehouse_code = django_filters.CharFilter(field_name='warehouse_code', lookup_expr='iexact')
    vendor_number = django_filters.CharFilter(field_name='vendor_number', lookup_expr='iexact')
    country = django_filters.CharFilter(field_name='country', lookup_expr='iexact')
    date_from = django_filters.DateFilter(field_name='order_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='order_date', lookup_expr='lte')

    class Meta:
        model = OutboundShipment
        fields = ['search', 'order_id', 'sku', 'warehouse_code', 'vendor_number', 'country',
                  'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(order_id__icontains=value) |
            Q(customer_name__icontains=value) |
            Q(sku__sku__icontains=value) |
            Q(tracking_number__icontains=value)
        )
