from django.contrib import admin
from .models import DailyOrderCounter, InboundShipment, OutboundShipment


@admin.register(InboundShipment)
class InboundShipmentAdmin(admin.ModelAdmin):
    list_display = ['box_label', 'sku', 'warehouse_code', 'quantity', 'arriving_date', 'tracking_number']
    list_filter = ['warehouse_code', 'arriving_date']
    search_fields = ['box_label', 'sku__sku', 'tracking_number']
    # Stock counters follow these rows; quantities change only through the API
    readonly_fields = ['sku', 'quantity', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(OutboundShipment)
class OutboundShipmentAdmin(admin.ModelAdmin):
    list_display = ['order_id', 'order_date', 'sku', 'quantity', 'warehouse_code', 'customer_name', 'country']
    list_filter = ['warehouse_code', 'country', 'order_date']
    search_fields = ['order_id', 'customer_name', 'sku__sku', 'tracking_number']
    readonly_fields = ['order_id', 'sku', 'quantity', 'on_hand_at_order', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DailyOrderCounter)
class DailyOrderCounterAdmin(admin.ModelAdmin):
    list_display = ['date', 'counter', 'updated_at']
    readonly_fields = ['date', 'counter', 'updated_at']
