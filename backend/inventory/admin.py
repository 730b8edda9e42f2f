from django.contrib import admin
from .models import StockItem


@admin.register(StockItem)
class StockItemAdmin(admin.ModelAdmin):
    list_display = ['sku', 'product_name', 'warehouse_code', 'on_hand_quantity', 'reserved_outbound_quantity', 'vendor_number', 'updated_at']
    list_filter = ['warehouse_code', 'updated_at']
    search_fields = ['sku', 'product_name', 'vendor_number']
    ordering = ['sku']
    # Quantities move only through shipments
    readonly_fields = ['on_hand_quantity', 'reserved_outbound_quantity', 'created_at', 'updated_at']
