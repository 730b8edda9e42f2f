from django.db import models
from decimal import Decimal


class StockItem(models.Model):
    """
    One row per SKU holding the derived stock counters.

    ``on_hand_quantity`` and ``reserved_outbound_quantity`` are written only by
    the shipment ledger (backend.shipments.services); the registry endpoints
    treat them as read-only after registration.
    """
    sku = models.CharField(max_length=100, unique=True)
    product_name = models.CharField(max_length=255, blank=True, null=True)
    warehouse_code = models.CharField(max_length=50, db_index=True)
    on_hand_quantity = models.PositiveIntegerField(default=0)
    reserved_outbound_quantity = models.PositiveIntegerField(default=0)
    weight = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))
    height = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))
    length = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))
    width = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))
    cbm = models.DecimalField(max_digits=12, decimal_places=6, default=Decimal('0.000000'))
    vendor_number = models.CharField(max_length=100, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.sku

    class Meta:
        db_table = 'inventory'
        ordering = ['sku']
        constraints = [
            models.CheckConstraint(condition=models.Q(on_hand_quantity__gte=0), name='chk_inventory_on_hand_non_negative'),
            models.CheckConstraint(condition=models.Q(reserved_outbound_quantity__gte=0), name='chk_inventory_reserved_non_negative'),
        ]
        indexes = [
            models.Index(fields=['warehouse_code', 'sku'], name='idx_inventory_wh_sku'),
        ]
