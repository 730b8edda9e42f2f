from django.db import models
from decimal import Decimal
from backend.inventory.models import StockItem


class DailyOrderCounter(models.Model):
    """Per-day sequence backing outbound order ids (OS<MMDDYY>-<NNNN>)"""
    date = models.DateField(unique=True)
    counter = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.date.isoformat()}: {self.counter}"

    class Meta:
        db_table = 'order_id_counters'


class InboundShipment(models.Model):
    """Stock arriving at a warehouse; adds to on-hand quantity"""
    shipping_date = models.DateField()
    box_label = models.CharField(max_length=100)
    sku = models.ForeignKey(
        StockItem, on_delete=models.PROTECT, to_field='sku', db_column='sku',
        related_name='inbound_shipments'
    )
    warehouse_code = models.CharField(max_length=50)
    quantity = models.PositiveIntegerField()
    arriving_date = models.DateField()
    tracking_number = models.CharField(max_length=100)
    vendor_number = models.CharField(max_length=100)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.box_label} ({self.sku_id} x{self.quantity})"

    class Meta:
        db_table = 'inbound_shipments'
        ordering = ['-arriving_date', '-id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='chk_inbound_quantity_positive'),
        ]
        indexes = [
            models.Index(fields=['warehouse_code'], name='idx_inbound_warehouse'),
            models.Index(fields=['-arriving_date'], name='idx_inbound_arriving'),
            models.Index(fields=['tracking_number'], name='idx_inbound_tracking'),
        ]


class OutboundShipment(models.Model):
    """Customer order shipped out of a warehouse; moves on-hand stock to reserved"""
    order_id = models.CharField(max_length=20, unique=True, editable=False)
    order_date = models.DateField()
    sku = models.ForeignKey(
        StockItem, on_delete=models.PROTECT, to_field='sku', db_column='sku',
        related_name='outbound_shipments'
    )
    quantity = models.PositiveIntegerField()
    warehouse_code = models.CharField(max_length=50)
    # on_hand_quantity read under lock just before this order was taken from it
    on_hand_at_order = models.PositiveIntegerField(default=0, editable=False)
    customer_name = models.CharField(max_length=200)
    country = models.CharField(max_length=100)
    address1 = models.CharField(max_length=255)
    address2 = models.CharField(max_length=255, blank=True, null=True)
    zip_code = models.CharField(max_length=20)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    tracking_number = models.CharField(max_length=100, blank=True, null=True)
    shipping_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    note = models.TextField(blank=True, null=True)
    image_link = models.CharField(max_length=500, blank=True, null=True)
    vendor_number = models.CharField(max_length=100)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_id

    class Meta:
        db_table = 'outbound_shipments'
        ordering = ['-order_date', '-id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='chk_outbound_quantity_positive'),
        ]
        indexes = [
            models.Index(fields=['warehouse_code'], name='idx_outbound_warehouse'),
            models.Index(fields=['-order_date'], name='idx_outbound_order_date'),
            models.Index(fields=['customer_name'], name='idx_outbound_customer'),
        ]
