from rest_framework import serializers
from .models import InboundShipment, OutboundShipment


class InboundShipmentInputSerializer(serializers.Serializer):
    """Fields accepted when creating or updating an inbound shipment"""
    shipping_date = serializers.DateField()
    box_label = serializers.CharField(max_length=100)
    sku = serializers.CharField(max_length=100)
    warehouse_code = serializers.CharField(max_length=50)
    quantity = serializers.IntegerField(min_value=1)
    arriving_date = serializers.DateField()
    tracking_number = serializers.CharField(max_length=100)
    vendor_number = serializers.CharField(max_length=100)


class OutboundShipmentInputSerializer(serializers.Serializer):
    """Fields accepted when creating or updating an outbound shipment; order_id is always allocated"""
    order_date = serializers.DateField()
    sku = serializers.CharField(max_length=100)
    quantity = serializers.IntegerField(min_value=1)
    warehouse_code = serializers.CharField(max_length=50)
    customer_name = serializers.CharField(max_length=200)
    country = serializers.CharField(max_length=100)
    address1 = serializers.CharField(max_length=255)
    address2 = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    zip_code = serializers.CharField(max_length=20)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    shipping_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    image_link = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)
    vendor_number = serializers.CharField(max_length=100)


class InboundShipmentSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='sku_id', read_only=True)

    class Meta:
        model = InboundShipment
        fields = ['id', 'shipping_date', 'box_label', 'sku', 'warehouse_code', 'quantity',
                  'arriving_date', 'tracking_number', 'vendor_number', 'created_at', 'updated_at']
        read_only_fields = fields


class OutboundShipmentSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='sku_id', read_only=True)
    # Legacy name for on_hand_at_order
    stock_check = serializers.IntegerField(source='on_hand_at_order', read_only=True)

    class Meta:
        model = OutboundShipment
        fields = ['id', 'order_id', 'order_date', 'sku', 'quantity', 'warehouse_code',
                  'on_hand_at_order', 'stock_check', 'customer_name', 'country', 'address1',
                  'address2', 'zip_code', 'city', 'state', 'tracking_number', 'shipping_fee',
                  'note', 'image_link', 'vendor_number', 'created_at', 'updated_at']
        read_only_fields = fields
