from rest_framework import serializers
from .models import StockItem


class StockItemSerializer(serializers.ModelSerializer):
    """Registry view of a StockItem; stock counters are read-only."""

    class Meta:
        model = StockItem
        fields = ['id', 'sku', 'product_name', 'warehouse_code', 'on_hand_quantity',
                  'reserved_outbound_quantity', 'weight', 'height', 'length', 'width',
                  'cbm', 'vendor_number', 'created_at', 'updated_at']
        read_only_fields = ['sku', 'on_hand_quantity', 'reserved_outbound_quantity', 'created_at', 'updated_at']

    def update(self, instance, validated_data):
        # Counters belong to the shipment ledger; never write them back from here
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data, 'updated_at'])
        instance.refresh_from_db(fields=['on_hand_quantity', 'reserved_outbound_quantity'])
        return instance


class StockItemCreateSerializer(StockItemSerializer):
    """Registration accepts the SKU and an opening on-hand balance."""

    class Meta(StockItemSerializer.Meta):
        read_only_fields = ['reserved_outbound_quantity', 'created_at', 'updated_at']
        extra_kwargs = {
            'sku': {'validators': []},
        }

    def validate_sku(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('SKU is required')
        if StockItem.objects.filter(sku=value).exists():
            raise serializers.ValidationError('SKU already exists')
        return value
