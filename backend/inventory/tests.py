"""
Test suite for the StockItem registry
Tests: registration, duplicate SKUs, read-only counters, cached listing, deletes, stock sync command
"""
from io import StringIO
from unittest import mock

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockItem
from backend.inventory.serializers import StockItemCreateSerializer, StockItemSerializer
from backend.shipments import services


class StockItemAPITests(TestCase):
    """Test StockItem registry endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_stock_item(self):
        data = {
            'sku': 'SKU-1',
            'product_name': 'Desk Lamp',
            'warehouse_code': 'WH1',
            'on_hand_quantity': 100,
            'weight': '1.250',
        }
        response = self.client.post('/api/v1/inventory/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'SKU-1')
        self.assertEqual(response.data['on_hand_quantity'], 100)
        self.assertEqual(response.data['reserved_outbound_quantity'], 0)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='StockItem', sku='SKU-1').exists())

    def test_reserved_quantity_cannot_be_set_on_create(self):
        data = {'sku': 'SKU-1', 'warehouse_code': 'WH1', 'reserved_outbound_quantity': 50}
        response = self.client.post('/api/v1/inventory/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(StockItem.objects.get(sku='SKU-1').reserved_outbound_quantity, 0)

    def test_duplicate_sku_rejected(self):
        TestDataFactory.create_stock_item(sku='SKU-1')
        response = self.client.post('/api/v1/inventory/', {'sku': 'SKU-1', 'warehouse_code': 'WH1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('SKU already exists', [str(error) for error in response.data['details']['sku']])

    def test_blank_sku_rejected(self):
        response = self.client.post('/api/v1/inventory/', {'sku': '   ', 'warehouse_code': 'WH1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_opening_balance_rejected(self):
        response = self.client.post('/api/v1/inventory/', {'sku': 'SKU-1', 'warehouse_code': 'WH1', 'on_hand_quantity': -1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_stock_item(self):
        TestDataFactory.create_stock_item(sku='SKU-1', on_hand_quantity=7)
        response = self.client.get('/api/v1/inventory/SKU-1/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['on_hand_quantity'], 7)

    def test_update_keeps_counters_read_only(self):
        TestDataFactory.create_stock_item(sku='SKU-1', on_hand_quantity=7)
        response = self.client.patch(
            '/api/v1/inventory/SKU-1/',
            {'product_name': 'Renamed', 'on_hand_quantity': 999, 'reserved_outbound_quantity': 5},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        stock = StockItem.objects.get(sku='SKU-1')
        self.assertEqual(stock.product_name, 'Renamed')
        self.assertEqual(stock.on_hand_quantity, 7)
        self.assertEqual(stock.reserved_outbound_quantity, 0)

    def test_registry_update_keeps_concurrent_shipment_effect(self):
        """A shipment committed while a registry edit is in flight keeps its stock effect"""
        TestDataFactory.create_stock_item(sku='SKU-1', on_hand_quantity=100)
        original_is_valid = StockItemSerializer.is_valid

        def is_valid_after_inbound(serializer, *args, **kwargs):
            services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=50))
            return original_is_valid(serializer, *args, **kwargs)

        with mock.patch.object(StockItemSerializer, 'is_valid', is_valid_after_inbound):
            response = self.client.patch('/api/v1/inventory/SKU-1/', {'product_name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['on_hand_quantity'], 150)
        stock = StockItem.objects.get(sku='SKU-1')
        self.assertEqual(stock.product_name, 'Renamed')
        self.assertEqual(stock.on_hand_quantity, 150)

    def test_concurrent_duplicate_registration(self):
        """A SKU registered between validation and insert is still reported as a duplicate"""
        TestDataFactory.create_stock_item(sku='SKU-1')
        with mock.patch.object(StockItemCreateSerializer, 'validate_sku', lambda serializer, value: value):
            response = self.client.post('/api/v1/inventory/', {'sku': 'SKU-1', 'warehouse_code': 'WH1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['details']['sku'], ['SKU already exists'])
        self.assertEqual(StockItem.objects.filter(sku='SKU-1').count(), 1)

    def test_delete_unreferenced_stock_item(self):
        TestDataFactory.create_stock_item(sku='SKU-1')
        response = self.client.delete('/api/v1/inventory/SKU-1/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Product deleted successfully')
        self.assertFalse(StockItem.objects.filter(sku='SKU-1').exists())

    def test_delete_referenced_stock_item_conflicts(self):
        stock = TestDataFactory.create_stock_item(sku='SKU-1', on_hand_quantity=10)
        TestDataFactory.create_inbound_shipment(stock, quantity=10)
        response = self.client.delete('/api/v1/inventory/SKU-1/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])
        self.assertTrue(StockItem.objects.filter(sku='SKU-1').exists())

    def test_missing_stock_item(self):
        response = self.client.get('/api/v1/inventory/NOPE/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class StockListTests(TestCase):
    """Test the cached, filtered stock list"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        TestDataFactory.create_stock_item(sku='A-100', product_name='Blue Mug', on_hand_quantity=0)
        TestDataFactory.create_stock_item(sku='B-200', product_name='Red Mug', on_hand_quantity=5)
        TestDataFactory.create_stock_item(sku='C-300', product_name='Teapot', on_hand_quantity=50, warehouse_code='WH2')

    def test_list_is_paginated(self):
        response = self.client.get('/api/v1/inventory/', {'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual([item['sku'] for item in response.data['results']], ['A-100', 'B-200'])

    def test_filters(self):
        response = self.client.get('/api/v1/inventory/', {'search': 'mug'})
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/inventory/', {'warehouse_code': 'wh2'})
        self.assertEqual([item['sku'] for item in response.data['results']], ['C-300'])
        response = self.client.get('/api/v1/inventory/', {'in_stock': 'false'})
        self.assertEqual([item['sku'] for item in response.data['results']], ['A-100'])
        response = self.client.get('/api/v1/inventory/', {'low_stock': 5})
        self.assertEqual(response.data['count'], 2)

    def test_invalid_paging(self):
        response = self.client.get('/api/v1/inventory/', {'page': 'x'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_is_cached_until_a_write_commits(self):
        first = self.client.get('/api/v1/inventory/')
        self.assertEqual(first['X-Cache'], 'MISS')
        second = self.client.get('/api/v1/inventory/')
        self.assertEqual(second['X-Cache'], 'HIT')
        self.assertEqual(second.data['count'], 3)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/v1/inventory/', {'sku': 'D-400', 'warehouse_code': 'WH1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        third = self.client.get('/api/v1/inventory/')
        self.assertEqual(third['X-Cache'], 'MISS')
        self.assertEqual(third.data['count'], 4)


class CheckStockSyncCommandTests(TestCase):
    """Test the check_stock_sync management command"""

    def setUp(self):
        self.stock = TestDataFactory.create_stock_item(sku='SKU-1', on_hand_quantity=70, reserved_outbound_quantity=30)
        TestDataFactory.create_inbound_shipment(self.stock, quantity=100)
        TestDataFactory.create_outbound_shipment(self.stock, quantity=10)
        TestDataFactory.create_outbound_shipment(self.stock, quantity=20)

    def test_in_sync(self):
        out = StringIO()
        call_command('check_stock_sync', '--show-all', stdout=out)
        output = out.getvalue()
        self.assertIn('Inbound total: 100', output)
        self.assertIn('Outbound total: 30', output)
        self.assertIn('No discrepancies found', output)

    def test_drift_is_reported(self):
        StockItem.objects.filter(sku='SKU-1').update(reserved_outbound_quantity=25)
        with self.assertRaises(CommandError):
            call_command('check_stock_sync', stdout=StringIO())

    def test_fix_reserved(self):
        StockItem.objects.filter(sku='SKU-1').update(reserved_outbound_quantity=25)
        out = StringIO()
        call_command('check_stock_sync', '--fix-reserved', stdout=out)
        self.stock.refresh_from_db()
        self.assertEqual(self.stock.reserved_outbound_quantity, 30)
        self.assertIn('Fixed SKU-1', out.getvalue())
        self.assertTrue(AuditLog.objects.filter(action='stock_adjust', sku='SKU-1').exists())

    def test_unknown_sku(self):
        with self.assertRaises(CommandError):
            call_command('check_stock_sync', '--sku', 'NOPE', stdout=StringIO())
