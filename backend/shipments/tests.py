"""
Comprehensive test suite for the shipment ledger
Tests: order id allocation, inbound/outbound stock effects, updates, deletes, bulk atomicity,
lock-contention retries, API status codes and concurrent orders
"""
import threading
from datetime import date
from unittest import mock

from django.core.cache import cache
from django.db import IntegrityError, OperationalError, connection, transaction
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.utils import timezone
from rest_framework import status
from backend.core.cache_utils import cache_stock_list, get_cached_stock_list
from backend.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ShipmentValidationError,
    StorageError,
    TransientStorageError,
)
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockItem
from backend.shipments import services
from backend.shipments.models import DailyOrderCounter, InboundShipment, OutboundShipment
from backend.shipments.sequence import allocate_order_id, format_order_id


def lock_wait_timeout():
    return OperationalError(1205, 'Lock wait timeout exceeded; try restarting transaction')


def today_order_id(counter):
    return format_order_id(timezone.localdate(), counter)


class LedgerTestCase(TestCase):
    """Shared fixtures: SKU-1 in WH1 with 100 on hand"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.stock = TestDataFactory.create_stock_item(sku='SKU-1', warehouse_code='WH1', on_hand_quantity=100)

    def assertStock(self, sku, on_hand, reserved):
        stock = StockItem.objects.get(sku=sku)
        self.assertEqual((stock.on_hand_quantity, stock.reserved_outbound_quantity), (on_hand, reserved))


class SequenceAllocatorTests(TestCase):
    """Test daily order id allocation"""

    def test_format_order_id(self):
        self.assertEqual(format_order_id(date(2024, 3, 5), 7), 'OS030524-0007')
        self.assertEqual(format_order_id(date(2023, 12, 31), 1234), 'OS123123-1234')

    def test_allocations_are_contiguous(self):
        day = date(2024, 3, 5)
        order_ids = [allocate_order_id(day) for _ in range(5)]
        self.assertEqual(order_ids, [format_order_id(day, n) for n in range(1, 6)])
        self.assertEqual(DailyOrderCounter.objects.get(date=day).counter, 5)

    def test_dates_are_independent(self):
        first_day, second_day = date(2024, 3, 5), date(2024, 3, 6)
        allocate_order_id(first_day)
        allocate_order_id(first_day)
        self.assertEqual(allocate_order_id(second_day), 'OS030624-0001')
        self.assertEqual(allocate_order_id(first_day), 'OS030524-0003')

    def test_defaults_to_local_date(self):
        with mock.patch('backend.shipments.sequence.timezone.localdate', return_value=date(2025, 1, 2)):
            self.assertEqual(allocate_order_id(), 'OS010225-0001')

    def test_rollback_returns_the_number(self):
        day = date(2024, 3, 5)
        allocate_order_id(day)
        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                self.assertEqual(allocate_order_id(day), 'OS030524-0002')
                raise RuntimeError('abort order')
        self.assertEqual(allocate_order_id(day), 'OS030524-0002')


class InboundEngineTests(LedgerTestCase):
    """Test inbound create/update/delete"""

    def test_create_inbound_adds_stock(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=50), user=self.user)
        self.assertEqual(shipment.quantity, 50)
        self.assertEqual(shipment.sku_id, 'SKU-1')
        self.assertStock('SKU-1', 150, 0)

        log = AuditLog.objects.get(action='stock_inbound')
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.object_reference, shipment.box_label)
        self.assertEqual(log.changes['on_hand_after'], 150)

    def test_unknown_sku(self):
        with self.assertRaises(NotFoundError):
            services.create_inbound(TestDataFactory.inbound_payload('NOPE'))
        self.assertEqual(InboundShipment.objects.count(), 0)
        self.assertStock('SKU-1', 100, 0)

    def test_unknown_warehouse(self):
        with self.assertRaises(NotFoundError) as ctx:
            services.create_inbound(TestDataFactory.inbound_payload('SKU-1', warehouse_code='WH9'))
        self.assertIn('WH9', str(ctx.exception.detail))
        self.assertEqual(InboundShipment.objects.count(), 0)
        self.assertStock('SKU-1', 100, 0)

    def test_missing_fields(self):
        payload = TestDataFactory.inbound_payload('SKU-1')
        del payload['tracking_number']
        with self.assertRaises(ShipmentValidationError) as ctx:
            services.create_inbound(payload)
        self.assertEqual(str(ctx.exception.detail), 'Missing required fields')
        self.assertIn('tracking_number', ctx.exception.field_errors)
        self.assertEqual(InboundShipment.objects.count(), 0)

    def test_non_positive_quantity(self):
        with self.assertRaises(ShipmentValidationError) as ctx:
            services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=0))
        self.assertEqual(str(ctx.exception.detail), 'Invalid shipment data')
        self.assertStock('SKU-1', 100, 0)

    def test_update_applies_delta(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        services.update_inbound(shipment.id, {'quantity': 15}, partial=True)
        self.assertStock('SKU-1', 115, 0)
        services.update_inbound(shipment.id, {'quantity': 4}, partial=True)
        self.assertStock('SKU-1', 104, 0)

    def test_update_without_quantity_change(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        updated = services.update_inbound(shipment.id, {'box_label': 'BOX-RELABELLED'}, partial=True)
        self.assertEqual(updated.box_label, 'BOX-RELABELLED')
        self.assertStock('SKU-1', 110, 0)

    def test_full_update_requires_all_fields(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        with self.assertRaises(ShipmentValidationError):
            services.update_inbound(shipment.id, {'quantity': 12})
        self.assertStock('SKU-1', 110, 0)

    def test_update_moves_stock_between_skus(self):
        TestDataFactory.create_stock_item(sku='SKU-2', warehouse_code='WH1', on_hand_quantity=5)
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        services.update_inbound(shipment.id, {'sku': 'SKU-2', 'quantity': 8}, partial=True)
        self.assertStock('SKU-1', 100, 0)
        self.assertStock('SKU-2', 13, 0)
        self.assertEqual(InboundShipment.objects.get(pk=shipment.id).sku_id, 'SKU-2')

    def test_update_unknown_shipment(self):
        with self.assertRaises(NotFoundError):
            services.update_inbound(999999, {'quantity': 5}, partial=True)

    def test_decrease_below_shipped_stock_rejected(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        StockItem.objects.filter(sku='SKU-1').update(on_hand_quantity=3)
        with self.assertRaises(InsufficientStockError):
            services.update_inbound(shipment.id, {'quantity': 2}, partial=True)
        self.assertStock('SKU-1', 3, 0)
        self.assertEqual(InboundShipment.objects.get(pk=shipment.id).quantity, 10)

    def test_delete_reverses_creation(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=25))
        services.delete_inbound(shipment.id)
        self.assertStock('SKU-1', 100, 0)
        self.assertFalse(InboundShipment.objects.filter(pk=shipment.id).exists())

    def test_delete_of_shipped_stock_rejected(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=25))
        services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=110))
        with self.assertRaises(InsufficientStockError):
            services.delete_inbound(shipment.id)
        self.assertStock('SKU-1', 15, 110)
        self.assertTrue(InboundShipment.objects.filter(pk=shipment.id).exists())

    def test_delete_unknown_shipment(self):
        with self.assertRaises(NotFoundError):
            services.delete_inbound(999999)
        self.assertStock('SKU-1', 100, 0)

    def test_commit_invalidates_stock_cache(self):
        _, key = get_cached_stock_list({'page': 1, 'limit': 20})
        cache_stock_list(key, {'results': [], 'count': 0})
        with self.captureOnCommitCallbacks(execute=True):
            services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=5))
        self.assertIsNone(get_cached_stock_list({'page': 1, 'limit': 20})[0])


class OutboundEngineTests(LedgerTestCase):
    """Test outbound create/update/delete"""

    def test_create_outbound_reserves_stock(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30), user=self.user)
        self.assertEqual(shipment.order_id, today_order_id(1))
        self.assertEqual(shipment.on_hand_at_order, 100)
        self.assertStock('SKU-1', 70, 30)
        self.assertTrue(AuditLog.objects.filter(action='stock_outbound', object_reference=shipment.order_id).exists())

    def test_order_ids_increment(self):
        first = services.create_outbound(TestDataFactory.outbound_payload('SKU-1'))
        second = services.create_outbound(TestDataFactory.outbound_payload('SKU-1'))
        self.assertEqual([first.order_id, second.order_id], [today_order_id(1), today_order_id(2)])
        self.assertEqual(second.on_hand_at_order, 99)

    def test_exact_on_hand_allowed(self):
        services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=100))
        self.assertStock('SKU-1', 0, 100)

    def test_insufficient_stock(self):
        with self.assertRaises(InsufficientStockError):
            services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=101))
        self.assertStock('SKU-1', 100, 0)
        self.assertEqual(OutboundShipment.objects.count(), 0)
        # The rejected order does not consume a number
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1'))
        self.assertEqual(shipment.order_id, today_order_id(1))

    def test_outbound_does_not_check_warehouse(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', warehouse_code='WH9'))
        self.assertEqual(shipment.warehouse_code, 'WH9')

    def test_unknown_sku(self):
        with self.assertRaises(NotFoundError):
            services.create_outbound(TestDataFactory.outbound_payload('NOPE'))
        self.assertFalse(DailyOrderCounter.objects.exists())

    def test_missing_fields(self):
        payload = TestDataFactory.outbound_payload('SKU-1')
        del payload['customer_name']
        with self.assertRaises(ShipmentValidationError):
            services.create_outbound(payload)
        self.assertStock('SKU-1', 100, 0)

    def test_update_increase_and_decrease(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30))
        services.update_outbound(shipment.id, {'quantity': 50}, partial=True)
        self.assertStock('SKU-1', 50, 50)
        services.update_outbound(shipment.id, {'quantity': 10}, partial=True)
        self.assertStock('SKU-1', 90, 10)

    def test_update_increase_beyond_on_hand(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30))
        with self.assertRaises(InsufficientStockError):
            services.update_outbound(shipment.id, {'quantity': 101}, partial=True)
        self.assertStock('SKU-1', 70, 30)
        self.assertEqual(OutboundShipment.objects.get(pk=shipment.id).quantity, 30)

    def test_update_keeps_order_id(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=5))
        payload = TestDataFactory.outbound_payload('SKU-1', quantity=6, customer_name='John Roe', order_id='OS000000-9999')
        updated = services.update_outbound(shipment.id, payload)
        self.assertEqual(updated.order_id, shipment.order_id)
        self.assertEqual(updated.customer_name, 'John Roe')
        self.assertStock('SKU-1', 94, 6)

    def test_update_moves_reservation_between_skus(self):
        TestDataFactory.create_stock_item(sku='SKU-2', warehouse_code='WH1', on_hand_quantity=20)
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30))
        services.update_outbound(shipment.id, {'sku': 'SKU-2', 'quantity': 15}, partial=True)
        self.assertStock('SKU-1', 100, 0)
        self.assertStock('SKU-2', 5, 15)

    def test_update_to_sku_without_stock(self):
        TestDataFactory.create_stock_item(sku='SKU-2', warehouse_code='WH1', on_hand_quantity=5)
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30))
        with self.assertRaises(InsufficientStockError):
            services.update_outbound(shipment.id, {'sku': 'SKU-2'}, partial=True)
        self.assertStock('SKU-1', 70, 30)
        self.assertStock('SKU-2', 5, 0)

    def test_delete_reverses_creation(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=40))
        deleted = services.delete_outbound(shipment.id)
        self.assertEqual(deleted.order_id, shipment.order_id)
        self.assertStock('SKU-1', 100, 0)
        self.assertFalse(OutboundShipment.objects.filter(pk=shipment.id).exists())

    def test_delete_unknown_shipment(self):
        with self.assertRaises(NotFoundError):
            services.delete_outbound(999999)

    def test_warehouse_scenario(self):
        services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=50))
        self.assertStock('SKU-1', 150, 0)

        first = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=30))
        self.assertStock('SKU-1', 120, 30)
        self.assertEqual(first.order_id, today_order_id(1))

        with self.assertRaises(InsufficientStockError):
            services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=200))
        self.assertStock('SKU-1', 120, 30)

        services.delete_outbound(first.id)
        self.assertStock('SKU-1', 150, 0)


class BulkEngineTests(LedgerTestCase):
    """Test all-or-nothing bulk creation"""

    def test_bulk_inbound(self):
        items = [TestDataFactory.inbound_payload('SKU-1', quantity=q) for q in (5, 10, 15)]
        created = services.bulk_create_inbound(items, user=self.user)
        self.assertEqual(len(created), 3)
        self.assertStock('SKU-1', 130, 0)
        self.assertEqual(AuditLog.objects.filter(action='stock_inbound').count(), 3)

    def test_bulk_outbound_allocates_sequential_ids(self):
        TestDataFactory.create_stock_item(sku='SKU-0', warehouse_code='WH1', on_hand_quantity=10)
        items = [
            TestDataFactory.outbound_payload('SKU-1', quantity=10),
            TestDataFactory.outbound_payload('SKU-0', quantity=4),
            TestDataFactory.outbound_payload('SKU-1', quantity=20),
        ]
        created = services.bulk_create_outbound(items)
        self.assertEqual([s.order_id for s in created], [today_order_id(n) for n in (1, 2, 3)])
        self.assertStock('SKU-1', 70, 30)
        self.assertStock('SKU-0', 6, 4)
        self.assertEqual(created[2].on_hand_at_order, 90)

    def test_empty_batch(self):
        for items in ([], None, {'sku': 'SKU-1'}):
            with self.assertRaises(ShipmentValidationError):
                services.bulk_create_inbound(items)
            with self.assertRaises(ShipmentValidationError):
                services.bulk_create_outbound(items)

    def test_invalid_item_aborts_batch_at_every_position(self):
        for position in range(1, 4):
            items = [TestDataFactory.inbound_payload('SKU-1', quantity=5) for _ in range(3)]
            del items[position - 1]['box_label']
            with self.assertRaises(ShipmentValidationError) as ctx:
                services.bulk_create_inbound(items)
            self.assertTrue(str(ctx.exception.detail).startswith(f'Item {position}:'))
            self.assertEqual(ctx.exception.position, position)
            self.assertEqual(InboundShipment.objects.count(), 0)
            self.assertStock('SKU-1', 100, 0)

    def test_failing_item_rolls_back_earlier_items(self):
        for position in range(1, 4):
            items = [TestDataFactory.inbound_payload('SKU-1', quantity=5) for _ in range(3)]
            items[position - 1]['sku'] = 'NOPE'
            with self.assertRaises(NotFoundError) as ctx:
                services.bulk_create_inbound(items)
            self.assertIn(f'Item {position}:', str(ctx.exception.detail))
            self.assertEqual(InboundShipment.objects.count(), 0)
            self.assertStock('SKU-1', 100, 0)

    def test_outbound_batch_exceeding_stock_rolls_back(self):
        items = [TestDataFactory.outbound_payload('SKU-1', quantity=60) for _ in range(2)]
        with self.assertRaises(InsufficientStockError) as ctx:
            services.bulk_create_outbound(items)
        self.assertTrue(str(ctx.exception.detail).startswith('Item 2:'))
        self.assertEqual(OutboundShipment.objects.count(), 0)
        self.assertFalse(DailyOrderCounter.objects.exists())
        self.assertStock('SKU-1', 100, 0)


@override_settings(SHIPMENT_RETRY_BACKOFF_SECONDS=0)
class RetryTests(LedgerTestCase):
    """Test lock-contention retries and storage error translation"""

    def flaky(self, real_step, fail_on_calls):
        calls = []

        def step(*args, **kwargs):
            calls.append(1)
            if len(calls) in fail_on_calls:
                raise lock_wait_timeout()
            return real_step(*args, **kwargs)
        return step, calls

    def test_bulk_retry_succeeds_without_double_counting(self):
        # Second item of the first attempt times out; the retry redoes the whole batch
        step, calls = self.flaky(services._insert_inbound, fail_on_calls={2})
        items = [TestDataFactory.inbound_payload('SKU-1', quantity=q) for q in (5, 7)]
        with mock.patch('backend.shipments.services._insert_inbound', side_effect=step):
            with self.assertLogs('backend.core.db', level='WARNING'):
                created = services.bulk_create_inbound(items)
        self.assertEqual(len(created), 2)
        self.assertEqual(len(calls), 4)
        self.assertEqual(InboundShipment.objects.count(), 2)
        self.assertStock('SKU-1', 112, 0)

    def test_bulk_outbound_retry_reuses_order_numbers(self):
        step, calls = self.flaky(services._insert_outbound, fail_on_calls={2})
        items = [TestDataFactory.outbound_payload('SKU-1', quantity=q) for q in (5, 7)]
        with mock.patch('backend.shipments.services._insert_outbound', side_effect=step):
            created = services.bulk_create_outbound(items)
        self.assertEqual([s.order_id for s in created], [today_order_id(1), today_order_id(2)])
        self.assertStock('SKU-1', 88, 12)

    def test_bulk_retry_exhaustion(self):
        step, calls = self.flaky(services._insert_inbound, fail_on_calls={1, 2, 3})
        items = [TestDataFactory.inbound_payload('SKU-1', quantity=5)]
        with mock.patch('backend.shipments.services._insert_inbound', side_effect=step):
            with self.assertRaises(TransientStorageError) as ctx:
                services.bulk_create_inbound(items)
        self.assertEqual(len(calls), 3)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(str(ctx.exception.detail), 'Internal Server Error')
        self.assertEqual(InboundShipment.objects.count(), 0)
        self.assertStock('SKU-1', 100, 0)

    @override_settings(SHIPMENT_BULK_MAX_ATTEMPTS=2)
    def test_bulk_attempts_are_configurable(self):
        step, calls = self.flaky(services._insert_outbound, fail_on_calls={1, 2, 3})
        with mock.patch('backend.shipments.services._insert_outbound', side_effect=step):
            with self.assertRaises(TransientStorageError):
                services.bulk_create_outbound([TestDataFactory.outbound_payload('SKU-1')])
        self.assertEqual(len(calls), 2)

    def test_single_create_is_not_retried(self):
        step, calls = self.flaky(services._insert_inbound, fail_on_calls={1})
        with mock.patch('backend.shipments.services._insert_inbound', side_effect=step):
            with self.assertRaises(TransientStorageError):
                services.create_inbound(TestDataFactory.inbound_payload('SKU-1'))
        self.assertEqual(len(calls), 1)
        self.assertStock('SKU-1', 100, 0)

    def test_other_database_errors_become_storage_errors(self):
        calls = []

        def broken(*args, **kwargs):
            calls.append(1)
            raise IntegrityError(1062, "Duplicate entry 'x' for key 'PRIMARY'")

        with mock.patch('backend.shipments.services._insert_inbound', side_effect=broken):
            with self.assertRaises(StorageError) as ctx:
                services.bulk_create_inbound([TestDataFactory.inbound_payload('SKU-1')])
        self.assertNotIsInstance(ctx.exception, TransientStorageError)
        self.assertNotIn('Duplicate', str(ctx.exception.detail))
        self.assertEqual(len(calls), 1)


class ShipmentAPITests(LedgerTestCase):
    """Test shipment API endpoints"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/inbound-shipments/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_inbound(self):
        response = self.client.post('/api/v1/inbound-shipments/', TestDataFactory.inbound_payload('SKU-1', quantity=50), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'SKU-1')
        self.assertEqual(response.data['quantity'], 50)
        self.assertStock('SKU-1', 150, 0)

    def test_create_inbound_unknown_sku(self):
        response = self.client.post('/api/v1/inbound-shipments/', TestDataFactory.inbound_payload('NOPE'), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'success': False, 'error': 'SKU not found: NOPE'})

    def test_create_outbound(self):
        response = self.client.post('/api/v1/outbound-shipments/', TestDataFactory.outbound_payload('SKU-1', quantity=30), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order_id'], today_order_id(1))
        self.assertEqual(response.data['stock_check'], 100)
        self.assertStock('SKU-1', 70, 30)

    def test_create_outbound_insufficient_stock(self):
        response = self.client.post('/api/v1/outbound-shipments/', TestDataFactory.outbound_payload('SKU-1', quantity=200), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('Insufficient stock', response.data['error'])
        self.assertStock('SKU-1', 100, 0)

    def test_missing_fields(self):
        response = self.client.post('/api/v1/outbound-shipments/', {'sku': 'SKU-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Missing required fields')
        self.assertIn('customer_name', response.data['details'])

    def test_list_and_filter(self):
        TestDataFactory.create_stock_item(sku='SKU-2', warehouse_code='WH1', on_hand_quantity=10)
        services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=1))
        services.create_outbound(TestDataFactory.outbound_payload('SKU-2', quantity=1, customer_name='Acme Corp'))

        response = self.client.get('/api/v1/outbound-shipments/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/v1/outbound-shipments/', {'sku': 'SKU-2'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/outbound-shipments/', {'search': 'acme'})
        self.assertEqual(response.data['results'][0]['sku'], 'SKU-2')

        response = self.client.get('/api/v1/outbound-shipments/', {'date_from': 'not-a-date'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inbound_list_filters_by_sku(self):
        TestDataFactory.create_stock_item(sku='SKU-2', warehouse_code='WH1', on_hand_quantity=0)
        services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=5))
        services.create_inbound(TestDataFactory.inbound_payload('SKU-2', quantity=5))

        response = self.client.get('/api/v1/inbound-shipments/', {'sku': 'sku-2'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['sku'], 'SKU-2')

        response = self.client.get('/api/v1/inbound-shipments/', {'search': 'KU-1'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['sku'] for row in response.data['results']], ['SKU-1'])

    def test_inbound_detail_lifecycle(self):
        shipment = services.create_inbound(TestDataFactory.inbound_payload('SKU-1', quantity=10))
        url = f'/api/v1/inbound-shipments/{shipment.id}/'

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['box_label'], shipment.box_label)

        response = self.client.put(url, TestDataFactory.inbound_payload('SKU-1', quantity=20, box_label='BOX-NEW'), format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['box_label'], 'BOX-NEW')
        self.assertStock('SKU-1', 120, 0)

        response = self.client.patch(url, {'quantity': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertStock('SKU-1', 105, 0)

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertStock('SKU-1', 100, 0)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_outbound_detail_lifecycle(self):
        shipment = services.create_outbound(TestDataFactory.outbound_payload('SKU-1', quantity=10))
        url = f'/api/v1/outbound-shipments/{shipment.id}/'

        response = self.client.patch(url, {'quantity': 150}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(url, {'quantity': 12, 'note': 'fragile'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order_id'], shipment.order_id)
        self.assertEqual(response.data['note'], 'fragile')
        self.assertStock('SKU-1', 88, 12)

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertStock('SKU-1', 100, 0)

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_bulk_inbound(self):
        items = [TestDataFactory.inbound_payload('SKU-1', quantity=q) for q in (1, 2)]
        response = self.client.post('/api/v1/inbound-shipments/bulk/', items, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(len(response.data['results']), 2)
        self.assertStock('SKU-1', 103, 0)

    def test_bulk_outbound_items_envelope(self):
        items = [TestDataFactory.outbound_payload('SKU-1', quantity=q) for q in (1, 2)]
        response = self.client.post('/api/v1/outbound-shipments/bulk/', {'items': items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([r['order_id'] for r in response.data['results']], [today_order_id(1), today_order_id(2)])

    def test_bulk_failure_names_item(self):
        items = [TestDataFactory.outbound_payload('SKU-1', quantity=q) for q in (1, 500)]
        response = self.client.post('/api/v1/outbound-shipments/bulk/', items, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(response.data['error'].startswith('Item 2:'))
        self.assertEqual(OutboundShipment.objects.count(), 0)

    def test_bulk_requires_items(self):
        response = self.client.post('/api/v1/inbound-shipments/bulk/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/v1/inbound-shipments/bulk/', [], format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(SHIPMENT_RETRY_BACKOFF_SECONDS=0)
    def test_lock_contention_returns_generic_500(self):
        with mock.patch('backend.shipments.services._insert_inbound', side_effect=lock_wait_timeout()):
            response = self.client.post(
                '/api/v1/inbound-shipments/bulk/', [TestDataFactory.inbound_payload('SKU-1')], format='json'
            )
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'error': 'Internal Server Error'})
        self.assertStock('SKU-1', 100, 0)


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentOrderTests(TransactionTestCase):
    """Concurrent writers serialize on the StockItem and counter rows"""

    def run_in_threads(self, count, func):
        results, errors = [], []
        lock = threading.Lock()

        def worker():
            try:
                result = func()
                with lock:
                    results.append(result)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def test_concurrent_allocations_are_unique_and_contiguous(self):
        day = date(2024, 3, 5)
        order_ids, errors = self.run_in_threads(8, lambda: allocate_order_id(day))
        self.assertEqual(errors, [])
        self.assertEqual(sorted(order_ids), [format_order_id(day, n) for n in range(1, 9)])

    def test_concurrent_outbound_never_oversells(self):
        TestDataFactory.create_stock_item(sku='HOT-1', warehouse_code='WH1', on_hand_quantity=5)
        shipments, errors = self.run_in_threads(
            8, lambda: services.create_outbound(TestDataFactory.outbound_payload('HOT-1', quantity=1))
        )
        self.assertEqual(len(shipments), 5)
        self.assertEqual(len(errors), 3)
        self.assertTrue(all(isinstance(error, InsufficientStockError) for error in errors))
        self.assertEqual(len({s.order_id for s in shipments}), 5)

        stock = StockItem.objects.get(sku='HOT-1')
        self.assertEqual((stock.on_hand_quantity, stock.reserved_outbound_quantity), (0, 5))
