"""
Test suite for core plumbing
Tests: transaction scope, retry policy, lock-error detection, error payloads, audit logging, stock cache
"""
from unittest import mock

from django.core.cache import cache
from django.db import DatabaseError, IntegrityError, OperationalError
from django.test import TestCase
from rest_framework import status
from backend.core.cache_utils import cache_stock_list, get_cached_stock_list, invalidate_stock_cache
from backend.core.db import RetryPolicy, SINGLE_ATTEMPT, Transaction, is_transient_db_error
from backend.core.exceptions import InsufficientStockError, NotFoundError
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log
from backend.inventory.models import StockItem


def lock_wait_timeout():
    return OperationalError(1205, 'Lock wait timeout exceeded; try restarting transaction')


class TransientErrorDetectionTests(TestCase):
    """Test which database errors count as lock contention"""

    def test_mysql_lock_wait_timeout(self):
        self.assertTrue(is_transient_db_error(lock_wait_timeout()))

    def test_mysql_deadlock(self):
        self.assertTrue(is_transient_db_error(OperationalError(1213, 'Deadlock found when trying to get lock')))

    def test_postgres_lock_not_available(self):
        exc = OperationalError('could not obtain lock on row')
        exc.pgcode = '55P03'
        self.assertTrue(is_transient_db_error(exc))

    def test_sqlite_database_locked(self):
        self.assertTrue(is_transient_db_error(OperationalError('database is locked')))

    def test_wrapped_driver_error(self):
        """The driver error is usually chained under Django's wrapper"""
        exc = DatabaseError('wrapped')
        exc.__cause__ = lock_wait_timeout()
        self.assertTrue(is_transient_db_error(exc))

    def test_other_errors_are_not_transient(self):
        self.assertFalse(is_transient_db_error(IntegrityError(1062, "Duplicate entry 'x'")))
        self.assertFalse(is_transient_db_error(OperationalError('no such table: inventory')))
        self.assertFalse(is_transient_db_error(ValueError('not a database error')))


class RetryPolicyTests(TestCase):
    """Test RetryPolicy.call"""

    def test_retries_until_success(self):
        func = mock.Mock(side_effect=[lock_wait_timeout(), lock_wait_timeout(), 'done'])
        policy = RetryPolicy(max_attempts=3)
        self.assertEqual(policy.call(func, 1, key='value'), 'done')
        self.assertEqual(func.call_count, 3)
        func.assert_called_with(1, key='value')

    def test_gives_up_after_max_attempts(self):
        func = mock.Mock(side_effect=lock_wait_timeout())
        policy = RetryPolicy(max_attempts=3)
        with self.assertRaises(OperationalError):
            policy.call(func)
        self.assertEqual(func.call_count, 3)

    def test_non_transient_error_is_not_retried(self):
        func = mock.Mock(side_effect=IntegrityError(1062, 'Duplicate entry'))
        with self.assertRaises(IntegrityError):
            RetryPolicy(max_attempts=3).call(func)
        self.assertEqual(func.call_count, 1)

    def test_non_database_error_is_not_retried(self):
        func = mock.Mock(side_effect=NotFoundError('SKU not found: X'))
        with self.assertRaises(NotFoundError):
            RetryPolicy(max_attempts=3).call(func)
        self.assertEqual(func.call_count, 1)

    def test_single_attempt_policy(self):
        func = mock.Mock(side_effect=lock_wait_timeout())
        with self.assertRaises(OperationalError):
            SINGLE_ATTEMPT.call(func)
        self.assertEqual(func.call_count, 1)

    def test_backoff_grows_with_attempts(self):
        func = mock.Mock(side_effect=[lock_wait_timeout(), lock_wait_timeout(), 'done'])
        with mock.patch('backend.core.db.time.sleep') as sleep:
            RetryPolicy(max_attempts=3, backoff=0.5).call(func)
        self.assertEqual(sleep.call_args_list, [mock.call(0.5), mock.call(1.0)])

    def test_invalid_max_attempts(self):
        with self.assertRaises(ValueError):
            RetryPolicy(max_attempts=0)


class TransactionTests(TestCase):
    """Test the Transaction scope"""

    def test_rolls_back_on_error(self):
        with self.assertRaises(InsufficientStockError):
            with Transaction() as tx:
                tx.objects(StockItem).create(sku='ROLLBACK-1', warehouse_code='WH1')
                raise InsufficientStockError()
        self.assertFalse(StockItem.objects.filter(sku='ROLLBACK-1').exists())

    def test_commits_on_success(self):
        with Transaction() as tx:
            self.assertTrue(tx.active)
            tx.objects(StockItem).create(sku='COMMIT-1', warehouse_code='WH1')
        self.assertFalse(tx.active)
        self.assertTrue(StockItem.objects.filter(sku='COMMIT-1').exists())

    def test_locked_returns_rows(self):
        TestDataFactory.create_stock_item(sku='LOCK-1', on_hand_quantity=5)
        with Transaction() as tx:
            stock = tx.locked(StockItem).get(sku='LOCK-1')
        self.assertEqual(stock.on_hand_quantity, 5)

    def test_use_outside_block_raises(self):
        tx = Transaction()
        with self.assertRaises(RuntimeError):
            tx.locked(StockItem)
        with tx:
            pass
        with self.assertRaises(RuntimeError):
            tx.on_commit(lambda: None)

    def test_cannot_enter_twice(self):
        tx = Transaction()
        with tx:
            with self.assertRaises(RuntimeError):
                tx.__enter__()

    def test_on_commit_runs_after_commit_only(self):
        calls = []
        with self.captureOnCommitCallbacks(execute=True):
            with Transaction() as tx:
                tx.on_commit(lambda: calls.append('committed'))
        self.assertEqual(calls, ['committed'])

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(ValueError):
                with Transaction() as tx:
                    tx.on_commit(lambda: calls.append('rolled back'))
                    raise ValueError('abort')
        self.assertEqual(callbacks, [])
        self.assertEqual(calls, ['committed'])


class LedgerErrorTests(TestCase):
    """Test error helpers"""

    def test_for_item_names_position(self):
        error = InsufficientStockError().for_item(3)
        self.assertIsInstance(error, InsufficientStockError)
        self.assertEqual(str(error.detail), 'Item 3: Insufficient stock for the SKU')
        self.assertEqual(error.position, 3)
        self.assertEqual(error.status_code, status.HTTP_400_BAD_REQUEST)


class ErrorPayloadTests(TestCase):
    """Test the project exception handler"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_unauthenticated_request(self):
        response = self.client.get('/api/v1/inventory/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])
        self.assertIn('error', response.data)

    def test_not_found(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/inventory/MISSING/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_ledger_error_payload(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/inbound-shipments/', {'sku': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['success'], False)
        self.assertEqual(response.data['error'], 'Missing required fields')
        self.assertIn('quantity', response.data['details'])


class AuthTests(TestCase):
    """Test JWT login"""

    def test_login_returns_tokens(self):
        TestDataFactory.create_user(username='clerk', password='s3cret-pass')
        client = AuthenticatedAPIClient()
        response = client.post('/api/v1/auth/login/', {'username': 'clerk', 'password': 's3cret-pass'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

        client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = client.get('/api/v1/auth/me/')
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data['username'], 'clerk')

    def test_login_with_bad_password(self):
        TestDataFactory.create_user(username='clerk', password='s3cret-pass')
        response = AuthenticatedAPIClient().post('/api/v1/auth/login/', {'username': 'clerk', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AuditLogTests(TestCase):
    """Test audit log creation and endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.staff = TestDataFactory.create_user(is_staff=True)

    def test_create_audit_log(self):
        log = create_audit_log(
            action='stock_inbound',
            model_name='InboundShipment',
            object_id=7,
            object_reference='BOX-1',
            sku='SKU-1',
            user=self.user,
            changes={'quantity': 5},
        )
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.object_id, '7')
        self.assertEqual(log.changes, {'quantity': 5})

    def test_missing_fields_skips_entry(self):
        self.assertIsNone(create_audit_log(model_name='StockItem', object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_storage_failure_does_not_break_caller(self):
        with mock.patch('backend.core.utils.AuditLog') as audit_model:
            audit_model.objects.using.return_value.create.side_effect = DatabaseError('disk full')
            self.assertIsNone(create_audit_log(action='create', model_name='StockItem', object_id=1))
        # The surrounding transaction is still usable
        TestDataFactory.create_stock_item(sku='AFTER-AUDIT')
        self.assertTrue(StockItem.objects.filter(sku='AFTER-AUDIT').exists())

    def test_non_staff_sees_own_entries(self):
        create_audit_log(action='create', model_name='StockItem', object_id=1, user=self.user)
        other = create_audit_log(action='create', model_name='StockItem', object_id=2, user=self.staff)

        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = client.get(f'/api/v1/audit-logs/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_sees_all_and_filters(self):
        create_audit_log(action='create', model_name='StockItem', object_id=1, user=self.user, sku='A')
        create_audit_log(action='stock_inbound', model_name='InboundShipment', object_id=2, user=self.staff, sku='A')

        client = AuthenticatedAPIClient().authenticate_user(self.staff)
        self.assertEqual(client.get('/api/v1/audit-logs/').data['count'], 2)
        response = client.get('/api/v1/audit-logs/', {'action': 'stock_inbound'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['model_name'], 'InboundShipment')


class StockCacheTests(TestCase):
    """Test stock list caching helpers"""

    def setUp(self):
        cache.clear()

    def test_cache_round_trip_and_invalidate(self):
        data, key = get_cached_stock_list({'page': 1, 'limit': 20})
        self.assertIsNone(data)

        cache_stock_list(key, {'results': [], 'count': 0})
        cached, same_key = get_cached_stock_list({'limit': 20, 'page': 1})
        self.assertEqual(same_key, key)
        self.assertEqual(cached, {'results': [], 'count': 0})

        invalidate_stock_cache()
        self.assertIsNone(get_cached_stock_list({'page': 1, 'limit': 20})[0])

    def test_different_filters_use_different_keys(self):
        _, key_a = get_cached_stock_list({'page': 1, 'search': 'a'})
        _, key_b = get_cached_stock_list({'page': 1, 'search': 'b'})
        self.assertNotEqual(key_a, key_b)
