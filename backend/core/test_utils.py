"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.inventory.models import StockItem
from backend.shipments.models import InboundShipment, OutboundShipment
from datetime import date
import itertools
import random
import string

User = get_user_model()

_fixture_order_numbers = itertools.count(1)


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_stock_item(sku=None, warehouse_code='WH1', on_hand_quantity=0, reserved_outbound_quantity=0, **kwargs):
        """Create a test stock item"""
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        kwargs.setdefault('product_name', f'Product {sku}')
        kwargs.setdefault('vendor_number', 'V-100')
        return StockItem.objects.create(
            sku=sku,
            warehouse_code=warehouse_code,
            on_hand_quantity=on_hand_quantity,
            reserved_outbound_quantity=reserved_outbound_quantity,
            **kwargs
        )

    @staticmethod
    def inbound_payload(sku, quantity=10, warehouse_code='WH1', **overrides):
        """Request body for an inbound shipment"""
        payload = {
            'shipping_date': '2024-03-01',
            'box_label': f'BOX-{TestDataFactory.random_string(6).upper()}',
            'sku': sku,
            'warehouse_code': warehouse_code,
            'quantity': quantity,
            'arriving_date': '2024-03-05',
            'tracking_number': f'TRK{random.randint(100000, 999999)}',
            'vendor_number': 'V-100',
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def outbound_payload(sku, quantity=1, warehouse_code='WH1', **overrides):
        """Request body for an outbound shipment"""
        payload = {
            'order_date': '2024-03-10',
            'sku': sku,
            'quantity': quantity,
            'warehouse_code': warehouse_code,
            'customer_name': 'Jane Doe',
            'country': 'US',
            'address1': '1 Main St',
            'zip_code': '94105',
            'city': 'San Francisco',
            'state': 'CA',
            'vendor_number': 'V-100',
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def create_inbound_shipment(stock_item, quantity=10, **kwargs):
        """Insert an inbound row directly, without touching the stock counters"""
        defaults = {
            'shipping_date': date(2024, 3, 1),
            'box_label': f'BOX-{TestDataFactory.random_string(6).upper()}',
            'warehouse_code': stock_item.warehouse_code,
            'arriving_date': date(2024, 3, 5),
            'tracking_number': f'TRK{random.randint(100000, 999999)}',
            'vendor_number': 'V-100',
        }
        defaults.update(kwargs)
        return InboundShipment.objects.create(sku=stock_item, quantity=quantity, **defaults)

    @staticmethod
    def create_outbound_shipment(stock_item, quantity=1, order_id=None, **kwargs):
        """Insert an outbound row directly, without touching the stock counters"""
        if not order_id:
            order_id = f'OS010124-{next(_fixture_order_numbers):04d}'
        defaults = {
            'order_date': date(2024, 1, 1),
            'warehouse_code': stock_item.warehouse_code,
            'customer_name': 'Jane Doe',
            'country': 'US',
            'address1': '1 Main St',
            'zip_code': '94105',
            'city': 'San Francisco',
            'state': 'CA',
            'vendor_number': 'V-100',
        }
        defaults.update(kwargs)
        return OutboundShipment.objects.create(sku=stock_item, quantity=quantity, order_id=order_id, **defaults)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
