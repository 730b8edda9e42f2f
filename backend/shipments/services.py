"""
Shipment transaction engine

Every operation validates its input before touching the database, then runs
as one unit of work: the StockItem rows it needs are locked in ascending SKU
order, the shipment row and the stock counters are written together and an
audit entry is recorded. Any failure rolls the whole unit back. Committed work
invalidates the cached stock list.

Stock effects:
    inbound   on_hand += quantity
    outbound  on_hand -= quantity, reserved += quantity
Updates apply the difference between the new and old quantity; deletes apply
the exact reverse of the creation.
"""
import logging

from django.db import DatabaseError

from backend.core.cache_utils import invalidate_stock_cache
from backend.core.db import SINGLE_ATTEMPT, Transaction, bulk_retry_policy, is_transient_db_error
from backend.core.exceptions import (
    InsufficientStockError,
    LedgerError,
    NotFoundError,
    ShipmentValidationError,
    StorageError,
    TransientStorageError,
)
from backend.core.utils import create_audit_log
from backend.inventory.models import StockItem
from .models import InboundShipment, OutboundShipment
from .sequence import allocate_order_id
from .serializers import InboundShipmentInputSerializer, OutboundShipmentInputSerializer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate(serializer_class, data, partial=False):
    serializer = serializer_class(data=data, partial=partial)
    if serializer.is_valid():
        return dict(serializer.validated_data)

    missing = any(
        getattr(error, 'code', None) == 'required'
        for errors in serializer.errors.values() if isinstance(errors, list)
        for error in errors
    )
    message = 'Missing required fields' if missing else 'Invalid shipment data'
    raise ShipmentValidationError(message, field_errors=serializer.errors)


def _validate_batch(serializer_class, items):
    if not isinstance(items, (list, tuple)) or not items:
        raise ShipmentValidationError('Items must be a non-empty list')

    validated = []
    for position, data in enumerate(items, start=1):
        try:
            validated.append(_validate(serializer_class, data))
        except ShipmentValidationError as exc:
            raise exc.for_item(position) from exc
    return validated


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

def _run(name, step, *args, using=None, policy=SINGLE_ATTEMPT, **kwargs):
    """
    Run ``step(tx, *args, **kwargs)`` inside one Transaction under ``policy``.

    Ledger errors pass through unchanged; database errors surface as
    StorageError (TransientStorageError for lock contention) once the
    transaction has rolled back.
    """
    def unit_of_work():
        with Transaction(using=using) as tx:
            result = step(tx, *args, **kwargs)
            tx.on_commit(invalidate_stock_cache)
            return result

    try:
        return policy.call(unit_of_work)
    except LedgerError as exc:
        logger.warning(f"{name} rejected: {exc.detail}")
        raise
    except DatabaseError as exc:
        if is_transient_db_error(exc):
            logger.exception(f"{name} failed on lock contention, rolled back")
            raise TransientStorageError() from exc
        logger.exception(f"{name} failed, rolled back")
        raise StorageError() from exc


def _lock_stocks(tx, skus):
    """Lock the StockItem rows for ``skus`` in ascending SKU order; unknown SKUs are left out."""
    stocks = {}
    for sku in sorted(set(skus)):
        stock = tx.locked(StockItem).filter(sku=sku).first()
        if stock is not None:
            stocks[sku] = stock
    return stocks


def _stock_for(stocks, sku):
    try:
        return stocks[sku]
    except KeyError:
        raise NotFoundError(f"SKU not found: {sku}")


def _lock_shipment(tx, model, shipment_id):
    try:
        return tx.locked(model).get(pk=shipment_id)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"{model._meta.verbose_name.capitalize()} not found: {shipment_id}")


def _require_warehouse(tx, warehouse_code):
    if not tx.objects(StockItem).filter(warehouse_code=warehouse_code).exists():
        raise NotFoundError(f"Warehouse not found: {warehouse_code}")


def _save_stock(tx, stock):
    stock.save(using=tx.using, update_fields=['on_hand_quantity', 'reserved_outbound_quantity', 'updated_at'])


def _add_on_hand(stock, delta):
    if stock.on_hand_quantity + delta < 0:
        raise InsufficientStockError(
            f"Insufficient stock for SKU {stock.sku}: on hand {stock.on_hand_quantity}, "
            f"cannot remove {-delta}"
        )
    stock.on_hand_quantity += delta


def _reserve(stock, quantity):
    """Move ``quantity`` from on-hand to reserved; a negative quantity releases it back."""
    if quantity > stock.on_hand_quantity:
        raise InsufficientStockError(
            f"Insufficient stock for SKU {stock.sku}: requested {quantity}, "
            f"on hand {stock.on_hand_quantity}"
        )
    stock.on_hand_quantity -= quantity
    stock.reserved_outbound_quantity += quantity


def _apply_fields(shipment, data, stocks):
    changes = {}
    for field, value in data.items():
        old_value = shipment.sku_id if field == 'sku' else getattr(shipment, field)
        if old_value == value:
            continue
        changes[field] = {'old': str(old_value), 'new': str(value)}
        if field == 'sku':
            shipment.sku = stocks[value]
        else:
            setattr(shipment, field, value)
    return changes


# ---------------------------------------------------------------------------
# Inbound steps
# ---------------------------------------------------------------------------

def _insert_inbound(tx, stock, data, user=None):
    _require_warehouse(tx, data['warehouse_code'])

    fields = {key: value for key, value in data.items() if key != 'sku'}
    shipment = tx.objects(InboundShipment).create(sku=stock, **fields)

    on_hand_before = stock.on_hand_quantity
    _add_on_hand(stock, shipment.quantity)
    _save_stock(tx, stock)

    create_audit_log(
        action='stock_inbound',
        model_name='InboundShipment',
        object_id=shipment.id,
        object_reference=shipment.box_label,
        sku=stock.sku,
        user=user,
        changes={
            'quantity': shipment.quantity,
            'on_hand_before': on_hand_before,
            'on_hand_after': stock.on_hand_quantity,
        },
        using=tx.using,
    )
    return shipment


def _create_inbound(tx, data, user=None):
    stocks = _lock_stocks(tx, [data['sku']])
    return _insert_inbound(tx, _stock_for(stocks, data['sku']), data, user)


def _create_inbound_batch(tx, items, user=None):
    stocks = _lock_stocks(tx, [item['sku'] for item in items])
    created = []
    for position, data in enumerate(items, start=1):
        try:
            created.append(_insert_inbound(tx, _stock_for(stocks, data['sku']), data, user))
        except LedgerError as exc:
            raise exc.for_item(position) from exc
    return created


def _update_inbound(tx, shipment_id, data, user=None):
    shipment = _lock_shipment(tx, InboundShipment, shipment_id)
    old_sku, old_quantity = shipment.sku_id, shipment.quantity
    new_sku = data.get('sku', old_sku)
    new_quantity = data.get('quantity', old_quantity)

    stocks = _lock_stocks(tx, [old_sku, new_sku])
    new_stock = _stock_for(stocks, new_sku)
    if data.get('warehouse_code', shipment.warehouse_code) != shipment.warehouse_code:
        _require_warehouse(tx, data['warehouse_code'])

    if new_sku == old_sku:
        delta = new_quantity - old_quantity
        if delta:
            _add_on_hand(new_stock, delta)
            _save_stock(tx, new_stock)
    else:
        old_stock = stocks[old_sku]
        _add_on_hand(old_stock, -old_quantity)
        _add_on_hand(new_stock, new_quantity)
        _save_stock(tx, old_stock)
        _save_stock(tx, new_stock)

    changes = _apply_fields(shipment, data, stocks)
    shipment.save(using=tx.using)

    create_audit_log(
        action='update',
        model_name='InboundShipment',
        object_id=shipment.id,
        object_reference=shipment.box_label,
        sku=shipment.sku_id,
        user=user,
        changes=changes,
        using=tx.using,
    )
    return shipment


def _delete_inbound(tx, shipment_id, user=None):
    shipment = _lock_shipment(tx, InboundShipment, shipment_id)
    stock = _stock_for(_lock_stocks(tx, [shipment.sku_id]), shipment.sku_id)

    on_hand_before = stock.on_hand_quantity
    _add_on_hand(stock, -shipment.quantity)
    _save_stock(tx, stock)
    shipment.delete(using=tx.using)

    create_audit_log(
        action='delete',
        model_name='InboundShipment',
        object_id=shipment_id,
        object_reference=shipment.box_label,
        sku=stock.sku,
        user=user,
        changes={
            'quantity': shipment.quantity,
            'on_hand_before': on_hand_before,
            'on_hand_after': stock.on_hand_quantity,
        },
        using=tx.using,
    )
    return shipment


# ---------------------------------------------------------------------------
# Outbound steps
# ---------------------------------------------------------------------------

def _insert_outbound(tx, stock, data, user=None):
    on_hand_before = stock.on_hand_quantity
    _reserve(stock, data['quantity'])

    fields = {key: value for key, value in data.items() if key != 'sku'}
    shipment = tx.objects(OutboundShipment).create(
        order_id=allocate_order_id(using=tx.using),
        sku=stock,
        on_hand_at_order=on_hand_before,
        **fields
    )
    _save_stock(tx, stock)

    create_audit_log(
        action='stock_outbound',
        model_name='OutboundShipment',
        object_id=shipment.id,
        object_reference=shipment.order_id,
        sku=stock.sku,
        user=user,
        changes={
            'quantity': shipment.quantity,
            'on_hand_before': on_hand_before,
            'on_hand_after': stock.on_hand_quantity,
            'reserved_after': stock.reserved_outbound_quantity,
        },
        using=tx.using,
    )
    return shipment


def _create_outbound(tx, data, user=None):
    stocks = _lock_stocks(tx, [data['sku']])
    return _insert_outbound(tx, _stock_for(stocks, data['sku']), data, user)


def _create_outbound_batch(tx, items, user=None):
    stocks = _lock_stocks(tx, [item['sku'] for item in items])
    created = []
    for position, data in enumerate(items, start=1):
        try:
            created.append(_insert_outbound(tx, _stock_for(stocks, data['sku']), data, user))
        except LedgerError as exc:
            raise exc.for_item(position) from exc
    return created


def _update_outbound(tx, shipment_id, data, user=None):
    shipment = _lock_shipment(tx, OutboundShipment, shipment_id)
    old_sku, old_quantity = shipment.sku_id, shipment.quantity
    new_sku = data.get('sku', old_sku)
    new_quantity = data.get('quantity', old_quantity)

    stocks = _lock_stocks(tx, [old_sku, new_sku])
    new_stock = _stock_for(stocks, new_sku)

    if new_sku == old_sku:
        delta = new_quantity - old_quantity
        if delta:
            _reserve(new_stock, delta)
            _save_stock(tx, new_stock)
    else:
        old_stock = stocks[old_sku]
        _reserve(old_stock, -old_quantity)
        _reserve(new_stock, new_quantity)
        _save_stock(tx, old_stock)
        _save_stock(tx, new_stock)

    changes = _apply_fields(shipment, data, stocks)
    shipment.save(using=tx.using)

    create_audit_log(
        action='update',
        model_name='OutboundShipment',
        object_id=shipment.id,
        object_reference=shipment.order_id,
        sku=shipment.sku_id,
        user=user,
        changes=changes,
        using=tx.using,
    )
    return shipment


def _delete_outbound(tx, shipment_id, user=None):
    shipment = _lock_shipment(tx, OutboundShipment, shipment_id)
    stock = _stock_for(_lock_stocks(tx, [shipment.sku_id]), shipment.sku_id)

    _reserve(stock, -shipment.quantity)
    _save_stock(tx, stock)
    shipment.delete(using=tx.using)

    create_audit_log(
        action='delete',
        model_name='OutboundShipment',
        object_id=shipment_id,
        object_reference=shipment.order_id,
        sku=stock.sku,
        user=user,
        changes={
            'quantity': shipment.quantity,
            'on_hand_after': stock.on_hand_quantity,
            'reserved_after': stock.reserved_outbound_quantity,
        },
        using=tx.using,
    )
    return shipment


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def create_inbound(data, user=None, using=None):
    """Record an inbound shipment and add its quantity to the SKU's on-hand stock."""
    validated = _validate(InboundShipmentInputSerializer, data)
    shipment = _run('Create inbound', _create_inbound, validated, user=user, using=using)
    logger.info(f"Inbound {shipment.box_label}: +{shipment.quantity} {shipment.sku_id}")
    return shipment


def create_outbound(data, user=None, using=None):
    """
    Record an outbound order: allocate its order id, snapshot the on-hand stock
    and move the quantity from on-hand to reserved.

    Raises InsufficientStockError when on-hand stock cannot cover the quantity.
    """
    validated = _validate(OutboundShipmentInputSerializer, data)
    shipment = _run('Create outbound', _create_outbound, validated, user=user, using=using)
    logger.info(f"Outbound {shipment.order_id}: -{shipment.quantity} {shipment.sku_id}")
    return shipment


def update_inbound(shipment_id, data, partial=False, user=None, using=None):
    validated = _validate(InboundShipmentInputSerializer, data, partial=partial)
    shipment = _run('Update inbound', _update_inbound, shipment_id, validated, user=user, using=using)
    logger.info(f"Updated inbound shipment {shipment_id}")
    return shipment


def update_outbound(shipment_id, data, partial=False, user=None, using=None):
    """Update an outbound shipment; its order_id never changes."""
    validated = _validate(OutboundShipmentInputSerializer, data, partial=partial)
    shipment = _run('Update outbound', _update_outbound, shipment_id, validated, user=user, using=using)
    logger.info(f"Updated outbound shipment {shipment.order_id}")
    return shipment


def delete_inbound(shipment_id, user=None, using=None):
    shipment = _run('Delete inbound', _delete_inbound, shipment_id, user=user, using=using)
    logger.info(f"Deleted inbound shipment {shipment_id}: -{shipment.quantity} {shipment.sku_id}")
    return shipment


def delete_outbound(shipment_id, user=None, using=None):
    shipment = _run('Delete outbound', _delete_outbound, shipment_id, user=user, using=using)
    logger.info(f"Deleted outbound shipment {shipment.order_id}: released {shipment.quantity} {shipment.sku_id}")
    return shipment


def bulk_create_inbound(items, user=None, using=None):
    """
    Create a batch of inbound shipments atomically.

    Every item is validated up front; the first invalid or failing item aborts
    the whole batch and the error names its 1-based position. Lock contention
    retries the whole batch (SHIPMENT_BULK_MAX_ATTEMPTS).
    """
    validated = _validate_batch(InboundShipmentInputSerializer, items)
    created = _run(
        'Bulk create inbound', _create_inbound_batch, validated,
        user=user, using=using, policy=bulk_retry_policy('bulk create inbound'),
    )
    logger.info(f"Bulk inbound committed: {len(created)} shipments")
    return created


def bulk_create_outbound(items, user=None, using=None):
    """Create a batch of outbound shipments atomically; see bulk_create_inbound."""
    validated = _validate_batch(OutboundShipmentInputSerializer, items)
    created = _run(
        'Bulk create outbound', _create_outbound_batch, validated,
        user=user, using=using, policy=bulk_retry_policy('bulk create outbound'),
    )
    logger.info(f"Bulk outbound committed: {len(created)} shipments")
    return created
